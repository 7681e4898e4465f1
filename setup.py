# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "setuptools-git",  # see link at bottom
    "numpy",
    "simplejson>= 3.19.2",
    "pyvisa",
    "pyvisa_py",
    "mashumaro[msgpack]",
    "pytest_asyncio>=0.24.0",
    "pyzmq",
    "loguru",
    "rich>=13.0.0",
    "setproctitle",
    "click>=8.0.0",
    "click-option-group",
]

extras = {
    # NI-SWITCH python bindings, only needed on the PXI controller
    "ni": ["niswitch"],
    "test": ["pytest", "pytest_asyncio>=0.24.0"],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open("src/rfablate/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="rfablate",
        version=version["__version__"],
        author="rfablate developers",
        description="RF ablation duty-cycle control with closed-loop impedance depth estimation.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "ablation",
            "impedance",
            "LCR meter",
            "switch matrix",
            "closed-loop control",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 2 - Pre-Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test", "test_*"],
        ),
        entry_points={
            "console_scripts": [
                "rfablate=rfablate.cli:cli",
            ],
        },
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
        package_data={"": ["*.md", "*.json"], "rfablate.system": ["systems/*.ini"]},
        setup_requires=["wheel"],  # force install of wheel first
    )
# https://setuptools.readthedocs.io/en/latest/userguide/datafiles.html
