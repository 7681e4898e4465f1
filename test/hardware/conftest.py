import pytest

from rfablate.system import AblationSystem


@pytest.fixture(scope="session")
def bench():
    """The bench system, skipping if any of its devices cannot be opened."""
    try:
        system = AblationSystem("bench")
    except ValueError as e:
        pytest.skip(f"Bench system not configured: {e}")
    status = system.startup()
    failed = [name for name, s in status.items() if not s["status"]]
    if failed:
        system.packdown()
        pytest.skip(f"Bench devices not available: {failed}")
    yield system
    system.packdown()
