import asyncio
from datetime import datetime
from typing import Optional

import click
from click_option_group import optgroup
from loguru import logger
from rich.console import Console
from rich.table import Table

from rfablate.util import (
    DEFAULT_INFERENCE_HOST,
    DEFAULT_INFERENCE_PORT,
    DEFAULT_LOGLEVEL,
    format_error_response,
    shutdown_log,
    start_log,
)
from rfablate.util.defaults import DEFAULT_INTERVAL_S, PRE_ABLATION_MS


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


def _parse_targets(ctx, param, value) -> dict[str, float]:
    targets = {}
    for item in value:
        face, sep, depth = item.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected FACE=DEPTH, got '{item}'")
        try:
            targets[face.strip()] = float(depth)
        except ValueError:
            raise click.BadParameter(f"Depth for '{face}' is not a number: '{depth}'")
    return targets


def print_run_summary(metadata: dict, console: Optional[Console] = None):
    """Rich table of ablation group outcomes and final depths."""
    console = console or Console(color_system="standard")
    sched = metadata["scheduler"]
    console.print(
        f"[bold]Run finished:[/bold] {sched['state']} after {sched['cycles']} cycles, "
        f"{sched['measured']} measurements ({sched['skipped']} skipped), "
        f"{sched['pulses']} pulses"
    )

    table = Table(title="Ablation groups")
    table.add_column("Group")
    table.add_column("Usage", justify="right")
    table.add_column("Active")
    table.add_column("Complete")
    for group in metadata["groups"]:
        limit = group["count_limit"] or "-"
        table.add_row(
            ",".join(group["active_sides"]),
            f"{group['count_usage']}/{limit}",
            "[green]yes[/green]" if group["active"] else "[red]no[/red]",
            "yes" if group["is_complete"] else "no",
        )
    console.print(table)

    estimator = metadata.get("estimator")
    if estimator and estimator["depths"]:
        targets = metadata["config"]["targets"]
        depths = Table(title="Depths")
        depths.add_column("Side")
        depths.add_column("Depth", justify="right")
        depths.add_column("Target", justify="right")
        for side, depth in sorted(estimator["depths"].items()):
            target = targets.get(side)
            depths.add_row(side, f"{depth:.2f}", "-" if target is None else f"{target:.2f}")
        console.print(depths)


@click.group()
@tree_option
def cli():
    """rfablate - RF ablation duty-cycle control.

    Alternates impedance sweeps over electrode permutations with RF ablation
    pulses, and estimates ablation depth per face to stop ablating faces that
    have reached their target.
    """
    pass


@cli.command()
@optgroup.group("System")
@optgroup.option(
    "--system-name",
    "-n",
    default="mock",
    show_default=True,
    help='System configuration to use (e.g. "mock", "bench")',
)
@optgroup.option("--save-dir", "-s", default=None, help="Override the system save directory")
@optgroup.group("Duty cycle")
@optgroup.option(
    "--interval",
    "-i",
    default=DEFAULT_INTERVAL_S,
    type=float,
    show_default=True,
    help="Measurement interval (s), also the ablation hold per group",
)
@optgroup.option(
    "--combination",
    "-c",
    "combinations",
    multiple=True,
    help='Ablation side combination, repeatable (e.g. -c "N,E" -c S)',
)
@optgroup.option(
    "--limit",
    "-l",
    "limits",
    multiple=True,
    type=int,
    help="Activation limit per combination, in the same order (0 = unlimited)",
)
@optgroup.option("--max-cycles", default=0, type=int, help="Stop after this many sweeps")
@optgroup.option(
    "--pre-ablation-ms", default=PRE_ABLATION_MS, type=int, show_default=True
)
@optgroup.option("--shuffle/--no-shuffle", default=True, help="Reshuffle each sweep")
@optgroup.option("--seed", default=None, type=int)
@optgroup.group("Electrodes")
@optgroup.option("--external/--no-external", "-e/", default=False)
@optgroup.option("--face", "faces", multiple=True, help="Restrict to these internal faces")
@optgroup.group("Depth feedback")
@optgroup.option(
    "--target",
    "-t",
    "targets",
    multiple=True,
    callback=_parse_targets,
    help="Target depth per face, FACE=DEPTH, repeatable",
)
@optgroup.option("--nominal-count", default=None, type=int, help="Measurements per sweep")
@optgroup.group("Logging")
@optgroup.option("--log-to-file/--no-log-to-file", "-ltf/", default=True)
@optgroup.option("--log-to-stdout/--no-log-to-stdout", "-lts/", default=True)
@optgroup.option("--log-path", "-lp", default="", help="Custom path for log file")
@optgroup.option("--log-level", "-ll", default=DEFAULT_LOGLEVEL)
def run(system_name, save_dir, log_to_file, log_to_stdout, log_path, log_level, **kwargs):
    """Run the duty cycle on a system until it completes or Ctrl-C."""
    from rfablate.meas.run import AblationRun
    from rfablate.system import AblationSystem
    from rfablate.types import RunConfig

    start_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        log_level=log_level,
    )
    try:
        system = AblationSystem(system_name)
        kwargs["interval_s"] = kwargs.pop("interval")
        for key in ("combinations", "limits", "faces"):
            kwargs[key] = list(kwargs[key])
        config = RunConfig(save_dir=save_dir or system.save_dir, **kwargs)
    except ValueError as e:
        logger.error("Invalid run setup: {}", format_error_response())
        shutdown_log()
        raise click.UsageError(str(e))

    status = system.startup()
    try:
        failed = {name: s for name, s in status.items() if not s["status"]}
        if failed:
            for name, s in failed.items():
                click.echo(f"Could not open {name}: {s['message']}", err=True)
            raise click.ClickException("Hardware not available")
        try:
            ablation_run = AblationRun(system, config, start=datetime.now())
        except ValueError as e:
            raise click.UsageError(str(e))
        try:
            metadata = asyncio.run(ablation_run.run())
        except KeyboardInterrupt:
            click.echo("Interrupted, run stopped.", err=True)
            metadata = ablation_run.get_metadata()
        print_run_summary(metadata)
    finally:
        system.packdown()
        shutdown_log()


@cli.group()
@tree_option
def systems():
    """Manage system configurations."""
    pass


@systems.command(name="list")
def list_systems():
    """List available system configurations."""
    from rfablate.system import list_available_systems

    available = list_available_systems()

    click.echo("\nAvailable system configurations:")
    click.echo("-----------------------------")

    if not available:
        click.echo("No system configurations found")
        click.echo("")
        return

    package_systems = [name for name, src in available.items() if src == "package"]
    user_systems = [name for name, src in available.items() if src == "user"]

    if package_systems:
        click.echo("\nPackage defaults:")
        for name in sorted(package_systems):
            click.echo(f"  - {name}")

    if user_systems:
        click.echo("\nUser configurations:")
        for name in sorted(user_systems):
            click.echo(f"  - {name}")
    click.echo("")


@systems.command()
@click.argument("name")
def install(name: str):
    """Install a package system config to the user directory.

    NAME: Name of system configuration to install
    """
    from rfablate.system import install_system_config

    try:
        install_system_config(name)
        click.echo(f"Installed system configuration '{name}' to user directory")
    except (FileNotFoundError, ValueError):
        click.echo(f"Error: {format_error_response()}", err=True)


@systems.command()
@click.argument("name")
def check(name: str):
    """Open every device of a system and report which are available."""
    from rfablate.system import AblationSystem

    console = Console(color_system="standard")
    try:
        system = AblationSystem(name)
    except ValueError as e:
        console.print(f"[red]Invalid system '{name}':[/red] {e}")
        return
    try:
        status = system.startup()
    finally:
        system.packdown()

    table = Table(title=f"System {name}")
    table.add_column("Device")
    table.add_column("Status")
    table.add_column("Message")
    for dev_name, s in status.items():
        mark = "[green]+[/green]" if s["status"] else "[red]-[/red]"
        table.add_row(dev_name, mark, str(s["message"]))
    console.print(table)


@cli.command()
@click.option("--filter", "-f", help='Filter devices by resource string (e.g. "ASRL" or "USB")')
@click.option("--model", "-m", help="Filter devices by model string (e.g. HM8118)")
def visa(filter: Optional[str], model: Optional[str]):
    """List all available VISA devices."""
    from rfablate.util.check_hw import list_visa_devices

    with click.progressbar(length=100, label="Scanning devices") as bar:

        def progress_callback(current, total, msg):
            bar.update(int(100 * current / total))
            if msg:
                click.echo(f"\n{msg}")

        devices = list_visa_devices(
            filter_string=filter,
            model_filter=model,
            termination="\r",
            progress_callback=progress_callback,
        )

    click.echo("\nAvailable VISA devices:")
    click.echo("----------------------")

    if not devices:
        click.echo("No VISA devices found")
        click.echo("")
        return

    for addr, info in devices.items():
        click.echo(f"\nAddress: {addr}")
        click.echo(f"Status: {info['status']}")
        if info["status"] == "connected":
            click.echo(f"Device: {info['idn']}")
        elif info["error"]:
            click.echo(f"Error: {info['error']}")
    click.echo("")


@cli.command(name="mock-inference")
@click.option("--host", "-ha", default=DEFAULT_INFERENCE_HOST, show_default=True)
@click.option("--port", "-p", default=DEFAULT_INFERENCE_PORT, type=int, show_default=True)
@click.option("--delay", default=0.0, type=float, help="Seconds to wait before each reply")
@click.option("--log-level", "-ll", default=DEFAULT_LOGLEVEL)
def mock_inference(host: str, port: int, delay: float, log_level: str):
    """Serve the mock depth-inference service until Ctrl-C."""
    from setproctitle import setproctitle

    from rfablate.inference import MockDepthServer

    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"rfablate-mock-inference_{timestamp}")
    start_log(log_to_file=False, log_to_stdout=True, log_level=log_level)

    server = MockDepthServer(host=host, port=port, delay_s=delay)
    click.echo(f"Mock depth inference on tcp://{host}:{port}, Ctrl-C to stop")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("Stopped.")
    finally:
        shutdown_log()
