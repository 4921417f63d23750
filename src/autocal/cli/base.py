import threading
import time
from pathlib import Path
from typing import Optional

import click

from autocal.util import DEFAULT_LOGLEVEL, format_error_response


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        if isinstance(sub_cmd, click.Group):
            click.echo(f"{prefix}└── {sub}")
            print_tree(sub_cmd, prefix + "    ", ctx)
        else:
            click.echo(f"{prefix}└── {sub}")


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


@click.group()
@tree_option
def cli():
    """autocal - automated calibration of A2D cards.

    Steps each card's internal reference voltage through the levels of its
    input range, gathers the streamed samples and fits new offset/slope
    coefficients per channel.
    """
    pass


@cli.command()
@click.option("--card-type", "-t", default="", help="Card type (gpDAQ, dmmat, or generic)")
@click.option("--gain", "-g", type=int, default=None, help="Channel gain (1, 2, 4)")
@click.option(
    "--bipolar/--unipolar",
    default=True,
    help="Channel polarity (default: bipolar)",
)
def levels(card_type: str, gain: Optional[int], bipolar: bool):
    """Show the reference-voltage levels applied per range."""
    from autocal.meas.catalog import DEFAULT_VOLTAGE_LEVELS, VoltageCatalog

    catalog = VoltageCatalog()
    if gain is None and not card_type:
        for key, lvls in DEFAULT_VOLTAGE_LEVELS.items():
            click.echo(f"{key:>6}: {', '.join(str(v) for v in lvls) or '(none)'}")
        click.echo(f"{'all':>6}: {', '.join(str(v) for v in catalog.all_levels())}")
        return

    key = VoltageCatalog.key(card_type, gain or 1, bipolar)
    lvls = catalog.levels_for(card_type, gain or 1, bipolar)
    if not lvls:
        click.echo(f"{key}: not calibratable (no levels)")
        return
    click.echo(f"{key}: {', '.join(str(v) for v in lvls)}")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--channels", "-c", type=int, default=8, help="Channels on the card")
@click.option("--card-type", "-t", default="", help="Card type (gpDAQ has 4 coefficients)")
def legacy(path: str, channels: int, card_type: str):
    """Show the coefficients in force in a calibration file."""
    from autocal.calfile import read_legacy_file
    from autocal.types import GPDAQ

    n_coefs = 4 if card_type == GPDAQ else 2
    cal = read_legacy_file(path, n_channels=channels, n_coefs=n_coefs)
    if not cal.times:
        click.echo(f"No calibration in force in {path}")
    for (gain, bipolar), when in sorted(cal.times.items()):
        click.echo(f"{gain}{'T' if bipolar else 'F'} set {when:%Y %b %d %H:%M:%S}")
        for chn in range(channels):
            coefs = cal.coefficients(chn, gain, bipolar, n_coefs)
            click.echo(f"  CH{chn}: " + " ".join(f"{c:9.5g}" for c in coefs))
    if cal.error:
        click.echo(f"LegacyFileCorrupt: {cal.error}", err=True)


@cli.command()
@click.option(
    "--system-name",
    "-n",
    required=True,
    help='Name of the fleet configuration to calibrate (e.g. "mock")',
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(dir_okay=False, exists=True),
    default=None,
    help="Read the fleet from this INI file only",
)
@click.option(
    "--simulate/--no-simulate",
    default=False,
    help="Calibrate simulated cards instead of the real fleet",
)
@click.option("--noise", default=0.001, type=float, help="Simulated noise (volts)")
@click.option(
    "--save/--no-save",
    default=False,
    help="Append results to the auto_cal calibration files",
)
@click.option(
    "--summary",
    "-s",
    default="",
    help="Write a JSON summary of the run to this path",
)
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=False,
    help="Enable/disable console logging (default: disabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.autocal/autocal.log)",
)
@click.option(
    "--log-level",
    "-ll",
    default=DEFAULT_LOGLEVEL,
    help="Logging level (DEBUG, INFO, WARNING, ERROR) (default: INFO)",
)
def run(**kwargs):
    """Calibrate every card of a fleet.

    Queries each card, steps the reference voltage through its levels while
    gathering samples, then fits and reports new coefficients. Ctrl-C cancels:
    cards are released and the data gathered so far is still reduced.
    """
    from loguru import logger
    from tqdm import tqdm

    from autocal.device import CardController, ZmqCardChannel
    from autocal.meas import CalibrationRun, SimulatedFleet, ZmqSampleStream
    from autocal.system import load_run_config
    from autocal.types import AutocalError, ConfigError, NoCardsFound, RunState
    from autocal.util import get_log_filename, shutdown_run_log, start_run_log
    from autocal.util.report import format_diagnostic, print_results

    start_run_log(
        log_to_file=kwargs["log_to_file"],
        log_to_stdout=kwargs["log_to_stdout"],
        log_path=kwargs["log_path"],
        log_level=kwargs["log_level"],
    )
    try:
        config_file = kwargs["config_file"]
        config = load_run_config(
            kwargs["system_name"], Path(config_file) if config_file else None
        )
    except ConfigError as e:
        shutdown_run_log()
        raise click.ClickException(str(e))

    if kwargs["simulate"]:
        fleet = SimulatedFleet.from_config(config)
        controller = fleet.controller()
        stream = fleet.stream(config, noise=kwargs["noise"])
        clock = fleet.clock
    else:
        controller = CardController(
            lambda dsm: ZmqCardChannel(host=dsm, port=config.rpc_port)
        )
        stream = ZmqSampleStream(config.host, config.stream_port)
        clock = time.time

    def on_diagnostic(diag):
        click.echo(format_diagnostic(diag), err=True)

    bar = tqdm(total=1, desc="auto_cal", unit=" samp", ascii=True, mininterval=1)

    def on_progress(value: int):
        bar.n = value
        bar.refresh()

    calrun = CalibrationRun(
        config,
        controller,
        on_progress=on_progress,
        on_diagnostic=on_diagnostic,
        clock=clock,
    )
    errors = []

    def worker():
        try:
            calrun.run(stream)
        except AutocalError:
            logger.exception("Calibration failed.")
            errors.append(format_error_response())

    try:
        try:
            calrun.setup()
        except NoCardsFound as e:
            raise click.ClickException(str(e))
        bar.total = calrun.max_progress

        thread = threading.Thread(target=worker, name="autocal-worker")
        thread.start()
        while thread.is_alive():
            try:
                thread.join(timeout=0.5)
            except KeyboardInterrupt:
                click.echo("\nCancelling... cards are being released.", err=True)
                calrun.cancel()
        bar.close()

        if errors:
            raise click.ClickException(errors[-1])
        if calrun.state is RunState.DEAD:
            raise click.ClickException("Calibration aborted: every card failed")

        print_results(calrun)
        if kwargs["save"]:
            for unit, saved in calrun.save_all().items():
                status = "saved" if saved else "NOT saved"
                click.echo(f"{calrun.store.card(unit).name}: {status}")
        if kwargs["summary"]:
            calrun.persister.save_summary(kwargs["summary"])
        if kwargs["log_to_file"]:
            click.echo(f"Log written to {get_log_filename()}")
    finally:
        bar.close()
        controller.close()
        stream.close()
        shutdown_run_log()


@cli.group()
@tree_option
def system():
    """Manage fleet configurations."""
    pass


@system.command(name="list")
def list_systems():
    """List available fleet configurations."""
    from autocal.system.sysconfig import list_available_systems

    systems = list_available_systems()

    click.echo("\nAvailable system configurations:")
    click.echo("-----------------------------")

    if not systems:
        click.echo("No system configurations found")
        click.echo("")
        return

    # Group by source
    package_systems = [name for name, src in systems.items() if src == "package"]
    user_systems = [name for name, src in systems.items() if src == "user"]

    if package_systems:
        click.echo("\nPackage defaults:")
        for name in sorted(package_systems):
            click.echo(f"  - {name}")

    if user_systems:
        click.echo("\nUser configurations:")
        for name in sorted(user_systems):
            click.echo(f"  - {name}")
    click.echo("")


@system.command()
@click.argument("name")
def show(name: str):
    """Show the cards of a fleet configuration."""
    from autocal.system import load_run_config
    from autocal.types import ConfigError

    try:
        config = load_run_config(name)
    except ConfigError as e:
        raise click.ClickException(str(e))
    click.echo(f"[{config.system_name}] settle {config.settle_seconds} s, {config.nsamps} samples/level")
    for card in config.cards:
        click.echo(f"  {card.name} ({card.unit}) {card.card_type or 'generic'} -> {card.cal_file}")
        for chan in card.channels:
            click.echo(
                f"    ch{chan.channel} {chan.gain}{'T' if chan.bipolar else 'F'} {chan.var_name}"
            )
