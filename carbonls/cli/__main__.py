import logging
import sys
from pathlib import Path
from typing import Optional

import rich_click as click
from click.core import Context
from rich.logging import RichHandler

from .console import console
from .lsp import run_lsp


def excepthook(type, value, traceback):
    from rich.console import Console
    from rich.traceback import Traceback

    traceback_console = Console(stderr=True)
    traceback_console.print(
        Traceback.from_exception(
            type,
            value,
            traceback,
            suppress=[click],
        )
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--debug",
    "-d",
    is_flag=True,
    default=False,
    help="Set logging level to debug.",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(exists=False, dir_okay=False),
    envvar="CARBONLS_CONFIG",
    help="Path to the local config file.",
)
@click.version_option(message="%(version)s", package_name="carbonls")
@click.pass_context
def main(ctx: Context, debug: bool, config: Optional[str]) -> None:
    logging.basicConfig(
        format="%(asctime)s %(name)s: %(message)s",
        handlers=[RichHandler(show_time=False, console=console, markup=False)],
        force=True,  # pyright: ignore reportGeneralTypeIssues
    )
    sys.excepthook = excepthook

    if debug:
        from carbonls.core.logging import set_debug

        set_debug(True)

    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["local_config_path"] = config

    if config is not None:
        try:
            Path(config).resolve().relative_to(Path.cwd())
        except ValueError:
            console.print(
                f"[red]Config path must be relative to current directory: {Path.cwd()}[/red]"
            )
            sys.exit(1)


main.add_command(run_lsp)


@main.command(name="config")
@click.pass_context
def config(ctx: Context) -> None:
    """Print loaded config options in JSON format."""
    from carbonls.config import CarbonLsConfig

    config = CarbonLsConfig(local_config_path=ctx.obj.get("local_config_path", None))
    config.load_configs()
    console.print_json(str(config))


if __name__ == "__main__":
    main()
