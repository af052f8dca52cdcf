"""launchpad command-line entry point.

Example:
    $ launchpad app dev --all
    $ launchpad app run build -r svc-a -r svc-b --env prod
    $ launchpad app logs --repo svc-a --follow

"""

import typer

from launchpad import __version__
from launchpad.cli_utils import _setup_logging, console
from launchpad.commands.app import app_app

app = typer.Typer(
    name="launchpad",
    help="Run lifecycle commands across the repositories of a workspace",
    no_args_is_help=True,
)

app.add_typer(app_app, name="app")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"launchpad {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log warnings and errors",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Developer workspace launcher."""
    _setup_logging(verbose=verbose, quiet=quiet)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
