"""
Main CLI entry point.
"""

import typer

from integrator import __version__
from integrator.cli import run


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"integrator version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="integrator",
    help="Integrator - incremental HIE document synchronization into an ingest service",
    add_completion=False,
)

app.add_typer(run.app, name="run")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    Integrator - incremental HIE document synchronization.

    Run 'integrator <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
