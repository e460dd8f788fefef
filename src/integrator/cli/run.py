"""
integrator run - synchronize subjects now and/or on a schedule.
"""

import asyncio
from pathlib import Path

import typer

from integrator.config.loader import load_config
from integrator.config.settings import Settings
from integrator.exceptions import ConfigurationError, IntegratorError
from integrator.service.scheduler import serve
from integrator.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("integrator.cli.run")

app = typer.Typer(name="run", help="Copy HIE documents into the ingest service", invoke_without_command=True)


@app.callback()
def run(
    hie: str | None = typer.Option(None, "--hie", envvar="HIE_URL", help="HIE API endpoint URL"),
    user: str | None = typer.Option(None, "--user", envvar="HIE_USER", help="User for HIE basic auth"),
    password: str | None = typer.Option(
        None, "--password", envvar="HIE_PASSWORD", help="Password for HIE basic auth"
    ),
    ingest: str | None = typer.Option(None, "--ingest", envvar="INGEST_URL", help="Ingest API endpoint URL"),
    ee: str | None = typer.Option(None, "--ee", envvar="EE", help="EE number to copy data for"),
    ee_file: Path | None = typer.Option(
        None, "--ee-file", envvar="EE_FILE", help="File with one EE number per line"
    ),
    formats: str | None = typer.Option(
        None,
        "--formats",
        envvar="FORMATS",
        help='Comma-separated supported document formats (default: "XML^HL7^231^CCD^C32,XML^HL7^231^CCD^V1.1")',
    ),
    state_db: str | None = typer.Option(
        None, "--state-db", envvar="STATE_DB", help="Transaction log database (default: integrator.duckdb)"
    ),
    copy_dir: Path | None = typer.Option(
        None, "--copy-dir", envvar="COPY_DIR", help="Folder where HIE records are also copied locally"
    ),
    cron: str | None = typer.Option(
        None, "--cron", envvar="INTEGRATOR_CRON", help='Cron schedule, e.g. "0 0 20 * * *"'
    ),
    now: bool = typer.Option(False, "--now", envvar="INTEGRATOR_NOW", help="Run immediately"),
    timeout: float | None = typer.Option(None, "--timeout", envvar="HIE_TIMEOUT", help="HTTP timeout in seconds"),
    max_concurrency: int | None = typer.Option(
        None, "--max-concurrency", help="Subjects synchronized in parallel (default: 1)"
    ),
    env: str | None = typer.Option(None, "--env", help="Environment overlay (config.<env>.yaml)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Directory holding config.yaml"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Explicit config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Copy new documents for each EE from the HIE into the ingest service.

    Without --cron the batch runs once and exits; with --cron the process
    keeps running on the schedule (and also runs first when --now is set).
    """
    try:
        config = load_config(project_dir, env=env, config_file=config_file)
        setup_logging_from_config(config.data, project_dir=project_dir, verbose=verbose)
        settings = Settings.resolve(
            {
                "hie_url": hie,
                "hie_user": user,
                "hie_password": password,
                "ingest_url": ingest,
                "ee": ee,
                "ee_file": str(ee_file) if ee_file else None,
                "formats": formats,
                "state_db": state_db,
                "copy_dir": str(copy_dir) if copy_dir else None,
                "cron": cron,
                "now": now,
                "timeout": timeout,
                "max_concurrency": max_concurrency,
            },
            config,
        )
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    logger.info(f"Synchronizing {len(settings.subjects)} subject(s) for formats {', '.join(settings.formats)}")
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    except IntegratorError as e:
        logger.error(f"Integrator failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
