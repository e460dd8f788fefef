"""
Runtime settings: flags and environment (via the CLI) over ``config.yaml``
over defaults.

``config.yaml`` layout::

    hie:
      url: https://hie.example.org/query
      user: ${HIE_USER}
      password: ${HIE_PASSWORD}
      timeout: 120
    ingest:
      url: :3001/collection/patients
    sync:
      ee_file: subjects.txt
      formats: ["XML^HL7^231^CCD^C32", "XML^HL7^231^CCD^V1.1"]
      state_db: data/integrator.duckdb
      copy_dir: data/copies
      max_concurrency: 1
    schedule:
      cron: "0 0 20 * * *"
      timezone: America/New_York
      now: false
    logging:
      level: INFO
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from integrator.clients.http import normalize_url
from integrator.config.loader import Config
from integrator.exceptions import ConfigurationError

DEFAULT_FORMATS = ("XML^HL7^231^CCD^C32", "XML^HL7^231^CCD^V1.1")
DEFAULT_STATE_DB = "integrator.duckdb"
DEFAULT_TIMEOUT = 120.0


@dataclass
class Settings:
    hie_url: str
    ingest_url: str
    subjects: list[str]
    formats: list[str] = field(default_factory=lambda: list(DEFAULT_FORMATS))
    hie_user: str | None = None
    hie_password: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    state_db: str = DEFAULT_STATE_DB
    copy_dir: str | None = None
    cron: str | None = None
    timezone: str | None = None
    now: bool = False
    max_concurrency: int = 1

    @classmethod
    def resolve(cls, overrides: dict[str, Any], config: Config | None = None) -> Settings:
        """
        Merge explicit *overrides* (None means "not given") with *config*.

        Raises:
            ConfigurationError: a required setting is missing or invalid
        """
        config = config or Config({})

        def pick(name: str, config_key: str, default: Any = None) -> Any:
            value = overrides.get(name)
            if value is None or value == "":
                value = config.get(config_key)
            return default if value is None or value == "" else value

        hie_url = pick("hie_url", "hie.url")
        if not hie_url:
            raise ConfigurationError("HIE URL must be passed in as an argument or environment variable (HIE_URL).")
        ingest_url = pick("ingest_url", "ingest.url")
        if not ingest_url:
            raise ConfigurationError(
                "Ingest URL must be passed in as an argument or environment variable (INGEST_URL)."
            )

        ee = pick("ee", "sync.ee")
        ee_file = pick("ee_file", "sync.ee_file")
        if ee:
            subjects = [str(ee)]
        elif ee_file:
            subjects = parse_subject_file(Path(ee_file))
        else:
            raise ConfigurationError("EE or EE File must be passed in as an argument or environment variable.")
        if not subjects:
            raise ConfigurationError(f"No EE numbers found in {ee_file}")

        cron = pick("cron", "schedule.cron")
        # A flag left unset reads as False, so it can only switch "now" on
        now = bool(overrides.get("now")) or _as_bool(config.get("schedule.now", False))
        if not cron and not now:
            raise ConfigurationError("Cron and/or the now flag must be specified")

        max_concurrency = int(pick("max_concurrency", "sync.max_concurrency", 1))
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be >= 1")

        return cls(
            hie_url=normalize_url(str(hie_url)),
            ingest_url=normalize_url(str(ingest_url)),
            subjects=subjects,
            formats=parse_formats(pick("formats", "sync.formats", list(DEFAULT_FORMATS))),
            hie_user=pick("hie_user", "hie.user"),
            hie_password=pick("hie_password", "hie.password"),
            timeout=float(pick("timeout", "hie.timeout", DEFAULT_TIMEOUT)),
            state_db=str(pick("state_db", "sync.state_db", DEFAULT_STATE_DB)),
            copy_dir=pick("copy_dir", "sync.copy_dir"),
            cron=cron,
            timezone=pick("timezone", "schedule.timezone"),
            now=now,
            max_concurrency=max_concurrency,
        )


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0", ""}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"{value} is not a valid value for a boolean.")


def parse_formats(value: str | list[str] | tuple[str, ...]) -> list[str]:
    """Accept a comma-separated string or a list of format tags."""
    items = value.split(",") if isinstance(value, str) else list(value)
    formats = [str(item).strip() for item in items if str(item).strip()]
    if not formats:
        raise ConfigurationError("At least one supported document format is required")
    return formats


def parse_subject_file(path: Path) -> list[str]:
    """
    Read subject identifiers, one per line.

    Blank lines and lines starting with ``#`` are ignored.
    """
    try:
        lines = path.read_text().splitlines()
    except OSError as e:
        raise ConfigurationError(f"Couldn't get EE numbers from ee file: {e}", details={"path": str(path)}) from e
    subjects = []
    for line in lines:
        line = line.strip()
        if line and not line.startswith("#"):
            subjects.append(line)
    return subjects
