"""Configuration management for Upkeep."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

UPKEEP_HOME = Path(os.environ.get("UPKEEP_HOME", Path.home() / "upkeep"))
CONFIG_FILE = UPKEEP_HOME / "config" / "upkeep.conf"
DATA_DIR = UPKEEP_HOME / "data"


@dataclass
class Config:
    """Upkeep configuration."""

    database_path: Path = field(default_factory=lambda: DATA_DIR / "upkeep.sqlite3")
    account_id: str = "default"
    lookahead_months: int = 12
    # Daily run of the scheduler when started with `upkeep serve`
    scheduler_time: str = "03:00"
    timezone: str = "UTC"

    def scheduler_hour_minute(self) -> tuple[int, int]:
        """Parse scheduler_time (HH:MM). Raises ValueError on bad input."""
        hour, minute = map(int, self.scheduler_time.split(":"))
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid scheduler time: {self.scheduler_time}")
        return hour, minute


def _parse_value(value: str) -> str:
    """Strip quotes, or inline comments from unquoted values."""
    if value.startswith('"'):
        end_quote = value.find('"', 1)
        return value[1:end_quote] if end_quote != -1 else value[1:]
    if value.startswith("'"):
        end_quote = value.find("'", 1)
        return value[1:end_quote] if end_quote != -1 else value[1:]
    if "#" in value:
        value = value.split("#")[0].strip()
    return value


def load_config(path: Path | None = None) -> Config:
    """Load configuration from upkeep.conf (key = value lines)."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _parse_value(value.strip())

        match key:
            case "database_path":
                config.database_path = Path(value).expanduser()
            case "account_id":
                config.account_id = value
            case "lookahead_months":
                try:
                    months = int(value)
                except ValueError:
                    logger.warning(f"Invalid LOOKAHEAD_MONTHS {value!r}, keeping {config.lookahead_months}")
                    continue
                if months < 1:
                    logger.warning(f"LOOKAHEAD_MONTHS must be positive, keeping {config.lookahead_months}")
                    continue
                config.lookahead_months = months
            case "scheduler_time":
                config.scheduler_time = value
            case "timezone":
                config.timezone = value
            case _:
                logger.debug(f"Ignoring unknown config key {key}")

    return config
