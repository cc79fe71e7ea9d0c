"""Configuration. All settings come from environment variables with sensible defaults.

`.env` and `.env.local` are loaded (without overriding the real environment)
the first time settings are read.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from channeldata.models.aggregation_level import UTC, AggregationLevel

logger = logging.getLogger(__name__)

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _env_bool(name: str, default: bool) -> bool:
  raw = os.getenv(name)
  if raw is None or raw.strip() == '':
    return default
  return raw.strip().lower() in _TRUE_VALUES


def _env_timezone(name: str) -> tzinfo:
  raw = os.getenv(name, 'UTC').strip()
  if raw.upper() == 'UTC':
    return UTC
  try:
    return ZoneInfo(raw)
  except (ZoneInfoNotFoundError, ValueError):
    logger.warning(f"Unknown time zone '{raw}' in {name}, falling back to UTC")
    return UTC


@dataclass(frozen=True)
class AggregationConfig:
  """Query-path settings, threaded explicitly into the planner.

  Attributes:
      aggregation_enabled: Global switch for reading the rollup store
      default_level: Level used when no level has rollup rows
      timezone: Calendar used to truncate timestamps into buckets
  """

  aggregation_enabled: bool = True
  default_level: AggregationLevel = AggregationLevel.DAY
  timezone: tzinfo = field(default=UTC)

  def is_aggregation_enabled(self) -> bool:
    return self.aggregation_enabled


@dataclass(frozen=True)
class Settings:
  database_url: str = 'sqlite:///channeldata.db'
  log_level: str = 'INFO'
  aggregation: AggregationConfig = field(default_factory=AggregationConfig)


def load_env_files(root: Path | None = None) -> None:
  """Load .env then .env.local from the project root if present."""
  base = root or Path.cwd()
  for name in ('.env', '.env.local'):
    path = base / name
    if path.exists():
      load_dotenv(path, override=False)


def load_settings() -> Settings:
  """Build settings from the environment."""
  load_env_files()

  level_name = os.getenv('AGGREGATION_DEFAULT_LEVEL', 'day')
  default_level = AggregationLevel.parse(level_name)

  aggregation = AggregationConfig(
    aggregation_enabled=_env_bool('AGGREGATION_ENABLED', True),
    default_level=default_level,
    timezone=_env_timezone('AGGREGATION_TIMEZONE'),
  )
  return Settings(
    database_url=os.getenv('DATABASE_URL', Settings.database_url),
    log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    aggregation=aggregation,
  )
