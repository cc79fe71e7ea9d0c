"""Rollup maintenance job script.

Aggregates raw samples into per-bucket rollup rows so that data queries can
read pre-aggregated history instead of scanning every sample.

Usage:
    python scripts/aggregate_rollups.py --mode create
    python scripts/aggregate_rollups.py --mode delta --level day,month
    python scripts/aggregate_rollups.py --mode full --level day --periods 7
    python scripts/aggregate_rollups.py --mode clear              # every level

Exit codes:
    0  success
    1  database connection or configuration failure
    2  aggregation failure (transaction rolled back)
"""

import logging
import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from channeldata.lib.config import load_settings
from channeldata.lib.database import (
  check_connection,
  create_database_engine,
  create_schema,
  get_session_factory,
)
from channeldata.lib.errors import DataQueryError
from channeldata.models.aggregation_level import AggregationLevel
from channeldata.services.rollup_aggregator import RollupAggregator

# Configure logging
logging.basicConfig(
  level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_LEVEL = 'day'


def run_mode(session, mode: str, levels: list, periods, channel_id, tz) -> int:
  """Run one job mode against an open session.

  Returns:
      Number of rollup rows written (or deleted for 'clear')
  """
  aggregator = RollupAggregator(session, tz=tz)

  if mode == 'clear':
    if not levels:
      return aggregator.clear(channel_id=channel_id)
    return sum(aggregator.clear(level, channel_id) for level in levels)

  return aggregator.aggregate(mode, levels, periods=periods, channel_id=channel_id)


@click.command()
@click.option(
  '--mode',
  '-m',
  type=click.Choice(['create', 'clear', 'full', 'delta']),
  default='delta',
  show_default=True,
  help='create tables, clear rollups, or aggregate (full/delta)',
)
@click.option(
  '--level',
  '-l',
  'level_names',
  default=None,
  help='Comma separated levels (default: day; clear: all levels)',
)
@click.option('--periods', '-p', type=int, default=None, help='Only aggregate the last N buckets')
@click.option('--channel', '-c', 'channel_id', type=int, default=None, help='Only aggregate one channel')
def main(mode, level_names, periods, channel_id):
  """Main entry point for the rollup maintenance job."""
  logger.info('=' * 80)
  logger.info(f'Starting rollup job (mode={mode}, levels={level_names}, periods={periods})')
  logger.info('=' * 80)

  try:
    settings = load_settings()
    if level_names is None:
      level_names = '' if mode == 'clear' else DEFAULT_LEVEL
    levels = [AggregationLevel.parse(name.strip()) for name in level_names.split(',') if name.strip()]

    engine = create_database_engine(settings.database_url)
    if not check_connection(engine):
      logger.error('Fatal error: cannot connect to the database, check DATABASE_URL')
      sys.exit(1)

    if mode == 'create':
      create_schema(engine)
      logger.info('Rollup job completed successfully: schema created')
      sys.exit(0)

    Session = get_session_factory(engine)
    session = Session()

  except (DataQueryError, SQLAlchemyError) as e:
    logger.error(f'Fatal error in rollup job: {e}', exc_info=True)
    sys.exit(1)

  try:
    rows = run_mode(session, mode, levels, periods, channel_id, settings.aggregation.timezone)
    logger.info(f'Rollup job completed successfully: {rows} rows {"deleted" if mode == "clear" else "written"}')
    sys.exit(0)

  except (DataQueryError, SQLAlchemyError) as e:
    logger.error(f'Rollup job failed: {e}', exc_info=True)
    session.rollback()
    sys.exit(2)

  finally:
    session.close()


if __name__ == '__main__':
  main()
