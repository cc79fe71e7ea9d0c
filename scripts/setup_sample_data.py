"""Sample Data Setup Script for channel data.

Seeds channels with synthetic, evenly spaced samples so that rollup
aggregation and query performance can be tried locally.

Commands:
- channel: Create samples for one channel
- summary: Show sample and rollup row counts per channel
- cleanup: Remove samples and rollups of a channel (destructive!)
"""

import math
import random
import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from channeldata.lib.database import create_database_engine, create_schema, get_session_factory
from channeldata.models.aggregation_level import AggregationLevel
from channeldata.models.rollup_row import RollupRow
from channeldata.models.sample import Sample

# Load environment variables from .env.local
env_path = Path(__file__).parent.parent / '.env.local'
console = Console()
if env_path.exists():
  load_dotenv(env_path)
  console.print(f'[dim]Loaded environment from {env_path}[/dim]')

INSERT_BATCH_SIZE = 5000


def generate_samples(channel_id: int, start_ms: int, count: int, interval_ms: int, seed: int = 0):
  """Yield `count` samples of a noisy daily sine wave, `interval_ms` apart."""
  rng = random.Random(seed)
  day_ms = 24 * 3600 * 1000
  for i in range(count):
    timestamp = start_ms + i * interval_ms
    phase = 2 * math.pi * (timestamp % day_ms) / day_ms
    value = round(100 + 50 * math.sin(phase) + rng.uniform(-5, 5), 3)
    yield Sample(channel_id=channel_id, timestamp=timestamp, value=value)


@click.group()
def cli():
  """Channel sample data tools."""
  pass


@cli.command()
@click.option('--channel-id', default=1, type=int, help='Channel to seed')
@click.option('--days', default=7, type=int, help='Days of history ending now')
@click.option('--interval', default=60, type=int, help='Seconds between samples')
@click.option('--seed', default=0, type=int, help='Random seed for the noise')
def channel(channel_id, days, interval, seed):
  """Create synthetic samples for one channel."""
  if days < 1 or interval < 1:
    console.print('[red]Error: --days and --interval must be positive[/red]')
    sys.exit(1)

  interval_ms = interval * 1000
  now_ms = int(time.time() * 1000)
  start_ms = now_ms - days * 24 * 3600 * 1000
  count = (now_ms - start_ms) // interval_ms

  console.print(f'\n[bold]Creating {count} samples for channel {channel_id}...[/bold]')

  try:
    engine = create_database_engine()
    console.print('[cyan]1. Creating tables...[/cyan]')
    create_schema(engine)

    console.print(f'[cyan]2. Inserting samples every {interval}s over {days} days...[/cyan]')
    Session = get_session_factory(engine)
    with Session() as session:
      batch = []
      for sample in generate_samples(channel_id, start_ms, count, interval_ms, seed):
        batch.append(sample)
        if len(batch) >= INSERT_BATCH_SIZE:
          session.add_all(batch)
          session.commit()
          batch = []
      if batch:
        session.add_all(batch)
        session.commit()

  except SQLAlchemyError as e:
    console.print(f'[red]Database error: {e}[/red]')
    console.print('[yellow]Check DATABASE_URL in .env.local[/yellow]')
    sys.exit(1)

  console.print('\n[green]✓ Sample data created successfully![/green]')
  console.print(f'  Channel: {channel_id}')
  console.print(f'  Samples: {count}')
  console.print('\n[dim]Run scripts/aggregate_rollups.py --mode full to build rollups.[/dim]')


@cli.command()
def summary():
  """Show sample and rollup counts per channel."""
  try:
    engine = create_database_engine()
    Session = get_session_factory(engine)
    with Session() as session:
      samples = session.execute(
        select(Sample.channel_id, func.count(), func.min(Sample.timestamp), func.max(Sample.timestamp))
        .group_by(Sample.channel_id)
        .order_by(Sample.channel_id)
      ).all()
      rollups = session.execute(
        select(RollupRow.channel_id, RollupRow.level, func.count()).group_by(
          RollupRow.channel_id, RollupRow.level
        )
      ).all()
  except SQLAlchemyError as e:
    console.print(f'[red]Database error: {e}[/red]')
    sys.exit(1)

  rollup_counts = {}
  for channel_id, level, count in rollups:
    rollup_counts.setdefault(channel_id, []).append(f'{AggregationLevel.from_rank(level).label}={count}')

  table = Table(title='Channel data')
  table.add_column('Channel', justify='right')
  table.add_column('Samples', justify='right')
  table.add_column('First (ms)')
  table.add_column('Last (ms)')
  table.add_column('Rollups')
  for channel_id, count, first, last in samples:
    table.add_row(
      str(channel_id), str(count), str(first), str(last), ', '.join(rollup_counts.get(channel_id, [])) or '-'
    )
  console.print(table)


@cli.command()
@click.option('--channel-id', required=True, type=int, help='Channel to remove')
@click.option('--confirm', is_flag=True, help='Skip confirmation prompt')
def cleanup(channel_id, confirm):
  """Remove samples and rollups of a channel (destructive operation!)."""
  if not confirm:
    click.confirm(f'Delete all samples and rollups of channel {channel_id}?', abort=True)

  try:
    engine = create_database_engine()
    Session = get_session_factory(engine)
    with Session() as session:
      rollups = session.execute(delete(RollupRow).where(RollupRow.channel_id == channel_id)).rowcount
      samples = session.execute(delete(Sample).where(Sample.channel_id == channel_id)).rowcount
      session.commit()
  except SQLAlchemyError as e:
    console.print(f'[red]Database error: {e}[/red]')
    sys.exit(1)

  console.print(f'[green]✓ Deleted {samples} samples and {rollups} rollup rows[/green]')


if __name__ == '__main__':
  cli()
