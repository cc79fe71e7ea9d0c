"""Rollup maintenance: write per-bucket aggregates of raw samples.

The aggregator never writes the bucket that contains "now", since samples may
still arrive for it. Re-aggregating a bucket replaces its rollup row, so both
modes are idempotent.

Modes:
    full   aggregate every completed bucket (optionally limited by `periods`)
    delta  aggregate only buckets after the last rollup row of each channel;
           `periods` limits the lookback of channels without rollup rows
"""

import logging
import time
from datetime import tzinfo
from typing import Iterable, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from channeldata.lib.errors import AggregationError, StoreError, UnknownGroupingError
from channeldata.lib.metrics import record_rollup_rows
from channeldata.models.aggregation_level import UTC, AggregationLevel
from channeldata.models.query import QueryRange
from channeldata.models.reducer import Reducer
from channeldata.models.rollup_row import RollupRow
from channeldata.models.sample import Sample
from channeldata.services.downsampler import group_tuples
from channeldata.services.sample_store import SampleStore

logger = logging.getLogger(__name__)

MODES = ('full', 'delta')


class RollupAggregator:
  """Maintains the `rollups` table from the `samples` table."""

  def __init__(self, db: Session, tz: tzinfo = UTC, reducer: Reducer = Reducer.SUM):
    self.db = db
    self.tz = tz
    self.reducer = reducer
    self.sample_store = SampleStore(db)

  def clear(self, level: Optional[AggregationLevel] = None, channel_id: Optional[int] = None) -> int:
    """Delete rollup rows, optionally restricted to one level and/or channel.

    Returns:
        Number of rows deleted
    """
    stmt = delete(RollupRow)
    if level is not None:
      stmt = stmt.where(RollupRow.level == level.rank)
    if channel_id is not None:
      stmt = stmt.where(RollupRow.channel_id == channel_id)

    try:
      deleted = self.db.execute(stmt).rowcount
      self.db.commit()
    except SQLAlchemyError as e:
      self.db.rollback()
      raise StoreError('rollup clear', e) from e

    scope = level.label if level else "all levels"
    logger.info(f"Cleared {deleted} rollup rows ({scope}, channel={channel_id})")
    return deleted

  def aggregate(
    self,
    mode: str = 'full',
    levels: Union[AggregationLevel, str, Iterable[Union[AggregationLevel, str]]] = AggregationLevel.DAY,
    periods: Optional[int] = None,
    channel_id: Optional[int] = None,
    now_ms: Optional[int] = None,
  ) -> int:
    """Aggregate samples into rollup rows.

    Args:
        mode: 'full' or 'delta'
        levels: Level or levels to aggregate
        periods: Only aggregate this many buckets before the current one
            (delta: only for channels that have no rollup row yet)
        channel_id: Restrict to one channel (default: every channel with samples)
        now_ms: Reference time in ms (default: wall clock)

    Returns:
        Number of rollup rows written

    Raises:
        AggregationError: Unknown mode, unsupported level or invalid periods
        StoreError: Database failure (the current channel/level is rolled back)
    """
    if mode not in MODES:
      raise AggregationError(f"Unknown aggregation mode '{mode}' (expected one of {', '.join(MODES)})")
    if periods is not None and periods < 1:
      raise AggregationError(f'Aggregation periods must be at least 1 (received: {periods})')

    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    channels = [channel_id] if channel_id is not None else self._channels()

    written = 0
    for level in self._levels(levels):
      level_rows = 0
      for channel in channels:
        level_rows += self._aggregate_channel(channel, level, mode, periods, now_ms)
      record_rollup_rows(level.label, mode, level_rows)
      logger.info(f'Aggregated {level_rows} {level.label} rollup rows ({mode}) for {len(channels)} channel(s)')
      written += level_rows
    return written

  def _aggregate_channel(
    self, channel_id: int, level: AggregationLevel, mode: str, periods: Optional[int], now_ms: int
  ) -> int:
    current = level.bucket_start(now_ms, self.tz)

    # Delta continues right after the last rollup row; `periods` only bounds
    # a channel's first run.
    last = self._last_rollup(channel_id, level) if mode == 'delta' else None
    if last is not None:
      lower = level.next_bucket_start(last, self.tz)
    elif periods is not None:
      lower = level.shift(current, -periods, self.tz)
    else:
      lower = None

    if lower is not None and lower >= current:
      logger.debug(f'Channel {channel_id} {level.label} rollups are up to date')
      return 0

    query_range = QueryRange(lower, current)
    try:
      rows = list(
        group_tuples(
          self.sample_store.scan(channel_id, query_range, inclusive_end=False),
          level,
          self.reducer,
          self.tz,
        )
      )

      stmt = delete(RollupRow).where(
        RollupRow.channel_id == channel_id,
        RollupRow.level == level.rank,
        RollupRow.timestamp < current,
      )
      if lower is not None:
        stmt = stmt.where(RollupRow.timestamp >= lower)
      self.db.execute(stmt)

      self.db.add_all(
        RollupRow(
          channel_id=channel_id,
          level=level.rank,
          timestamp=row.timestamp,
          value=row.value,
          count=row.count,
        )
        for row in rows
      )
      self.db.commit()
    except SQLAlchemyError as e:
      self.db.rollback()
      raise StoreError(f'{level.label} aggregation of channel {channel_id}', e) from e
    except StoreError:
      self.db.rollback()
      raise

    logger.debug(f'Channel {channel_id}: wrote {len(rows)} {level.label} rollup rows from {lower} to {current}')
    return len(rows)

  def _levels(self, levels) -> List[AggregationLevel]:
    if isinstance(levels, (AggregationLevel, str)):
      levels = [levels]

    result = []
    for level in levels:
      name = level.label if isinstance(level, AggregationLevel) else level
      try:
        result.append(AggregationLevel.parse(name))
      except UnknownGroupingError as e:
        raise AggregationError(f"Cannot aggregate level '{name}': {e}") from e
    return result

  def _channels(self) -> List[int]:
    try:
      stmt = select(Sample.channel_id).distinct().order_by(Sample.channel_id)
      return [int(channel) for channel in self.db.execute(stmt).scalars()]
    except SQLAlchemyError as e:
      raise StoreError('channel listing', e) from e

  def _last_rollup(self, channel_id: int, level: AggregationLevel) -> Optional[int]:
    stmt = select(func.max(RollupRow.timestamp)).where(
      RollupRow.channel_id == channel_id, RollupRow.level == level.rank
    )
    try:
      last = self.db.execute(stmt).scalar()
    except SQLAlchemyError as e:
      raise StoreError('last rollup lookup', e) from e
    return None if last is None else int(last)
