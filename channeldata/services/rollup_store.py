"""Accessor over pre-aggregated rollup rows and their coverage boundaries.

    table:      --samples-- ------rollups------ --samples--
    timestamp:  from ... rollup_from ... rollup_to ... to

Boundaries are always derived from the committed rollup rows of the request
at hand; they are never cached and never inferred from the wall clock, since
the maintenance job lags behind ingestion and never rolls up the current
bucket.
"""

import logging
from datetime import tzinfo
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from channeldata.lib.errors import StoreError
from channeldata.models.aggregation_level import UTC, AggregationLevel
from channeldata.models.query import INVALID_BOUNDARY, AggregationBoundary, DataTuple, QueryRange
from channeldata.models.rollup_row import RollupRow
from channeldata.services.sample_store import STREAM_BATCH_SIZE, time_conditions

logger = logging.getLogger(__name__)


class RollupStore:
  """Reads of the `rollups` table for one calendar time zone."""

  def __init__(self, db: Session, tz: tzinfo = UTC):
    self.db = db
    self.tz = tz

  def row_counts_by_level(
    self, channel_id: int, max_level: Optional[AggregationLevel] = None
  ) -> List[Tuple[AggregationLevel, int]]:
    """Number of rollup rows per level, coarsest level first.

    Args:
        channel_id: Channel to inspect
        max_level: Only consider levels not coarser than this one
    """
    stmt = select(RollupRow.level, func.count()).where(RollupRow.channel_id == channel_id)
    if max_level is not None:
      stmt = stmt.where(RollupRow.level <= max_level.rank)
    stmt = stmt.group_by(RollupRow.level).order_by(RollupRow.level.desc())

    try:
      rows = self.db.execute(stmt).all()
    except SQLAlchemyError as e:
      raise StoreError('rollup level counts', e) from e

    counts = []
    for rank, count in rows:
      level = AggregationLevel.from_rank(int(rank))
      if level.is_supported:
        counts.append((level, int(count)))
    return counts

  def boundary_query(
    self,
    channel_id: int,
    level: AggregationLevel,
    start: Optional[int],
    end: Optional[int] = None,
    shift_buckets: int = 0,
  ) -> AggregationBoundary:
    """Compute the sub-range of `[start, end]` served by rollup rows.

    `start` is first aligned up to the bucket grid so a bucket that is only
    partially inside the range is read from raw samples. `shift_buckets`
    moves `rollup_from` forward by that many buckets.

    Returns:
        A valid boundary, or INVALID_BOUNDARY if no rollup row lies in range
    """
    level_filter = (RollupRow.channel_id == channel_id, RollupRow.level == level.rank)

    first_stmt = select(func.min(RollupRow.timestamp)).where(*level_filter)
    if start is not None:
      first_stmt = first_stmt.where(RollupRow.timestamp >= level.align_up(start, self.tz))
    if end is not None:
      first_stmt = first_stmt.where(RollupRow.timestamp < end)

    first = self._scalar(first_stmt, 'rollup boundary start')
    if first is None:
      return INVALID_BOUNDARY

    # first period with rollup data
    rollup_from = level.bucket_start(int(first), self.tz)
    if shift_buckets:
      rollup_from = level.shift(rollup_from, shift_buckets, self.tz)

    last_stmt = select(func.max(RollupRow.timestamp)).where(*level_filter)
    if end is not None:
      last_stmt = last_stmt.where(RollupRow.timestamp < end)

    last = self._scalar(last_stmt, 'rollup boundary end')
    if last is None:
      return INVALID_BOUNDARY

    # first period without rollup data
    rollup_to = level.next_bucket_start(int(last), self.tz)
    if end is not None and end < rollup_to:
      rollup_to = end

    boundary = AggregationBoundary(rollup_from=min(rollup_from, rollup_to), rollup_to=rollup_to)
    logger.debug(
      f'Rollup boundary channel={channel_id} level={level.label} '
      f'from={boundary.rollup_from} to={boundary.rollup_to}'
    )
    return boundary

  def scan(
    self,
    channel_id: int,
    level: AggregationLevel,
    query_range: QueryRange,
    inclusive_end: bool = False,
  ) -> Iterator[DataTuple]:
    """Stream rollup rows of one level in ascending timestamp order."""
    stmt = (
      select(RollupRow.timestamp, RollupRow.value, RollupRow.count)
      .where(
        RollupRow.channel_id == channel_id,
        RollupRow.level == level.rank,
        *time_conditions(RollupRow.timestamp, query_range, inclusive_end),
      )
      .order_by(RollupRow.timestamp.asc())
    )
    try:
      result = self.db.execute(stmt, execution_options={'yield_per': STREAM_BATCH_SIZE})
    except SQLAlchemyError as e:
      raise StoreError('rollup scan', e) from e
    try:
      for timestamp, value, count in result:
        yield DataTuple(timestamp=int(timestamp), value=float(value), count=int(count))
    except SQLAlchemyError as e:
      raise StoreError('rollup scan', e) from e
    finally:
      result.close()

  def sum_counts(
    self,
    channel_id: int,
    level: AggregationLevel,
    query_range: QueryRange,
    inclusive_end: bool = False,
  ) -> int:
    """Number of raw samples summarized by the rollup rows in range."""
    stmt = select(func.coalesce(func.sum(RollupRow.count), 0)).where(
      RollupRow.channel_id == channel_id,
      RollupRow.level == level.rank,
      *time_conditions(RollupRow.timestamp, query_range, inclusive_end),
    )
    return int(self._scalar(stmt, 'rollup count') or 0)

  def _scalar(self, stmt, operation: str):
    try:
      return self.db.execute(stmt).scalar()
    except SQLAlchemyError as e:
      raise StoreError(operation, e) from e
