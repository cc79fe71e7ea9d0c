"""Read-only accessor over raw channel samples."""

import logging
from typing import Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from channeldata.lib.errors import StoreError
from channeldata.models.query import DataTuple, QueryRange
from channeldata.models.sample import Sample

logger = logging.getLogger(__name__)

STREAM_BATCH_SIZE = 1000


def time_conditions(column, query_range: QueryRange, inclusive_end: bool = True) -> List:
  """Build the WHERE conditions selecting a time range.

  Args:
      column: Timestamp column to filter
      query_range: Range to select, open sides are skipped
      inclusive_end: Use `<=` at the end of the range instead of `<`

  Returns:
      List of SQLAlchemy boolean expressions
  """
  conditions = []
  if query_range.start is not None:
    conditions.append(column >= query_range.start)
  if query_range.end is not None:
    conditions.append(column <= query_range.end if inclusive_end else column < query_range.end)
  return conditions


class SampleStore:
  """Range scans and boundary lookups over the `samples` table."""

  def __init__(self, db: Session):
    self.db = db

  def count(self, channel_id: int, query_range: QueryRange, inclusive_end: bool = True) -> int:
    stmt = select(func.count()).select_from(Sample).where(
      Sample.channel_id == channel_id, *time_conditions(Sample.timestamp, query_range, inclusive_end)
    )
    try:
      return int(self.db.execute(stmt).scalar() or 0)
    except SQLAlchemyError as e:
      raise StoreError('sample count', e) from e

  def scan(
    self, channel_id: int, query_range: QueryRange, inclusive_end: bool = True
  ) -> Iterator[DataTuple]:
    """Stream samples in ascending timestamp order.

    The generator holds a server-side cursor; closing it (or abandoning it)
    stops the scan.
    """
    stmt = (
      select(Sample.timestamp, Sample.value)
      .where(
        Sample.channel_id == channel_id,
        *time_conditions(Sample.timestamp, query_range, inclusive_end),
      )
      .order_by(Sample.timestamp.asc(), Sample.id.asc())
    )
    for timestamp, value in self._stream(stmt, 'sample scan'):
      yield DataTuple(timestamp=int(timestamp), value=float(value), count=1)

  def scan_timestamps(
    self, channel_id: int, query_range: QueryRange, inclusive_end: bool = True
  ) -> Iterator[int]:
    stmt = (
      select(Sample.timestamp)
      .where(
        Sample.channel_id == channel_id,
        *time_conditions(Sample.timestamp, query_range, inclusive_end),
      )
      .order_by(Sample.timestamp.asc())
    )
    for (timestamp,) in self._stream(stmt, 'sample timestamp scan'):
      yield int(timestamp)

  def nearest_before(self, channel_id: int, timestamp: int) -> Optional[DataTuple]:
    """Last sample strictly before `timestamp`."""
    stmt = (
      select(Sample.timestamp, Sample.value)
      .where(Sample.channel_id == channel_id, Sample.timestamp < timestamp)
      .order_by(Sample.timestamp.desc())
      .limit(1)
    )
    return self._first(stmt, 'nearest sample before')

  def nearest_after(self, channel_id: int, timestamp: int) -> Optional[DataTuple]:
    """First sample strictly after `timestamp`."""
    stmt = (
      select(Sample.timestamp, Sample.value)
      .where(Sample.channel_id == channel_id, Sample.timestamp > timestamp)
      .order_by(Sample.timestamp.asc())
      .limit(1)
    )
    return self._first(stmt, 'nearest sample after')

  def _first(self, stmt, operation: str) -> Optional[DataTuple]:
    try:
      row = self.db.execute(stmt).first()
    except SQLAlchemyError as e:
      raise StoreError(operation, e) from e
    if row is None:
      return None
    return DataTuple(timestamp=int(row[0]), value=float(row[1]))

  def _stream(self, stmt, operation: str):
    try:
      result = self.db.execute(stmt, execution_options={'yield_per': STREAM_BATCH_SIZE})
    except SQLAlchemyError as e:
      raise StoreError(operation, e) from e
    try:
      yield from result
    except SQLAlchemyError as e:
      raise StoreError(operation, e) from e
    finally:
      result.close()
