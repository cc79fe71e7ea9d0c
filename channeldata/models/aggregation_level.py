"""Calendar aggregation levels and bucket arithmetic.

A bucket is a calendar-aligned interval at one level (one calendar day, one
hour, ...). Rollup rows and grouped results are keyed by the bucket start,
expressed in milliseconds since the epoch.

The numeric value of each level is its rank and is persisted in the
`rollups.level` column: changing the order requires rebuilding rollups.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import List

from channeldata.lib.errors import UnknownGroupingError, UnsupportedLevelError

UTC = timezone.utc

_FIXED_WIDTH_MS = {
  'SECOND': 1000,
  'MINUTE': 60 * 1000,
  'HOUR': 60 * 60 * 1000,
}


class AggregationLevel(Enum):
  """Supported grouping / rollup levels ordered from fine to coarse."""

  SECOND = 0
  MINUTE = 1
  HOUR = 2
  DAY = 3
  WEEK = 4  # recognized, no bucket format
  MONTH = 5
  YEAR = 6

  @property
  def rank(self) -> int:
    return self.value

  @property
  def label(self) -> str:
    return self.name.lower()

  @property
  def is_supported(self) -> bool:
    return self is not AggregationLevel.WEEK

  @classmethod
  def parse(cls, name: str) -> 'AggregationLevel':
    """Resolve a grouping name such as 'day' to a supported level.

    Raises:
        UnknownGroupingError: name is not a level
        UnsupportedLevelError: level exists but cannot be bucketed
    """
    try:
      level = cls[str(name).strip().upper()]
    except KeyError:
      raise UnknownGroupingError(str(name)) from None
    if not level.is_supported:
      raise UnsupportedLevelError(level.label)
    return level

  @classmethod
  def from_rank(cls, rank: int) -> 'AggregationLevel':
    return cls(rank)

  @classmethod
  def supported(cls) -> List['AggregationLevel']:
    return [level for level in cls if level.is_supported]

  def _require_supported(self) -> None:
    if not self.is_supported:
      raise UnsupportedLevelError(self.label)

  def bucket_start(self, timestamp: int, tz: tzinfo = UTC) -> int:
    """Truncate a millisecond timestamp to the start of its bucket."""
    self._require_supported()
    seconds = timestamp // 1000

    if self is AggregationLevel.SECOND:
      return seconds * 1000

    local = datetime.fromtimestamp(seconds, tz)
    if self is AggregationLevel.MINUTE:
      start = local.replace(second=0)
    elif self is AggregationLevel.HOUR:
      start = local.replace(minute=0, second=0)
    elif self is AggregationLevel.DAY:
      start = datetime.combine(local.date(), time(), tzinfo=tz)
    elif self is AggregationLevel.MONTH:
      start = datetime.combine(local.date().replace(day=1), time(), tzinfo=tz)
    else:
      start = datetime.combine(date(local.year, 1, 1), time(), tzinfo=tz)

    return int(start.timestamp()) * 1000

  def shift(self, bucket_start: int, buckets: int = 1, tz: tzinfo = UTC) -> int:
    """Move a bucket start by a (possibly negative) number of buckets."""
    self._require_supported()
    width = _FIXED_WIDTH_MS.get(self.name)
    if width is not None:
      return bucket_start + buckets * width

    local = datetime.fromtimestamp(bucket_start // 1000, tz).date()
    if self is AggregationLevel.DAY:
      target = local + timedelta(days=buckets)
    elif self is AggregationLevel.MONTH:
      years, month = divmod(local.month - 1 + buckets, 12)
      target = date(local.year + years, month + 1, 1)
    else:
      target = date(local.year + buckets, 1, 1)

    return int(datetime.combine(target, time(), tzinfo=tz).timestamp()) * 1000

  def next_bucket_start(self, timestamp: int, tz: tzinfo = UTC) -> int:
    """Start of the bucket following the one that contains `timestamp`."""
    return self.shift(self.bucket_start(timestamp, tz), 1, tz)

  def align_up(self, timestamp: int, tz: tzinfo = UTC) -> int:
    """Smallest bucket start that is not before `timestamp`."""
    start = self.bucket_start(timestamp, tz)
    return timestamp if start == timestamp else self.shift(start, 1, tz)
