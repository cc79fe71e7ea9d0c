"""Reduction of ordered tuple streams: calendar grouping and bucket packing.

Both reductions are streaming: input must be ordered by timestamp and every
group is emitted as soon as the next group starts. Each output tuple carries
`(max timestamp, reduced value, summed count)` of its members.
"""

from datetime import tzinfo
from typing import Iterable, Iterator, Optional

from channeldata.models.aggregation_level import UTC, AggregationLevel
from channeldata.models.query import DataTuple
from channeldata.models.reducer import Reducer


class _Accumulator:
  """Running reduction of one group."""

  __slots__ = ('reducer', 'timestamp', 'value', 'count')

  def __init__(self, reducer: Reducer):
    self.reducer = reducer
    self.timestamp: Optional[int] = None
    self.value: Optional[float] = None
    self.count = 0

  def add(self, row: DataTuple) -> None:
    if self.timestamp is None:
      self.timestamp = row.timestamp
      self.value = self.reducer.reduce((row.value,))
    else:
      self.timestamp = max(self.timestamp, row.timestamp)
      self.value = self.reducer.combine(self.value, row.value)
    self.count += row.count

  def result(self) -> DataTuple:
    return DataTuple(timestamp=self.timestamp, value=self.value, count=self.count)


def reduce_tuples(rows: Iterable[DataTuple], reducer: Reducer = Reducer.SUM) -> DataTuple:
  """Reduce a non-empty group of tuples into one."""
  acc = _Accumulator(reducer)
  for row in rows:
    acc.add(row)
  if acc.timestamp is None:
    raise ValueError('Cannot reduce an empty group')
  return acc.result()


def group_tuples(
  rows: Iterable[DataTuple],
  level: AggregationLevel,
  reducer: Reducer = Reducer.SUM,
  tz: tzinfo = UTC,
) -> Iterator[DataTuple]:
  """Group an ordered stream by calendar bucket at `level`.

  Rollup rows produced at `level` map one-to-one onto output tuples, so
  grouping them again at the same level leaves them unchanged.
  """
  acc = None
  current_key = None
  for row in rows:
    key = level.bucket_start(row.timestamp, tz)
    if acc is not None and key != current_key:
      yield acc.result()
      acc = None
    if acc is None:
      acc = _Accumulator(reducer)
      current_key = key
    acc.add(row)
  if acc is not None:
    yield acc.result()


def count_groups(timestamps: Iterable[int], level: AggregationLevel, tz: tzinfo = UTC) -> int:
  """Number of distinct buckets touched by an ordered timestamp stream."""
  groups = 0
  current_key = None
  for timestamp in timestamps:
    key = level.bucket_start(timestamp, tz)
    if key != current_key:
      groups += 1
      current_key = key
  return groups


def package_size_for(row_count: int, tuple_count: Optional[int]) -> int:
  """Rows per package needed to approach `tuple_count`; 1 means no packing."""
  if not tuple_count or row_count <= tuple_count:
    return 1
  return row_count // tuple_count


def packaged_row_count(row_count: int, package_size: int) -> int:
  """Number of tuples produced when packing `row_count` samples."""
  if package_size <= 1:
    return row_count
  return row_count // package_size


def package_key(position: int, package_size: int, max_key: int) -> int:
  """Package index of the sample at zero-based `position`.

  Skewing the position by `package_size - 1` leaves the first package with a
  single tuple, so the true first tuple survives packing.
  """
  return min((position + package_size - 1) // package_size, max_key)


def package_tuples(
  rows: Iterable[DataTuple],
  package_size: int,
  row_count: int,
  reducer: Reducer = Reducer.SUM,
) -> Iterator[DataTuple]:
  """Pack an ordered stream into contiguous packages of `package_size` samples.

  Positions advance by each row's `count`, so a rollup row takes the place of
  the samples it summarizes. The last package absorbs the remainder, which
  caps the output at `row_count // package_size` tuples.

  Args:
      rows: Ordered tuples (raw, rollup or both)
      package_size: Samples per package, values <= 1 disable packing
      row_count: Total number of samples represented by `rows`
      reducer: Value reducer of the channel
  """
  if package_size <= 1:
    yield from rows
    return

  max_key = max(packaged_row_count(row_count, package_size) - 1, 0)
  position = 0
  acc = None
  current_key = None
  for row in rows:
    key = package_key(position, package_size, max_key)
    position += row.count
    if acc is not None and key != current_key:
      yield acc.result()
      acc = None
    if acc is None:
      acc = _Accumulator(reducer)
      current_key = key
    acc.add(row)
  if acc is not None:
    yield acc.result()
