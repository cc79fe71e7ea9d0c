"""Value objects flowing through the query planner and executor."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from channeldata.lib.errors import InvalidRangeError, InvalidTupleCountError
from channeldata.models.aggregation_level import AggregationLevel


class ClientHint(str, Enum):
  """Client type, used for client specific optimizations."""

  NORMAL = 'normal'
  RAW = 'raw'  # exact range, no widening
  FORCE_SLOW = 'slow'  # never use rollups


@dataclass(frozen=True)
class DataTuple:
  """Uniform result row for raw samples, rollup rows and reduced rows.

  Attributes:
      timestamp: Milliseconds since epoch (max timestamp for reduced rows)
      value: Sample value or reduced value
      count: Number of raw samples represented by this tuple
  """

  timestamp: int
  value: float
  count: int = 1


@dataclass(frozen=True)
class QueryRange:
  """Time range in ms. `None` leaves the corresponding side open."""

  start: Optional[int] = None
  end: Optional[int] = None

  def validate(self) -> 'QueryRange':
    if self.start is not None and self.end is not None and self.start > self.end:
      raise InvalidRangeError(self.start, self.end)
    return self


@dataclass(frozen=True)
class AggregationBoundary:
  """Sub-range `[rollup_from, rollup_to)` fully covered by rollup rows."""

  rollup_from: Optional[int] = None
  rollup_to: Optional[int] = None

  @property
  def is_valid(self) -> bool:
    return self.rollup_from is not None and self.rollup_to is not None


INVALID_BOUNDARY = AggregationBoundary()


@dataclass(frozen=True)
class QueryRequest:
  """Validated request shape handed to the planner."""

  channel_id: int
  range: QueryRange
  group_by: Optional[AggregationLevel] = None
  tuple_count: Optional[int] = None
  client: ClientHint = ClientHint.NORMAL

  @classmethod
  def build(
    cls,
    channel_id: int,
    start: Optional[int] = None,
    end: Optional[int] = None,
    group_by: Union[str, AggregationLevel, None] = None,
    tuple_count: Optional[int] = None,
    client: Union[str, ClientHint] = ClientHint.NORMAL,
  ) -> 'QueryRequest':
    """Validate raw request parameters.

    Raises:
        InvalidRangeError: start > end
        UnknownGroupingError: group_by is not a level name
        UnsupportedLevelError: group_by cannot be bucketed (week)
        InvalidTupleCountError: tuple_count < 1
    """
    query_range = QueryRange(start, end).validate()

    level = None
    if isinstance(group_by, AggregationLevel):
      level = AggregationLevel.parse(group_by.label)
    elif group_by:
      level = AggregationLevel.parse(group_by)

    if tuple_count is not None and tuple_count < 1:
      raise InvalidTupleCountError(tuple_count)

    return cls(
      channel_id=channel_id,
      range=query_range,
      group_by=level,
      tuple_count=tuple_count,
      client=ClientHint(client),
    )
