"""Query planning: choose a strategy and describe the tiers to read.

Planning produces an immutable `QueryPlan`; nothing here reads sample or
rollup rows beyond the lookups needed to decide (nearest samples, rollup
level counts, rollup boundary). `QueryExecutor` runs the plan.

Strategies:
    raw             every row from the sample store (no usable rollups)
    rollup_grouped  raw-pre + rollup-middle + raw-post, re-grouped by level
    rollup_count    same tiers, counted by SUM(count) and packed directly
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from channeldata.lib.config import AggregationConfig
from channeldata.models.aggregation_level import AggregationLevel
from channeldata.models.query import (
  INVALID_BOUNDARY,
  AggregationBoundary,
  ClientHint,
  QueryRange,
  QueryRequest,
)
from channeldata.models.reducer import Reducer
from channeldata.services.rollup_store import RollupStore
from channeldata.services.sample_store import SampleStore

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
  RAW = 'raw'
  ROLLUP_GROUPED = 'rollup_grouped'
  ROLLUP_COUNT = 'rollup_count'


class Tier(str, Enum):
  RAW = 'raw'
  RAW_PRE = 'raw_pre'
  ROLLUP = 'rollup'
  RAW_POST = 'raw_post'


@dataclass(frozen=True)
class TierQuery:
  """One store read of a plan.

  Attributes:
      tier: Which tier (and therefore which store) is read
      range: Time range of the read
      inclusive_end: Compare the range end with `<=` instead of `<`
      level: Rollup level, set for the rollup tier only
  """

  tier: Tier
  range: QueryRange
  inclusive_end: bool = True
  level: Optional[AggregationLevel] = None

  @property
  def is_rollup(self) -> bool:
    return self.tier is Tier.ROLLUP

  @property
  def is_empty(self) -> bool:
    start, end = self.range.start, self.range.end
    if start is None or end is None:
      return False
    return start > end or (start == end and not self.inclusive_end)


@dataclass(frozen=True)
class QueryPlan:
  """Everything the executor needs to count and stream one request.

  `tiers` are ordered by timestamp and do not overlap. For the
  `rollup_count` strategy `raw_tiers` holds the full-resolution fallback
  used when no packing is needed.
  """

  channel_id: int
  strategy: Strategy
  range: QueryRange
  tiers: Tuple[TierQuery, ...]
  group_by: Optional[AggregationLevel] = None
  tuple_count: Optional[int] = None
  reducer: Reducer = Reducer.SUM
  level: Optional[AggregationLevel] = None
  boundary: AggregationBoundary = INVALID_BOUNDARY
  raw_tiers: Tuple[TierQuery, ...] = ()


def raw_tiers(query_range: QueryRange) -> Tuple[TierQuery, ...]:
  return (TierQuery(Tier.RAW, query_range, inclusive_end=True),)


def stitched_tiers(
  query_range: QueryRange, boundary: AggregationBoundary, level: AggregationLevel
) -> Tuple[TierQuery, ...]:
  """Split a range at a valid rollup boundary.

      raw-pre        [start, rollup_from)
      rollup-middle  [rollup_from, rollup_to)
      raw-post       [rollup_to, end]
  """
  return (
    TierQuery(Tier.RAW_PRE, QueryRange(query_range.start, boundary.rollup_from), inclusive_end=False),
    TierQuery(
      Tier.ROLLUP,
      QueryRange(boundary.rollup_from, boundary.rollup_to),
      inclusive_end=False,
      level=level,
    ),
    TierQuery(Tier.RAW_POST, QueryRange(boundary.rollup_to, query_range.end), inclusive_end=True),
  )


def build_raw_plan(
  request: QueryRequest, query_range: QueryRange, reducer: Reducer = Reducer.SUM
) -> QueryPlan:
  return QueryPlan(
    channel_id=request.channel_id,
    strategy=Strategy.RAW,
    range=query_range,
    tiers=raw_tiers(query_range),
    group_by=request.group_by,
    tuple_count=request.tuple_count,
    reducer=reducer,
  )


def build_grouped_plan(
  request: QueryRequest,
  query_range: QueryRange,
  level: AggregationLevel,
  boundary: AggregationBoundary,
  reducer: Reducer = Reducer.SUM,
) -> QueryPlan:
  if request.group_by is None or level.rank > request.group_by.rank:
    raise ValueError(f'Rollup level {level.label} cannot be grouped by {request.group_by}')
  return QueryPlan(
    channel_id=request.channel_id,
    strategy=Strategy.ROLLUP_GROUPED,
    range=query_range,
    tiers=stitched_tiers(query_range, boundary, level),
    group_by=request.group_by,
    tuple_count=request.tuple_count,
    reducer=reducer,
    level=level,
    boundary=boundary,
  )


def build_count_plan(
  request: QueryRequest,
  query_range: QueryRange,
  level: AggregationLevel,
  boundary: AggregationBoundary,
  reducer: Reducer = Reducer.SUM,
) -> QueryPlan:
  return QueryPlan(
    channel_id=request.channel_id,
    strategy=Strategy.ROLLUP_COUNT,
    range=query_range,
    tiers=stitched_tiers(query_range, boundary, level),
    tuple_count=request.tuple_count,
    reducer=reducer,
    level=level,
    boundary=boundary,
    raw_tiers=raw_tiers(query_range),
  )


class QueryPlanner:
  """Decides how a request is served from the sample and rollup stores."""

  def __init__(self, sample_store: SampleStore, rollup_store: RollupStore, config: AggregationConfig):
    self.sample_store = sample_store
    self.rollup_store = rollup_store
    self.config = config

  def plan(self, request: QueryRequest, reducer: Reducer = Reducer.SUM) -> QueryPlan:
    query_range = self.widen_range(request)

    if not self.config.is_aggregation_enabled() or request.client is ClientHint.FORCE_SLOW:
      return self._log(build_raw_plan(request, query_range, reducer))

    # Without grouping or a target there is nothing for rollups to reduce
    if request.group_by is None and request.tuple_count is None:
      return self._log(build_raw_plan(request, query_range, reducer))

    level = self.choose_level(request.channel_id, request.group_by)
    if level is None:
      return self._log(build_raw_plan(request, query_range, reducer))

    # A single tuple keeps the first bucket raw so the true first sample is read
    shift_buckets = 1 if request.group_by is None and request.tuple_count == 1 else 0
    boundary = self.rollup_store.boundary_query(
      request.channel_id, level, query_range.start, query_range.end, shift_buckets=shift_buckets
    )
    if not boundary.is_valid:
      return self._log(build_raw_plan(request, query_range, reducer))

    if request.group_by is not None:
      return self._log(build_grouped_plan(request, query_range, level, boundary, reducer))
    return self._log(build_count_plan(request, query_range, level, boundary, reducer))

  def widen_range(self, request: QueryRequest) -> QueryRange:
    """Extend the range by one sample on each side for graphical clients.

    Raw clients get exactly the range they asked for.
    """
    start, end = request.range.start, request.range.end
    if request.client is ClientHint.RAW:
      return request.range

    if start is not None:
      before = self.sample_store.nearest_before(request.channel_id, start)
      if before is not None:
        start = before.timestamp
    if end is not None:
      after = self.sample_store.nearest_after(request.channel_id, end)
      if after is not None:
        end = after.timestamp
    return QueryRange(start, end)

  def choose_level(
    self, channel_id: int, group_by: Optional[AggregationLevel]
  ) -> Optional[AggregationLevel]:
    """Coarsest rollup level with rows that can serve `group_by`.

    Falls back to the configured default level, unless that level is
    coarser than the requested grouping.
    """
    for level, count in self.rollup_store.row_counts_by_level(channel_id, max_level=group_by):
      if count > 0:
        return level

    default = self.config.default_level
    if group_by is None or default.rank <= group_by.rank:
      return default
    return None

  def _log(self, plan: QueryPlan) -> QueryPlan:
    logger.debug(
      f'Planned {plan.strategy.value} query for channel {plan.channel_id} '
      f'(level={plan.level.label if plan.level else None}, '
      f'rollup_from={plan.boundary.rollup_from}, rollup_to={plan.boundary.rollup_to})'
    )
    return plan
