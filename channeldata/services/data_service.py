"""Data service: plan, count and stream channel data.

`DataService.plan_and_execute` is the single entry point used by the API
layer. Planning is delegated to `QueryPlanner`; `QueryExecutor` turns the
resulting plan into a row count and a lazy tuple stream.
"""

import logging
import time
from datetime import tzinfo
from functools import partial
from itertools import chain
from typing import Callable, Iterable, Iterator, Optional, Tuple, Union

from sqlalchemy.orm import Session

from channeldata.lib.config import AggregationConfig
from channeldata.lib.errors import DataQueryError
from channeldata.lib.metrics import record_data_query, record_data_query_error
from channeldata.models.aggregation_level import UTC, AggregationLevel
from channeldata.models.query import ClientHint, DataTuple, QueryRequest
from channeldata.models.reducer import Reducer
from channeldata.services.downsampler import (
  count_groups,
  group_tuples,
  package_size_for,
  package_tuples,
  packaged_row_count,
)
from channeldata.services.query_planner import QueryPlan, QueryPlanner, Strategy, TierQuery
from channeldata.services.rollup_store import RollupStore
from channeldata.services.sample_store import SampleStore

logger = logging.getLogger(__name__)


class QueryResult:
  """Row count plus a lazy, single-pass stream of result tuples.

  `row_count` is known before any tuple is read. For raw and grouped
  results it is exact. For packed results it is `floor(n / p)` packages of
  the `n` counted samples; a stitched rollup row fills `count` positions at
  once, so some packages may stay empty and fewer tuples can be emitted.
  `emitted` holds the number of tuples actually yielded.

  `range_from`/`range_to` (first and last timestamp read from the stores) and
  `min`/`max` (`(timestamp, value)` of the smallest and largest result
  tuple) are filled in while `tuples` is consumed and are final once it is
  exhausted. They stay `None` for empty results.
  """

  def __init__(
    self,
    row_count: int,
    source: Optional[Iterable[DataTuple]] = None,
    strategy: Optional[Strategy] = None,
    transform: Optional[Callable[[Iterable[DataTuple]], Iterable[DataTuple]]] = None,
  ):
    """Initialize a query result.

    Args:
        row_count: Number of result rows announced to the client
        source: Rows read from the stores, in timestamp order
        strategy: Strategy of the plan that produced the rows
        transform: Grouping or packing applied to the source rows
    """
    self.row_count = row_count
    self.strategy = strategy
    self.emitted = 0
    self.range_from: Optional[int] = None
    self.range_to: Optional[int] = None
    self.min: Optional[Tuple[int, float]] = None
    self.max: Optional[Tuple[int, float]] = None
    rows = self._tap(source if source is not None else ())
    self._rows = transform(rows) if transform is not None else rows
    self._consumed = False

  @classmethod
  def empty(cls, strategy: Optional[Strategy] = None) -> 'QueryResult':
    return cls(0, strategy=strategy)

  @property
  def tuples(self) -> Iterator[DataTuple]:
    if self._consumed:
      raise RuntimeError('Query result tuples can only be iterated once')
    self._consumed = True
    return self._track_extrema(self._rows)

  def __iter__(self) -> Iterator[DataTuple]:
    return self.tuples

  def _tap(self, rows: Iterable[DataTuple]) -> Iterator[DataTuple]:
    # First and last timestamp read from the stores
    for row in rows:
      if self.range_from is None:
        self.range_from = row.timestamp
      self.range_to = row.timestamp
      yield row

  def _track_extrema(self, rows: Iterable[DataTuple]) -> Iterator[DataTuple]:
    for row in rows:
      self.emitted += 1
      if self.min is None or row.value < self.min[1]:
        self.min = (row.timestamp, row.value)
      if self.max is None or row.value > self.max[1]:
        self.max = (row.timestamp, row.value)
      yield row


class QueryExecutor:
  """Runs a `QueryPlan` against the stores."""

  def __init__(self, sample_store: SampleStore, rollup_store: RollupStore, tz: tzinfo = UTC):
    self.sample_store = sample_store
    self.rollup_store = rollup_store
    self.tz = tz

  def execute(self, plan: QueryPlan) -> QueryResult:
    row_count = self.count(plan)
    if row_count <= 0:
      return QueryResult.empty(plan.strategy)

    if plan.group_by is not None:
      return QueryResult(
        row_count,
        self.stream(plan.channel_id, plan.tiers),
        plan.strategy,
        partial(group_tuples, level=plan.group_by, reducer=plan.reducer, tz=self.tz),
      )

    package_size = package_size_for(row_count, plan.tuple_count)
    if package_size <= 1:
      tiers = plan.raw_tiers or plan.tiers
      return QueryResult(row_count, self.stream(plan.channel_id, tiers), plan.strategy)

    logger.debug(f'Packing {row_count} samples into packages of {package_size}')
    return QueryResult(
      packaged_row_count(row_count, package_size),
      self.stream(plan.channel_id, plan.tiers),
      plan.strategy,
      partial(package_tuples, package_size=package_size, row_count=row_count, reducer=plan.reducer),
    )

  def count(self, plan: QueryPlan) -> int:
    """Row count of a plan before any packing.

    Grouped plans count distinct buckets; ungrouped plans count samples,
    where a rollup row stands for `count` samples.
    """
    if plan.group_by is not None:
      timestamps = (
        self.sample_store.scan_timestamps(plan.channel_id, plan.range)
        if plan.strategy is Strategy.RAW
        else (row.timestamp for row in self.stream(plan.channel_id, plan.tiers))
      )
      return count_groups(timestamps, plan.group_by, self.tz)

    total = 0
    for tier in plan.tiers:
      if tier.is_empty:
        continue
      if tier.is_rollup:
        total += self.rollup_store.sum_counts(plan.channel_id, tier.level, tier.range, tier.inclusive_end)
      else:
        total += self.sample_store.count(plan.channel_id, tier.range, tier.inclusive_end)
    return total

  def stream(self, channel_id: int, tiers: Iterable[TierQuery]) -> Iterator[DataTuple]:
    """Concatenate tier reads; tiers are ordered and disjoint, so is the output."""
    return chain.from_iterable(self._read(channel_id, tier) for tier in tiers if not tier.is_empty)

  def _read(self, channel_id: int, tier: TierQuery) -> Iterator[DataTuple]:
    if tier.is_rollup:
      return self.rollup_store.scan(channel_id, tier.level, tier.range, tier.inclusive_end)
    return self.sample_store.scan(channel_id, tier.range, tier.inclusive_end)


class DataService:
  """Service for channel data retrieval.

  Automatically stitches rollup rows into raw samples when that is cheaper
  and yields the same result:
  - grouped queries re-group raw and rollup rows by the requested level
  - ungrouped queries with a tuple target pack raw and rollup rows directly
  """

  def __init__(self, db: Session, config: Optional[AggregationConfig] = None):
    """Initialize data service.

    Args:
        db: SQLAlchemy database session
        config: Aggregation settings (defaults: enabled, 'day', UTC)
    """
    self.config = config or AggregationConfig()
    self.sample_store = SampleStore(db)
    self.rollup_store = RollupStore(db, self.config.timezone)
    self.planner = QueryPlanner(self.sample_store, self.rollup_store, self.config)
    self.executor = QueryExecutor(self.sample_store, self.rollup_store, self.config.timezone)

  def plan_and_execute(
    self,
    channel_id: int,
    start: Optional[int] = None,
    end: Optional[int] = None,
    group_by: Union[str, AggregationLevel, None] = None,
    tuple_count: Optional[int] = None,
    client: Union[str, ClientHint] = ClientHint.NORMAL,
    reducer: Reducer = Reducer.SUM,
  ) -> QueryResult:
    """Plan and run a data query.

    Args:
        channel_id: Channel to read
        start: Range start in ms (None: open)
        end: Range end in ms (None: open)
        group_by: Calendar level to group by ('hour', 'day', ...)
        tuple_count: Approximate number of tuples wanted
        client: Client hint ('normal', 'raw', 'slow')
        reducer: Value reducer of the channel type

    Returns:
        QueryResult with row count and lazy tuples

    Raises:
        InvalidRangeError, UnknownGroupingError, UnsupportedLevelError,
        InvalidTupleCountError: request rejected before any store access
        StoreError: a store read failed
    """
    started = time.time()
    try:
      request = QueryRequest.build(channel_id, start, end, group_by, tuple_count, client)
      plan = self.planner.plan(request, reducer)
      result = self.executor.execute(plan)
    except DataQueryError as e:
      record_data_query_error(type(e).__name__)
      raise

    record_data_query(plan.strategy.value, time.time() - started)
    logger.info(
      f'Data query channel={channel_id} strategy={plan.strategy.value} '
      f'group={request.group_by.label if request.group_by else None} '
      f'tuples={tuple_count} rows={result.row_count}'
    )
    return result
