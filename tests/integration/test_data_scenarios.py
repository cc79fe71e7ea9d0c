"""Integration tests for data queries over raw samples and rollups.

Uses the six-sample baseline channel: one sample three days ago, two samples
on each of the two previous days and one at midnight today.
"""

import pytest

from channeldata.lib.config import AggregationConfig
from channeldata.lib.errors import InvalidRangeError, UnknownGroupingError
from channeldata.models.aggregation_level import AggregationLevel
from channeldata.models.query import DataTuple
from channeldata.services.data_service import DataService
from channeldata.services.query_planner import Strategy
from channeldata.services.rollup_aggregator import RollupAggregator
from tests.factories import DAY, HOUR, NOW, TODAY, add_samples

pytestmark = pytest.mark.integration

BASELINE_BY_DAY = [
  DataTuple(TODAY - 3 * DAY, 50.0, 1),
  DataTuple(TODAY - 2 * DAY + 12 * HOUR, 200.0, 2),
  DataTuple(TODAY - DAY + 12 * HOUR, 200.0, 2),
  DataTuple(TODAY, 50.0, 1),
]


@pytest.fixture
def service(db_session):
  return DataService(db_session, AggregationConfig())


@pytest.fixture
def rolled_up_channel(db_session, baseline_channel):
  """Baseline channel after a two-period delta aggregation at day level."""
  RollupAggregator(db_session).aggregate('delta', AggregationLevel.DAY, periods=2, now_ms=NOW)
  return baseline_channel


class TestBaselineWithoutRollups:
  """Raw-only queries against the baseline channel."""

  def test_ungrouped_request_returns_every_sample(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel, start=TODAY - 3 * DAY)

    tuples = list(result.tuples)
    assert result.row_count == 6
    assert result.strategy is Strategy.RAW
    assert len(tuples) == 6

  def test_grouped_by_day_returns_four_days(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel, start=TODAY - 3 * DAY, group_by='day')

    tuples = list(result.tuples)
    assert result.row_count == 4
    assert tuples == BASELINE_BY_DAY
    assert tuples[-1].count == 1

  def test_range_and_extrema_are_filled_while_iterating(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel, start=TODAY - 3 * DAY, group_by='day')

    assert result.range_from is None
    list(result.tuples)

    assert result.range_from == TODAY - 3 * DAY
    assert result.range_to == TODAY
    assert result.min == (TODAY - 3 * DAY, 50.0)
    assert result.max == (TODAY - 2 * DAY + 12 * HOUR, 200.0)

  def test_tuples_can_only_be_iterated_once(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel)
    list(result.tuples)

    with pytest.raises(RuntimeError):
      list(result.tuples)


class TestRollupRetrieval:
  """Grouped queries that stitch raw samples and day rollups."""

  def test_stitched_result_matches_baseline(self, service, rolled_up_channel):
    result = service.plan_and_execute(
      rolled_up_channel, start=TODAY - 3 * DAY, end=TODAY + 18 * HOUR, group_by='day'
    )

    assert result.strategy is Strategy.ROLLUP_GROUPED
    assert result.row_count == 4
    assert list(result.tuples) == BASELINE_BY_DAY

  @pytest.mark.parametrize(
    'start,rows',
    [
      (TODAY, 1),
      (TODAY - DAY, 2),
      (TODAY - 2 * DAY, 3),
      (TODAY - 3 * DAY, 4),
    ],
  )
  def test_retrieval_from(self, service, rolled_up_channel, start, rows):
    result = service.plan_and_execute(rolled_up_channel, start=start, group_by='day', client='raw')

    assert result.row_count == rows
    assert len(list(result.tuples)) == rows

  @pytest.mark.parametrize(
    'end,rows',
    [
      (TODAY + 18 * HOUR, 4),
      (TODAY - DAY + 6 * HOUR, 3),
      (TODAY - 2 * DAY + 6 * HOUR, 2),
      (TODAY - 3 * DAY + 18 * HOUR, 1),
    ],
  )
  def test_retrieval_to(self, service, rolled_up_channel, end, rows):
    result = service.plan_and_execute(
      rolled_up_channel, start=TODAY - 3 * DAY, end=end, group_by='day', client='raw'
    )

    assert result.row_count == rows
    assert len(list(result.tuples)) == rows

  def test_partial_bucket_at_range_end_is_read_raw(self, service, rolled_up_channel):
    result = service.plan_and_execute(
      rolled_up_channel, start=TODAY - 3 * DAY, end=TODAY - DAY + 6 * HOUR, group_by='day', client='raw'
    )

    assert list(result.tuples)[-1] == DataTuple(TODAY - DAY, 100.0, 1)

  def test_grouping_coarser_than_rollups(self, service, rolled_up_channel):
    result = service.plan_and_execute(rolled_up_channel, group_by='month')

    assert result.strategy is Strategy.ROLLUP_GROUPED
    assert list(result.tuples) == [DataTuple(TODAY, 500.0, 6)]

  def test_grouping_finer_than_rollups_reads_raw(self, service, rolled_up_channel):
    result = service.plan_and_execute(rolled_up_channel, group_by='hour')

    assert result.strategy is Strategy.RAW
    assert result.row_count == 6

  def test_slow_client_matches_rollup_result(self, service, rolled_up_channel):
    fast = service.plan_and_execute(rolled_up_channel, group_by='day')
    slow = service.plan_and_execute(rolled_up_channel, group_by='day', client='slow')

    assert slow.strategy is Strategy.RAW
    assert list(fast.tuples) == list(slow.tuples)

  def test_disabled_aggregation_ignores_rollups(self, db_session, rolled_up_channel):
    service = DataService(db_session, AggregationConfig(aggregation_enabled=False))
    result = service.plan_and_execute(rolled_up_channel, group_by='day')

    assert result.strategy is Strategy.RAW
    assert list(result.tuples) == BASELINE_BY_DAY


class TestTupleTarget:
  """Ungrouped queries with a target tuple count."""

  def test_single_tuple_covers_whole_range(self, service, rolled_up_channel):
    result = service.plan_and_execute(
      rolled_up_channel, start=TODAY - 3 * DAY, end=TODAY + 18 * HOUR, tuple_count=1, client='raw'
    )

    tuples = list(result.tuples)
    assert result.strategy is Strategy.ROLLUP_COUNT
    assert result.row_count == 1
    assert tuples == [DataTuple(TODAY, 500.0, 6)]

  def test_single_tuple_matches_raw_scan(self, db_session, rolled_up_channel):
    fast = DataService(db_session).plan_and_execute(rolled_up_channel, tuple_count=1)
    slow = DataService(db_session).plan_and_execute(rolled_up_channel, tuple_count=1, client='slow')

    assert list(fast.tuples) == list(slow.tuples)

  def test_target_above_row_count_returns_full_resolution(self, service, rolled_up_channel):
    result = service.plan_and_execute(rolled_up_channel, tuple_count=100)

    tuples = list(result.tuples)
    assert result.row_count == 6
    assert all(t.count == 1 for t in tuples)
    assert len(tuples) == 6

  def test_packing_over_stitched_tiers_conserves_samples(self, service, rolled_up_channel):
    result = service.plan_and_execute(rolled_up_channel, tuple_count=3, client='raw')

    tuples = list(result.tuples)
    assert result.row_count == 3
    assert len(tuples) == 3
    assert sum(t.count for t in tuples) == 6
    assert sum(t.value for t in tuples) == 500.0
    assert tuples[0] == DataTuple(TODAY - 3 * DAY, 50.0, 1)
    assert tuples[-1].timestamp == TODAY


class TestEdgeCases:
  """Degenerate and rejected requests."""

  def test_empty_channel(self, service):
    result = service.plan_and_execute(42, group_by='day', tuple_count=10)

    assert result.row_count == 0
    assert list(result.tuples) == []
    assert result.min is None and result.max is None
    assert result.range_from is None

  def test_range_without_samples(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel, start=TODAY + DAY, end=TODAY + 2 * DAY, client='raw')
    assert result.row_count == 0

  def test_widening_adds_one_sample_each_side(self, service, baseline_channel):
    result = service.plan_and_execute(baseline_channel, start=TODAY - DAY + HOUR, end=TODAY - DAY + 13 * HOUR)

    tuples = list(result.tuples)
    assert [t.timestamp for t in tuples] == [
      TODAY - DAY,
      TODAY - DAY + 12 * HOUR,
      TODAY,
    ]

  def test_raw_client_gets_exact_range(self, service, baseline_channel):
    result = service.plan_and_execute(
      baseline_channel, start=TODAY - DAY + HOUR, end=TODAY - DAY + 13 * HOUR, client='raw'
    )
    assert result.row_count == 1

  def test_invalid_range_is_rejected(self, service):
    with pytest.raises(InvalidRangeError):
      service.plan_and_execute(1, start=TODAY, end=TODAY - 1)

  def test_unknown_group_is_rejected(self, service):
    with pytest.raises(UnknownGroupingError):
      service.plan_and_execute(1, group_by='fortnight')

  def test_channels_are_isolated(self, db_session, service, baseline_channel):
    add_samples(db_session, [(TODAY, 1.0)], channel_id=2)

    assert service.plan_and_execute(2).row_count == 1
    assert service.plan_and_execute(baseline_channel).row_count == 6
