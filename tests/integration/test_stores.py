"""Integration tests for the sample and rollup store accessors."""

import pytest

from channeldata.lib.errors import StoreError
from channeldata.models.aggregation_level import AggregationLevel
from channeldata.models.query import DataTuple, QueryRange
from channeldata.models.rollup_row import RollupRow
from channeldata.models.sample import Sample
from channeldata.services.rollup_store import RollupStore
from channeldata.services.sample_store import SampleStore
from tests.factories import DAY, HOUR, TODAY, add_rollups, add_samples

pytestmark = pytest.mark.integration


class TestSampleStore:
  """Test suite for SampleStore."""

  @pytest.fixture
  def store(self, db_session, baseline_channel):
    return SampleStore(db_session)

  def test_count_inclusive_and_exclusive_end(self, store):
    query_range = QueryRange(TODAY - 2 * DAY, TODAY)

    assert store.count(1, query_range) == 5
    assert store.count(1, query_range, inclusive_end=False) == 4
    assert store.count(1, QueryRange()) == 6
    assert store.count(2, QueryRange()) == 0

  def test_scan_is_ordered_and_lazy(self, db_session, store):
    add_samples(db_session, [(TODAY - 2 * DAY + HOUR, 1.0)])

    rows = store.scan(1, QueryRange(TODAY - 2 * DAY, TODAY - 2 * DAY + 12 * HOUR))
    assert not isinstance(rows, list)

    assert list(rows) == [
      DataTuple(TODAY - 2 * DAY, 100.0),
      DataTuple(TODAY - 2 * DAY + HOUR, 1.0),
      DataTuple(TODAY - 2 * DAY + 12 * HOUR, 100.0),
    ]

  def test_abandoned_scan_can_be_closed(self, store):
    rows = store.scan(1, QueryRange())
    assert next(rows).timestamp == TODAY - 3 * DAY
    rows.close()

    assert store.count(1, QueryRange()) == 6

  def test_scan_timestamps(self, store):
    assert list(store.scan_timestamps(1, QueryRange(TODAY - DAY, None))) == [
      TODAY - DAY,
      TODAY - DAY + 12 * HOUR,
      TODAY,
    ]

  def test_nearest_samples_are_strict(self, store):
    assert store.nearest_before(1, TODAY).timestamp == TODAY - DAY + 12 * HOUR
    assert store.nearest_after(1, TODAY - DAY).timestamp == TODAY - DAY + 12 * HOUR
    assert store.nearest_before(1, TODAY - 3 * DAY) is None
    assert store.nearest_after(1, TODAY) is None

  def test_database_errors_are_wrapped(self, db_engine, db_session, store):
    Sample.__table__.drop(db_engine)

    with pytest.raises(StoreError) as exc_info:
      store.count(1, QueryRange())
    assert exc_info.value.operation == 'sample count'

    with pytest.raises(StoreError):
      list(store.scan(1, QueryRange()))


class TestRollupStore:
  """Test suite for RollupStore and the boundary resolver."""

  @pytest.fixture
  def store(self, db_session):
    add_rollups(
      db_session,
      [
        (TODAY - 3 * DAY + 18 * HOUR, 10.0, 4),
        (TODAY - 2 * DAY + 18 * HOUR, 20.0, 4),
        (TODAY - DAY + 18 * HOUR, 30.0, 4),
      ],
    )
    add_rollups(db_session, [(TODAY - 10 * HOUR, 5.0, 2)], level=AggregationLevel.HOUR)
    return RollupStore(db_session)

  def test_row_counts_coarsest_first(self, store):
    assert store.row_counts_by_level(1) == [(AggregationLevel.DAY, 3), (AggregationLevel.HOUR, 1)]
    assert store.row_counts_by_level(1, max_level=AggregationLevel.HOUR) == [
      (AggregationLevel.HOUR, 1)
    ]
    assert store.row_counts_by_level(2) == []

  def test_unsupported_levels_are_ignored(self, db_session, store):
    db_session.add(RollupRow(channel_id=1, level=AggregationLevel.WEEK.rank, timestamp=TODAY, value=1.0, count=1))
    db_session.commit()

    levels = [level for level, _ in store.row_counts_by_level(1)]
    assert AggregationLevel.WEEK not in levels

  def test_open_range_boundary(self, store):
    boundary = store.boundary_query(1, AggregationLevel.DAY, None)

    assert boundary.rollup_from == TODAY - 3 * DAY
    assert boundary.rollup_to == TODAY

  def test_partial_first_bucket_is_skipped(self, store):
    boundary = store.boundary_query(1, AggregationLevel.DAY, TODAY - 3 * DAY + HOUR)
    assert boundary.rollup_from == TODAY - 2 * DAY

  def test_end_clips_rollup_to(self, store):
    boundary = store.boundary_query(1, AggregationLevel.DAY, TODAY - 3 * DAY, TODAY - DAY + 6 * HOUR)

    assert boundary.rollup_from == TODAY - 3 * DAY
    assert boundary.rollup_to == TODAY - DAY

  def test_end_inside_last_bucket_after_its_row(self, store):
    end = TODAY - DAY + 20 * HOUR
    boundary = store.boundary_query(1, AggregationLevel.DAY, None, end)
    assert boundary.rollup_to == end

  def test_no_rows_in_range_is_invalid(self, store):
    assert not store.boundary_query(1, AggregationLevel.DAY, TODAY).is_valid
    assert not store.boundary_query(1, AggregationLevel.DAY, None, TODAY - 3 * DAY + 12 * HOUR).is_valid
    assert not store.boundary_query(1, AggregationLevel.MONTH, None).is_valid
    assert not store.boundary_query(2, AggregationLevel.DAY, None).is_valid

  def test_shift_moves_from_by_one_bucket(self, store):
    boundary = store.boundary_query(1, AggregationLevel.DAY, None, shift_buckets=1)
    assert boundary.rollup_from == TODAY - 2 * DAY

  def test_shift_past_last_bucket_is_clamped(self, store):
    boundary = store.boundary_query(1, AggregationLevel.DAY, TODAY - DAY, shift_buckets=1)

    assert boundary.rollup_from == boundary.rollup_to == TODAY

  def test_scan_and_sum_counts(self, store):
    query_range = QueryRange(TODAY - 3 * DAY, TODAY - DAY)

    assert list(store.scan(1, AggregationLevel.DAY, query_range)) == [
      DataTuple(TODAY - 3 * DAY + 18 * HOUR, 10.0, 4),
      DataTuple(TODAY - 2 * DAY + 18 * HOUR, 20.0, 4),
    ]
    assert store.sum_counts(1, AggregationLevel.DAY, query_range) == 8
    assert store.sum_counts(1, AggregationLevel.DAY, QueryRange(TODAY, None)) == 0
