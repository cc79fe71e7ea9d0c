"""Unit tests for calendar aggregation levels and bucket arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from channeldata.lib.errors import UnknownGroupingError, UnsupportedLevelError
from channeldata.models.aggregation_level import AggregationLevel


def ms(*args, tz=timezone.utc) -> int:
  return int(datetime(*args, tzinfo=tz).timestamp()) * 1000


class TestParse:
  """Test suite for level name resolution."""

  @pytest.mark.parametrize(
    'name,level',
    [
      ('second', AggregationLevel.SECOND),
      ('minute', AggregationLevel.MINUTE),
      ('hour', AggregationLevel.HOUR),
      ('day', AggregationLevel.DAY),
      ('MONTH', AggregationLevel.MONTH),
      (' year ', AggregationLevel.YEAR),
    ],
  )
  def test_known_levels(self, name, level):
    assert AggregationLevel.parse(name) is level

  def test_unknown_name_raises_unknown_grouping(self):
    with pytest.raises(UnknownGroupingError) as exc_info:
      AggregationLevel.parse('fortnight')
    assert 'fortnight' in str(exc_info.value)

  def test_week_is_known_but_unsupported(self):
    with pytest.raises(UnsupportedLevelError):
      AggregationLevel.parse('week')

  def test_unsupported_is_an_unknown_grouping(self):
    """Callers catching UnknownGroupingError also see unsupported levels."""
    with pytest.raises(UnknownGroupingError):
      AggregationLevel.parse('week')

  def test_ranks_are_ordered_fine_to_coarse(self):
    ranks = [level.rank for level in AggregationLevel]
    assert ranks == sorted(ranks)
    assert AggregationLevel.from_rank(3) is AggregationLevel.DAY
    assert AggregationLevel.WEEK not in AggregationLevel.supported()


class TestBucketStart:
  """Test suite for truncation of timestamps to bucket starts."""

  def test_truncation_per_level(self):
    ts = ms(2026, 3, 15, 13, 45, 30) + 250

    assert AggregationLevel.SECOND.bucket_start(ts) == ms(2026, 3, 15, 13, 45, 30)
    assert AggregationLevel.MINUTE.bucket_start(ts) == ms(2026, 3, 15, 13, 45)
    assert AggregationLevel.HOUR.bucket_start(ts) == ms(2026, 3, 15, 13)
    assert AggregationLevel.DAY.bucket_start(ts) == ms(2026, 3, 15)
    assert AggregationLevel.MONTH.bucket_start(ts) == ms(2026, 3, 1)
    assert AggregationLevel.YEAR.bucket_start(ts) == ms(2026, 1, 1)

  def test_bucket_start_is_its_own_bucket(self):
    start = ms(2026, 3, 15)
    assert AggregationLevel.DAY.bucket_start(start) == start

  def test_day_truncation_uses_configured_time_zone(self):
    plus_two = timezone(timedelta(hours=2))
    # 23:30 UTC on the 14th is already the 15th at UTC+2
    ts = ms(2026, 3, 14, 23, 30)

    assert AggregationLevel.DAY.bucket_start(ts) == ms(2026, 3, 14)
    assert AggregationLevel.DAY.bucket_start(ts, plus_two) == ms(2026, 3, 15, tz=plus_two)

  def test_week_has_no_bucket(self):
    with pytest.raises(UnsupportedLevelError):
      AggregationLevel.WEEK.bucket_start(ms(2026, 3, 15))


class TestShift:
  """Test suite for moving bucket starts."""

  def test_fixed_width_levels(self):
    start = ms(2026, 3, 15, 10)
    assert AggregationLevel.HOUR.shift(start, 3) == ms(2026, 3, 15, 13)
    assert AggregationLevel.MINUTE.shift(start, -1) == ms(2026, 3, 15, 9, 59)

  def test_month_wraps_years(self):
    assert AggregationLevel.MONTH.shift(ms(2026, 11, 1), 3) == ms(2027, 2, 1)
    assert AggregationLevel.MONTH.shift(ms(2026, 1, 1), -1) == ms(2025, 12, 1)

  def test_day_and_year(self):
    assert AggregationLevel.DAY.shift(ms(2026, 2, 28), 1) == ms(2026, 3, 1)
    assert AggregationLevel.YEAR.shift(ms(2026, 1, 1), -2) == ms(2024, 1, 1)

  def test_next_bucket_start(self):
    ts = ms(2026, 3, 15, 18)
    assert AggregationLevel.DAY.next_bucket_start(ts) == ms(2026, 3, 16)

  def test_align_up(self):
    assert AggregationLevel.DAY.align_up(ms(2026, 3, 15)) == ms(2026, 3, 15)
    assert AggregationLevel.DAY.align_up(ms(2026, 3, 15) + 1) == ms(2026, 3, 16)
