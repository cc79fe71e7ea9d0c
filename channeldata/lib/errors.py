"""Error types raised by the data query core.

Validation errors are raised before any store access. Store failures are
wrapped once, at the store boundary, and propagate unchanged to callers.
"""

from typing import Optional


class DataQueryError(Exception):
  """Base class for all errors raised while planning or running a query."""

  def __init__(self, message: str):
    super().__init__(message)
    self.message = message


class InvalidRangeError(DataQueryError):
  """Raised when `from` is larger than `to`."""

  def __init__(self, start: int, end: int):
    super().__init__(f'from ({start}) is larger than to ({end})')
    self.start = start
    self.end = end


class UnknownGroupingError(DataQueryError):
  """Raised when a grouping name is not a known aggregation level."""

  def __init__(self, group: str, message: Optional[str] = None):
    super().__init__(message or f"Unknown group '{group}'")
    self.group = group


class UnsupportedLevelError(UnknownGroupingError):
  """Raised for levels that are known by name but have no bucket format."""

  def __init__(self, group: str):
    super().__init__(group, f"Unsupported aggregation level '{group}'")


class InvalidTupleCountError(DataQueryError):
  """Raised when the requested tuple count is not a positive integer."""

  def __init__(self, tuple_count: int):
    super().__init__(f'Tuple count must be at least 1 (received: {tuple_count})')
    self.tuple_count = tuple_count


class StoreError(DataQueryError):
  """Raised when the sample or rollup store fails (I/O, timeout, SQL error)."""

  def __init__(self, operation: str, original: Exception):
    super().__init__(f'{operation} failed: {original}')
    self.operation = operation
    self.original = original


class AggregationError(DataQueryError):
  """Raised by the rollup maintenance job for invalid modes or levels."""

  pass
