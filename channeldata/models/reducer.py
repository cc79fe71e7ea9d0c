"""Value reducers selected per channel type.

Every reducer is associative and order independent, so rollup rows produced
with a reducer can be re-reduced together with raw samples at any coarser
level. Counts are always summed regardless of the reducer.
"""

from enum import Enum
from typing import Iterable


class Reducer(str, Enum):
  """How the values of several samples collapse into one value."""

  SUM = 'sum'  # meters: consumption adds up
  MAX = 'max'  # max-hold sensors
  MIN = 'min'

  def reduce(self, values: Iterable[float]) -> float:
    values = list(values)
    if not values:
      raise ValueError('Cannot reduce an empty sequence of values')
    if self is Reducer.MAX:
      return max(values)
    if self is Reducer.MIN:
      return min(values)
    return float(sum(values))

  def combine(self, left: float, right: float) -> float:
    """Reduce two already-reduced values."""
    return self.reduce((left, right))
