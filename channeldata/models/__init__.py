"""Models package for database entities and query value objects."""

from channeldata.models.aggregation_level import AggregationLevel
from channeldata.models.query import (
  AggregationBoundary,
  ClientHint,
  DataTuple,
  QueryRange,
  QueryRequest,
)
from channeldata.models.reducer import Reducer
from channeldata.models.rollup_row import RollupRow
from channeldata.models.sample import Sample

__all__ = [
  'AggregationBoundary',
  'AggregationLevel',
  'ClientHint',
  'DataTuple',
  'QueryRange',
  'QueryRequest',
  'Reducer',
  'RollupRow',
  'Sample',
]
