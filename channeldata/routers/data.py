"""Channel data API endpoints.

Thin HTTP view over `DataService.plan_and_execute`. Domain errors are mapped
to HTTP status codes by the exception handlers in `channeldata.app`.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from channeldata.lib.config import AggregationConfig, load_settings
from channeldata.lib.database import get_db_session
from channeldata.lib.errors import DataQueryError
from channeldata.models.query import ClientHint
from channeldata.services.data_service import DataService

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api/v1/data', tags=['Data'])


class DataPoint(BaseModel):
  """Single output tuple."""

  timestamp: int = Field(..., description='Timestamp in ms (max timestamp of reduced tuples)')
  value: float = Field(..., description='Sample value or reduced value')
  count: int = Field(..., description='Number of raw samples represented')


class DataResponse(BaseModel):
  """Response for the channel data endpoint."""

  channel_id: int
  rows: int = Field(..., description='Row count reported by the query')
  strategy: Optional[str] = Field(None, description='Query strategy (raw, rollup_grouped, rollup_count)')
  range_from: Optional[int] = Field(None, alias='from', description='First timestamp read')
  range_to: Optional[int] = Field(None, alias='to', description='Last timestamp read')
  min: Optional[List[float]] = Field(None, description='[timestamp, value] of the smallest tuple')
  max: Optional[List[float]] = Field(None, description='[timestamp, value] of the largest tuple')
  tuples: List[DataPoint] = Field(default_factory=list)

  model_config = {'populate_by_name': True}


def parse_timestamp(raw: Optional[str], name: str) -> Optional[int]:
  """Parse a timestamp given as ms since epoch or ISO 8601.

  Naive ISO timestamps are read as UTC.

  Raises:
      DataQueryError: Value is neither an integer nor ISO 8601
  """
  if raw is None or raw.strip() == '':
    return None
  raw = raw.strip()
  if raw.lstrip('-').isdigit():
    return int(raw)
  try:
    parsed = datetime.fromisoformat(raw.replace('Z', '+00:00'))
  except ValueError as e:
    raise DataQueryError(f"Invalid '{name}' timestamp: {raw}") from e
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=timezone.utc)
  return int(parsed.timestamp() * 1000)


def get_aggregation_config() -> AggregationConfig:
  """Aggregation settings dependency (overridable in tests)."""
  return load_settings().aggregation


@router.get('/{channel_id}', response_model=DataResponse, response_model_by_alias=True)
async def get_channel_data(
  channel_id: int,
  start: Optional[str] = Query(None, alias='from', description='Range start (ms or ISO 8601)'),
  end: Optional[str] = Query(None, alias='to', description='Range end (ms or ISO 8601)'),
  group: Optional[str] = Query(None, description='Group by level (second, minute, hour, day, month, year)'),
  tuples: Optional[int] = Query(None, description='Approximate number of tuples'),
  client: ClientHint = Query(ClientHint.NORMAL, description='Client hint (normal, raw, slow)'),
  db: Session = Depends(get_db_session),
  config: AggregationConfig = Depends(get_aggregation_config),
):
  """Get samples of a channel, optionally grouped or downsampled.

  Args:
      channel_id: Channel to read
      start: Range start
      end: Range end
      group: Calendar level to group by
      tuples: Target tuple count
      client: Client hint
      db: Database session
      config: Aggregation settings

  Returns:
      DataResponse with row count, tuples and range information
  """
  service = DataService(db, config)
  result = service.plan_and_execute(
    channel_id,
    start=parse_timestamp(start, 'from'),
    end=parse_timestamp(end, 'to'),
    group_by=group,
    tuple_count=tuples,
    client=client,
  )

  points = [DataPoint(timestamp=t.timestamp, value=t.value, count=t.count) for t in result.tuples]

  return DataResponse(
    channel_id=channel_id,
    rows=result.row_count,
    strategy=result.strategy.value if result.strategy else None,
    range_from=result.range_from,
    range_to=result.range_to,
    min=list(result.min) if result.min else None,
    max=list(result.max) if result.max else None,
    tuples=points,
  )
