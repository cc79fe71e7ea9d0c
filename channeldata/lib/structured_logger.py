"""Structured logging with JSON formatting and request correlation IDs.

The correlation ID lives in a context variable, so it follows a request
through async calls and threadpool hops without being passed around.
"""

import contextvars
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
  'request_id', default='no-request-id'
)

# Attributes every LogRecord carries; anything else was passed via `extra`
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


def get_correlation_id() -> str:
  return correlation_id.get()


def set_correlation_id(request_id: Optional[str] = None) -> str:
  """Set (or generate) the correlation ID for the current context.

  Returns:
      The correlation ID now in effect
  """
  request_id = request_id or str(uuid4())
  correlation_id.set(request_id)
  return request_id


def reset_correlation_id() -> None:
  correlation_id.set('no-request-id')


class JSONFormatter(logging.Formatter):
  """JSON formatter for structured logging."""

  def format(self, record: logging.LogRecord) -> str:
    log_data = {
      'timestamp': datetime.now(timezone.utc).isoformat(),
      'level': record.levelname,
      'logger': record.name,
      'message': record.getMessage(),
      'module': record.module,
      'function': record.funcName,
      'request_id': get_correlation_id(),
    }

    # Context passed through `extra=`
    for key, value in vars(record).items():
      if key not in _RESERVED_ATTRS and key not in log_data:
        log_data[key] = value

    if record.exc_info:
      log_data['exception'] = {
        'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
        'message': str(record.exc_info[1]) if record.exc_info[1] else None,
      }

    return json.dumps(log_data, default=str)


def configure_logging(level: Optional[str] = None, json_output: bool = True) -> None:
  """Configure the `channeldata` logger hierarchy.

  Args:
      level: Log level name, defaults to LOG_LEVEL or INFO
      json_output: Emit JSON lines instead of plain text
  """
  level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

  handler = logging.StreamHandler()
  if json_output:
    handler.setFormatter(JSONFormatter())
  else:
    handler.setFormatter(
      logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

  root = logging.getLogger('channeldata')
  root.setLevel(getattr(logging, level_name, logging.INFO))
  root.handlers.clear()
  root.addHandler(handler)
  root.propagate = False


def log_request(endpoint: str, method: str, status_code: int, duration_ms: float, **context: Any) -> None:
  """Log an API request with its duration.

  Args:
      endpoint: API endpoint path
      method: HTTP method
      status_code: HTTP status code
      duration_ms: Request duration in milliseconds
      **context: Additional context fields
  """
  logging.getLogger('channeldata.requests').info(
    f'{method} {endpoint}',
    extra={
      'endpoint': endpoint,
      'method': method,
      'status_code': status_code,
      'duration_ms': round(duration_ms, 3),
      **context,
    },
  )
