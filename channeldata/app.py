"""FastAPI application serving channel data."""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from channeldata.lib.config import load_env_files, load_settings
from channeldata.lib.errors import DataQueryError, StoreError
from channeldata.lib.metrics import record_request_duration
from channeldata.lib.structured_logger import configure_logging, log_request, set_correlation_id
from channeldata.routers import data as data_router

# Load .env files
load_env_files()


@asynccontextmanager
async def lifespan(app: FastAPI):
  """Manage application lifespan."""
  configure_logging(load_settings().log_level)
  yield


app = FastAPI(
  title='Channel Data API',
  description='Time-series range queries over raw samples and rollups',
  version='0.1.0',
  lifespan=lifespan,
)


@app.middleware('http')
async def add_correlation_id(request: Request, call_next):
  """Inject correlation ID into request context.

  - Extracts X-Correlation-ID header or generates new UUID
  - Sets correlation ID in context for logging
  - Adds X-Correlation-ID to response headers
  - Logs request with performance metrics
  """
  correlation_id = request.headers.get('X-Correlation-ID', str(uuid4()))
  set_correlation_id(correlation_id)
  request.state.correlation_id = correlation_id

  start_time = time.time()
  response = await call_next(request)
  duration_seconds = time.time() - start_time

  response.headers['X-Correlation-ID'] = correlation_id

  # Skip health and metrics endpoints to reduce noise
  if request.url.path not in ['/health', '/api/health', '/metrics']:
    record_request_duration(
      endpoint=request.url.path,
      method=request.method,
      status=response.status_code,
      duration_seconds=duration_seconds,
    )
    log_request(
      endpoint=request.url.path,
      method=request.method,
      status_code=response.status_code,
      duration_ms=duration_seconds * 1000,
    )

  return response


@app.get('/health')
async def health_root():
  """Health check endpoint at root level (for load balancers)."""
  return {'status': 'healthy'}


@app.get('/api/health')
async def health_api():
  """Health check endpoint under /api prefix."""
  return {'status': 'healthy'}


@app.get('/metrics')
async def metrics_root():
  """Prometheus metrics endpoint."""
  return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
  """Store failures are not the caller's fault: 503."""
  return JSONResponse(
    status_code=503,
    content={
      'detail': 'Data store unavailable',
      'operation': exc.operation,
      'correlation_id': getattr(request.state, 'correlation_id', None),
    },
  )


@app.exception_handler(DataQueryError)
async def data_query_error_handler(request: Request, exc: DataQueryError):
  """Rejected requests (range, grouping, tuple count): 400."""
  return JSONResponse(
    status_code=400,
    content={
      'detail': exc.message,
      'error_type': type(exc).__name__,
      'correlation_id': getattr(request.state, 'correlation_id', None),
    },
  )


app.include_router(data_router.router)
