"""Prometheus-compatible metrics for query planning and rollup maintenance."""

from prometheus_client import Counter, Histogram


# Query metrics
data_queries_total = Counter(
    'data_queries_total',
    'Total planned data queries',
    ['strategy']
)

data_query_duration_seconds = Histogram(
    'data_query_duration_seconds',
    'Time spent planning and counting a data query',
    ['strategy'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

data_query_errors_total = Counter(
    'data_query_errors_total',
    'Data queries rejected or failed',
    ['error_type']
)

# Rollup maintenance metrics
rollup_rows_written_total = Counter(
    'rollup_rows_written_total',
    'Rollup rows written by the aggregation job',
    ['level', 'mode']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['endpoint', 'method', 'status'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)


def record_data_query(strategy: str, duration_seconds: float):
    """Record a planned data query.

    Args:
        strategy: Planner strategy ('raw', 'rollup_grouped', 'rollup_count')
        duration_seconds: Planning and row-count time in seconds
    """
    data_queries_total.labels(strategy=strategy).inc()
    data_query_duration_seconds.labels(strategy=strategy).observe(duration_seconds)


def record_data_query_error(error_type: str):
    """Record a rejected or failed data query.

    Args:
        error_type: Exception class name
    """
    data_query_errors_total.labels(error_type=error_type).inc()


def record_rollup_rows(level: str, mode: str, rows: int):
    """Record rollup rows written by the aggregation job.

    Args:
        level: Aggregation level label ('day', 'month', ...)
        mode: Aggregation mode ('full' or 'delta')
        rows: Number of rows written
    """
    rollup_rows_written_total.labels(level=level, mode=mode).inc(rows)


def record_request_duration(endpoint: str, method: str, status: int, duration_seconds: float):
    """Record overall request duration.

    Args:
        endpoint: API endpoint path
        method: HTTP method (GET, POST, etc.)
        status: HTTP status code
        duration_seconds: Request duration in seconds
    """
    http_request_duration_seconds.labels(
        endpoint=endpoint,
        method=method,
        status=str(status)
    ).observe(duration_seconds)
