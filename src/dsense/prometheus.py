"""Prometheus metrics for dsense file analysis"""

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

# Own registry so a metrics file carries only dsense series
REGISTRY = CollectorRegistry()

# ============================================================================
# File Processing Metrics
# ============================================================================

files_analysed_total = Counter(
    'dsense_files_analysed_total',
    'Total number of files analysed',
    ['profile'],
    registry=REGISTRY,
)

files_skipped_total = Counter(
    'dsense_files_skipped_total',
    'Total number of files skipped (unreadable, binary, etc.)',
    registry=REGISTRY,
)


# ============================================================================
# Signal Metrics
# ============================================================================

signals_emitted_total = Counter(
    'dsense_signals_emitted_total',
    'Total number of signals emitted',
    ['category', 'severity'],
    registry=REGISTRY,
)


# ============================================================================
# Performance Metrics
# ============================================================================

analyse_duration_seconds = Histogram(
    'dsense_analyse_duration_seconds',
    'Time spent analysing a batch of files',
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    # 1ms to 30s - single small files up to large repositories
    registry=REGISTRY,
)


def write_metrics(path: str):
    """Write all dsense metrics to ``path`` in the text exposition format."""
    write_to_textfile(path, REGISTRY)
