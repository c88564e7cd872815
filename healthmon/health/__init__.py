"""Health subsystem — probe executor, SQLite store, scheduler, aggregation."""

from .aggregation import AggregationEngine, ServiceUptime
from .metrics import CheckVolume, MetricsSource, SimulatedMetrics
from .probe import HealthCheckResult, ProbeStatus, run_probe
from .scheduler import HealthScheduler
from .store import LogFilter, ResultStore
