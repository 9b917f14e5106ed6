"""Health subsystem — check engine, aggregator, scheduler."""

from .aggregator import HealthAggregator, Snapshot
from .engine import CHECK_RUNNERS, CheckName, CheckResult, execute_check
from .scheduler import HealthScheduler
