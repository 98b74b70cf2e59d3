"""
Monitor status reconciliation package.

This package reconciles paginated search-engine results against the
expected matrix of (monitor, location) pairs and produces a single
up/down/pending overview. See DESIGN.md for the layout.
"""

from .__version__ import __version__
from .domain.models import OverviewStatus, StatusVerdict, TimeRange
from .errors import BackendError, ReconcileError
from .reconcile import query_monitor_status, reconcile

__all__ = [
    "__version__",
    "BackendError",
    "OverviewStatus",
    "ReconcileError",
    "StatusVerdict",
    "TimeRange",
    "query_monitor_status",
    "reconcile",
]
