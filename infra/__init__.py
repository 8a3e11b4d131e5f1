"""Infrastructure modules for soltrader"""

from .activity_log import ActivityLog  # noqa: F401
from .dashboard_api import DashboardServer  # noqa: F401
from .ledger_store import LedgerStore  # noqa: F401
from .metrics import MetricsRecorder, CycleStats  # noqa: F401
from .rate_limiter import RateLimiter  # noqa: F401

__all__ = [
	"ActivityLog",
	"DashboardServer",
	"LedgerStore",
	"MetricsRecorder",
	"CycleStats",
	"RateLimiter",
]
