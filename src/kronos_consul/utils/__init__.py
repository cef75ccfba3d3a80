from .constant import WatchMethod, CheckState
from .id_utils import IdUtils
from .net_utils import NetUtils
from .time_utils import as_seconds, ms_to_seconds

__all__ = [
    "CheckState",
    "IdUtils",
    "NetUtils",
    "WatchMethod",
    "as_seconds",
    "ms_to_seconds",
]
