"""cravelog: log how long cravings were resisted, synced or offline."""

from .records import LogRecord, validate_record, validate_records
from .sync import Authority, SyncCoordinator, SyncError
from .timer import ResistanceTimer, TimerState

__version__ = "0.1.0"

__all__ = [
    "Authority",
    "LogRecord",
    "ResistanceTimer",
    "SyncCoordinator",
    "SyncError",
    "TimerState",
    "validate_record",
    "validate_records",
]
