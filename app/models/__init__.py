"""
Models Package - Business logic models
Centralized business logic separated from Flask routes
"""

from .attendance_ledger import AttendanceLedger, compute_efficiency
from .attendance_monitor import AttendanceMonitor, MonitoringWindow, WindowNotOpenError
from .session_scheduler import SessionScheduler, ScheduledJob, thread_timer

__all__ = [
    'AttendanceLedger',
    'compute_efficiency',
    'AttendanceMonitor',
    'MonitoringWindow',
    'WindowNotOpenError',
    'SessionScheduler',
    'ScheduledJob',
    'thread_timer',
]
