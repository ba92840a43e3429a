"""
Session Scheduler - opens and closes attendance windows from the class timetable
Owns the registry of armed triggers (at most one per class id)
"""
import threading
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from core.scheduling.timetable import compute_trigger_times, schedule_signature
from logging_config import scheduler_logger


PHASE_OPEN = 'open'
PHASE_CLOSE = 'close'

TimerFactory = Callable[[float, Callable[[], None]], Any]
WindowHandler = Callable[[Dict[str, Any]], Any]


def thread_timer(delay: float, callback: Callable[[], None]):
    """Default trigger source: a daemon ``threading.Timer``."""
    timer = threading.Timer(max(0.0, delay), callback)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class ScheduledJob:
    class_id: int
    schedule: Dict[str, Any]
    signature: tuple
    phase: str
    open_at: datetime
    close_at: datetime
    handle: Any = None

    def describe(self) -> Dict[str, Any]:
        return {
            'classId': self.class_id,
            'className': self.schedule.get('class_name'),
            'phase': self.phase,
            'openAt': self.open_at.isoformat(),
            'closeAt': self.close_at.isoformat(),
        }


class SessionScheduler:
    """
    Arms one trigger per active class schedule.

    A polling tick re-reads the active schedules so new, edited, deactivated
    or deleted classes are picked up without a restart. When an open trigger
    fires, the same registry slot is re-armed for the window close; after the
    close the next occurrence is armed.
    """

    def __init__(
        self,
        source,
        on_open: WindowHandler,
        on_close: WindowHandler,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        timer_factory: Optional[TimerFactory] = None,
        poll_interval: float = 60,
        timezone: Optional[str] = None,
    ):
        self._source = source
        self._on_open = on_open
        self._on_close = on_close
        self.timezone = ZoneInfo(timezone) if timezone else None
        self._clock = clock or (lambda: datetime.now(self.timezone))
        self._timer_factory = timer_factory or thread_timer
        self.poll_interval = poll_interval

        self._jobs: Dict[int, ScheduledJob] = {}
        self._lock = threading.RLock()
        self._poller = None
        self._running = False

    def now(self) -> datetime:
        return self._clock()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
        self.tick()
        self._schedule_poll()

    def stop(self):
        with self._lock:
            self._running = False
            if self._poller is not None:
                self._poller.cancel()
                self._poller = None
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for job in jobs:
            if job.handle is not None:
                job.handle.cancel()

    def _schedule_poll(self):
        with self._lock:
            if self._running:
                self._poller = self._timer_factory(self.poll_interval, self._poll)

    def _poll(self):
        try:
            self.tick()
        except Exception as exc:
            scheduler_logger.log_schedule_error('*', exc)
        finally:
            self._schedule_poll()

    # ------------------------------------------------------------------
    # Registry operations
    # ------------------------------------------------------------------
    def tick(self):
        """Bring the registry in line with the currently active schedules."""
        try:
            schedules = self._source.get_active_classes()
        except Exception as exc:
            scheduler_logger.log_schedule_error('*', f"cannot load schedules: {exc}")
            return

        active_ids = set()
        for schedule in schedules:
            class_id = schedule.get('id')
            active_ids.add(class_id)
            try:
                self._arm(schedule)
            except Exception as exc:
                scheduler_logger.log_schedule_error(class_id, exc)

        with self._lock:
            stale = [class_id for class_id in self._jobs if class_id not in active_ids]
        for class_id in stale:
            self.cancel(class_id, reason='inactive or removed')

    def reschedule(self, class_id) -> Optional[ScheduledJob]:
        """Recompute the trigger of one class, cancelling it if the class is gone or inactive."""
        schedule = self._source.get_class_by_id(class_id)
        if not schedule or not schedule.get('is_active'):
            self.cancel(class_id, reason='inactive or removed')
            return None
        try:
            return self._arm(schedule, force=True)
        except Exception as exc:
            scheduler_logger.log_schedule_error(class_id, exc)
            return None

    def cancel(self, class_id, reason='cancelled') -> bool:
        """
        Drop the trigger of a class. A window that is currently open is
        closed right away so its tallies still reach the ledger.
        """
        with self._lock:
            job = self._jobs.pop(class_id, None)
        if job is None:
            return False
        if job.handle is not None:
            job.handle.cancel()
        scheduler_logger.log_cancelled(class_id, reason)
        if job.phase == PHASE_CLOSE:
            self._run_handler(PHASE_CLOSE, self._on_close, job.schedule)
        return True

    def active_keys(self) -> List[int]:
        with self._lock:
            return sorted(self._jobs)

    def get_job(self, class_id) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.get(class_id)

    def describe(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._jobs[class_id].describe() for class_id in sorted(self._jobs)]

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def _arm(self, schedule, force=False) -> ScheduledJob:
        class_id = schedule['id']
        signature = schedule_signature(schedule)
        with self._lock:
            existing = self._jobs.get(class_id)
            if existing is not None:
                if existing.phase == PHASE_CLOSE:
                    # An open window keeps its timing; the next open uses the new fields
                    existing.schedule = schedule
                    existing.signature = signature
                    return existing
                if existing.signature == signature and not force:
                    existing.schedule = schedule
                    return existing

            try:
                times = compute_trigger_times(schedule, self.now())
            except Exception:
                if existing is not None:
                    self._jobs.pop(class_id, None)
                    if existing.handle is not None:
                        existing.handle.cancel()
                raise

            if existing is not None and existing.handle is not None:
                existing.handle.cancel()

            job = ScheduledJob(
                class_id=class_id,
                schedule=schedule,
                signature=signature,
                phase=PHASE_OPEN,
                open_at=times.open_at,
                close_at=times.close_at,
            )
            delay = (times.open_at - self.now()).total_seconds()
            job.handle = self._timer_factory(delay, partial(self._fire_open, job))
            self._jobs[class_id] = job

        scheduler_logger.log_armed(schedule.get('class_name'), class_id, PHASE_OPEN, times.open_at)
        return job

    def _fire_open(self, job: ScheduledJob):
        with self._lock:
            if self._jobs.get(job.class_id) is not job or job.phase != PHASE_OPEN:
                return
            job.phase = PHASE_CLOSE
            job.handle = None

        self._run_handler(PHASE_OPEN, self._on_open, job.schedule)

        with self._lock:
            if self._jobs.get(job.class_id) is not job:
                return
            delay = (job.close_at - self.now()).total_seconds()
            job.handle = self._timer_factory(delay, partial(self._fire_close, job))
        scheduler_logger.log_armed(job.schedule.get('class_name'), job.class_id, PHASE_CLOSE, job.close_at)

    def _fire_close(self, job: ScheduledJob):
        with self._lock:
            if self._jobs.get(job.class_id) is not job or job.phase != PHASE_CLOSE:
                return
            del self._jobs[job.class_id]

        self._run_handler(PHASE_CLOSE, self._on_close, job.schedule)
        self.reschedule(job.class_id)

    @staticmethod
    def _run_handler(phase, handler, schedule):
        try:
            handler(schedule)
        except Exception as exc:
            scheduler_logger.log_handler_error(phase, schedule.get('id'), exc)
