"""
Attendance Monitor - state of every open attendance window
Feeds recognized frames into the per-window aggregator and flushes tallies to the ledger
"""
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.attendance.aggregator import PresenceAggregator
from core.attendance.head_pose import FaceLandmarks
from core.inference.matcher import FaceMatcher, blob_to_descriptor
from logging_config import database_logger, recognition_logger, scheduler_logger


class WindowNotOpenError(LookupError):
    """Raised when frames or a flush target a class without an open window."""


@dataclass
class MonitoringWindow:
    schedule: Dict[str, Any]
    day: str
    opened_at: datetime
    aggregator: PresenceAggregator
    matcher: FaceMatcher
    roster: Dict[str, Dict[str, Any]]
    presence_fraction: float
    source: str = 'scheduled'
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def class_id(self):
        return self.schedule['id']

    def student_by_id(self, student_id) -> Optional[Dict[str, Any]]:
        for student in self.roster.values():
            if student['id'] == student_id:
                return student
        return None


class AttendanceMonitor:
    """Keeps one independent aggregator per open class window"""

    def __init__(self, database, ledger, *, detection_threshold=0.6, presence_fraction=0.75,
                 max_log_length=None, clock=None):
        self.db = database
        self.ledger = ledger
        self.detection_threshold = detection_threshold
        self.presence_fraction = presence_fraction
        self.max_log_length = max_log_length
        self.clock = clock or datetime.now
        self._windows: Dict[Any, MonitoringWindow] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Window lifecycle
    # ------------------------------------------------------------------
    def open_window(self, schedule, *, detection_threshold=None, presence_fraction=None, source='scheduled'):
        """
        Start collecting attendance for a class.

        Every enrolled student without a record for today gets a default
        Absent one. Opening an already open window returns it unchanged.
        """
        class_id = schedule['id']
        with self._lock:
            existing = self._windows.get(class_id)
        if existing is not None:
            return existing

        now = self.clock()
        day = self.ledger.day_key(now.date())
        fraction = presence_fraction or self.presence_fraction
        students = self.db.get_students_by_class_name(schedule['class_name'])

        created = 0
        for student in students:
            if self.ledger.ensure_record(student, schedule, day=day, fraction=fraction):
                created += 1

        window = MonitoringWindow(
            schedule=dict(schedule),
            day=day,
            opened_at=now,
            aggregator=PresenceAggregator(class_id, max_log_length=self.max_log_length),
            matcher=self._build_matcher(students, detection_threshold or self.detection_threshold),
            roster={s['roll_number']: s for s in students},
            presence_fraction=fraction,
            source=source,
        )
        with self._lock:
            window = self._windows.setdefault(class_id, window)

        scheduler_logger.log_window_opened(schedule.get('class_name'), class_id, len(students))
        if created:
            scheduler_logger.logger.info(
                "Created %s default Absent records for %s on %s", created, schedule.get('class_name'), day
            )
        return window

    def close_window(self, class_id) -> Optional[List[Dict[str, Any]]]:
        """Stop monitoring and flush once; a second close for the same window is a no-op."""
        with self._lock:
            window = self._windows.pop(class_id, None)
        if window is None:
            return None
        try:
            with window.lock:
                results = self._flush_window(window)
        except Exception:
            # Keep the tallies reachable so the close can be retried
            with self._lock:
                self._windows.setdefault(class_id, window)
            raise
        scheduler_logger.log_window_closed(window.schedule.get('class_name'), class_id, len(results))
        return results

    def flush(self, class_id) -> List[Dict[str, Any]]:
        """Persist the current tallies without closing the window."""
        window = self._require(class_id)
        with window.lock:
            return self._flush_window(window)

    def is_open(self, class_id) -> bool:
        with self._lock:
            return class_id in self._windows

    def open_windows(self) -> List[Dict[str, Any]]:
        with self._lock:
            windows = list(self._windows.values())
        return [self._describe(w) for w in windows]

    def snapshot(self, class_id) -> Dict[str, Any]:
        window = self._require(class_id)
        with window.lock:
            payload = self._describe(window)
            payload['students'] = [
                dict(
                    window.aggregator.snapshot(student_id),
                    studentId=student_id,
                    rollNumber=(window.student_by_id(student_id) or {}).get('roll_number'),
                )
                for student_id in window.aggregator.students()
            ]
        return payload

    # ------------------------------------------------------------------
    # Frame ingestion
    # ------------------------------------------------------------------
    def process_frame(self, class_id, detections, timestamp=None, matches=None) -> List[Dict[str, Any]]:
        """
        Match every detection of one frame and aggregate the accepted ones.

        Each detection carries a ``descriptor`` and ``landmarks``; ``matches``
        carry ``roll_number``, ``distance`` and ``landmarks`` already matched by
        the recognition capability. Frames whose best match is unknown or not
        below the threshold are dropped. The whole frame is resolved before
        any tally changes, so a rejected frame leaves the window untouched.
        """
        window = self._require(class_id)
        timestamp = timestamp or self.clock()
        with window.lock:
            accepted = []
            for detection in detections:
                match = window.matcher.find_best_match(detection['descriptor'])
                if not match.accepted:
                    recognition_logger.log_frame_rejected(match.label, match.distance, match.threshold)
                    continue
                accepted.append((match.label, match.distance, detection['landmarks']))
            for match in matches or ():
                accepted.append((match['roll_number'], match['distance'], match['landmarks']))

            resolved = [
                (self._enrolled(window, roll_number), distance, FaceLandmarks.parse(landmarks))
                for roll_number, distance, landmarks in accepted
            ]
            return [self._record(window, student, timestamp, distance, landmarks)
                    for student, distance, landmarks in resolved]

    def record_match(self, class_id, roll_number, timestamp, distance, landmarks) -> Dict[str, Any]:
        """Aggregate a match already made by the recognition capability."""
        window = self._require(class_id)
        with window.lock:
            student = self._enrolled(window, roll_number)
            return self._record(window, student, timestamp, distance, FaceLandmarks.parse(landmarks))

    @staticmethod
    def _enrolled(window, roll_number):
        student = window.roster.get(roll_number)
        if student is None:
            raise LookupError(f"Student {roll_number} is not enrolled in {window.schedule.get('class_name')}")
        return student

    def _record(self, window, student, timestamp, distance, landmarks):
        state = window.aggregator.on_frame_match(student['id'], timestamp, distance, landmarks)
        recognition_logger.log_face_recognized(student['roll_number'], 1 - distance, window.class_id)
        return {
            'studentId': student['id'],
            'rollNumber': student['roll_number'],
            'studentName': student['name'],
            'presenceDuration': state.cumulative_seconds,
            'engagementScore': state.score,
            'engaged': state.detection_log[-1]['engaged'] if state.detection_log else False,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require(self, class_id) -> MonitoringWindow:
        with self._lock:
            window = self._windows.get(class_id)
        if window is None:
            raise WindowNotOpenError(f"No open attendance window for class {class_id}")
        return window

    def _build_matcher(self, students, threshold) -> FaceMatcher:
        descriptors = {}
        for student in students:
            vector = blob_to_descriptor(student.get('face_descriptor'))
            if vector is not None:
                descriptors[student['roll_number']] = vector

        # Descriptors of a different length than the majority cannot be compared
        if descriptors:
            common_size, _ = Counter(v.size for v in descriptors.values()).most_common(1)[0]
            for roll_number in [r for r, v in descriptors.items() if v.size != common_size]:
                recognition_logger.log_recognition_error(
                    f"Skipping descriptor of {roll_number}: {descriptors[roll_number].size} values"
                )
                del descriptors[roll_number]

        if not descriptors and students:
            scheduler_logger.logger.warning("No enrolled face descriptors for this window; frames will be ignored")
        return FaceMatcher(descriptors, threshold=threshold)

    def _flush_window(self, window) -> List[Dict[str, Any]]:
        """Persist every tracked student; a failure for one student does not stop the others."""
        results = []
        for student_id in window.aggregator.students():
            student = window.student_by_id(student_id)
            try:
                verdict = self._flush_student(window, student_id, student)
            except Exception as exc:
                database_logger.log_error(f"flush class {window.class_id} student {student_id}", exc)
                verdict = {'error': str(exc)}
            verdict.update(studentId=student_id, rollNumber=student['roll_number'], studentName=student['name'])
            results.append(verdict)
        return results

    def _flush_student(self, window, student_id, student) -> Dict[str, Any]:
        record = self.ledger.get(student_id, window.class_id, window.day)
        if record:
            required = record['required_duration']
            class_duration = record['class_duration']
        else:
            class_duration = int(window.schedule['duration']) * 60
            required = self.ledger.required_duration(class_duration, window.presence_fraction)

        verdict = window.aggregator.finalize(student_id, required)
        state = window.aggregator.get_state(student_id)
        fields = {
            'status': verdict['status'],
            'presenceDuration': verdict['presenceDuration'],
            'requiredDuration': required,
            'classDuration': class_duration,
            'detectionLog': list(state.detection_log),
            'engagementScore': verdict['engagementScore'],
            'engagementData': state.engagement_data(),
        }
        defaults = {
            'rollNumber': student['roll_number'],
            'studentName': student['name'],
            'className': window.schedule['class_name'],
        }
        self.ledger.upsert(student_id, window.class_id, window.day, fields, defaults=defaults)
        return verdict

    @staticmethod
    def _describe(window) -> Dict[str, Any]:
        return {
            'classId': window.class_id,
            'className': window.schedule.get('class_name'),
            'day': window.day,
            'openedAt': window.opened_at.isoformat(),
            'source': window.source,
            'detectionThreshold': window.matcher.threshold,
            'presenceFraction': window.presence_fraction,
            'enrolled': len(window.roster),
            'matchable': len(window.matcher.labels),
            'tracked': len(window.aggregator.students()),
        }
