"""
Attendance Ledger - one durable record per (student, class, day)
Idempotent upserts, queries and efficiency reporting on top of DatabaseManager
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from core.attendance.aggregator import STATUS_ABSENT, STATUS_PRESENT, attendance_status
from core.scheduling.timetable import required_duration_seconds
from logging_config import database_logger


def _day_key(day) -> str:
    if isinstance(day, date):
        return day.isoformat()
    return str(day)


def _round2(value: float) -> float:
    return round(float(value), 2)


def compute_efficiency(records: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Attendance efficiency over a set of records.

    Efficiency is the Present share of all records; engagement is averaged
    over Present records only.
    """
    records = list(records)
    total = len(records)
    present_records = [r for r in records if r.get('status') == STATUS_PRESENT]
    present = len(present_records)

    efficiency = (present / total) * 100 if total else 0
    avg_engagement = (
        sum(r.get('engagement_score') or 0 for r in present_records) / present
        if present else 0
    )
    avg_presence = (
        sum(r.get('presence_duration') or 0 for r in records) / total
        if total else 0
    )
    return {
        'totalClasses': total,
        'present': present,
        'absent': total - present,
        'efficiencyPct': _round2(efficiency),
        'avgEngagement': _round2(avg_engagement),
        'avgPresenceDuration': _round2(avg_presence),
    }


class AttendanceLedger:
    """Persistence rules for AttendanceRecords"""

    def __init__(self, database, presence_fraction=0.75, clock=None):
        self.db = database
        self.presence_fraction = presence_fraction
        self.clock = clock or datetime.now

    def day_key(self, day=None) -> str:
        """ISO calendar day; defaults to today on the ledger clock."""
        if day is None:
            return self.clock().date().isoformat()
        return _day_key(day)

    def required_duration(self, class_duration_seconds, fraction=None):
        return required_duration_seconds(class_duration_seconds, fraction or self.presence_fraction)

    def upsert(self, student_id, class_id, day, fields, defaults=None):
        """Create the record if absent, else merge ``fields`` into it."""
        day_key = self.day_key(day)
        try:
            record = self.db.upsert_attendance(student_id, class_id, day_key, fields, defaults=defaults)
        except Exception as exc:
            database_logger.log_error('upsert_attendance', exc)
            raise
        database_logger.log_upsert(student_id, class_id, day_key, record.get('status') if record else None)
        return record

    def ensure_record(self, student, schedule, day=None, fraction=None):
        """Create the default Absent record for a window; no-op when one exists."""
        class_duration = int(schedule['duration']) * 60
        return self.db.insert_attendance_if_missing(
            student['id'],
            schedule['id'],
            self.day_key(day),
            {
                'rollNumber': student['roll_number'],
                'studentName': student['name'],
                'className': schedule['class_name'],
                'status': STATUS_ABSENT,
                'presenceDuration': 0,
                'requiredDuration': self.required_duration(class_duration, fraction),
                'classDuration': class_duration,
                'detectionLog': [],
                'engagementScore': 0,
            },
        )

    def mark(self, student, class_row, class_name, class_duration, presence_duration=0,
             detections=None, engagement_score=0, engagement_data=None, roll_number=None, day=None):
        """Server-side marking: derive required duration and status, then upsert."""
        required = self.required_duration(class_duration)
        status = attendance_status(presence_duration, required)
        fields = {
            'rollNumber': roll_number or student['roll_number'],
            'studentName': student['name'],
            'className': class_name,
            'status': status,
            'presenceDuration': presence_duration,
            'requiredDuration': required,
            'classDuration': class_duration,
            'detectionLog': detections or [],
            'engagementScore': engagement_score,
            'engagementData': engagement_data,
        }
        return self.upsert(student['id'], class_row['id'], day, fields)

    def get(self, student_id, class_id, day=None) -> Optional[Dict[str, Any]]:
        return self.db.get_attendance(student_id, class_id, self.day_key(day))

    def query(self, student_id=None, class_id=None, class_name=None, date=None,
              start_date=None, end_date=None, limit=None) -> List[Dict[str, Any]]:
        return self.db.query_attendance(
            student_id=student_id,
            class_id=class_id,
            class_name=class_name,
            date=date,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )

    def today_for_class(self, class_name, day=None):
        return self.db.query_attendance(
            order_by='student_name ASC',
            class_name=class_name,
            date=self.day_key(day),
        )

    def stats(self, class_name=None, start_date=None, end_date=None):
        filters = {'class_name': class_name, 'start_date': start_date, 'end_date': end_date}
        total = self.db.count_attendance(**filters)
        present = self.db.count_attendance(status=STATUS_PRESENT, **filters)
        absent = self.db.count_attendance(status=STATUS_ABSENT, **filters)
        return {
            'totalRecords': total,
            'presentCount': present,
            'absentCount': absent,
            'presentPercentage': _round2(present / total * 100) if total else 0,
        }

    def efficiency_for_student(self, student_id, class_name=None, start_date=None, end_date=None):
        records = self.db.query_attendance(
            student_id=student_id,
            class_name=class_name,
            start_date=start_date,
            end_date=end_date,
        )
        return compute_efficiency(records), records
