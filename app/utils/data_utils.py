"""
Data utilities
Helper functions for request parsing and response serialization
"""
from datetime import date, datetime

from flask import request

from core.inference.matcher import blob_to_descriptor


def get_request_data():
    """Request payload from JSON or form data."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def parse_bool(value, default=None):
    """
    Parse a boolean from string, int or bool.
    Returns: True, False, or default when undecidable.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ('true', '1', 'yes', 'on'):
            return True
        if lower in ('false', '0', 'no', 'off'):
            return False
    return default


def parse_number(value, field_name, *, minimum=None, integer=False):
    """Coerce a JSON number (or numeric string); raises ValueError naming the field."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a number") from None
    if number != number:  # NaN
        raise ValueError(f"{field_name} must be a number")
    if minimum is not None and number < minimum:
        raise ValueError(f"{field_name} must be at least {minimum}")
    return int(number) if integer else number


def parse_date(value, field_name='date'):
    """Normalize YYYY-MM-DD (or a full ISO timestamp) into an ISO day string."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    for parser in (date.fromisoformat, lambda v: datetime.fromisoformat(v).date()):
        try:
            return parser(text).isoformat()
        except ValueError:
            continue
    raise ValueError(f"{field_name} must be a date (YYYY-MM-DD)")


def parse_timestamp(value, tz=None):
    """
    Parse an ISO timestamp or epoch milliseconds into ``tz``; None when absent.
    Naive timestamps are taken to already be in ``tz``.
    """
    if value is None or value == '':
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValueError('timestamp must be ISO-8601 or epoch milliseconds') from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    if tz is None:
        return parsed.astimezone().replace(tzinfo=None)
    return parsed.astimezone(tz)


def serialize_class(class_row):
    if not class_row:
        return None
    return {
        'id': class_row['id'],
        'className': class_row['class_name'],
        'startTime': class_row['start_time'],
        'endTime': class_row['end_time'],
        'dayOfWeek': class_row['day_of_week'],
        'duration': class_row['duration'],
        'isActive': bool(class_row['is_active']),
        'createdAt': class_row.get('created_at'),
        'updatedAt': class_row.get('updated_at'),
    }


def serialize_student(student_row, include_reference=False):
    """Student summary; the reference image and descriptor stay out unless asked for."""
    if not student_row:
        return None
    student = {
        'id': student_row['id'],
        'name': student_row['name'],
        'rollNumber': student_row['roll_number'],
        'className': student_row['class_name'],
        'hasDescriptor': student_row.get('face_descriptor') is not None,
        'registeredAt': student_row.get('registered_at'),
    }
    if include_reference:
        descriptor = blob_to_descriptor(student_row.get('face_descriptor'))
        student['referenceImage'] = student_row['reference_image']
        student['faceDescriptor'] = descriptor.tolist() if descriptor is not None else None
    return student


def serialize_attendance(record):
    if not record:
        return None
    return {
        'id': record['id'],
        'studentId': record['student_id'],
        'classId': record['class_id'],
        'date': record['attendance_date'],
        'rollNumber': record['roll_number'],
        'studentName': record['student_name'],
        'className': record['class_name'],
        'status': record['status'],
        'presenceDuration': record['presence_duration'],
        'requiredDuration': record['required_duration'],
        'classDuration': record['class_duration'],
        'detectionLog': record.get('detection_log') or [],
        'engagementScore': record['engagement_score'],
        'engagementData': record.get('engagement_data'),
        'createdAt': record.get('created_at'),
        'updatedAt': record.get('updated_at'),
    }
