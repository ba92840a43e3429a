"""
API routes for attendance records
Server-side marking, queries, today's roster and statistics
"""
from flask import Blueprint, current_app, jsonify, request

from app.utils import (
    error_response,
    get_db,
    get_ledger,
    get_request_data,
    parse_date,
    parse_number,
    serialize_attendance,
    server_error
)

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api/attendance')


def _engagement_data(payload):
    """Normalize the engagement summary; older clients send lookingForward/lookingAway."""
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValueError('engagementData must be an object')
    forward = parse_number(payload.get('framesForward', payload.get('lookingForward', 0)),
                           'framesForward', minimum=0, integer=True)
    away = parse_number(payload.get('framesAway', payload.get('lookingAway', 0)),
                        'framesAway', minimum=0, integer=True)
    total = parse_number(payload.get('totalFrames', forward + away), 'totalFrames', minimum=0, integer=True)
    score = parse_number(payload.get('score', 0), 'score', minimum=0, integer=True)
    return {'framesForward': forward, 'framesAway': away, 'totalFrames': total, 'score': min(score, 100)}


def _range_filters(args):
    return {
        'class_name': args.get('className') or None,
        'start_date': parse_date(args.get('startDate'), 'startDate'),
        'end_date': parse_date(args.get('endDate'), 'endDate'),
    }


@attendance_api_bp.route('/mark', methods=['POST'])
def mark_attendance():
    """Upsert today's record for a student in a class."""
    try:
        data = get_request_data()
        required = ('studentId', 'rollNumber', 'className', 'classId', 'classDuration')
        if any(not data.get(field) for field in required):
            return error_response('studentId, rollNumber, className, classId, and classDuration are required')

        try:
            student_id = parse_number(data['studentId'], 'studentId', integer=True)
            class_id = parse_number(data['classId'], 'classId', integer=True)
            class_duration = parse_number(data['classDuration'], 'classDuration', minimum=1, integer=True)
            presence = parse_number(data.get('presenceDuration') or 0, 'presenceDuration', minimum=0, integer=True)
            engagement_score = parse_number(data.get('engagementScore') or 0, 'engagementScore',
                                            minimum=0, integer=True)
            engagement = _engagement_data(data.get('engagementData'))
        except ValueError as e:
            return error_response(str(e))

        detections = data.get('detections') or []
        if not isinstance(detections, list):
            return error_response('detections must be a list')

        db = get_db()
        student = db.get_student_by_id(student_id)
        if not student:
            return error_response('Student not found', 404)
        class_row = db.get_class_by_id(class_id)
        if not class_row:
            return error_response('Class not found', 404)

        record = get_ledger().mark(
            student,
            class_row,
            str(data['className']).strip(),
            class_duration,
            presence_duration=presence,
            detections=detections,
            engagement_score=min(engagement_score, 100),
            engagement_data=engagement,
            roll_number=str(data['rollNumber']).strip().upper(),
        )
        return jsonify({'message': 'Attendance marked successfully', 'attendance': serialize_attendance(record)})
    except Exception as e:
        return server_error('POST /api/attendance/mark', 'Failed to mark attendance', e)


@attendance_api_bp.route('', methods=['GET'])
def list_attendance():
    """Newest records first, at most ATTENDANCE_QUERY_LIMIT of them."""
    try:
        try:
            filters = _range_filters(request.args)
            filters['date'] = parse_date(request.args.get('date'))
            student_id = request.args.get('studentId')
            if student_id:
                filters['student_id'] = parse_number(student_id, 'studentId', integer=True)
        except ValueError as e:
            return error_response(str(e))

        records = get_ledger().query(limit=current_app.config['ATTENDANCE_QUERY_LIMIT'], **filters)
        return jsonify({'attendance': [serialize_attendance(r) for r in records]})
    except Exception as e:
        return server_error('GET /api/attendance', 'Failed to fetch attendance', e)


@attendance_api_bp.route('/today/<class_name>', methods=['GET'])
def today_attendance(class_name):
    try:
        records = get_ledger().today_for_class(class_name)
        return jsonify({'attendance': [serialize_attendance(r) for r in records]})
    except Exception as e:
        return server_error('GET /api/attendance/today/<className>', "Failed to fetch today's attendance", e)


@attendance_api_bp.route('/stats', methods=['GET'])
def attendance_stats():
    try:
        try:
            filters = _range_filters(request.args)
        except ValueError as e:
            return error_response(str(e))
        return jsonify(get_ledger().stats(**filters))
    except Exception as e:
        return server_error('GET /api/attendance/stats', 'Failed to fetch statistics', e)
