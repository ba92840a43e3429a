"""
API routes for class schedules
Every change is handed to the session scheduler so triggers follow the timetable
"""
from flask import Blueprint, current_app, jsonify

from core.scheduling.timetable import ScheduleError, compute_duration, normalize_day_of_week, parse_time_of_day
from app.utils import (
    error_response,
    get_db,
    get_request_data,
    get_scheduler,
    parse_bool,
    serialize_class,
    server_error
)

class_api_bp = Blueprint('class_api', __name__, url_prefix='/api/classes')


def _reschedule(class_id):
    """Refresh the trigger of one class; the change itself is already stored."""
    scheduler = get_scheduler()
    if not scheduler.running:
        return
    try:
        scheduler.reschedule(class_id)
    except Exception as e:
        current_app.logger.error("Could not reschedule class %s: %s", class_id, e)


@class_api_bp.route('/add', methods=['POST'])
def add_class():
    try:
        data = get_request_data()
        class_name = str(data.get('className') or '').strip()
        start_time = str(data.get('startTime') or '').strip()
        end_time = str(data.get('endTime') or '').strip()

        if not class_name or not start_time or not end_time:
            return error_response('className, startTime, and endTime are required')

        try:
            duration = compute_duration(start_time, end_time)
            day_of_week = normalize_day_of_week(data.get('dayOfWeek'))
        except ScheduleError as e:
            return error_response(str(e))

        db = get_db()
        class_id = db.add_class(class_name, start_time, end_time, day_of_week, duration)
        _reschedule(class_id)

        return jsonify({
            'message': 'Class schedule added successfully',
            'class': serialize_class(db.get_class_by_id(class_id)),
        }), 201
    except Exception as e:
        return server_error('POST /api/classes/add', 'Failed to add class', e)


@class_api_bp.route('', methods=['GET'])
def list_classes():
    """Active classes ordered by name and start time."""
    try:
        classes = get_db().get_active_classes()
        return jsonify({'classes': [serialize_class(c) for c in classes]})
    except Exception as e:
        return server_error('GET /api/classes', 'Failed to fetch classes', e)


@class_api_bp.route('/<int:class_id>', methods=['GET'])
def get_class(class_id):
    try:
        class_row = get_db().get_class_by_id(class_id)
        if not class_row:
            return error_response('Class not found', 404)
        return jsonify({'class': serialize_class(class_row)})
    except Exception as e:
        return server_error('GET /api/classes/<id>', 'Failed to fetch class', e)


@class_api_bp.route('/<int:class_id>', methods=['PUT'])
def update_class(class_id):
    """Partial update; duration is recomputed when either time changes."""
    try:
        db = get_db()
        class_row = db.get_class_by_id(class_id)
        if not class_row:
            return error_response('Class not found', 404)

        data = get_request_data()
        updates = {}
        try:
            if data.get('className'):
                updates['class_name'] = str(data['className']).strip()
            if data.get('startTime'):
                updates['start_time'] = str(data['startTime']).strip()
                parse_time_of_day(updates['start_time'])
            if data.get('endTime'):
                updates['end_time'] = str(data['endTime']).strip()
                parse_time_of_day(updates['end_time'])
            if data.get('dayOfWeek'):
                updates['day_of_week'] = normalize_day_of_week(data['dayOfWeek'])
            if 'start_time' in updates or 'end_time' in updates:
                updates['duration'] = compute_duration(
                    updates.get('start_time', class_row['start_time']),
                    updates.get('end_time', class_row['end_time']),
                )
        except ScheduleError as e:
            return error_response(str(e))

        if data.get('isActive') is not None:
            is_active = parse_bool(data.get('isActive'))
            if is_active is None:
                return error_response('isActive must be a boolean')
            updates['is_active'] = 1 if is_active else 0

        if not db.update_class(class_id, **updates):
            return error_response('Class not found', 404)
        _reschedule(class_id)

        return jsonify({
            'message': 'Class updated successfully',
            'class': serialize_class(db.get_class_by_id(class_id)),
        })
    except Exception as e:
        return server_error('PUT /api/classes/<id>', 'Failed to update class', e)


@class_api_bp.route('/<int:class_id>', methods=['DELETE'])
def delete_class(class_id):
    try:
        if not get_db().delete_class(class_id):
            return error_response('Class not found', 404)
        _reschedule(class_id)
        return jsonify({'message': 'Class deleted successfully'})
    except Exception as e:
        return server_error('DELETE /api/classes/<id>', 'Failed to delete class', e)
