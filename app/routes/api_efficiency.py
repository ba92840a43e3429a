"""
API routes for efficiency reports
Attendance share and average engagement per student
"""
from flask import Blueprint, jsonify, request

from app.models import compute_efficiency
from app.utils import error_response, get_db, get_ledger, parse_date, server_error

efficiency_api_bp = Blueprint('efficiency_api', __name__, url_prefix='/api/efficiency')


def _filters():
    return {
        'class_name': request.args.get('className') or None,
        'start_date': parse_date(request.args.get('startDate'), 'startDate'),
        'end_date': parse_date(request.args.get('endDate'), 'endDate'),
    }


def _report(student, class_name, efficiency, records=None):
    report = {
        'studentId': student['id'],
        'studentName': student['name'],
        'rollNumber': student['roll_number'],
        'className': class_name or student['class_name'],
        'totalClasses': efficiency['totalClasses'],
        'classesAttended': efficiency['present'],
        'classesAbsent': efficiency['absent'],
        'efficiency': efficiency['efficiencyPct'],
        'averageEngagement': efficiency['avgEngagement'],
    }
    if records is not None:
        report['averagePresenceDuration'] = efficiency['avgPresenceDuration']
        report['attendanceRecords'] = [
            {
                'date': r['attendance_date'],
                'status': r['status'],
                'presenceDuration': r['presence_duration'],
                'className': r['class_name'],
                'engagementScore': r['engagement_score'] or 0,
            }
            for r in records
        ]
    return report


def _student_report(student):
    try:
        filters = _filters()
    except ValueError as e:
        return error_response(str(e))
    efficiency, records = get_ledger().efficiency_for_student(student['id'], **filters)
    return jsonify(_report(student, filters['class_name'], efficiency, records))


@efficiency_api_bp.route('/<int:student_id>', methods=['GET'])
def student_efficiency(student_id):
    try:
        student = get_db().get_student_by_id(student_id)
        if not student:
            return error_response('Student not found', 404)
        return _student_report(student)
    except Exception as e:
        return server_error('GET /api/efficiency/<studentId>', 'Failed to calculate efficiency', e)


@efficiency_api_bp.route('/roll/<roll_number>', methods=['GET'])
def roll_efficiency(roll_number):
    try:
        student = get_db().get_student_by_roll(roll_number.strip().upper())
        if not student:
            return error_response('Student not found', 404)
        return _student_report(student)
    except Exception as e:
        return server_error('GET /api/efficiency/roll/<roll>', 'Failed to calculate efficiency', e)


@efficiency_api_bp.route('', methods=['GET'])
def all_efficiency():
    """One summary per student (of the class, when given), best first."""
    try:
        try:
            filters = _filters()
        except ValueError as e:
            return error_response(str(e))

        ledger = get_ledger()
        reports = []
        for student in get_db().get_all_students(class_name=filters['class_name']):
            records = ledger.query(student_id=student['id'], **filters)
            reports.append(_report(student, None, compute_efficiency(records)))
        reports.sort(key=lambda r: r['efficiency'], reverse=True)
        return jsonify({'efficiencyData': reports})
    except Exception as e:
        return server_error('GET /api/efficiency', 'Failed to calculate efficiency', e)
