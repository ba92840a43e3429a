"""
API routes for students
Registration, lookup and reference descriptors
"""
from flask import Blueprint, jsonify

from core.inference.matcher import DescriptorError, descriptor_to_blob
from app.utils import (
    error_response,
    get_db,
    get_request_data,
    serialize_student,
    server_error,
    validate_reference_image
)

student_api_bp = Blueprint('student_api', __name__, url_prefix='/api/students')


def _normalize_roll(roll_number):
    return str(roll_number or '').strip().upper()


@student_api_bp.route('/register', methods=['POST'])
def register_student():
    """Enroll a student with a reference image."""
    try:
        data = get_request_data()
        name = str(data.get('name') or '').strip()
        roll_number = _normalize_roll(data.get('rollNumber'))
        class_name = str(data.get('className') or '').strip()
        reference_image = data.get('referenceImage')

        if not name or not roll_number or not class_name or not reference_image:
            return error_response('All fields are required (name, rollNumber, className, referenceImage)')

        db = get_db()
        if db.get_student_by_roll(roll_number):
            return error_response('Student with this roll number already exists')

        try:
            reference_image = validate_reference_image(reference_image)
        except ValueError as e:
            return error_response(str(e))

        student_id = db.add_student(name, roll_number, class_name, reference_image)
        if student_id is None:
            # Lost a race with a concurrent registration of the same roll number
            return error_response('Student with this roll number already exists')

        student = serialize_student(db.get_student_by_id(student_id))
        return jsonify({'message': 'Student registered successfully', 'student': student}), 201
    except Exception as e:
        return server_error('POST /api/students/register', 'Failed to register student', e)


@student_api_bp.route('', methods=['GET'])
def list_students():
    try:
        students = get_db().get_all_students()
        return jsonify({'students': [serialize_student(s) for s in students]})
    except Exception as e:
        return server_error('GET /api/students', 'Failed to fetch students', e)


@student_api_bp.route('/<roll_number>', methods=['GET'])
def get_student(roll_number):
    try:
        student = get_db().get_student_by_roll(_normalize_roll(roll_number))
        if not student:
            return error_response('Student not found', 404)
        return jsonify({'student': serialize_student(student)})
    except Exception as e:
        return server_error('GET /api/students/<roll>', 'Failed to fetch student', e)


@student_api_bp.route('/<roll_number>/descriptor', methods=['POST'])
def update_descriptor(roll_number):
    """Store the reference descriptor computed by the recognition capability."""
    try:
        data = get_request_data()
        descriptor = data.get('faceDescriptor')
        if not isinstance(descriptor, list) or not descriptor:
            return error_response('Valid face descriptor array is required')

        try:
            blob = descriptor_to_blob(descriptor)
        except DescriptorError as e:
            return error_response(str(e))

        db = get_db()
        roll_number = _normalize_roll(roll_number)
        if not db.set_face_descriptor(roll_number, blob):
            return error_response('Student not found', 404)

        student = db.get_student_by_roll(roll_number)
        return jsonify({'message': 'Face descriptor updated successfully', 'studentId': student['id']})
    except Exception as e:
        return server_error('POST /api/students/<roll>/descriptor', 'Failed to update face descriptor', e)


@student_api_bp.route('/<roll_number>/reference', methods=['GET'])
def get_reference(roll_number):
    try:
        student = get_db().get_student_by_roll(_normalize_roll(roll_number))
        if not student:
            return error_response('Student not found', 404)
        payload = serialize_student(student, include_reference=True)
        return jsonify({
            'referenceImage': payload['referenceImage'],
            'faceDescriptor': payload['faceDescriptor'],
        })
    except Exception as e:
        return server_error('GET /api/students/<roll>/reference', 'Failed to fetch reference', e)
