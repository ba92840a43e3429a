"""
Context utilities
Access to the per-app attendance services and the shared 500 response
"""
from flask import current_app, jsonify

from logging_config import api_logger


def get_db():
    return current_app.extensions['attendance_db']


def get_ledger():
    return current_app.extensions['attendance_ledger']


def get_monitor():
    return current_app.extensions['attendance_monitor']


def get_scheduler():
    return current_app.extensions['session_scheduler']


def error_response(message, status_code=400):
    return jsonify({'error': message}), status_code


def server_error(endpoint, summary, exc):
    """Log an unexpected failure and turn it into a 500 payload."""
    api_logger.log_error(endpoint, exc)
    return jsonify({'error': summary, 'message': str(exc)}), 500
