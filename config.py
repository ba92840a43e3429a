# config.py - Configuration and constants for the attendance tracker

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='1'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# Flask app configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB, reference images travel as base64 JSON

# Storage
DATABASE_PATH = os.getenv('DATABASE_PATH', 'attendance_system.db')

# Attendance rules
PRESENCE_FRACTION = min(1.0, max(0.01, float(os.getenv('PRESENCE_FRACTION', '0.75'))))
ATTENDANCE_QUERY_LIMIT = 100

# Face matching (lower = stricter)
DETECTION_THRESHOLD = float(os.getenv('DETECTION_THRESHOLD', '0.6'))
# 0 keeps every detection of a window
MAX_DETECTION_LOG = max(0, int(os.getenv('MAX_DETECTION_LOG', '0')))

# Reference image validation
SUPPORTED_IMAGE_FORMATS = {'JPEG', 'PNG', 'WEBP'}
MIN_IMAGE_BYTES = 64
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MB

# Session scheduler
SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', '1')
SCHEDULER_POLL_SECONDS = max(1, int(os.getenv('SCHEDULER_POLL_SECONDS', '60')))
SCHEDULER_TIMEZONE = os.getenv('SCHEDULER_TIMEZONE', 'Asia/Kolkata')

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_DIR = os.getenv('LOG_DIR', 'logs')

# Development server (run.py)
FLASK_HOST = os.getenv('FLASK_HOST', '0.0.0.0')
FLASK_PORT = int(os.getenv('FLASK_PORT', '5000'))
FLASK_DEBUG = _env_flag('FLASK_DEBUG', '0')
