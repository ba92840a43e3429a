"""
Logging configuration for the attendance tracker
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path


def setup_logging(app, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Configure logging for the Flask application.

    Args:
        app: Flask app instance
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: directory receiving the rotating log files
        max_log_size: maximum size of one log file (bytes)
        backup_count: number of rotated files kept
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'attendance_system.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'errors.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Replace handlers left over from a previous app instance
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    for channel in ('scheduler', 'face_recognition', 'database', 'api'):
        logging.getLogger(channel).setLevel(log_level)

    app.logger.setLevel(log_level)

    app.logger.info("=" * 50)
    app.logger.info("ATTENDANCE TRACKER STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {logging.getLevelName(log_level)}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class SchedulerLogger:
    """Logger for class-session scheduling events"""

    def __init__(self):
        self.logger = logging.getLogger('scheduler')

    def log_armed(self, class_name, class_id, phase, fire_at):
        self.logger.info(f"Armed {phase} - Class: {class_name} ({class_id}), At: {fire_at.isoformat()}")

    def log_window_opened(self, class_name, class_id, students):
        self.logger.info(f"Window OPEN - Class: {class_name} ({class_id}), Students: {students}")

    def log_window_closed(self, class_name, class_id, flushed):
        self.logger.info(f"Window CLOSED - Class: {class_name} ({class_id}), Records flushed: {flushed}")

    def log_cancelled(self, class_id, reason):
        self.logger.info(f"Trigger cancelled - Class: {class_id}, Reason: {reason}")

    def log_schedule_error(self, class_id, error_message):
        self.logger.warning(f"Cannot schedule class {class_id}: {error_message}")

    def log_handler_error(self, phase, class_id, error_message):
        self.logger.error(f"{phase} handler failed - Class: {class_id}, Error: {error_message}")


class RecognitionLogger:
    """Logger for face matching during monitoring windows"""

    def __init__(self):
        self.logger = logging.getLogger('face_recognition')

    def log_face_recognized(self, roll_number, confidence, class_id=None):
        class_info = f", Class: {class_id}" if class_id is not None else ""
        self.logger.debug(f"Face recognized - Roll: {roll_number}, Confidence: {confidence:.3f}{class_info}")

    def log_frame_rejected(self, label, distance, threshold):
        self.logger.debug(f"Frame ignored - Best: {label}, Distance: {distance:.3f}, Threshold: {threshold:.2f}")

    def log_recognition_error(self, error_message):
        self.logger.error(f"Recognition error - {error_message}")


class DatabaseLogger:
    """Logger for persistence operations"""

    def __init__(self):
        self.logger = logging.getLogger('database')

    def log_upsert(self, student_id, class_id, day, status=None):
        status_info = f", Status: {status}" if status else ""
        self.logger.debug(f"Attendance upsert - Student: {student_id}, Class: {class_id}, Day: {day}{status_info}")

    def log_error(self, operation, error_message):
        self.logger.error(f"DB Error - Operation: {operation}, Error: {error_message}")


class APILogger:
    """Logger for API calls"""

    def __init__(self):
        self.logger = logging.getLogger('api')

    def log_error(self, endpoint, error_message, status_code=500):
        self.logger.error(f"API Error - {endpoint}, Status: {status_code}, Error: {error_message}")


# Shared logger instances
scheduler_logger = SchedulerLogger()
recognition_logger = RecognitionLogger()
database_logger = DatabaseLogger()
api_logger = APILogger()
