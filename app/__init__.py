"""
App package initialization
Builds the Flask application and wires the attendance services
"""
import os
from datetime import datetime
from zoneinfo import ZoneInfo

from flask import Flask, jsonify

import config
from database import DatabaseManager
from logging_config import setup_logging
from app.models import AttendanceLedger, AttendanceMonitor, SessionScheduler


def _load_config(app, config_overrides=None):
    app.config.update(
        SECRET_KEY=config.SECRET_KEY,
        MAX_CONTENT_LENGTH=config.MAX_CONTENT_LENGTH,
        DATABASE_PATH=config.DATABASE_PATH,
        PRESENCE_FRACTION=config.PRESENCE_FRACTION,
        DETECTION_THRESHOLD=config.DETECTION_THRESHOLD,
        MAX_DETECTION_LOG=config.MAX_DETECTION_LOG,
        ATTENDANCE_QUERY_LIMIT=config.ATTENDANCE_QUERY_LIMIT,
        SCHEDULER_ENABLED=config.SCHEDULER_ENABLED,
        SCHEDULER_POLL_SECONDS=config.SCHEDULER_POLL_SECONDS,
        SCHEDULER_TIMEZONE=config.SCHEDULER_TIMEZONE,
        LOG_LEVEL=config.LOG_LEVEL,
        LOG_DIR=config.LOG_DIR,
    )
    if config_overrides:
        app.config.update(config_overrides)


def _init_services(app, clock=None, timer_factory=None):
    """Create the database, ledger, monitor and scheduler for this app instance"""
    timezone = app.config.get('SCHEDULER_TIMEZONE') or None
    if clock is None:
        tz = ZoneInfo(timezone) if timezone else None
        clock = lambda: datetime.now(tz)  # noqa: E731

    database = DatabaseManager(app.config['DATABASE_PATH'])
    ledger = AttendanceLedger(
        database,
        presence_fraction=app.config['PRESENCE_FRACTION'],
        clock=clock,
    )
    monitor = AttendanceMonitor(
        database,
        ledger,
        detection_threshold=app.config['DETECTION_THRESHOLD'],
        presence_fraction=app.config['PRESENCE_FRACTION'],
        max_log_length=app.config['MAX_DETECTION_LOG'],
        clock=clock,
    )
    scheduler = SessionScheduler(
        database,
        on_open=lambda schedule: monitor.open_window(schedule, source='scheduled'),
        on_close=lambda schedule: monitor.close_window(schedule['id']),
        clock=clock,
        timer_factory=timer_factory,
        poll_interval=app.config['SCHEDULER_POLL_SECONDS'],
    )

    app.extensions['attendance_db'] = database
    app.extensions['attendance_ledger'] = ledger
    app.extensions['attendance_monitor'] = monitor
    app.extensions['session_scheduler'] = scheduler
    return scheduler


def create_app(config_overrides=None, clock=None, timer_factory=None):
    """Factory function that builds the Flask application"""
    app = Flask(__name__)

    _load_config(app, config_overrides)

    setup_logging(app, log_level=app.config['LOG_LEVEL'], log_dir=app.config['LOG_DIR'])

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(app.config['DATABASE_PATH'])}")

    scheduler = _init_services(app, clock=clock, timer_factory=timer_factory)
    app.logger.info("[STARTUP] ✅ Ledger, monitor and scheduler initialized")

    from app.routes import register_blueprints
    register_blueprints(app)

    @app.route('/health')
    def health():
        return jsonify({
            'status': 'ok',
            'scheduler': scheduler.running,
            'scheduledClasses': len(scheduler.active_keys()),
        })

    if app.config['SCHEDULER_ENABLED']:
        scheduler.start()
        app.logger.info(
            "[STARTUP] ✅ Session scheduler running (poll every %ss, %s classes armed)",
            app.config['SCHEDULER_POLL_SECONDS'],
            len(scheduler.active_keys()),
        )
    else:
        app.logger.info("[STARTUP] Session scheduler disabled")

    return app
