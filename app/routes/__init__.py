"""
Routes package
Registers every blueprint
"""
from .api_students import student_api_bp
from .api_classes import class_api_bp
from .api_attendance import attendance_api_bp
from .api_efficiency import efficiency_api_bp
from .api_monitoring import monitoring_api_bp


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(student_api_bp)
    app.register_blueprint(class_api_bp)
    app.register_blueprint(attendance_api_bp)
    app.register_blueprint(efficiency_api_bp)
    app.register_blueprint(monitoring_api_bp)

    app.logger.info("✅ Registered all blueprints")
