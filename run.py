"""
Development server for the attendance tracker
The session scheduler runs inside this process, so the reloader stays off
"""
import config
from app import create_app


def main():
    app = create_app()
    app.logger.info(
        "Serving attendance tracker on %s:%s (debug=%s, scheduler=%s)",
        config.FLASK_HOST, config.FLASK_PORT, config.FLASK_DEBUG, app.config['SCHEDULER_ENABLED'],
    )
    app.run(
        host=config.FLASK_HOST,
        port=config.FLASK_PORT,
        debug=config.FLASK_DEBUG,
        threaded=True,
        use_reloader=False,
    )


if __name__ == '__main__':
    main()
