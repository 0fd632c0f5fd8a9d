import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)

    # Import and register blueprints
    from hurricane_game.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from hurricane_game.utils.logging_config import setup_logging

    setup_logging(app)

    # Request timing and debug request logging
    register_request_hooks(app)

    # Load the static storm schedule (degraded mode on failure)
    load_storm_schedule(app)

    # Fail fast on an invalid ROTATION_PERIOD/ROTATION_EPOCH
    from hurricane_game.utils.game_clock import rotation_from_config

    rotation_from_config(app.config)

    # Create database tables and seed the badge catalog
    with app.app_context():
        db.create_all()

        from hurricane_game.services.badge_service import seed_badge_definitions

        seed_badge_definitions(db.session)

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from hurricane_game.services.scheduler_service import SchedulerService

        SchedulerService(app)

    return app


def load_storm_schedule(app):
    """Load the storm schedule into app.extensions, falling back to an empty one"""
    from hurricane_game.utils.schedule_loader import ScheduleLoadError, load_schedule

    path = app.config.get("STORM_SCHEDULE_PATH")
    try:
        schedule = load_schedule(path)
        app.extensions["storm_schedule"] = schedule
        app.extensions["storm_schedule_error"] = None
        logger.info(f"Loaded {len(schedule)} storms from {path}")
    except ScheduleLoadError as e:
        app.extensions["storm_schedule"] = ()
        app.extensions["storm_schedule_error"] = str(e)
        logger.error(f"Storm schedule unavailable, running degraded: {e}")


def register_request_hooks(app):
    """Register before/after request hooks for timing and debug logging"""
    from hurricane_game.utils.logging_config import log_request_info
    from hurricane_game.utils.performance import (
        log_request_performance,
        track_request_performance,
    )

    app.before_request(track_request_performance)
    app.after_request(log_request_performance)

    if app.debug:
        app.before_request(log_request_info)


def register_error_handlers(app):
    """Register global error handlers"""

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        logger.error(f"Database error on {request.method} {request.path}: {error}")
        return jsonify({"error": "Database unavailable"}), 503

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from hurricane_game import models  # noqa: F401, E402 - imported for model registration
