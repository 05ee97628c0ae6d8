"""
app.py — Flask entry point for the cultivation scheduling API.

Initializes the Flask app, registers all route blueprints,
calls init_db() and seed_defaults() on startup, and turns every
CultivationError into a JSON error response.

Writes are CSRF protected: clients fetch GET /api/csrf-token once per
session and send the value in the X-CSRFToken header.

Run: python app.py → localhost:5000
"""

import logging
import os

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf

from database import init_db, seed_defaults
from errors import CultivationError
from routes.export import export_bp
from routes.planning import planning_bp
from routes.schedule import schedule_bp
from routes.seasons import seasons_bp

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.secret_key = os.environ.get('SECRET_KEY', 'cultivation-local-app-secret-key')
    app.config['WTF_CSRF_CHECK_DEFAULT'] = True

    if test_config:
        app.config.update(test_config)

    CSRFProtect(app)

    # Initialize database and seed defaults
    with app.app_context():
        init_db()
        seed_defaults()

    @app.route('/api/csrf-token')
    def csrf_token():
        """Token for the X-CSRFToken header on POST, PATCH and DELETE."""
        return jsonify({'csrf_token': generate_csrf()})

    # Register blueprints
    app.register_blueprint(planning_bp)
    app.register_blueprint(seasons_bp)
    app.register_blueprint(schedule_bp)
    app.register_blueprint(export_bp)

    @app.errorhandler(CultivationError)
    def handle_cultivation_error(error):
        """Report engine errors as {"error": message, "kind": class name}."""
        logger.warning("%s: %s", type(error).__name__, error)
        body = {'error': str(error), 'kind': type(error).__name__}
        failures = getattr(error, 'failures', None)
        if failures:
            body['failures'] = [
                {'activity_id': activity_id, 'title': title, 'reason': reason}
                for activity_id, title, reason in failures
            ]
        return jsonify(body), error.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        logger.warning("CSRF check failed: %s", error.description)
        return jsonify({'error': error.description, 'kind': 'CSRFError'}), 400

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable for production
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
