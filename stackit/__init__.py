import logging
from datetime import datetime, timezone

import click
from flask import Flask, jsonify
from flask.logging import default_handler
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import Config
from .content import configure_cloudinary
from .db import PostgresStore, get_store
from .errors import StackItError
from .realtime import socketio

HTTP_ERROR_MESSAGES = {
    404: 'Endpoint not found',
    405: 'Method not allowed',
}


def create_app(config=None, store=None):
    """Build the StackIt API.

    ``config`` overrides keys of :class:`Config`; ``store`` replaces the
    PostgreSQL store (anything with a ``session()`` context manager that
    yields a repository).
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    configure_logging(app)
    CORS(app, origins=app.config['CLIENT_URL'])
    configure_cloudinary(app)

    app.extensions['stackit.store'] = store or PostgresStore(app.config['DATABASE_URL'])
    socketio.init_app(app, cors_allowed_origins=app.config['CLIENT_URL'])

    from .routes import answers, comments, notifications, questions, tags, users
    for module in (users, questions, answers, comments, notifications, tags):
        app.register_blueprint(module.bp, url_prefix='/api')

    register_error_handlers(app)
    register_commands(app)

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'service': 'StackIt API'
        }), 200

    return app


def configure_logging(app):
    level = getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO)
    app.logger.removeHandler(default_handler)
    if not any(h.get_name() == 'stackit' for h in app.logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name('stackit')
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
        app.logger.addHandler(handler)
    app.logger.setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(StackItError)
    def handle_stackit_error(error):
        return jsonify({'error': error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        message = HTTP_ERROR_MESSAGES.get(error.code, error.description)
        return jsonify({'error': message}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception('Unhandled exception')
        return jsonify({'error': 'Internal server error'}), 500


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create the StackIt tables."""
        with app.open_resource('schema.sql', 'r') as f:
            get_store().init_schema(f.read())
        click.echo('Initialized the database.')
