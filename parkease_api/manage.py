import logging
import os
import sys

import click
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS

from parkease_api.controllers.admin import admin_bp
from parkease_api.controllers.auth import auth_bp, init_jwt
from parkease_api.controllers.bookings import bookings_bp
from parkease_api.controllers.locations import locations_bp
from parkease_api.controllers.reports import reports_bp
from parkease_api.controllers.slots import slots_bp
from parkease_api.db.db import init_db, db
from parkease_api.services.errors import BookingError

# Migrations:
# 1 flask --app parkease_api.manage db migrate -m "your commit message"
# 2 flask --app parkease_api.manage db upgrade
# Demo data: flask --app parkease_api.manage seed

load_dotenv()


def setup_logging(level=None):
    """Setup application logging configuration"""
    logging.basicConfig(
        level=level or os.getenv('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    return logging.getLogger(__name__)


def register_error_handlers(app):
    logger = logging.getLogger(__name__)

    @app.errorhandler(BookingError)
    def handle_booking_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        logger.exception("Unhandled error")
        return jsonify({'error': 'Internal Server Error'}), 500


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables without running migrations."""
        db.create_all()
        click.echo('Database tables created')

    @app.cli.command('seed')
    @click.option('--admin-email', default=lambda: os.getenv('SEED_ADMIN_EMAIL', 'admin@parkease.local'))
    @click.option('--admin-password', default=lambda: os.getenv('SEED_ADMIN_PASSWORD', 'admin123'))
    def seed_command(admin_email, admin_password):
        """Seed demo locations and slots."""
        from parkease_api.db.initializers.parking_initializer import initialize_parking_slots
        created = initialize_parking_slots(admin_email, admin_password)
        click.echo(f'Seeded {created} slots')


def create_app(config=None):
    app = Flask(__name__)
    app.secret_key = os.getenv('SECRET_KEY', 'FB27D156173716A31912F1BD6CEDB')

    app.config['JSON_SORT_KEYS'] = False
    app.config['ADMIN_REGISTRATION_CODE'] = os.getenv('ADMIN_REGISTRATION_CODE', 'ADMIN2024')
    app.config['EXTENSION_FEE'] = float(os.getenv('EXTENSION_FEE', 10))
    if config:
        app.config.update(config)

    setup_logging(app.config.get('LOG_LEVEL'))

    # CORS configuration
    CORS(app, origins=os.getenv('FRONTEND_URL', 'http://localhost:5173'), supports_credentials=True)

    app.register_blueprint(auth_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(reports_bp)

    init_jwt(app)
    init_db(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'OK', 'message': 'ParkEase API is running'})

    logging.getLogger(__name__).info("ParkEase API initialized")
    return app


if __name__ == '__main__':
    create_app().run(host="0.0.0.0", port=int(os.getenv('PORT', 5000)), debug=os.getenv('FLASK_DEBUG') == '1')
