from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import os
from dotenv import load_dotenv

load_dotenv()
db = SQLAlchemy()
migrate = Migrate()

DEFAULT_DATABASE_URL = 'sqlite:///parkease.db'


def init_db(app):
    # An explicit URI from create_app() overrides the environment
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL)
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Pool settings only make sense for a server database
    if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {
            'pool_size': 20,
            'pool_recycle': 1800,  # Recycle connections after 30 minutes
            'pool_pre_ping': True,
            'pool_timeout': 30,
            'max_overflow': 10,
            'echo': False
        })

    db.init_app(app)
    migrate.init_app(app, db)
