# app.py

import logging
import os
from flask import Flask, abort, send_from_directory
from flask_cors import CORS
from dotenv import load_dotenv
from pymongo import MongoClient

from models import db, migrate
from routes import api
from store import DEFAULT_ADMIN_PASSWORD, StoreConfigurationError
from sql_store import SqlRosterStore, engine_options
from mongo_store import MongoRosterStore

# --- Environment and Logging ---
load_dotenv()
logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s:%(message)s')

def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '': return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')

def load_config():
    mongo_uri = os.environ.get('MONGODB_URI')
    return {
        'ROSTER_BACKEND': os.environ.get('ROSTER_BACKEND', 'mongo' if mongo_uri else 'sql'),
        'SQLALCHEMY_DATABASE_URI': os.environ.get('DATABASE_URL', 'sqlite:///roster.db'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MONGODB_URI': mongo_uri,
        'MONGODB_DB': os.environ.get('MONGODB_DB', 'roster'),
        'MONGODB_TRANSACTIONS': _env_flag('MONGODB_TRANSACTIONS', None),
        'STORE_TIMEOUT_SECONDS': float(os.environ.get('STORE_TIMEOUT_SECONDS', 5)),
        'ADMIN_PASSWORD_DEFAULT': os.environ.get('ADMIN_PASSWORD_DEFAULT', DEFAULT_ADMIN_PASSWORD),
        'ADMIN_PASSWORD_RESET_ON_BOOT': _env_flag('ADMIN_PASSWORD_RESET_ON_BOOT', True),
        'STATIC_DIR': os.environ.get('STATIC_DIR', 'dist'),
        'PORT': int(os.environ.get('PORT', 3000)),
    }

# --- Storage ---
def build_store(app):
    """Create the configured RosterStore. Nothing connects until the first API request."""
    config = app.config
    backend = config['ROSTER_BACKEND']
    timeout = config['STORE_TIMEOUT_SECONDS']
    common = {
        "admin_password_default": config['ADMIN_PASSWORD_DEFAULT'],
        "reset_admin_password": config['ADMIN_PASSWORD_RESET_ON_BOOT'],
        "timeout": timeout,
    }
    if backend == 'sql':
        uri = config.get('SQLALCHEMY_DATABASE_URI')
        if uri:
            config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', engine_options(uri, timeout))
            db.init_app(app)
            migrate.init_app(app, db)
        return SqlRosterStore(uri, **common)
    if backend == 'mongo':
        return MongoRosterStore(
            config['MONGODB_URI'],
            db_name=config['MONGODB_DB'],
            use_transactions=config['MONGODB_TRANSACTIONS'],
            client_factory=config.get('MONGO_CLIENT_FACTORY') or MongoClient,
            **common)
    raise StoreConfigurationError(f"Unknown ROSTER_BACKEND '{backend}'. Use 'sql' or 'mongo'.")

# --- Front-end ---
def register_frontend(app):
    static_dir = os.path.abspath(app.config['STATIC_DIR'])

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def frontend(path):
        if path.startswith('api/') or not os.path.isdir(static_dir): abort(404)
        if path and os.path.isfile(os.path.join(static_dir, path)):
            return send_from_directory(static_dir, path)
        return send_from_directory(static_dir, 'index.html')

# --- App Initialization ---
def create_app(config=None):
    app = Flask(__name__, static_folder=None)
    app.config.update(load_config())
    if config: app.config.update(config)
    CORS(app)
    app.extensions['roster_store'] = build_store(app)
    app.register_blueprint(api)
    register_frontend(app)
    return app

app = create_app()

if __name__ == "__main__":
    port = app.config['PORT']
    logging.info(f"Server running on http://localhost:{port}")
    app.run(host='0.0.0.0', port=port)
