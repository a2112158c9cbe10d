# routes.py

import json
import logging
from functools import wraps
from flask import Blueprint, current_app, jsonify, request

from store import ADMIN_PASSWORD, SHIFT_TIMES

api = Blueprint('api', __name__, url_prefix='/api')

DB_CONNECTION_ERROR = "Database connection error. Please check the storage configuration."

def get_store():
    return current_app.extensions['roster_store']

def _json_object():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}

# --- Decorator for Error Handling ---
def api_error_handler(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try: return f(*args, **kwargs)
        except Exception as e:
            logging.error(f"An error occurred in endpoint '{f.__name__}': {e}", exc_info=True)
            return jsonify({"error": "An unexpected server error occurred."}), 500
    return decorated_function

@api.before_request
def ensure_store():
    try:
        get_store().ensure_ready()
    except Exception as e:
        logging.error(f"Storage initialisation failed: {e}", exc_info=True)
        return jsonify({"success": False, "message": DB_CONNECTION_ERROR}), 500

# --- API Endpoints ---
@api.route("/login", methods=['POST'])
@api_error_handler
def login():
    payload = _json_object()
    result = get_store().authenticate(payload.get('password'))
    if result['granted']:
        return jsonify({"success": True, "token": result['token']})
    return jsonify({"success": False, "message": "Invalid password"}), 401

@api.route("/roster", methods=['GET'])
@api_error_handler
def list_roster():
    return jsonify(get_store().list_roster(request.args.get('date')))

@api.route("/settings", methods=['GET', 'POST'])
@api_error_handler
def handle_settings():
    store = get_store()
    if request.method == 'GET': return jsonify(store.read_shift_times())
    payload = _json_object()
    shift_times, admin_password = payload.get('shift_times'), payload.get('admin_password')
    if shift_times: store.set_setting(SHIFT_TIMES, json.dumps(shift_times))
    if admin_password: store.set_setting(ADMIN_PASSWORD, str(admin_password))
    return jsonify({"success": True})

@api.route("/roster/confirm", methods=['POST'])
@api_error_handler
def confirm_roster():
    data = _json_object().get('data')
    if not isinstance(data, list): return jsonify({"success": False, "message": "Invalid data"}), 400
    try:
        get_store().sync_roster(data)
    except Exception as e:
        logging.error(f"Error saving roster: {e}", exc_info=True)
        return jsonify({"success": False, "message": "Failed to save roster"}), 500
    return jsonify({"success": True})
