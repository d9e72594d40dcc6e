from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import (
    create_access_token,
    jwt_required,
    current_user,
    JWTManager
)
from functools import wraps
from datetime import timedelta
import logging
import os
from dotenv import load_dotenv
from sqlalchemy import func
from parkease_api.models.users import User
from parkease_api.db.db import db
from parkease_api.services.booking_workflow import Caller
from parkease_api.utils.request_parser import json_body, require_strings

load_dotenv()
logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'c2lrbG9NTkw')
JWT_ACCESS_TOKEN_HOURS = int(os.getenv('JWT_ACCESS_TOKEN_HOURS', 24 * 7))
MIN_PASSWORD_LENGTH = 6


def init_jwt(app):
    """Initialize JWT with the Flask app"""
    app.config.setdefault('JWT_SECRET_KEY', JWT_SECRET_KEY)
    app.config.setdefault('JWT_ACCESS_TOKEN_EXPIRES', timedelta(hours=JWT_ACCESS_TOKEN_HOURS))
    jwt = JWTManager(app)

    @jwt.user_lookup_loader
    def load_user(_jwt_header, jwt_data):
        return db.session.get(User, jwt_data['sub'])

    @jwt.user_lookup_error_loader
    def user_lookup_error(_jwt_header, _jwt_data):
        return jsonify({'error': 'Token is not valid'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Token is not valid'}), 401

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'No authentication token, access denied'}), 401

    @jwt.expired_token_loader
    def expired_token(_jwt_header, _jwt_data):
        return jsonify({'error': 'Token has expired'}), 401

    return jwt


def active_user_required(f):
    """jwt_required plus a check that the account has not been deactivated."""
    @wraps(f)
    @jwt_required()
    def decorated_function(*args, **kwargs):
        if not current_user.is_active:
            return jsonify({'error': 'User account is deactivated'}), 403
        return f(*args, **kwargs)
    return decorated_function


def current_caller():
    return Caller(user_id=current_user.id, role=current_user.role)


def issue_token(user):
    return create_access_token(identity=user.id, additional_claims={'role': user.role})


def _auth_response(user, message, status=200):
    return jsonify({
        'message': message,
        'token': issue_token(user),
        'user': user.to_dict()
    }), status


def _create_account(data, role):
    require_strings(data, ['name', 'email', 'password', 'phone'])

    if len(data['password']) < MIN_PASSWORD_LENGTH:
        return None, (jsonify({'error': 'Password must be at least 6 characters'}), 400)

    email = data['email'].strip().lower()
    if User.query.filter(func.lower(User.email) == email).first():
        return None, (jsonify({'error': 'User already exists with this email'}), 400)

    user = User(
        name=data['name'].strip(),
        email=email,
        phone=data['phone'].strip(),
        role=role
    )
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()
    logger.info("Registered %s account %s", role, email)
    return user, None


@auth_bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    user, error = _create_account(data, 'user')
    if error:
        return error
    return _auth_response(user, 'User registered successfully', 201)


@auth_bp.route('/register/admin', methods=['POST'])
def register_admin():
    data = json_body()
    if data.get('admin_code') != current_app.config['ADMIN_REGISTRATION_CODE']:
        return jsonify({'error': 'Invalid admin code'}), 400

    user, error = _create_account(data, 'admin')
    if error:
        return error
    return _auth_response(user, 'Admin registered successfully', 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    email = data.get('email')
    password = data.get('password')

    if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
        return jsonify({'error': 'Email and password are required'}), 400
    email = email.strip().lower()

    user = User.query.filter(func.lower(User.email) == email).first()
    if not user or not user.check_password(password):
        return jsonify({'error': 'Invalid credentials'}), 401

    if not user.is_active:
        return jsonify({'error': 'User account is deactivated'}), 403

    return _auth_response(user, 'Login successful')


@auth_bp.route('/me', methods=['GET'])
@active_user_required
def get_user():
    return jsonify(current_user.to_dict()), 200
