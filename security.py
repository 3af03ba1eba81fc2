import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import bcrypt
import jwt
from flask import current_app, g, jsonify, request

from constants import USER_SUSPENDED, REVIEWER_ROLES, ROLE_ADMIN
from db_config import db_users

logger = logging.getLogger(__name__)


def hash_password(password):
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt)


def check_password(password, hashed):
    if not password or not hashed:
        return False
    if isinstance(hashed, str):
        hashed = hashed.encode('utf-8')
    return bcrypt.checkpw(password.encode('utf-8'), hashed)


def create_token(payload, minutes=None):
    """Sign ``payload`` as an HS256 JWT that expires after ``minutes``"""
    if minutes is None:
        minutes = current_app.config["JWT_EXPIRE_MINUTES"]
    claims = dict(payload)
    claims['exp'] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm='HS256')


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=['HS256'])


def create_access_token(user):
    return create_token({'user_id': user['_id'], 'role': user.get('role'), 'type': 'access'})


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return None


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if request.method == 'OPTIONS':
            return jsonify(status='ok'), 200

        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            token_data = decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({"error": "Session expired, please login again"}), 401
        except jwt.InvalidTokenError:
            return jsonify({"error": "Invalid token"}), 401

        if token_data.get('type') != 'access':
            return jsonify({"error": "Invalid token"}), 401

        user = db_users().find_one({"_id": token_data.get('user_id')})
        if user is None:
            return jsonify({"error": "User not found"}), 401
        if user.get('status') == USER_SUSPENDED:
            return jsonify({"error": "Your account has been suspended. Please contact an administrator."}), 403

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            role = g.current_user.get('role')
            if role not in roles:
                logger.warning("User %s with role %s denied access to %s", g.current_user['_id'], role, request.path)
                return jsonify({"error": "Access denied"}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


reviewer_required = roles_required(*REVIEWER_ROLES)
admin_required = roles_required(ROLE_ADMIN)
