import logging
import re
from datetime import datetime, timezone

from pymongo.errors import DuplicateKeyError

from constants import ROLES, DESIGNATIONS, USER_ACTIVE, MIN_PASSWORD_LENGTH
from db_config import db_users, db_signin, new_id
from security import hash_password

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ["name", "department", "designation", "specialization", "yearJoined", "phone"]

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class AccountError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def normalize_email(email):
    return (email or "").strip().lower()


def validate_email(email):
    return bool(EMAIL_RE.match(email or ""))


def validate_password(password):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise AccountError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def validate_profile_fields(data):
    designation = data.get("designation")
    if designation and designation not in DESIGNATIONS:
        raise AccountError(f"Invalid designation. Must be one of: {', '.join(DESIGNATIONS)}")
    if "name" in data and not str(data.get("name") or "").strip():
        raise AccountError("Name cannot be empty")


def find_user_by_email(email):
    return db_users().find_one({"email": normalize_email(email)})


def create_account(data, role):
    """Insert a user and its signin record.

    ``data`` carries name, email, password and optional profile fields.
    Raises AccountError on invalid input or when the email is taken.
    """
    if role not in ROLES:
        raise AccountError(f"Invalid role. Must be one of: {', '.join(ROLES)}")

    name = str(data.get("name") or "").strip()
    email = normalize_email(data.get("email"))
    password = data.get("password")

    if not name or not email or not password:
        raise AccountError("Missing required fields")
    if not validate_email(email):
        raise AccountError("Invalid email address")
    validate_password(password)
    validate_profile_fields(data)

    if find_user_by_email(email):
        raise AccountError("An account with this email already exists", 409)

    user = {
        "_id": new_id(),
        "name": name,
        "email": email,
        "role": role,
        "status": USER_ACTIVE,
        "createdAt": datetime.now(timezone.utc),
    }
    for field in PROFILE_FIELDS:
        if field != "name" and data.get(field):
            user[field] = str(data[field]).strip()

    try:
        db_users().insert_one(user)
    except DuplicateKeyError:
        raise AccountError("An account with this email already exists", 409)

    db_signin().insert_one({"_id": user["_id"], "password": hash_password(password)})
    logger.info("Created %s account %s (%s)", role, user["_id"], email)
    return user


def delete_account(user_id):
    result = db_users().delete_one({"_id": user_id})
    db_signin().delete_one({"_id": user_id})  # Remove from signin collection
    return result.deleted_count > 0
