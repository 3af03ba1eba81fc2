import logging
from flask_pymongo import PyMongo
from gridfs import GridFS
from bson.objectid import ObjectId
from pymongo import ASCENDING

logger = logging.getLogger(__name__)

mongo = PyMongo()


def new_id():
    return str(ObjectId())


# Collections
def db_users():
    return mongo.db.users


def db_signin():
    return mongo.db.signin


def db_categories():
    return mongo.db.categories


def db_documents():
    return mongo.db.documents


def db_credential_requests():
    return mongo.db.credential_requests


def db_otp():
    return mongo.db.otp_verification


def grid_fs():
    return GridFS(mongo.db)


def ensure_indexes():
    """Create the indexes the queries in this app rely on"""
    db_users().create_index([("email", ASCENDING)], unique=True)
    db_users().create_index([("role", ASCENDING), ("department", ASCENDING)])
    db_documents().create_index([("userId", ASCENDING)])
    db_documents().create_index([("status", ASCENDING)])
    db_documents().create_index([("department", ASCENDING)])
    db_documents().create_index([("category", ASCENDING)])
    db_otp().create_index([("email", ASCENDING)])
    logger.info("MongoDB indexes ensured")
