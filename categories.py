import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from db_config import db_categories, db_documents, new_id
from security import admin_required, login_required
from serializers import public_category

logger = logging.getLogger(__name__)

categories = Blueprint('categories', __name__, url_prefix='/categories')

DEFAULT_CATEGORIES = [
    {
        "name": "Publications",
        "description": "Research papers, journal articles, and books published",
        "maxCredits": 20,
        "perDocumentCredits": 5,
        "fields": ["Publication Type", "Title", "Journal/Conference", "Date", "DOI/URL"],
        "roleSpecificCriteria": {
            "Professor": {"maxCredits": 25, "perDocumentCredits": 6},
            "Associate Professor": {"maxCredits": 22, "perDocumentCredits": 5},
        },
    },
    {
        "name": "Industry Contributions",
        "description": "Consultations, industry projects, and collaborations",
        "maxCredits": 15,
        "perDocumentCredits": 3,
        "fields": ["Contribution Type", "Company/Organization", "Role", "Duration", "Outcome"],
    },
    {
        "name": "Academic Achievements",
        "description": "Awards, recognitions, and academic milestones",
        "maxCredits": 10,
        "perDocumentCredits": 2,
        "fields": ["Achievement Type", "Title", "Awarding Body", "Date", "Description"],
    },
    {
        "name": "Event Participation",
        "description": "Conferences, workshops, and seminars attended or organized",
        "maxCredits": 12,
        "perDocumentCredits": 3,
        "fields": ["Event Type", "Event Name", "Location", "Date", "Role", "Certificate"],
    },
    {
        "name": "Certifications",
        "description": "Professional certifications, training programs, and courses completed",
        "maxCredits": 15,
        "perDocumentCredits": 4,
        "fields": ["Certification Name", "Issuing Organization", "Date Obtained", "Expiry Date", "Certificate URL"],
    },
    {
        "name": "Student Feedback",
        "description": "Student reviews, evaluations, and feedback for teaching",
        "maxCredits": 10,
        "perDocumentCredits": 2,
        "fields": ["Course Code", "Course Name", "Semester", "Year", "Rating", "Comments"],
    },
]


class CategoryError(Exception):
    pass


def seed_default_categories():
    """Insert the default categories when none exist. Returns how many were added."""
    if db_categories().count_documents({}) > 0:
        return 0
    now = datetime.now(timezone.utc)
    records = []
    for category in DEFAULT_CATEGORIES:
        record = dict(category)
        record["_id"] = new_id()
        record["roleSpecificCriteria"] = dict(category.get("roleSpecificCriteria", {}))
        record["createdAt"] = now
        record["updatedAt"] = now
        records.append(record)
    db_categories().insert_many(records)
    logger.info("Seeded %d default categories", len(records))
    return len(records)


def all_categories():
    seed_default_categories()
    return list(db_categories().find().sort("name", 1))


def _credit_value(data, key, default=None):
    value = data.get(key, default)
    if value is None:
        raise CategoryError(f"{key} is required")
    if isinstance(value, bool):
        raise CategoryError(f"{key} must be a number")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise CategoryError(f"{key} must be a number")
    if value < 0:
        raise CategoryError(f"{key} cannot be negative")
    return int(value) if value.is_integer() else value


def _check_credit_pair(max_credits, per_document):
    if per_document > max_credits:
        raise CategoryError("perDocumentCredits cannot exceed maxCredits")


def _clean_fields(fields):
    if fields is None:
        return []
    if not isinstance(fields, list):
        raise CategoryError("fields must be a list of field names")
    cleaned = []
    for field in fields:
        # Accept {"name": ...} objects as well as plain labels
        name = field.get("name") if isinstance(field, dict) else field
        name = str(name or "").strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


def _clean_role_criteria(raw, default_max=None):
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise CategoryError("roleSpecificCriteria must be an object")
    cleaned = {}
    for role, values in raw.items():
        if not isinstance(values, dict):
            raise CategoryError(f"Criteria for {role} must be an object")
        max_credits = _credit_value(values, "maxCredits", 0)
        per_document = _credit_value(values, "perDocumentCredits", 0)
        # A zero max falls back to the category default
        effective_max = max_credits or default_max
        if per_document and effective_max is not None:
            _check_credit_pair(effective_max, per_document)
        cleaned[str(role).strip()] = {"maxCredits": max_credits, "perDocumentCredits": per_document}
    return cleaned


def category_payload(data, existing=None):
    """Validate create/update input and return the fields to store"""
    existing = existing or {}
    payload = {}

    name = data.get("name", existing.get("name"))
    if not name or not str(name).strip():
        raise CategoryError("Category name is required")
    payload["name"] = str(name).strip()

    payload["description"] = str(data.get("description", existing.get("description", "")) or "").strip()
    payload["maxCredits"] = _credit_value(data, "maxCredits", existing.get("maxCredits"))
    payload["perDocumentCredits"] = _credit_value(data, "perDocumentCredits", existing.get("perDocumentCredits"))
    _check_credit_pair(payload["maxCredits"], payload["perDocumentCredits"])

    payload["fields"] = _clean_fields(data.get("fields", existing.get("fields")))
    if "roleSpecificCriteria" in data:
        payload["roleSpecificCriteria"] = _clean_role_criteria(data["roleSpecificCriteria"], payload["maxCredits"])
    elif not existing:
        payload["roleSpecificCriteria"] = {}
    return payload


@categories.route('', methods=['GET'])
@login_required
def get_categories():
    """All categories with the criteria that apply to the caller"""
    try:
        return jsonify([public_category(c, g.current_user) for c in all_categories()]), 200
    except Exception as e:
        logger.exception("Error fetching categories")
        return jsonify({"error": str(e)}), 500


@categories.route('/<string:category_id>', methods=['GET'])
@login_required
def get_category(category_id):
    category = db_categories().find_one({"_id": category_id})
    if not category:
        return jsonify({"error": "Category not found"}), 404
    return jsonify(public_category(category, g.current_user)), 200


@categories.route('', methods=['POST'])
@admin_required
def create_category():
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        payload = category_payload(data)
        if db_categories().find_one({"name": payload["name"]}):
            return jsonify({"error": "A category with this name already exists"}), 409

        now = datetime.now(timezone.utc)
        payload.update({"_id": new_id(), "createdAt": now, "updatedAt": now})
        db_categories().insert_one(payload)
        logger.info("Category %s created by %s", payload["_id"], g.current_user["_id"])

        return jsonify(public_category(payload)), 201

    except CategoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error creating category")
        return jsonify({"error": str(e)}), 500


@categories.route('/<string:category_id>', methods=['PUT'])
@admin_required
def update_category(category_id):
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        existing = db_categories().find_one({"_id": category_id})
        if not existing:
            return jsonify({"error": "Category not found"}), 404

        payload = category_payload(data, existing)
        clash = db_categories().find_one({"name": payload["name"], "_id": {"$ne": category_id}})
        if clash:
            return jsonify({"error": "A category with this name already exists"}), 409

        payload["updatedAt"] = datetime.now(timezone.utc)
        db_categories().update_one({"_id": category_id}, {"$set": payload})

        # Keep denormalized names on documents in step
        if payload["name"] != existing.get("name"):
            db_documents().update_many({"category": category_id}, {"$set": {"categoryName": payload["name"]}})

        category = db_categories().find_one({"_id": category_id})
        return jsonify(public_category(category)), 200

    except CategoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error updating category %s", category_id)
        return jsonify({"error": str(e)}), 500


@categories.route('/<string:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    try:
        if not db_categories().find_one({"_id": category_id}):
            return jsonify({"error": "Category not found"}), 404

        in_use = db_documents().count_documents({"category": category_id})
        if in_use:
            return jsonify({
                "error": "Category has documents",
                "message": f"{in_use} document(s) were submitted against this category"
            }), 409

        db_categories().delete_one({"_id": category_id})
        logger.info("Category %s deleted by %s", category_id, g.current_user["_id"])
        return jsonify({"message": "Category deleted successfully"}), 200

    except Exception as e:
        logger.exception("Error deleting category %s", category_id)
        return jsonify({"error": str(e)}), 500


@categories.route('/<string:category_id>/role-criteria', methods=['PUT'])
@admin_required
def set_role_criteria(category_id):
    """Add or replace the override for one role or designation"""
    try:
        data = request.get_json(silent=True)
        if not data or not str(data.get("role") or "").strip():
            return jsonify({"error": "Role is required"}), 400

        category = db_categories().find_one({"_id": category_id})
        if not category:
            return jsonify({"error": "Category not found"}), 404

        role = str(data["role"]).strip()
        criteria = _clean_role_criteria({role: {
            "maxCredits": data.get("maxCredits"),
            "perDocumentCredits": data.get("perDocumentCredits"),
        }}, category.get("maxCredits"))

        overrides = dict(category.get("roleSpecificCriteria") or {})
        overrides[role] = criteria[role]
        db_categories().update_one(
            {"_id": category_id},
            {"$set": {"roleSpecificCriteria": overrides, "updatedAt": datetime.now(timezone.utc)}}
        )
        category = db_categories().find_one({"_id": category_id})
        return jsonify(public_category(category)), 200

    except CategoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error setting role criteria on %s", category_id)
        return jsonify({"error": str(e)}), 500


@categories.route('/<string:category_id>/role-criteria/<path:role>', methods=['DELETE'])
@admin_required
def remove_role_criteria(category_id, role):
    category = db_categories().find_one({"_id": category_id})
    if not category:
        return jsonify({"error": "Category not found"}), 404

    overrides = dict(category.get("roleSpecificCriteria") or {})
    if role not in overrides:
        return jsonify({"error": f"No criteria defined for {role}"}), 404

    del overrides[role]
    db_categories().update_one(
        {"_id": category_id},
        {"$set": {"roleSpecificCriteria": overrides, "updatedAt": datetime.now(timezone.utc)}}
    )
    category = db_categories().find_one({"_id": category_id})
    return jsonify(public_category(category)), 200
