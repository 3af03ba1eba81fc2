import logging

from flask import Blueprint, jsonify, g

from categories import all_categories
from constants import ROLE_FACULTY, ROLE_HOD, STATUS_PENDING
from criteria import credit_summary
from db_config import db_users, db_documents
from security import reviewer_required

logger = logging.getLogger(__name__)

faculty_list = Blueprint('faculty_list', __name__)


def department_overview(department):
    """Credit standing of every faculty member (and HOD) in a department"""
    categories = all_categories()
    members = list(db_users().find({
        "department": department,
        "role": {"$in": [ROLE_FACULTY, ROLE_HOD]},
    }).sort("name", 1))

    if not members:
        return []

    member_ids = [m["_id"] for m in members]
    documents_by_user = {}
    for document in db_documents().find({"userId": {"$in": member_ids}}):
        documents_by_user.setdefault(document["userId"], []).append(document)

    overview = []
    for member in members:
        user_documents = documents_by_user.get(member["_id"], [])
        summary = credit_summary(user_documents, categories, member)
        overview.append({
            "id": member["_id"],
            "name": member.get("name", ""),
            "email": member.get("email", ""),
            "role": member.get("role", ROLE_FACULTY),
            "designation": member.get("designation", ""),
            "status": member.get("status", "active"),
            "totalCredits": summary["totalCredits"],
            "totalMaxCredits": summary["totalMaxCredits"],
            "progress": summary["progress"],
            "pendingDocuments": sum(1 for d in user_documents if d.get("status") == STATUS_PENDING),
            "documentCount": len(user_documents),
        })
    return overview


@faculty_list.route('/faculty/<department>', methods=['GET'])
@reviewer_required
def get_faculty_list(department):
    try:
        reviewer = g.current_user
        if reviewer.get("role") == ROLE_HOD and reviewer.get("department") != department:
            return jsonify({"error": "Access denied"}), 403

        data = department_overview(department)
        return jsonify({
            "status": "success",
            "department": department,
            "faculty_count": len(data),
            "data": data
        }), 200

    except Exception as e:
        logger.exception("Error building faculty overview for %s", department)
        return jsonify({
            "status": "error",
            "message": str(e)
        }), 500
