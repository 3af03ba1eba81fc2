import io
import logging
from datetime import datetime, timezone

from bson.objectid import ObjectId
from flask import Blueprint, current_app, request, jsonify, send_file, g, url_for
from gridfs.errors import NoFile
from werkzeug.exceptions import HTTPException

import lifecycle
from constants import (
    ROLE_FACULTY,
    ROLE_HOD,
    ROLE_PRINCIPAL,
    ROLE_ADMIN,
    REVIEWER_ROLES,
    USER_ACTIVE,
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_REVISABLE,
    STATUS_REJECTED,
    DOCUMENT_STATUSES,
    DEFAULT_REVISION_COMMENT,
    DEFAULT_REJECTION_COMMENT,
)
from categories import all_categories
from criteria import credit_summary, submission_credits
from db_config import db_documents, db_categories, db_users, grid_fs, new_id
from file_preview import (
    PreviewError,
    allowed_file,
    build_preview,
    clean_filename,
    content_type_for,
    fetch_remote_file,
)
from mail import (
    send_document_submitted_mail,
    send_document_approved_mail,
    send_document_revisable_mail,
    send_document_rejected_mail,
)
from security import login_required, roles_required, reviewer_required
from serializers import public_document

logger = logging.getLogger(__name__)

documents = Blueprint('documents', __name__, url_prefix='/documents')

SUBMITTER_ROLES = (ROLE_FACULTY, ROLE_HOD, ROLE_PRINCIPAL)

_EPOCH = datetime(1970, 1, 1)


def _now():
    return datetime.now(timezone.utc)


def _sort_date(document):
    value = document.get("submittedAt") or document.get("createdAt")
    if not isinstance(value, datetime):
        return _EPOCH
    return value.replace(tzinfo=None)


def _sort_title(document):
    return (document.get("title") or "").lower()


# sort name -> (key, reverse)
SORTS = {
    "date-desc": (_sort_date, True),
    "date-asc": (_sort_date, False),
    "title-asc": (_sort_title, False),
    "title-desc": (_sort_title, True),
}


# Role scoping
def visibility_query(user):
    """Mongo filter limiting documents to what ``user`` may see"""
    role = user.get("role")
    if role in (ROLE_PRINCIPAL, ROLE_ADMIN):
        return {}
    if role == ROLE_HOD and user.get("department"):
        return {"$or": [{"department": user["department"]}, {"userId": user["_id"]}]}
    return {"userId": user["_id"]}


def can_view(user, document):
    role = user.get("role")
    if document.get("userId") == user["_id"] or role in (ROLE_PRINCIPAL, ROLE_ADMIN):
        return True
    return role == ROLE_HOD and bool(user.get("department")) and document.get("department") == user["department"]


def can_review(user, document):
    role = user.get("role")
    if role not in REVIEWER_ROLES or document.get("userId") == user["_id"]:
        return False
    if role == ROLE_HOD:
        return bool(user.get("department")) and document.get("department") == user["department"]
    return True


def can_view_user(viewer, target):
    if viewer["_id"] == target["_id"] or viewer.get("role") in (ROLE_PRINCIPAL, ROLE_ADMIN):
        return True
    return (
        viewer.get("role") == ROLE_HOD
        and bool(viewer.get("department"))
        and target.get("department") == viewer["department"]
    )


def _load_visible(document_id):
    """Return (document, error_response)"""
    document = db_documents().find_one({"_id": document_id})
    if not document:
        return None, (jsonify({"error": "Document not found"}), 404)
    if not can_view(g.current_user, document):
        return None, (jsonify({"error": "Access denied"}), 403)
    return document, None


def _load_owned(document_id):
    document = db_documents().find_one({"_id": document_id})
    if not document:
        return None, (jsonify({"error": "Document not found"}), 404)
    if document.get("userId") != g.current_user["_id"]:
        return None, (jsonify({"error": "Only the owner can modify this document"}), 403)
    return document, None


def _transition_error(e):
    return jsonify({"error": "Invalid status transition", "message": str(e)}), 400


# Validation
def _clean_field_values(fields):
    if fields is None:
        return {}
    if not isinstance(fields, dict):
        raise ValueError("fields must be an object of field name to value")
    return {str(k): "" if v is None else str(v) for k, v in fields.items()}


def missing_fields(category, values):
    return [name for name in category.get("fields", []) if not str(values.get(name, "")).strip()]


def _submission_problem(document, category):
    """Reason a document cannot be submitted yet, or None"""
    if not str(document.get("title") or "").strip():
        return "Please enter a document title"
    if category is None:
        return "Category no longer exists"
    missing = missing_fields(category, document.get("fields", {}))
    if missing:
        return f"Please fill in all required fields: {', '.join(missing)}"
    return None


# Notifications
def notify_department_hods(document):
    department = document.get("department")
    if not department:
        logger.info("Document %s has no department, no HOD notified", document["_id"])
        return 0

    hods = list(db_users().find({"role": ROLE_HOD, "department": department, "status": USER_ACTIVE}))
    if not hods:
        logger.info("No HOD found for department: %s", department)
        return 0

    sent = 0
    for hod in hods:
        if hod["_id"] == document.get("userId") or not hod.get("email"):
            continue
        if send_document_submitted_mail(hod["email"], hod.get("name"), document.get("userName"), document.get("title")):
            sent += 1
        else:
            logger.warning("Submission notice for %s not delivered to %s", document["_id"], hod["email"])
    return sent


def notify_owner_of_review(document, decision, comment):
    owner = db_users().find_one({"_id": document.get("userId")})
    if not owner or not owner.get("email"):
        logger.info("Owner of document %s has no email, review notice skipped", document["_id"])
        return False

    name = owner.get("name") or document.get("userName")
    title = document.get("title")
    if decision == STATUS_APPROVED:
        return send_document_approved_mail(owner["email"], name, title)
    if decision == STATUS_REVISABLE:
        return send_document_revisable_mail(owner["email"], name, title, comment)
    return send_document_rejected_mail(owner["email"], name, title, comment)


def _submit(document, category):
    """Move a draft/revisable document to pending and tell the HOD"""
    new_status = lifecycle.next_status(document.get("status"), lifecycle.SUBMIT)
    problem = _submission_problem(document, category)
    if problem:
        raise ValueError(problem)

    now = _now()
    update = {"status": new_status, "submittedAt": now, "updatedAt": now}
    result = db_documents().update_one(
        {"_id": document["_id"], "status": document.get("status")}, {"$set": update}
    )
    if result.matched_count == 0:
        raise lifecycle.InvalidTransition(lifecycle.SUBMIT, document.get("status"))
    document.update(update)

    logger.info("Document %s submitted for review by %s", document["_id"], document.get("userId"))
    notify_department_hods(document)
    return document


def _remove_attachment(document):
    file_id = document.get("fileId")
    if not file_id:
        return
    try:
        grid_fs().delete(ObjectId(file_id))
    except Exception:
        logger.exception("Could not delete attachment %s of document %s", file_id, document["_id"])


# Routes
@documents.route('', methods=['POST'])
@roles_required(*SUBMITTER_ROLES)
def create_document():
    """Create a document as a draft, or create and submit it in one step"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        title = str(data.get("title") or "").strip()
        if not title:
            return jsonify({"error": "Please enter a document title"}), 400

        category = db_categories().find_one({"_id": data.get("category")})
        if not category:
            return jsonify({"error": "Invalid category"}), 400

        as_draft = bool(data.get("asDraft", data.get("status") == STATUS_DRAFT))
        user = g.current_user
        now = _now()

        document = {
            "_id": new_id(),
            "title": title,
            "userId": user["_id"],
            "userName": user.get("name", "Unknown User"),
            "department": user.get("department", ""),
            "designation": user.get("designation", ""),
            "category": category["_id"],
            "categoryName": category.get("name", ""),
            "fields": _clean_field_values(data.get("fields")),
            "status": STATUS_DRAFT,
            "credits": submission_credits(category, user),
            "createdAt": now,
            "updatedAt": now,
            "submittedAt": None,
        }
        if data.get("fileUrl"):
            document["fileUrl"] = str(data["fileUrl"]).strip()

        if not as_draft:
            problem = _submission_problem(document, category)
            if problem:
                return jsonify({"error": problem}), 400

        db_documents().insert_one(document)

        if as_draft:
            message = "Document saved as draft"
        else:
            _submit(document, category)
            message = "Document submitted successfully and sent for review"

        return jsonify({"message": message, "document": public_document(document)}), 201

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error creating document")
        return jsonify({"error": str(e)}), 500


@documents.route('', methods=['GET'])
@login_required
def get_documents():
    """Documents visible to the caller, with optional filters, search and sort"""
    try:
        user = g.current_user
        query = visibility_query(user)

        status = request.args.get("status")
        if status and status != "all":
            if status not in DOCUMENT_STATUSES:
                return jsonify({"error": f"Invalid status. Must be one of: {', '.join(DOCUMENT_STATUSES)}"}), 400
            query = {"$and": [query, {"status": status}]} if query else {"status": status}
        for key in ["category", "userId", "department"]:
            if request.args.get(key):
                clause = {key: request.args[key]}
                query = {"$and": [query, clause]} if query else clause

        sort = request.args.get("sort", "date-desc")
        if sort not in SORTS:
            return jsonify({"error": f"Invalid sort. Must be one of: {', '.join(SORTS)}"}), 400

        results = list(db_documents().find(query))

        search = (request.args.get("q") or "").strip().lower()
        if search:
            search_by = request.args.get("searchBy", "name")
            if search_by == "department":
                keys = ["department"]
            elif search_by == "title":
                keys = ["title"]
            else:
                keys = ["userName", "title"]
            results = [d for d in results if any(search in (d.get(k) or "").lower() for k in keys)]

        key, reverse = SORTS[sort]
        results.sort(key=key, reverse=reverse)

        return jsonify([public_document(d) for d in results]), 200

    except Exception as e:
        logger.exception("Error fetching documents")
        return jsonify({"error": str(e)}), 500


@documents.route('/review-queue', methods=['GET'])
@reviewer_required
def review_queue():
    """Pending and approved documents a reviewer is responsible for"""
    try:
        reviewer = g.current_user
        scope = visibility_query(reviewer)
        results = [
            d for d in db_documents().find(scope)
            if d.get("userId") != reviewer["_id"] and d.get("status") != STATUS_DRAFT
        ]
        results.sort(key=_sort_date, reverse=True)

        counts = {s: 0 for s in (STATUS_PENDING, STATUS_APPROVED, STATUS_REVISABLE, STATUS_REJECTED)}
        for d in results:
            counts[d["status"]] = counts.get(d["status"], 0) + 1

        return jsonify({
            "pending": [public_document(d) for d in results if d["status"] == STATUS_PENDING],
            "approved": [public_document(d) for d in results if d["status"] == STATUS_APPROVED],
            "counts": counts,
        }), 200

    except Exception as e:
        logger.exception("Error building review queue")
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>', methods=['GET'])
@login_required
def get_document(document_id):
    document, error = _load_visible(document_id)
    if error:
        return error
    data = public_document(document)
    data["canEdit"] = document.get("userId") == g.current_user["_id"] and lifecycle.can_edit(document.get("status"))
    data["canReview"] = can_review(g.current_user, document) and document.get("status") == STATUS_PENDING
    return jsonify(data), 200


@documents.route('/<string:document_id>', methods=['PUT'])
@login_required
def update_document(document_id):
    """Edit a draft or revisable document; pass submit=true to resubmit it"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Invalid JSON data"}), 400

        document, error = _load_owned(document_id)
        if error:
            return error
        if not lifecycle.can_edit(document.get("status")):
            return jsonify({
                "error": "Invalid status transition",
                "message": "Only draft or revisable documents can be edited"
            }), 400

        update = {}
        if "title" in data:
            title = str(data.get("title") or "").strip()
            if not title:
                return jsonify({"error": "Please enter a document title"}), 400
            update["title"] = title
        if "fields" in data:
            update["fields"] = _clean_field_values(data["fields"])
        if "fileUrl" in data:
            update["fileUrl"] = str(data["fileUrl"] or "").strip() or None

        if update:
            update["updatedAt"] = _now()
            db_documents().update_one({"_id": document_id}, {"$set": update})
            document.update(update)

        message = "Document updated successfully"
        if data.get("submit"):
            category = db_categories().find_one({"_id": document.get("category")})
            _submit(document, category)
            message = "Document submitted successfully and sent for review"

        return jsonify({"message": message, "document": public_document(document)}), 200

    except lifecycle.InvalidTransition as e:
        return _transition_error(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error updating document %s", document_id)
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>/submit', methods=['POST'])
@login_required
def submit_document(document_id):
    """Changes status from 'draft' or 'revisable' to 'pending'"""
    try:
        document, error = _load_owned(document_id)
        if error:
            return error

        category = db_categories().find_one({"_id": document.get("category")})
        _submit(document, category)

        return jsonify({
            "message": "Document submitted successfully and sent for review",
            "new_status": document["status"],
            "document": public_document(document),
        }), 200

    except lifecycle.InvalidTransition as e:
        return _transition_error(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error submitting document %s", document_id)
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>/review', methods=['POST'])
@reviewer_required
def review_document(document_id):
    """Approve, request revision on, or reject a pending document"""
    try:
        data = request.get_json(silent=True) or {}
        decision = data.get("status") or data.get("decision")
        try:
            action = lifecycle.decision_action(decision)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        reviewer = g.current_user
        document = db_documents().find_one({"_id": document_id})
        if not document:
            return jsonify({"error": "Document not found"}), 404
        if not can_review(reviewer, document):
            return jsonify({"error": "You are not allowed to review this document"}), 403

        new_status = lifecycle.next_status(document.get("status"), action)

        comment = str(data.get("revisionComment") or data.get("comment") or "").strip()
        if not comment and new_status == STATUS_REVISABLE:
            comment = DEFAULT_REVISION_COMMENT
        elif not comment and new_status == STATUS_REJECTED:
            comment = DEFAULT_REJECTION_COMMENT

        now = _now()
        update = {
            "status": new_status,
            "reviewedBy": reviewer["_id"],
            "reviewedByName": reviewer.get("name", ""),
            "reviewedAt": now,
            "updatedAt": now,
            "revisionComment": comment or None,
        }

        if new_status == STATUS_APPROVED:
            # Credits follow the owner's criteria at the time of approval
            category = db_categories().find_one({"_id": document.get("category")})
            owner = db_users().find_one({"_id": document.get("userId")})
            if category and owner:
                update["credits"] = submission_credits(category, owner)

        # Another reviewer may have decided the document in the meantime
        result = db_documents().update_one(
            {"_id": document_id, "status": document.get("status")}, {"$set": update}
        )
        if result.matched_count == 0:
            raise lifecycle.InvalidTransition(action, document.get("status"))
        document.update(update)
        logger.info("Document %s reviewed by %s: %s", document_id, reviewer["_id"], new_status)

        if not notify_owner_of_review(document, new_status, comment):
            logger.warning("Review notice for document %s was not delivered", document_id)

        return jsonify({"message": f"Document {new_status}", "document": public_document(document)}), 200

    except lifecycle.InvalidTransition as e:
        return _transition_error(e)
    except Exception as e:
        logger.exception("Error reviewing document %s", document_id)
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>', methods=['DELETE'])
@login_required
def delete_document(document_id):
    try:
        document = db_documents().find_one({"_id": document_id})
        if not document:
            return jsonify({"error": "Document not found"}), 404

        user = g.current_user
        is_owner = document.get("userId") == user["_id"]
        if user.get("role") != ROLE_ADMIN:
            if not is_owner:
                return jsonify({"error": "Access denied"}), 403
            if not lifecycle.can_owner_delete(document.get("status")):
                return jsonify({
                    "error": "Invalid status transition",
                    "message": "Only draft or revisable documents can be deleted"
                }), 400

        _remove_attachment(document)
        db_documents().delete_one({"_id": document_id})
        logger.info("Document %s deleted by %s", document_id, user["_id"])
        return jsonify({"message": "Document deleted successfully"}), 200

    except Exception as e:
        logger.exception("Error deleting document %s", document_id)
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>/file', methods=['POST'])
@login_required
def upload_file(document_id):
    """Attach a pdf/doc/docx file, replacing any previous attachment"""
    try:
        document, error = _load_owned(document_id)
        if error:
            return error
        if not lifecycle.can_edit(document.get("status")):
            return jsonify({
                "error": "Invalid status transition",
                "message": "Files can only be changed on draft or revisable documents"
            }), 400

        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return jsonify({"error": "No file provided"}), 400
        if not allowed_file(upload.filename, current_app.config["ALLOWED_EXTENSIONS"]):
            allowed = ", ".join(sorted(current_app.config["ALLOWED_EXTENSIONS"]))
            return jsonify({"error": f"File type not allowed. Allowed types: {allowed}"}), 400

        content = upload.read()
        if not content:
            return jsonify({"error": "Uploaded file is empty"}), 400

        filename = clean_filename(upload.filename)
        content_type = content_type_for(filename)

        file_id = grid_fs().put(
            content,
            filename=filename,
            document_id=document_id,
            user_id=g.current_user["_id"],
            content_type=content_type,
        )
        _remove_attachment(document)

        update = {
            "fileId": str(file_id),
            "fileName": filename,
            "fileType": content_type,
            "fileSize": len(content),
            "updatedAt": _now(),
        }
        db_documents().update_one({"_id": document_id}, {"$set": update})
        document.update(update)

        return jsonify({"message": "File uploaded successfully", "document": public_document(document)}), 200

    except HTTPException:
        # 413 from MAX_CONTENT_LENGTH is rendered by the app error handler
        raise
    except Exception as e:
        logger.exception("Error uploading file for document %s", document_id)
        return jsonify({"error": str(e)}), 500


@documents.route('/<string:document_id>/file', methods=['GET'])
@login_required
def download_file(document_id):
    document, error = _load_visible(document_id)
    if error:
        return error
    if not document.get("fileId"):
        return jsonify({"error": "Document has no attached file"}), 404

    try:
        grid_out = grid_fs().get(ObjectId(document["fileId"]))
    except NoFile:
        return jsonify({"error": "File not found"}), 404

    inline = request.args.get("inline", "false").lower() == "true"
    return send_file(
        io.BytesIO(grid_out.read()),
        as_attachment=not inline,
        download_name=document.get("fileName") or "document",
        mimetype=document.get("fileType") or "application/octet-stream",
    )


@documents.route('/<string:document_id>/preview', methods=['GET'])
@login_required
def preview_document(document_id):
    """PDFs are streamed inline; Word files come back as extracted text"""
    document, error = _load_visible(document_id)
    if error:
        return error

    try:
        if document.get("fileId"):
            grid_out = grid_fs().get(ObjectId(document["fileId"]))
            data = grid_out.read()
            filename = document.get("fileName") or "document"
            content_type = document.get("fileType") or content_type_for(filename)
            download_url = url_for("documents.download_file", document_id=document_id)
        elif document.get("fileUrl"):
            data, filename, content_type = fetch_remote_file(
                document["fileUrl"], current_app.config["MAX_CONTENT_LENGTH"]
            )
            download_url = document["fileUrl"]
        else:
            return jsonify({"error": "Document has no attached file"}), 404

        preview = build_preview(data, filename, content_type)
        if preview["kind"] == "pdf":
            return send_file(
                io.BytesIO(data),
                as_attachment=False,
                download_name=filename,
                mimetype="application/pdf",
            )

        preview["url"] = download_url
        return jsonify(preview), 200

    except NoFile:
        return jsonify({"error": "File not found"}), 404
    except PreviewError as e:
        return jsonify({"error": str(e)}), 422
    except Exception as e:
        logger.exception("Error previewing document %s", document_id)
        return jsonify({"error": str(e)}), 500


def _summary_response(target):
    user_documents = list(db_documents().find({"userId": target["_id"]}))
    summary = credit_summary(user_documents, all_categories(), target)
    summary.update({
        "userId": target["_id"],
        "userName": target.get("name", ""),
        "role": target.get("role", ""),
        "designation": target.get("designation", ""),
        "department": target.get("department", ""),
    })
    return jsonify(summary), 200


@documents.route('/credits', methods=['GET'])
@login_required
def get_my_credit_summary():
    return _summary_response(g.current_user)


@documents.route('/user/<string:user_id>/credits', methods=['GET'])
@login_required
def get_user_credit_summary(user_id):
    """Capped credit totals per category for one faculty member"""
    try:
        target = db_users().find_one({"_id": user_id})
        if not target:
            return jsonify({"error": "User not found"}), 404
        if not can_view_user(g.current_user, target):
            return jsonify({"error": "Access denied"}), 403
        return _summary_response(target)
    except Exception as e:
        logger.exception("Error computing credits for %s", user_id)
        return jsonify({"error": str(e)}), 500
