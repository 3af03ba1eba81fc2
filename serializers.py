from datetime import datetime

from criteria import resolve_criteria


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def public_user(user):
    """Only the fields that are safe to send to the client"""
    return {
        "id": user["_id"],
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "role": user.get("role", "faculty"),
        "department": user.get("department", ""),
        "designation": user.get("designation", ""),
        "specialization": user.get("specialization", ""),
        "yearJoined": user.get("yearJoined", ""),
        "phone": user.get("phone", ""),
        "status": user.get("status", "active"),
        "createdAt": _iso(user.get("createdAt")),
    }


def public_category(category, user=None):
    data = {
        "id": category["_id"],
        "name": category.get("name", ""),
        "description": category.get("description", ""),
        "maxCredits": category.get("maxCredits", 0),
        "perDocumentCredits": category.get("perDocumentCredits", 0),
        "fields": category.get("fields", []),
        "roleSpecificCriteria": category.get("roleSpecificCriteria") or {},
        "createdAt": _iso(category.get("createdAt")),
        "updatedAt": _iso(category.get("updatedAt")),
    }
    if user is not None:
        data["effectiveCriteria"] = resolve_criteria(category, user)
    return data


def public_document(document):
    return {
        "id": document["_id"],
        "title": document.get("title", ""),
        "userId": document.get("userId", ""),
        "userName": document.get("userName", ""),
        "department": document.get("department", ""),
        "designation": document.get("designation", ""),
        "category": document.get("category", ""),
        "categoryName": document.get("categoryName", ""),
        "fields": document.get("fields", {}),
        "status": document.get("status", "draft"),
        "credits": document.get("credits", 0),
        "submittedAt": _iso(document.get("submittedAt")),
        "createdAt": _iso(document.get("createdAt")),
        "updatedAt": _iso(document.get("updatedAt")),
        "reviewedBy": document.get("reviewedBy"),
        "reviewedByName": document.get("reviewedByName"),
        "reviewedAt": _iso(document.get("reviewedAt")),
        "revisionComment": document.get("revisionComment"),
        "fileUrl": document.get("fileUrl"),
        "fileName": document.get("fileName"),
        "fileType": document.get("fileType"),
        "hasFile": bool(document.get("fileId")),
    }


def public_credential_request(record):
    return {
        "id": record["_id"],
        "name": record.get("name", ""),
        "email": record.get("email", ""),
        "role": record.get("role", ""),
        "department": record.get("department", ""),
        "status": record.get("status", "pending"),
        "createdAt": _iso(record.get("createdAt")),
        "resolvedAt": _iso(record.get("resolvedAt")),
    }
