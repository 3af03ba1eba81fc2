"""Credit rules: role-specific criteria lookup and credit totals."""
from constants import STATUS_APPROVED, STATUS_PENDING, STATUS_DRAFT, STATUS_REVISABLE


def _number(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _clean(value):
    # 5.0 -> 5 so totals read the same way the criteria were entered
    return int(value) if float(value).is_integer() else round(value, 2)


def role_override(category, user):
    """Return the roleSpecificCriteria entry that applies to ``user``, if any.

    Overrides are keyed either by designation ("Professor") or by role
    ("hod"); designation wins when both are present.
    """
    overrides = category.get("roleSpecificCriteria") or {}
    if not user:
        return None
    for key in (user.get("designation"), user.get("role")):
        if key and key in overrides:
            return overrides[key]
    return None


def resolve_criteria(category, user=None):
    """Effective maxCredits / perDocumentCredits of a category for a user.

    A missing or zero override value falls back to the category default.
    """
    max_credits = _number(category.get("maxCredits"))
    per_document = _number(category.get("perDocumentCredits"))

    override = role_override(category, user)
    if override:
        max_credits = _number(override.get("maxCredits")) or max_credits
        per_document = _number(override.get("perDocumentCredits")) or per_document

    return {
        "maxCredits": _clean(max_credits),
        "perDocumentCredits": _clean(per_document),
    }


def submission_credits(category, user):
    return resolve_criteria(category, user)["perDocumentCredits"]


def credit_summary(documents, categories, user):
    """Aggregate a faculty member's documents into appraisal credits.

    Only approved documents earn credits. Each category's earnings are capped
    at the category's effective maxCredits before being summed. Documents of
    categories that no longer exist are ignored.
    """
    rows = []
    by_category = {}
    total_credits = 0.0
    total_max = 0.0

    for category in categories:
        criteria = resolve_criteria(category, user)
        in_category = [d for d in documents if d.get("category") == category["_id"]]

        earned = sum(
            _number(d.get("credits"))
            for d in in_category
            if d.get("status") == STATUS_APPROVED
        )
        capped = min(earned, _number(criteria["maxCredits"]))

        row = {
            "categoryId": category["_id"],
            "categoryName": category.get("name", ""),
            "earnedCredits": _clean(earned),
            "credits": _clean(capped),
            "maxCredits": criteria["maxCredits"],
            "perDocumentCredits": criteria["perDocumentCredits"],
            "approved": _count(in_category, STATUS_APPROVED),
            "pending": _count(in_category, STATUS_PENDING),
            "revisable": _count(in_category, STATUS_REVISABLE),
            "drafts": _count(in_category, STATUS_DRAFT),
            "completed": capped >= _number(criteria["maxCredits"]) > 0,
        }
        rows.append(row)
        by_category[category["_id"]] = row["credits"]
        total_credits += capped
        total_max += _number(criteria["maxCredits"])

    return {
        "categories": rows,
        "byCategory": by_category,
        "totalCredits": _clean(total_credits),
        "totalMaxCredits": _clean(total_max),
        "progress": progress_percent(total_credits, total_max),
    }


def progress_percent(earned, maximum):
    if not maximum:
        return 0
    return round(min(earned / maximum * 100, 100), 1)


def _count(documents, status):
    return sum(1 for d in documents if d.get("status") == status)
