"""Review lifecycle of a submitted document.

A document starts as a draft (or goes straight to pending when the faculty
member submits it on creation). Reviewers move pending documents to one of
the three decision states. Only ``revisable`` documents come back to the
owner; ``approved`` and ``rejected`` are final.
"""
from constants import (
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_REVISABLE,
    STATUS_REJECTED,
    DOCUMENT_STATUSES,
)

SUBMIT = "submit"
APPROVE = "approve"
REVISE = "revise"
REJECT = "reject"

# action -> (statuses it may start from, resulting status)
TRANSITIONS = {
    SUBMIT: ({STATUS_DRAFT, STATUS_REVISABLE}, STATUS_PENDING),
    APPROVE: ({STATUS_PENDING}, STATUS_APPROVED),
    REVISE: ({STATUS_PENDING}, STATUS_REVISABLE),
    REJECT: ({STATUS_PENDING}, STATUS_REJECTED),
}

DECISION_ACTIONS = {
    STATUS_APPROVED: APPROVE,
    STATUS_REVISABLE: REVISE,
    STATUS_REJECTED: REJECT,
}

EDITABLE_STATUSES = {STATUS_DRAFT, STATUS_REVISABLE}
OWNER_DELETABLE_STATUSES = {STATUS_DRAFT, STATUS_REVISABLE}
TERMINAL_STATUSES = {STATUS_APPROVED, STATUS_REJECTED}


class InvalidTransition(Exception):
    def __init__(self, action, current_status):
        self.action = action
        self.current_status = current_status
        allowed = TRANSITIONS.get(action, (set(), None))[0]
        if allowed:
            expected = " or ".join(sorted(allowed))
            message = f"Document must be in {expected} status to {action}"
        else:
            message = f"Unknown action '{action}'"
        super().__init__(message)


def next_status(current_status, action):
    """Return the status reached by applying ``action`` to ``current_status``."""
    if current_status not in DOCUMENT_STATUSES:
        raise InvalidTransition(action, current_status)
    rule = TRANSITIONS.get(action)
    if rule is None:
        raise InvalidTransition(action, current_status)
    allowed, target = rule
    if current_status not in allowed:
        raise InvalidTransition(action, current_status)
    return target


def decision_action(decision):
    """Map a review decision (approved/revisable/rejected) to its action"""
    action = DECISION_ACTIONS.get(decision)
    if action is None:
        raise ValueError(f"Invalid review decision '{decision}'")
    return action


def can_edit(status):
    return status in EDITABLE_STATUSES


def can_owner_delete(status):
    return status in OWNER_DELETABLE_STATUSES
