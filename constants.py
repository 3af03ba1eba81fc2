ROLE_FACULTY = "faculty"
ROLE_HOD = "hod"
ROLE_PRINCIPAL = "principal"
ROLE_ADMIN = "admin"

ROLES = (ROLE_FACULTY, ROLE_HOD, ROLE_PRINCIPAL, ROLE_ADMIN)
REVIEWER_ROLES = (ROLE_HOD, ROLE_PRINCIPAL, ROLE_ADMIN)

DESIGNATIONS = ("Assistant Professor", "Associate Professor", "Professor")

USER_ACTIVE = "active"
USER_SUSPENDED = "suspended"
USER_STATUSES = (USER_ACTIVE, USER_SUSPENDED)

# Document review states
STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REVISABLE = "revisable"
STATUS_REJECTED = "rejected"
DOCUMENT_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_REVISABLE,
    STATUS_REJECTED,
)

REVIEW_DECISIONS = (STATUS_APPROVED, STATUS_REVISABLE, STATUS_REJECTED)

DEFAULT_REVISION_COMMENT = "Please review and make necessary changes."
DEFAULT_REJECTION_COMMENT = "Document does not meet the required criteria."

CREDENTIAL_REQUEST_STATUSES = ("pending", "resolved", "dismissed")

MIN_PASSWORD_LENGTH = 6
