# Overview: Error taxonomy shared by services and routes.

"""
Every error raised across a service boundary is a ZentryError subclass.

Each carries:
- message: safe to show to the end user (names the field or id at fault)
- status_code: the HTTP status the routes answer with

Collaborator errors (SQLAlchemy, bcrypt, ...) are never passed through as-is;
services wrap them so no driver text reaches a user.
"""


class ZentryError(Exception):
    """Base class for domain errors."""

    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ZentryError):
    """400-level input problem."""

    status_code = 400
    default_message = "Invalid input"


class InvalidCredentialsError(ZentryError):
    """Credential verification failed."""

    status_code = 401
    default_message = "Invalid credentials"


class AccessDeniedError(ZentryError):
    """The entity exists but the caller has no access-list entry for it."""

    status_code = 403
    default_message = "Access denied"


class NotFoundError(ZentryError):
    """Referenced business, property or staff record does not exist."""

    status_code = 404
    default_message = "Not found"


class DuplicateError(ZentryError):
    """Identifier allocation exhausted its retry budget."""

    status_code = 409
    default_message = "Identifier already in use"


class DependencyUnavailableError(ZentryError):
    """The identity or document store did not become ready in time."""

    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."

    def __init__(self, message: str | None = None, *, dependency: str | None = None):
        self.dependency = dependency
        super().__init__(message)


class AccountLockedError(ZentryError):
    """Too many failed sign-ins for one login within the lockout window."""

    status_code = 429
    default_message = "Account temporarily locked due to too many failed login attempts"

    def __init__(self, message: str | None = None, *, retry_after_seconds: int | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)
