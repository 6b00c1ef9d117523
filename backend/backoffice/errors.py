# Overview: Service error taxonomy shared by services and routes.

"""
Service Errors

Every rejected operation raises one of these. Routes translate them into
JSON error responses using ``status_code``; anything else is an internal
error and is reported as a generic 500.

NotFound deliberately covers both "does not exist" and "outside your scope"
so that lookups never reveal data belonging to another tenant.
"""


class ServiceError(Exception):
    """Base class for expected, caller-visible failures."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    """Caller-supplied state is invalid for the operation."""
    status_code = 400


class ForbiddenError(ServiceError):
    """Scope not permitted, scope unresolved, or cross-tenant access."""
    status_code = 403


class NotFoundError(ServiceError):
    """Entity missing or outside the caller's resolved scope."""
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violation (slug, SKU, connection pair)."""
    status_code = 409
