"""Exceptions for the dynalink service layer.

This module contains the exception hierarchy for the service layer,
providing domain-specific exceptions that abstract underlying implementation details.
Each exception carries the HTTP status and the machine-readable error code
the API answers with.
"""


class ServiceError(Exception):
    """Base exception for all service-level errors."""
    status_code = 500
    error_code = "internal_error"


class LinkValidationError(ServiceError):
    """Link input failed validation checks."""
    status_code = 400
    error_code = "validation_error"


class InvalidDestinationError(LinkValidationError):
    """The destination is not an absolute URI."""
    pass


class InvalidAliasError(LinkValidationError):
    """The requested alias doesn't meet requirements."""
    pass


class InvalidExpiryError(LinkValidationError):
    """The requested expiry is not in the future."""
    pass


class LinkConflictError(ServiceError):
    """The requested code is already taken."""
    status_code = 409
    error_code = "alias_conflict"


class AliasAlreadyExistsError(LinkConflictError):
    """The requested alias is already in use."""
    pass


class CodeGenerationError(ServiceError):
    """Failed to generate an unused code within the attempt limit."""
    status_code = 500
    error_code = "code_generation_failed"


class LinkNotFoundError(ServiceError):
    """No link with the specified code exists."""
    status_code = 404
    error_code = "not_found"


class LinkGoneError(ServiceError):
    """The link exists but has expired."""
    status_code = 410
    error_code = "gone"


class UpstreamUnavailableError(ServiceError):
    """A backing store could not be reached in time."""
    status_code = 503
    error_code = "upstream_unavailable"


class CacheUnavailableError(UpstreamUnavailableError):
    """The resolution cache failed or timed out."""
    pass


class StoreUnavailableError(UpstreamUnavailableError):
    """The link store failed or timed out."""
    pass
