"""
Error taxonomy shared by the service layer and the API.

Every error raised by a service function derives from `TuplegateError`, so
callers can tell a denial apart from an unreachable upstream.
"""


class TuplegateError(Exception):
    pass


class ValidationError(TuplegateError):
    """
    The request was rejected before any side effect took place.
    """


class InvalidStatus(ValidationError):
    pass


class InvalidRole(ValidationError):
    pass


class InvalidMemberKind(ValidationError):
    pass


class MissingSecret(ValidationError):
    pass


class SecretFormatError(ValidationError):
    pass


class AuthenticationError(TuplegateError):
    """
    The token or secret could not be resolved to an identity.
    """


class AuthorizationError(TuplegateError):
    """
    The caller was identified but is not permitted. Also raised when the
    target does not exist and the caller could not see it anyway.
    """


class ParentAuthorizationError(AuthorizationError):
    """
    The caller may not attach a group below the requested parent.
    """


class NotFoundError(TuplegateError):
    pass


class ConflictError(TuplegateError):
    pass


class StatusAlreadyAssigned(ConflictError):
    pass


class EntityExists(ConflictError):
    pass


class HierarchyError(ConflictError):
    """
    The stored parent chain is longer than the hierarchy allows, which
    means it is either corrupt or cyclic.
    """


class UpstreamError(TuplegateError):
    """
    The policy engine (or the store) could not be reached in time.
    """
