"""Identity error classes.

Every expected failure of the identity core is raised as one of these
classified errors so the (external) transport can map them without
inspecting messages. Store connectivity failures are not wrapped.

Kinds:
- ConflictError: uniqueness violations (email taken, already admin)
- UnauthorizedError: bad credentials, invalid or missing session
- ForbiddenError: authenticated but insufficiently privileged
- NotFoundError: token or account does not resolve
- InvariantViolationError: single-super-admin rule, role-transition rules
"""


class IdentityError(Exception):
    """Base class for identity errors.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status hint for the transport layer.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(IdentityError):
    """Input rejected by a domain rule (400), e.g. a weak password."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(IdentityError):
    """Authentication failed (401).

    Messages stay generic: never reveal whether the email exists or
    why a session token was rejected.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(IdentityError):
    """Authenticated but not allowed to perform the mutation (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(IdentityError):
    """Account or token does not resolve (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(IdentityError):
    """Duplicate or conflicting resource (409).

    Accepts a custom code for the specific conflict.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InvariantViolationError(IdentityError):
    """Role rule or single-super-admin rule would be broken (422)."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=422,
        )


class NotificationDeliveryError(IdentityError):
    """Outbound email could not be delivered (502).

    Only surfaced to callers in strict notification posture.
    """

    def __init__(self, message: str = "Failed to send email") -> None:
        super().__init__(
            code="NOTIFICATION_FAILED",
            message=message,
            status_code=502,
        )
