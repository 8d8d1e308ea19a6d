"""Admin access and Supabase API exceptions."""


class AdminAccessError(Exception):
    """Base exception for rejected privileged requests."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MissingCredentialsError(AdminAccessError):
    """No Authorization header on the request."""

    pass


class UnauthorizedError(AdminAccessError):
    """Credential not accepted by the auth service."""

    pass


class ForbiddenError(AdminAccessError):
    """Authenticated caller is not an administrator."""

    pass


class InvalidRequestError(AdminAccessError):
    """Privileged operation input rejected before any mutation."""

    pass


class SupabaseAPIError(AdminAccessError):
    """Supabase answered with an error or could not be reached."""

    pass
