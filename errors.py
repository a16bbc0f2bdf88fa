"""
Error taxonomy for the store core.

Every error carries a user-facing message and the HTTP status the API layer
answers with.
"""
from typing import Optional


class StoreError(Exception):
    status_code = 400
    message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class DuplicateEmail(StoreError):
    message = "A user with this email already exists"


class InvalidCredentials(StoreError):
    status_code = 401
    message = "Invalid email or password"


class Forbidden(StoreError):
    status_code = 403
    message = "Insufficient permissions to change roles"


class SelfRoleChange(StoreError):
    message = "You cannot change your own role"


class NotFound(StoreError):
    status_code = 404
    message = "Not found"


class Unauthenticated(StoreError):
    status_code = 401
    message = "Authentication required"


class ValidationError(StoreError):
    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Invalid value for '{field}'")


class InvalidTransition(StoreError):
    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Cannot change order status from {current} to {new}")


class RemoteUnavailable(StoreError):
    """Remote catalog call failed: transport error, bad status or undecodable body."""
    status_code = 503
    message = "Catalog API unavailable"
