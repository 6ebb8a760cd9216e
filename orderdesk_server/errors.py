"""Exceptions raised by OrderDesk collaborators."""

from typing import Optional

AUTH_ERROR_MESSAGES = {
    "user-not-found": "No user found with this email address.",
    "wrong-password": "Incorrect password. Please try again.",
    "email-already-in-use": "An account already exists with this email.",
    "invalid-email": "Please enter a valid email address.",
    "weak-password": "Password is too weak. Please use at least 6 characters.",
    "user-disabled": "This account has been disabled.",
    "too-many-requests": "Too many login attempts. Please try again later.",
    "operation-not-allowed": "This sign-in method is not enabled.",
    "network-request-failed": "Network error. Please check your internet connection.",
    "requires-recent-login": "Please log in again to perform this action.",
    "invalid-credential": "Invalid email or password. Please try again.",
    "invalid-admin-code": "Invalid admin registration code",
    "no-current-user": "No user is currently signed in.",
}


class OrderDeskError(Exception):
    """Base class for OrderDesk errors."""


class AuthError(OrderDeskError):
    """
    Identity provider failure.

    ``code`` is a machine readable identifier such as ``invalid-credential``.
    ``str(error)`` is the user facing message: the explicit message if one
    was given, the known message for the code, or the code itself.
    """

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        self.code = code
        self.message = message or AUTH_ERROR_MESSAGES.get(code, code)
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class StoreError(OrderDeskError):
    """Document store failure."""
