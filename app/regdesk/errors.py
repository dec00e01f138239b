"""
Error taxonomy for the registration workflow.

Service functions raise these; HTTP layers map ``status_code`` onto the
response and render ``message`` as ``{"error": ...}``.
"""

from __future__ import annotations


class RegDeskError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RegDeskError):
    status_code = 400


class DuplicateEmail(RegDeskError):
    status_code = 409


class NotFound(RegDeskError):
    status_code = 404


class InvalidTransition(RegDeskError):
    status_code = 400


class RemoteValidationError(RegDeskError):
    """Shopify rejected the payload (userErrors). Message is passed through."""

    status_code = 400


class MethodNotAllowed(RegDeskError):
    status_code = 405
