#!/usr/bin/env python3
"""
Error taxonomy for the FileDrop server.

Every error carries the HTTP status it maps to and a client-safe message.
The application's exception handlers turn them into ``{"error": message}``.
"""

from typing import Dict, Optional


class DropError(Exception):
    """Base class for errors reported to clients"""
    status_code: int = 500
    message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.message
        self.headers = headers
        super().__init__(self.message)


class ValidationError(DropError):
    """Missing or invalid request fields"""
    status_code = 400
    message = "Invalid request"


class AlreadyConfigured(DropError):
    status_code = 400
    message = "Already configured"


class SetupRequired(DropError):
    """No credential record has been established yet"""
    status_code = 401
    message = "Setup required"


class Unauthorized(DropError):
    """Bad or missing token, or wrong password"""
    status_code = 401
    message = "Unauthorized"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class NotFound(DropError):
    status_code = 404
    message = "File not found"


class UnsupportedOperation(DropError):
    status_code = 400
    message = "Deleting folders is not supported"


class SizeLimitExceeded(DropError):
    status_code = 400
    message = "File too large"


class InternalError(DropError):
    """Unexpected filesystem failure; details stay in the server log"""
    status_code = 500
