#!/usr/bin/env python3
"""
Auth Gate

FastAPI dependency guarding file operations behind the admin bearer token.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from credential_store import CredentialStore
from drop_errors import SetupRequired, Unauthorized
from token_service import TokenService

logger = logging.getLogger(__name__)

# HTTP Bearer for authentication
security_scheme = HTTPBearer(auto_error=False)


class AuthGate:
    """
    Request guard for protected routes.

    Use as ``Depends(gate)``. Raises SetupRequired while no credential record
    exists and Unauthorized for a missing or wrong token. When ``enabled`` is
    False every request passes.
    """

    def __init__(self, store: CredentialStore, tokens: TokenService, enabled: bool = True):
        self.store = store
        self.tokens = tokens
        self.enabled = enabled

    def check(self, token: Optional[str]) -> None:
        record = self.store.get_or_bootstrap()
        if record is None:
            raise SetupRequired()
        if not self.tokens.verify(token, record):
            logger.debug("Rejected request with missing or invalid token")
            raise Unauthorized()

    def __call__(self, credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme)) -> None:
        if not self.enabled:
            return
        self.check(credentials.credentials if credentials else None)
