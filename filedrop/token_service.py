#!/usr/bin/env python3
"""
Token Service

Bearer tokens are an HMAC of the stored username and password hash, so no
session store is needed and a credential reset invalidates every token.
"""

import hashlib
import hmac
from typing import Optional

from credential_store import CredentialRecord


class TokenService:
    """Derives and verifies bearer tokens with a server-wide secret"""

    def __init__(self, secret_key: str):
        self._key = secret_key.encode('utf-8')

    def token_for(self, record: CredentialRecord) -> str:
        message = f"{record.username}|{record.hash}".encode('utf-8')
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def verify(self, token: Optional[str], record: CredentialRecord) -> bool:
        """Constant-time comparison against the token derived from ``record``"""
        if not token:
            return False
        expected = self.token_for(record)
        return hmac.compare_digest(token.encode('utf-8'), expected.encode('ascii'))
