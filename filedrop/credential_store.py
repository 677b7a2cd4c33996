#!/usr/bin/env python3
"""
Credential Store

Persists the single admin credential record and bootstraps it from a
configured admin password on first access. The record is re-read from its
backend on every call; nothing is cached in memory.
"""

import hmac
import json
import logging
import secrets
from pathlib import Path
from typing import Any, Dict, Optional, Union

from passlib.crypto.scrypt import scrypt
from pydantic import BaseModel

from drop_config import SecurityConfig
from drop_errors import AlreadyConfigured, InternalError

logger = logging.getLogger(__name__)

SALT_BYTES = 16
HASH_BYTES = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


class CredentialRecord(BaseModel):
    """Admin identity as stored on disk"""
    username: str
    salt: str
    hash: str


# ============================================================================
# Password Hashing
# ============================================================================

def hash_password(password: str, salt: Optional[str] = None) -> Dict[str, str]:
    """Derive a hex scrypt hash; a fresh hex salt is generated when none is given"""
    if salt is None:
        salt = secrets.token_hex(SALT_BYTES)
    derived = scrypt(password.encode('utf-8'), salt.encode('utf-8'),
                     SCRYPT_N, SCRYPT_R, SCRYPT_P, HASH_BYTES)
    return {"salt": salt, "hash": derived.hex()}


def check_credentials(record: CredentialRecord, username: str, password: str) -> bool:
    """Constant-time check of a username/password pair against the record"""
    candidate = hash_password(password, record.salt)["hash"]
    username_ok = hmac.compare_digest(username.encode('utf-8'), record.username.encode('utf-8'))
    hash_ok = hmac.compare_digest(candidate.encode('utf-8'), record.hash.encode('utf-8'))
    return username_ok and hash_ok


# ============================================================================
# Storage Backends
# ============================================================================

class CredentialBackend:
    """Read/write access to one serialized credential record"""

    def exists(self) -> bool:
        raise NotImplementedError

    def read(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def write(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class FileCredentialBackend(CredentialBackend):
    """JSON file backend"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)


class MemoryCredentialBackend(CredentialBackend):
    """In-memory backend, used by tests"""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = dict(data) if data else None

    def exists(self) -> bool:
        return self.data is not None

    def read(self) -> Optional[Dict[str, Any]]:
        return dict(self.data) if self.data is not None else None

    def write(self, data: Dict[str, Any]) -> None:
        self.data = dict(data)


# ============================================================================
# Credential Store
# ============================================================================

class CredentialStore:
    """
    Owns the admin credential record.

    Args:
        backend: Where the record is persisted
        security: Security configuration (bootstrap username/password)
    """

    def __init__(self, backend: CredentialBackend, security: SecurityConfig):
        self.backend = backend
        self.security = security

    def credentials_exist(self) -> bool:
        return self.backend.exists()

    def is_configured(self) -> bool:
        """True once a record exists or can be bootstrapped"""
        return self.credentials_exist() or bool(self.security.admin_password)

    def load(self) -> Optional[CredentialRecord]:
        """Read the persisted record, None if there is none"""
        try:
            data = self.backend.read()
            if data is None:
                return None
            return CredentialRecord(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Could not read credential record: {e}")
            raise InternalError("Could not read credentials") from e

    def get_or_bootstrap(self) -> Optional[CredentialRecord]:
        """Return the record, creating it from the configured admin password if needed"""
        record = self.load()
        if record is not None:
            return record

        if not self.security.admin_password:
            return None

        username = self.security.bootstrap_username
        record = CredentialRecord(username=username, **hash_password(self.security.admin_password))
        self._save(record)
        logger.info(f"Bootstrapped credentials for '{username}' from configured admin password")
        return record

    def setup(self, username: str, password: str) -> CredentialRecord:
        """Create the record; only allowed while the store is unconfigured"""
        if self.is_configured():
            raise AlreadyConfigured()

        record = CredentialRecord(username=username, **hash_password(password))
        self._save(record)
        logger.info(f"Credentials created for '{username}'")
        return record

    def _save(self, record: CredentialRecord) -> None:
        try:
            self.backend.write(record.model_dump())
        except OSError as e:
            logger.error(f"Could not write credential record: {e}")
            raise InternalError("Could not save credentials") from e
