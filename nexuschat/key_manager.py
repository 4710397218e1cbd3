"""API key pool. Round-robin selection with failure tracking."""

import logging
from typing import TypedDict

from nexuschat.errors import NoActiveCredential
from nexuschat.storage import Storage

logger = logging.getLogger(__name__)

# Storage record holding the pool
KEYS_RECORD = "api-keys"

# Consecutive failures before a key sits out of rotation
MAX_FAILURES = 3


class Credential(TypedDict):
    secret: str
    active: bool
    failureCount: int


def mask(secret: str) -> str:
    """Short, display-safe form of a key"""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}…{secret[-4:]}"


class KeyManager:
    """
    Owns the API keys, the rotation cursor and per-key health.\n
    Keys that fail MAX_FAILURES times in a row are deactivated, never deleted.
    A later success puts them back in rotation.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self.keys: list[Credential] = self.storage.get(KEYS_RECORD, [])
        # Rotation cursor lives in memory only and only ever grows
        self.cursor: int = 0

    def _find(self, secret: str) -> Credential | None:
        return next((k for k in self.keys if k["secret"] == secret), None)

    def save(self):
        """Persists the whole pool"""
        self.storage.set(KEYS_RECORD, self.keys)

    def add(self, secret: str) -> bool:
        """Adds a key unless it is already pooled. Returns True on insert."""
        secret = secret.strip()
        if not secret or self._find(secret):
            return False
        self.keys.append({"secret": secret, "active": True, "failureCount": 0})
        self.save()
        return True

    def remove(self, secret: str) -> bool:
        """Removes a key by value. Returns True if something was removed."""
        before = len(self.keys)
        self.keys = [k for k in self.keys if k["secret"] != secret]
        if len(self.keys) == before:
            return False
        self.save()
        return True

    def acquire(self) -> str:
        """Returns the next active key in rotation"""
        active = [k for k in self.keys if k["active"]]
        if not active:
            raise NoActiveCredential()
        key = active[self.cursor % len(active)]
        self.cursor += 1
        return key["secret"]

    def report_failure(self, secret: str):
        """Counts a failed call against a key, deactivating it at the threshold"""
        key = self._find(secret)
        if not key:
            return
        key["failureCount"] += 1
        if key["failureCount"] >= MAX_FAILURES:
            key["active"] = False
            logger.warning(f"API key {mask(secret)} deactivated after repeated failures")
        self.save()

    def report_success(self, secret: str):
        """Restores a key to full health"""
        key = self._find(secret)
        if not key:
            return
        key["failureCount"] = 0
        key["active"] = True
        self.save()

    def import_key(self, secret: str) -> bool:
        """Seeds an empty pool with a key found outside of it (env, keyring)"""
        if self.keys or not secret:
            return False
        return self.add(secret)

    def all(self) -> list[Credential]:
        """Copies of every key, in insertion order"""
        return [Credential(**k) for k in self.keys]

    def active_count(self) -> int:
        return sum(1 for k in self.keys if k["active"])
