"""
Cache key derivation for query requests.

Two kinds of fingerprint exist: a SHA-256 digest of the full query text with
all whitespace removed, and ``"{version}.{sha256Hash}"`` for persisted-query
descriptors sent by the client.
"""

import hashlib
import json
import re
from typing import Any, Optional

from shared.errors import InvalidDescriptor
from .models import PersistedQueryDescriptor

_WHITESPACE = re.compile(r"\s+")

FINGERPRINT_PAYLOAD = "payload"
FINGERPRINT_PERSISTED = "persisted"


def from_payload(query_text: str) -> str:
    """Fingerprint full query text."""
    # Whitespace is removed, not collapsed to a single space.
    compact = _WHITESPACE.sub("", query_text)
    return hashlib.sha256(compact.encode("utf-8")).hexdigest()


def from_descriptor(descriptor: PersistedQueryDescriptor) -> str:
    """Fingerprint a persisted-query descriptor."""
    version = getattr(descriptor, "version", None)
    sha256_hash = getattr(descriptor, "sha256_hash", None)
    if version in (None, "") or sha256_hash in (None, ""):
        raise InvalidDescriptor("Descriptor requires version and sha256Hash")
    return f"{version}.{sha256_hash}"


def parse_descriptor(extensions: Any) -> Optional[PersistedQueryDescriptor]:
    """Extract a persisted-query descriptor from request extensions.

    ``extensions`` is either the raw JSON string of a GET query string or the
    already decoded object of a POST body. Returns None when no
    ``persistedQuery`` is present; raises InvalidDescriptor when it is
    present but malformed.
    """
    if extensions is None or extensions == "":
        return None

    if isinstance(extensions, (str, bytes)):
        try:
            extensions = json.loads(extensions)
        except ValueError as exc:
            raise InvalidDescriptor("Extensions are not valid JSON", {"error": str(exc)})

    if not isinstance(extensions, dict):
        raise InvalidDescriptor("Extensions must be a JSON object")

    persisted = extensions.get("persistedQuery")
    if persisted is None:
        return None
    if not isinstance(persisted, dict):
        raise InvalidDescriptor("persistedQuery must be an object")

    version = persisted.get("version")
    sha256_hash = persisted.get("sha256Hash")
    if version in (None, "") or not sha256_hash:
        raise InvalidDescriptor(
            "persistedQuery requires version and sha256Hash",
            {"fields": sorted(persisted.keys())}
        )

    return PersistedQueryDescriptor(version=str(version), sha256_hash=str(sha256_hash))
