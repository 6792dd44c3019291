# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Generate key and salt material for the authentication constants."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .errors import InsecureRandomnessUnavailable

VALID_KEY_CHARACTERS = string.ascii_letters + string.digits + "!@#$%^&*()-_[]{}<>~`+=,.;:/?|"
DEFAULT_KEY_LENGTH = 64

SALT_CONSTANTS = (
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
)
CACHE_KEY_SALT = "WP_CACHE_KEY_SALT"


def generate_key(length: int = DEFAULT_KEY_LENGTH) -> str:
    """Return ``length`` characters drawn uniformly from ``VALID_KEY_CHARACTERS``.

    Raises InsecureRandomnessUnavailable when the operating system offers no
    secure randomness source.
    """
    if length < 0:
        raise ValueError("key length must be non-negative")
    try:
        return "".join(secrets.choice(VALID_KEY_CHARACTERS) for _ in range(length))
    except NotImplementedError as exc:
        raise InsecureRandomnessUnavailable(f"secure randomness is not available: {exc}") from exc


@dataclass(frozen=True)
class KeyBatch:
    """Outcome of generating a set of keys: either every key or a failure reason."""

    keys: Dict[str, str] = field(default_factory=dict)
    unavailable: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.unavailable is None


def generate_keys(names: Iterable[str], length: int = DEFAULT_KEY_LENGTH) -> KeyBatch:
    keys: Dict[str, str] = {}
    try:
        for name in names:
            keys[name] = generate_key(length)
    except InsecureRandomnessUnavailable as exc:
        return KeyBatch(unavailable=str(exc))
    return KeyBatch(keys=keys)
