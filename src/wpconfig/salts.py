# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Fetch ready-made salts from the WordPress.org secret-key service."""

from __future__ import annotations

import logging
import os
import re
import ssl
import urllib.error
import urllib.request
from typing import Callable, Dict, Optional

from .errors import RemoteServiceError
from .php import decode_single_quoted

logger = logging.getLogger(__name__)

DEFAULT_SALT_API_URL = "https://api.wordpress.org/secret-key/1.1/salt/"
USER_AGENT = "wpconfig-store"

_DEFINE_RE = re.compile(r"define\(\s*'(\w+)'\s*,\s*'((?:[^'\\]|\\.)*)'\s*\);")

Opener = Callable[..., object]


def salt_api_url() -> str:
    return os.environ.get("WPCONFIG_SALT_API_URL", DEFAULT_SALT_API_URL)


def _is_tls_failure(exc: urllib.error.URLError) -> bool:
    return isinstance(exc.reason, ssl.SSLError)


def _get(url: str, opener: Opener, timeout: Optional[float], context: Optional[ssl.SSLContext]) -> str:
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    kwargs = {"context": context} if context is not None else {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    with opener(req, **kwargs) as resp:
        return resp.read().decode("utf-8")


def fetch_salts(
    insecure: bool = False,
    *,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    opener: Opener = urllib.request.urlopen,
) -> str:
    """Return the service's ``define(...)`` lines, normalized to WPCS spacing.

    With ``insecure`` a failed TLS handshake is retried once without
    certificate validation.
    """
    url = url or salt_api_url()
    try:
        try:
            body = _get(url, opener, timeout, None)
        except urllib.error.URLError as exc:
            if not (insecure and _is_tls_failure(exc)):
                raise
            logger.warning(
                "Re-trying without verify after failing to get verified url %s (%s). "
                "This makes the request vulnerable to a MITM attack.",
                url,
                exc.reason,
            )
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            body = _get(url, opener, timeout, context)
    except (urllib.error.URLError, OSError, UnicodeDecodeError) as exc:
        raise RemoteServiceError(f"Failed to get salts from {url}: {exc}") from exc

    if not parse_salts(body):
        raise RemoteServiceError(f"Unexpected response from {url}.")
    return re.sub(r"define\('(.*?)'\);", r"define( '\1' );", body)


def parse_salts(text: str) -> Dict[str, str]:
    """Extract ``{name: value}`` pairs from ``define( 'NAME', 'value' );`` lines."""
    return {name: decode_single_quoted(value) for name, value in _DEFINE_RE.findall(text)}
