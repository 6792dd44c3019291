# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

import io
import logging
import ssl
import urllib.error

import pytest

from wpconfig.errors import RemoteServiceError
from wpconfig.salts import DEFAULT_SALT_API_URL, fetch_salts, parse_salts, salt_api_url

BODY = (
    "define('AUTH_KEY',         'a$b\\'c');\n"
    "define('SECURE_AUTH_KEY',  'xyz');\n"
)


class FakeOpener:
    """Stands in for ``urlopen``; fails verified requests when ``tls_broken``."""

    def __init__(self, body=BODY, tls_broken=False):
        self.body = body
        self.tls_broken = tls_broken
        self.calls = []

    def __call__(self, request, **kwargs):
        self.calls.append((request.full_url, kwargs))
        if self.tls_broken and "context" not in kwargs:
            raise urllib.error.URLError(ssl.SSLError("certificate verify failed"))
        return io.BytesIO(self.body.encode("utf-8"))


def test_fetch_salts_normalizes_spacing():
    opener = FakeOpener()
    text = fetch_salts(url="https://salts.test/", opener=opener)
    assert text.splitlines() == [
        "define( 'AUTH_KEY',         'a$b\\'c' );",
        "define( 'SECURE_AUTH_KEY',  'xyz' );",
    ]
    assert opener.calls[0][0] == "https://salts.test/"


def test_parse_salts_unescapes():
    assert parse_salts(BODY) == {"AUTH_KEY": "a$b'c", "SECURE_AUTH_KEY": "xyz"}


def test_tls_failure_without_insecure():
    opener = FakeOpener(tls_broken=True)
    with pytest.raises(RemoteServiceError, match="Failed to get salts"):
        fetch_salts(url="https://salts.test/", opener=opener)
    assert len(opener.calls) == 1


def test_tls_failure_with_insecure_retries(caplog):
    opener = FakeOpener(tls_broken=True)
    with caplog.at_level(logging.WARNING):
        text = fetch_salts(True, url="https://salts.test/", opener=opener)
    assert "AUTH_KEY" in text
    assert len(opener.calls) == 2
    context = opener.calls[1][1]["context"]
    assert context.verify_mode == ssl.CERT_NONE
    assert "vulnerable to a MITM attack" in caplog.text


def test_network_failure_is_not_retried():
    def opener(request, **kwargs):
        raise urllib.error.URLError("connection refused")

    with pytest.raises(RemoteServiceError):
        fetch_salts(True, url="https://salts.test/", opener=opener)


def test_unexpected_body():
    with pytest.raises(RemoteServiceError, match="Unexpected response"):
        fetch_salts(url="https://salts.test/", opener=FakeOpener(body="<html>maintenance</html>"))


def test_salt_api_url_from_environment(monkeypatch):
    monkeypatch.delenv("WPCONFIG_SALT_API_URL", raising=False)
    assert salt_api_url() == DEFAULT_SALT_API_URL
    monkeypatch.setenv("WPCONFIG_SALT_API_URL", "https://mirror.test/salt/")
    assert salt_api_url() == "https://mirror.test/salt/"
