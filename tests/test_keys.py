# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

from collections import Counter

import pytest

from wpconfig import keys
from wpconfig.errors import InsecureRandomnessUnavailable


def _no_randomness(seq):
    raise NotImplementedError("no urandom")


def test_generate_key_length_and_alphabet():
    key = keys.generate_key(64)
    assert len(key) == 64
    assert set(key) <= set(keys.VALID_KEY_CHARACTERS)


def test_alphabet_has_no_quote_backslash_or_space():
    assert len(keys.VALID_KEY_CHARACTERS) == 91
    for ch in ("'", '"', "\\", " "):
        assert ch not in keys.VALID_KEY_CHARACTERS


def test_generate_key_zero_and_negative_length():
    assert keys.generate_key(0) == ""
    with pytest.raises(ValueError):
        keys.generate_key(-1)


def test_generate_key_distribution_is_uniform():
    sample = "".join(keys.generate_key(64) for _ in range(2000))
    counts = Counter(sample)
    expected = len(sample) / len(keys.VALID_KEY_CHARACTERS)
    chi_square = sum(
        (counts.get(ch, 0) - expected) ** 2 / expected for ch in keys.VALID_KEY_CHARACTERS
    )
    # 90 degrees of freedom; 160 sits far beyond the 0.9999 quantile.
    assert chi_square < 160


def test_generate_key_reports_missing_randomness(monkeypatch):
    monkeypatch.setattr(keys.secrets, "choice", _no_randomness)
    with pytest.raises(InsecureRandomnessUnavailable):
        keys.generate_key()


def test_generate_keys_batch():
    batch = keys.generate_keys(keys.SALT_CONSTANTS)
    assert batch.ok
    assert list(batch.keys) == list(keys.SALT_CONSTANTS)
    assert len(set(batch.keys.values())) == len(keys.SALT_CONSTANTS)


def test_generate_keys_batch_unavailable(monkeypatch):
    monkeypatch.setattr(keys.secrets, "choice", _no_randomness)
    batch = keys.generate_keys(["AUTH_KEY"])
    assert not batch.ok
    assert batch.keys == {}
    assert "no urandom" in batch.unavailable
