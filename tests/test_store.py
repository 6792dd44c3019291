# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

import logging

import pytest

from conftest import write_config
from wpconfig import keys, store
from wpconfig.errors import (
    AmbiguousEntryError,
    ConfigFileExistsError,
    CreationError,
    InsecureRandomnessUnavailable,
    MissingFilterError,
    NotFoundError,
    NotFoundWithoutAddError,
    TransformationError,
    ValidationError,
)
from wpconfig.reader import read_entries
from wpconfig.store import ConfigStore, CreateSettings, create_config, suggest
from wpconfig.transformer import MutationOptions

REMOTE_SALTS = "\n".join(f"define( '{name}', 'remote-{name.lower()}' );" for name in keys.SALT_CONSTANTS)

AMBIGUOUS = "<?php\ndefine( 'X', 1 );\n$X = 2;\n/* That's all, stop editing! */\n"


def constants_of(path):
    return {e.name: e.value for e in read_entries(path) if e.kind.value == "constant"}


def no_randomness(length=64):
    raise InsecureRandomnessUnavailable("secure randomness is not available")


def fetch_remote(insecure):
    return REMOTE_SALTS


def fetch_forbidden(insecure):
    raise AssertionError("remote salts must not be fetched")


# -- reads -------------------------------------------------------------------

def test_get(wp_config):
    config = ConfigStore(wp_config)
    assert config.get("DB_NAME") == "wordpress"
    assert config.get("table_prefix", "variable") == "wp_"


def test_get_suggests_close_names(wp_config):
    with pytest.raises(NotFoundError) as info:
        ConfigStore(wp_config).get("DB_NAM")
    assert str(info.value) == (
        "The constant or variable 'DB_NAM' is not defined in the 'wp-config.php' file.\n"
        "Did you mean 'DB_NAME'?"
    )


def test_get_without_suggestion(wp_config):
    with pytest.raises(NotFoundError) as info:
        ConfigStore(wp_config).get("COMPLETELY_DIFFERENT", "constant")
    assert str(info.value) == "The constant 'COMPLETELY_DIFFERENT' is not defined in the 'wp-config.php' file."


def test_get_respects_kind(wp_config):
    with pytest.raises(NotFoundError):
        ConfigStore(wp_config).get("DB_NAME", "variable")


def test_ambiguous_names(tmp_path):
    config = ConfigStore(write_config(tmp_path, AMBIGUOUS))
    with pytest.raises(AmbiguousEntryError, match="Use --type=<type> to disambiguate."):
        config.get("X")
    assert config.get("X", "constant") == 1
    assert config.get("X", "variable") == 2
    assert config.has("X") is False
    assert config.has("X", "constant") is True
    with pytest.raises(AmbiguousEntryError):
        config.set("X", "3")
    with pytest.raises(AmbiguousEntryError):
        config.delete("X")


def test_is_true(wp_config):
    config = ConfigStore(wp_config)
    assert config.is_true("WP_DEBUG") is False
    assert config.is_true("DB_NAME") is True
    assert config.is_true("DB_PASSWORD") is False


def test_has(wp_config):
    config = ConfigStore(wp_config)
    assert config.has("DB_NAME")
    assert config.has("table_prefix", "variable")
    assert not config.has("table_prefix", "constant")
    assert not config.has("NOPE")


def test_invalid_kind(wp_config):
    with pytest.raises(ValidationError):
        ConfigStore(wp_config).get("DB_NAME", "function")


def test_list_filters(wp_config):
    config = ConfigStore(wp_config)
    assert [e.name for e in config.list()] == ["table_prefix", "DB_NAME", "DB_USER", "DB_PASSWORD", "WP_DEBUG"]
    assert [e.name for e in config.list(["DB_"])] == ["DB_NAME", "DB_USER", "DB_PASSWORD"]
    assert [e.name for e in config.list(["DB_NAME"], strict=True)] == ["DB_NAME"]
    assert [e.name for e in config.list(["DB_", "DB_NAME"])] == ["DB_NAME", "DB_NAME", "DB_USER", "DB_PASSWORD"]


def test_list_errors(wp_config):
    config = ConfigStore(wp_config)
    with pytest.raises(MissingFilterError):
        config.list(strict=True)
    with pytest.raises(NotFoundError, match="No matching entries found in 'wp-config.php'."):
        config.list(["DB_"], strict=True)


def test_suggest():
    assert suggest("DB_HSOT", ["DB_HOST", "DB_NAME"]) == "DB_HOST"
    assert suggest("SOMETHING", ["DB_HOST"]) == ""


# -- writes ------------------------------------------------------------------

def test_set_raw_adds_constant(wp_config):
    outcome = ConfigStore(wp_config).set("WP_CACHE", "true", options=MutationOptions(raw=True))
    assert outcome.added
    assert outcome.kind == "constant"
    assert outcome.message == (
        "Added the constant 'WP_CACHE' to the 'wp-config.php' file with the raw value 'true'."
    )
    assert "define( 'WP_CACHE', true );" in wp_config.read_text()
    assert constants_of(wp_config)["WP_CACHE"] is True


def test_set_wp_debug_example(tmp_path):
    path = write_config(tmp_path, "<?php\ndefine( 'DB_NAME', 'x' );\n/* That's all, stop editing! */\n")
    outcome = ConfigStore(path).set("WP_DEBUG", "true", options=MutationOptions(raw=True))
    assert outcome.added
    assert "define( 'WP_DEBUG', true );" in path.read_text()


def test_set_updates_existing(wp_config):
    outcome = ConfigStore(wp_config).set("table_prefix", "site_")
    assert not outcome.added
    assert outcome.kind == "variable"
    assert outcome.message == (
        "Updated the variable 'table_prefix' in the 'wp-config.php' file with the value 'site_'."
    )
    assert "$table_prefix = 'site_';" in wp_config.read_text()


def test_set_new_variable_with_type(wp_config):
    outcome = ConfigStore(wp_config).set("my_var", "v", "variable")
    assert outcome.added and outcome.kind == "variable"
    assert "$my_var = 'v';" in wp_config.read_text()


def test_set_without_add(wp_config):
    with pytest.raises(NotFoundWithoutAddError) as info:
        ConfigStore(wp_config).set("NOPE", "x", options=MutationOptions(add=False))
    assert str(info.value) == "The constant or variable 'NOPE' is not defined in the 'wp-config.php' file."


def test_set_reports_transformation_failure(wp_config):
    with pytest.raises(TransformationError) as info:
        ConfigStore(wp_config).set("NEW", "x", options=MutationOptions(anchor="missing anchor"))
    assert str(info.value) == (
        "Could not process the 'wp-config.php' transformation.\nReason: Unable to locate placement anchor."
    )


def test_delete(wp_config):
    config = ConfigStore(wp_config)
    assert config.delete("DB_USER") == "constant"
    assert not config.has("DB_USER")
    with pytest.raises(NotFoundError, match="The constant or variable 'DB_USER' is not defined"):
        config.delete("DB_USER")


def test_missing_file(tmp_path):
    with pytest.raises(NotFoundError):
        ConfigStore(tmp_path / "wp-config.php").set("A", "b")


# -- shuffle-salts -----------------------------------------------------------

def test_shuffle_unknown_key_is_skipped(wp_config, caplog):
    before = wp_config.read_text()
    with caplog.at_level(logging.WARNING):
        report = ConfigStore(wp_config).shuffle_salts(["CUSTOM_KEY"], fetch=fetch_forbidden)
    assert (report.skipped, report.succeeded, report.errored) == (1, 0, 0)
    assert report.ok
    assert report.message == "Shuffled 0 of 1 salts (1 skipped)."
    assert "Could not shuffle the unknown key 'CUSTOM_KEY'." in caplog.text
    assert wp_config.read_text() == before


def test_shuffle_all_salts(wp_config):
    config = ConfigStore(wp_config)
    report = config.shuffle_salts(fetch=fetch_forbidden)
    assert report.succeeded == len(keys.SALT_CONSTANTS)
    assert report.message == "Shuffled the salt keys."
    first = constants_of(wp_config)
    for name in keys.SALT_CONSTANTS:
        assert len(first[name]) == keys.DEFAULT_KEY_LENGTH

    config.shuffle_salts(fetch=fetch_forbidden)
    second = constants_of(wp_config)
    assert all(first[name] != second[name] for name in keys.SALT_CONSTANTS)
    assert wp_config.read_text().count("AUTH_KEY'") == 2  # AUTH_KEY and SECURE_AUTH_KEY


def test_shuffle_explicit_keys_with_force(wp_config):
    report = ConfigStore(wp_config).shuffle_salts(["AUTH_KEY", "WP_CACHE_KEY_SALT"], force=True)
    assert report.message == "Shuffled 2 of 2 salts."
    assert set(constants_of(wp_config)) >= {"AUTH_KEY", "WP_CACHE_KEY_SALT"}


def test_shuffle_falls_back_to_remote_salts(wp_config, monkeypatch, caplog):
    monkeypatch.setattr(keys, "generate_key", no_randomness)
    with caplog.at_level(logging.WARNING):
        report = ConfigStore(wp_config).shuffle_salts(["AUTH_KEY", "CUSTOM_KEY"], force=True, fetch=fetch_remote)
    assert (report.succeeded, report.skipped, report.errored) == (1, 1, 0)
    assert constants_of(wp_config)["AUTH_KEY"] == "remote-auth_key"
    assert "CUSTOM_KEY" not in constants_of(wp_config)
    assert "secure randomness is not available" in caplog.text


def test_shuffle_counts_missing_remote_keys(wp_config, monkeypatch):
    monkeypatch.setattr(keys, "generate_key", no_randomness)
    report = ConfigStore(wp_config).shuffle_salts(fetch=lambda insecure: "define( 'AUTH_KEY', 'only-one' );")
    assert (report.succeeded, report.errored) == (1, 7)
    assert not report.ok
    assert report.message == "Only shuffled 1 of 8 salts."


# -- create ------------------------------------------------------------------

def test_create(tmp_path):
    path = create_config(
        tmp_path / "wp-config.php",
        CreateSettings(dbname="wp_cli_test", dbuser="root", dbpass="p'ss"),
        fetch=fetch_forbidden,
    )
    constants = constants_of(path)
    assert constants["DB_NAME"] == "wp_cli_test"
    assert constants["DB_USER"] == "root"
    assert constants["DB_PASSWORD"] == "p'ss"
    assert constants["DB_HOST"] == "localhost"
    assert constants["DB_CHARSET"] == "utf8"
    assert constants["DB_COLLATE"] == ""
    assert constants["WP_DEBUG"] is False
    for name in (*keys.SALT_CONSTANTS, keys.CACHE_KEY_SALT):
        assert len(constants[name]) == keys.DEFAULT_KEY_LENGTH
    assert "WPLANG" not in constants
    assert ConfigStore(path).get("table_prefix") == "wp_"


def test_create_refuses_existing_file(wp_config):
    with pytest.raises(ConfigFileExistsError, match="The 'wp-config.php' file already exists."):
        create_config(wp_config, CreateSettings(dbname="a", dbuser="b"))


def test_create_force_overwrites(wp_config):
    create_config(wp_config, CreateSettings(dbname="fresh", dbuser="b"), force=True)
    assert constants_of(wp_config)["DB_NAME"] == "fresh"


@pytest.mark.parametrize(
    "prefix, message",
    [
        ("", "--dbprefix cannot be empty"),
        ("wp-", "--dbprefix can only contain numbers, letters, and underscores."),
    ],
)
def test_create_validates_prefix(tmp_path, prefix, message):
    with pytest.raises(ValidationError) as info:
        create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b", dbprefix=prefix))
    assert str(info.value) == message
    assert not (tmp_path / "wp-config.php").exists()


def test_create_removes_file_when_an_edit_fails(tmp_path, monkeypatch):
    def boom(self, kind, name, value, options=None):
        raise TransformationError("disk on fire")

    monkeypatch.setattr(store.ConfigTransformer, "update", boom)
    with pytest.raises(CreationError) as info:
        create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b"))
    assert str(info.value) == "Could not create new 'wp-config.php' file.\nReason: disk on fire"
    assert not (tmp_path / "wp-config.php").exists()


def test_create_uses_remote_salts_without_randomness(tmp_path, monkeypatch):
    monkeypatch.setattr(keys, "generate_key", no_randomness)
    path = create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b"), fetch=fetch_remote)
    constants = constants_of(path)
    assert constants["NONCE_SALT"] == "remote-nonce_salt"
    assert keys.CACHE_KEY_SALT not in constants


def test_create_skip_salts_and_extra_php(tmp_path):
    settings = CreateSettings(dbname="a", dbuser="b", skip_salts=True, extra_php="define( 'WP_CACHE', true );\n")
    path = create_config(tmp_path / "wp-config.php", settings, fetch=fetch_forbidden)
    constants = constants_of(path)
    assert "AUTH_KEY" not in constants
    assert constants["WP_CACHE"] is True


def test_create_reads_locale_from_old_install(tmp_path):
    (tmp_path / "wp-includes").mkdir()
    write_config(tmp_path / "wp-includes", "<?php\n$wp_version = '3.9.2';\n$wp_local_package = 'de_DE';\n", "version.php")
    path = create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b"))
    text = path.read_text()
    assert text.count("'WPLANG'") == 1
    assert constants_of(path)["WPLANG"] == "de_DE"


def test_create_explicit_locale_on_current_install(tmp_path):
    (tmp_path / "wp-includes").mkdir()
    write_config(tmp_path / "wp-includes", "<?php\n$wp_version = '6.4.2';\n", "version.php")
    path = create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b", locale="fr_FR"))
    assert constants_of(path)["WPLANG"] == "fr_FR"


def test_create_treats_zero_locale_as_empty(tmp_path):
    (tmp_path / "wp-includes").mkdir()
    write_config(tmp_path / "wp-includes", "<?php\n$wp_version = '6.4.2';\n", "version.php")
    path = create_config(tmp_path / "wp-config.php", CreateSettings(dbname="a", dbuser="b", locale="0"))
    assert "WPLANG" not in constants_of(path)
