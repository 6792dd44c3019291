# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

import logging

import pytest

from conftest import write_config
from wpconfig.errors import NotFoundError, ScriptExecutionError
from wpconfig.reader import ConfigEntry, EntryKind, Snapshot, diff_entries, read_entries, read_variable
from wpconfig.sandbox import ScriptContext


def test_list_example_orders_variables_before_constants(tmp_path):
    path = write_config(tmp_path, "<?php\ndefine('DB_NAME','wp_cli_test');\n$table_prefix = 'wp_';\n")
    assert read_entries(path) == [
        ConfigEntry("table_prefix", "wp_", EntryKind.VARIABLE),
        ConfigEntry("DB_NAME", "wp_cli_test", EntryKind.CONSTANT),
    ]


def test_sample_config(wp_config):
    entries = read_entries(wp_config)
    assert [(e.name, e.kind.value) for e in entries] == [
        ("table_prefix", "variable"),
        ("DB_NAME", "constant"),
        ("DB_USER", "constant"),
        ("DB_PASSWORD", "constant"),
        ("WP_DEBUG", "constant"),
    ]
    assert entries[-1].value is False


def test_absent_names_are_not_reported(wp_config):
    names = {e.name for e in read_entries(wp_config)}
    assert "ABSPATH" not in names
    assert "DB_HOST" not in names


def test_includes_are_reported_by_base_name(tmp_path):
    extra = write_config(tmp_path, "<?php\ndefine( 'EXTRA', 1 );\n$extra_var = [ 'a', 'b' ];\n", "extra.php")
    path = write_config(tmp_path, "<?php\nrequire __DIR__ . '/extra.php';\ndefine( 'MAIN', true );\n")
    entries = read_entries(path)
    assert entries == [
        ConfigEntry("extra_var", {0: "a", 1: "b"}, EntryKind.VARIABLE),
        ConfigEntry("EXTRA", 1, EntryKind.CONSTANT),
        ConfigEntry("MAIN", True, EntryKind.CONSTANT),
        ConfigEntry("extra.php", str(extra.resolve()), EntryKind.INCLUDES),
    ]


def test_missing_optional_include_warns(tmp_path, caplog):
    path = write_config(tmp_path, "<?php\ninclude 'nope.php';\ndefine( 'AFTER', 1 );\n")
    with caplog.at_level(logging.WARNING):
        entries = read_entries(path)
    assert [e.name for e in entries] == ["AFTER"]
    assert "Failed to open stream" in caplog.text


def test_missing_required_include_fails(tmp_path):
    path = write_config(tmp_path, "<?php\nrequire 'nope.php';\n")
    with pytest.raises(ScriptExecutionError, match="Failed opening required 'nope.php'"):
        read_entries(path)


def test_runtime_error_carries_location(tmp_path):
    path = write_config(tmp_path, "<?php\ndefine( 'A', 1 );\nwp_unknown_call();\n")
    with pytest.raises(ScriptExecutionError) as info:
        read_entries(path)
    assert info.value.line == 3
    assert info.value.file == str(path)
    assert "Call to undefined function wp_unknown_call()" in str(info.value)


def test_missing_file(tmp_path):
    with pytest.raises(NotFoundError, match="'wp-config.php' not found."):
        read_entries(tmp_path / "wp-config.php")


def test_first_define_wins_and_warns(tmp_path, caplog):
    path = write_config(tmp_path, "<?php\ndefine( 'A', 1 );\ndefine( 'A', 2 );\n$b = 1;\n$b = 2;\n")
    with caplog.at_level(logging.WARNING):
        entries = read_entries(path)
    assert entries == [
        ConfigEntry("b", 2, EntryKind.VARIABLE),
        ConfigEntry("A", 1, EntryKind.CONSTANT),
    ]
    assert "Constant A already defined" in caplog.text


def test_expressions_and_control_flow(tmp_path, monkeypatch):
    monkeypatch.delenv("WPCONFIG_TEST_HOST", raising=False)
    path = write_config(
        tmp_path,
        """<?php
$base = 'wp';
$table_prefix = "{$base}_site_";
define( 'WP_HOME', 'https://' . ( getenv( 'WPCONFIG_TEST_HOST' ) ?: 'example.com' ) );
$list = [ 'a', 'b' ];
$list[] = 'c';
$map = array( 'x' => 1, 'y' => 0x10 );
if ( defined( 'MISSING' ) ) {
    define( 'NEVER', true );
} elseif ( 1 + 1 === 2 ) {
    define( 'TWO', 2 );
} else {
    define( 'NEVER_EITHER', true );
}
if ( ! isset( $undefined ) ) :
    define( 'COLON_SYNTAX', 'yes' );
endif;
const CACHE_TTL = 60 * 60;
""",
    )
    values = {e.name: e.value for e in read_entries(path)}
    assert values["table_prefix"] == "wp_site_"
    assert values["WP_HOME"] == "https://example.com"
    assert values["list"] == {0: "a", 1: "b", 2: "c"}
    assert values["map"] == {"x": 1, "y": 16}
    assert values["TWO"] == 2
    assert values["COLON_SYNTAX"] == "yes"
    assert values["CACHE_TTL"] == 3600
    assert "NEVER" not in values
    assert "NEVER_EITHER" not in values


def test_environment_is_visible_to_scripts(tmp_path, monkeypatch):
    monkeypatch.setenv("WPCONFIG_TEST_DB", "from_env")
    path = write_config(tmp_path, "<?php\ndefine( 'DB_NAME', getenv( 'WPCONFIG_TEST_DB' ) );\n")
    assert read_entries(path) == [ConfigEntry("DB_NAME", "from_env", EntryKind.CONSTANT)]


def test_read_variable(tmp_path):
    path = write_config(tmp_path, "<?php\n$wp_version = '6.4.2';\n", "version.php")
    assert read_variable(path, "wp_version") == "6.4.2"
    assert read_variable(path, "wp_local_package") is None


def test_diff_excludes_predefined_symbols(tmp_path):
    path = write_config(tmp_path, "<?php\ndefine( 'NEW', 1 );\n$fresh = 2;\n")
    context = ScriptContext({"EXISTING": 1})
    context.variables["old"] = 0
    before = Snapshot.capture(context)
    context.run_file(path)
    after = Snapshot.capture(context)
    assert [e.name for e in diff_entries(context, before, after)] == ["fresh", "NEW"]


def test_globals_array_writes_plain_variables(tmp_path):
    path = write_config(tmp_path, "<?php\n$GLOBALS['foo'] = 'bar';\ndefine( 'A', 1 );\n")
    assert read_entries(path) == [
        ConfigEntry("foo", "bar", EntryKind.VARIABLE),
        ConfigEntry("A", 1, EntryKind.CONSTANT),
    ]
