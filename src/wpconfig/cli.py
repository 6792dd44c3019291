# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Command line interface for managing a wp-config.php file."""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from . import __version__
from .errors import ConfigError
from .paths import default_create_path, resolve_config_path
from .render import DEFAULT_FIELDS, GET_FORMATS, LIST_FORMATS, format_entries, format_value
from .store import KIND_ALL, KIND_CHOICES, ConfigStore, CreateSettings, create_config
from .transformer import PLACEMENTS, MutationOptions, read_source, write_atomic

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "vi"


class CliFormatter(logging.Formatter):
    """Prefix records the way command output reports them."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno >= logging.ERROR:
            return f"Error: {message}"
        if record.levelno >= logging.WARNING:
            return f"Warning: {message}"
        return f"Debug ({record.name}): {message}"


def configure_logging(debug: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(CliFormatter())
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, handlers=[handler], force=True)


def parse_separator(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text.replace("\\n", "\n").replace("\\r", "\r").replace("\\t", "\t")


def success(message: str) -> None:
    print(f"Success: {message}")


def _store(args: argparse.Namespace) -> ConfigStore:
    return ConfigStore(resolve_config_path(args.config_file))


# -- commands ----------------------------------------------------------------

def cmd_create(args: argparse.Namespace) -> int:
    path = Path(args.config_file) if args.config_file else default_create_path()
    if args.skip_check:
        logger.debug("--skip-check given; database connectivity is not checked")
    settings = CreateSettings(
        dbname=args.dbname,
        dbuser=args.dbuser,
        dbpass=args.dbpass,
        dbhost=args.dbhost,
        dbprefix=args.dbprefix,
        dbcharset=args.dbcharset,
        dbcollate=args.dbcollate,
        locale=args.locale,
        extra_php=sys.stdin.read() if args.extra_php else "",
        skip_salts=args.skip_salts,
    )
    created = create_config(path, settings, force=args.force, insecure=args.insecure)
    success(f"Generated '{created.name}' file.")
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    value = _store(args).get(args.name, args.type)
    print(format_value(value, args.format, args.name))
    return 0


def cmd_set(args: argparse.Namespace) -> int:
    options = MutationOptions(
        raw=args.raw,
        add=args.add,
        anchor=args.anchor,
        placement=args.placement,
        separator=parse_separator(args.separator),
        normalize=args.normalize,
    )
    outcome = _store(args).set(args.name, args.value, args.type, options)
    success(outcome.message)
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    store = _store(args)
    kind = store.delete(args.name, args.type)
    success(f"Deleted the {kind} '{args.name}' from the '{store.file_name}' file.")
    return 0


def cmd_has(args: argparse.Namespace) -> int:
    return 0 if _store(args).has(args.name, args.type) else 1


def cmd_is_true(args: argparse.Namespace) -> int:
    return 0 if _store(args).is_true(args.name, args.type) else 1


def cmd_list(args: argparse.Namespace) -> int:
    entries = _store(args).list(args.filters, strict=args.strict)
    fields = [field.strip() for field in args.fields.split(",") if field.strip()]
    output = format_entries(entries, args.format, fields)
    if output:
        print(output)
    return 0


def cmd_shuffle_salts(args: argparse.Namespace) -> int:
    report = _store(args).shuffle_salts(args.keys, force=args.force, insecure=args.insecure)
    if not report.ok:
        print(f"Error: {report.message}", file=sys.stderr)
        return 1
    success(report.message)
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    print(resolve_config_path(args.config_file))
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    path = resolve_config_path(args.config_file)
    original = read_source(path)

    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or DEFAULT_EDITOR
    fd, tmp_name = tempfile.mkstemp(prefix="wpconfig-", suffix=".php")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as fh:
            fh.write(original)
        result = subprocess.run([*shlex.split(editor), str(tmp)], check=False)
        if result.returncode != 0:
            raise ConfigError(f"Editor '{editor}' exited with status {result.returncode}.")
        edited = read_source(tmp)
    except OSError as exc:
        raise ConfigError(f"Could not run editor '{editor}': {exc}") from exc
    finally:
        tmp.unlink(missing_ok=True)

    if edited == original:
        logger.warning("No changes made to %s, aborted.", path.name)
        return 0
    write_atomic(path, edited)
    success(f"Updated {path.name}.")
    return 0


# -- parser ------------------------------------------------------------------

def _add_type(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", choices=KIND_CHOICES, default=KIND_ALL, help="constant, variable or all")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wpconfig", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config-file", help="path to the config file (default: discovered wp-config.php)")
    parser.add_argument("--debug", action="store_true", help="log debug output to stderr")

    # Accepted after the subcommand as well; only overrides when given.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config-file", default=argparse.SUPPRESS, help=argparse.SUPPRESS)
    common.add_argument("--debug", action="store_true", default=argparse.SUPPRESS, help=argparse.SUPPRESS)

    sub = parser.add_subparsers(dest="command", required=True, metavar="<command>")

    p = sub.add_parser("create", parents=[common], help="generate a new wp-config.php")
    p.add_argument("--dbname", required=True)
    p.add_argument("--dbuser", required=True)
    p.add_argument("--dbpass", default="")
    p.add_argument("--dbhost", default="localhost")
    p.add_argument("--dbprefix", default="wp_")
    p.add_argument("--dbcharset", default="utf8")
    p.add_argument("--dbcollate", default="")
    p.add_argument("--locale", default=None)
    p.add_argument("--extra-php", action="store_true", help="read additional PHP from stdin")
    p.add_argument("--skip-salts", action="store_true")
    p.add_argument("--skip-check", action="store_true", help="accepted for compatibility; no check is run")
    p.add_argument("--force", action="store_true", help="overwrite an existing file")
    p.add_argument("--insecure", action="store_true", help="retry salt retrieval without certificate checks")
    p.set_defaults(handler=cmd_create)

    p = sub.add_parser("get", parents=[common], help="print the value of a constant or variable")
    p.add_argument("name")
    _add_type(p)
    p.add_argument("--format", choices=GET_FORMATS, default="var_export")
    p.set_defaults(handler=cmd_get)

    p = sub.add_parser("set", parents=[common], help="add or update a constant or variable")
    p.add_argument("name")
    p.add_argument("value")
    p.add_argument("--add", action=argparse.BooleanOptionalAction, default=True, help="add the entry when missing")
    p.add_argument("--raw", action="store_true", help="write the value as PHP code instead of a string")
    p.add_argument("--anchor", help="text to place new entries next to, or EOF")
    p.add_argument("--placement", choices=PLACEMENTS, default="before")
    p.add_argument("--separator", help="text between the new entry and the anchor (\\n, \\r and \\t are expanded)")
    p.add_argument("--normalize", action="store_true", help="rewrite the whole statement in canonical form")
    _add_type(p)
    p.set_defaults(handler=cmd_set)

    p = sub.add_parser("delete", parents=[common], help="remove a constant or variable")
    p.add_argument("name")
    _add_type(p)
    p.set_defaults(handler=cmd_delete)

    p = sub.add_parser("has", parents=[common], help="exit 0 when the entry is defined")
    p.add_argument("name")
    _add_type(p)
    p.set_defaults(handler=cmd_has)

    p = sub.add_parser("is-true", parents=[common], help="exit 0 when the entry's value is truthy")
    p.add_argument("name")
    _add_type(p)
    p.set_defaults(handler=cmd_is_true)

    p = sub.add_parser("list", parents=[common], help="list constants, variables and includes")
    p.add_argument("filters", nargs="*", metavar="filter")
    p.add_argument("--strict", action="store_true", help="match filters exactly")
    p.add_argument("--fields", default=",".join(DEFAULT_FIELDS))
    p.add_argument("--format", choices=LIST_FORMATS, default="table")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("shuffle-salts", parents=[common], help="regenerate the authentication keys and salts")
    p.add_argument("keys", nargs="*", metavar="key")
    p.add_argument("--force", action="store_true", help="also shuffle or add keys outside the standard set")
    p.add_argument("--insecure", action="store_true", help="retry salt retrieval without certificate checks")
    p.set_defaults(handler=cmd_shuffle_salts)

    p = sub.add_parser("path", parents=[common], help="print the path of the config file")
    p.set_defaults(handler=cmd_path)

    p = sub.add_parser("edit", parents=[common], help="open the config file in $VISUAL or $EDITOR")
    p.set_defaults(handler=cmd_edit)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)
    try:
        return args.handler(args)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code


if __name__ == "__main__":
    sys.exit(main())
