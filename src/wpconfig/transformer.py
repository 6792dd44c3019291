# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Format-preserving edits of ``define()`` statements and variable assignments.

Statements are located with the PHP lexer, so only the edited span changes;
comments, spacing and line endings elsewhere in the file are left untouched.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import php
from .errors import NotFoundError, ScriptExecutionError, TransformationError

logger = logging.getLogger(__name__)

DEFAULT_ANCHOR = "/* That's all, stop editing!"
EOF_ANCHOR = "EOF"
PLACEMENTS = ("before", "after")
KINDS = ("constant", "variable")

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = set(_OPENERS.values())


@dataclass(frozen=True)
class MutationOptions:
    raw: bool = False
    add: bool = True
    anchor: Optional[str] = None
    placement: str = "before"
    separator: Optional[str] = None
    normalize: bool = False


@dataclass(frozen=True)
class Definition:
    """Location of one definition inside the source text."""

    kind: str
    name: str
    start: int
    end: int
    value_start: int
    value_end: int


def format_value(value: Any, raw: bool = False) -> str:
    """PHP source for ``value``; ``raw`` inserts the text as given."""
    if raw:
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "NULL"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def build_statement(kind: str, name: str, value_src: str) -> str:
    if kind == "constant":
        return f"define( '{name}', {value_src} );"
    return f"${name} = {value_src};"


def detect_eol(source: str) -> str:
    return "\r\n" if "\r\n" in source else "\n"


def _is_boundary(tok: Optional[php.Token]) -> bool:
    if tok is None or tok.kind in ("open", "close", "html"):
        return True
    if tok.kind == "op":
        return tok.text in (";", "{", "}", ":")
    return tok.kind == "name" and tok.text.lower() == "else"


def _closes_condition(tokens: List[php.Token], i: int) -> bool:
    """Whether ``tokens[i]`` is the ``)`` ending an ``if``/``elseif`` condition."""
    if tokens[i].kind != "op" or tokens[i].text != ")":
        return False
    depth = 0
    for j in range(i, -1, -1):
        text = tokens[j].text if tokens[j].kind == "op" else ""
        if text == ")":
            depth += 1
        elif text == "(":
            depth -= 1
            if depth == 0:
                return j > 0 and tokens[j - 1].kind == "name" and tokens[j - 1].text.lower() in ("if", "elseif")
    return False


def _starts_statement(source: str, tokens: List[php.Token], i: int) -> bool:
    if i == 0 or _is_boundary(tokens[i - 1]) or _closes_condition(tokens, i - 1):
        return True
    # A define opening its own line, such as the body of a brace-less if.
    tok = tokens[i]
    line_start = source.rfind("\n", 0, tok.start) + 1
    return tok.kind == "name" and not source[line_start:tok.start].strip()


def _scan_value(tokens: List[php.Token], i: int, stops: tuple) -> int:
    """Index of the first depth-zero token at or after ``i`` whose text is in ``stops``."""
    depth = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind == "close" and depth == 0 and ";" in stops:
            return i
        if tok.kind == "op":
            if depth == 0 and tok.text in stops:
                return i
            if tok.text in _OPENERS:
                depth += 1
            elif tok.text in _CLOSERS:
                depth -= 1
                if depth < 0:
                    return -1
        i += 1
    return -1


def _statement_end(tok: php.Token) -> int:
    return tok.start if tok.kind == "close" else tok.end


def _match_define(tokens: List[php.Token], i: int) -> Optional[Definition]:
    head = tokens[i + 1:i + 4]
    if len(head) < 3 or head[0].text != "(" or head[1].kind != "string" or head[2].text != ",":
        return None
    name = php.decode_string_literal(head[1].text)
    if not name or i + 4 >= len(tokens):
        return None
    stop = _scan_value(tokens, i + 4, (",", ")"))
    if stop <= i + 4:
        return None
    value_start, value_end = tokens[i + 4].start, tokens[stop - 1].end
    if tokens[stop].text == ",":
        stop = _scan_value(tokens, stop + 1, (")",))
        if stop < 0:
            return None
    if stop + 1 >= len(tokens):
        return None
    terminator = tokens[stop + 1]
    if terminator.kind != "close" and terminator.text != ";":
        return None
    return Definition("constant", name, tokens[i].start, _statement_end(terminator), value_start, value_end)


def _match_assignment(tokens: List[php.Token], i: int) -> Optional[Definition]:
    if i + 2 >= len(tokens) or tokens[i + 1].kind != "op" or tokens[i + 1].text != "=":
        return None
    stop = _scan_value(tokens, i + 2, (";",))
    if stop <= i + 2:
        return None
    return Definition(
        "variable",
        tokens[i].text[1:],
        tokens[i].start,
        _statement_end(tokens[stop]),
        tokens[i + 2].start,
        tokens[stop - 1].end,
    )


def scan_definitions(source: str, filename: str = "<string>") -> Dict[str, Dict[str, Definition]]:
    """Map each kind to its definitions by name.

    The first ``define`` of a constant and the last assignment of a variable
    win, which is what evaluating the script would yield.
    """
    significant = [t for t in php.tokenize(source, filename) if t.kind not in ("ws", "comment")]
    found: Dict[str, Dict[str, Definition]] = {"constant": {}, "variable": {}}
    for i, tok in enumerate(significant):
        if not _starts_statement(source, significant, i):
            continue
        if tok.kind == "name" and tok.text.lower() == "define":
            definition = _match_define(significant, i)
            if definition and definition.name not in found["constant"]:
                found["constant"][definition.name] = definition
        elif tok.kind == "var":
            definition = _match_assignment(significant, i)
            if definition:
                found["variable"][definition.name] = definition
    return found


def read_source(path: Path) -> str:
    """File text with line endings kept; undecodable bytes survive a write back."""
    with path.open("r", encoding="utf-8", errors="surrogateescape", newline="") as fh:
        return fh.read()


def write_atomic(path: Path, contents: str) -> None:
    """Replace ``path`` through a temp sibling, keeping its mode."""
    tmp = path.with_name(f".{path.name}.tmp.{uuid.uuid4().hex[:8]}")
    try:
        with tmp.open("w", encoding="utf-8", errors="surrogateescape", newline="") as fh:
            fh.write(contents)
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise TransformationError(f"Unable to write to '{path.name}': {exc.strerror or exc}") from exc


class ConfigTransformer:
    """Edit a config script in place, one definition at a time."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            raise NotFoundError(f"'{self.path.name}' not found.")

    # -- reading -----------------------------------------------------------

    def read(self) -> str:
        return read_source(self.path)

    def _definitions(self, source: str) -> Dict[str, Dict[str, Definition]]:
        try:
            return scan_definitions(source, str(self.path))
        except ScriptExecutionError as exc:
            raise TransformationError(str(exc)) from exc

    def _find(self, source: str, kind: str, name: str) -> Optional[Definition]:
        if kind not in KINDS:
            raise TransformationError(f"Config type '{kind}' does not exist.")
        return self._definitions(source)[kind].get(name)

    def exists(self, kind: str, name: str) -> bool:
        return self._find(self.read(), kind, name) is not None

    def get_value(self, kind: str, name: str) -> Optional[str]:
        source = self.read()
        found = self._find(source, kind, name)
        return None if found is None else source[found.value_start:found.value_end]

    # -- editing -----------------------------------------------------------

    def add(self, kind: str, name: str, value: Any, options: Optional[MutationOptions] = None) -> bool:
        options = options or MutationOptions()
        source = self.read()
        if self._find(source, kind, name) is not None:
            return False
        value_src = self._value_src(name, value, options)
        statement = build_statement(kind, name, value_src)
        separator = options.separator if options.separator is not None else detect_eol(source)
        anchor = options.anchor or DEFAULT_ANCHOR

        if anchor == EOF_ANCHOR:
            contents = self._append(source, statement, separator)
        else:
            idx = source.find(anchor)
            if idx < 0:
                raise TransformationError("Unable to locate placement anchor.")
            if options.placement == "before":
                contents = source[:idx] + statement + separator + source[idx:]
            elif options.placement == "after":
                end = idx + len(anchor)
                contents = source[:end] + separator + statement + source[end:]
            else:
                raise TransformationError(f"Invalid placement '{options.placement}'.")

        self._save(contents, kind, name, value_src)
        logger.debug("added %s %s to %s", kind, name, self.path)
        return True

    def update(self, kind: str, name: str, value: Any, options: Optional[MutationOptions] = None) -> bool:
        options = options or MutationOptions()
        source = self.read()
        current = self._find(source, kind, name)
        if current is None:
            if not options.add:
                return False
            return self.add(kind, name, value, options)
        value_src = self._value_src(name, value, options)
        if options.normalize:
            contents = source[:current.start] + build_statement(kind, name, value_src) + source[current.end:]
        else:
            contents = source[:current.value_start] + value_src + source[current.value_end:]
        self._save(contents, kind, name, value_src)
        logger.debug("updated %s %s in %s", kind, name, self.path)
        return True

    def remove(self, kind: str, name: str) -> bool:
        source = self.read()
        current = self._find(source, kind, name)
        if current is None:
            return False
        start, end = current.start, current.end
        line_start = source.rfind("\n", 0, start) + 1
        after = re.compile(r"[ \t]*").match(source, end).end()
        if not source[line_start:start].strip() and (after == len(source) or source[after] in "\r\n"):
            start = line_start
            if source.startswith("\r\n", after):
                end = after + 2
            elif after < len(source):
                end = after + 1
            else:
                end = after
        self._save(source[:start] + source[end:], kind, name, None)
        logger.debug("removed %s %s from %s", kind, name, self.path)
        return True

    # -- helpers -----------------------------------------------------------

    def _value_src(self, name: str, value: Any, options: MutationOptions) -> str:
        if not _NAME_RE.match(name):
            raise TransformationError(f"Invalid name '{name}'.")
        if options.raw and str(value).strip() == "":
            raise TransformationError("Raw value for empty string not supported.")
        return format_value(value, options.raw)

    @staticmethod
    def _append(source: str, statement: str, separator: str) -> str:
        eol = detect_eol(source)
        tokens = php.tokenize(source)
        tail = tokens[-1] if tokens else None
        if tail is not None and tail.kind == "html" and not tail.text.strip() and len(tokens) > 1:
            tail = tokens[-2]
        if tail is not None and tail.kind == "close":
            return source[:tail.start] + statement + separator + source[tail.start:]
        glue = "" if source.endswith(eol) or not source else separator
        return source + glue + statement + eol

    def _save(self, contents: str, kind: str, name: str, value_src: Optional[str]) -> None:
        """Verify the edit landed, then atomically replace the file."""
        try:
            found = scan_definitions(contents, str(self.path))[kind].get(name)
        except ScriptExecutionError as exc:
            raise TransformationError(f"The edit would leave the file unreadable: {exc}") from exc
        if value_src is not None and (found is None or contents[found.value_start:found.value_end] != value_src.strip()):
            raise TransformationError(f"Unable to write the {kind} '{name}' with value {value_src}.")
        if not contents.strip():
            raise TransformationError("Refusing to write an empty config file.")

        write_atomic(self.path, contents)
