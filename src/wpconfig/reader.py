# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Recover the constants, variables and includes a config script defines.

The script runs in a fresh ``ScriptContext``. A ``Snapshot`` of the context is
taken before and after execution; whatever appears only in the second one was
defined by the script.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, FrozenSet, List, Mapping, Optional, Union

from .errors import NotFoundError
from .sandbox import ScriptContext

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    CONSTANT = "constant"
    VARIABLE = "variable"
    INCLUDES = "includes"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ConfigEntry:
    name: str
    value: Any
    kind: EntryKind

    def as_row(self) -> dict:
        return {"name": self.name, "value": self.value, "type": self.kind.value}


@dataclass(frozen=True)
class Snapshot:
    constants: FrozenSet[str]
    variables: FrozenSet[str]
    includes: FrozenSet[str]

    @classmethod
    def capture(cls, context: ScriptContext) -> "Snapshot":
        return cls(
            constants=frozenset(context.constants),
            variables=frozenset(context.variables),
            includes=frozenset(context.included),
        )


def diff_entries(context: ScriptContext, before: Snapshot, after: Snapshot) -> List[ConfigEntry]:
    """Entries present in ``after`` but not ``before``: variables, constants, includes."""
    entries: List[ConfigEntry] = []
    for name, value in context.variables.items():
        if name in after.variables and name not in before.variables:
            entries.append(ConfigEntry(name, value, EntryKind.VARIABLE))
    for name, value in context.constants.items():
        if name in after.constants and name not in before.constants:
            entries.append(ConfigEntry(name, value, EntryKind.CONSTANT))
    seen = set()
    for path in context.included:
        if path in after.includes and path not in before.includes and path not in seen:
            seen.add(path)
            entries.append(ConfigEntry(os.path.basename(path), path, EntryKind.INCLUDES))
    return entries


def read_entries(
    path: Union[str, Path],
    *,
    predefined: Optional[Mapping[str, Any]] = None,
) -> List[ConfigEntry]:
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"'{path.name}' not found.")
    constants = {"ABSPATH": str(path.resolve().parent) + "/"}
    constants.update(predefined or {})
    context = ScriptContext(constants)
    before = Snapshot.capture(context)
    context.run_file(path)
    after = Snapshot.capture(context)
    entries = diff_entries(context, before, after)
    logger.debug("read %d entries from %s", len(entries), path)
    return entries


def read_variable(path: Union[str, Path], name: str) -> Any:
    """Value of a single variable a script assigns, or None."""
    for entry in read_entries(path):
        if entry.kind is EntryKind.VARIABLE and entry.name == name:
            return entry.value
    return None
