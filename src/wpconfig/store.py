# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Treat a wp-config.php file as a key-value store.

Reads go through the diff-based reader, writes through the text transformer.
Names addressed without an explicit type must be unambiguous: when both a
constant and a variable carry the name, the operation refuses to guess.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from packaging.version import InvalidVersion, Version

from .errors import (
    AmbiguousEntryError,
    ConfigError,
    ConfigFileExistsError,
    CreationError,
    MissingFilterError,
    NotFoundError,
    NotFoundWithoutAddError,
    TransformationError,
    ValidationError,
)
from .keys import CACHE_KEY_SALT, SALT_CONSTANTS, generate_keys
from .reader import ConfigEntry, read_entries, read_variable
from .salts import fetch_salts, parse_salts
from .sandbox import to_bool
from .template import render_config
from .transformer import ConfigTransformer, MutationOptions

logger = logging.getLogger(__name__)

KIND_ALL = "all"
KIND_CHOICES = (KIND_ALL, "constant", "variable")
SUGGESTION_THRESHOLD = 2
WPLANG_DROPPED_IN = Version("4.0")

SaltFetcher = Callable[[bool], str]

# option name -> (entry name, kind), in the order create applies them
CREATE_KEYS = (
    ("dbhost", "DB_HOST", "constant"),
    ("dbpass", "DB_PASSWORD", "constant"),
    ("dbprefix", "table_prefix", "variable"),
    ("dbcharset", "DB_CHARSET", "constant"),
    ("dbcollate", "DB_COLLATE", "constant"),
    ("locale", "WPLANG", "constant"),
    ("dbname", "DB_NAME", "constant"),
    ("dbuser", "DB_USER", "constant"),
)


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb)))
        previous = current
    return previous[-1]


def suggest(name: str, candidates: Iterable[str], threshold: int = SUGGESTION_THRESHOLD) -> str:
    """Closest candidate within ``threshold`` edits, or an empty string."""
    best, best_distance = "", threshold + 1
    for candidate in candidates:
        distance = levenshtein(name, candidate)
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def filter_entries(entries: Sequence[ConfigEntry], filters: Sequence[str], strict: bool) -> List[ConfigEntry]:
    result: List[ConfigEntry] = []
    for entry in entries:
        for pattern in filters:
            if strict and pattern != entry.name:
                continue
            if pattern not in entry.name:
                continue
            result.append(entry)
    return result


def _kind_label(kind: str) -> str:
    return "constant or variable" if kind == KIND_ALL else kind


def _check_kind(kind: str) -> None:
    if kind not in KIND_CHOICES:
        raise ValidationError(f"Invalid type '{kind}'. Expected one of: {', '.join(KIND_CHOICES)}.")


@dataclass(frozen=True)
class SetOutcome:
    kind: str
    name: str
    value: str
    added: bool
    raw: bool
    file_name: str

    @property
    def message(self) -> str:
        raw = "raw " if self.raw else ""
        if self.added:
            return f"Added the {self.kind} '{self.name}' to the '{self.file_name}' file with the {raw}value '{self.value}'."
        return f"Updated the {self.kind} '{self.name}' in the '{self.file_name}' file with the {raw}value '{self.value}'."


@dataclass
class ShuffleReport:
    requested: int
    succeeded: int = 0
    skipped: int = 0
    errored: int = 0
    explicit: bool = False

    @property
    def ok(self) -> bool:
        return self.errored == 0

    @property
    def message(self) -> str:
        if not self.explicit and self.ok:
            return "Shuffled the salt keys."
        prefix = "Shuffled" if self.ok else "Only shuffled"
        skipped = f" ({self.skipped} skipped)" if self.skipped else ""
        return f"{prefix} {self.succeeded} of {self.requested} salts{skipped}."


class ConfigStore:
    """Operations on one existing config file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.file_name = self.path.name

    def entries(self) -> List[ConfigEntry]:
        return read_entries(self.path)

    def _transformer(self) -> ConfigTransformer:
        return ConfigTransformer(self.path)

    def _transformation_failed(self, exc: Exception) -> TransformationError:
        return TransformationError(f"Could not process the '{self.file_name}' transformation.\nReason: {exc}")

    def resolve_kind(self, transformer: ConfigTransformer, name: str, kind: str = KIND_ALL) -> Optional[str]:
        """Concrete kind ``name`` is defined as, None when it is not defined."""
        _check_kind(kind)
        if kind != KIND_ALL:
            return kind if transformer.exists(kind, name) else None
        has_constant = transformer.exists("constant", name)
        has_variable = transformer.exists("variable", name)
        if has_constant and has_variable:
            raise AmbiguousEntryError(name, self.file_name)
        if has_constant:
            return "constant"
        if has_variable:
            return "variable"
        return None

    # -- reads -------------------------------------------------------------

    def list(self, filters: Sequence[str] = (), strict: bool = False) -> List[ConfigEntry]:
        if strict and not filters:
            raise MissingFilterError()
        entries = self.entries()
        if filters:
            entries = filter_entries(entries, filters, strict)
        if not entries:
            raise NotFoundError(f"No matching entries found in '{self.file_name}'.")
        return entries

    def get(self, name: str, kind: str = KIND_ALL) -> Any:
        _check_kind(kind)
        entries = self.entries()
        matches = [e for e in entries if e.name == name and (kind == KIND_ALL or e.kind.value == kind)]
        if len(matches) > 1:
            raise AmbiguousEntryError(name, self.file_name)
        if matches:
            return matches[0].value

        message = f"The {_kind_label(kind)} '{name}' is not defined in the '{self.file_name}' file."
        candidate = suggest(name, [e.name for e in entries])
        if candidate and candidate != name:
            message += f"\nDid you mean '{candidate}'?"
        raise NotFoundError(message)

    def is_true(self, name: str, kind: str = KIND_ALL) -> bool:
        return to_bool(self.get(name, kind))

    def has(self, name: str, kind: str = KIND_ALL) -> bool:
        try:
            return self.resolve_kind(self._transformer(), name, kind) is not None
        except AmbiguousEntryError as exc:
            logger.debug("%s", exc)
            return False

    # -- writes ------------------------------------------------------------

    def set(
        self,
        name: str,
        value: str,
        kind: str = KIND_ALL,
        options: Optional[MutationOptions] = None,
    ) -> SetOutcome:
        options = options or MutationOptions()
        transformer = self._transformer()
        try:
            resolved = self.resolve_kind(transformer, name, kind)
            adding = resolved is None
            if adding:
                if not options.add:
                    raise NotFoundWithoutAddError(
                        f"The {_kind_label(kind)} '{name}' is not defined in the '{self.file_name}' file."
                    )
                resolved = "constant" if kind == KIND_ALL else kind
            transformer.update(resolved, name, value, options)
        except TransformationError as exc:
            raise self._transformation_failed(exc) from exc
        return SetOutcome(resolved, name, value, adding, options.raw, self.file_name)

    def delete(self, name: str, kind: str = KIND_ALL) -> str:
        transformer = self._transformer()
        try:
            resolved = self.resolve_kind(transformer, name, kind)
            if resolved is None:
                raise NotFoundError(f"The {_kind_label(kind)} '{name}' is not defined in the '{self.file_name}' file.")
            transformer.remove(resolved, name)
        except TransformationError as exc:
            raise self._transformation_failed(exc) from exc
        return resolved

    def shuffle_salts(
        self,
        keys: Sequence[str] = (),
        *,
        force: bool = False,
        insecure: bool = False,
        fetch: SaltFetcher = fetch_salts,
    ) -> ShuffleReport:
        explicit = bool(keys)
        requested = list(keys) if keys else list(SALT_CONSTANTS)
        report = ShuffleReport(requested=len(requested), explicit=explicit)

        wanted: List[str] = []
        for key in requested:
            if not force and key not in SALT_CONSTANTS:
                logger.warning("Could not shuffle the unknown key '%s'.", key)
                report.skipped += 1
                continue
            wanted.append(key)

        batch = generate_keys(wanted)
        if batch.ok:
            secret_keys = batch.keys
        else:
            logger.debug("falling back to remote salts: %s", batch.unavailable)
            secret_keys = {}
            remote: Dict[str, str] = {}
            if any(key in SALT_CONSTANTS for key in wanted):
                remote = parse_salts(fetch(insecure))
            for key in wanted:
                if key not in SALT_CONSTANTS:
                    logger.warning("Could not add the key '%s' because secure randomness is not available.", key)
                    report.skipped += 1
                elif key in remote:
                    secret_keys[key] = remote[key]
                else:
                    logger.warning("The salt service did not return the key '%s'.", key)
                    report.errored += 1

        transformer = self._transformer()
        for key, value in secret_keys.items():
            try:
                updated = transformer.update("constant", key, value.strip(), MutationOptions())
            except TransformationError as exc:
                logger.warning("Could not shuffle the key '%s': %s", key, exc)
                updated = False
            if updated:
                report.succeeded += 1
            else:
                report.errored += 1
        return report


@dataclass
class CreateSettings:
    dbname: str
    dbuser: str
    dbpass: str = ""
    dbhost: str = "localhost"
    dbprefix: str = "wp_"
    dbcharset: str = "utf8"
    dbcollate: str = ""
    locale: Optional[str] = None
    extra_php: str = ""
    skip_salts: bool = False
    values: Dict[str, str] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self.values = {
            "dbname": self.dbname,
            "dbuser": self.dbuser,
            "dbpass": self.dbpass,
            "dbhost": self.dbhost,
            "dbprefix": self.dbprefix,
            "dbcharset": self.dbcharset,
            "dbcollate": self.dbcollate,
            "locale": self.locale or "",
        }


def validate_prefix(prefix: str) -> None:
    if not prefix:
        raise ValidationError("--dbprefix cannot be empty")
    if re.search(r"[^a-z0-9_]", prefix, re.IGNORECASE):
        raise ValidationError("--dbprefix can only contain numbers, letters, and underscores.")


def _version_file_variable(root: Path, name: str) -> Any:
    version_file = root / "wp-includes" / "version.php"
    if not version_file.is_file():
        return None
    try:
        return read_variable(version_file, name)
    except ConfigError as exc:
        logger.debug("could not read %s: %s", version_file, exc)
        return None


def initial_locale(root: Path) -> str:
    """``$wp_local_package`` of the WordPress install at ``root``, if any."""
    value = _version_file_variable(root, "wp_local_package")
    return value if isinstance(value, str) else ""


def needs_wplang(root: Path) -> bool:
    version = _version_file_variable(root, "wp_version")
    if not isinstance(version, str):
        return False
    try:
        return Version(version) < WPLANG_DROPPED_IN
    except InvalidVersion:
        return False


def create_salts(insecure: bool, fetch: SaltFetcher) -> Dict[str, str]:
    batch = generate_keys((*SALT_CONSTANTS, CACHE_KEY_SALT))
    if batch.ok:
        return batch.keys
    logger.debug("falling back to remote salts: %s", batch.unavailable)
    remote = parse_salts(fetch(insecure))
    return {name: remote[name] for name in SALT_CONSTANTS if name in remote}


def create_config(
    path: Union[str, Path],
    settings: CreateSettings,
    *,
    force: bool = False,
    insecure: bool = False,
    fetch: SaltFetcher = fetch_salts,
) -> Path:
    """Write a new config file at ``path`` and fill in the database settings."""
    path = Path(path)
    if path.exists() and not force:
        raise ConfigFileExistsError(path.name)
    validate_prefix(settings.dbprefix)

    root = path.parent
    values = dict(settings.values)
    if settings.locale is None:
        values["locale"] = initial_locale(root)
    salts = None if settings.skip_salts else create_salts(insecure, fetch)

    contents = render_config(values, salts, add_wplang=needs_wplang(root), extra_php=settings.extra_php)
    try:
        path.write_text(contents, encoding="utf-8")
    except OSError as exc:
        raise CreationError(f"Could not create new '{path.name}' file.\nReason: {exc.strerror or exc}") from exc

    options = MutationOptions(raw=False, add=True, normalize=True)
    try:
        transformer = ConfigTransformer(path)
        for key, name, kind in CREATE_KEYS:
            if to_bool(values.get(key, "")):
                transformer.update(kind, name, values[key], options)
    except ConfigError as exc:
        path.unlink(missing_ok=True)
        raise CreationError(f"Could not create new '{path.name}' file.\nReason: {exc}") from exc
    logger.debug("created %s", path)
    return path
