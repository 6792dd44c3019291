# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Output formats for ``get`` and ``list``."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Sequence

from .errors import ValidationError
from .reader import ConfigEntry, EntryKind
from .sandbox import is_numeric, to_str

DEFAULT_FIELDS = ("name", "value", "type")
LIST_FORMATS = ("table", "csv", "json", "dotenv")
GET_FORMATS = ("var_export", "json", "dotenv")


def to_json_value(value: Any) -> Any:
    """PHP arrays with keys 0..n-1 become lists, every other array an object."""
    if isinstance(value, dict):
        if list(value) == list(range(len(value))):
            return [to_json_value(v) for v in value.values()]
        return {str(k): to_json_value(v) for k, v in value.items()}
    return value


def display_value(value: Any) -> str:
    if isinstance(value, dict):
        return json.dumps(to_json_value(value))
    return to_str(value)


def _export_scalar(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = repr(value)
        return text if any(c in text for c in ".eEn") else text + ".0"
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def var_export(value: Any, indent: str = "") -> str:
    """Source text that would recreate ``value``, laid out like PHP's ``var_export``."""
    if not isinstance(value, dict):
        return _export_scalar(value)
    lines = ["array ("]
    for key, item in value.items():
        prefix = f"{indent}  {_export_scalar(key)} => "
        if isinstance(item, dict):
            lines.append(prefix)
            lines.append(f"{indent}  {var_export(item, indent + '  ')},")
        else:
            lines.append(f"{prefix}{_export_scalar(item)},")
    lines.append(f"{indent})")
    return "\n".join(lines)


def dotenv_line(name: str, value: Any) -> str:
    text = display_value(value).replace("'", "\\'")
    if not is_numeric(text):
        text = f"'{text}'"
    return f"{name.upper()}={text}"


def format_value(value: Any, fmt: str = "var_export", name: str = "") -> str:
    if fmt == "json":
        return json.dumps(to_json_value(value))
    if fmt == "dotenv":
        return dotenv_line(name, value)
    if fmt != "var_export":
        raise ValidationError(f"Invalid format '{fmt}'.")
    if isinstance(value, dict):
        return var_export(value)
    return to_str(value)


def _rows(entries: Sequence[ConfigEntry], fields: Sequence[str]) -> List[Dict[str, str]]:
    rows = []
    for entry in entries:
        row = entry.as_row()
        rows.append({field: display_value(row[field]) if field == "value" else str(row[field]) for field in fields})
    return rows


def format_table(entries: Sequence[ConfigEntry], fields: Sequence[str] = DEFAULT_FIELDS) -> str:
    rows = _rows(entries, fields)
    widths = {field: max([len(field), *(len(row[field]) for row in rows)]) for field in fields}
    fmt = "  ".join(f"{{:<{widths[field]}}}" for field in fields)
    header = fmt.format(*fields).rstrip()
    lines = [header, "-" * len(header)]
    lines.extend(fmt.format(*(row[field] for field in fields)).rstrip() for row in rows)
    return "\n".join(lines)


def format_csv(entries: Sequence[ConfigEntry], fields: Sequence[str] = DEFAULT_FIELDS) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(fields), lineterminator="\n")
    writer.writeheader()
    writer.writerows(_rows(entries, fields))
    return buffer.getvalue().rstrip("\n")


def format_json(entries: Sequence[ConfigEntry], fields: Sequence[str] = DEFAULT_FIELDS) -> str:
    items = []
    for entry in entries:
        row = entry.as_row()
        items.append({field: to_json_value(row[field]) for field in fields})
    return json.dumps(items)


def format_dotenv(entries: Sequence[ConfigEntry]) -> str:
    """Constants only, one ``NAME=value`` line each."""
    return "\n".join(dotenv_line(e.name, e.value) for e in entries if e.kind is EntryKind.CONSTANT)


def format_entries(entries: Sequence[ConfigEntry], fmt: str = "table", fields: Sequence[str] = DEFAULT_FIELDS) -> str:
    unknown = [field for field in fields if field not in DEFAULT_FIELDS]
    if unknown:
        raise ValidationError(f"Invalid field: {', '.join(unknown)}.")
    if fmt == "table":
        return format_table(entries, fields)
    if fmt == "csv":
        return format_csv(entries, fields)
    if fmt == "json":
        return format_json(entries, fields)
    if fmt == "dotenv":
        return format_dotenv(entries)
    raise ValidationError(f"Invalid format '{fmt}'.")
