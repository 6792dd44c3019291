# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Exception hierarchy shared by the reader, transformer and store."""

from __future__ import annotations

from typing import Optional


class ConfigError(Exception):
    """Base class for every failure reported to the operator."""

    exit_code = 1


class NotFoundError(ConfigError, LookupError):
    """The config file or a named entry does not exist."""


class NotFoundWithoutAddError(NotFoundError):
    """A set was requested for a missing entry while adding is disabled."""


class AmbiguousEntryError(ConfigError):
    """The same name is defined as both a constant and a variable."""

    def __init__(self, name: str, file_name: str) -> None:
        super().__init__(
            f"Found both a constant and a variable '{name}' in the '{file_name}' file. "
            "Use --type=<type> to disambiguate."
        )
        self.name = name
        self.file_name = file_name


class ConfigFileExistsError(ConfigError, FileExistsError):
    def __init__(self, file_name: str) -> None:
        super().__init__(f"The '{file_name}' file already exists.")
        self.file_name = file_name


class InsecureRandomnessUnavailable(ConfigError):
    """No cryptographically secure randomness source is available."""


class RemoteServiceError(ConfigError):
    """The remote salt service could not be reached or answered badly."""


class ScriptExecutionError(ConfigError):
    """The configuration script could not be evaluated."""

    def __init__(self, message: str, file: Optional[str] = None, line: Optional[int] = None) -> None:
        location = ""
        if file is not None:
            location = f" in {file}" + (f" on line {line}" if line is not None else "")
        super().__init__(f"{message}{location}")
        self.file = file
        self.line = line


class TransformationError(ConfigError):
    """The text transformer refused or failed an edit."""


class ValidationError(ConfigError):
    """An option value is malformed or a required option is missing."""


class MissingFilterError(ValidationError):
    def __init__(self) -> None:
        super().__init__("The --strict option can only be used in combination with a filter.")


class CreationError(ConfigError):
    """Writing a freshly rendered config file failed."""
