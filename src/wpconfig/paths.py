# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Locate the wp-config.php file a command operates on."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from .errors import NotFoundError

CONFIG_FILE_NAME = "wp-config.php"
WP_ROOT_MARKER = "wp-settings.php"
CONFIG_PATH_ENV = "WPCONFIG_PATH"


def not_found(file_name: str) -> NotFoundError:
    return NotFoundError(f"'{file_name}' not found.\nEither create one manually or use `wpconfig create`.")


def locate_wp_config(start: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Walk up from ``start`` looking for a wp-config.php.

    A config one level above a WordPress root is accepted as long as that
    parent directory is not a WordPress root itself.
    """
    directory = Path(start or Path.cwd()).resolve()
    for candidate in (directory, *directory.parents):
        config = candidate / CONFIG_FILE_NAME
        if config.is_file():
            return config
        if (candidate / WP_ROOT_MARKER).is_file():
            parent = candidate.parent
            if (parent / CONFIG_FILE_NAME).is_file() and not (parent / WP_ROOT_MARKER).is_file():
                return parent / CONFIG_FILE_NAME
            return None
    return None


def default_create_path(start: Optional[Union[str, Path]] = None) -> Path:
    """Where ``create`` writes when no --config-file is given."""
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path(start or Path.cwd()) / CONFIG_FILE_NAME


def resolve_config_path(
    config_file: Optional[Union[str, Path]] = None,
    *,
    start: Optional[Union[str, Path]] = None,
) -> Path:
    if config_file:
        path = Path(config_file)
        if not path.is_file():
            raise not_found(path.name)
        return path
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        path = Path(env_path)
        if not path.is_file():
            raise not_found(path.name)
        return path
    located = locate_wp_config(start)
    if located is None:
        raise not_found(CONFIG_FILE_NAME)
    return located
