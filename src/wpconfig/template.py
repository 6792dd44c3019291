# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Render the initial wp-config.php written by ``wpconfig create``."""

from __future__ import annotations

from typing import List, Mapping, Optional

from .transformer import DEFAULT_ANCHOR, format_value

HEADER = """<?php
/**
 * The base configuration for WordPress
 *
 * The wp-config.php creation script uses this file during the installation.
 * You don't have to use the website, you can copy this file to "wp-config.php"
 * and fill in the values.
 *
 * This file contains the following configurations:
 *
 * * Database settings
 * * Secret keys
 * * Database table prefix
 * * ABSPATH
 *
 * @link https://developer.wordpress.org/advanced-administration/wordpress/wp-config/
 *
 * @package WordPress
 */
"""

FOOTER = DEFAULT_ANCHOR + """ Happy publishing. */

/** Absolute path to the WordPress directory. */
if ( ! defined( 'ABSPATH' ) ) {
	define( 'ABSPATH', __DIR__ . '/' );
}

/** Sets up WordPress vars and included files. */
require_once ABSPATH . 'wp-settings.php';
"""

DATABASE_SETTINGS = (
    ("DB_NAME", "dbname", "The name of the database for WordPress"),
    ("DB_USER", "dbuser", "Database username"),
    ("DB_PASSWORD", "dbpass", "Database password"),
    ("DB_HOST", "dbhost", "Database hostname"),
    ("DB_CHARSET", "dbcharset", "Database charset to use in creating database tables."),
    ("DB_COLLATE", "dbcollate", "The database collate type. Don't change this if in doubt."),
)


def _define(name: str, value: str, pad: int = 0) -> str:
    key = f"'{name}',"
    return f"define( {key.ljust(pad)} {format_value(value)} );"


def render_config(
    values: Mapping[str, str],
    salts: Optional[Mapping[str, str]] = None,
    *,
    add_wplang: bool = False,
    extra_php: str = "",
) -> str:
    lines: List[str] = [HEADER, "// ** Database settings - You can get this info from your web host ** //"]
    for constant, key, comment in DATABASE_SETTINGS:
        lines.append(f"/** {comment} */")
        lines.append(_define(constant, values.get(key, "")))
        lines.append("")

    if salts:
        lines.append("/**#@+")
        lines.append(" * Authentication unique keys and salts.")
        lines.append(" *")
        lines.append(" * Change these to different unique phrases! You can generate these using")
        lines.append(" * the {@link https://api.wordpress.org/secret-key/1.1/salt/ WordPress.org secret-key service}.")
        lines.append(" *")
        lines.append(" * You can change these at any point in time to invalidate all existing cookies.")
        lines.append(" * This will force all users to have to log in again.")
        lines.append(" */")
        for name, salt in salts.items():
            lines.append(_define(name, salt, pad=19))
        lines.append("")
        lines.append("/**#@-*/")
        lines.append("")

    lines.append("/**")
    lines.append(" * WordPress database table prefix.")
    lines.append(" *")
    lines.append(" * You can have multiple installations in one database if you give each")
    lines.append(" * a unique prefix. Only numbers, letters, and underscores please!")
    lines.append(" */")
    lines.append(f"$table_prefix = {format_value(values.get('dbprefix', 'wp_'))};")
    lines.append("")

    if add_wplang:
        lines.append("/** The locale used for translations. */")
        lines.append(_define("WPLANG", values.get("locale", "")))
        lines.append("")

    lines.append('/* Add any custom values between this line and the "stop editing" line. */')
    lines.append("")
    if extra_php:
        lines.append(extra_php.rstrip("\n"))
        lines.append("")
    lines.append("/**")
    lines.append(" * For developers: WordPress debugging mode.")
    lines.append(" *")
    lines.append(" * Change this to true to enable the display of notices during development.")
    lines.append(" */")
    lines.append("if ( ! defined( 'WP_DEBUG' ) ) {")
    lines.append("\tdefine( 'WP_DEBUG', false );")
    lines.append("}")
    lines.append("")
    lines.append(FOOTER)
    return "\n".join(lines)
