"""Manage a WordPress wp-config.php file as a key-value store.

Reads execute the script in a sandboxed evaluator and diff the symbols it
defines; writes are format-preserving text edits of single statements.
"""

from .errors import ConfigError
from .reader import ConfigEntry, EntryKind, read_entries
from .store import ConfigStore, CreateSettings, SetOutcome, ShuffleReport, create_config
from .transformer import ConfigTransformer, MutationOptions

__version__ = "0.1.0"

__all__: list[str] = [
    "ConfigEntry",
    "ConfigError",
    "ConfigStore",
    "ConfigTransformer",
    "CreateSettings",
    "EntryKind",
    "MutationOptions",
    "SetOutcome",
    "ShuffleReport",
    "create_config",
    "read_entries",
]
