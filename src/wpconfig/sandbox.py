# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Evaluate parsed configuration scripts inside an isolated context.

A ``ScriptContext`` owns everything a script can observe or change: the
constant table, the variable scope, the superglobals and the list of loaded
files. Nothing leaks between contexts, so each read builds a fresh one.
"""

from __future__ import annotations

import copy
import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from . import php
from .errors import ScriptExecutionError

logger = logging.getLogger(__name__)

AMBIENT_CONSTANTS: Dict[str, Any] = {
    "PHP_EOL": "\n",
    "PHP_INT_MAX": 2**63 - 1,
    "PHP_INT_MIN": -(2**63),
    "PHP_INT_SIZE": 8,
    "PHP_VERSION": "8.2.0",
    "PHP_MAJOR_VERSION": 8,
    "PHP_OS": "Linux",
    "PHP_OS_FAMILY": "Linux",
    "DIRECTORY_SEPARATOR": "/",
    "PATH_SEPARATOR": ":",
    "E_ERROR": 1,
    "E_WARNING": 2,
    "E_PARSE": 4,
    "E_NOTICE": 8,
    "E_STRICT": 2048,
    "E_DEPRECATED": 8192,
    "E_USER_DEPRECATED": 16384,
    "E_ALL": 32767,
    "FILTER_DEFAULT": 516,
    "FILTER_VALIDATE_BOOLEAN": 258,
    "FILTER_VALIDATE_BOOL": 258,
    "FILTER_VALIDATE_INT": 257,
    "FILTER_NULL_ON_FAILURE": 134217728,
}
DEFAULT_SKIP_INCLUDES = ("wp-settings.php",)
SUPERGLOBALS = ("_SERVER", "_ENV", "_GET", "_POST", "_COOKIE", "_REQUEST", "_FILES")

_NUMERIC_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_NUMERIC_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


# ---------------------------------------------------------------------------
# PHP value semantics

def to_bool(value: Any) -> bool:
    """PHP ``boolval``: "", "0", 0, 0.0, null and empty arrays are false."""
    if value is None:
        return False
    if isinstance(value, str):
        return value not in ("", "0")
    if isinstance(value, dict):
        return bool(value)
    return bool(value)


def to_str(value: Any) -> str:
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return repr(value)
    if isinstance(value, dict):
        return "Array"
    return str(value)


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_RE.match(value))


def to_number(value: Any):
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, dict):
        return 1 if value else 0
    match = _NUMERIC_PREFIX_RE.match(value)
    if not match:
        return 0
    text = match.group(0).strip()
    if any(c in text for c in ".eE"):
        return float(text)
    return int(text)


def loose_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return to_bool(left) == to_bool(right)
    if left is None or right is None:
        other = right if left is None else left
        return not to_bool(other) if not isinstance(other, str) else other == ""
    if isinstance(left, str) and isinstance(right, str):
        if is_numeric(left) and is_numeric(right):
            return to_number(left) == to_number(right)
        return left == right
    if isinstance(left, (int, float)) and isinstance(right, str):
        if is_numeric(right):
            return left == to_number(right)
        return to_str(left) == right
    if isinstance(right, (int, float)) and isinstance(left, str):
        return loose_equal(right, left)
    return left == right


def strict_equal(left: Any, right: Any) -> bool:
    return type(left) is type(right) and left == right


def compare(left: Any, right: Any) -> int:
    if isinstance(left, str) and isinstance(right, str) and not (is_numeric(left) and is_numeric(right)):
        a: Any = left
        b: Any = right
    elif isinstance(left, bool) or isinstance(right, bool) or left is None or right is None:
        a, b = to_bool(left), to_bool(right)
    else:
        a, b = to_number(left), to_number(right)
    return (a > b) - (a < b)


def array_key(key: Any) -> Any:
    """Normalize an array key the way PHP does."""
    if isinstance(key, bool):
        return int(key)
    if key is None:
        return ""
    if isinstance(key, float):
        return int(key)
    if isinstance(key, str) and re.match(r"^(0|-?[1-9]\d*)$", key):
        return int(key)
    return key


def next_index(array: Dict[Any, Any]) -> int:
    ints = [k for k in array if isinstance(k, int)]
    return max(ints) + 1 if ints else 0


def php_list(values: Sequence[Any]) -> Dict[int, Any]:
    return dict(enumerate(values))


# ---------------------------------------------------------------------------
# Evaluation context

class ScriptContext:
    """Isolated scope a configuration script executes in."""

    def __init__(
        self,
        constants: Optional[Mapping[str, Any]] = None,
        *,
        skip_includes: Sequence[str] = DEFAULT_SKIP_INCLUDES,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.constants: Dict[str, Any] = dict(AMBIENT_CONSTANTS)
        self.constants.update(constants or {})
        self.variables: Dict[str, Any] = {}
        self.included: List[str] = []
        self.skip_includes = tuple(skip_includes)
        self.environ: Mapping[str, str] = os.environ if environ is None else environ
        self.superglobals: Dict[str, Dict[Any, Any]] = {name: {} for name in SUPERGLOBALS}
        self.superglobals["_SERVER"].update(self.environ)
        self.superglobals["_ENV"].update(self.environ)
        self._frames: List[Tuple[Path, str]] = []
        self._builtins: Dict[str, Callable[..., Any]] = {
            "define": self._fn_define,
            "defined": lambda name: to_str(name) in self.constants,
            "constant": self._fn_constant,
            "getenv": self._fn_getenv,
            "dirname": _fn_dirname,
            "basename": _fn_basename,
            "file_exists": lambda p: self._path(p).exists(),
            "is_file": lambda p: self._path(p).is_file(),
            "is_dir": lambda p: self._path(p).is_dir(),
            "is_readable": lambda p: os.access(self._path(p), os.R_OK),
            "realpath": self._fn_realpath,
            "strtolower": lambda s: to_str(s).lower(),
            "strtoupper": lambda s: to_str(s).upper(),
            "trim": lambda s, chars=" \t\n\r\0\x0B": to_str(s).strip(to_str(chars)),
            "ltrim": lambda s, chars=" \t\n\r\0\x0B": to_str(s).lstrip(to_str(chars)),
            "rtrim": lambda s, chars=" \t\n\r\0\x0B": to_str(s).rstrip(to_str(chars)),
            "str_replace": _fn_str_replace,
            "implode": _fn_implode,
            "explode": lambda sep, s: php_list(to_str(s).split(to_str(sep))),
            "in_array": _fn_in_array,
            "array_key_exists": lambda key, arr: isinstance(arr, dict) and array_key(key) in arr,
            "count": lambda arr: len(arr) if isinstance(arr, dict) else 1,
            "is_array": lambda v: isinstance(v, dict),
            "is_string": lambda v: isinstance(v, str),
            "is_numeric": is_numeric,
            "intval": lambda v: int(to_number(v)),
            "boolval": to_bool,
            "strval": to_str,
            "function_exists": lambda name: to_str(name).lower() in self._builtins,
            "filter_var": _fn_filter_var,
            "ini_set": lambda *args: False,
            "ini_get": lambda *args: False,
            "error_reporting": lambda *args: self.constants["E_ALL"],
            "set_time_limit": lambda *args: True,
            "date_default_timezone_set": lambda *args: True,
            "header": lambda *args: None,
        }

    # -- entry points ------------------------------------------------------

    def run_file(self, path: Path, *, record: bool = False) -> Any:
        """Execute ``path``. Included files are recorded, the entry script is not."""
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8", errors="surrogateescape")
        except OSError as exc:
            raise ScriptExecutionError(f"Failed opening '{path}': {exc.strerror}") from exc
        if record:
            self.included.append(str(path))
        return self.run_source(source, path)

    def run_source(self, source: str, path: Path) -> Any:
        statements = php.parse(source, str(path))
        self._frames.append((Path(path), source))
        try:
            returned, value = self._exec_body(statements)
        finally:
            self._frames.pop()
        return value if returned else 1

    # -- helpers -----------------------------------------------------------

    @property
    def current_file(self) -> Path:
        return self._frames[-1][0] if self._frames else Path.cwd() / "-"

    def _fail(self, message: str, node: Any = None) -> ScriptExecutionError:
        if not self._frames:
            return ScriptExecutionError(message)
        path, source = self._frames[-1]
        line = php.line_of(source, node.pos) if node is not None else None
        return ScriptExecutionError(message, str(path), line)

    def _path(self, value: Any) -> Path:
        candidate = Path(to_str(value))
        if candidate.is_absolute():
            return candidate
        return Path.cwd() / candidate

    # -- statements --------------------------------------------------------

    def _exec_body(self, body: Sequence[php.Stmt]) -> Tuple[bool, Any]:
        for stmt in body:
            returned, value = self._exec(stmt)
            if returned:
                return True, value
        return False, None

    def _exec(self, stmt: php.Stmt) -> Tuple[bool, Any]:
        if isinstance(stmt, php.ExprStmt):
            self.evaluate(stmt.expr)
        elif isinstance(stmt, php.Block):
            return self._exec_body(stmt.body)
        elif isinstance(stmt, php.If):
            for cond, body in stmt.branches:
                if to_bool(self.evaluate(cond)):
                    return self._exec_body(body)
            if stmt.orelse is not None:
                return self._exec_body(stmt.orelse)
        elif isinstance(stmt, php.Echo):
            for value in stmt.values:
                logger.debug("discarded script output: %r", to_str(self.evaluate(value)))
        elif isinstance(stmt, php.ConstDecl):
            for name, expr in stmt.items:
                self._define(name, self.evaluate(expr))
        elif isinstance(stmt, php.Return):
            return True, None if stmt.value is None else self.evaluate(stmt.value)
        elif isinstance(stmt, php.Unset):
            for target in stmt.targets:
                self._unset(target)
        return False, None

    # -- expressions -------------------------------------------------------

    def evaluate(self, node: php.Expr) -> Any:
        handler = getattr(self, f"_eval_{type(node).__name__.lower()}")
        return handler(node)

    def _eval_literal(self, node: php.Literal) -> Any:
        return node.value

    def _eval_interpolated(self, node: php.Interpolated) -> str:
        return "".join(part if isinstance(part, str) else to_str(self.evaluate(part)) for part in node.parts)

    def _eval_constref(self, node: php.ConstRef) -> Any:
        if node.name in self.constants:
            return self.constants[node.name]
        raise self._fail(f'Undefined constant "{node.name}"', node)

    def _eval_magicconst(self, node: php.MagicConst) -> Any:
        if node.name == "__file__":
            return str(self.current_file)
        if node.name == "__dir__":
            return str(self.current_file.parent)
        return php.line_of(self._frames[-1][1], node.pos) if self._frames else 0

    def _eval_var(self, node: php.Var) -> Any:
        if node.name in self.variables:
            return self.variables[node.name]
        if node.name in self.superglobals:
            return self.superglobals[node.name]
        if node.name == "GLOBALS":
            return dict(self.variables)
        logger.debug("Undefined variable $%s", node.name)
        return None

    def _eval_index(self, node: php.Index) -> Any:
        if node.key is None:
            raise self._fail("Cannot use [] for reading", node)
        base = self.evaluate(node.base)
        key = self.evaluate(node.key)
        if isinstance(base, dict):
            normalized = array_key(key)
            if normalized not in base:
                logger.debug("Undefined array key %r", normalized)
                return None
            return base[normalized]
        if isinstance(base, str):
            offset = int(to_number(key))
            return base[offset] if -len(base) <= offset < len(base) else ""
        return None

    def _eval_arraylit(self, node: php.ArrayLit) -> Dict[Any, Any]:
        result: Dict[Any, Any] = {}
        for key_expr, value_expr in node.items:
            key = next_index(result) if key_expr is None else array_key(self.evaluate(key_expr))
            result[key] = copy.deepcopy(self.evaluate(value_expr))
        return result

    def _eval_call(self, node: php.Call) -> Any:
        func = self._builtins.get(node.name.lower())
        if func is None:
            raise self._fail(f"Call to undefined function {node.name}()", node)
        args = [self.evaluate(arg) for arg in node.args]
        try:
            return func(*args)
        except TypeError as exc:
            raise self._fail(f"{node.name}(): invalid arguments ({exc})", node) from exc

    def _eval_isset(self, node: php.Isset) -> bool:
        return all(self._quiet(arg) is not None for arg in node.args)

    def _eval_empty(self, node: php.Empty) -> bool:
        return not to_bool(self._quiet(node.arg))

    def _eval_unary(self, node: php.Unary) -> Any:
        value = self.evaluate(node.operand)
        if node.op == "!":
            return not to_bool(value)
        if node.op == "-":
            return -to_number(value)
        if node.op == "+":
            return to_number(value)
        if node.op == "~":
            return ~int(to_number(value))
        return value

    def _eval_cast(self, node: php.Cast) -> Any:
        value = self.evaluate(node.operand)
        if node.type == "int":
            return int(to_number(value))
        if node.type == "float":
            return float(to_number(value))
        if node.type == "bool":
            return to_bool(value)
        if node.type == "string":
            return to_str(value)
        if isinstance(value, dict):
            return value
        return {} if value is None else {0: value}

    def _eval_binary(self, node: php.Binary) -> Any:
        op = node.op
        if op in ("&&", "and"):
            return to_bool(self.evaluate(node.left)) and to_bool(self.evaluate(node.right))
        if op in ("||", "or"):
            return to_bool(self.evaluate(node.left)) or to_bool(self.evaluate(node.right))
        if op == "??":
            left = self._quiet(node.left)
            return left if left is not None else self.evaluate(node.right)
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if op == ".":
            return to_str(left) + to_str(right)
        if op == "xor":
            return to_bool(left) != to_bool(right)
        if op in ("==", "!=", "<>"):
            return loose_equal(left, right) == (op == "==")
        if op in ("===", "!=="):
            return strict_equal(left, right) == (op == "===")
        if op == "<":
            return compare(left, right) < 0
        if op == "<=":
            return compare(left, right) <= 0
        if op == ">":
            return compare(left, right) > 0
        if op == ">=":
            return compare(left, right) >= 0
        if op == "<=>":
            return compare(left, right)
        return self._arithmetic(op, left, right, node)

    def _arithmetic(self, op: str, left: Any, right: Any, node: Any) -> Any:
        if op == "+" and isinstance(left, dict) and isinstance(right, dict):
            return {**left, **{k: v for k, v in right.items() if k not in left}}
        if op in ("|", "^", "&", "<<", ">>"):
            a, b = int(to_number(left)), int(to_number(right))
            return {"|": a | b, "^": a ^ b, "&": a & b, "<<": a << b, ">>": a >> b}[op]
        a, b = to_number(left), to_number(right)
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "**":
            return a**b
        if op in ("/", "%") and b == 0:
            raise self._fail("Division by zero" if op == "/" else "Modulo by zero", node)
        if op == "/":
            result = a / b
            return int(result) if isinstance(a, int) and isinstance(b, int) and a % b == 0 else result
        if op == "%":
            a, b = int(a), int(b)
            return abs(a) % abs(b) * (1 if a >= 0 else -1)
        raise self._fail(f"unsupported operator '{op}'", node)

    def _eval_ternary(self, node: php.Ternary) -> Any:
        cond = self.evaluate(node.cond)
        if to_bool(cond):
            return cond if node.then is None else self.evaluate(node.then)
        return self.evaluate(node.otherwise)

    def _eval_assign(self, node: php.Assign) -> Any:
        if node.op == "??=":
            current = self._quiet(node.target)
            if current is not None:
                return current
            value = self.evaluate(node.value)
        elif node.op == "=":
            value = copy.deepcopy(self.evaluate(node.value))
        else:
            current = self.evaluate(node.target)
            operand = self.evaluate(node.value)
            op = node.op[:-1]
            value = to_str(current) + to_str(operand) if op == "." else self._arithmetic(op, current, operand, node)
        self._store(node.target, value)
        return value

    def _eval_include(self, node: php.Include) -> Any:
        raw = to_str(self.evaluate(node.path))
        if posixpath.basename(raw) in self.skip_includes:
            logger.debug("skipping bootstrap include %s", raw)
            return True
        target = self._resolve_include(raw)
        if target is None:
            if node.kind.startswith("require"):
                raise self._fail(f"Failed opening required '{raw}'", node)
            logger.warning("%s(%s): Failed to open stream: No such file or directory", node.kind, raw)
            return False
        if node.kind.endswith("_once") and str(target) in self.included:
            return True
        return self.run_file(target, record=True)

    def _eval_print(self, node: php.Print) -> int:
        logger.debug("discarded script output: %r", to_str(self.evaluate(node.value)))
        return 1

    # -- storage -----------------------------------------------------------

    def _quiet(self, node: php.Expr) -> Any:
        """Evaluate a variable-like expression without failing on missing parts."""
        if isinstance(node, php.Var):
            return self._eval_var(node)
        if isinstance(node, php.Index) and node.key is not None:
            base = self._quiet(node.base)
            if isinstance(base, dict):
                return base.get(array_key(self.evaluate(node.key)))
            if isinstance(base, str):
                return self._eval_index(node)
            return None
        if isinstance(node, php.ConstRef) and node.name not in self.constants:
            return None
        return self.evaluate(node)

    def _scope_for(self, name: str) -> Dict[str, Any]:
        return self.superglobals if name in self.superglobals else self.variables

    def _global_name(self, node: php.Expr) -> Optional[str]:
        """Variable name addressed by ``$GLOBALS['name']``, None for anything else."""
        if (
            isinstance(node, php.Index)
            and node.key is not None
            and isinstance(node.base, php.Var)
            and node.base.name == "GLOBALS"
        ):
            return to_str(self.evaluate(node.key))
        return None

    def _container(self, node: php.Expr) -> Dict[Any, Any]:
        """Return the array an index write lands in, creating it when needed."""
        global_name = self._global_name(node)
        if isinstance(node, php.Var) or global_name is not None:
            name = node.name if global_name is None else global_name
            scope = self.variables if global_name is not None else self._scope_for(name)
            current = scope.get(name)
            if current is None:
                current = scope[name] = {}
        elif isinstance(node, php.Index):
            parent = self._container(node.base)
            key = next_index(parent) if node.key is None else array_key(self.evaluate(node.key))
            current = parent.get(key)
            if current is None:
                current = parent[key] = {}
        else:
            raise self._fail("Cannot assign to this expression", node)
        if not isinstance(current, dict):
            raise self._fail("Cannot use a scalar value as an array", node)
        return current

    def _store(self, target: php.Expr, value: Any) -> None:
        if isinstance(target, php.Var):
            self._scope_for(target.name)[target.name] = value
            return
        global_name = self._global_name(target)
        if global_name is not None:
            self.variables[global_name] = value
            return
        if isinstance(target, php.Index):
            container = self._container(target.base)
            key = next_index(container) if target.key is None else array_key(self.evaluate(target.key))
            container[key] = value
            return
        raise self._fail("Cannot assign to this expression", target)

    def _unset(self, target: php.Expr) -> None:
        global_name = self._global_name(target)
        if isinstance(target, php.Var):
            self._scope_for(target.name).pop(target.name, None)
        elif global_name is not None:
            self.variables.pop(global_name, None)
        elif isinstance(target, php.Index) and target.key is not None:
            container = self._quiet(target.base)
            if isinstance(container, dict):
                container.pop(array_key(self.evaluate(target.key)), None)

    # -- built-in functions ------------------------------------------------

    def _define(self, name: str, value: Any) -> bool:
        if name in self.constants:
            logger.warning("Constant %s already defined", name)
            return False
        self.constants[name] = value
        return True

    def _fn_define(self, name: Any, value: Any, case_insensitive: Any = False) -> bool:
        return self._define(to_str(name), copy.deepcopy(value))

    def _fn_constant(self, name: Any) -> Any:
        key = to_str(name)
        if key not in self.constants:
            raise self._fail(f'Undefined constant "{key}"')
        return self.constants[key]

    def _fn_getenv(self, name: Any = None, local_only: Any = False) -> Any:
        if name is None:
            return dict(self.environ)
        return self.environ.get(to_str(name), False)

    def _fn_realpath(self, value: Any) -> Any:
        path = self._path(value)
        return str(path.resolve()) if path.exists() else False

    def _resolve_include(self, raw: str) -> Optional[Path]:
        candidate = Path(raw)
        if candidate.is_absolute():
            return candidate.resolve() if candidate.is_file() else None
        for base in (Path.cwd(), self.current_file.parent):
            resolved = (base / candidate).resolve()
            if resolved.is_file():
                return resolved
        return None


def _fn_dirname(path: Any, levels: Any = 1) -> str:
    result = to_str(path)
    for _ in range(int(to_number(levels))):
        if result in ("", "/", "."):
            break
        head = posixpath.dirname(result.rstrip("/"))
        result = head or "."
    return result


def _fn_basename(path: Any, suffix: Any = "") -> str:
    name = posixpath.basename(to_str(path).rstrip("/"))
    suffix = to_str(suffix)
    if suffix and name.endswith(suffix) and name != suffix:
        name = name[: -len(suffix)]
    return name


def _fn_str_replace(search: Any, replace: Any, subject: Any) -> Any:
    searches = list(search.values()) if isinstance(search, dict) else [search]
    if isinstance(replace, dict):
        replacements = list(replace.values())
        replacements += [""] * (len(searches) - len(replacements))
    else:
        replacements = [replace] * len(searches)

    def apply(text: str) -> str:
        for needle, repl in zip(searches, replacements):
            if to_str(needle):
                text = text.replace(to_str(needle), to_str(repl))
        return text

    if isinstance(subject, dict):
        return {k: apply(to_str(v)) for k, v in subject.items()}
    return apply(to_str(subject))


def _fn_implode(separator: Any, pieces: Any = None) -> str:
    if pieces is None:
        separator, pieces = "", separator
    if isinstance(separator, dict):
        separator, pieces = pieces, separator
    return to_str(separator).join(to_str(v) for v in (pieces or {}).values())


def _fn_in_array(needle: Any, haystack: Any, strict: Any = False) -> bool:
    if not isinstance(haystack, dict):
        return False
    equal = strict_equal if to_bool(strict) else loose_equal
    return any(equal(needle, item) for item in haystack.values())


def _fn_filter_var(value: Any, filter_id: Any = 516, options: Any = 0) -> Any:
    flags = options if isinstance(options, int) else 0
    if isinstance(options, dict):
        flags = int(to_number(options.get("flags", 0)))
    if filter_id == AMBIENT_CONSTANTS["FILTER_VALIDATE_BOOLEAN"]:
        text = to_str(value).strip().lower()
        if text in ("1", "true", "on", "yes"):
            return True
        if text in ("0", "false", "off", "no", ""):
            return False
        return None if flags & AMBIENT_CONSTANTS["FILTER_NULL_ON_FAILURE"] else False
    if filter_id == AMBIENT_CONSTANTS["FILTER_VALIDATE_INT"]:
        text = to_str(value).strip()
        return int(text) if re.match(r"^[+-]?\d+$", text) else False
    return to_str(value)
