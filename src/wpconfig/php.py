# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Lexer and parser for the PHP subset used by configuration scripts.

Only what a ``wp-config.php`` realistically contains is understood: constant
definitions, variable assignments, conditionals, includes and literal-ish
expressions. Anything else is reported as a ``ScriptExecutionError`` with the
offending line instead of being guessed at.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from .errors import ScriptExecutionError

_OPEN_TAG_RE = re.compile(r"<\?php(?=\s|$)\s?|<\?=", re.IGNORECASE)

_PHP_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<close>\?>\n?)
  | (?P<comment>/\*.*?(?:\*/|\Z)|(?://|\#(?!\[))(?:[^\n?]|\?(?!>))*)
  | (?P<var>\$[^\W\d]\w*)
  | (?P<number>0[xX][0-9a-fA-F_]+|0[bB][01_]+|0[oO][0-7_]+
              |(?:\d[\d_]*)?\.\d[\d_]*(?:[eE][+-]?\d+)?
              |\d[\d_]*(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<name>\\?[^\W\d]\w*(?:\\[^\W\d]\w*)*)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<op>\.\.\.|<=>|\*\*=|\?\?=|===|!==|<<=|>>=|\.=|\+=|-=|\*=|/=|%=|&&|\|\||\?\?
          |==|!=|<>|<=|>=|->|=>|::|<<|>>|\+\+|--|\*\*|[-+*/%.=<>!?:;,(){}\[\]&|^~@])
    """,
    re.DOTALL | re.VERBOSE,
)

INCLUDE_KINDS = ("include", "include_once", "require", "require_once")
CASTS = {
    "int": "int",
    "integer": "int",
    "bool": "bool",
    "boolean": "bool",
    "float": "float",
    "double": "float",
    "string": "string",
    "array": "array",
}
ASSIGN_OPS = ("=", ".=", "+=", "-=", "*=", "/=", "%=", "**=", "??=")
UNSUPPORTED_KEYWORDS = {
    "namespace", "use", "function", "fn", "class", "interface", "trait", "enum",
    "while", "for", "foreach", "do", "switch", "match", "try", "throw", "goto", "new",
}

# precedence, right associative
_BINARY = {
    "or": (1, False),
    "xor": (2, False),
    "and": (3, False),
    "??": (6, True),
    "||": (7, False),
    "&&": (8, False),
    "|": (9, False),
    "^": (10, False),
    "&": (11, False),
    "==": (12, False),
    "!=": (12, False),
    "<>": (12, False),
    "===": (12, False),
    "!==": (12, False),
    "<=>": (12, False),
    "<": (13, False),
    "<=": (13, False),
    ">": (13, False),
    ">=": (13, False),
    ".": (14, False),
    "<<": (15, False),
    ">>": (15, False),
    "+": (16, False),
    "-": (16, False),
    "*": (17, False),
    "/": (17, False),
    "%": (17, False),
    "**": (19, True),
}
_TERNARY_PREC = 5
_WORD_OPERATORS = ("or", "xor", "and")


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    start: int
    end: int


def line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


def tokenize(source: str, filename: str = "<string>") -> List[Token]:
    """Split ``source`` into tokens, keeping whitespace and comments.

    Token kinds: ``html``, ``open``, ``close``, ``ws``, ``comment``, ``var``,
    ``number``, ``name``, ``string`` and ``op``. Offsets index into ``source``.
    """
    tokens: List[Token] = []
    pos = 0
    length = len(source)
    in_php = False
    while pos < length:
        if not in_php:
            match = _OPEN_TAG_RE.search(source, pos)
            stop = match.start() if match else length
            if stop > pos:
                tokens.append(Token("html", source[pos:stop], pos, stop))
            if not match:
                break
            tokens.append(Token("open", match.group(0), match.start(), match.end()))
            pos = match.end()
            in_php = True
            continue
        match = _PHP_TOKEN_RE.match(source, pos)
        if not match:
            raise ScriptExecutionError(
                f"syntax error, unexpected character {source[pos]!r}", filename, line_of(source, pos)
            )
        kind = match.lastgroup or "op"
        tokens.append(Token(kind, match.group(0), pos, match.end()))
        pos = match.end()
        if kind == "close":
            in_php = False
    return tokens


def decode_single_quoted(body: str) -> str:
    return re.sub(r"\\([\\'])", r"\1", body)


_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "v": "\v", "e": "\x1b", "f": "\f", "\\": "\\", "$": "$", '"': '"'}


def _decode_escape(body: str, i: int) -> Tuple[str, int]:
    """Decode the escape sequence starting at ``body[i] == '\\'``."""
    nxt = body[i + 1] if i + 1 < len(body) else ""
    if nxt in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[nxt], i + 2
    octal = re.match(r"[0-7]{1,3}", body[i + 1:])
    if octal:
        return chr(int(octal.group(0), 8) & 0xFF), i + 1 + len(octal.group(0))
    hexa = re.match(r"x([0-9A-Fa-f]{1,2})", body[i + 1:])
    if hexa:
        return chr(int(hexa.group(1), 16)), i + 1 + len(hexa.group(0))
    uni = re.match(r"u\{([0-9A-Fa-f]+)\}", body[i + 1:])
    if uni:
        return chr(int(uni.group(1), 16)), i + 1 + len(uni.group(0))
    return "\\", i + 1


def decode_string_literal(text: str) -> Optional[str]:
    """Value of a quoted string token, or None when it interpolates variables."""
    quote, body = text[0], text[1:-1]
    if quote == "'":
        return decode_single_quoted(body)
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            decoded, i = _decode_escape(body, i)
            out.append(decoded)
            continue
        if ch == "$" and i + 1 < len(body) and (body[i + 1] == "{" or body[i + 1] == "_" or body[i + 1].isalpha()):
            return None
        if ch == "{" and body[i + 1:i + 2] == "$":
            return None
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Syntax tree

@dataclass
class Literal:
    pos: int
    value: object


@dataclass
class Interpolated:
    pos: int
    parts: List[Union[str, "Expr"]]


@dataclass
class ConstRef:
    pos: int
    name: str


@dataclass
class MagicConst:
    pos: int
    name: str


@dataclass
class Var:
    pos: int
    name: str


@dataclass
class Index:
    pos: int
    base: "Expr"
    key: Optional["Expr"]


@dataclass
class ArrayLit:
    pos: int
    items: List[Tuple[Optional["Expr"], "Expr"]]


@dataclass
class Call:
    pos: int
    name: str
    args: List["Expr"]


@dataclass
class Isset:
    pos: int
    args: List["Expr"]


@dataclass
class Empty:
    pos: int
    arg: "Expr"


@dataclass
class Unary:
    pos: int
    op: str
    operand: "Expr"


@dataclass
class Cast:
    pos: int
    type: str
    operand: "Expr"


@dataclass
class Binary:
    pos: int
    op: str
    left: "Expr"
    right: "Expr"


@dataclass
class Ternary:
    pos: int
    cond: "Expr"
    then: Optional["Expr"]
    otherwise: "Expr"


@dataclass
class Assign:
    pos: int
    target: "Expr"
    op: str
    value: "Expr"


@dataclass
class Include:
    pos: int
    kind: str
    path: "Expr"


@dataclass
class Print:
    pos: int
    value: "Expr"


Expr = Union[
    Literal, Interpolated, ConstRef, MagicConst, Var, Index, ArrayLit, Call, Isset, Empty,
    Unary, Cast, Binary, Ternary, Assign, Include, Print,
]


@dataclass
class ExprStmt:
    pos: int
    expr: Expr


@dataclass
class Echo:
    pos: int
    values: List[Expr]


@dataclass
class If:
    pos: int
    branches: List[Tuple[Expr, List["Stmt"]]]
    orelse: Optional[List["Stmt"]] = None


@dataclass
class Block:
    pos: int
    body: List["Stmt"] = field(default_factory=list)


@dataclass
class ConstDecl:
    pos: int
    items: List[Tuple[str, Expr]]


@dataclass
class Return:
    pos: int
    value: Optional[Expr]


@dataclass
class Unset:
    pos: int
    targets: List[Expr]


@dataclass
class Noop:
    pos: int


Stmt = Union[ExprStmt, Echo, If, Block, ConstDecl, Return, Unset, Noop]


# ---------------------------------------------------------------------------
# Parser

class Parser:
    def __init__(self, source: str, filename: str = "<string>", tokens: Optional[Sequence[Token]] = None) -> None:
        self.source = source
        self.filename = filename
        if tokens is None:
            tokens = tokenize(source, filename)
        self.tokens = [
            t for t in tokens
            if t.kind not in ("ws", "comment") and not (t.kind == "open" and t.text != "<?=")
        ]
        self.i = 0

    # -- token helpers -----------------------------------------------------

    def peek(self, offset: int = 0) -> Optional[Token]:
        idx = self.i + offset
        return self.tokens[idx] if idx < len(self.tokens) else None

    def advance(self) -> Token:
        tok = self.peek()
        if tok is None:
            raise self.error("syntax error, unexpected end of file")
        self.i += 1
        return tok

    def at_op(self, *ops: str, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return tok is not None and tok.kind == "op" and tok.text in ops

    def at_word(self, *words: str, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return tok is not None and tok.kind == "name" and tok.text.lower() in words

    def expect_op(self, op: str) -> Token:
        if not self.at_op(op):
            raise self.error(f"syntax error, expected '{op}'")
        return self.advance()

    def expect_end(self) -> None:
        tok = self.peek()
        if tok is None:
            return
        if tok.kind == "close" or (tok.kind == "op" and tok.text == ";"):
            self.i += 1
            return
        raise self.error(f"syntax error, unexpected '{tok.text}', expecting ';'")

    def error(self, message: str, tok: Optional[Token] = None) -> ScriptExecutionError:
        tok = tok or self.peek() or (self.tokens[-1] if self.tokens else None)
        line = line_of(self.source, tok.start) if tok else None
        return ScriptExecutionError(message, self.filename, line)

    # -- statements --------------------------------------------------------

    def parse_program(self) -> List[Stmt]:
        body: List[Stmt] = []
        while self.peek() is not None:
            body.append(self.parse_statement())
        return body

    def parse_statement(self) -> Stmt:
        tok = self.peek()
        assert tok is not None
        if tok.kind in ("html", "close"):
            self.advance()
            return Noop(tok.start)
        if tok.kind == "open":
            self.advance()
            values = [self.parse_expr()]
            self.expect_end()
            return Echo(tok.start, values)
        if tok.kind == "op" and tok.text == ";":
            self.advance()
            return Noop(tok.start)
        if tok.kind == "op" and tok.text == "{":
            self.advance()
            body: List[Stmt] = []
            while not self.at_op("}"):
                if self.peek() is None:
                    raise self.error("syntax error, unexpected end of file, expecting '}'")
                body.append(self.parse_statement())
            self.advance()
            return Block(tok.start, body)
        if tok.kind == "name":
            word = tok.text.lower()
            if word == "if":
                return self.parse_if()
            if word == "echo":
                self.advance()
                values = self.parse_list()
                self.expect_end()
                return Echo(tok.start, values)
            if word == "const":
                return self.parse_const()
            if word == "return":
                self.advance()
                value = None
                if not (self.at_op(";") or (self.peek() is not None and self.peek().kind == "close")):
                    value = self.parse_expr()
                self.expect_end()
                return Return(tok.start, value)
            if word == "global":
                self.advance()
                while self.peek() is not None and self.peek().kind == "var":
                    self.advance()
                    if not self.at_op(","):
                        break
                    self.advance()
                self.expect_end()
                return Noop(tok.start)
            if word == "unset" and self.at_op("(", offset=1):
                self.advance()
                self.advance()
                targets = self.parse_list(")")
                self.expect_op(")")
                self.expect_end()
                return Unset(tok.start, targets)
            if word == "declare" and self.at_op("(", offset=1):
                self.advance()
                self.skip_parenthesized()
                self.expect_end()
                return Noop(tok.start)
            if word in UNSUPPORTED_KEYWORDS:
                raise self.error(f"unsupported statement '{tok.text}'", tok)
        expr = self.parse_expr()
        self.expect_end()
        return ExprStmt(tok.start, expr)

    def skip_parenthesized(self) -> None:
        self.expect_op("(")
        depth = 1
        while depth:
            tok = self.advance()
            if tok.kind == "op" and tok.text == "(":
                depth += 1
            elif tok.kind == "op" and tok.text == ")":
                depth -= 1

    def parse_condition(self) -> Expr:
        self.expect_op("(")
        cond = self.parse_expr()
        self.expect_op(")")
        return cond

    def parse_until(self, *words: str) -> List[Stmt]:
        body: List[Stmt] = []
        while not self.at_word(*words):
            if self.peek() is None:
                raise self.error(f"syntax error, unexpected end of file, expecting '{words[-1]}'")
            body.append(self.parse_statement())
        return body

    def parse_if(self) -> If:
        start = self.advance()
        cond = self.parse_condition()
        node = If(start.start, [])
        if self.at_op(":"):
            self.advance()
            node.branches.append((cond, self.parse_until("elseif", "else", "endif")))
            while self.at_word("elseif"):
                self.advance()
                cond = self.parse_condition()
                self.expect_op(":")
                node.branches.append((cond, self.parse_until("elseif", "else", "endif")))
            if self.at_word("else"):
                self.advance()
                self.expect_op(":")
                node.orelse = self.parse_until("endif")
            self.advance()
            self.expect_end()
            return node
        node.branches.append((cond, [self.parse_statement()]))
        while self.at_word("elseif") or (self.at_word("else") and self.at_word("if", offset=1)):
            if self.at_word("else"):
                self.advance()
            self.advance()
            cond = self.parse_condition()
            node.branches.append((cond, [self.parse_statement()]))
        if self.at_word("else"):
            self.advance()
            node.orelse = [self.parse_statement()]
        return node

    def parse_const(self) -> ConstDecl:
        start = self.advance()
        items: List[Tuple[str, Expr]] = []
        while True:
            name = self.advance()
            if name.kind != "name":
                raise self.error("syntax error, expected a constant name", name)
            self.expect_op("=")
            items.append((name.text, self.parse_expr()))
            if not self.at_op(","):
                break
            self.advance()
        self.expect_end()
        return ConstDecl(start.start, items)

    def parse_list(self, closing: str = "") -> List[Expr]:
        values: List[Expr] = []
        while True:
            if closing and self.at_op(closing):
                break
            values.append(self.parse_expr())
            if not self.at_op(","):
                break
            self.advance()
        return values

    # -- expressions -------------------------------------------------------

    def binary_operator(self, tok: Optional[Token]) -> Optional[str]:
        if tok is None:
            return None
        if tok.kind == "op" and (tok.text in _BINARY or tok.text == "?"):
            return tok.text
        if tok.kind == "name" and tok.text.lower() in _WORD_OPERATORS:
            return tok.text.lower()
        return None

    def parse_expr(self, min_prec: int = 0) -> Expr:
        left = self.parse_unary()
        while True:
            tok = self.peek()
            op = self.binary_operator(tok)
            if op is None:
                return left
            assert tok is not None
            if op == "?":
                if _TERNARY_PREC < min_prec:
                    return left
                self.advance()
                then: Optional[Expr] = None
                if self.at_op(":"):
                    self.advance()
                else:
                    then = self.parse_expr()
                    self.expect_op(":")
                otherwise = self.parse_expr(_TERNARY_PREC + 1)
                left = Ternary(tok.start, left, then, otherwise)
                continue
            prec, right_assoc = _BINARY[op]
            if prec < min_prec:
                return left
            self.advance()
            right = self.parse_expr(prec if right_assoc else prec + 1)
            left = Binary(tok.start, op, left, right)

    def parse_unary(self) -> Expr:
        tok = self.peek()
        if tok is None:
            raise self.error("syntax error, unexpected end of file")
        if tok.kind == "op":
            if tok.text in ("!", "-", "+", "@", "~"):
                self.advance()
                return Unary(tok.start, tok.text, self.parse_unary())
            if tok.text in ("++", "--"):
                raise self.error(f"unsupported operator '{tok.text}'", tok)
            if (
                tok.text == "("
                and self.at_word(*CASTS, offset=1)
                and self.at_op(")", offset=2)
            ):
                self.advance()
                cast = CASTS[self.advance().text.lower()]
                self.advance()
                return Cast(tok.start, cast, self.parse_unary())
        if tok.kind == "name":
            word = tok.text.lower()
            if word in INCLUDE_KINDS:
                self.advance()
                return Include(tok.start, word, self.parse_expr(_TERNARY_PREC + 1))
            if word == "print":
                self.advance()
                return Print(tok.start, self.parse_expr(_TERNARY_PREC + 1))
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while True:
            if self.at_op("["):
                tok = self.advance()
                key: Optional[Expr] = None
                if not self.at_op("]"):
                    key = self.parse_expr()
                self.expect_op("]")
                expr = Index(tok.start, expr, key)
            elif self.at_op("->", "::"):
                raise self.error("unsupported object access")
            else:
                break
        if isinstance(expr, (Var, Index)) and self.at_op(*ASSIGN_OPS):
            tok = self.advance()
            value = self.parse_expr(_TERNARY_PREC)
            return Assign(tok.start, expr, tok.text, value)
        if self.at_op("++", "--"):
            raise self.error(f"unsupported operator '{self.peek().text}'")
        return expr

    def parse_primary(self) -> Expr:
        tok = self.advance()
        if tok.kind == "var":
            return Var(tok.start, tok.text[1:])
        if tok.kind == "number":
            try:
                return Literal(tok.start, parse_number(tok.text))
            except ValueError:
                raise self.error("Invalid numeric literal", tok) from None
        if tok.kind == "string":
            return self.parse_string(tok)
        if tok.kind == "op":
            if tok.text == "(":
                expr = self.parse_expr()
                self.expect_op(")")
                return expr
            if tok.text == "[":
                return self.parse_array(tok, "]")
        if tok.kind == "name":
            word = tok.text.lower().lstrip("\\")
            if word in ("true", "false", "null"):
                return Literal(tok.start, {"true": True, "false": False, "null": None}[word])
            if word in ("__dir__", "__file__", "__line__"):
                return MagicConst(tok.start, word)
            if word == "array" and self.at_op("("):
                return self.parse_array(self.advance(), ")")
            if word == "isset" and self.at_op("("):
                self.advance()
                args = self.parse_list(")")
                self.expect_op(")")
                return Isset(tok.start, args)
            if word == "empty" and self.at_op("("):
                self.advance()
                arg = self.parse_expr()
                self.expect_op(")")
                return Empty(tok.start, arg)
            if word in UNSUPPORTED_KEYWORDS:
                raise self.error(f"unsupported expression '{tok.text}'", tok)
            if self.at_op("("):
                self.advance()
                args = self.parse_list(")")
                self.expect_op(")")
                return Call(tok.start, tok.text.lstrip("\\"), args)
            return ConstRef(tok.start, tok.text.lstrip("\\"))
        raise self.error(f"syntax error, unexpected '{tok.text}'", tok)

    def parse_array(self, start: Token, closing: str) -> ArrayLit:
        items: List[Tuple[Optional[Expr], Expr]] = []
        while not self.at_op(closing):
            value = self.parse_expr()
            key: Optional[Expr] = None
            if self.at_op("=>"):
                self.advance()
                key, value = value, self.parse_expr()
            items.append((key, value))
            if not self.at_op(","):
                break
            self.advance()
        self.expect_op(closing)
        return ArrayLit(start.start, items)

    def parse_string(self, tok: Token) -> Expr:
        value = decode_string_literal(tok.text)
        if value is not None:
            return Literal(tok.start, value)
        return Interpolated(tok.start, self.interpolation_parts(tok))

    def interpolation_parts(self, tok: Token) -> List[Union[str, Expr]]:
        body = tok.text[1:-1]
        parts: List[Union[str, Expr]] = []
        buf: List[str] = []
        i = 0

        def flush() -> None:
            if buf:
                parts.append("".join(buf))
                buf.clear()

        while i < len(body):
            ch = body[i]
            if ch == "\\":
                decoded, i = _decode_escape(body, i)
                buf.append(decoded)
                continue
            if ch == "{" and body[i + 1:i + 2] == "$":
                end = _matching_brace(body, i)
                if end < 0:
                    raise self.error("syntax error in string interpolation", tok)
                flush()
                parts.append(self.sub_expression(body[i + 1:end], tok))
                i = end + 1
                continue
            if ch == "$" and body[i + 1:i + 2] == "{":
                end = _matching_brace(body, i + 1)
                if end < 0:
                    raise self.error("syntax error in string interpolation", tok)
                flush()
                parts.append(Var(tok.start, body[i + 2:end].strip()))
                i = end + 1
                continue
            match = re.match(r"\$([^\W\d]\w*)", body[i:])
            if match:
                flush()
                expr: Expr = Var(tok.start, match.group(1))
                i += len(match.group(0))
                key = re.match(r"\[(-?\d+|[^\W\d]\w*|\$[^\W\d]\w*)\]", body[i:])
                if key:
                    raw = key.group(1)
                    if raw.startswith("$"):
                        key_expr: Expr = Var(tok.start, raw[1:])
                    elif re.match(r"-?\d+$", raw):
                        key_expr = Literal(tok.start, int(raw))
                    else:
                        key_expr = Literal(tok.start, raw)
                    expr = Index(tok.start, expr, key_expr)
                    i += len(key.group(0))
                parts.append(expr)
                continue
            buf.append(ch)
            i += 1
        flush()
        return parts

    def sub_expression(self, text: str, tok: Token) -> Expr:
        sub = Parser("<?php " + text, self.filename)
        expr = sub.parse_expr()
        if sub.peek() is not None:
            raise self.error("syntax error in string interpolation", tok)
        return expr


def _matching_brace(text: str, start: int) -> int:
    depth = 0
    for idx in range(start, len(text)):
        if text[idx] == "{":
            depth += 1
        elif text[idx] == "}":
            depth -= 1
            if depth == 0:
                return idx
    return -1


def parse_number(text: str):
    clean = text.replace("_", "")
    lowered = clean.lower()
    if lowered.startswith("0x"):
        return int(clean[2:], 16)
    if lowered.startswith("0b"):
        return int(clean[2:], 2)
    if lowered.startswith("0o"):
        return int(clean[2:], 8)
    if any(c in lowered for c in ".e"):
        return float(clean)
    if len(clean) > 1 and clean.startswith("0"):
        return int(clean, 8)
    return int(clean)


def parse(source: str, filename: str = "<string>") -> List[Stmt]:
    return Parser(source, filename).parse_program()
