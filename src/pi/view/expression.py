"""The ``{{ ... }}`` expression language.

Expressions are compiled once into a :class:`Program` (a tree of closures)
and evaluated against an environment built from a state snapshot::

    >>> prog = compile_expression("count > 0 ? 'active' : 'inactive'")
    >>> prog.run({"count": 5})
    'active'

Undefined identifiers and missing members evaluate to ``None``.  Compile
and evaluation problems raise :class:`~pi.view.errors.ExpressionError`;
recovering from them is the resolver's job.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pi.view.errors import ExpressionError
from pi.view.state import ROOT_KEY

logger = logging.getLogger(__name__)

Env = Mapping[str, Any]
_Node = Callable[[Env], Any]

# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def truthy(value: Any) -> bool:
    """``False``, ``0``, ``""``, empty collections and ``None`` are false."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, list, tuple, dict, set, frozenset)):
        return len(value) > 0
    return True


def safe_index(container: Any, key: Any) -> Any:
    """Look *key* up in *container*; ``None`` when absent or unsupported."""
    if container is None or key is None:
        return None
    if isinstance(container, Mapping):
        try:
            if key in container:
                return container[key]
        except TypeError:
            # unhashable key
            return None
        # "items.0" style access on maps keyed by strings
        if not isinstance(key, str):
            return container.get(str(key))
        return None
    if isinstance(container, (list, tuple, str)):
        if isinstance(key, bool):
            return None
        if isinstance(key, str):
            if not key.lstrip("-").isdigit():
                return None
            key = int(key)
        if isinstance(key, int) and -len(container) <= key < len(container):
            return container[key]
        return None
    if isinstance(key, str) and key and not key.startswith("_"):
        try:
            return getattr(container, key, None)
        except Exception as exc:
            logger.debug("index(): attribute %r raised %s", key, exc)
            return None
    return None


def stringify(value: Any) -> str:
    """Text form used when an expression is substituted into literal text."""
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _len(value: Any) -> int:
    if value is None:
        return 0
    try:
        return len(value)
    except TypeError as exc:
        raise ExpressionError(f"len() of unsupported type {type(value).__name__}") from exc


def _empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


BUILTINS: dict[str, Callable[..., Any]] = {
    "len": _len,
    "index": safe_index,
    "True": truthy,
    "False": lambda v: not truthy(v),
    "Empty": _empty,
    "NotNil": lambda v: v is not None,
    "IsNil": lambda v: v is None,
}

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>\?\?|&&|\|\||==|!=|<=|>=|[-+*/%<>!?:.,()\[\]$])
    """,
    re.VERBOSE,
)

_MEMBER_RE = re.compile(r"\s*(\d+|[A-Za-z_][A-Za-z0-9_]*)")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

_KEYWORD_OPS = {"and": "&&", "or": "||", "not": "!", "in": "in"}


@dataclass(frozen=True)
class Token:
    kind: str  # number, string, ident, member, op or eof
    value: Any
    pos: int


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        prev = tokens[-1] if tokens else None
        # After a dot only a plain member name or integer index may follow
        if prev is not None and prev.kind == "op" and prev.value == ".":
            m = _MEMBER_RE.match(source, pos)
            if m is None:
                raise ExpressionError(f"expected member name at {pos}", source)
            tokens.append(Token("member", m.group(1), pos))
            pos = m.end()
            continue

        m = _TOKEN_RE.match(source, pos)
        if m is None:
            raise ExpressionError(f"unexpected character {source[pos]!r} at {pos}", source)
        kind = m.lastgroup
        text = m.group()
        if kind == "number":
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(Token("number", value, pos))
        elif kind == "string":
            tokens.append(Token("string", _unescape(text[1:-1]), pos))
        elif kind == "ident":
            if text in _KEYWORD_OPS:
                tokens.append(Token("op", _KEYWORD_OPS[text], pos))
            else:
                tokens.append(Token("ident", text, pos))
        elif kind == "op":
            tokens.append(Token("op", text, pos))
        pos = m.end()
    tokens.append(Token("eof", None, pos))
    return tokens


# ---------------------------------------------------------------------------
# Parser (precedence climbing) -> closures
# ---------------------------------------------------------------------------

_COMPARE = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}

_ARITH = {
    "*": lambda a, b: a * b,
    "/": lambda a, b: a / b,
    "%": lambda a, b: a % b,
    "-": lambda a, b: a - b,
}


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        return stringify(a) + stringify(b)
    if isinstance(a, list) and isinstance(b, list):
        return a + b
    if _is_number(a) and _is_number(b):
        return a + b
    raise ExpressionError(f"cannot add {type(a).__name__} and {type(b).__name__}")


def _arith(op: str, a: Any, b: Any) -> Any:
    if not (_is_number(a) and _is_number(b)):
        raise ExpressionError(
            f"operator {op} needs numbers, got {type(a).__name__} and {type(b).__name__}"
        )
    if op in ("/", "%") and b == 0:
        raise ExpressionError("division by zero")
    return _ARITH[op](a, b)


def _compare(op: str, a: Any, b: Any) -> bool:
    try:
        return bool(_COMPARE[op](a, b))
    except TypeError as exc:
        raise ExpressionError(
            f"cannot compare {type(a).__name__} {op} {type(b).__name__}"
        ) from exc


def _contains(item: Any, container: Any) -> bool:
    if container is None:
        return False
    if isinstance(container, str):
        return isinstance(item, str) and item in container
    try:
        return item in container
    except TypeError as exc:
        raise ExpressionError(f"'in' unsupported for {type(container).__name__}") from exc


class _Parser:
    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    # -- token helpers -------------------------------------------------------

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def at_op(self, *ops: str) -> bool:
        tok = self.peek()
        return tok.kind == "op" and tok.value in ops

    def expect_op(self, op: str) -> None:
        tok = self.advance()
        if tok.kind != "op" or tok.value != op:
            raise ExpressionError(f"expected {op!r} at {tok.pos}", self.source)

    # -- grammar -------------------------------------------------------------

    def parse(self) -> _Node:
        if self.peek().kind == "eof":
            raise ExpressionError("empty expression", self.source)
        node = self.ternary()
        tok = self.peek()
        if tok.kind != "eof":
            raise ExpressionError(f"unexpected token {tok.value!r} at {tok.pos}", self.source)
        return node

    def ternary(self) -> _Node:
        cond = self.coalesce()
        if not self.at_op("?"):
            return cond
        self.advance()
        then = self.ternary()
        self.expect_op(":")
        other = self.ternary()
        return lambda env: then(env) if truthy(cond(env)) else other(env)

    def coalesce(self) -> _Node:
        left = self.logical_or()
        while self.at_op("??"):
            self.advance()
            right = self.logical_or()
            left = self._coalesce(left, right)
        return left

    @staticmethod
    def _coalesce(left: _Node, right: _Node) -> _Node:
        def node(env: Env) -> Any:
            value = left(env)
            return value if value is not None else right(env)

        return node

    def logical_or(self) -> _Node:
        left = self.logical_and()
        while self.at_op("||"):
            self.advance()
            right = self.logical_and()
            left = (lambda l, r: lambda env: truthy(l(env)) or truthy(r(env)))(left, right)
        return left

    def logical_and(self) -> _Node:
        left = self.comparison()
        while self.at_op("&&"):
            self.advance()
            right = self.comparison()
            left = (lambda l, r: lambda env: truthy(l(env)) and truthy(r(env)))(left, right)
        return left

    def comparison(self) -> _Node:
        left = self.additive()
        while self.at_op("==", "!=", "<", "<=", ">", ">=", "in"):
            op = self.advance().value
            right = self.additive()
            if op == "in":
                left = (lambda l, r: lambda env: _contains(l(env), r(env)))(left, right)
            else:
                left = (lambda o, l, r: lambda env: _compare(o, l(env), r(env)))(op, left, right)
        return left

    def additive(self) -> _Node:
        left = self.multiplicative()
        while self.at_op("+", "-"):
            op = self.advance().value
            right = self.multiplicative()
            if op == "+":
                left = (lambda l, r: lambda env: _add(l(env), r(env)))(left, right)
            else:
                left = (lambda l, r: lambda env: _arith("-", l(env), r(env)))(left, right)
        return left

    def multiplicative(self) -> _Node:
        left = self.unary()
        while self.at_op("*", "/", "%"):
            op = self.advance().value
            right = self.unary()
            left = (lambda o, l, r: lambda env: _arith(o, l(env), r(env)))(op, left, right)
        return left

    def unary(self) -> _Node:
        if self.at_op("!"):
            self.advance()
            operand = self.unary()
            return lambda env: not truthy(operand(env))
        if self.at_op("-"):
            self.advance()
            operand = self.unary()

            def negate(env: Env) -> Any:
                v = operand(env)
                if not _is_number(v):
                    raise ExpressionError(f"cannot negate {type(v).__name__}")
                return -v

            return negate
        return self.postfix()

    def postfix(self) -> _Node:
        node = self.primary()
        while True:
            if self.at_op("."):
                self.advance()
                tok = self.advance()
                if tok.kind != "member":
                    raise ExpressionError(f"expected member name at {tok.pos}", self.source)
                node = (lambda n, k: lambda env: safe_index(n(env), k))(node, tok.value)
            elif self.at_op("["):
                self.advance()
                key = self.ternary()
                self.expect_op("]")
                node = (lambda n, k: lambda env: safe_index(n(env), k(env)))(node, key)
            else:
                return node

    def primary(self) -> _Node:
        tok = self.advance()
        if tok.kind in ("number", "string"):
            value = tok.value
            return lambda env: value
        if tok.kind == "op":
            if tok.value == "(":
                node = self.ternary()
                self.expect_op(")")
                return node
            if tok.value == "[":
                items = self.arguments("]")
                return lambda env: [item(env) for item in items]
            if tok.value == "$":
                return lambda env: env.get(ROOT_KEY)
        if tok.kind == "ident":
            name = tok.value
            if self.at_op("("):
                self.advance()
                fn = BUILTINS.get(name)
                if fn is None:
                    raise ExpressionError(f"unknown function {name!r}", self.source)
                args = self.arguments(")")
                return self._call(name, fn, args)
            if name == "true":
                return lambda env: True
            if name == "false":
                return lambda env: False
            if name in ("nil", "null"):
                return lambda env: None
            return lambda env: env.get(name)
        raise ExpressionError(f"unexpected token {tok.value!r} at {tok.pos}", self.source)

    def arguments(self, close: str) -> list[_Node]:
        args: list[_Node] = []
        if self.at_op(close):
            self.advance()
            return args
        while True:
            args.append(self.ternary())
            if self.at_op(","):
                self.advance()
                continue
            self.expect_op(close)
            return args

    @staticmethod
    def _call(name: str, fn: Callable[..., Any], args: list[_Node]) -> _Node:
        def call(env: Env) -> Any:
            values = [a(env) for a in args]
            try:
                return fn(*values)
            except TypeError as exc:
                raise ExpressionError(f"{name}(): {exc}") from exc

        return call


# ---------------------------------------------------------------------------
# Programs and the program cache
# ---------------------------------------------------------------------------


class Program:
    """A compiled expression."""

    __slots__ = ("source", "_root")

    def __init__(self, source: str, root: _Node) -> None:
        self.source = source
        self._root = root

    def run(self, env: Env) -> Any:
        try:
            return self._root(env)
        except ExpressionError as exc:
            if not exc.expression:
                exc.expression = self.source
            raise
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise ExpressionError(str(exc), self.source) from exc

    def __repr__(self) -> str:
        return f"Program({self.source!r})"


def compile_expression(source: str) -> Program:
    """Compile *source* without caching."""
    return Program(source, _Parser(source).parse())


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ExpressionCache:
    """LRU memo of compiled programs keyed by preprocessed text."""

    def __init__(self, max_size: int = 1024) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.stats = CacheStats()
        self._programs: OrderedDict[str, Program] = OrderedDict()
        self._lock = threading.Lock()

    def compile(self, source: str) -> Program:
        key = source.strip()
        with self._lock:
            program = self._programs.get(key)
            if program is not None:
                self._programs.move_to_end(key)
                self.stats.hits += 1
                return program
            self.stats.misses += 1

        program = compile_expression(key)
        logger.debug("Compiled expression %r", key)

        with self._lock:
            self._programs[key] = program
            self._programs.move_to_end(key)
            while len(self._programs) > self.max_size:
                self._programs.popitem(last=False)
                self.stats.evictions += 1
        return program

    def __len__(self) -> int:
        return len(self._programs)

    def __contains__(self, source: object) -> bool:
        return isinstance(source, str) and source.strip() in self._programs

    def clear(self) -> None:
        with self._lock:
            self._programs.clear()


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------

_DOTTED_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)+$")
_TWO_PART_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z0-9_]+)$")


def preprocess(expression: str, state: Mapping[str, Any]) -> str:
    """Rewrite dotted paths that name flat state keys.

    ``a.b`` becomes ``index($, "a.b")`` when ``"a.b"`` is itself a key in
    *state*, otherwise ``index(a, "b")``.  Only two-segment paths get the
    nested rewrite; deeper paths are left to normal member access.
    """
    expr = expression.strip()
    if "." not in expr or not _DOTTED_RE.match(expr):
        return expr
    if expr in state:
        return f'index($, "{expr}")'
    m = _TWO_PART_RE.match(expr)
    if m:
        return f'index({m.group(1)}, "{m.group(2)}")'
    return expr


def build_env(state: Mapping[str, Any]) -> dict[str, Any]:
    """Evaluation environment: a copy of *state* plus the ``$`` root."""
    env = dict(state)
    env[ROOT_KEY] = state
    return env
