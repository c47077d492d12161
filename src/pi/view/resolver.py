"""Resolution of ``{{ }}`` expressions inside raw node props.

A string that is exactly one expression keeps the evaluated value's type
(lists, maps and numbers survive).  A string mixing literal text and
expressions gets each expression stringified in place.  Failures never
propagate: the whole-value form resolves to ``None``, the substitution
form keeps the original ``{{ ... }}`` text, and both log a warning.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from pi.view.errors import ExpressionError
from pi.view.expression import ExpressionCache, build_env, preprocess, stringify

logger = logging.getLogger(__name__)

EXPR_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)

# Prop key under which a node's bound state value is exposed.
BIND_DATA_KEY = "__bind_data"


def has_expression(value: Any) -> bool:
    return isinstance(value, str) and "{{" in value and EXPR_RE.search(value) is not None


class ExpressionResolver:
    """Evaluates expressions in prop values against a state snapshot."""

    def __init__(self, cache: ExpressionCache | None = None) -> None:
        self.cache = cache if cache is not None else ExpressionCache()

    def evaluate(self, expression: str, state: Mapping[str, Any], env: Mapping[str, Any] | None = None) -> Any:
        """Evaluate one expression body (no braces).  Raises ``ExpressionError``."""
        program = self.cache.compile(preprocess(expression, state))
        return program.run(env if env is not None else build_env(state))

    def resolve(self, value: Any, state: Mapping[str, Any], env: Mapping[str, Any] | None = None) -> Any:
        """Resolve *value*, recursing into dicts and lists."""
        if env is None:
            env = build_env(state)
        if isinstance(value, str):
            return self._resolve_str(value, state, env)
        if isinstance(value, dict):
            return {k: self.resolve(v, state, env) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve(v, state, env) for v in value]
        return value

    def _resolve_str(self, value: str, state: Mapping[str, Any], env: Mapping[str, Any]) -> Any:
        if "{{" not in value:
            return value

        whole = EXPR_RE.fullmatch(value.strip())
        if whole is not None and "{{" not in whole.group(1):
            try:
                return self.evaluate(whole.group(1), state, env)
            except ExpressionError as exc:
                logger.warning("Expression %r failed: %s", whole.group(1).strip(), exc)
                return None

        def substitute(m: re.Match[str]) -> str:
            try:
                return stringify(self.evaluate(m.group(1), state, env))
            except ExpressionError as exc:
                logger.warning("Expression %r failed: %s", m.group(1).strip(), exc)
                return m.group(0)

        return EXPR_RE.sub(substitute, value)


# ---------------------------------------------------------------------------
# Props cache
# ---------------------------------------------------------------------------


@dataclass
class _PropsEntry:
    props: dict[str, Any]
    bind: str | None
    state: dict[str, Any]
    resolved: dict[str, Any]


class PropsCache:
    """Per-node memo of resolved props.

    An entry is reused only while the raw props, the bind key and the
    state snapshot all compare equal to those it was computed from.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _PropsEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(
        self,
        node_id: str,
        props: Mapping[str, Any],
        bind: str | None,
        state: Mapping[str, Any],
    ) -> dict[str, Any] | None:
        entry = self._entries.get(node_id)
        if entry is None or entry.bind != bind or entry.props != props or entry.state != state:
            self.misses += 1
            return None
        self.hits += 1
        return entry.resolved

    def put(
        self,
        node_id: str,
        props: Mapping[str, Any],
        bind: str | None,
        state: Mapping[str, Any],
        resolved: dict[str, Any],
    ) -> None:
        self._entries[node_id] = _PropsEntry(copy.deepcopy(dict(props)), bind, dict(state), resolved)

    def invalidate(self, node_id: str | None = None) -> None:
        if node_id is None:
            self._entries.clear()
        else:
            self._entries.pop(node_id, None)

    def __len__(self) -> int:
        return len(self._entries)


def resolve_props(
    resolver: ExpressionResolver,
    cache: PropsCache | None,
    node_id: str,
    props: Mapping[str, Any],
    bind: str | None,
    state: Mapping[str, Any],
) -> dict[str, Any]:
    """Resolve a node's raw *props* against *state*, using *cache* when given.

    When *bind* names a state key, its value is added as ``__bind_data``.
    """
    if cache is not None:
        cached = cache.get(node_id, props, bind, state)
        if cached is not None:
            return cached

    env = build_env(state)
    resolved = {key: resolver.resolve(value, state, env) for key, value in props.items()}
    if bind and bind in state:
        resolved[BIND_DATA_KEY] = state[bind]

    if cache is not None:
        cache.put(node_id, props, bind, state, resolved)
    return resolved


# ---------------------------------------------------------------------------
# Typed prop accessors
# ---------------------------------------------------------------------------


def get_str_prop(props: Mapping[str, Any], key: str, default: str = "") -> str:
    value = props.get(key)
    if value is None:
        return default
    return value if isinstance(value, str) else stringify(value)


def get_int_prop(props: Mapping[str, Any], key: str, default: int = 0) -> int:
    value = props.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return default


def get_bool_prop(props: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = props.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return default
