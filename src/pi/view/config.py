"""Declarative view tree models and runtime tunables.

The tree arrives from an external loader as plain data (usually parsed
JSON with camelCase keys).  :func:`load_config` validates it into
:class:`AppConfig` and rejects structurally broken trees with a single
:class:`~pi.view.errors.ConfigValidationError` listing every problem.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pi.view.errors import ConfigValidationError
from pi.view.state import flatten_data

logger = logging.getLogger(__name__)

Direction = Literal["row", "column"]
Overflow = Literal["visible", "hidden", "scroll"]
Tier = Literal["high", "normal", "low"]
Zone = Literal["interactive", "data", "background"]

# Container node types that have no component instance.
CONTAINER_TYPES = frozenset({"row", "column", "box"})

_PERCENT_RE = re.compile(r"^\d+(?:\.\d+)?%$")

# ---------------------------------------------------------------------------
# Tree models
# ---------------------------------------------------------------------------


class StyleConfig(BaseModel):
    """Flat per-node style record.

    ``width``/``height``: ``None`` (stretch on the cross axis, natural size
    on the main axis), ``"auto"`` (always the natural size), an ``int``
    (exact cells) or ``"NN%"`` (of the parent's content box).
    """

    model_config = ConfigDict(populate_by_name=True)

    direction: Direction | None = None
    width: int | str | None = None
    height: int | str | None = None
    flex: float | None = None
    padding: int | list[int] = 0
    overflow: Overflow = "hidden"
    min_width: int | None = Field(default=None, alias="minWidth")
    max_width: int | None = Field(default=None, alias="maxWidth")
    min_height: int | None = Field(default=None, alias="minHeight")
    max_height: int | None = Field(default=None, alias="maxHeight")
    zone: Zone | None = None
    priority: Tier | None = None
    z_index: int = Field(default=0, alias="zIndex")

    def padding_box(self) -> tuple[int, int, int, int]:
        """Padding as ``(top, right, bottom, left)``."""
        p = self.padding
        if isinstance(p, int):
            return (p, p, p, p)
        if len(p) == 1:
            return (p[0], p[0], p[0], p[0])
        if len(p) == 2:
            return (p[0], p[1], p[0], p[1])
        if len(p) == 4:
            return (p[0], p[1], p[2], p[3])
        return (0, 0, 0, 0)


class ActionConfig(BaseModel):
    """A described unit of work: built-in or handed to the executor."""

    model_config = ConfigDict(populate_by_name=True)

    process: str
    args: list[Any] = Field(default_factory=list)
    payload: dict[str, Any] | None = None
    on_success: str | None = Field(default=None, alias="onSuccess")
    on_error: str | None = Field(default=None, alias="onError")


class NodeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    type: str
    props: dict[str, Any] = Field(default_factory=dict)
    bind: str | None = None
    style: StyleConfig = Field(default_factory=StyleConfig)
    actions: dict[str, ActionConfig] = Field(default_factory=dict)
    children: list[NodeConfig] = Field(default_factory=list)

    @property
    def is_container(self) -> bool:
        return self.type in CONTAINER_TYPES

    @property
    def direction(self) -> Direction:
        if self.type == "row":
            return "row"
        if self.type == "column":
            return "column"
        return self.style.direction or "column"


class AppConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    layout: NodeConfig
    bindings: dict[str, ActionConfig] = Field(default_factory=dict)
    on_load: ActionConfig | None = Field(default=None, alias="onLoad")
    tab_cycles: bool = Field(default=True, alias="tabCycles")
    auto_focus: bool = Field(default=True, alias="autoFocus")
    log_level: Literal["debug", "info", "warning", "error"] | None = Field(
        default=None, alias="logLevel"
    )


NodeConfig.model_rebuild()

# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _format_loc(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for p in loc:
        if isinstance(p, int) and parts:
            parts[-1] = f"{parts[-1]}[{p}]"
        else:
            parts.append(str(p))
    return ".".join(parts)


def load_config(data: Mapping[str, Any] | AppConfig) -> AppConfig:
    """Validate *data* into an :class:`AppConfig`.

    Raises :class:`ConfigValidationError` when the tree is malformed.
    """
    if isinstance(data, AppConfig):
        config = data
    else:
        try:
            config = AppConfig.model_validate(data)
        except ValidationError as exc:
            errors = [f"{_format_loc(e['loc'])}: {e['msg']}" for e in exc.errors()]
            raise ConfigValidationError(errors) from exc

    errors = validate_structure(config)
    if errors:
        raise ConfigValidationError(errors)

    for path, key in _missing_bindings(config):
        logger.warning("%s: bind key %r not present in initial data", path, key)
    return config


def validate_structure(config: AppConfig) -> list[str]:
    """Return ``"path: message"`` strings for every structural problem."""
    errors: list[str] = []
    seen: dict[str, str] = {}

    def check_size(path: str, name: str, value: int | str | None) -> None:
        if value is None:
            return
        if isinstance(value, int):
            if value < 0:
                errors.append(f"{path}.style.{name}: must be non-negative, got {value}")
        elif value != "auto" and not _PERCENT_RE.match(value):
            errors.append(f"{path}.style.{name}: expected int, 'auto' or 'NN%', got {value!r}")

    def walk(node: NodeConfig, path: str) -> None:
        if not node.type.strip():
            errors.append(f"{path}.type: must not be empty")
        if node.id is not None:
            if not node.id.strip():
                errors.append(f"{path}.id: must not be empty")
            elif node.id in seen:
                errors.append(f"{path}.id: duplicate id {node.id!r} (first at {seen[node.id]})")
            else:
                seen[node.id] = path

        style = node.style
        check_size(path, "width", style.width)
        check_size(path, "height", style.height)
        for name in ("min_width", "max_width", "min_height", "max_height"):
            value = getattr(style, name)
            if value is not None and value < 0:
                errors.append(f"{path}.style.{name}: must be non-negative, got {value}")
        if style.flex is not None and style.flex < 0:
            errors.append(f"{path}.style.flex: must be non-negative, got {style.flex}")
        padding = style.padding
        if isinstance(padding, list):
            if len(padding) not in (1, 2, 4):
                errors.append(f"{path}.style.padding: expected 1, 2 or 4 values, got {len(padding)}")
            if any(p < 0 for p in padding):
                errors.append(f"{path}.style.padding: must be non-negative")
        elif padding < 0:
            errors.append(f"{path}.style.padding: must be non-negative")

        for event, action in node.actions.items():
            if not action.process.strip():
                errors.append(f"{path}.actions.{event}.process: must not be empty")

        for i, child in enumerate(node.children):
            walk(child, f"{path}.children[{i}]")

    walk(config.layout, "layout")

    for key, action in config.bindings.items():
        if not key.strip():
            errors.append("bindings: empty key id")
        if not action.process.strip():
            errors.append(f"bindings.{key}.process: must not be empty")
    if config.on_load is not None and not config.on_load.process.strip():
        errors.append("onLoad.process: must not be empty")
    return errors


def _missing_bindings(config: AppConfig) -> list[tuple[str, str]]:
    known = flatten_data(dict(config.data))
    missing: list[tuple[str, str]] = []

    def walk(node: NodeConfig, path: str) -> None:
        if node.bind and node.bind not in known:
            missing.append((path, node.bind))
        for i, child in enumerate(node.children):
            walk(child, f"{path}.children[{i}]")

    walk(config.layout, "layout")
    return missing


# ---------------------------------------------------------------------------
# Runtime tunables
# ---------------------------------------------------------------------------


@dataclass
class RuntimeOptions:
    """Knobs that are not part of the declarative tree."""

    frame_budget_ms: float = 2.0
    click_threshold_ms: float = 500.0
    expression_cache_size: int = 1024
    selection_enabled: bool = True
    workers: int = 4
    tab_cycles: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RuntimeOptions:
        """Defaults overridden by ``PI_VIEW_*`` environment variables.

        Unparseable values are logged and ignored.
        """
        env = os.environ if environ is None else environ
        opts = cls()

        budget = env.get("PI_VIEW_FRAME_BUDGET_MS")
        if budget:
            try:
                opts.frame_budget_ms = max(0.0, float(budget))
            except ValueError:
                logger.warning("Ignoring PI_VIEW_FRAME_BUDGET_MS=%r", budget)

        threshold = env.get("PI_VIEW_CLICK_THRESHOLD_MS")
        if threshold:
            try:
                opts.click_threshold_ms = max(0.0, float(threshold))
            except ValueError:
                logger.warning("Ignoring PI_VIEW_CLICK_THRESHOLD_MS=%r", threshold)

        selection = env.get("PI_VIEW_SELECTION")
        if selection:
            opts.selection_enabled = selection.lower() not in ("0", "false", "off", "no")

        workers = env.get("PI_VIEW_WORKERS")
        if workers:
            try:
                opts.workers = max(1, int(workers))
            except ValueError:
                logger.warning("Ignoring PI_VIEW_WORKERS=%r", workers)
        return opts
