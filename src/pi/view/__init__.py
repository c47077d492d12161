"""pi-view: declarative terminal views with prioritized, time-sliced repaint."""

# Actions
from pi.view.actions import ActionExecutor, ActionRunner

# Cell buffer
from pi.view.buffer import Cell, CellAttr, CellBuffer

# Event bus
from pi.view.bus import ACTION_RESULT, FOCUS_CHANGED, STATE_CHANGED, EventBus

# Component interface
from pi.view.component import (
    BaseComponent,
    Component,
    ComponentCatalog,
    ComponentFactory,
    Focusable,
    Measurable,
    RenderConfig,
    Scrollable,
    is_focusable,
)

# Built-in components
from pi.view.components import Placeholder, Text, default_catalog

# Configuration
from pi.view.config import (
    ActionConfig,
    AppConfig,
    NodeConfig,
    RuntimeOptions,
    StyleConfig,
    load_config,
)

# Errors
from pi.view.errors import (
    ConfigValidationError,
    ExpressionError,
    RenderError,
    UnhandledMessageError,
    UnknownComponentTypeError,
    ViewError,
)

# Dispatch
from pi.view.events import DispatchResult, EventDispatcher

# Expressions
from pi.view.expression import CacheStats, ExpressionCache, compile_expression

# Focus
from pi.view.focus import FocusManager

# Geometry
from pi.view.geometry import Rect

# Input decoding
from pi.view.input import InputDecoder, decode_input

# Layout
from pi.view.layout import LayoutEngine, LayoutNode, LayoutTree, Tier, build_tree

# Messages
from pi.view.messages import (
    ActionRequestMsg,
    ActionResultMsg,
    BatchMsg,
    Command,
    DispatchClass,
    KeyMsg,
    MouseMsg,
    QuitMsg,
    ResizeMsg,
    StateBatchUpdateMsg,
    StateUpdateMsg,
    TargetedMsg,
    TickMsg,
    batch,
)

# Instance registry
from pi.view.registry import ComponentRegistry

# Property resolution
from pi.view.resolver import ExpressionResolver, PropsCache, get_bool_prop, get_int_prop, get_str_prop

# Runtime
from pi.view.runtime import Runtime

# Scheduling
from pi.view.scheduler import FrameReport, Scheduler

# Selection
from pi.view.selection import Selection, SelectionManager, SelectionMode

# State
from pi.view.state import StateStore

# Utilities
from pi.view.text import truncate_to_width, visible_width, wrap_text

__all__ = [
    # Actions
    "ActionExecutor",
    "ActionRunner",
    # Cell buffer
    "Cell",
    "CellAttr",
    "CellBuffer",
    # Event bus
    "ACTION_RESULT",
    "FOCUS_CHANGED",
    "STATE_CHANGED",
    "EventBus",
    # Component interface
    "BaseComponent",
    "Component",
    "ComponentCatalog",
    "ComponentFactory",
    "Focusable",
    "Measurable",
    "RenderConfig",
    "Scrollable",
    "is_focusable",
    # Built-in components
    "Placeholder",
    "Text",
    "default_catalog",
    # Configuration
    "ActionConfig",
    "AppConfig",
    "NodeConfig",
    "RuntimeOptions",
    "StyleConfig",
    "load_config",
    # Errors
    "ConfigValidationError",
    "ExpressionError",
    "RenderError",
    "UnhandledMessageError",
    "UnknownComponentTypeError",
    "ViewError",
    # Dispatch
    "DispatchResult",
    "EventDispatcher",
    # Expressions
    "CacheStats",
    "ExpressionCache",
    "compile_expression",
    # Focus
    "FocusManager",
    # Geometry
    "Rect",
    # Input decoding
    "InputDecoder",
    "decode_input",
    # Layout
    "LayoutEngine",
    "LayoutNode",
    "LayoutTree",
    "Tier",
    "build_tree",
    # Messages
    "ActionRequestMsg",
    "ActionResultMsg",
    "BatchMsg",
    "Command",
    "DispatchClass",
    "KeyMsg",
    "MouseMsg",
    "QuitMsg",
    "ResizeMsg",
    "StateBatchUpdateMsg",
    "StateUpdateMsg",
    "TargetedMsg",
    "TickMsg",
    "batch",
    # Instance registry
    "ComponentRegistry",
    # Property resolution
    "ExpressionResolver",
    "PropsCache",
    "get_bool_prop",
    "get_int_prop",
    "get_str_prop",
    # Runtime
    "Runtime",
    # Scheduling
    "FrameReport",
    "Scheduler",
    # Selection
    "Selection",
    "SelectionManager",
    "SelectionMode",
    # State
    "StateStore",
    # Utilities
    "truncate_to_width",
    "visible_width",
    "wrap_text",
]
