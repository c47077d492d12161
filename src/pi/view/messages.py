"""Messages processed by the runtime's single message loop.

Every message type is a frozen dataclass with a ``dispatch`` class
attribute; the runtime keeps an explicit handler table keyed by type, so
a message type without a handler is an error rather than a silent no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Literal, Optional, Union


class DispatchClass(str, Enum):
    GEOMETRY = "geometry"  # hit-tested pointer input
    COMPONENT = "component"  # delivered to the focused instance
    SYSTEM = "system"  # broadcast to every instance
    RUNTIME = "runtime"  # handled by the runtime itself


MouseButton = Literal["left", "middle", "right", "wheel_up", "wheel_down", "none"]
MouseAction = Literal["press", "release", "motion"]

# ---------------------------------------------------------------------------
# Input messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyMsg:
    """A key press.  ``key`` is the normalized id (``"ctrl+c"``, ``"tab"``, ``"a"``)."""

    key: str
    text: str = ""
    dispatch: ClassVar[DispatchClass] = DispatchClass.COMPONENT


@dataclass(frozen=True)
class MouseMsg:
    """A pointer event in 0-based cell coordinates."""

    x: int
    y: int
    button: MouseButton = "left"
    action: MouseAction = "press"
    dispatch: ClassVar[DispatchClass] = DispatchClass.GEOMETRY

    @property
    def is_wheel(self) -> bool:
        return self.button in ("wheel_up", "wheel_down")


@dataclass(frozen=True)
class ResizeMsg:
    width: int
    height: int
    dispatch: ClassVar[DispatchClass] = DispatchClass.SYSTEM


@dataclass(frozen=True)
class TickMsg:
    """Timer tick for component-internal animation (cursor blink, spinners)."""

    tag: Any = None
    dispatch: ClassVar[DispatchClass] = DispatchClass.COMPONENT


@dataclass(frozen=True)
class TargetedMsg:
    """Wraps *message* for delivery to one instance by id."""

    target_id: str
    message: Any
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


# ---------------------------------------------------------------------------
# Runtime messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateUpdateMsg:
    key: str
    value: Any
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


@dataclass(frozen=True)
class StateBatchUpdateMsg:
    values: dict[str, Any] = field(default_factory=dict)
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


@dataclass(frozen=True)
class ActionRequestMsg:
    """Ask the runtime to run the action bound to *event* on *node_id*."""

    node_id: str
    event: str
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


@dataclass(frozen=True)
class ActionResultMsg:
    """Outcome of a background action, re-entering the message queue."""

    action: str
    ok: bool
    value: Any = None
    error: str | None = None
    target: str | None = None
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


@dataclass(frozen=True)
class QuitMsg:
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


@dataclass(frozen=True)
class BatchMsg:
    """Several commands to run; produced by :func:`batch`."""

    commands: tuple[Command, ...] = ()
    dispatch: ClassVar[DispatchClass] = DispatchClass.RUNTIME


Message = Union[
    KeyMsg,
    MouseMsg,
    ResizeMsg,
    TickMsg,
    TargetedMsg,
    StateUpdateMsg,
    StateBatchUpdateMsg,
    ActionRequestMsg,
    ActionResultMsg,
    QuitMsg,
    BatchMsg,
]

# A deferred unit of work whose result re-enters the queue.
Command = Callable[[], Optional[Message]]


def batch(*cmds: Command | None) -> Command | None:
    """Combine commands into one; ``None`` entries are dropped."""
    valid = tuple(c for c in cmds if c is not None)
    if not valid:
        return None
    if len(valid) == 1:
        return valid[0]
    return lambda: BatchMsg(valid)

