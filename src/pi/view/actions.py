"""Actions: built-in runtime operations and background processes.

Built-in processes (``view.*``) are applied synchronously by the runtime.
Anything else is handed to an :class:`ActionExecutor` inside a command
that runs on a worker thread; its outcome comes back as an
:class:`~pi.view.messages.ActionResultMsg`.  While an identical action
(same process and resolved args) is still running, a re-trigger is
dropped.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Protocol

from pi.view.config import ActionConfig
from pi.view.messages import ActionResultMsg, Command
from pi.view.resolver import ExpressionResolver

logger = logging.getLogger(__name__)

QUIT = "view.quit"
FOCUS_NEXT = "view.focus.next"
FOCUS_PREV = "view.focus.prev"
FOCUS_CLEAR = "view.focus.clear"
REFRESH = "view.refresh"
STATE_SET = "view.state.set"

BUILTIN_PROCESSES = frozenset({QUIT, FOCUS_NEXT, FOCUS_PREV, FOCUS_CLEAR, REFRESH, STATE_SET})

# State key that receives an action's error text when no on_error is set.
DEFAULT_ERROR_KEY = "__action_error"


class ActionExecutor(Protocol):
    """Runs a named external process.  May block; raise on failure."""

    def execute(self, process: str, args: list[Any]) -> Any: ...


def is_builtin(action: ActionConfig) -> bool:
    return action.process in BUILTIN_PROCESSES


class ActionRunner:
    """Turns non-built-in actions into background commands."""

    def __init__(self, executor: ActionExecutor | None, resolver: ExpressionResolver) -> None:
        self.executor = executor
        self.resolver = resolver
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def resolve_args(self, action: ActionConfig, state: Mapping[str, Any]) -> list[Any]:
        return self.resolver.resolve(list(action.args), state)

    def resolve_payload(self, action: ActionConfig, state: Mapping[str, Any]) -> dict[str, Any]:
        return self.resolver.resolve(dict(action.payload or {}), state)

    def command_for(self, action: ActionConfig, state: Mapping[str, Any]) -> Command | None:
        """Build the worker command for *action*, or ``None`` without an executor.

        The action counts as in flight only once the command starts; a
        command that starts while an identical one is running returns
        ``None`` without calling the executor.
        """
        if self.executor is None:
            logger.warning("No action executor configured; dropping %s", action.process)
            return None

        args = self.resolve_args(action, state)
        key = f"{action.process}:{args!r}"
        executor = self.executor
        error_key = action.on_error or DEFAULT_ERROR_KEY

        def run() -> ActionResultMsg | None:
            with self._lock:
                if key in self._in_flight:
                    logger.info("Action %s already running; ignoring re-trigger", action.process)
                    return None
                self._in_flight.add(key)
            try:
                value = executor.execute(action.process, args)
            except Exception as exc:
                logger.warning("Action %s failed: %s", action.process, exc)
                return ActionResultMsg(action.process, False, error=str(exc), target=error_key)
            finally:
                with self._lock:
                    self._in_flight.discard(key)
            return ActionResultMsg(action.process, True, value=value, target=action.on_success)

        return run
