"""Test doubles for the view runtime.

``Widget`` records every call the runtime makes so tests can assert on
focus transitions, config pushes and cleanup without a real terminal.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any, Callable

from pi.view.component import BaseComponent, RenderConfig
from pi.view.messages import Command


class Widget(BaseComponent):
    """Fixed-size component that renders its ``label`` prop."""

    def __init__(self, config: RenderConfig, size: tuple[int, int] = (5, 1)) -> None:
        super().__init__(config)
        self.size = size
        self.focus_calls: list[bool] = []
        self.configs: list[RenderConfig] = [config]
        self.messages: list[Any] = []
        self.renders = 0
        self.cleanups = 0
        self.handles = False
        self.reply: Command | None = None

    @property
    def label(self) -> str:
        return str(self.config.props.get("label", ""))

    def measure(self, max_width: int, max_height: int) -> tuple[int, int]:
        return min(self.size[0], max_width), min(self.size[1], max_height)

    def render(self, config: RenderConfig) -> str:
        self.renders += 1
        return str(config.props.get("label", ""))

    def update_config(self, config: RenderConfig) -> None:
        super().update_config(config)
        self.configs.append(config)

    def set_focus(self, focused: bool) -> None:
        super().set_focus(focused)
        self.focus_calls.append(focused)

    def handle_message(self, message: Any) -> tuple[Widget, Command | None, bool]:
        self.messages.append(message)
        return self, self.reply, self.handles

    def cleanup(self) -> None:
        self.cleanups += 1


class FocusWidget(Widget):
    focusable = True


class ScrollWidget(Widget):
    def __init__(self, config: RenderConfig) -> None:
        super().__init__(config)
        self.offset = 0

    def scroll_by(self, delta: int) -> None:
        self.offset += delta


class BrokenWidget(Widget):
    """Raises from ``render``."""

    def render(self, config: RenderConfig) -> str:
        raise RuntimeError("boom")


def catalog_factories() -> dict[str, Callable[[RenderConfig], Widget]]:
    return {
        "widget": Widget,
        "focus": FocusWidget,
        "scroll": ScrollWidget,
        "broken": BrokenWidget,
    }


class ManualClock:
    """Clock advanced explicitly, or by ``step`` on every read."""

    def __init__(self, start: float = 0.0, step: float = 0.0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ImmediateExecutor(Executor):
    """Runs submitted callables synchronously in the caller's thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        self.submitted += 1
        future: Future[Any] = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class RecordingExecutor:
    """Action executor returning canned results per process."""

    def __init__(self, results: dict[str, Any] | None = None, fail: set[str] | None = None) -> None:
        self.results = results or {}
        self.fail = fail or set()
        self.calls: list[tuple[str, list[Any]]] = []

    def execute(self, process: str, args: list[Any]) -> Any:
        self.calls.append((process, args))
        if process in self.fail:
            raise RuntimeError(f"{process} failed")
        return self.results.get(process)
