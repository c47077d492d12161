"""The view runtime: one message loop driving state, layout and paint.

:class:`Runtime` owns every per-application object (state store, caches,
component registry, layout tree, scheduler, focus and selection) and
processes one message at a time.  Background work runs on a thread pool
and only ever reports back by posting a message to the runtime's queue.

Typical driver loop::

    runtime = Runtime(config, executor=my_executor)
    runtime.execute(runtime.init())
    runtime.post(ResizeMsg(80, 24))
    while not runtime.quitting:
        for msg in decoder.feed(read_stdin()):
            runtime.post(msg)
        runtime.pump()
        write_frame(runtime.render().lines())
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Mapping

from pi.view import actions as builtin
from pi.view.actions import DEFAULT_ERROR_KEY, ActionExecutor, ActionRunner, is_builtin
from pi.view.buffer import CellBuffer
from pi.view.bus import ACTION_RESULT, FOCUS_CHANGED, STATE_CHANGED, EventBus
from pi.view.component import Component, ComponentCatalog, RenderConfig
from pi.view.components import PLACEHOLDER_TYPE, Placeholder, default_catalog, placeholder_config
from pi.view.config import ActionConfig, AppConfig, NodeConfig, RuntimeOptions, load_config
from pi.view.errors import RenderError, UnhandledMessageError, UnknownComponentTypeError
from pi.view.events import DispatchResult, EventDispatcher
from pi.view.expression import ExpressionCache
from pi.view.focus import FocusManager
from pi.view.layout import LayoutEngine, LayoutNode, LayoutTree, Tier, build_tree
from pi.view.messages import (
    ActionRequestMsg,
    ActionResultMsg,
    BatchMsg,
    Command,
    KeyMsg,
    MouseMsg,
    QuitMsg,
    ResizeMsg,
    StateBatchUpdateMsg,
    StateUpdateMsg,
    TargetedMsg,
    TickMsg,
)
from pi.view.painter import Painter
from pi.view.registry import ComponentRegistry
from pi.view.resolver import ExpressionResolver, PropsCache, resolve_props
from pi.view.scheduler import FrameReport, Scheduler
from pi.view.selection import SelectionManager
from pi.view.state import ERRORS_KEY, StateStore, merge_data, prepare_initial_state

logger = logging.getLogger(__name__)


class Runtime:
    """Drives a declarative view tree against a state store."""

    def __init__(
        self,
        config: AppConfig | Mapping[str, Any],
        catalog: ComponentCatalog | None = None,
        executor: ActionExecutor | None = None,
        options: RuntimeOptions | None = None,
        external_data: Mapping[str, Any] | None = None,
        command_executor: Executor | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.options = options if options is not None else RuntimeOptions.from_env()
        self.config = load_config(config)
        if self.config.log_level:
            logging.getLogger("pi.view").setLevel(self.config.log_level.upper())

        self.catalog = catalog if catalog is not None else default_catalog()
        self.store = StateStore(prepare_initial_state(self.config.data, external_data))
        self.bus = EventBus()
        self.expressions = ExpressionCache(self.options.expression_cache_size)
        self.resolver = ExpressionResolver(self.expressions)
        self.props_cache = PropsCache()
        self.registry = ComponentRegistry()
        self.focus = FocusManager(self.registry, cycle=self._tab_cycles(), on_change=self._on_focus_change)
        self.selection = SelectionManager(
            enabled=self.options.selection_enabled,
            threshold_ms=self.options.click_threshold_ms,
        )
        self.dispatcher = EventDispatcher(self.registry, self.focus, self.selection)
        self.actions = ActionRunner(executor, self.resolver)
        self.clock = clock

        self.width = 0
        self.height = 0
        self.buffer = CellBuffer(0, 0)
        self.tree = LayoutTree()
        self.engine = LayoutEngine(self.tree)
        self.painter = Painter(self.engine, self.buffer, self._node_text)
        self.scheduler = Scheduler(self.tree, self.engine, self.painter.paint)
        self.last_frame: FrameReport | None = None
        self.quitting = False

        self._queue: queue.Queue[Any] = queue.Queue()
        self._command_executor = command_executor
        self._owns_executor = command_executor is None
        self._pending: dict[str, Any] = {}
        self._pending_lock = threading.Lock()
        self._frame_state: dict[str, Any] = {}
        self._initialized = False

        self._handlers: dict[type, Callable[[Any], Command | None]] = {
            KeyMsg: self._on_key,
            MouseMsg: self._on_mouse,
            ResizeMsg: self._on_resize,
            TickMsg: self._on_tick,
            TargetedMsg: self._on_targeted,
            StateUpdateMsg: self._on_state_update,
            StateBatchUpdateMsg: self._on_state_batch,
            ActionRequestMsg: self._on_action_request,
            ActionResultMsg: self._on_action_result,
            QuitMsg: self._on_quit,
            BatchMsg: self._on_batch,
        }

        self._unsubscribe_store = self.store.subscribe(self._on_store_change)
        self.build()

    def _tab_cycles(self) -> bool:
        if "tab_cycles" in self.config.model_fields_set:
            return self.config.tab_cycles
        return self.options.tab_cycles

    # -----------------------------------------------------------------------
    # External state accessors (thread-safe)
    # -----------------------------------------------------------------------

    def get_state(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    def set_state(self, key: str, value: Any) -> None:
        self.store.set(key, value)

    def update_state(self, values: Mapping[str, Any]) -> None:
        self.store.update(values)

    def _on_store_change(self, changed: dict[str, Any]) -> None:
        # May run on a worker thread: only record, the main loop applies.
        with self._pending_lock:
            self._pending.update(changed)

    # -----------------------------------------------------------------------
    # Tree construction
    # -----------------------------------------------------------------------

    def build(self) -> None:
        """Rebuild the layout tree from the current config.

        Instances whose ids survive are reused; the rest are cleaned up.
        """
        state = self.store.snapshot()
        live: list[str] = []

        def instance_for(node: NodeConfig, node_id: str) -> Component | None:
            live.append(node_id)
            return self._instance(node, node_id, state)

        self.tree = build_tree(self.config.layout, instance_for)
        removed = self.registry.retain(live)
        for node_id in removed:
            self.props_cache.invalidate(node_id)

        self.engine = LayoutEngine(self.tree)
        self.engine.width, self.engine.height = self.width, self.height
        self.painter = Painter(self.engine, self.buffer, self._node_text)
        self.scheduler = Scheduler(
            self.tree,
            self.engine,
            self.painter.paint,
            budget_ms=self.options.frame_budget_ms,
            clock=self.clock,
            on_relayout=self.painter.invalidate,
        )
        self.dispatcher.engine = self.engine
        self.selection.clear()

        self.focus.set_ids(self.tree.focusable_ids())
        self.focus.sync()
        if self.config.auto_focus and self.focus.current is None and self.focus.ids:
            self.focus.focus(self.focus.ids[0])

        logger.debug("Built tree: %d nodes, %d instances", len(self.tree), len(self.registry))
        if self.width and self.height:
            self._full_frame()

    def reload(self, config: AppConfig | Mapping[str, Any]) -> None:
        """Replace the tree wholesale.  Raises ``ConfigValidationError``."""
        new_config = load_config(config)
        self.config = new_config
        self.focus.cycle = self._tab_cycles()
        # Existing state wins over the new static data.
        merged = merge_data(self.store.snapshot(), prepare_initial_state(new_config.data), override=False)
        self.store.replace(merged)
        self._apply_pending_state()
        self.build()

    def _instance(self, node: NodeConfig, node_id: str, state: Mapping[str, Any]) -> Component:
        props = resolve_props(self.resolver, self.props_cache, node_id, node.props, node.bind, state)
        config = RenderConfig(node_id, props)
        try:
            factory = self.catalog.get(node.type)
        except UnknownComponentTypeError as exc:
            logger.warning("%s: %s", node_id, exc)
            return self._placeholder(node_id, str(exc))
        try:
            instance, created = self.registry.get_or_create(node_id, node.type, factory, config)
        except Exception as exc:
            logger.warning("%s: could not create %s component: %s", node_id, node.type, exc)
            return self._placeholder(node_id, f"error: {exc}")
        if not created:
            self._push_config(node_id, props)
        return instance

    def _placeholder(self, node_id: str, message: str) -> Component:
        instance, _ = self.registry.get_or_create(
            node_id, PLACEHOLDER_TYPE, Placeholder, placeholder_config(node_id, message)
        )
        return instance

    def _push_config(self, node_id: str, props: dict[str, Any]) -> bool:
        last = self.registry.last_config(node_id)
        width, height = (last.width, last.height) if last is not None else (0, 0)
        try:
            return self.registry.update_config(node_id, RenderConfig(node_id, props, width, height))
        except Exception as exc:
            logger.warning("%s: update_config failed: %s", node_id, exc)
            self._record_error(node_id, str(exc))
            return True

    # -----------------------------------------------------------------------
    # Message loop
    # -----------------------------------------------------------------------

    def init(self) -> Command | None:
        """Run the ``on_load`` action once.  Returns its command, if any."""
        if self._initialized:
            return None
        self._initialized = True
        if self.config.on_load is None:
            return None
        return self.run_action(self.config.on_load)

    def update(self, message: Any) -> Command | None:
        """Process one message to completion; returns its continuation."""
        handler = self._handlers.get(type(message))
        if handler is None:
            raise UnhandledMessageError(message)
        self._apply_pending_state()
        cmd = handler(message)
        self._apply_pending_state()
        return cmd

    def post(self, message: Any) -> None:
        """Queue *message* for the main loop.  Safe from any thread."""
        self._queue.put(message)

    def pump(self, block: bool = False, timeout: float | None = None) -> int:
        """Process queued messages in arrival order; returns how many."""
        count = 0
        while not self.quitting:
            try:
                if block and count == 0:
                    message = self._queue.get(timeout=timeout)
                else:
                    message = self._queue.get_nowait()
            except queue.Empty:
                break
            self.execute(self.update(message))
            count += 1
        return count

    def execute(self, cmd: Command | None) -> None:
        """Run *cmd* off the main loop; its result message is posted back."""
        if cmd is None:
            return
        future = self._executor().submit(cmd)
        future.add_done_callback(self._command_done)

    def _executor(self) -> Executor:
        if self._command_executor is None:
            self._command_executor = ThreadPoolExecutor(
                max_workers=self.options.workers, thread_name_prefix="pi-view"
            )
        return self._command_executor

    def _command_done(self, future: Future[Any]) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Command failed: %s", exc, exc_info=exc)
            return
        message = future.result()
        if message is not None:
            self.post(message)

    def close(self) -> None:
        """Clean up every instance and stop the worker pool."""
        self._unsubscribe_store()
        self.registry.clear()
        self.bus.clear()
        if self._owns_executor and self._command_executor is not None:
            self._command_executor.shutdown(wait=False)
            self._command_executor = None

    # -- handlers ------------------------------------------------------------

    def _on_key(self, msg: KeyMsg) -> Command | None:
        binding = self.config.bindings.get(msg.key)
        if binding is not None:
            return self.run_action(binding)
        return self._after_dispatch(self.dispatcher.dispatch(msg))

    def _on_mouse(self, msg: MouseMsg) -> Command | None:
        return self._after_dispatch(self.dispatcher.dispatch(msg))

    def _on_tick(self, msg: TickMsg) -> Command | None:
        return self._after_dispatch(self.dispatcher.dispatch(msg))

    def _on_targeted(self, msg: TargetedMsg) -> Command | None:
        return self._after_dispatch(self.dispatcher.deliver(msg.target_id, msg.message))

    def _on_resize(self, msg: ResizeMsg) -> Command | None:
        self.width, self.height = max(0, msg.width), max(0, msg.height)
        self.buffer = CellBuffer(self.width, self.height)
        self.painter.buffer = self.buffer
        self.selection.clear()
        result = self.dispatcher.dispatch(msg)
        self._full_frame()
        return result.command

    def _on_state_update(self, msg: StateUpdateMsg) -> Command | None:
        self.store.set(msg.key, msg.value)
        return None

    def _on_state_batch(self, msg: StateBatchUpdateMsg) -> Command | None:
        self.store.update(msg.values)
        return None

    def _on_action_request(self, msg: ActionRequestMsg) -> Command | None:
        node = self.tree.find(msg.node_id)
        action = node.config.actions.get(msg.event) if node is not None else None
        if action is None:
            logger.debug("No action for %s on %r", msg.event, msg.node_id)
            return None
        return self.run_action(action)

    def _on_action_result(self, msg: ActionResultMsg) -> Command | None:
        if msg.ok:
            if msg.target:
                self.store.set(msg.target, msg.value)
        else:
            self.store.set(msg.target or DEFAULT_ERROR_KEY, msg.error)
        self.bus.publish(ACTION_RESULT, msg)
        return None

    def _on_quit(self, msg: QuitMsg) -> Command | None:
        self.quitting = True
        return None

    def _on_batch(self, msg: BatchMsg) -> Command | None:
        for cmd in msg.commands:
            self.execute(cmd)
        return None

    def _after_dispatch(self, result: DispatchResult) -> Command | None:
        if result.scrolled is not None:
            self.painter.invalidate()
        for node_id in result.targets:
            node = self.tree.find(node_id)
            if node is not None:
                self.tree.mark_dirty(node.handle, layout=True, tier=Tier.HIGH)
        return result.command

    # -----------------------------------------------------------------------
    # Actions
    # -----------------------------------------------------------------------

    def run_action(self, action: ActionConfig) -> Command | None:
        """Apply a built-in action now, or return the command for a process."""
        if not is_builtin(action):
            return self.actions.command_for(action, self.store.snapshot())

        process = action.process
        if process == builtin.QUIT:
            self.quitting = True
        elif process == builtin.FOCUS_NEXT:
            self.focus.next()
        elif process == builtin.FOCUS_PREV:
            self.focus.prev()
        elif process == builtin.FOCUS_CLEAR:
            self.focus.clear()
        elif process == builtin.REFRESH:
            self.props_cache.invalidate()
            self.tree.mark_all_dirty()
            if self.width and self.height:
                self._full_frame()
        elif process == builtin.STATE_SET:
            payload = self.actions.resolve_payload(action, self.store.snapshot())
            if payload:
                self.store.update(payload)
        return None

    # -----------------------------------------------------------------------
    # State propagation
    # -----------------------------------------------------------------------

    def _apply_pending_state(self) -> None:
        with self._pending_lock:
            changed, self._pending = self._pending, {}
        if not changed:
            return
        self.bus.publish(STATE_CHANGED, changed)
        state = self.store.snapshot()
        for node in self.tree.walk():
            if node.instance is None or self.registry.type_of(node.node_id) == PLACEHOLDER_TYPE:
                continue
            props = resolve_props(
                self.resolver, self.props_cache, node.node_id, node.config.props, node.config.bind, state
            )
            if self._push_config(node.node_id, props):
                self.tree.mark_dirty(node.handle, layout=True)

    def _on_focus_change(self, previous: str | None, current: str | None) -> None:
        for node_id in (previous, current):
            node = self.tree.find(node_id) if node_id is not None else None
            if node is not None:
                self.tree.mark_dirty(node.handle, layout=False, tier=Tier.HIGH)
        self.bus.publish(FOCUS_CHANGED, {"previous": previous, "current": current})

    # -----------------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------------

    def _full_frame(self) -> None:
        self._frame_state = self.store.snapshot()
        self.engine.width, self.engine.height = self.width, self.height
        self.engine.layout(self.width, self.height)
        self.painter.invalidate()
        self.buffer.clear()
        self.last_frame = self.scheduler.render_frame(unbounded=True)

    def render(self) -> CellBuffer:
        """Repaint what is dirty (within budget) and return the frame.

        The returned buffer is a copy with the active selection shown in
        reverse video.
        """
        self._apply_pending_state()
        self._frame_state = self.store.snapshot()
        self.last_frame = self.scheduler.render_frame()
        frame = self.buffer.copy()
        if self.selection.active:
            frame.highlight(self.selection.cells(self.buffer))
        return frame

    def view(self) -> str:
        return "\n".join(self.render().lines())

    def selected_text(self) -> str:
        """Text under the current selection in the last painted frame."""
        if not self.selection.active:
            return ""
        return self.selection.text(self.buffer)

    def _node_text(self, node: LayoutNode, width: int, height: int) -> str | None:
        instance = node.instance
        if instance is None:
            return None
        node_id = node.node_id
        if self.registry.type_of(node_id) == PLACEHOLDER_TYPE:
            last = self.registry.last_config(node_id)
            props = last.props if last is not None else {}
        else:
            props = resolve_props(
                self.resolver,
                self.props_cache,
                node_id,
                node.config.props,
                node.config.bind,
                self._frame_state,
            )
        config = RenderConfig(node_id, props, width, height)
        try:
            self.registry.update_config(node_id, config)
            text = instance.render(config)
        except Exception as exc:
            error = RenderError(node_id, exc)
            logger.warning("Render failed: %s", error)
            self._record_error(node_id, str(exc))
            fallback = placeholder_config(node_id, f"error: {exc}")
            return Placeholder(fallback).render(RenderConfig(node_id, fallback.props, width, height))
        self._clear_error(node_id)
        return text

    def _record_error(self, node_id: str, text: str) -> None:
        errors = dict(self.store.get(ERRORS_KEY) or {})
        if errors.get(node_id) == text:
            return
        errors[node_id] = text
        self.store.set(ERRORS_KEY, errors)

    def _clear_error(self, node_id: str) -> None:
        errors = self.store.get(ERRORS_KEY)
        if not errors or node_id not in errors:
            return
        errors = dict(errors)
        del errors[node_id]
        self.store.set(ERRORS_KEY, errors)
