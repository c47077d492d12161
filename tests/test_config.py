"""Tests for pi.view.config loading, validation and runtime options."""

from __future__ import annotations

import logging

import pytest

from pi.view.config import AppConfig, NodeConfig, RuntimeOptions, StyleConfig, load_config
from pi.view.errors import ConfigValidationError


def app(layout: dict, **extra) -> dict:
    return {"layout": layout, **extra}


class TestLoadConfig:
    def test_minimal(self) -> None:
        config = load_config(app({"type": "text", "props": {"content": "hi"}}))
        assert isinstance(config, AppConfig)
        assert config.layout.type == "text"
        assert config.tab_cycles is True

    def test_camel_case_aliases(self) -> None:
        config = load_config(
            app(
                {"type": "box", "style": {"minWidth": 3, "zIndex": 2}},
                tabCycles=False,
                onLoad={"process": "load", "onSuccess": "rows"},
            )
        )
        assert config.layout.style.min_width == 3
        assert config.layout.style.z_index == 2
        assert config.tab_cycles is False
        assert config.on_load is not None
        assert config.on_load.on_success == "rows"

    def test_accepts_model_instance(self) -> None:
        model = AppConfig(layout=NodeConfig(type="text"))
        assert load_config(model) is model

    def test_schema_error(self) -> None:
        with pytest.raises(ConfigValidationError) as info:
            load_config({"layout": {"props": {}}})
        assert any(e.startswith("layout.type") for e in info.value.errors)

    def test_duplicate_ids(self) -> None:
        layout = {
            "type": "column",
            "children": [{"id": "a", "type": "text"}, {"id": "a", "type": "text"}],
        }
        with pytest.raises(ConfigValidationError) as info:
            load_config(app(layout))
        assert "duplicate id 'a'" in info.value.errors[0]
        assert "layout.children[1].id" in info.value.errors[0]

    def test_bad_sizes(self) -> None:
        layout = {"type": "box", "style": {"width": "wide", "height": -1, "padding": [1, 2, 3]}}
        with pytest.raises(ConfigValidationError) as info:
            load_config(app(layout))
        assert len(info.value.errors) == 3

    def test_errors_summarized(self) -> None:
        children = [{"id": "x", "type": "text"} for _ in range(8)]
        with pytest.raises(ConfigValidationError) as info:
            load_config(app({"type": "column", "children": children}))
        assert "(+2 more)" in str(info.value)

    def test_empty_action_process(self) -> None:
        with pytest.raises(ConfigValidationError):
            load_config(app({"type": "text"}, bindings={"q": {"process": " "}}))

    def test_missing_bind_key_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="pi.view.config"):
            load_config(app({"type": "text", "bind": "nope"}, data={"other": 1}))
        assert "nope" in caplog.text


class TestNodeConfig:
    def test_direction(self) -> None:
        assert NodeConfig(type="row").direction == "row"
        assert NodeConfig(type="column").direction == "column"
        assert NodeConfig(type="box", style=StyleConfig(direction="row")).direction == "row"
        assert NodeConfig(type="box").direction == "column"

    def test_is_container(self) -> None:
        assert NodeConfig(type="box").is_container
        assert not NodeConfig(type="text").is_container

    def test_padding_box(self) -> None:
        assert StyleConfig(padding=1).padding_box() == (1, 1, 1, 1)
        assert StyleConfig(padding=[1, 2]).padding_box() == (1, 2, 1, 2)
        assert StyleConfig(padding=[1, 2, 3, 4]).padding_box() == (1, 2, 3, 4)

    def test_default_overflow_hidden(self) -> None:
        assert StyleConfig().overflow == "hidden"


class TestRuntimeOptions:
    def test_defaults(self) -> None:
        opts = RuntimeOptions.from_env({})
        assert opts.frame_budget_ms == 2.0
        assert opts.click_threshold_ms == 500.0

    def test_env_overrides(self) -> None:
        opts = RuntimeOptions.from_env(
            {
                "PI_VIEW_FRAME_BUDGET_MS": "5",
                "PI_VIEW_CLICK_THRESHOLD_MS": "300",
                "PI_VIEW_SELECTION": "off",
                "PI_VIEW_WORKERS": "2",
            }
        )
        assert opts.frame_budget_ms == 5.0
        assert opts.click_threshold_ms == 300.0
        assert opts.selection_enabled is False
        assert opts.workers == 2

    def test_bad_values_ignored(self) -> None:
        opts = RuntimeOptions.from_env({"PI_VIEW_FRAME_BUDGET_MS": "fast", "PI_VIEW_WORKERS": "many"})
        assert opts.frame_budget_ms == 2.0
        assert opts.workers == 4
