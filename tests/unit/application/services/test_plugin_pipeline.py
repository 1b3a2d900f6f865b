"""Tests for PluginPipeline."""

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from widgetry.application.services.plugin_pipeline import HookPhase, PluginPipeline
from widgetry.domain.entities import PluginHooks, PluginTransforms, WidgetPlugin
from widgetry.domain.exceptions import (
    PluginNotFoundError,
    PluginTransformError,
    PluginVersionConflict,
)


@pytest.fixture
def pipeline() -> PluginPipeline:
    return PluginPipeline()


class TestInstall:
    """Test install/uninstall bookkeeping."""

    def test_install_fresh_returns_none(self, pipeline: PluginPipeline) -> None:
        """Test a fresh install replaces nothing."""
        assert pipeline.install(WidgetPlugin(id="p", version="1.0.0")) is None
        assert "p" in pipeline
        assert len(pipeline) == 1

    def test_same_version_replaces(self, pipeline: PluginPipeline) -> None:
        """Test reinstalling the same version is allowed and returns the old plugin."""
        old = WidgetPlugin(id="p", version="1.0.0", description="old")
        new = WidgetPlugin(id="p", version="1.0.0", description="new")
        pipeline.install(old)

        assert pipeline.install(new) is old
        assert pipeline.get("p") is new

    def test_downgrade_rejected(self, pipeline: PluginPipeline) -> None:
        """Test installing a lower version raises PluginVersionConflict."""
        pipeline.install(WidgetPlugin(id="p", version="1.0.0"))

        with pytest.raises(PluginVersionConflict) as exc_info:
            pipeline.install(WidgetPlugin(id="p", version="0.9.0"))

        assert exc_info.value.installed == "1.0.0"
        assert exc_info.value.requested == "0.9.0"

    def test_upgrade_keeps_install_position(self, pipeline: PluginPipeline) -> None:
        """Test a replaced plugin keeps its original slot in the order."""
        pipeline.install(WidgetPlugin(id="first", version="1.0.0"))
        pipeline.install(WidgetPlugin(id="second", version="1.0.0"))
        pipeline.install(WidgetPlugin(id="first", version="2.0.0"))

        assert [plugin.id for plugin in pipeline.plugins] == ["first", "second"]

    def test_uninstall_unknown(self, pipeline: PluginPipeline) -> None:
        """Test uninstalling an unknown plugin raises PluginNotFoundError."""
        with pytest.raises(PluginNotFoundError):
            pipeline.uninstall("ghost")


class TestRunHooks:
    """Test concurrent hook execution with failure isolation."""

    async def test_sync_and_async_hooks_both_run(self, pipeline: PluginPipeline) -> None:
        """Test plain functions and coroutines are accepted as hooks."""
        sync_hook = MagicMock(return_value=None)
        async_hook = AsyncMock()
        pipeline.install(
            WidgetPlugin(id="sync", version="1.0.0", hooks=PluginHooks(before_load=sync_hook))
        )
        pipeline.install(
            WidgetPlugin(id="async", version="1.0.0", hooks=PluginHooks(before_load=async_hook))
        )

        await pipeline.run_hooks(HookPhase.BEFORE_LOAD, "metadata")

        sync_hook.assert_called_once_with("metadata")
        async_hook.assert_awaited_once_with("metadata")

    async def test_only_requested_phase_runs(self, pipeline: PluginPipeline) -> None:
        """Test hooks of other phases are not called."""
        after_load = AsyncMock()
        pipeline.install(
            WidgetPlugin(id="p", version="1.0.0", hooks=PluginHooks(after_load=after_load))
        )

        await pipeline.run_hooks(HookPhase.BEFORE_LOAD, "metadata")

        after_load.assert_not_awaited()

    async def test_failing_hook_is_logged_not_raised(
        self, pipeline: PluginPipeline, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a raising hook doesn't stop its siblings."""

        async def broken(*args: Any) -> None:
            raise ValueError("nope")

        healthy = AsyncMock()
        pipeline.install(
            WidgetPlugin(id="broken", version="1.0.0", hooks=PluginHooks(on_error=broken))
        )
        pipeline.install(
            WidgetPlugin(id="healthy", version="1.0.0", hooks=PluginHooks(on_error=healthy))
        )

        with caplog.at_level(logging.ERROR):
            await pipeline.run_hooks(HookPhase.ON_ERROR, RuntimeError("x"), None)

        healthy.assert_awaited_once()
        assert "Plugin broken on_error hook failed" in caplog.text

    async def test_no_plugins_is_noop(self, pipeline: PluginPipeline) -> None:
        """Test running hooks with nothing installed does nothing."""
        await pipeline.run_hooks(HookPhase.AFTER_UNLOAD, "metadata")


class TestApplyTransforms:
    """Test ordered, copy-on-write transforms."""

    def test_no_transforms_returns_same_bundle(
        self, pipeline: PluginPipeline, make_bundle: Any
    ) -> None:
        """Test the bundle passes through untouched without transforms."""
        bundle = make_bundle("widget-a")
        pipeline.install(WidgetPlugin(id="p", version="1.0.0"))

        assert pipeline.apply_transforms(bundle) is bundle

    def test_config_transforms_chain_in_install_order(
        self, pipeline: PluginPipeline, make_bundle: Any
    ) -> None:
        """Test each config transform sees the previous one's output."""
        pipeline.install(
            WidgetPlugin(
                id="one",
                version="1.0.0",
                transforms=PluginTransforms(config=lambda c: {**c, "steps": ["one"]}),
            )
        )
        pipeline.install(
            WidgetPlugin(
                id="two",
                version="1.0.0",
                transforms=PluginTransforms(
                    config=lambda c: {**c, "steps": [*c["steps"], "two"]}
                ),
            )
        )
        bundle = make_bundle("widget-a")

        result = pipeline.apply_transforms(bundle)

        assert result.config["steps"] == ["one", "two"]
        assert "steps" not in bundle.config

    def test_in_place_mutation_does_not_leak(
        self, pipeline: PluginPipeline, make_bundle: Any
    ) -> None:
        """Test a transform mutating its input only touches the copy."""

        def mutate(config: dict[str, Any]) -> dict[str, Any]:
            config["title"] = "changed"
            return config

        pipeline.install(
            WidgetPlugin(id="p", version="1.0.0", transforms=PluginTransforms(config=mutate))
        )
        bundle = make_bundle("widget-a", config={"title": "original"})

        result = pipeline.apply_transforms(bundle)

        assert result.config["title"] == "changed"
        assert bundle.config["title"] == "original"

    def test_transform_returning_none_fails(
        self, pipeline: PluginPipeline, make_bundle: Any
    ) -> None:
        """Test a transform that forgets to return is a PluginTransformError."""
        pipeline.install(
            WidgetPlugin(
                id="forgetful",
                version="1.0.0",
                transforms=PluginTransforms(metadata=lambda m: None),
            )
        )

        with pytest.raises(PluginTransformError) as exc_info:
            pipeline.apply_transforms(make_bundle("widget-a"))

        assert exc_info.value.plugin_id == "forgetful"
        assert exc_info.value.phase == "metadata"

    async def test_component_wrappers_nest_first_innermost(
        self, pipeline: PluginPipeline, make_bundle: Any
    ) -> None:
        """Test wrapping order A then B yields B(A(original()))."""
        calls: list[str] = []

        async def original() -> list[str]:
            calls.append("original")
            return ["original"]

        def wrap_a(component: list[str]) -> list[str]:
            calls.append("a")
            return [*component, "a"]

        def wrap_b(component: list[str]) -> list[str]:
            calls.append("b")
            return [*component, "b"]

        pipeline.install(
            WidgetPlugin(id="a", version="1.0.0", transforms=PluginTransforms(component=wrap_a))
        )
        pipeline.install(
            WidgetPlugin(id="b", version="1.0.0", transforms=PluginTransforms(component=wrap_b))
        )

        result = pipeline.apply_transforms(make_bundle("widget-a", component=original))

        # Wrapping is lazy - nothing runs until the factory is called
        assert calls == []
        assert await result.component() == ["original", "a", "b"]
        assert calls == ["original", "a", "b"]
