"""Tests for capability providers, the descriptor builder and the registry."""

from __future__ import annotations

import threading
from typing import Sequence

import pytest

from scopeassist.ai.tools import (
    ActionSpec,
    CapabilityProvider,
    DuplicateToolError,
    ParameterSchema,
    ProviderRejectedError,
    ToolContext,
    ToolRegistry,
)

from tests.helpers import EchoProvider, MacroProvider


class ClashingProvider(CapabilityProvider):
    display_name = "Clash"

    def actions(self) -> Sequence[ActionSpec]:
        return (
            ActionSpec(name="fresh", description="New action", handler=lambda: "fresh"),
            ActionSpec(name="echo", description="Clashes with EchoProvider", handler=lambda: "clash"),
        )


class SelfDuplicateProvider(CapabilityProvider):
    display_name = "Twice"

    def actions(self) -> Sequence[ActionSpec]:
        return (
            ActionSpec(name="same", description="one", handler=lambda: 1),
            ActionSpec(name="same", description="two", handler=lambda: 2),
        )


class BrokenHandlerProvider(CapabilityProvider):
    display_name = "Broken"

    def actions(self) -> Sequence[ActionSpec]:
        return (ActionSpec(name="broken", description="no handler", handler="not callable"),)  # type: ignore[arg-type]


class UnhashableDefaultProvider(CapabilityProvider):
    display_name = "Unhashable"

    def actions(self) -> Sequence[ActionSpec]:
        return (
            ActionSpec(
                name="listy",
                description="Default is a list",
                parameters=(ParameterSchema("items", required=False, default=[]),),
                handler=lambda items: items,
            ),
        )


class RaisingTableProvider(CapabilityProvider):
    display_name = "Raising"

    def actions(self) -> Sequence[ActionSpec]:
        raise RuntimeError("host not ready")


def test_build_tools_is_memoized(echo_provider: EchoProvider) -> None:
    first = echo_provider.build_tools()

    assert echo_provider.build_tools() is first
    assert [descriptor.name for descriptor in first] == ["echo", "add", "explode", "nothing", "block"]
    assert all(descriptor.provider == "Echo Tools" for descriptor in first)


def test_build_tools_is_safe_under_concurrent_first_use() -> None:
    provider = EchoProvider()
    results: list[object] = []

    threads = [threading.Thread(target=lambda: results.append(provider.build_tools())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(result is results[0] for result in results)


def test_descriptor_schema_marks_required_parameters(echo_provider: EchoProvider) -> None:
    add = next(descriptor for descriptor in echo_provider.descriptors() if descriptor.name == "add")

    schema = add.to_json_schema()

    assert schema["required"] == ["a"]
    assert schema["properties"]["b"] == {"type": "integer", "default": 1}
    assert schema["additionalProperties"] is False


def test_duplicate_names_within_provider_are_rejected() -> None:
    with pytest.raises(DuplicateToolError) as excinfo:
        SelfDuplicateProvider().build_tools()

    assert excinfo.value.names == ("same",)


def test_non_callable_handler_is_rejected() -> None:
    with pytest.raises(ProviderRejectedError):
        BrokenHandlerProvider().build_tools()


def test_register_is_all_or_nothing(registry: ToolRegistry) -> None:
    with pytest.raises(DuplicateToolError):
        registry.register(ClashingProvider())

    assert "fresh" not in registry
    assert len(registry) == 5
    assert [provider.name for provider in registry.providers()] == ["Echo Tools"]


def test_register_same_provider_twice_is_rejected(registry: ToolRegistry, echo_provider: EchoProvider) -> None:
    with pytest.raises(ProviderRejectedError):
        registry.register(echo_provider)


def test_register_all_excludes_failing_providers(caplog) -> None:
    registry = ToolRegistry()
    good = MacroProvider()

    with caplog.at_level("ERROR"):
        registered = registry.register_all(
            [
                SelfDuplicateProvider(),
                UnhashableDefaultProvider(),
                good,
                RaisingTableProvider(),
                BrokenHandlerProvider(),
            ]
        )

    assert registered == [good]
    assert "Twice" in caplog.text
    assert "Unhashable" in caplog.text
    assert "host not ready" in caplog.text
    assert registry.lookup("listy") is None
    assert registry.lookup("recordMacro") is not None
    registry.shutdown()


def test_catalog_filters_by_tool_context(registry: ToolRegistry) -> None:
    registry.register(MacroProvider())

    assert [section.provider for section in registry.catalog()] == ["Echo Tools", "Macro Tools"]
    assert [section.provider for section in registry.catalog(ToolContext.MACRO)] == ["Echo Tools", "Macro Tools"]
    assert [section.provider for section in registry.catalog(ToolContext.SCRIPT)] == ["Echo Tools"]


def test_tool_specs_follow_registration_order(registry: ToolRegistry) -> None:
    registry.register(MacroProvider())

    specs = registry.tool_specs()

    assert [spec.name for spec in specs] == ["echo", "add", "explode", "nothing", "block", "recordMacro"]
    openai_tool = registry.to_openai_tools()[0]
    assert openai_tool["type"] == "function"
    assert openai_tool["function"]["parameters"]["required"] == ["text"]


def test_catalog_snapshot_is_unaffected_by_later_registration(registry: ToolRegistry) -> None:
    before = registry.catalog()

    registry.register(MacroProvider())

    assert len(before) == 1
    assert len(registry.catalog()) == 2


def test_clear_removes_everything(registry: ToolRegistry) -> None:
    registry.clear()

    assert len(registry) == 0
    assert registry.catalog() == ()
    assert registry.lookup("echo") is None


def test_parameter_schema_for_optional_string() -> None:
    schema = ParameterSchema("note", required=False).to_json_schema()

    assert schema == {"type": "string"}


@pytest.mark.parametrize("provider_type", [UnhashableDefaultProvider, RaisingTableProvider])
def test_malformed_provider_is_rejected(provider_type) -> None:
    with pytest.raises(ProviderRejectedError):
        provider_type().build_tools()
