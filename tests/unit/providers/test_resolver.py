"""
Tests for ReasoningServiceResolver and create_reasoning_resolver.
"""

import pytest

from eduforge_agent.core.config import SchoolReasoningConfig, Settings
from eduforge_agent.core.exceptions import ReasoningNotConfiguredError, ReasoningServiceError
from eduforge_agent.providers import create_reasoning_resolver
from eduforge_agent.providers.fake import ScriptedReasoningService
from eduforge_agent.providers.openai_compat import OpenAICompatibleProvider
from eduforge_agent.providers.resolver import ReasoningServiceResolver, ResolvedReasoning


class ClosingService(ScriptedReasoningService):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def default() -> ResolvedReasoning:
    return ResolvedReasoning(ScriptedReasoningService(), "deepseek-chat")


class TestResolve:
    def test_school_without_config_uses_default(self, default) -> None:
        resolver = ReasoningServiceResolver(default=default)

        assert resolver.resolve("sch-9") is default
        assert resolver.resolve(None) is default

    def test_registered_school_service_wins(self, default) -> None:
        school_service = ScriptedReasoningService()
        resolver = ReasoningServiceResolver(default=default)
        resolver.register("sch-1", school_service, "qwen-plus")

        resolved = resolver.resolve("sch-1")

        assert resolved.service is school_service
        assert resolved.model == "qwen-plus"
        assert resolver.resolve("sch-2") is default

    @pytest.mark.asyncio
    async def test_configured_school_is_built_once(self, default) -> None:
        resolver = ReasoningServiceResolver(
            default=default,
            school_configs={
                "sch-1": SchoolReasoningConfig(
                    provider="qwen", model="qwen-plus", base_url="http://qwen.local/v1"
                )
            },
        )

        first = resolver.resolve("sch-1")
        second = resolver.resolve("sch-1")

        assert first is second
        assert isinstance(first.service, OpenAICompatibleProvider)
        assert first.service.name == "qwen"
        assert first.service.base_url == "http://qwen.local/v1"
        assert first.model == "qwen-plus"
        await resolver.close()

    def test_nothing_configured_raises(self) -> None:
        resolver = ReasoningServiceResolver()

        with pytest.raises(ReasoningNotConfiguredError) as exc_info:
            resolver.resolve("sch-1")

        assert exc_info.value.code == "REASONING_NOT_CONFIGURED"
        assert exc_info.value.school_id == "sch-1"
        assert "未配置 AI 服务" in exc_info.value.message
        assert isinstance(exc_info.value, ReasoningServiceError)

    def test_school_config_without_default(self) -> None:
        resolver = ReasoningServiceResolver(
            school_configs={"sch-1": SchoolReasoningConfig(provider="fake", model="m")}
        )

        assert isinstance(resolver.resolve("sch-1").service, ScriptedReasoningService)
        with pytest.raises(ReasoningNotConfiguredError):
            resolver.resolve("sch-2")

    def test_school_ids(self, default) -> None:
        resolver = ReasoningServiceResolver(
            default=default,
            school_configs={"sch-2": SchoolReasoningConfig(provider="fake", model="m")},
        )
        resolver.register("sch-1", ScriptedReasoningService(), "m")

        assert resolver.school_ids() == ["sch-1", "sch-2"]


class TestClose:
    @pytest.mark.asyncio
    async def test_closes_school_services_and_default(self) -> None:
        default_service = ClosingService()
        school_service = ClosingService()
        resolver = ReasoningServiceResolver(default=ResolvedReasoning(default_service, "m"))
        resolver.register("sch-1", school_service, "m")

        await resolver.close()

        assert default_service.closed
        assert school_service.closed


class TestFactory:
    def test_default_from_settings(self) -> None:
        resolver = create_reasoning_resolver(
            Settings(reasoning_provider="fake", reasoning_model="local-model")
        )

        resolved = resolver.resolve(None)
        assert isinstance(resolved.service, ScriptedReasoningService)
        assert resolved.model == "local-model"

    def test_injected_default_service(self) -> None:
        service = ScriptedReasoningService()

        resolver = create_reasoning_resolver(Settings(), default_service=service)

        assert resolver.resolve("sch-1").service is service

    def test_empty_provider_has_no_default(self) -> None:
        settings = Settings(
            reasoning_provider="",
            reasoning_school_configs={"sch-1": {"provider": "fake", "model": "school-model"}},
        )

        resolver = create_reasoning_resolver(settings)

        assert resolver.default is None
        assert resolver.resolve("sch-1").model == "school-model"
        with pytest.raises(ReasoningNotConfiguredError):
            resolver.resolve("sch-2")
