"""
Reasoning service adapters.

create_reasoning_service() builds the adapter selected by settings;
create_reasoning_resolver() adds the per-school services on top of it.
"""

from typing import Optional

from eduforge_agent.core.config import Settings
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.providers.fake import ScriptedReasoningService
from eduforge_agent.providers.openai_compat import PROVIDER_URLS, OpenAICompatibleProvider
from eduforge_agent.providers.resolver import (
    ReasoningServiceResolver,
    ResolvedReasoning,
    build_reasoning_service,
)


def create_reasoning_service(settings: Settings) -> Optional[ReasoningService]:
    """
    Build the default reasoning service adapter.

    Returns None when reasoning_provider is empty (no default service).
    """
    if not settings.reasoning_provider:
        return None
    return build_reasoning_service(
        settings.reasoning_provider,
        api_key=settings.reasoning_api_key.get_secret_value(),
        base_url=settings.reasoning_base_url,
        timeout_seconds=settings.reasoning_timeout_seconds,
    )


def create_reasoning_resolver(
    settings: Settings, default_service: Optional[ReasoningService] = None
) -> ReasoningServiceResolver:
    """
    Build the per-school resolver.

    Args:
        settings: Supplies the default provider and the school configs.
        default_service: Default adapter to use instead of the one selected
            by settings.
    """
    service = default_service
    if service is None:
        service = create_reasoning_service(settings)
    default = ResolvedReasoning(service, settings.reasoning_model) if service is not None else None
    return ReasoningServiceResolver(
        default=default,
        school_configs=settings.reasoning_school_configs,
        timeout_seconds=settings.reasoning_timeout_seconds,
    )


__all__ = [
    "PROVIDER_URLS",
    "OpenAICompatibleProvider",
    "ReasoningService",
    "ReasoningServiceResolver",
    "ResolvedReasoning",
    "ScriptedReasoningService",
    "build_reasoning_service",
    "create_reasoning_resolver",
    "create_reasoning_service",
]
