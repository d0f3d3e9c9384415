"""
Reasoning Service Resolver - Per-school reasoning service selection

Each school (tenant) may bring its own provider, model and key. A user's
turn runs against their school's service when one is configured, otherwise
against the service default. With neither, the turn fails with
ReasoningNotConfiguredError before anything is written.

Pattern: Strategy (service chosen per request, default as fallback)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eduforge_agent.core.config import SchoolReasoningConfig
from eduforge_agent.core.exceptions import ReasoningNotConfiguredError
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.providers.fake import ScriptedReasoningService
from eduforge_agent.providers.openai_compat import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def build_reasoning_service(
    provider: str,
    api_key: str = "",
    base_url: Optional[str] = None,
    timeout_seconds: float = 120.0,
) -> ReasoningService:
    """
    Build the adapter for a provider key.

    "fake" selects the scripted service (local development without keys).
    """
    if provider == "fake":
        return ScriptedReasoningService()
    return OpenAICompatibleProvider(
        provider=provider,
        api_key=api_key,
        base_url=base_url,
        timeout_seconds=timeout_seconds,
    )


@dataclass
class ResolvedReasoning:
    """A reasoning service together with the model to request from it."""

    service: ReasoningService
    model: str


class ReasoningServiceResolver:
    """
    Picks the reasoning service for a school.

    Services for configured schools are built on first use and kept for
    the life of the process; close() releases all of them.

    Example:
        >>> resolver = ReasoningServiceResolver(
        ...     default=ResolvedReasoning(deepseek, "deepseek-chat"),
        ...     school_configs={"sch-1": SchoolReasoningConfig(provider="qwen", model="qwen-plus")},
        ... )
        >>> resolver.resolve("sch-1").model
        'qwen-plus'
    """

    def __init__(
        self,
        default: Optional[ResolvedReasoning] = None,
        school_configs: Optional[dict[str, SchoolReasoningConfig]] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self._default = default
        self._configs: dict[str, SchoolReasoningConfig] = dict(school_configs or {})
        self._timeout_seconds = timeout_seconds
        self._schools: dict[str, ResolvedReasoning] = {}

    @property
    def default(self) -> Optional[ResolvedReasoning]:
        return self._default

    def register(self, school_id: str, service: ReasoningService, model: str) -> None:
        """Use an already built service for a school, replacing any config."""
        self._configs.pop(school_id, None)
        self._schools[school_id] = ResolvedReasoning(service, model)

    def resolve(self, school_id: Optional[str]) -> ResolvedReasoning:
        """
        Return the school's reasoning service, else the default.

        Raises:
            ReasoningNotConfiguredError: Neither exists.
        """
        if school_id:
            if school_id in self._schools:
                return self._schools[school_id]
            config = self._configs.get(school_id)
            if config is not None:
                resolved = ResolvedReasoning(
                    build_reasoning_service(
                        config.provider,
                        api_key=config.api_key.get_secret_value(),
                        base_url=config.base_url,
                        timeout_seconds=self._timeout_seconds,
                    ),
                    config.model,
                )
                self._schools[school_id] = resolved
                logger.info(
                    f"Reasoning service for school {school_id}: {config.provider}/{config.model}"
                )
                return resolved
        if self._default is None:
            raise ReasoningNotConfiguredError(school_id)
        return self._default

    def school_ids(self) -> list[str]:
        return sorted({*self._configs, *self._schools})

    async def close(self) -> None:
        for resolved in self._schools.values():
            await resolved.service.close()
        self._schools.clear()
        if self._default is not None:
            await self._default.service.close()
