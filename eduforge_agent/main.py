"""
EduForge Agent - Main Application Entry Point

create_app() builds the FastAPI application. The lifespan wires every
service once and stores it on app.state:

    settings -> logging -> redis -> stores
             -> registry + built-in tools -> executor
             -> plugin backend client -> reasoning resolver
             -> AgentLoop / StreamingAgent / ConfirmationResolver
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Optional

import httpx
import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eduforge_agent import __version__
from eduforge_agent.api.errors import register_exception_handlers
from eduforge_agent.api.middleware.logging import RequestLoggingMiddleware
from eduforge_agent.api.routes.chat import router as chat_router
from eduforge_agent.api.routes.health import router as health_router
from eduforge_agent.clients.http import create_http_client
from eduforge_agent.clients.plugin_backend import PluginBackendClient
from eduforge_agent.core.config import Settings, get_settings
from eduforge_agent.observability.logging import configure_logging, get_logger
from eduforge_agent.observability.metrics import MetricsMiddleware, get_metrics_app
from eduforge_agent.providers import create_reasoning_resolver
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.services.agent import AgentLoop
from eduforge_agent.services.confirmation import ConfirmationResolver
from eduforge_agent.services.streaming import StreamingAgent
from eduforge_agent.sessions.actions import PendingActionStore
from eduforge_agent.sessions.store import ConversationStore
from eduforge_agent.tools.builtin import register_builtin_tools
from eduforge_agent.tools.executor import ToolExecutor
from eduforge_agent.tools.registry import ToolRegistry

APP_NAME = "EduForge Agent"
APP_DESCRIPTION = "Tool-calling agent engine with role permissions and confirmation gates"

logger = get_logger(__name__)

RedisFactory = Callable[[Settings], Any]


def default_redis_factory(settings: Settings) -> Any:
    return redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


def create_app(
    settings: Optional[Settings] = None,
    redis_factory: Optional[RedisFactory] = None,
    reasoning_service: Optional[ReasoningService] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (default: get_settings()).
        redis_factory: Builds the Redis client at startup (tests pass one
            returning a fakeredis client).
        reasoning_service: Default reasoning adapter to use instead of the
            one selected by settings. Per-school configs still apply.
        backend_transport: httpx transport for the plugin backend client.
    """
    settings = settings or get_settings()
    make_redis = redis_factory or default_redis_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(level=settings.log_level)
        logger.info(
            "service_starting",
            service=settings.service_name,
            version=__version__,
            environment=settings.environment,
            reasoning_provider=settings.reasoning_provider,
        )

        redis_client = make_redis(settings)
        registry = ToolRegistry()
        register_builtin_tools(registry)
        executor = ToolExecutor(timeout=settings.tool_timeout_seconds)
        backend_http = create_http_client(
            base_url=settings.plugin_backend_url,
            timeout_seconds=settings.plugin_backend_timeout_seconds,
            transport=backend_transport,
        )
        backend = PluginBackendClient(http_client=backend_http)
        reasoning_resolver = create_reasoning_resolver(settings, default_service=reasoning_service)
        conversations = ConversationStore(redis_client)
        actions = PendingActionStore(
            redis_client, retention_seconds=settings.record_retention_seconds
        )

        agent_options: dict[str, Any] = dict(
            registry=registry,
            executor=executor,
            conversations=conversations,
            actions=actions,
            resolver=reasoning_resolver,
            temperature=settings.reasoning_temperature,
            max_iterations=settings.agent_max_iterations,
            history_limit=settings.agent_history_limit,
            pending_action_ttl_seconds=settings.pending_action_ttl_seconds,
            session_title_length=settings.session_title_length,
            backend=backend,
        )

        app.state.settings = settings
        app.state.redis = redis_client
        app.state.registry = registry
        app.state.conversations = conversations
        app.state.actions = actions
        app.state.reasoning_resolver = reasoning_resolver
        app.state.backend = backend
        app.state.agent_loop = AgentLoop(**agent_options)
        app.state.streaming_agent = StreamingAgent(**agent_options)
        app.state.confirmation_resolver = ConfirmationResolver(
            registry, executor, actions, backend=backend
        )
        logger.info(
            "service_started",
            tools=registry.names(),
            reasoning_schools=reasoning_resolver.school_ids(),
            default_reasoning=reasoning_resolver.default is not None,
        )

        try:
            yield
        finally:
            logger.info("service_stopping", service=settings.service_name)
            await reasoning_resolver.close()
            await backend_http.aclose()
            await redis_client.aclose()

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=__version__,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(chat_router)
    app.mount("/metrics", get_metrics_app())
    return app


app = create_app()
