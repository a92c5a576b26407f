from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from pathway_agents.builtin_tools import builtin_tool_factory
from pathway_agents.catalog import AgentCatalog, default_catalog
from pathway_agents.runtime import AgentRuntime
from pathway_agents.turns import TurnRunner
from pathway_core.errors import (
    PathwayError,
    SessionAgentMismatchError,
    UnknownAgentError,
    UnparseableOutputError,
    UpstreamError,
    ValidationError,
)
from pathway_core.provider_router import ProviderRouter
from pathway_core.settings import RuntimeSettings, configure_logging
from pathway_core.structured_output import StructuredOutputGenerator

from .turns import AgentTurnsAPI

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: Optional[RuntimeSettings] = None,
    router: Optional[ProviderRouter] = None,
    catalog: Optional[AgentCatalog] = None,
    api: Optional[AgentTurnsAPI] = None,
) -> FastAPI:
    settings = settings or RuntimeSettings.from_env()
    configure_logging(settings.log_level)

    if api is None:
        router = router or ProviderRouter.lazy_default()
        generator = StructuredOutputGenerator(router)
        if catalog is None:
            if settings.agents_file:
                catalog = AgentCatalog.from_file(settings.agents_file, tool_factory=builtin_tool_factory(generator))
            else:
                catalog = default_catalog()
        runtime = AgentRuntime(catalog=catalog, router=router, max_tool_iterations=settings.max_tool_iterations)
        runner = TurnRunner(catalog=catalog, runtime=runtime, settings=settings)
        api = AgentTurnsAPI(runner=runner, generator=generator, settings=settings)

    app = FastAPI(title="Pathway Agents API", version="0.1.0")

    def error_response(exc: Exception) -> JSONResponse:
        body = {"success": False, "error": str(exc)}
        if isinstance(exc, UnknownAgentError):
            status = 404
        elif isinstance(exc, SessionAgentMismatchError):
            status = 409
        elif isinstance(exc, ValidationError):
            status = 400
        elif isinstance(exc, UnparseableOutputError):
            status = 502
            if settings.debug_json:
                body["rawOutputSnippet"] = exc.snippet
        elif isinstance(exc, UpstreamError):
            status = 502
        else:
            status = 500
        return JSONResponse(status_code=status, content=body)

    @app.post("/api/agent/{name}")
    async def run_agent(name: str, payload: dict = Body(...)):
        try:
            return await api.run_agent(name, payload)
        except PathwayError as exc:
            logger.warning("Agent '%s' turn failed: %s", name, exc)
            return error_response(exc)

    @app.post("/api/structured")
    async def generate_structured(payload: dict = Body(...)):
        try:
            return await api.generate_structured(payload)
        except PathwayError as exc:
            logger.warning("Structured generation failed: %s", exc)
            return error_response(exc)

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "service": "pathway-agents-api",
        }

    @app.get("/")
    def index() -> dict:
        return api.describe()

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
