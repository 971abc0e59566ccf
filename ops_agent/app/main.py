from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ops_agent.adapters.reasoning_client import ReasoningEngineError
from ops_agent.app.config import get_settings
from ops_agent.app.routes import router
from ops_agent.utils.logging import configure_logging

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, debug=settings.debug)
app.include_router(router)


@app.exception_handler(ReasoningEngineError)
async def reasoning_engine_error(request: Request, exc: ReasoningEngineError) -> JSONResponse:
    logger.error("Reasoning engine failure: %s", exc, extra={"status": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})
