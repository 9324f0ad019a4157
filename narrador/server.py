"""
Servidor HTTP del renderizador (FastAPI).

POST /generate-video  -> renderiza y devuelve URL o path local
GET  /health          -> estado del servicio

Los errores responden siempre {"status": "error", "message": ..., "code": ...}.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Body, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .domain.models import RenderRequest
from .errors import RenderError, ValidationError
from .orchestrator import RenderOrchestrator

logger = logging.getLogger(__name__)

INVALID_BODY_CODE = "request.invalid"


def error_response(message: str, status_code: int, code: str, details: Optional[str] = None) -> JSONResponse:
    body = {"status": "error", "message": message, "code": code}
    if details:
        body["details"] = details[:500]
    return JSONResponse(body, status_code=status_code)


def create_app(orchestrator: RenderOrchestrator, lifespan=None) -> FastAPI:
    """
    Construye la app con el orquestador inyectado.

    Args:
        orchestrator: Orquestador que ejecuta los renders
        lifespan: Context manager opcional de arranque/cierre (cliente HTTP, etc.)
    """
    app = FastAPI(title="Narrador", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request, exc: RequestValidationError):
        return error_response("invalid request body", 400, INVALID_BODY_CODE, str(exc))

    @app.get("/health")
    async def health():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/generate-video")
    async def generate_video(payload: Optional[dict] = Body(None)):
        try:
            request = RenderRequest.model_validate(payload or {})
        except PydanticValidationError as e:
            return error_response("invalid request body", 400, INVALID_BODY_CODE, str(e))

        if not request.text or not request.text.strip():
            return error_response("text required", 400, ValidationError.code)

        try:
            result = await orchestrator.render(request)
        except RenderError as e:
            if e.http_status >= 500:
                logger.error(f"Render fallido ({e.code}): {e.message}")
            return error_response(e.message, e.http_status, e.code)
        except Exception as e:
            logger.exception(f"Error inesperado en render: {e}")
            return error_response(str(e), 500, RenderError.code)

        body = {"status": "success", "jobId": result.job_id, "duration": result.duration}
        body["url" if result.is_remote else "path"] = result.location
        return body

    return app
