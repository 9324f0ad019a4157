"""
Cliente de la API de contenido.
Obtiene escenas, voiceover, palabras y estilo para un texto.
"""
import logging
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import ContentResponse, RenderRequest
from ..errors import UpstreamAPIError
from ..utils.backoff import BackoffPolicy

logger = logging.getLogger(__name__)


class _RetryableStatus(Exception):
    """Respuesta 5xx/429 que merece otro intento."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class ContentApiClient:
    """
    Cliente para la API de generación de contenido.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        policy: Optional[BackoffPolicy] = None,
        timeout: float = 120.0,
    ):
        self.client = client
        self.base_url = base_url
        self.policy = policy or BackoffPolicy(max_attempts=2, base_delay=5.0, ceiling=60.0)
        self.timeout = timeout

    async def _get(self, params: dict) -> httpx.Response:
        response = await self.client.get(self.base_url, params=params, timeout=self.timeout)
        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableStatus(response.status_code)
        return response

    async def fetch(self, request: RenderRequest) -> ContentResponse:
        """
        Pide el contenido para una petición de render.

        Todas las perillas de estilo viajan como query params.

        Raises:
            UpstreamAPIError: error HTTP, de red o respuesta inválida
        """
        if not self.base_url:
            raise UpstreamAPIError("CONTENT_API_URL no configurada")

        params = request.query_params()
        logger.info(f"Consultando API de contenido (style={request.style}, language={request.language})")

        try:
            async for attempt in self.policy.retrying((httpx.TransportError, _RetryableStatus)):
                with attempt:
                    response = await self._get(params)
        except _RetryableStatus as e:
            raise UpstreamAPIError(f"La API de contenido respondió {e.status_code}", status_code=e.status_code)
        except httpx.HTTPError as e:
            raise UpstreamAPIError(f"Error de red con la API de contenido: {e}") from e

        if response.status_code != 200:
            raise UpstreamAPIError(
                f"La API de contenido respondió {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            content = ContentResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise UpstreamAPIError(f"Respuesta inválida de la API de contenido: {e}") from e

        logger.info(f"API de contenido: {len(content.videos)} escenas, {len(content.words)} palabras")
        return content
