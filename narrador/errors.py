"""
Taxonomía de errores del pipeline de renderizado.

Cada error lleva un código estable y el status HTTP con el que se expone.
Los errores recuperables (un asset caído, una subida fallida) se absorben en
el orquestador; el resto aborta el trabajo después de limpiar temporales.
"""

from typing import Optional


class RenderError(Exception):
    """Error base del renderizador."""

    code = "render.error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RenderError):
    """Entrada inválida (texto vacío o ausente)."""

    code = "render.input.invalid"
    http_status = 400


class UpstreamAPIError(RenderError):
    """La API de contenido no respondió correctamente tras los reintentos."""

    code = "render.upstream.unavailable"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssetDownloadError(RenderError):
    """Falló la descarga de un asset."""

    code = "render.assets.download_failed"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class NoAssetsError(AssetDownloadError):
    """No quedó ningún asset visual utilizable."""

    code = "render.assets.none_available"


class AudioProbeError(RenderError):
    """No se pudo medir la duración del voiceover."""

    code = "render.audio.unreadable"


class EmptyTimelineError(RenderError):
    """La API no devolvió escenas."""

    code = "render.timeline.empty"


class GraphValidationError(RenderError):
    """El grafo de filtros generado es estructuralmente inválido."""

    code = "render.graph.invalid"

    def __init__(self, message: str, fragment: str = ""):
        super().__init__(f"{message}: {fragment}" if fragment else message)
        self.fragment = fragment


class EncodeError(RenderError):
    """FFmpeg terminó con error o fue interrumpido."""

    code = "render.encode.failed"

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "", stdout: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout


class UploadError(RenderError):
    """La subida al almacenamiento falló (no fatal)."""

    code = "render.upload.failed"
