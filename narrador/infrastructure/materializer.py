"""
Materializador de assets.
Descarga en paralelo los assets remotos de cada escena (y los archivos
auxiliares: voiceover, logo, fuente, música) al directorio del trabajo.
"""
import asyncio
import logging
import mimetypes
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from ..domain.models import AssetType, MaterializedAsset, SceneDescriptor, asset_type_from_url
from ..errors import AssetDownloadError, NoAssetsError
from ..utils.backoff import BackoffPolicy

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = {
    AssetType.VIDEO: ".mp4",
    AssetType.IMAGE: ".jpg",
}


def classify_asset(
    url: str,
    content_type: Optional[str] = None,
    declared: Optional[AssetType] = None,
) -> AssetType:
    """
    Video o imagen: primero por extensión, luego por Content-Type y, si
    nada decide, el tipo declarado por la API (video por defecto).
    """
    by_extension = asset_type_from_url(url)
    if by_extension is not None:
        return by_extension
    if content_type:
        major = content_type.split(";")[0].strip().lower()
        if major.startswith("video/"):
            return AssetType.VIDEO
        if major.startswith("image/"):
            return AssetType.IMAGE
    return declared or AssetType.VIDEO


def _suffix_for(url: str, content_type: Optional[str], asset_type: AssetType) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if suffix:
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed
    return DEFAULT_SUFFIX[asset_type]


class AssetMaterializer:
    """
    Descarga de assets con concurrencia limitada.
    Diseñado para procesar todas las escenas de un trabajo en un solo lote.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        directory: str,
        policy: Optional[BackoffPolicy] = None,
        timeout: float = 60.0,
        concurrency: int = 8,
    ):
        """
        Args:
            client: Cliente httpx compartido (redirects se siguen por request)
            directory: Carpeta del trabajo donde se guardan los archivos
            policy: Reintentos ante errores de transporte
            timeout: Tiempo máximo por descarga (segundos)
            concurrency: Descargas simultáneas
        """
        self.client = client
        self.directory = Path(directory)
        self.policy = policy or BackoffPolicy(max_attempts=2, base_delay=1.0, ceiling=10.0)
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _stream_to(self, url: str, destination: Path) -> Optional[str]:
        """Descarga `url` en `destination`; devuelve el Content-Type."""
        async with self.client.stream("GET", url, follow_redirects=True, timeout=self.timeout) as response:
            if response.status_code != 200:
                raise AssetDownloadError(f"HTTP {response.status_code} descargando {url}", url=url)
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
            return response.headers.get("content-type")

    async def _download(self, url: str, destination: Path) -> Optional[str]:
        try:
            async for attempt in self.policy.retrying((httpx.TransportError,)):
                with attempt:
                    content_type = await asyncio.wait_for(
                        self._stream_to(url, destination), timeout=self.timeout
                    )
        except asyncio.TimeoutError:
            destination.unlink(missing_ok=True)
            raise AssetDownloadError(f"Timeout ({self.timeout:.0f}s) descargando {url}", url=url)
        except httpx.HTTPError as e:
            destination.unlink(missing_ok=True)
            raise AssetDownloadError(f"Error de red descargando {url}: {e}", url=url) from e
        except AssetDownloadError:
            destination.unlink(missing_ok=True)
            raise

        if not destination.exists() or destination.stat().st_size == 0:
            destination.unlink(missing_ok=True)
            raise AssetDownloadError(f"Archivo vacío descargado de {url}", url=url)
        return content_type

    async def fetch(self, url: str, destination: str) -> Path:
        """
        Descarga obligatoria de un archivo auxiliar (voiceover, logo, fuente, música).

        Raises:
            AssetDownloadError: si la descarga falla por cualquier motivo
        """
        path = Path(destination)
        async with self._semaphore:
            await self._download(url, path)
        logger.debug(f"Descargado {url} -> {path}")
        return path

    async def _materialize_one(self, index: int, scene: SceneDescriptor) -> Optional[MaterializedAsset]:
        if not scene.asset_url:
            logger.warning(f"Escena {index} sin asset_url, se omite")
            return None

        staging = self.directory / f"asset_{index:03d}.part"
        async with self._semaphore:
            try:
                content_type = await self._download(scene.asset_url, staging)
            except AssetDownloadError as e:
                logger.warning(f"Asset de escena {index} descartado: {e}")
                return None

        asset_type = classify_asset(scene.asset_url, content_type, scene.asset_type)
        path = staging.with_name(f"asset_{index:03d}{_suffix_for(scene.asset_url, content_type, asset_type)}")
        staging.replace(path)
        return MaterializedAsset(
            url=scene.asset_url,
            path=str(path),
            asset_type=asset_type,
            size_bytes=path.stat().st_size,
        )

    async def materialize(self, scenes: Sequence[SceneDescriptor]) -> List[Optional[MaterializedAsset]]:
        """
        Descarga el asset de cada escena.

        Returns:
            Lista alineada por índice con las escenas; None donde la descarga falló

        Raises:
            NoAssetsError: si no se pudo descargar ningún asset
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Descargando {len(scenes)} assets...")

        results: Tuple = await asyncio.gather(
            *[self._materialize_one(index, scene) for index, scene in enumerate(scenes)]
        )
        assets = list(results)

        available = sum(1 for asset in assets if asset is not None)
        if scenes and available == 0:
            raise NoAssetsError("Fallaron todas las descargas de assets")
        if available < len(assets):
            logger.warning(f"{len(assets) - available} de {len(assets)} assets no disponibles")
        else:
            logger.info(f"{available} assets descargados")
        return assets
