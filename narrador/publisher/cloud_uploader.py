"""
Cloud Uploader - Wrapper para rclone.

Funcionalidades:
- Subir videos al remote configurado (Google Drive, Dropbox, ...)
- Obtener enlaces públicos de descarga directa
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import UploadError
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class RcloneResult:
    returncode: int
    stdout: str
    stderr: str


def direct_download_url(url: str) -> str:
    """
    Convierte URL de vista a URL de descarga directa según el servicio.
    """
    # Google Drive:
    # De: https://drive.google.com/open?id=FILE_ID
    # A:  https://drive.google.com/uc?id=FILE_ID&export=download&confirm=t
    if "drive.google.com/open?id=" in url:
        file_id = url.split("id=")[-1]
        return f"https://drive.google.com/uc?id={file_id}&export=download&confirm=t"

    # Dropbox: dl=0 / dl=1 -> raw=1
    if "dropbox.com" in url:
        for old, new in (("&dl=0", "&raw=1"), ("&dl=1", "&raw=1"), ("?dl=0", "?raw=1"), ("?dl=1", "?raw=1")):
            if old in url:
                return url.replace(old, new)
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}raw=1"

    return url


class RcloneStorage(Storage):
    """Backend de almacenamiento sobre rclone."""

    name = "rclone"

    def __init__(self, remote_name: str = "gdrive", base_folder: str = "Videos/Narrador", rclone_bin: str = "rclone"):
        """
        Args:
            remote_name: Nombre del remote en rclone
            base_folder: Carpeta base en el remote
            rclone_bin: Binario de rclone
        """
        self.remote = remote_name
        self.base_folder = base_folder.strip("/")
        self.rclone_bin = rclone_bin
        self._verified: Optional[bool] = None

    async def _run_rclone(self, args: List[str], timeout: float = 300) -> RcloneResult:
        """Ejecuta un comando rclone."""
        cmd = [self.rclone_bin] + args
        logger.debug(f"Ejecutando: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise UploadError("rclone no está instalado") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise UploadError(f"rclone {args[0]} excedió {timeout:.0f}s")

        return RcloneResult(
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    async def verify(self) -> bool:
        """Verifica que rclone está instalado y el remote existe."""
        if self._verified is not None:
            return self._verified

        result = await self._run_rclone(["listremotes"], timeout=10)
        if result.returncode != 0:
            logger.warning("rclone no está configurado correctamente (return code != 0)")
            self._verified = False
            return False

        remotes = result.stdout.strip().split("\n")
        if f"{self.remote}:" not in remotes:
            logger.warning(f"Remote '{self.remote}' no encontrado en rclone. Remotes disponibles: {remotes}")
            self._verified = False
            return False

        self._verified = True
        return True

    async def get_public_link(self, remote_path: str) -> str:
        """
        Enlace público de descarga para un archivo del remote.

        Args:
            remote_path: Ruta del archivo en el remote (sin el nombre del remote)
        """
        full_path = f"{self.remote}:{remote_path}"
        logger.info(f"Obteniendo enlace público para: {full_path}")
        result = await self._run_rclone(["link", full_path], timeout=30)

        url = result.stdout.strip()
        if result.returncode != 0 or not url:
            raise UploadError(f"Error obteniendo enlace: {result.stderr.strip()}")

        url = direct_download_url(url)
        logger.info(f"Enlace público: {url}")
        return url

    async def upload(self, local_path: str, key: str) -> Optional[str]:
        """
        Sube un archivo y devuelve su enlace público.

        Los videos se organizan por fecha (AAAA/MM) dentro de la carpeta base.
        """
        local_file = Path(local_path)
        if not local_file.exists():
            raise UploadError(f"Archivo no existe: {local_path}")
        if not await self.verify():
            raise UploadError(f"rclone no está listo para el remote '{self.remote}'")

        remote_folder = f"{self.base_folder}/{datetime.now().strftime('%Y/%m')}"
        remote_path = f"{self.remote}:{remote_folder}"
        await self._run_rclone(["mkdir", remote_path])

        logger.info(f"Subiendo {local_file.name} a {remote_path}...")
        result = await self._run_rclone(["copyto", str(local_file), f"{remote_path}/{key}"], timeout=600)
        if result.returncode != 0:
            raise UploadError(f"Error subiendo archivo: {result.stderr.strip()}")

        logger.info(f"Archivo subido: {remote_folder}/{key}")
        return await self.get_public_link(f"{remote_folder}/{key}")
