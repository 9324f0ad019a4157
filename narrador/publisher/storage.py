"""
Almacenamiento de videos renderizados.

Todos los backends exponen `upload(local_path, key)`: devuelven la URL
pública, None si el backend no publica nada, o lanzan UploadError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import UploadError

logger = logging.getLogger(__name__)

PRESIGNED_EXPIRATION = 7 * 24 * 3600


class Storage(ABC):
    """Interfaz común de los backends."""

    name = "base"

    @abstractmethod
    async def upload(self, local_path: str, key: str) -> Optional[str]:
        """
        Sube el archivo local con la key indicada.

        Returns:
            URL pública, o None si el backend no publica nada

        Raises:
            UploadError: Cualquier fallo del backend
        """


class NullStorage(Storage):
    """Sin subida: el video queda en disco local."""

    name = "none"

    async def upload(self, local_path: str, key: str) -> Optional[str]:
        logger.info(f"Sin backend de almacenamiento; el video queda en {local_path}")
        return None


class S3Storage(Storage):
    """Subida a S3 con boto3. Credenciales solo por entorno (cadena estándar de boto3)."""

    name = "s3"

    def __init__(
        self,
        bucket: str,
        prefix: str = "videos",
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
        expiration: int = PRESIGNED_EXPIRATION,
    ):
        """
        Args:
            bucket: Bucket de destino
            prefix: Prefijo de las keys
            region: Región AWS (opcional)
            public_base_url: Si se indica, URL = base + key; si no, URL prefirmada
            client: Cliente S3 ya construido (tests)
            expiration: Validez de la URL prefirmada en segundos
        """
        if not bucket:
            raise ValueError("S3Storage requiere un bucket (S3_BUCKET)")
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.expiration = expiration
        self.s3_client = client or boto3.client("s3", region_name=region)

    def object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _upload_sync(self, local_path: str, object_key: str) -> str:
        self.s3_client.upload_file(
            local_path,
            self.bucket,
            object_key,
            ExtraArgs={"ContentType": "video/mp4"},
        )
        if self.public_base_url:
            return f"{self.public_base_url}/{object_key}"
        return self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": object_key},
            ExpiresIn=self.expiration,
        )

    async def upload(self, local_path: str, key: str) -> Optional[str]:
        if not Path(local_path).exists():
            raise UploadError(f"Archivo no existe: {local_path}")

        object_key = self.object_key(key)
        logger.info(f"Subiendo {Path(local_path).name} a s3://{self.bucket}/{object_key}...")
        try:
            url = await asyncio.to_thread(self._upload_sync, local_path, object_key)
        except (Boto3Error, BotoCoreError, ClientError) as e:
            # upload_file envuelve los ClientError en S3UploadFailedError (Boto3Error)
            raise UploadError(f"Error subiendo a S3: {e}") from e

        logger.info(f"Archivo subido: s3://{self.bucket}/{object_key}")
        return url
