"""
Módulo de publicación de videos renderizados.

Componentes:
- S3Storage: Subida a S3 (boto3)
- RcloneStorage: Wrapper para rclone (Google Drive, Dropbox, ...)
- NullStorage: Sin subida, el video queda en disco
"""

from .cloud_uploader import RcloneStorage
from .storage import NullStorage, S3Storage, Storage

__all__ = ["NullStorage", "RcloneStorage", "S3Storage", "Storage", "create_storage"]


def create_storage(settings, client=None) -> Storage:
    """Instancia el backend indicado por STORAGE_BACKEND."""
    backend = (settings.storage_backend or "none").lower()
    if backend == "s3":
        return S3Storage(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            public_base_url=settings.public_base_url,
            client=client,
        )
    if backend == "rclone":
        return RcloneStorage(settings.rclone_remote, settings.rclone_folder)
    if backend != "none":
        raise ValueError(f"Backend de almacenamiento desconocido: {backend!r}")
    return NullStorage()
