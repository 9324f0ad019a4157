"""
Configuración del renderizador.
Se carga desde variables de entorno (.env) y, opcionalmente, desde un YAML.
Las credenciales solo se inyectan por entorno.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .utils.backoff import BackoffPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

# Variable de entorno -> campo de Settings
ENV_FIELDS = {
    "CONTENT_API_URL": "content_api_url",
    "CONTENT_API_TIMEOUT": "content_api_timeout",
    "CONTENT_API_ATTEMPTS": "content_api_attempts",
    "DOWNLOAD_TIMEOUT": "download_timeout",
    "DOWNLOAD_CONCURRENCY": "download_concurrency",
    "TEMP_DIR": "temp_dir",
    "OUTPUT_DIR": "output_dir",
    "TRAILING_BUFFER_SECONDS": "trailing_buffer_seconds",
    "TRANSITION_SECONDS": "transition_seconds",
    "MUSIC_GAIN_DB": "music_gain_db",
    "STORAGE_BACKEND": "storage_backend",
    "S3_BUCKET": "s3_bucket",
    "S3_PREFIX": "s3_prefix",
    "S3_REGION": "s3_region",
    "PUBLIC_BASE_URL": "public_base_url",
    "RCLONE_REMOTE": "rclone_remote",
    "RCLONE_FOLDER": "rclone_folder",
    "MIN_FREE_RAM_MB": "min_free_ram_mb",
    "MAX_CPU_PERCENT": "max_cpu_percent",
    "RESOURCE_ATTEMPTS": "resource_attempts",
    "RESOURCE_MAX_WAIT": "resource_max_wait",
    "FFMPEG_BIN": "ffmpeg_bin",
    "FFPROBE_BIN": "ffprobe_bin",
    "ENCODE_ATTEMPTS": "encode_attempts",
    "KEEP_LOCAL_COPY": "keep_local_copy",
    "FONTS_DIR": "fonts_dir",
    "MOTION_SEED": "motion_seed",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Parámetros de proceso del renderizador."""

    content_api_url: str = ""
    content_api_timeout: float = 120.0
    content_api_attempts: int = 2
    download_timeout: float = 60.0
    download_concurrency: int = Field(8, ge=1, le=16)
    temp_dir: str = "./temp"
    output_dir: str = "./output"
    trailing_buffer_seconds: float = Field(0.5, ge=0.0)
    transition_seconds: float = Field(0.5, ge=0.0)
    music_gain_db: float = -6.0
    storage_backend: str = "none"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "videos"
    s3_region: Optional[str] = None
    public_base_url: Optional[str] = None
    rclone_remote: str = "gdrive"
    rclone_folder: str = "Videos/Narrador"
    min_free_ram_mb: float = 512.0
    max_cpu_percent: float = 90.0
    resource_attempts: int = 5
    resource_max_wait: float = 30.0
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    encode_attempts: int = Field(1, ge=1)
    keep_local_copy: bool = False
    fonts_dir: Optional[str] = None
    motion_seed: Optional[int] = None
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @property
    def api_policy(self) -> BackoffPolicy:
        return BackoffPolicy(max_attempts=self.content_api_attempts, base_delay=5.0, ceiling=60.0)

    @property
    def download_policy(self) -> BackoffPolicy:
        return BackoffPolicy(max_attempts=2, base_delay=1.0, ceiling=10.0)

    @property
    def resource_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.resource_attempts,
            base_delay=1.0,
            ceiling=self.resource_max_wait,
        )

    @property
    def encode_policy(self) -> BackoffPolicy:
        return BackoffPolicy(max_attempts=self.encode_attempts, base_delay=2.0, ceiling=30.0)

    @classmethod
    def load(cls, config_path: Optional[str] = None, env_file: Optional[str] = None) -> "Settings":
        """
        Carga la configuración: YAML (si existe) y luego entorno.

        Args:
            config_path: Ruta al YAML (default: CONFIG_PATH o config/config.yaml)
            env_file: Archivo .env opcional

        Returns:
            Settings validado
        """
        load_dotenv(env_file)
        values: dict[str, Any] = {}

        path = Path(config_path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH))
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                values.update(yaml.safe_load(f) or {})
            logger.debug(f"Configuración cargada desde {path}")

        for env_name, field_name in ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw

        return cls(**values)
