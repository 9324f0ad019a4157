"""
Política de reintentos con exponential backoff.
Una sola política reutilizable para llamadas de red, descargas, encode y
las esperas por recursos del sistema.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Parámetros de backoff exponencial.

    Args:
        max_attempts: Número máximo de intentos (incluye el primero)
        base_delay: Espera antes del segundo intento (segundos)
        multiplier: Factor de crecimiento entre esperas
        ceiling: Espera máxima entre intentos (segundos)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    ceiling: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts debe ser >= 1")
        if self.base_delay < 0 or self.ceiling < 0:
            raise ValueError("las esperas no pueden ser negativas")
        if self.multiplier < 1:
            raise ValueError("multiplier debe ser >= 1")

    def delay_for(self, attempt: int) -> float:
        """Espera tras el intento fallido número `attempt` (1-based)."""
        delay = self.base_delay * (self.multiplier ** max(0, attempt - 1))
        return min(delay, self.ceiling)

    def delays(self) -> Iterator[float]:
        """Esperas entre intentos consecutivos (max_attempts - 1 valores)."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_for(attempt)

    def retrying(self, exceptions: tuple = (Exception,)) -> AsyncRetrying:
        """
        Construye un AsyncRetrying de tenacity con esta política.

        Uso:
            async for attempt in policy.retrying((httpx.TransportError,)):
                with attempt:
                    ...
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay,
                exp_base=self.multiplier,
                max=self.ceiling,
            ),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
