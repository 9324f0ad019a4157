"""
Control grueso de recursos (RAM/CPU) entre fases del render.

Es solo consultivo: si no hay capacidad se espera con backoff y, al agotar
los intentos, se continúa igualmente con un warning. Nunca bloquea
indefinidamente.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import psutil

from .backoff import BackoffPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceSample:
    """Lectura puntual de recursos del sistema."""

    free_ram_mb: float
    cpu_percent: float


def sample_resources(cpu_interval: Optional[float] = 0.2) -> ResourceSample:
    """
    Lee RAM disponible y uso de CPU con psutil.

    Con cpu_interval=None la lectura no bloquea: psutil compara contra la
    llamada anterior.
    """
    memory = psutil.virtual_memory()
    cpu = psutil.cpu_percent(interval=cpu_interval)
    return ResourceSample(free_ram_mb=memory.available / (1024 * 1024), cpu_percent=cpu)


def sample_resources_now() -> ResourceSample:
    return sample_resources(cpu_interval=None)


class ResourceGate:
    """Compuerta consultiva de admisión por recursos."""

    def __init__(
        self,
        policy: BackoffPolicy,
        min_free_ram_mb: float = 512.0,
        max_cpu_percent: float = 90.0,
        sampler: Callable[[], ResourceSample] = sample_resources,
        instant_sampler: Callable[[], ResourceSample] = sample_resources_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy
        self.min_free_ram_mb = min_free_ram_mb
        self.max_cpu_percent = max_cpu_percent
        self._sampler = sampler
        self._instant_sampler = instant_sampler
        self._sleep = sleep

    def has_capacity(self, sample: ResourceSample) -> bool:
        return (
            sample.free_ram_mb >= self.min_free_ram_mb
            and sample.cpu_percent <= self.max_cpu_percent
        )

    async def _sample(self) -> ResourceSample:
        return await asyncio.to_thread(self._sampler)

    async def wait_for_capacity(self, phase: str) -> bool:
        """
        Espera hasta que haya recursos para la fase indicada.

        Returns:
            True si hubo capacidad, False si se agotaron los intentos
            y se continúa igualmente.
        """
        sample = await self._sample()
        if self.has_capacity(sample):
            return True

        for delay in self.policy.delays():
            logger.info(
                f"Recursos bajos antes de '{phase}' "
                f"(RAM libre {sample.free_ram_mb:.0f} MB, CPU {sample.cpu_percent:.0f}%). "
                f"Esperando {delay:.1f}s"
            )
            await self._sleep(delay)
            sample = await self._sample()
            if self.has_capacity(sample):
                return True

        logger.warning(
            f"Recursos siguen bajos antes de '{phase}' "
            f"(RAM libre {sample.free_ram_mb:.0f} MB, CPU {sample.cpu_percent:.0f}%). Continuando igualmente"
        )
        return False

    def check_now(self, phase: str) -> Optional[ResourceSample]:
        """
        Chequeo puntual sin espera; registra un warning si faltan recursos.
        Se llama desde el callback de avance, así que usa la lectura que no
        bloquea el event loop.
        """
        try:
            sample = self._instant_sampler()
        except Exception as e:
            logger.debug(f"No se pudo leer recursos durante '{phase}': {e}")
            return None
        if not self.has_capacity(sample):
            logger.warning(
                f"Recursos bajos durante '{phase}': "
                f"RAM libre {sample.free_ram_mb:.0f} MB, CPU {sample.cpu_percent:.0f}%"
            )
        return sample
