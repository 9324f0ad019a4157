"""Módulo de utilidades"""

from .backoff import BackoffPolicy
from .resources import ResourceGate, ResourceSample

__all__ = ["BackoffPolicy", "ResourceGate", "ResourceSample"]
