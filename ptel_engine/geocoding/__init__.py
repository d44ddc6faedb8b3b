"""
Geocoding for PTEL infrastructures without usable coordinates.

Layers, lowest first: classifier and http helpers, typed registries (L1),
address gazetteers (L2-L5), circuit breaker, and the cascade on top.
"""
from .cascade import CONFIDENCE_BY_LEVEL, DEFAULT_STEPS, CascadeOrchestrator, CascadeStep
from .circuit_breaker import CircuitBreaker
from .classifier import Classification, ClassificationConfidence, InfrastructureType, classify
from .registries import RegistryMatch, lookup_registry

__all__ = [
    "CONFIDENCE_BY_LEVEL",
    "DEFAULT_STEPS",
    "CascadeOrchestrator",
    "CascadeStep",
    "CircuitBreaker",
    "Classification",
    "ClassificationConfidence",
    "InfrastructureType",
    "classify",
    "RegistryMatch",
    "lookup_registry",
]
