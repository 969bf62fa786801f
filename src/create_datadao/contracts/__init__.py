"""Contract ABIs used by the DataDAO toolkit."""

from .abis import (
    DATA_REGISTRY_ABI,
    DLP_ABI,
    DLP_REGISTRY_ABI,
    QUERY_ENGINE_ABI,
    REFINER_REGISTRY_ABI,
    TEE_POOL_ABI,
)

__all__ = [
    "DATA_REGISTRY_ABI",
    "DLP_ABI",
    "DLP_REGISTRY_ABI",
    "QUERY_ENGINE_ABI",
    "REFINER_REGISTRY_ABI",
    "TEE_POOL_ABI",
]
