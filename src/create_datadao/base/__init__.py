"""Core configuration and state for the DataDAO toolkit."""

from .config import ProjectConfig, ToolkitSettings
from .diagnostics import Diagnosis, ErrorCategory, diagnose
from .network import MAINNET, MOKSHA, ContractName, NetworkConfig, get_network
from .state import DeploymentStateManager, Step

__all__ = [
    "ProjectConfig",
    "ToolkitSettings",
    "Diagnosis",
    "ErrorCategory",
    "diagnose",
    "MAINNET",
    "MOKSHA",
    "ContractName",
    "NetworkConfig",
    "get_network",
    "DeploymentStateManager",
    "Step",
]
