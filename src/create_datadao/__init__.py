"""
create-datadao: deployment toolkit for Vana DataDAOs.

Deploys the DataDAO contracts, registers the DataDAO on-chain, publishes the
proof of contribution and data refiner, configures the contributor UI and
runs the data contribution flow.
"""

__version__ = "0.1.0"

from .base.state import DeploymentStateManager, Step
from .exceptions import DataDAOError

__all__ = ["__version__", "DataDAOError", "DeploymentStateManager", "Step"]
