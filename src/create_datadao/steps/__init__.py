"""Deployment steps, one module per CLI command."""

from .common import StepContext
from .contracts import deploy_contracts
from .orchestrator import deploy_all
from .proof import deploy_proof
from .refiner import deploy_refiner
from .register import register_datadao
from .setup import run_setup
from .status import show_status
from .ui import deploy_ui

__all__ = [
    'StepContext',
    'deploy_all',
    'deploy_contracts',
    'deploy_proof',
    'deploy_refiner',
    'deploy_ui',
    'register_datadao',
    'run_setup',
    'show_status',
]
