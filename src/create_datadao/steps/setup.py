"""
Project setup: collects the DataDAO identity and credentials, writes the
component ``.env`` files and creates ``deployment.json``.
"""

from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from ..base.config import ProjectConfig, ToolkitSettings
from ..base.state import DeploymentStateManager
from ..exceptions import DataDAOError
from ..utils import prompts
from ..utils.env_file import backup_file, write_env_file
from ..utils.output import output
from ..utils.wallet import WalletManager


def _derive_wallet(private_key: str) -> Optional[WalletManager]:
    try:
        return WalletManager(private_key)
    except ValueError as e:
        logger.warning(f"Could not derive wallet from private key: {e}")
        return None


def prompt_for_config(settings: Optional[ToolkitSettings] = None) -> ProjectConfig:
    """Ask for every setup value; address and public key default to the key's own."""
    settings = settings or ToolkitSettings()
    output.info("Please provide the following information:", force=True)

    dlp_name = prompts.ask_text("DataDAO Name:", default="QuickstartDAO", validate=prompts.required("Name is required"))
    token_name = prompts.ask_text("Token Name:", default="QuickToken", validate=prompts.required("Token name is required"))
    token_symbol = prompts.ask_text(
        "Token Symbol:", default="QTKN", validate=prompts.required("Token symbol is required")
    )

    def _private_key_problem(value: str) -> Optional[str]:
        if not value:
            return "Private key is required"
        if not value.startswith("0x"):
            return "Private key must start with 0x"
        return None

    private_key = prompts.ask_secret("Wallet Private Key (used for deployment):", validate=_private_key_problem)
    wallet = _derive_wallet(private_key)

    address = prompts.ask_text(
        "Wallet Address:",
        default=wallet.address if wallet else None,
        validate=prompts.hex_prefixed("Address must start with 0x"),
    )
    public_key = prompts.ask_text(
        "Wallet Public Key:",
        default=wallet.public_key if wallet else None,
        validate=prompts.hex_prefixed("Public key must start with 0x"),
    )

    pinata_api_key = prompts.ask_text("Pinata API Key:", validate=prompts.required("Pinata API Key is required"))
    pinata_api_secret = prompts.ask_secret(
        "Pinata API Secret:", validate=prompts.required("Pinata API Secret is required")
    )
    google_client_id = prompts.ask_text(
        "Google Client ID (for UI):", validate=prompts.required("Google Client ID is required")
    )
    google_client_secret = prompts.ask_secret(
        "Google Client Secret (for UI):", validate=prompts.required("Google Client Secret is required")
    )

    try:
        return ProjectConfig(
            dlp_name=dlp_name,
            token_name=token_name,
            token_symbol=token_symbol,
            private_key=private_key,
            address=address,
            public_key=public_key,
            pinata_api_key=pinata_api_key,
            pinata_api_secret=pinata_api_secret,
            google_client_id=google_client_id,
            google_client_secret=google_client_secret,
            refinement_endpoint=settings.refinement_endpoint,
        )
    except ValidationError as e:
        raise DataDAOError(f"Invalid setup values: {e}")


def generate_env_files(project_root: Path, config: ProjectConfig) -> DeploymentStateManager:
    """
    Write ``contracts/.env``, ``refiner/.env`` and ``ui/.env`` and create deployment.json.

    Existing ``.env.example`` files are copied to ``.env.example.backup``.
    """
    output.progress("Generating environment files...")
    project_root = Path(project_root)

    write_env_file(project_root / "contracts" / ".env", config.contracts_env())
    write_env_file(
        project_root / "refiner" / ".env",
        config.refiner_env(),
        header="Will be populated with refinement encryption key after DataDAO registration",
    )
    write_env_file(
        project_root / "ui" / ".env",
        config.ui_env(),
        header="Will be populated with additional values after deployment",
    )

    for component in ("contracts", "ui"):
        if backup_file(project_root / component / ".env.example"):
            logger.debug(f"Backed up {component}/.env.example")

    state = DeploymentStateManager.create(project_root, config.to_deployment())
    output.success("Environment files generated successfully.")
    return state


def run_setup(project_root: Path, settings: Optional[ToolkitSettings] = None) -> DeploymentStateManager:
    output.step("Setting up your DataDAO project")
    config = prompt_for_config(settings)
    state = generate_env_files(project_root, config)

    output.success("Setup completed successfully!")
    output.next_steps([
        "Deploy your contracts: create-datadao deploy-contracts",
        "Register your DataDAO on-chain: create-datadao register-datadao",
    ])
    return state
