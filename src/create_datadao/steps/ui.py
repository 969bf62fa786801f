"""Contributor UI configuration: writes the web app's ``ui/.env``."""

import secrets
from typing import Dict

from ..base.network import ContractName
from ..base.state import Step
from ..exceptions import DataDAOError, MissingFieldsError
from ..utils.env_file import read_env, upsert_env_vars
from ..utils.output import output
from .common import StepContext

NEXTAUTH_URL = "http://localhost:3000"


def _show_missing_refiner_id(ctx: StepContext) -> None:
    registry = ctx.network.contract_address(ContractName.REFINER_REGISTRY)
    output.error("UI configuration failed: Missing refinerId")
    output.warning("The refiner needs to be registered on-chain to get a refinerId.")
    output.numbered("Option 1: Re-run refiner deployment (recommended)", [
        "create-datadao deploy-refiner",
        "This will guide you through the registration process",
    ], style="cyan")
    output.numbered("Option 2: Manual registration", [
        f"Visit the refiner registry: {ctx.network.address_url(registry)}?tab=read_write_proxy",
        'Find the "addRefiner" method',
        "Use the parameters from your refiner deployment",
        "Get the refinerId from the transaction logs",
        'Add it to deployment.json: "refinerId": <number>',
    ], style="cyan")


def build_ui_env(ctx: StepContext, existing: Dict[str, str]) -> Dict[str, str]:
    """
    Variables to merge into ``ui/.env``.

    Raises:
        DataDAOError: If Pinata or Google credentials are missing from deployment.json
    """
    deployment = ctx.state.data
    values = {
        "REFINER_ID": str(deployment["refinerId"]),
        "NEXT_PUBLIC_PROOF_URL": deployment["proofUrl"],
    }
    if not existing.get("NEXTAUTH_SECRET"):
        values["NEXTAUTH_SECRET"] = secrets.token_hex(32)
        output.success("Generated NEXTAUTH_SECRET for session encryption")
    values["NEXTAUTH_URL"] = NEXTAUTH_URL

    if ctx.state.proxy_address:
        values["NEXT_PUBLIC_DLP_CONTRACT_ADDRESS"] = ctx.state.proxy_address
    if ctx.state.token_address:
        values["NEXT_PUBLIC_TOKEN_CONTRACT_ADDRESS"] = ctx.state.token_address
    if deployment.get("dlpId"):
        values["NEXT_PUBLIC_DLP_ID"] = str(deployment["dlpId"])

    values["NEXT_PUBLIC_NETWORK_RPC_URL"] = ctx.network.rpc_url
    values["NEXT_PUBLIC_NETWORK_CHAIN_ID"] = str(ctx.network.chain_id)

    if not deployment.get("pinataApiKey") or not deployment.get("pinataApiSecret"):
        raise DataDAOError(
            "Missing required Pinata credentials in deployment.json. "
            "Pinata API key and secret are required for IPFS functionality."
        )
    values["PINATA_API_KEY"] = deployment["pinataApiKey"]
    values["PINATA_API_SECRET"] = deployment["pinataApiSecret"]

    if not deployment.get("googleClientId") or not deployment.get("googleClientSecret"):
        raise DataDAOError(
            "Missing required Google OAuth credentials in deployment.json. "
            "Google Client ID and secret are required for user authentication."
        )
    values["GOOGLE_CLIENT_ID"] = deployment["googleClientId"]
    values["GOOGLE_CLIENT_SECRET"] = deployment["googleClientSecret"]

    values["REFINEMENT_ENDPOINT"] = ctx.settings.refinement_endpoint
    return values


def deploy_ui(ctx: StepContext) -> bool:
    """
    Write the UI environment from deployment.json.

    Returns:
        True if the UI was configured by this call, False if it already was

    Raises:
        MissingFieldsError: When proofUrl or refinerId is missing
        DataDAOError: When credentials are missing
    """
    output.step("Configuring DataDAO UI")
    ctx.state.show_progress()

    try:
        try:
            ctx.state.validate_required_fields(["proofUrl", "refinerId"], step=Step.UI_CONFIGURED.value)
        except MissingFieldsError as e:
            if "refinerId" in e.fields:
                _show_missing_refiner_id(ctx)
            raise

        if ctx.state.is_completed(Step.UI_CONFIGURED):
            output.success("UI already configured!")
            output.info(f"Start the UI with: cd ui && npm run dev, then visit {NEXTAUTH_URL}", force=True)
            return False

        output.progress("Configuring UI environment...")
        ui_env = ctx.env_path("ui")
        upsert_env_vars(ui_env, build_ui_env(ctx, read_env(ui_env)))
        output.success("UI environment configured")
        ctx.state.mark_completed(Step.UI_CONFIGURED)
    except DataDAOError as e:
        output.error(f"UI configuration failed: {e}")
        ctx.state.record_error(Step.UI_CONFIGURED, e)
        output.warning('This error has been recorded. Run "create-datadao status" to see recovery options.')
        raise

    deployment = ctx.state.data
    output.success("DataDAO UI configuration completed!")
    output.numbered("To start the UI:", ["cd ui", "npm install", "npm run dev", f"Visit {NEXTAUTH_URL}"], style="blue")
    output.summary("Summary of your DataDAO", [
        ("DLP Name", deployment.get("dlpName")),
        ("Token", f"{deployment.get('tokenName')} ({deployment.get('tokenSymbol')})"),
        ("DLP ID", deployment.get("dlpId")),
        ("Refiner ID", deployment.get("refinerId")),
        ("Contract", ctx.state.proxy_address),
        ("Token Contract", ctx.state.token_address),
    ])
    return True
