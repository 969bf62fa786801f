"""
Proof-of-contribution deployment.

Writes the DataDAO's dlpId into the proof template, pushes it to the
user's GitHub repository (whose release workflow builds the proof image),
records the release artifact URL and publishes it on the DLP contract with
``updateProofInstruction``.
"""

import re
from pathlib import Path
from typing import Optional

from loguru import logger

from ..base.state import Step
from ..contracts import DLP_ABI
from ..exceptions import DataDAOError
from ..utils import prompts
from ..utils.env_file import upsert_env_var
from ..utils.output import output
from .common import StepContext, extract_repo_name, prepare_component_repo, push_component

PROOF_CONFIG_PATH = Path("proof") / "my_proof" / "__main__.py"

# Checked in order; the first pattern present is rewritten everywhere it occurs.
_DLP_ID_PATTERNS = (
    (re.compile(r'"dlp_id"\s*:\s*\d+'), '"dlp_id": {}'),
    (re.compile(r"'dlp_id'\s*:\s*\d+"), "'dlp_id': {}"),
    (re.compile(r"dlp_id\s*=\s*\d+"), "dlp_id = {}"),
    (re.compile(r"DLP_ID\s*=\s*\d+"), "DLP_ID = {}"),
)

_release_url = prompts.url_with_suffix(
    ".tar.gz",
    "URL must point to a .tar.gz file from GitHub releases",
    hosts=("github.com", "githubusercontent.com"),
)
_tarball_url = prompts.url_with_suffix(".tar.gz", "URL must point to a .tar.gz file")


def rewrite_dlp_id(source: str, dlp_id: int) -> Optional[str]:
    """
    Replace the dlp id literal in proof source code.

    Returns:
        Updated source, or None if no known pattern is present
    """
    for pattern, template in _DLP_ID_PATTERNS:
        if pattern.search(source):
            return pattern.sub(template.format(dlp_id), source)
    return None


def update_dlp_id_in_config(project_root: Path, dlp_id: int) -> bool:
    output.progress("Updating proof configuration...")
    config_path = project_root / PROOF_CONFIG_PATH
    if not config_path.exists():
        output.warning("Proof config file not found, but continuing...")
        return False

    updated = rewrite_dlp_id(config_path.read_text(), dlp_id)
    if updated is None:
        output.warning("Could not find dlp_id pattern in config file.")
        output.warning(f"Please manually update the dlp_id value in '{config_path}' to: {dlp_id}")
        return False

    config_path.write_text(updated)
    output.success("Proof configuration updated with dlpId")
    return True


def _automatic_deployment(ctx: StepContext, proof_dir: Path, repo_url: str) -> str:
    if not push_component(proof_dir):
        raise DataDAOError("Failed to push proof to GitHub", step=Step.PROOF_CONFIGURED.value)

    output.progress("GitHub Actions is now building your proof...")
    output.detail("This usually takes 2-3 minutes.")
    output.warning("IMPORTANT: Wait for the NEW build to complete! Don't use an existing/old release.")
    output.next_steps([
        f"Visit: {repo_url}/releases",
        "WAIT for a new release to appear (with your latest changes)",
        "Copy the .tar.gz URL from the newest release",
        "Return here and enter the URL below",
    ])
    return prompts.ask_text("Enter the .tar.gz URL from the NEWEST GitHub Release:", validate=_release_url)


def _manual_deployment(repo_url: str) -> str:
    output.numbered("Manual deployment instructions:", [
        "Push your changes to GitHub: git push -u origin main",
        f"Monitor the build: {repo_url}/actions",
        "Wait for the NEW build to complete, don't use an existing/old release",
        "Get the artifact URL from the newest release in the Releases section",
    ])
    return prompts.ask_text("Enter the .tar.gz URL from the NEWEST release when ready:", validate=_tarball_url)


def update_proof_instruction(ctx: StepContext, proof_url: str) -> bool:
    """
    Publish the proof URL on the DLP contract.

    Failures are reported with manual instructions and do not stop deployment.
    """
    output.progress("Updating proof instruction on DLP contract...")
    proxy = ctx.state.proxy_address
    try:
        if not proxy:
            raise DataDAOError("DLP proxy address not found in deployment configuration")
        output.detail(f"DLP Contract: {proxy}")
        output.detail(f"Proof URL: {proof_url}")
        result = ctx.signing_chain().transact(proxy, DLP_ABI, "updateProofInstruction", proof_url)
    except Exception as e:
        logger.warning(f"updateProofInstruction failed: {e}")
        output.error(f"Failed to update proof instruction on contract: {e}")
        output.numbered("You can update it manually later:", [
            f"Go to: {ctx.network.write_proxy_url(proxy or '<dlp-proxy-address>')}",
            "Connect your wallet",
            "Find 'updateProofInstruction' function",
            f"Enter proof URL: {proof_url}",
            "Submit transaction",
        ], style="yellow")
        output.warning("Continuing with deployment despite contract update failure...")
        return False

    output.success("Proof instruction updated on DLP contract successfully!")
    output.detail(f"Transaction: {ctx.network.tx_url(result['tx_hash'])}")
    ctx.state.update_state(**{Step.PROOF_INSTRUCTION_UPDATED.value: True})
    return True


def deploy_proof(ctx: StepContext) -> Optional[str]:
    """
    Configure and publish the proof of contribution.

    Returns:
        The proof URL, or None when the user skipped publication
    """
    output.step("Preparing Proof of Contribution for deployment")
    try:
        if not ctx.state.get("dlpId"):
            raise DataDAOError('dlpId not found in deployment.json. Run "create-datadao register-datadao" first.')
        if not ctx.state.get("proofRepo"):
            raise DataDAOError("proofRepo not found in deployment.json. Run GitHub setup first (create-datadao status).")

        repo_url = ctx.state.get("proofRepo")
        if not extract_repo_name(repo_url):
            raise DataDAOError(f"Invalid proof repository URL format: {repo_url}")

        dlp_id = int(ctx.state.get("dlpId"))
        update_dlp_id_in_config(ctx.project_root, dlp_id)

        proof_dir = ctx.component_dir("proof")
        if prepare_component_repo(proof_dir, repo_url, f"Update dlpId to {dlp_id}"):
            ctx.state.update_state(**{Step.PROOF_GIT_SETUP.value: True})

        choice = prompts.select("How would you like to deploy your proof?", [
            ("Automatic: Push to GitHub and wait for build", "auto"),
            ("Manual: I'll handle the GitHub workflow myself", "manual"),
            ("Skip: Configure later", "skip"),
        ])

        if choice == "skip":
            output.warning("Proof deployment skipped.")
            output.info("You can complete this later by running: create-datadao deploy-proof")
            ctx.state.update_state(**{Step.PROOF_CONFIGURED.value: True, Step.PROOF_PUBLISHED.value: False})
            return None

        if choice == "auto":
            proof_url = _automatic_deployment(ctx, proof_dir, repo_url)
        else:
            proof_url = _manual_deployment(repo_url)

        ctx.state.update_deployment(proofUrl=proof_url)
        ctx.state.mark_completed(Step.PROOF_CONFIGURED)
        ctx.state.update_state(**{Step.PROOF_PUBLISHED.value: True})
    except DataDAOError as e:
        ctx.state.record_error(Step.PROOF_CONFIGURED, e)
        raise

    ui_env = ctx.env_path("ui")
    if ui_env.exists():
        upsert_env_var(ui_env, "NEXT_PUBLIC_PROOF_URL", proof_url)
        output.success("UI configuration updated with proof URL")

    update_proof_instruction(ctx, proof_url)

    output.success("Proof of Contribution configured successfully!")
    output.summary("Proof Deployment", [("Proof URL", proof_url), ("Repository", ctx.state.get("proofRepo"))])
    return proof_url
