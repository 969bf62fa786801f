"""
End-to-end deployment in tutorial order.

Each step is skipped when already complete. Contracts, registration and the
proof are prerequisites for everything after them, so declining one stops
the run; refiner and UI failures are reported and the run carries on.
"""

from typing import Callable, Dict

from loguru import logger

from ..base.state import Step
from ..exceptions import DataDAOError, StepCancelled
from ..utils import prompts
from ..utils.output import output
from .common import StepContext
from .contracts import deploy_contracts
from .proof import deploy_proof
from .refiner import deploy_refiner
from .register import register_datadao
from .ui import deploy_ui

STEP_RUNNERS: Dict[Step, Callable[[StepContext], object]] = {
    Step.CONTRACTS_DEPLOYED: deploy_contracts,
    Step.DATADAO_REGISTERED: register_datadao,
    Step.PROOF_CONFIGURED: deploy_proof,
    Step.REFINER_CONFIGURED: deploy_refiner,
    Step.UI_CONFIGURED: deploy_ui,
}

STEP_COMMANDS: Dict[Step, str] = {
    Step.CONTRACTS_DEPLOYED: "create-datadao deploy-contracts",
    Step.DATADAO_REGISTERED: "create-datadao register-datadao",
    Step.PROOF_CONFIGURED: "create-datadao deploy-proof",
    Step.REFINER_CONFIGURED: "create-datadao deploy-refiner",
    Step.UI_CONFIGURED: "create-datadao deploy-ui",
}


def _required_step(ctx: StepContext, step: Step, number: int, title: str, question: str) -> bool:
    """Run a prerequisite step; returns False when the user declined it."""
    if ctx.state.is_completed(step):
        output.success(f"Step {number}: {title} already done")
        return True

    output.step(f"Step {number}: {title}")
    if not ctx.quick_mode and not prompts.confirm(question, default=True):
        output.warning(f"Skipping. Run manually: {STEP_COMMANDS[step]}")
        return False
    STEP_RUNNERS[step](ctx)
    return True


def _optional_step(ctx: StepContext, step: Step, number: int, title: str, question: str) -> None:
    """Run a step whose failure should not stop the remaining deployment."""
    if ctx.state.is_completed(step):
        output.success(f"Step {number}: {title} already done")
        return

    output.step(f"Step {number}: {title}")
    if not ctx.quick_mode and not prompts.confirm(question, default=True):
        output.warning(f"Skipping for now. You can configure later with: {STEP_COMMANDS[step]}")
        return
    try:
        STEP_RUNNERS[step](ctx)
        output.success(f"{title} completed successfully!")
    except DataDAOError as e:
        logger.error(f"{step.value} failed during deploy: {e}")
        output.error(f"{title} failed: {e}")
        output.warning(f"You can try again later with: {STEP_COMMANDS[step]}")


def deploy_all(ctx: StepContext) -> bool:
    """
    Walk the remaining deployment steps.

    Returns:
        True when the run reached the end, False when the user stopped it early
    """
    output.banner("DataDAO Deployment Orchestrator", "Follows the official tutorial order for best results.")
    ctx.state.show_progress()

    try:
        if not _required_step(ctx, Step.CONTRACTS_DEPLOYED, 1, "Deploy Smart Contracts", "Deploy smart contracts now?"):
            return False
        if not _required_step(ctx, Step.DATADAO_REGISTERED, 2, "Register DataDAO", "Register DataDAO now?"):
            return False

        if not ctx.state.is_completed(Step.PROOF_CONFIGURED):
            output.warning("The proof step requires GitHub repositories to be set up first.")
        if not _required_step(
            ctx, Step.PROOF_CONFIGURED, 3, "Configure Proof of Contribution", "Configure proof of contribution now?"
        ):
            output.warning("Note: This is required for data validation.")
            return False
    except StepCancelled as e:
        output.warning(str(e))
        return False

    if ctx.state.is_completed(Step.REFINER_GIT_SETUP):
        _optional_step(ctx, Step.REFINER_CONFIGURED, 4, "Configure Data Refiner", "Configure data refiner now?")
    elif not ctx.state.is_completed(Step.REFINER_CONFIGURED):
        output.step("Step 4: Configure Data Refiner")
        output.warning("GitHub setup required first. Complete it with: create-datadao status")
        output.info(f"Then run: {STEP_COMMANDS[Step.REFINER_CONFIGURED]}", force=True)

    _optional_step(ctx, Step.UI_CONFIGURED, 5, "Configure UI", "Configure UI now?")

    output.success("DataDAO deployment completed!")
    output.summary("Your DataDAO is ready to use", [
        "Test the UI: cd ui && npm run dev",
        "Visit: http://localhost:3000",
        "Check status: create-datadao status",
    ])
    output.next_steps([
        "Test the data contribution flow",
        "Customize your validation logic",
        "Deploy to production when ready",
    ])
    return True
