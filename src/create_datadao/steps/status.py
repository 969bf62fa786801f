"""
Project status and recovery.

``show_status`` syncs the step flags with the recorded data, prints a
per-step report and then either offers recovery actions (when errors are
recorded), resumes the guided setup (when steps remain) or prints next steps.
"""

import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..base.network import FAUCET_URL
from ..base.state import STEP_ORDER, Step
from ..exceptions import CommandError, DataDAOError, StepCancelled
from ..utils import prompts
from ..utils.output import output
from ..utils.shell import GitHubCLI
from .common import StepContext
from .orchestrator import STEP_COMMANDS, STEP_RUNNERS

PROOF_TEMPLATE = "vana-com/dlp-proof-template"
REFINER_TEMPLATE = "vana-com/vana-data-refinement-template"

STEP_NAMES: Dict[Step, str] = {
    Step.CONTRACTS_DEPLOYED: "Smart Contracts",
    Step.DATADAO_REGISTERED: "DataDAO Registration",
    Step.PROOF_CONFIGURED: "Proof of Contribution",
    Step.REFINER_CONFIGURED: "Data Refiner",
    Step.UI_CONFIGURED: "User Interface",
}

READY_STEPS = [
    "Start the UI: cd ui && npm run dev",
    "Visit: http://localhost:3000",
    "Test the contributor flow",
    "Note: If you run into any errors, please check the UI logs for more details",
]


def repo_slug(dlp_name: str) -> str:
    """Repository name prefix for a DataDAO: lower case, whitespace runs as dashes."""
    return re.sub(r"\s+", "-", dlp_name.lower())


def step_details(ctx: StepContext, step: Step) -> Optional[str]:
    data = ctx.state.data
    if step is Step.CONTRACTS_DEPLOYED:
        token, proxy = ctx.state.token_address, ctx.state.proxy_address
        if token and proxy:
            return f"Token: {token[:10]}... | Proxy: {proxy[:10]}..."
    elif step is Step.DATADAO_REGISTERED:
        if data.get("dlpId"):
            return f"DLP ID: {data['dlpId']}"
    elif step is Step.PROOF_CONFIGURED:
        if data.get("proofUrl"):
            return f"Published: {'GitHub' if 'github.com' in data['proofUrl'] else 'Custom'}"
    elif step is Step.REFINER_CONFIGURED:
        if data.get("refinerId") is not None:
            return f"Refiner ID: {data['refinerId']}"
    elif step is Step.UI_CONFIGURED:
        if ctx.state.state.get(Step.UI_CONFIGURED.value):
            return "Ready for development"
    return None


def step_report(ctx: StepContext) -> List[Tuple[Step, str, Optional[str]]]:
    """``(step, "Completed" | "Failed" | "Pending", details)`` for each tutorial step."""
    report = []
    for step in STEP_ORDER:
        if step.value in ctx.state.errors:
            status = "Failed"
        elif ctx.state.is_completed(step):
            status = "Completed"
        else:
            status = "Pending"
        details = step_details(ctx, step) if status != "Pending" else None
        report.append((step, status, details))
    return report


def next_steps(ctx: StepContext) -> List[str]:
    step = ctx.state.next_incomplete_step()
    return [f"Run next: {STEP_COMMANDS[step]}"] if step else []


_STATUS_STYLES = {"Completed": ("green", "✅"), "Failed": ("red", "❌"), "Pending": ("dim", "⏸️")}


def _print_report(ctx: StepContext) -> None:
    output.console.print("[bold blue]📋 Deployment Progress:[/bold blue]")
    for step, status, details in step_report(ctx):
        style, marker = _STATUS_STYLES[status]
        output.console.print(f"  [{style}]{marker} {STEP_NAMES[step]} - {status}[/{style}]")
        if details:
            output.detail(details)
    output.console.print()


# ---------- Recovery actions ----------

def fix_configuration(ctx: StepContext) -> List[str]:
    """Prompt for whatever ``validate_configuration`` reports missing; returns the issues found."""
    issues = ctx.state.validate_configuration()
    if not issues:
        output.success("Configuration looks good!")
        return issues

    output.warning("Configuration issues found:")
    output.bullets(issues, style="yellow")
    if not prompts.confirm("Would you like to fix these issues now?", default=True):
        return issues

    for issue in issues:
        if "Pinata" in issue:
            _update_pinata(ctx)
        elif "Google OAuth" in issue:
            _update_google(ctx)
        elif issue.startswith("Missing ") and " " not in issue[len("Missing "):]:
            field = issue[len("Missing "):]
            if field == "privateKey":
                output.warning("Set DEPLOYER_PRIVATE_KEY in contracts/.env or re-run: create-datadao setup")
                continue
            value = prompts.ask_text(f"Enter {field}:", validate=prompts.required(f"{field} is required"))
            ctx.state.update_deployment(**{field: value})
            output.success(f"{field} updated")
        else:
            output.warning(f"Fix manually: {issue}")
    return issues


def _update_pinata(ctx: StepContext) -> None:
    api_key = prompts.ask_text(
        "Pinata API Key:", default=ctx.state.get("pinataApiKey"), validate=prompts.required("API Key is required")
    )
    api_secret = prompts.ask_secret("Pinata API Secret:", validate=prompts.required("API Secret is required"))
    ctx.state.update_deployment(pinataApiKey=api_key, pinataApiSecret=api_secret)
    output.success("Pinata credentials updated")


def _update_google(ctx: StepContext) -> None:
    client_id = prompts.ask_text(
        "Google OAuth Client ID:",
        default=ctx.state.get("googleClientId"),
        validate=prompts.required("Client ID is required"),
    )
    client_secret = prompts.ask_secret(
        "Google OAuth Client Secret:", validate=prompts.required("Client Secret is required")
    )
    ctx.state.update_deployment(googleClientId=client_id, googleClientSecret=client_secret)
    output.success("Google OAuth credentials updated")


def masked_config(ctx: StepContext) -> List[Tuple[str, str]]:
    pinata = ctx.state.get("pinataApiKey")
    google = ctx.state.get("googleClientId")
    return [
        ("Pinata API Key", f"***{pinata[-4:]}" if pinata else "Not set"),
        ("Google Client ID", f"{google[:20]}..." if google else "Missing (required)"),
        ("Wallet Address", ctx.state.get("address") or "Not set"),
    ]


def update_credentials(ctx: StepContext) -> None:
    choice = prompts.select("Which credentials would you like to update?", [
        ("Pinata (IPFS storage)", "pinata"),
        ("Google OAuth", "google"),
        ("View current config", "view"),
    ])
    if choice == "pinata":
        _update_pinata(ctx)
    elif choice == "google":
        _update_google(ctx)
    else:
        output.summary("Current Configuration", masked_config(ctx))


def show_detailed_errors(ctx: StepContext) -> None:
    if not ctx.state.errors:
        output.info("No errors recorded; all pending steps are waiting to be executed", force=True)
        return

    output.step("Detailed Error Information")
    for step, error in ctx.state.errors.items():
        output.error(step)
        timestamp = error.get("timestamp")
        if timestamp:
            try:
                timestamp = datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
            except ValueError:
                pass
        output.detail(f"Time: {timestamp}")
        output.detail(f"Error: {error.get('message')}")


def retry_failed_steps(ctx: StepContext) -> Dict[str, bool]:
    """
    Re-run every step with a recorded error, in tutorial order.

    Returns:
        Step name mapped to whether the retry succeeded
    """
    results: Dict[str, bool] = {}
    for step in STEP_ORDER:
        if step.value not in ctx.state.errors:
            continue
        output.step(f"Retrying {STEP_NAMES[step]}", "Attempting automatic recovery...")
        ctx.state.clear_error(step)
        try:
            STEP_RUNNERS[step](ctx)
        except StepCancelled as e:
            output.warning(str(e))
            results[step.value] = False
            continue
        except DataDAOError as e:
            output.error(f"{step.value} failed again: {e}")
            ctx.state.record_error(step, e)
            results[step.value] = False
            continue
        output.success(f"{step.value} completed successfully")
        results[step.value] = True
    return results


def show_recovery_menu(ctx: StepContext) -> Optional[str]:
    suggestions = ctx.state.recovery_suggestions()
    if not suggestions:
        output.info("No critical errors detected in completed steps.", force=True)
        output.detail("Note: This only checks for errors, not incomplete steps.")
        return None

    output.warning("Issues detected in your DataDAO setup:")
    for suggestion in suggestions:
        output.error(f"{suggestion['step']}: {suggestion['issue']}")
        output.bullets(suggestion["solutions"])

    action = prompts.select("What would you like to do?", [
        ("Retry failed steps automatically", "retry"),
        ("Update configuration", "config"),
        ("Show detailed errors", "errors"),
        ("Exit (fix manually)", "exit"),
    ])
    if action == "retry":
        retry_failed_steps(ctx)
    elif action == "config":
        fix_configuration(ctx)
    elif action == "errors":
        show_detailed_errors(ctx)
    return action


# ---------- Guided setup ----------

def setup_github_repos(ctx: StepContext, gh: Optional[GitHubCLI] = None) -> bool:
    """
    Create the proof and refiner repositories from the Vana templates.

    Falls back to manual instructions when the GitHub CLI is missing or not
    authenticated.

    Returns:
        True when both repository URLs are recorded
    """
    gh = gh or GitHubCLI()
    username = ctx.state.get("githubUsername")
    if not username:
        username = prompts.ask_text("GitHub username:", validate=prompts.required("GitHub username is required"))
        ctx.state.update_deployment(githubUsername=username)

    if not (gh.available() and gh.authenticated()):
        return False

    dlp_name = ctx.state.get("dlpName")
    slug = repo_slug(dlp_name)
    repos = [
        (f"{slug}-proof", PROOF_TEMPLATE, f"Proof of Contribution for {dlp_name} DataDAO"),
        (f"{slug}-refiner", REFINER_TEMPLATE, f"Data Refinement for {dlp_name} DataDAO"),
    ]

    output.progress("Creating repositories automatically...")
    urls = []
    for name, template, description in repos:
        url = f"https://github.com/{username}/{name}"
        try:
            if gh.repo_exists(username, name):
                output.success(f"Using existing repository: {name}")
            else:
                gh.create_from_template(name, template, description)
                if not gh.enable_actions(username, name):
                    output.warning(f"Could not enable GitHub Actions for {name}; enable it in the repository settings")
                output.success(f"Created: {name}")
            urls.append(url)
        except CommandError as e:
            logger.warning(f"Repository creation failed for {name}: {e}")
            output.warning(f"Failed to create {name}, will need manual setup")

    if len(urls) < 2:
        return False
    ctx.state.update_deployment(proofRepo=urls[0], refinerRepo=urls[1])
    output.success("GitHub repositories configured")
    return True


def _show_manual_github_setup() -> None:
    output.warning("Automated GitHub setup not available")
    output.numbered("Please set up repositories manually and update deployment.json:", [
        "Create proof repository from: "
        "https://github.com/new?template_name=dlp-proof-template&template_owner=vana-com&visibility=public",
        "Create refiner repository from: "
        "https://github.com/new?template_name=vana-data-refinement-template&template_owner=vana-com&visibility=public",
        'Update deployment.json with the new repository URLs under "proofRepo" and "refinerRepo"',
    ], style="cyan")


def _run_guided(ctx: StepContext, step: Step, title: str, description: str) -> bool:
    if ctx.state.is_completed(step):
        return True
    output.step(title, description)
    try:
        STEP_RUNNERS[step](ctx)
    except StepCancelled as e:
        output.warning(str(e))
        return False
    except DataDAOError as e:
        output.error(f"{STEP_NAMES[step]} failed: {e}")
        if step.value not in ctx.state.errors:
            ctx.state.record_error(step, e)
        return False
    output.success(f"{STEP_NAMES[step]} completed!")
    return True


def resume_guided_setup(ctx: StepContext) -> bool:
    """
    Continue the deployment from the first incomplete step.

    Returns:
        True when every step finished
    """
    if not ctx.state.is_completed(Step.CONTRACTS_DEPLOYED):
        address = ctx.state.get("address")
        if address:
            check = ctx.chain().check_balance(ctx.settings.min_deploy_balance, address)
            if check.known and not check.sufficient:
                output.warning("Your wallet needs VANA tokens to deploy contracts")
                output.info(f"Please fund your wallet at: {FAUCET_URL} ({address})", force=True)
                if not prompts.confirm("Have you funded your wallet?", default=False):
                    output.info("Resume setup anytime by running: create-datadao status", force=True)
                    return False

    if not _run_guided(ctx, Step.CONTRACTS_DEPLOYED, "Step 1: Deploy Smart Contracts", "This may take a few minutes"):
        return False
    if not _run_guided(ctx, Step.DATADAO_REGISTERED, "Step 2: Register DataDAO", "Registering on Vana network..."):
        return False

    if not ctx.state.get("proofRepo") or not ctx.state.get("refinerRepo"):
        output.step("Step 3: GitHub Repository Setup", "Creating repositories...")
        if not setup_github_repos(ctx):
            _show_manual_github_setup()
            if not prompts.confirm("Skip GitHub setup for now and continue?", default=True):
                output.info("Please set up GitHub repositories and run create-datadao status again", force=True)
                return False

    guided = [
        (Step.PROOF_CONFIGURED, "Step 4: Deploy Proof System", "Setting up proof of contribution..."),
        (Step.REFINER_CONFIGURED, "Step 5: Deploy Data Refiner", "Setting up data refinement..."),
        (Step.UI_CONFIGURED, "Step 6: Configure UI", "Setting up user interface..."),
    ]
    for step, title, description in guided:
        if not _run_guided(ctx, step, title, description):
            return False

    output.success("Your DataDAO is fully configured and ready to use!")
    output.next_steps(READY_STEPS)
    return True


def show_status(ctx: StepContext, interactive: bool = True) -> None:
    synced = ctx.state.sync_state_from_data()
    if synced:
        output.progress("Syncing deployment state...")
        for key in synced:
            output.success(f"Detected completed: {key}")

    data = ctx.state.data
    output.step("DataDAO Project Status", f"Project: {data.get('dlpName') or 'Unknown'}")
    if data.get("dlpName"):
        output.summary("Project Information", [
            ("DataDAO Name", data.get("dlpName")),
            ("Token", f"{data.get('tokenName')} ({data.get('tokenSymbol')})"),
            ("Wallet Address", data.get("address")),
            ("Network", ctx.network.display_name),
        ])
    _print_report(ctx)

    incomplete = ctx.state.next_incomplete_step() is not None
    if not interactive:
        if incomplete:
            output.next_steps(next_steps(ctx))
        return

    if ctx.state.errors:
        output.warning("Issues detected in your setup")
        action = prompts.select("What would you like to do?", [
            ("Fix configuration issues", "fix"),
            ("Show recovery options", "recover"),
            ("Update credentials", "credentials"),
            ("View detailed errors", "errors"),
            ("Continue anyway", "continue"),
        ])
        if action == "fix":
            fix_configuration(ctx)
        elif action == "recover":
            show_recovery_menu(ctx)
        elif action == "credentials":
            update_credentials(ctx)
        elif action == "errors":
            show_detailed_errors(ctx)
    elif incomplete:
        output.info("Resuming guided setup from where you left off...", force=True)
        resume_guided_setup(ctx)
    else:
        output.success("Your DataDAO is fully configured and ready to use!")
        output.next_steps(READY_STEPS)
