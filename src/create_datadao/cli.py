"""Command line interface: ``create-datadao <command>``."""

import json
from pathlib import Path
from typing import Callable, Optional

import click
from dotenv import load_dotenv
from loguru import logger

from . import __version__
from .base.config import ToolkitSettings
from .base.network import NETWORKS
from .contribution import ContributionConfig, ContributionFlow, GoogleDriveClient
from .contribution.flow import STEP_LABELS, show_contribution
from .exceptions import DataDAOError, StateFileError, StepCancelled
from .steps import (
    StepContext,
    deploy_all,
    deploy_contracts,
    deploy_proof,
    deploy_refiner,
    deploy_ui,
    register_datadao,
    run_setup,
    show_status,
)
from .utils.chain import ChainClient
from .utils.log import configure_logging
from .utils.output import output
from .utils.wallet import WalletManager


class CliState:
    """Options shared by every command."""

    def __init__(self, project_dir: Path, settings: ToolkitSettings):
        self.project_dir = project_dir
        self.settings = settings

    def step_context(self) -> StepContext:
        try:
            return StepContext(self.project_dir, settings=self.settings)
        except StateFileError as e:
            raise click.ClickException(
                f"{e}\nMust run this command from your DataDAO project directory "
                f"(current: {self.project_dir.resolve()}). Run: create-datadao setup"
            )


def _run_step(step: Callable[[StepContext], object], state: CliState) -> object:
    """Run a step, turning toolkit errors into a non-zero exit."""
    ctx = state.step_context()
    try:
        return step(ctx)
    except StepCancelled as e:
        output.warning(str(e))
        return None
    except DataDAOError as e:
        logger.debug(f"{getattr(step, '__name__', step)} failed: {e!r}")
        output.info('This error has been recorded. Run "create-datadao status" to see recovery options.', force=True)
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    envvar="DATADAO_PROJECT_DIR",
    help="DataDAO project directory (holds deployment.json).",
)
@click.option("--network", type=click.Choice(sorted(NETWORKS)), default=None, help="Network profile.")
@click.option("--rpc-url", default=None, help="Override the network RPC endpoint.")
@click.option("--quick", is_flag=True, default=False, help="Skip confirmations and prefer automated paths.")
@click.option("--quiet", is_flag=True, default=False, help="Only print essential output.")
@click.option("--log-level", default="WARNING", show_default=True, help="Log level for stderr diagnostics.")
@click.option("--log-file", is_flag=True, default=False, help="Also write debug logs under <project>/logs.")
@click.pass_context
def main(
    ctx: click.Context,
    project_dir: Path,
    network: Optional[str],
    rpc_url: Optional[str],
    quick: bool,
    quiet: bool,
    log_level: str,
    log_file: bool,
) -> None:
    """Deploy and manage a Vana DataDAO."""
    load_dotenv(project_dir / ".env", override=False)
    configure_logging(log_level, project_dir / "logs" if log_file else None)
    output.set_quiet(quiet)

    settings = ToolkitSettings.from_env()
    if network:
        settings.network = network
    if rpc_url:
        settings.rpc_url = rpc_url
    if quick:
        settings.quick_mode = True
    ctx.obj = CliState(project_dir, settings)


@main.command()
@click.pass_obj
def setup(state: CliState) -> None:
    """Collect credentials and write the component .env files."""
    try:
        run_setup(state.project_dir, state.settings)
    except DataDAOError as e:
        raise click.ClickException(f"Setup failed: {e}")


@main.command()
@click.pass_obj
def deploy(state: CliState) -> None:
    """Run every remaining deployment step in tutorial order."""
    if not _run_step(deploy_all, state):
        output.numbered("You can resume deployment by running:", [
            "create-datadao status - Check current progress",
            "create-datadao deploy - Resume deployment",
        ], style="yellow")


@main.command("deploy-contracts")
@click.pass_obj
def deploy_contracts_cmd(state: CliState) -> None:
    """Deploy the DataDAO token, DLP proxy and vesting wallet."""
    _run_step(deploy_contracts, state)


@main.command("register-datadao")
@click.pass_obj
def register_datadao_cmd(state: CliState) -> None:
    """Register the DataDAO with the DLP registry."""
    _run_step(register_datadao, state)


@main.command("deploy-proof")
@click.pass_obj
def deploy_proof_cmd(state: CliState) -> None:
    """Configure and publish the proof of contribution."""
    _run_step(deploy_proof, state)


@main.command("deploy-refiner")
@click.pass_obj
def deploy_refiner_cmd(state: CliState) -> None:
    """Configure, publish and register the data refiner."""
    _run_step(deploy_refiner, state)


@main.command("deploy-ui")
@click.pass_obj
def deploy_ui_cmd(state: CliState) -> None:
    """Write the contributor UI environment."""
    _run_step(deploy_ui, state)


@main.command()
@click.option("--no-interactive", is_flag=True, default=False, help="Print the report without prompting.")
@click.pass_obj
def status(state: CliState, no_interactive: bool) -> None:
    """Show deployment progress and offer recovery."""
    _run_step(lambda ctx: show_status(ctx, interactive=not no_interactive), state)


@main.command()
@click.option(
    "--private-key",
    envvar="CONTRIBUTOR_PRIVATE_KEY",
    required=True,
    help="Contributor wallet private key.",
)
@click.option(
    "--google-token",
    envvar="GOOGLE_ACCESS_TOKEN",
    required=True,
    help="Google OAuth access token with Drive file scope.",
)
@click.option(
    "--ui-env",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="UI .env to read DataDAO settings from (default: <project>/ui/.env).",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON.")
@click.pass_obj
def contribute(state: CliState, private_key: str, google_token: str, ui_env: Optional[Path], as_json: bool) -> None:
    """Contribute Google profile data to the DataDAO."""
    config = ContributionConfig.from_ui_env(ui_env or state.project_dir / "ui" / ".env")
    try:
        wallet = WalletManager(private_key)
    except ValueError as e:
        raise click.ClickException(str(e))

    chain = ChainClient(state.settings.get_network(), wallet=wallet)
    with GoogleDriveClient(google_token) as google:
        flow = ContributionFlow(
            wallet,
            chain,
            google,
            config,
            on_step=lambda step: output.progress(f"Step {int(step)}/5: {STEP_LABELS[step]}"),
        )
        try:
            result = flow.run()
        except DataDAOError as e:
            show_contribution(flow.state)
            raise click.ClickException(f"Contribution failed: {e}")
        finally:
            flow.tee.close()
            flow.refinement.close()

    if as_json:
        click.echo(json.dumps(result.summary(), indent=2, default=str))
        return
    output.success("Contribution completed!")
    show_contribution(result)


if __name__ == "__main__":
    main()
