"""
Smart contract deployment.

Runs the template's hardhat deployment in ``contracts/`` and reads the
deployed addresses back out of its console output.
"""

import re
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..base.diagnostics import ErrorCategory, diagnose
from ..base.network import FAUCET_URL
from ..base.state import Step
from ..exceptions import CommandError, DataDAOError, InsufficientBalanceError
from ..utils.chain import BalanceCheck
from ..utils.output import output
from ..utils.shell import run
from .common import StepContext, show_diagnosis

_ADDRESS = r"(0x[a-fA-F0-9]{40})"
TOKEN_RE = re.compile(r"Token Address:\s*" + _ADDRESS)
PROXY_RE = re.compile(r"DataLiquidityPoolProxy\s+deployed\s+to:\s*" + _ADDRESS)
ALT_PROXY_RE = re.compile(r"Proxy deployed to:\s*" + _ADDRESS)
VESTING_RE = re.compile(r"Vesting Wallet Address:\s*" + _ADDRESS)


class ContractAddresses(BaseModel):
    """Addresses reported by the deployment tool."""

    token_address: Optional[str] = Field(default=None, description="DataDAO ERC-20 token")
    proxy_address: Optional[str] = Field(default=None, description="DataLiquidityPool proxy")
    vesting_address: Optional[str] = Field(default=None, description="Team vesting wallet")

    @property
    def complete(self) -> bool:
        return bool(self.token_address and self.proxy_address)

    @property
    def any_found(self) -> bool:
        return bool(self.token_address or self.proxy_address or self.vesting_address)


def _first(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_deployment_output(text: str) -> ContractAddresses:
    """Extract token, proxy and vesting addresses from deployment console output."""
    return ContractAddresses(
        token_address=_first(TOKEN_RE, text),
        proxy_address=_first(PROXY_RE, text) or _first(ALT_PROXY_RE, text),
        vesting_address=_first(VESTING_RE, text),
    )


def check_wallet_balance(ctx: StepContext, address: str, minimum: Optional[float] = None) -> BalanceCheck:
    """
    Print the deployer balance and stop if it cannot cover deployment.

    Raises:
        InsufficientBalanceError: If the balance is known and below ``minimum``
    """
    minimum = ctx.settings.min_deploy_balance if minimum is None else minimum
    check = ctx.chain().check_balance(minimum, address)

    if not check.known:
        output.warning("Could not check wallet balance, proceeding with deployment...")
        return check

    output.summary("Wallet Information", [("Address", address), ("Balance", f"{check.balance:.4f} VANA")])
    if not check.sufficient:
        output.error("Insufficient balance for deployment!")
        output.warning(f"Please fund your wallet with at least {minimum} VANA from {FAUCET_URL}")
        output.warning(f"Your wallet address: {address}")
        raise InsufficientBalanceError(check.balance, minimum, step=Step.CONTRACTS_DEPLOYED.value)

    output.success("Wallet has sufficient balance for deployment")
    return check


def _save_addresses(ctx: StepContext, addresses: ContractAddresses) -> None:
    ctx.state.mark_completed(
        Step.CONTRACTS_DEPLOYED,
        contracts={
            "tokenAddress": addresses.token_address,
            "proxyAddress": addresses.proxy_address,
            "vestingAddress": addresses.vesting_address,
        },
        tokenAddress=addresses.token_address,
        proxyAddress=addresses.proxy_address,
        **({"vestingAddress": addresses.vesting_address} if addresses.vesting_address else {}),
    )
    ctx.state.data.pop("partial", None)
    ctx.state.save()


def _save_partial(ctx: StepContext, addresses: ContractAddresses) -> None:
    fields = {"partial": True}
    if addresses.token_address:
        fields["tokenAddress"] = addresses.token_address
    if addresses.proxy_address:
        fields["proxyAddress"] = addresses.proxy_address
    if addresses.vesting_address:
        fields["vestingAddress"] = addresses.vesting_address
    ctx.state.update_deployment(**fields)


def deploy_contracts(ctx: StepContext) -> ContractAddresses:
    """
    Deploy the DataDAO token, DLP proxy and vesting wallet.

    Returns:
        The deployed addresses

    Raises:
        DataDAOError: On any failure, after printing recovery steps and
            recording the error in deployment.json
    """
    output.step("Deploying smart contracts", f"Target network: {ctx.network.display_name}")
    address = ctx.state.get("address")
    addresses = ContractAddresses()

    try:
        if address:
            check_wallet_balance(ctx, address)

        output.progress("Running hardhat deployment...")
        output.detail("This usually takes 2-5 minutes depending on network conditions")
        command = [
            "npx", "hardhat", "deploy",
            "--network", ctx.network.deploy_network,
            "--tags", "DLPDeploy",
        ]
        try:
            result = run(command, cwd=ctx.component_dir("contracts"), on_line=lambda line: output.detail(line))
        except CommandError as e:
            addresses = parse_deployment_output(e.output)
            output.error("Hardhat deployment failed")
            raise
        output.success("Hardhat deployment completed successfully!")

        addresses = parse_deployment_output(result.stdout)
        if not addresses.token_address:
            raise DataDAOError(
                "Failed to extract token address from deployment output. "
                "Check the deployment logs above for contract addresses."
            )
        if not addresses.proxy_address:
            raise DataDAOError(
                "Failed to extract DataLiquidityPool proxy address from deployment output. "
                "Check the deployment logs above for the proxy address."
            )

        _save_addresses(ctx, addresses)
    except DataDAOError as e:
        _report_failure(ctx, e, addresses, address)
        raise

    output.success("Contracts deployed successfully!")
    output.summary("Deployed Contracts", [
        ("Token Address", addresses.token_address),
        ("DLP Proxy Address", addresses.proxy_address),
        *([("Vesting Address", addresses.vesting_address)] if addresses.vesting_address else []),
    ])
    return addresses


def _report_failure(ctx: StepContext, error: DataDAOError, addresses: ContractAddresses, address: Optional[str]) -> None:
    logger.error(f"Contract deployment failed: {error}")
    output.error("Contract deployment failed:")
    output.detail(str(error))

    diagnosis = diagnose(error, "deploy")
    show_diagnosis(diagnosis)
    if address and diagnosis.category in (ErrorCategory.FUNDING, ErrorCategory.NONCE):
        output.info(f"Check your wallet: {ctx.network.address_url(address)}", force=True)

    if addresses.any_found:
        output.warning("Partial deployment detected. Saving progress...")
        _save_partial(ctx, addresses)
        output.success("Partial progress saved to deployment.json")

    ctx.state.record_error(Step.CONTRACTS_DEPLOYED, error)
