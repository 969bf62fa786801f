"""
DataDAO registration on the Vana DLP registry.

Registration turns the deployed DataLiquidityPool proxy into a DataDAO with a
numeric ``dlpId``. It can be done by the toolkit (a ``registerDlp``
transaction carrying the 1 VANA fee) or by hand through the explorer, after
which the toolkit polls the registry for the new id.
"""

import time
from typing import Optional, Tuple

from loguru import logger
from web3 import Web3

from ..base.diagnostics import ErrorCategory, diagnose
from ..base.network import ContractName
from ..base.state import Step
from ..contracts import DLP_REGISTRY_ABI
from ..exceptions import DataDAOError, InsufficientBalanceError, RegistrationError, StepCancelled
from ..utils import prompts
from ..utils.chain import decode_error_signature, extract_error_selector
from ..utils.output import output
from .common import StepContext, show_diagnosis

REGISTRATION_FEE_VANA = 1


class DataDAORegistrar:
    """Registers the project's DataDAO and records its dlpId."""

    def __init__(self, ctx: StepContext):
        self.ctx = ctx
        self.registry = ctx.network.contract_address(ContractName.DLP_REGISTRY)

    @property
    def deployment(self):
        return self.ctx.state.data

    @property
    def proxy_address(self) -> str:
        address = self.ctx.state.proxy_address
        if not address:
            raise RegistrationError("No DLP proxy address found. Please deploy contracts first.")
        return address

    # ---------- Registry reads ----------

    def get_dlp_id(self, dlp_address: Optional[str] = None) -> int:
        """dlpId assigned to a DLP address, 0 when unregistered or unreadable."""
        try:
            return int(self.ctx.chain().call(self.registry, DLP_REGISTRY_ABI, "dlpIds", dlp_address or self.proxy_address))
        except RegistrationError:
            raise
        except Exception as e:
            output.error(f"Error querying dlpId: {e}")
            return 0

    def check_name_availability(self, name: str) -> Tuple[bool, Optional[int]]:
        """
        Check whether a DataDAO name is free.

        Returns:
            ``(available, existing_id)``; lookup failures count as available
        """
        try:
            existing = int(self.ctx.chain().call(self.registry, DLP_REGISTRY_ABI, "dlpNameToId", name))
        except Exception as e:
            output.warning(f"Could not check name availability: {e}")
            return True, None
        return (existing == 0), (existing or None)

    def poll_dlp_id(self, attempts: int = 10) -> int:
        interval = self.ctx.settings.registration_poll_interval
        for attempt in range(1, attempts + 1):
            dlp_id = self.get_dlp_id()
            if dlp_id > 0:
                return dlp_id
            output.detail(f"Attempt {attempt}/{attempts}: Waiting for registration to be processed...")
            if attempt < attempts:
                time.sleep(interval)
        return 0

    # ---------- Persistence ----------

    def _save(self, dlp_id: int) -> None:
        self.ctx.state.mark_completed(Step.DATADAO_REGISTERED, dlpId=dlp_id)
        output.info(f"Saved dlpId {dlp_id} to {self.ctx.state.path}", force=True)

    # ---------- Automated path ----------

    def registration_params(self) -> dict:
        owner = self.deployment.get("address")
        return {
            "dlpAddress": Web3.to_checksum_address(self.proxy_address),
            "ownerAddress": Web3.to_checksum_address(owner),
            "treasuryAddress": Web3.to_checksum_address(owner),
            "name": self.deployment.get("dlpName"),
            "iconUrl": "",
            "website": "",
            "metadata": "",
        }

    def register_automated(self) -> int:
        """
        Submit ``registerDlp`` with the registration fee and return the new dlpId.

        Raises:
            DataDAOError: After printing a diagnosis and the manual alternative
        """
        output.progress("Starting automated registration...")
        try:
            chain = self.ctx.signing_chain()
            check = chain.check_balance(self.ctx.settings.min_registration_balance)
            if check.known:
                output.summary("Wallet Information", [
                    ("Address", check.address),
                    ("Balance", f"{check.balance:.4f} VANA"),
                ])
            else:
                output.warning("Could not check wallet balance, proceeding with registration...")
            if not check.sufficient:
                output.error("Insufficient balance for registration!")
                output.warning("Registration requires 1 VANA + gas fees (recommend at least 1.1 VANA)")
                raise InsufficientBalanceError(check.balance, check.required, step=Step.DATADAO_REGISTERED.value)

            params = self.registration_params()
            output.summary("Registration Parameters", [
                ("DLP Address", params["dlpAddress"]),
                ("Owner", params["ownerAddress"]),
                ("Treasury", params["treasuryAddress"]),
                ("Name", params["name"]),
                ("Registration Fee", f"{REGISTRATION_FEE_VANA} VANA"),
            ])

            if not self.ctx.quick_mode and not prompts.confirm("Proceed with automated registration?", default=True):
                output.warning("Registration cancelled.")
                raise StepCancelled("Registration cancelled by user")

            output.progress("Submitting registration transaction...")
            result = chain.transact(
                self.registry,
                DLP_REGISTRY_ABI,
                "registerDlp",
                tuple(params.values()),
                value=Web3.to_wei(REGISTRATION_FEE_VANA, "ether"),
            )
            receipt = result["receipt"]
            output.success("Registration transaction confirmed!")
            output.detail(f"Block: {receipt['blockNumber']}")
            output.detail(f"Gas used: {receipt['gasUsed']}")
            output.detail(f"Transaction: {self.ctx.network.tx_url(result['tx_hash'])}")

            output.progress("Retrieving dlpId...")
            dlp_id = self.get_dlp_id()
            if dlp_id <= 0:
                raise RegistrationError(
                    "Registration transaction succeeded but could not retrieve dlpId. "
                    "Check the transaction and query dlpId manually."
                )
        except StepCancelled:
            raise
        except DataDAOError as e:
            self._report_failure(e)
            raise
        except Exception as e:
            self._report_failure(e)
            raise RegistrationError(str(e)) from e

        output.success(f"Registration successful! dlpId: {dlp_id}")
        self._save(dlp_id)
        return dlp_id

    def _report_failure(self, error: BaseException) -> None:
        logger.error(f"Registration failed: {error}")
        output.error(f"Registration failed: {error}")

        selector = extract_error_selector(str(error))
        if selector:
            output.warning(f"Decoded error: {decode_error_signature(selector)}")

        diagnosis = diagnose(error, "register")
        show_diagnosis(diagnosis)
        owner = self.deployment.get("address")
        if owner and diagnosis.category in (ErrorCategory.FUNDING, ErrorCategory.NONCE):
            output.info(f"Check your wallet: {self.ctx.network.address_url(owner)}", force=True)

        output.info("Alternative: register manually via Vanascan:", force=True)
        output.detail(self.ctx.network.write_proxy_url(self.registry))

    # ---------- Manual path ----------

    def show_manual_instructions(self) -> None:
        owner = self.deployment.get("address")
        output.numbered("Manual Registration Steps:", [
            f"Go to {self.ctx.network.write_proxy_url(self.registry)}",
            "Connect your wallet",
            'Find the "registerDlp" method',
            f"Fill in dlpAddress: {self.proxy_address}, ownerAddress: {owner}, "
            f"treasuryAddress: {owner}, name: {self.deployment.get('dlpName')} "
            "(iconUrl, website and metadata are optional)",
            'Set "Send native VANA" to 1 (click the ×10^18 button)',
            "Submit the transaction",
        ], style="yellow")

    def _show_help(self) -> None:
        output.summary("Registration Help", [
            "Make sure you have at least 1.1 VANA in your wallet",
            "Use MetaMask or another Web3 wallet to connect",
            "The dlpAddress should be the proxy address (not implementation)",
            "Double-check all addresses match your deployment.json",
            "If you get errors, try refreshing the page and reconnecting",
        ])

    def register_manual(self) -> int:
        """Guide the user through explorer registration, then detect and store the dlpId."""
        self.show_manual_instructions()

        if not prompts.confirm("Have you completed the registration transaction?", default=False):
            while True:
                action = prompts.select("What would you like to do?", [
                    ("I've completed it now", "completed"),
                    ("Show me the instructions again", "instructions"),
                    ("I need help with the registration", "help"),
                    ("Switch to automated registration", "auto"),
                    ("Skip registration for now", "skip"),
                ])
                if action == "completed":
                    break
                if action == "instructions":
                    self.show_manual_instructions()
                elif action == "help":
                    self._show_help()
                elif action == "auto":
                    output.info("Switching to automated registration...")
                    return self.register_automated()
                else:
                    output.warning("Registration skipped. You can register later with: create-datadao register-datadao")
                    raise StepCancelled("Registration skipped by user")

        output.progress("Detecting your dlpId...")
        dlp_id = self.poll_dlp_id(10)

        while dlp_id <= 0:
            output.error("Could not detect dlpId automatically.")
            action = prompts.select("What would you like to do?", [
                ("Try detecting dlpId again", "retry"),
                ("Check transaction status", "check"),
                ("Enter dlpId manually", "manual"),
                ("Try automated registration instead", "auto"),
                ("Skip for now", "skip"),
            ])
            if action == "retry":
                dlp_id = self.poll_dlp_id(5)
                if dlp_id <= 0:
                    output.warning("Still no dlpId detected. Transaction may need more time.")
            elif action == "check":
                output.summary("Check your transaction", [
                    f"Wallet transactions: {self.ctx.network.address_url(self.deployment.get('address', ''))}",
                    f"DLP contract: {self.ctx.network.address_url(self.proxy_address)}",
                    'Look for a recent "registerDlp" transaction',
                ])
            elif action == "manual":
                dlp_id = int(prompts.ask_text("Enter your dlpId (number):", validate=prompts.positive_int(
                    "Please enter a valid positive number")))
            elif action == "auto":
                output.info("Switching to automated registration...")
                return self.register_automated()
            else:
                output.warning("Registration incomplete. You can try again later with: create-datadao register-datadao")
                raise StepCancelled("Registration incomplete - skipped by user")

        output.success(f"dlpId detected: {dlp_id}")
        self._save(dlp_id)
        return dlp_id

    # ---------- Entry point ----------

    def _choose_method(self) -> str:
        method = prompts.select("How would you like to register your DataDAO?", [
            ("Automated registration (recommended)", "auto"),
            ("Manual registration via Vanascan", "manual"),
            ("Skip for now", "skip"),
        ])
        while method == "skip":
            output.warning("Registration skipped.")
            action = prompts.select("What would you like to do?", [
                ("Actually, let's register now", "register"),
                ("Show me what registration does", "explain"),
                ("Skip for now and continue setup", "continue"),
            ])
            if action == "register":
                method = prompts.select("How would you like to register your DataDAO?", [
                    ("Automated registration (recommended)", "auto"),
                    ("Manual registration via Vanascan", "manual"),
                ])
            elif action == "explain":
                output.summary("What does registration do?", [
                    "Registers your DataDAO on the Vana network",
                    "Assigns a unique dlpId to your DataDAO",
                    "Enables users to find and contribute to your DataDAO",
                    "Required for production use",
                    "Costs 1 VANA + gas fees",
                ])
            else:
                output.warning("You can register later with: create-datadao register-datadao")
                raise StepCancelled("Registration skipped by user")
        return method

    def run(self) -> int:
        """
        Register the DataDAO unless it already is.

        Returns:
            The dlpId

        Raises:
            RegistrationError: If the name is taken or registration fails
            StepCancelled: If the user skips registration
        """
        output.step("DataDAO Registration")
        output.summary("Registration Information", [
            ("DLP Address", self.proxy_address),
            ("Owner Address", self.deployment.get("address")),
            ("DLP Name", self.deployment.get("dlpName")),
        ])

        output.progress("Checking registration status...")
        existing = self.get_dlp_id()
        if existing > 0:
            output.success(f"DataDAO already registered with dlpId: {existing}")
            self._save(existing)
            return existing
        output.info("DataDAO not yet registered")

        name = self.deployment.get("dlpName")
        output.progress("Checking DLP name availability...")
        available, existing_id = self.check_name_availability(name)
        if not available:
            output.error(f'DLP name "{name}" is already taken (dlpId: {existing_id})')
            output.numbered("Recovery Steps:", [
                f"Check registration on Vanascan: {self.ctx.network.address_url(self.proxy_address)}",
                "If registered, run: create-datadao status to update local state",
                f"Otherwise, check existing DataDAO names: {self.ctx.network.address_url(self.registry)}",
                'Edit deployment.json and change "dlpName" to something unique',
                "Retry registration after changing the name",
            ], style="yellow")
            raise RegistrationError(f'DLP name "{name}" is already taken (dlpId: {existing_id})')
        output.success(f'DLP name "{name}" is available')

        method = "auto" if self.ctx.quick_mode else self._choose_method()
        dlp_id = self.register_automated() if method == "auto" else self.register_manual()

        output.success("DataDAO registration completed!")
        output.summary("What happens next", [
            "Update your proof template with the dlpId",
            "Get the encryption key for your refiner",
            "Configure your proof-of-contribution logic",
            "Test the full data contribution flow",
        ])
        return dlp_id


def register_datadao(ctx: StepContext) -> int:
    """Register the DataDAO, recording failures in deployment.json."""
    try:
        return DataDAORegistrar(ctx).run()
    except StepCancelled:
        raise
    except DataDAOError as e:
        ctx.state.record_error(Step.DATADAO_REGISTERED, e)
        raise
