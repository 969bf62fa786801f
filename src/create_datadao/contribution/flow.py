"""
The five-step data contribution flow.

Mirrors what the contributor web app does: sign the fixed message, upload
the encrypted profile package to Google Drive, register it on the data
registry, run the TEE proof, refine the data and claim the reward. Progress
is tracked in a ``ContributionState``; the first failing step stops the run.
"""

from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..base.network import DEFAULT_DLP_ADDRESS, DEFAULT_REFINEMENT_ENDPOINT
from ..exceptions import ContributionError, DataDAOError
from ..utils.chain import ChainClient
from ..utils.env_file import read_env
from ..utils.output import output
from ..utils.wallet import WalletManager
from .crypto import SIGN_MESSAGE, encrypt_with_public_key
from .google_drive import GoogleDriveClient
from .models import ContributionState, DriveInfo, FlowStep, ProofResult, TransactionRef, UploadResult, UserInfo
from .onchain import ContributionContracts
from .services import RefinementClient, TeeClient, build_proof_request

STEP_LABELS = {
    FlowStep.UPLOAD_DATA: "Upload encrypted data to Google Drive",
    FlowStep.BLOCKCHAIN_REGISTRATION: "Register file on the data registry",
    FlowStep.REQUEST_TEE_PROOF: "Request proof of contribution from a TEE",
    FlowStep.PROCESS_PROOF: "Refine contributed data",
    FlowStep.CLAIM_REWARD: "Claim contribution reward",
}


class ContributionConfig(BaseModel):
    """Settings the contributor UI reads from its environment."""

    dlp_address: str = Field(default=DEFAULT_DLP_ADDRESS, description="DataLiquidityPool proxy")
    proof_url: str = Field(default="", description="Proof artifact URL run by the TEE")
    refiner_id: Optional[int] = Field(default=None, description="Refiner used for refinement")
    refinement_endpoint: str = Field(default=DEFAULT_REFINEMENT_ENDPOINT)
    pinata_api_key: Optional[str] = None
    pinata_api_secret: Optional[str] = None

    @classmethod
    def from_ui_env(cls, path: Path) -> "ContributionConfig":
        """Read ``ui/.env`` as written by deploy-ui."""
        env = read_env(path)
        values = {
            "dlp_address": env.get("NEXT_PUBLIC_DLP_CONTRACT_ADDRESS"),
            "proof_url": env.get("NEXT_PUBLIC_PROOF_URL"),
            "refiner_id": int(env["REFINER_ID"]) if env.get("REFINER_ID", "").isdigit() else None,
            "refinement_endpoint": env.get("REFINEMENT_ENDPOINT"),
            "pinata_api_key": env.get("PINATA_API_KEY"),
            "pinata_api_secret": env.get("PINATA_API_SECRET"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})


class ContributionFlow:
    """
    Runs one contribution.

    Args:
        wallet: Contributor wallet; signs the message and the transactions
        chain: Chain client signing with ``wallet``
        google: Drive client holding the contributor's access token
        config: DataDAO settings
        tee: TEE proof client
        refinement: Refinement client
        on_step: Called with each step as it starts
    """

    def __init__(
        self,
        wallet: WalletManager,
        chain: ChainClient,
        google: GoogleDriveClient,
        config: ContributionConfig,
        tee: Optional[TeeClient] = None,
        refinement: Optional[RefinementClient] = None,
        contracts: Optional[ContributionContracts] = None,
        on_step: Optional[Callable[[FlowStep], None]] = None,
    ):
        self.wallet = wallet
        self.chain = chain
        self.google = google
        self.config = config
        self.tee = tee or TeeClient()
        self.refinement = refinement or RefinementClient(
            config.refinement_endpoint, config.pinata_api_key, config.pinata_api_secret
        )
        self.contracts = contracts or ContributionContracts(chain, config.dlp_address)
        self.on_step = on_step
        self.state = ContributionState()

    def reset(self) -> None:
        self.state = ContributionState()

    def _start(self, step: FlowStep) -> None:
        self.state.start(step)
        logger.info(f"Contribution step {int(step)}: {STEP_LABELS[step]}")
        if self.on_step:
            self.on_step(step)

    def _complete(self, step: FlowStep) -> None:
        self.state.complete(step)
        logger.success(f"Contribution step {int(step)} completed")

    # ---------- Steps ----------

    def sign_message(self) -> str:
        try:
            return self.wallet.sign_message(SIGN_MESSAGE)
        except Exception as e:
            raise ContributionError(f"Failed to sign the message: {e}", flow_step=FlowStep.NOT_STARTED)

    def upload_data(self, user: UserInfo, signature: str, drive: Optional[DriveInfo]) -> UploadResult:
        self._start(FlowStep.UPLOAD_DATA)
        upload = self.google.upload_user_data(user, signature, drive)
        self.state.share_url = upload.download_url
        self._complete(FlowStep.UPLOAD_DATA)
        return upload

    def register_file(self, upload: UploadResult, signature: str) -> int:
        self._start(FlowStep.BLOCKCHAIN_REGISTRATION)
        public_key = self.contracts.dlp_public_key()
        encrypted_key = encrypt_with_public_key(signature, public_key)
        try:
            file_id, receipt = self.contracts.add_file(upload.download_url, encrypted_key)
        except DataDAOError:
            raise
        except Exception as e:
            raise ContributionError(f"Contract error: {e}", flow_step=FlowStep.BLOCKCHAIN_REGISTRATION)

        self.state.update_data(
            contribution_id=upload.vana_file_id,
            encrypted_url=upload.download_url,
            transaction_receipt=TransactionRef(
                hash=_hex(receipt.get("transactionHash")),
                block_number=receipt.get("blockNumber"),
            ),
            file_id=file_id,
        )
        self._complete(FlowStep.BLOCKCHAIN_REGISTRATION)
        return file_id

    def request_proof(self, file_id: int, signature: str) -> ProofResult:
        self._start(FlowStep.REQUEST_TEE_PROOF)
        tx_hash = self.contracts.request_contribution_proof(file_id)

        job_ids = self.contracts.file_job_ids(file_id)
        if not job_ids:
            raise ContributionError("No jobs found for file", flow_step=FlowStep.REQUEST_TEE_PROOF)
        job_id = job_ids[-1]
        tee = self.contracts.tee_details(job_id)

        body = build_proof_request(
            job_id=job_id,
            file_id=file_id,
            proof_url=self.config.proof_url,
            dlp_address=self.config.dlp_address,
            dlp_public_key=self.contracts.dlp_public_key(),
            signature=signature,
            google_token=self.google.access_token,
        )
        proof_data = self.tee.run_proof(tee.tee_url, body)

        self.state.update_data(tee_job_id=job_id)
        self._complete(FlowStep.REQUEST_TEE_PROOF)
        return ProofResult(file_id=file_id, job_id=job_id, proof_data=proof_data, tx_hash=tx_hash)

    def process_proof(self, proof: ProofResult, signature: str) -> Any:
        self._start(FlowStep.PROCESS_PROOF)
        self.state.update_data(tee_proof_data=proof.proof_data)
        result = self.refinement.refine(proof.file_id, signature, self.config.refiner_id)
        self.state.update_data(refinement_result=result)
        self._complete(FlowStep.PROCESS_PROOF)
        return result

    def claim_reward(self, file_id: int) -> Optional[str]:
        self._start(FlowStep.CLAIM_REWARD)
        tx_hash = self.contracts.request_reward(file_id)
        self.state.update_data(reward_tx_hash=tx_hash)
        self._complete(FlowStep.CLAIM_REWARD)
        return tx_hash

    # ---------- Flow ----------

    def run(self, user: Optional[UserInfo] = None, drive: Optional[DriveInfo] = None) -> ContributionState:
        """
        Execute the whole contribution.

        Args:
            user: Contributor profile; fetched from Google when omitted
            drive: Storage usage; fetched from Google when omitted

        Returns:
            Final ContributionState

        Raises:
            ContributionError: On the first failing step, tagged with that step
        """
        self.reset()
        try:
            user = user or self.google.get_user_info()
            drive = drive or self.google.get_drive_info()
            signature = self.sign_message()
            upload = self.upload_data(user, signature, drive)
            file_id = self.register_file(upload, signature)
            proof = self.request_proof(file_id, signature)
            self.process_proof(proof, signature)
            self.claim_reward(file_id)
        except ContributionError as e:
            self.state.error = str(e)
            raise
        except Exception as e:
            logger.error(f"Contribution failed at step {int(self.state.current_step)}: {e}")
            self.state.error = str(e)
            raise ContributionError(str(e), flow_step=self.state.current_step) from e

        self.state.success = True
        return self.state


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "hex"):
        text = value.hex()
        return text if text.startswith("0x") else "0x" + text
    return str(value)


def show_contribution(state: ContributionState) -> None:
    output.progress_list("Contribution Steps", [
        (label, step in state.completed_steps) for step, label in STEP_LABELS.items()
    ])
    data = state.data
    items = [
        ("Contribution ID", data.contribution_id),
        ("Encrypted URL", data.encrypted_url),
        ("File ID", data.file_id),
        ("TEE Job ID", data.tee_job_id),
        ("Reward Transaction", data.reward_tx_hash),
    ]
    output.summary("Contribution", [(label, value) for label, value in items if value is not None])
