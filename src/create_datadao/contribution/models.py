"""Data models for the contribution flow."""

from enum import IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FlowStep(IntEnum):
    """Visible steps of a contribution, 1-based as shown to contributors."""
    NOT_STARTED = 0
    UPLOAD_DATA = 1
    BLOCKCHAIN_REGISTRATION = 2
    REQUEST_TEE_PROOF = 3
    PROCESS_PROOF = 4
    CLAIM_REWARD = 5


class UserInfo(BaseModel):
    """Google account profile of the contributor."""

    id: Optional[str] = Field(default=None, description="Google subject id")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    locale: Optional[str] = Field(default=None, description="Preferred locale")


class DriveInfo(BaseModel):
    """Google Drive storage usage."""

    percent_used: float = Field(..., ge=0, description="Storage used, percent rounded to 2 decimals")


class UploadResult(BaseModel):
    """Encrypted data package stored on Google Drive."""

    download_url: str = Field(..., description="Public download link registered on-chain")
    file_id: str = Field(..., description="Google Drive file id")
    vana_file_id: str = Field(..., description="Contribution label derived from the file link")


class TeeDetails(BaseModel):
    """TEE assigned to a proof job."""

    tee_url: str = Field(..., description="Base URL of the TEE's proof service")
    tee_public_key: str = Field(default="", description="TEE public key")
    tee_address: Optional[str] = Field(default=None, description="TEE operator address")


class ProofResult(BaseModel):
    """Outcome of a TEE proof request."""

    file_id: int
    job_id: int
    proof_data: Any = None
    tx_hash: str


class TransactionRef(BaseModel):
    hash: str
    block_number: Optional[int] = None


class ContributionData(BaseModel):
    """What a contribution produced so far."""

    contribution_id: Optional[str] = Field(default=None, description="vana_submission_* label")
    encrypted_url: Optional[str] = Field(default=None, description="Download link of the encrypted package")
    transaction_receipt: Optional[TransactionRef] = Field(default=None, description="File registration transaction")
    file_id: Optional[int] = Field(default=None, description="Data registry file id")
    tee_proof_data: Any = Field(default=None, description="Response of the TEE proof service")
    tee_job_id: Optional[int] = Field(default=None, description="TEE pool job id")
    refinement_result: Any = Field(default=None, description="Response of the refinement service")
    reward_tx_hash: Optional[str] = Field(default=None, description="Reward claim transaction")


class ContributionState(BaseModel):
    """Progress of one contribution run."""

    current_step: FlowStep = Field(default=FlowStep.NOT_STARTED)
    completed_steps: List[FlowStep] = Field(default_factory=list)
    data: ContributionData = Field(default_factory=ContributionData)
    share_url: str = Field(default="")
    error: Optional[str] = Field(default=None)
    success: bool = Field(default=False)

    class Config:
        """Pydantic configuration."""
        validate_assignment = True

    def start(self, step: FlowStep) -> None:
        self.current_step = step

    def complete(self, step: FlowStep) -> None:
        self.completed_steps = [*self.completed_steps, step]

    def update_data(self, **fields: Any) -> None:
        self.data = self.data.model_copy(update=fields)

    def summary(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "current_step": int(self.current_step),
            "completed_steps": [int(s) for s in self.completed_steps],
            "error": self.error,
            **self.data.model_dump(exclude_none=True),
        }
