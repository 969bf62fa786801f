"""Tests for the five-step contribution flow."""

import pytest

from create_datadao.base.network import DEFAULT_REFINEMENT_ENDPOINT
from create_datadao.contribution.crypto import SIGN_MESSAGE, decrypt_with_private_key
from create_datadao.contribution.flow import ContributionConfig, ContributionFlow, show_contribution
from create_datadao.contribution.models import DriveInfo, FlowStep, TeeDetails, UploadResult, UserInfo
from create_datadao.contribution.services import ServiceError
from create_datadao.exceptions import ContributionError
from create_datadao.utils.wallet import WalletManager

from .conftest import PRIVATE_KEY, PROXY_ADDRESS, TX_HASH, FakeChain

PROOF_URL = "https://github.com/alice/testdao-proof/releases/download/v1/my-proof-1.tar.gz"
USER = UserInfo(id="42", name="Ada", email="ada@example.com", locale="en")


class FakeGoogle:
    access_token = "token-123"

    def __init__(self):
        self.uploads = []

    def get_user_info(self):
        return USER

    def get_drive_info(self):
        return DriveInfo(percent_used=12.5)

    def upload_user_data(self, user, signature, drive=None, timestamp=None):
        self.uploads.append((user, signature, drive))
        return UploadResult(
            download_url="https://drive.google.com/uc?export=download&id=file-1",
            file_id="file-1",
            vana_file_id="vana_submission_1700000000000_view",
        )


class FakeContracts:
    """Records contract interactions made by the flow."""

    def __init__(self, public_key, job_ids=(3, 8)):
        self.public_key = public_key
        self.job_ids = list(job_ids)
        self.added = []
        self.rewards = []

    def dlp_public_key(self):
        return self.public_key

    def add_file(self, url, encrypted_key):
        self.added.append((url, encrypted_key))
        return 42, {"transactionHash": bytes.fromhex("ab" * 32), "blockNumber": 7}

    def request_contribution_proof(self, file_id):
        return TX_HASH

    def file_job_ids(self, file_id):
        return self.job_ids

    def tee_details(self, job_id):
        return TeeDetails(tee_url="https://tee.example", tee_public_key="0xteepub")

    def request_reward(self, file_id, proof_index=1):
        self.rewards.append(file_id)
        return TX_HASH


class FakeTee:
    def __init__(self):
        self.requests = []

    def run_proof(self, tee_url, body):
        self.requests.append((tee_url, body))
        return {"score": 1.0, "valid": True}


class FakeRefinement:
    def __init__(self, error=None):
        self.error = error
        self.requests = []

    def refine(self, file_id, encryption_key, refiner_id=None):
        self.requests.append((file_id, encryption_key, refiner_id))
        if self.error is not None:
            raise self.error
        return {"add_refinement_tx_hash": TX_HASH}


@pytest.fixture
def wallet():
    return WalletManager(PRIVATE_KEY)


@pytest.fixture
def parts(wallet):
    return {
        "google": FakeGoogle(),
        "contracts": FakeContracts(wallet.public_key),
        "tee": FakeTee(),
        "refinement": FakeRefinement(),
    }


def make_flow(wallet, parts, steps=None, refiner_id=0):
    config = ContributionConfig(dlp_address=PROXY_ADDRESS, proof_url=PROOF_URL, refiner_id=refiner_id)
    return ContributionFlow(
        wallet, FakeChain(), parts["google"], config,
        tee=parts["tee"], refinement=parts["refinement"], contracts=parts["contracts"],
        on_step=steps.append if steps is not None else None,
    )


class TestContributionFlow:
    """Running a contribution end to end."""

    def test_successful_run(self, wallet, parts):
        steps = []

        state = make_flow(wallet, parts, steps).run()

        assert state.success is True
        assert state.error is None
        assert steps == [1, 2, 3, 4, 5]
        assert state.completed_steps == list(FlowStep)[1:]
        assert state.share_url.endswith("id=file-1")
        assert state.data.file_id == 42
        assert state.data.tee_job_id == 8
        assert state.data.contribution_id == "vana_submission_1700000000000_view"
        assert state.data.transaction_receipt.hash == "0x" + "ab" * 32
        assert state.data.transaction_receipt.block_number == 7
        assert state.data.reward_tx_hash == TX_HASH

    def test_signature_is_shared_key(self, wallet, parts):
        make_flow(wallet, parts).run()
        signature = wallet.sign_message(SIGN_MESSAGE)

        assert parts["google"].uploads[0][1] == signature
        url, encrypted_key = parts["contracts"].added[0]
        assert url.endswith("id=file-1")
        assert decrypt_with_private_key(encrypted_key, PRIVATE_KEY) == signature

    def test_proof_and_refinement_requests(self, wallet, parts):
        make_flow(wallet, parts).run()

        tee_url, body = parts["tee"].requests[0]
        assert tee_url == "https://tee.example"
        assert body["job_id"] == 8
        assert body["file_id"] == 42
        assert body["proof_url"] == PROOF_URL
        assert body["env_vars"] == {"GOOGLE_TOKEN": "token-123"}
        file_id, _, refiner_id = parts["refinement"].requests[0]
        assert (file_id, refiner_id) == (42, 0)
        assert parts["contracts"].rewards == [42]

    def test_no_jobs_stops_at_proof_step(self, wallet, parts):
        parts["contracts"].job_ids = []
        flow = make_flow(wallet, parts)

        with pytest.raises(ContributionError, match="No jobs found") as excinfo:
            flow.run()

        assert excinfo.value.flow_step == FlowStep.REQUEST_TEE_PROOF
        assert flow.state.success is False
        assert flow.state.completed_steps == [FlowStep.UPLOAD_DATA, FlowStep.BLOCKCHAIN_REGISTRATION]
        assert parts["tee"].requests == []

    def test_service_failure_is_tagged_with_step(self, wallet, parts):
        parts["refinement"] = FakeRefinement(error=ServiceError("refiner not found"))
        flow = make_flow(wallet, parts)

        with pytest.raises(ContributionError, match="refiner not found") as excinfo:
            flow.run()

        assert isinstance(excinfo.value.__cause__, ServiceError)
        assert excinfo.value.flow_step == FlowStep.PROCESS_PROOF
        assert parts["contracts"].rewards == []

    def test_unexpected_error_is_wrapped(self, wallet, parts):
        parts["refinement"] = FakeRefinement(error=RuntimeError("connection reset"))
        flow = make_flow(wallet, parts)

        with pytest.raises(ContributionError, match="connection reset") as excinfo:
            flow.run()

        assert excinfo.value.flow_step == FlowStep.PROCESS_PROOF
        assert flow.state.error == "connection reset"

    def test_show_contribution(self, wallet, parts, console_output):
        show_contribution(make_flow(wallet, parts).run())

        text = console_output.getvalue()
        assert "Claim contribution reward" in text
        assert "vana_submission_1700000000000_view" in text


class TestContributionConfig:
    """Reading the UI environment."""

    def test_from_ui_env(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text(
            f"NEXT_PUBLIC_DLP_CONTRACT_ADDRESS={PROXY_ADDRESS}\n"
            f"NEXT_PUBLIC_PROOF_URL={PROOF_URL}\n"
            "REFINER_ID=0\n"
            "PINATA_API_KEY=key\n"
        )

        config = ContributionConfig.from_ui_env(env)

        assert config.dlp_address == PROXY_ADDRESS
        assert config.proof_url == PROOF_URL
        assert config.refiner_id == 0
        assert config.refinement_endpoint == DEFAULT_REFINEMENT_ENDPOINT
        assert config.pinata_api_key == "key"

    def test_unset_refiner_id(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("REFINER_ID=\n")

        assert ContributionConfig.from_ui_env(env).refiner_id is None
