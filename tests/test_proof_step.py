"""Tests for proof-of-contribution deployment."""

import pytest

from create_datadao.base.state import DeploymentStateManager, Step
from create_datadao.exceptions import DataDAOError
from create_datadao.steps import proof
from create_datadao.steps.proof import (
    PROOF_CONFIG_PATH,
    deploy_proof,
    rewrite_dlp_id,
    update_dlp_id_in_config,
    update_proof_instruction,
)
from create_datadao.utils import prompts
from create_datadao.utils.env_file import read_env

from .conftest import PROXY_ADDRESS, answers

PROOF_URL = "https://github.com/alice/testdao-proof/releases/download/v1/my-proof-1.tar.gz"
PROOF_REPO = "https://github.com/alice/testdao-proof"


class TestRewriteDlpId:
    """dlp_id literals in the proof template."""

    @pytest.mark.parametrize("source, expected", [
        ('config = {"dlp_id": 0, "use_sealing": False}', 'config = {"dlp_id": 42, "use_sealing": False}'),
        ("config = {'dlp_id': 7}", "config = {'dlp_id': 42}"),
        ("dlp_id = 1234", "dlp_id = 42"),
        ("DLP_ID=3", "DLP_ID = 42"),
    ])
    def test_known_patterns(self, source, expected):
        assert rewrite_dlp_id(source, 42) == expected

    def test_unknown_pattern(self):
        assert rewrite_dlp_id("print('no id here')", 42) is None

    def test_update_config_file(self, project):
        config = project / PROOF_CONFIG_PATH
        config.parent.mkdir(parents=True)
        config.write_text('load_config = lambda: {"dlp_id": 0}\n')

        assert update_dlp_id_in_config(project, 15)
        assert '"dlp_id": 15' in config.read_text()

    def test_missing_config_file_is_tolerated(self, project):
        assert update_dlp_id_in_config(project, 15) is False


class TestDeployProof:
    """The deploy-proof step."""

    @pytest.fixture
    def registered_ctx(self, make_ctx, deployed_fields, monkeypatch):
        monkeypatch.setattr(proof, "prepare_component_repo", lambda path, url, message: True)
        return make_ctx(proofRepo=PROOF_REPO, **deployed_fields)

    def test_requires_dlp_id(self, ctx, project):
        with pytest.raises(DataDAOError, match="dlpId"):
            deploy_proof(ctx)

        assert Step.PROOF_CONFIGURED.value in DeploymentStateManager(project).errors

    def test_requires_valid_repository(self, make_ctx, deployed_fields):
        with pytest.raises(DataDAOError, match="Invalid proof repository"):
            deploy_proof(make_ctx(proofRepo="https://gitlab.com/alice/proof", **deployed_fields))

    def test_manual_deployment(self, registered_ctx, chain, project, monkeypatch):
        monkeypatch.setattr(prompts, "select", answers(["manual"]))
        monkeypatch.setattr(prompts, "ask_text", answers([PROOF_URL]))

        assert deploy_proof(registered_ctx) == PROOF_URL

        saved = DeploymentStateManager(project)
        assert saved.get("proofUrl") == PROOF_URL
        for step in (Step.PROOF_CONFIGURED, Step.PROOF_PUBLISHED, Step.PROOF_GIT_SETUP, Step.PROOF_INSTRUCTION_UPDATED):
            assert saved.state[step.value] is True
        assert read_env(project / "ui" / ".env")["NEXT_PUBLIC_PROOF_URL"] == PROOF_URL
        assert chain.transactions[0]["function"] == "updateProofInstruction"
        assert chain.transactions[0]["address"] == PROXY_ADDRESS
        assert chain.transactions[0]["args"] == (PROOF_URL,)

    def test_automatic_deployment_pushes_first(self, registered_ctx, project, monkeypatch):
        pushed = []
        monkeypatch.setattr(proof, "push_component", lambda path: pushed.append(path) or True)
        monkeypatch.setattr(prompts, "select", answers(["auto"]))
        monkeypatch.setattr(prompts, "ask_text", answers([PROOF_URL]))

        assert deploy_proof(registered_ctx) == PROOF_URL
        assert pushed == [project / "proof"]

    def test_failed_push_is_recorded(self, registered_ctx, project, monkeypatch):
        monkeypatch.setattr(proof, "push_component", lambda path: False)
        monkeypatch.setattr(prompts, "select", answers(["auto"]))

        with pytest.raises(DataDAOError, match="push"):
            deploy_proof(registered_ctx)

        assert Step.PROOF_CONFIGURED.value in DeploymentStateManager(project).errors

    def test_skip(self, registered_ctx, chain, project, monkeypatch):
        monkeypatch.setattr(prompts, "select", answers(["skip"]))

        assert deploy_proof(registered_ctx) is None

        saved = DeploymentStateManager(project)
        assert saved.state[Step.PROOF_CONFIGURED.value] is True
        assert saved.state[Step.PROOF_PUBLISHED.value] is False
        assert chain.transactions == []

    def test_contract_update_failure_does_not_fail_step(self, registered_ctx, chain, project):
        chain.failures["updateProofInstruction"] = ValueError("execution reverted")

        assert update_proof_instruction(registered_ctx, PROOF_URL) is False
        assert DeploymentStateManager(project).state[Step.PROOF_INSTRUCTION_UPDATED.value] is False
