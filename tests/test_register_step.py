"""Tests for DataDAO registration."""

import pytest
from web3 import Web3

from create_datadao.base.state import DeploymentStateManager, Step
from create_datadao.exceptions import InsufficientBalanceError, RegistrationError, StepCancelled
from create_datadao.steps.register import DataDAORegistrar, register_datadao
from create_datadao.utils import prompts

from .conftest import OWNER, PROXY_ADDRESS, TOKEN_ADDRESS, answers


@pytest.fixture
def deployed_ctx(make_ctx):
    return make_ctx(tokenAddress=TOKEN_ADDRESS, proxyAddress=PROXY_ADDRESS)


class TestRegistryReads:
    """dlpId and name lookups."""

    def test_get_dlp_id(self, deployed_ctx, chain):
        chain.responses["dlpIds"] = 4

        assert DataDAORegistrar(deployed_ctx).get_dlp_id() == 4
        assert chain.calls[-1] == ("dlpIds", (PROXY_ADDRESS,))

    def test_lookup_failure_reads_as_unregistered(self, deployed_ctx, chain):
        chain.failures["dlpIds"] = ConnectionError("timeout")
        assert DataDAORegistrar(deployed_ctx).get_dlp_id() == 0

    def test_name_availability(self, deployed_ctx, chain):
        registrar = DataDAORegistrar(deployed_ctx)
        chain.responses["dlpNameToId"] = 0
        assert registrar.check_name_availability("TestDAO") == (True, None)
        chain.responses["dlpNameToId"] = 9
        assert registrar.check_name_availability("TestDAO") == (False, 9)

    def test_missing_proxy(self, ctx):
        with pytest.raises(RegistrationError):
            DataDAORegistrar(ctx).proxy_address

    def test_registration_params(self, deployed_ctx):
        params = DataDAORegistrar(deployed_ctx).registration_params()

        assert params["dlpAddress"] == Web3.to_checksum_address(PROXY_ADDRESS)
        assert params["ownerAddress"] == OWNER
        assert params["treasuryAddress"] == OWNER
        assert params["name"] == "TestDAO"
        assert list(params)[-3:] == ["iconUrl", "website", "metadata"]


class TestRegisterDataDAO:
    """The register-datadao step."""

    def test_already_registered(self, deployed_ctx, chain, project):
        chain.responses["dlpIds"] = 7

        assert register_datadao(deployed_ctx) == 7
        assert DeploymentStateManager(project).get("dlpId") == 7
        assert chain.transactions == []

    def test_name_taken(self, deployed_ctx, chain, project):
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 3

        with pytest.raises(RegistrationError, match="already taken"):
            register_datadao(deployed_ctx)

        assert Step.DATADAO_REGISTERED.value in DeploymentStateManager(project).errors

    def test_automated_registration_in_quick_mode(self, deployed_ctx, chain, project):
        deployed_ctx.settings.quick_mode = True
        chain.responses["dlpIds"] = lambda address: 12 if chain.transactions else 0
        chain.responses["dlpNameToId"] = 0

        assert register_datadao(deployed_ctx) == 12

        transaction = chain.transactions[0]
        assert transaction["function"] == "registerDlp"
        assert transaction["value"] == Web3.to_wei(1, "ether")
        assert transaction["args"][0][3] == "TestDAO"
        saved = DeploymentStateManager(project)
        assert saved.get("dlpId") == 12
        assert saved.state[Step.DATADAO_REGISTERED.value] is True

    def test_insufficient_balance(self, deployed_ctx, chain, project):
        deployed_ctx.settings.quick_mode = True
        chain.balance = 0.5
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 0

        with pytest.raises(InsufficientBalanceError):
            register_datadao(deployed_ctx)

        assert chain.transactions == []
        assert "insufficient funds" in DeploymentStateManager(project).errors[Step.DATADAO_REGISTERED.value]["message"]

    def test_transaction_failure_is_wrapped(self, deployed_ctx, chain, project):
        deployed_ctx.settings.quick_mode = True
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 0
        chain.failures["registerDlp"] = ValueError("execution reverted")

        with pytest.raises(RegistrationError, match="execution reverted"):
            register_datadao(deployed_ctx)

        assert Step.DATADAO_REGISTERED.value in DeploymentStateManager(project).errors

    def test_skipping_is_not_recorded_as_error(self, deployed_ctx, chain, project, monkeypatch):
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["skip", "continue"]))

        with pytest.raises(StepCancelled):
            register_datadao(deployed_ctx)

        assert DeploymentStateManager(project).errors == {}

    def test_manual_registration_detects_dlp_id(self, deployed_ctx, chain, project, monkeypatch):
        chain.responses["dlpIds"] = answers([0, 0, 9])
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["manual"]))
        monkeypatch.setattr(prompts, "confirm", answers([True]))

        assert register_datadao(deployed_ctx) == 9
        assert DeploymentStateManager(project).get("dlpId") == 9

    def test_manual_registration_accepts_typed_dlp_id(self, deployed_ctx, chain, project, monkeypatch):
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["manual", "manual"]))
        monkeypatch.setattr(prompts, "confirm", answers([True]))
        monkeypatch.setattr(prompts, "ask_text", answers(["21"]))

        assert register_datadao(deployed_ctx) == 21
        assert DeploymentStateManager(project).get("dlpId") == 21

    def test_check_then_retry_detects_dlp_id(self, deployed_ctx, chain, project, monkeypatch, console_output):
        lookups = []

        def dlp_ids(address):
            lookups.append(address)
            # One status check plus ten detection attempts come back empty.
            return 6 if len(lookups) > 11 else 0

        chain.responses["dlpIds"] = dlp_ids
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["manual", "check", "retry"]))
        monkeypatch.setattr(prompts, "confirm", answers([True]))

        assert register_datadao(deployed_ctx) == 6
        assert len(lookups) == 12
        assert "Check your transaction" in console_output.getvalue()
        assert DeploymentStateManager(project).get("dlpId") == 6
        assert chain.transactions == []

    def test_failed_retry_returns_to_menu(self, deployed_ctx, chain, monkeypatch, console_output):
        chain.responses["dlpIds"] = 0
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["manual", "retry", "skip"]))
        monkeypatch.setattr(prompts, "confirm", answers([True]))

        with pytest.raises(StepCancelled, match="incomplete"):
            register_datadao(deployed_ctx)

        assert "Still no dlpId detected" in console_output.getvalue()

    def test_switch_to_automated_after_detection_fails(self, deployed_ctx, chain, project, monkeypatch):
        chain.responses["dlpIds"] = lambda address: 15 if chain.transactions else 0
        chain.responses["dlpNameToId"] = 0
        monkeypatch.setattr(prompts, "select", answers(["manual", "auto"]))
        monkeypatch.setattr(prompts, "confirm", answers([True, True]))

        assert register_datadao(deployed_ctx) == 15
        assert [t["function"] for t in chain.transactions] == ["registerDlp"]
        assert DeploymentStateManager(project).get("dlpId") == 15
