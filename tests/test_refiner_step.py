"""Tests for data refiner deployment."""

import pytest

from create_datadao.base.network import MOKSHA, ContractName
from create_datadao.base.state import DeploymentStateManager, Step
from create_datadao.exceptions import DataDAOError, MissingFieldsError
from create_datadao.steps import refiner
from create_datadao.steps.refiner import (
    REFINER_CONFIG_PATH,
    RefinerDeployer,
    deploy_refiner,
    extract_refiner_id,
    set_schema_name,
)
from create_datadao.utils import prompts
from create_datadao.utils.env_file import read_env

from .conftest import answers

REGISTRY = MOKSHA.contract_address(ContractName.REFINER_REGISTRY)
REFINER_REPO = "https://github.com/alice/testdao-refiner"
SCHEMA_URL = "https://gateway.pinata.cloud/ipfs/QmSchema"
REFINER_URL = "https://github.com/alice/testdao-refiner/releases/download/v1/refiner-1.tar.gz"


def refiner_added_receipt(refiner_id: int, address: str = REGISTRY):
    return {
        "status": 1,
        "blockNumber": 200,
        "gasUsed": 90000,
        "logs": [
            {"address": "0x" + "99" * 20, "topics": ["0x" + "00" * 32]},
            {
                "address": address,
                "topics": [
                    "0x" + "ee" * 32,
                    "0x" + refiner_id.to_bytes(32, "big").hex(),
                    "0x" + (5).to_bytes(32, "big").hex(),
                ],
            },
        ],
    }


class TestHelpers:
    """Receipt parsing and template edits."""

    def test_extract_refiner_id_from_hex_topic(self):
        assert extract_refiner_id(refiner_added_receipt(17), REGISTRY) == 17

    def test_extract_refiner_id_from_bytes_topic(self):
        receipt = {"logs": [{"address": REGISTRY.lower(), "topics": [b"\x01" * 32, (3).to_bytes(32, "big")]}]}
        assert extract_refiner_id(receipt, REGISTRY) == 3

    def test_extract_refiner_id_ignores_other_contracts(self):
        assert extract_refiner_id(refiner_added_receipt(17, address="0x" + "12" * 20), REGISTRY) is None

    def test_set_schema_name(self):
        source = 'SCHEMA_NAME = "Google Drive Analytics"\nSCHEMA_VERSION = "0.0.1"\n'

        updated = set_schema_name(source, "TestDAO")

        assert 'SCHEMA_NAME = "TestDAO Data Schema"' in updated
        assert 'SCHEMA_VERSION = "0.0.1"' in updated


class TestRefinerDeployer:
    """Individual refiner deployment stages."""

    @pytest.fixture
    def deployer(self, make_ctx, deployed_fields):
        return RefinerDeployer(make_ctx(refinerRepo=REFINER_REPO, **deployed_fields))

    def test_poll_encryption_key(self, deployer, chain):
        chain.responses["dlpPubKeys"] = answers(["", "0xrefinementkey"])

        assert deployer.poll_encryption_key() == "0xrefinementkey"
        assert chain.calls[0] == ("dlpPubKeys", (5,))

    def test_poll_encryption_key_gives_up(self, deployer, chain):
        chain.responses["dlpPubKeys"] = ""
        assert deployer.poll_encryption_key(attempts=3) is None
        assert len(chain.calls) == 3

    def test_manual_encryption_key_fallback(self, deployer, chain, monkeypatch):
        chain.failures["dlpPubKeys"] = ConnectionError("timeout")
        monkeypatch.setattr(prompts, "ask_text", answers(["0xmanualkey"]))

        assert deployer.obtain_encryption_key() == "0xmanualkey"

    def test_configure_template(self, deployer, project):
        config = project / REFINER_CONFIG_PATH
        config.parent.mkdir(parents=True)
        config.write_text('SCHEMA_NAME = "Default"\n')

        deployer.configure_template("0xkey")

        assert read_env(project / "refiner" / ".env")["REFINEMENT_ENCRYPTION_KEY"] == "0xkey"
        assert read_env(project / "refiner" / ".env")["PINATA_API_KEY"] == "pinata-key-1234"
        assert config.read_text() == 'SCHEMA_NAME = "TestDAO Data Schema"\n'

    def test_register_on_chain(self, deployer, chain):
        chain.receipt = refiner_added_receipt(4)

        assert deployer.register_on_chain(SCHEMA_URL, REFINER_URL) == 4

        transaction = chain.transactions[0]
        assert transaction["function"] == "addRefiner"
        assert transaction["args"] == (5, "TestDAO Refiner", SCHEMA_URL, REFINER_URL)
        assert transaction["gas"] == 150000

    def test_register_on_chain_failure(self, deployer, chain):
        chain.failures["addRefiner"] = ValueError("insufficient funds for gas")
        assert deployer.register_on_chain(SCHEMA_URL, REFINER_URL) is None

    def test_upload_schema_without_file_asks_for_url(self, deployer, monkeypatch):
        monkeypatch.setattr(prompts, "ask_text", answers([SCHEMA_URL]))
        assert deployer.upload_schema(None) == SCHEMA_URL


class TestDeployRefiner:
    """The deploy-refiner step."""

    @pytest.fixture
    def refiner_ctx(self, make_ctx, deployed_fields, chain, monkeypatch):
        chain.responses["dlpPubKeys"] = "0xrefinementkey"
        monkeypatch.setattr(refiner, "prepare_component_repo", lambda path, url, message: True)
        monkeypatch.setattr(RefinerDeployer, "generate_schema", lambda self: None)
        return make_ctx(refinerRepo=REFINER_REPO, **deployed_fields)

    def test_requires_repository(self, make_ctx, deployed_fields, project):
        with pytest.raises(MissingFieldsError) as excinfo:
            deploy_refiner(make_ctx(**deployed_fields))

        assert excinfo.value.fields == ["refinerRepo"]
        assert Step.REFINER_CONFIGURED.value in DeploymentStateManager(project).errors

    def test_manual_deployment_with_refiner_id_zero(self, refiner_ctx, project, monkeypatch):
        monkeypatch.setattr(prompts, "select", answers(["manual"]))
        monkeypatch.setattr(prompts, "ask_text", answers([SCHEMA_URL, REFINER_URL, "0"]))

        assert deploy_refiner(refiner_ctx) == 0

        saved = DeploymentStateManager(project)
        assert saved.get("refinerId") == 0
        assert saved.get("schemaUrl") == SCHEMA_URL
        assert saved.get("refinerUrl") == REFINER_URL
        for step in (Step.REFINER_CONFIGURED, Step.REFINER_PUBLISHED, Step.REFINER_GIT_SETUP):
            assert saved.state[step.value] is True
        assert read_env(project / "ui" / ".env")["REFINER_ID"] == "0"
        assert read_env(project / "refiner" / ".env")["REFINEMENT_ENCRYPTION_KEY"] == "0xrefinementkey"

    def test_automatic_deployment_registers_on_chain(self, refiner_ctx, chain, project, monkeypatch):
        chain.receipt = refiner_added_receipt(8)
        monkeypatch.setattr(refiner, "push_component", lambda path: True)
        monkeypatch.setattr(prompts, "select", answers(["auto"]))
        monkeypatch.setattr(prompts, "confirm", answers([True]))
        monkeypatch.setattr(prompts, "ask_text", answers([SCHEMA_URL, REFINER_URL]))

        assert deploy_refiner(refiner_ctx) == 8
        assert DeploymentStateManager(project).get("refinerId") == 8
        assert chain.transactions[0]["function"] == "addRefiner"

    def test_automatic_deployment_falls_back_to_manual_registration(self, refiner_ctx, chain, project, monkeypatch):
        chain.failures["addRefiner"] = ValueError("execution reverted")
        monkeypatch.setattr(refiner, "push_component", lambda path: True)
        monkeypatch.setattr(prompts, "select", answers(["auto"]))
        monkeypatch.setattr(prompts, "confirm", answers([True, True]))
        monkeypatch.setattr(prompts, "ask_text", answers([SCHEMA_URL, REFINER_URL, "11"]))

        assert deploy_refiner(refiner_ctx) == 11
        assert DeploymentStateManager(project).get("refinerId") == 11

    def test_no_build_available_is_recorded(self, refiner_ctx, project, monkeypatch):
        monkeypatch.setattr(refiner, "push_component", lambda path: True)
        monkeypatch.setattr(prompts, "select", answers(["auto"]))
        monkeypatch.setattr(prompts, "confirm", answers([False]))

        with pytest.raises(DataDAOError):
            deploy_refiner(refiner_ctx)

        assert Step.REFINER_CONFIGURED.value in DeploymentStateManager(project).errors

    def test_skip(self, refiner_ctx, project, monkeypatch):
        monkeypatch.setattr(prompts, "select", answers(["skip"]))

        assert deploy_refiner(refiner_ctx) is None

        saved = DeploymentStateManager(project)
        assert saved.state[Step.REFINER_CONFIGURED.value] is True
        assert saved.state[Step.REFINER_PUBLISHED.value] is False
        assert "refinerId" not in saved.data
