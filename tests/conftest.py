"""
Shared fixtures for the create-datadao test suite.

Every test gets a throwaway project directory laid out like a generated
DataDAO project (deployment.json plus contracts/, refiner/ and ui/ with
their .env files), console output captured in memory and a fake chain
client so no RPC endpoint is ever contacted.
"""

import io
import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List

import pytest
from rich.console import Console

from create_datadao.base.config import ToolkitSettings
from create_datadao.base.network import MOKSHA
from create_datadao.base.state import Step
from create_datadao.steps.common import StepContext
from create_datadao.utils.chain import BalanceCheck
from create_datadao.utils.output import output

# Well-known test key; never holds funds.
PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OWNER = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

TOKEN_ADDRESS = "0x" + "11" * 20
PROXY_ADDRESS = "0x" + "22" * 20
VESTING_ADDRESS = "0x" + "33" * 20
TX_HASH = "0x" + "ab" * 32


def base_deployment(**fields: Any) -> Dict[str, Any]:
    """deployment.json as written by setup, with every step pending."""
    data: Dict[str, Any] = {
        "dlpName": "TestDAO",
        "tokenName": "TestToken",
        "tokenSymbol": "TST",
        "address": OWNER,
        "publicKey": "0x" + "ab" * 64,
        "pinataApiKey": "pinata-key-1234",
        "pinataApiSecret": "pinata-secret",
        "googleClientId": "1234567890-abcdefghijklmnop.apps.googleusercontent.com",
        "googleClientSecret": "google-secret",
        "state": {step.value: False for step in Step},
    }
    data.update(fields)
    return data


def write_deployment(root: Path, data: Dict[str, Any]) -> Path:
    path = root / "deployment.json"
    path.write_text(json.dumps(data, indent=2))
    return path


class FakeChain:
    """
    Stand-in for ``ChainClient``.

    ``responses`` maps a view function name to a value, or to a callable
    receiving the call arguments. ``failures`` maps a function name to the
    exception it raises.
    """

    def __init__(self, network=MOKSHA, address: str = OWNER):
        self.network = network
        self.address = address
        self.balance = 10.0
        self.responses: Dict[str, Any] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.transactions: List[Dict[str, Any]] = []
        self.receipt: Dict[str, Any] = {"status": 1, "blockNumber": 100, "gasUsed": 21000, "logs": []}

    def call(self, address: str, abi, function: str, *args: Any) -> Any:
        self.calls.append((function, args))
        if function in self.failures:
            raise self.failures[function]
        value = self.responses.get(function)
        return value(*args) if callable(value) else value

    def estimate_gas(self, address: str, abi, function: str, *args: Any, value: int = 0) -> int:
        return 150000

    def transact(self, address: str, abi, function: str, *args: Any, value: int = 0, gas=None, wait: bool = True):
        self.transactions.append({"address": address, "function": function, "args": args, "value": value, "gas": gas})
        if function in self.failures:
            raise self.failures[function]
        return {"tx_hash": TX_HASH, "receipt": self.receipt}

    def check_balance(self, minimum: float, address: str = None) -> BalanceCheck:
        return BalanceCheck(address=address or self.address, balance=self.balance, required=minimum)


def answers(values: Iterable[Any]) -> Callable[..., Any]:
    """Prompt replacement returning ``values`` one per call."""
    remaining = iter(values)
    return lambda *args, **kwargs: next(remaining)


@pytest.fixture(autouse=True)
def console_output():
    """Capture everything printed through the shared OutputManager."""
    buffer = io.StringIO()
    previous = output.console
    output.use_console(Console(file=buffer, width=200, highlight=False))
    output.set_quiet(False)
    yield buffer
    output.use_console(previous)
    output.set_quiet(False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A freshly set-up DataDAO project."""
    for component in ("contracts", "refiner", "ui", "proof"):
        (tmp_path / component).mkdir()
    (tmp_path / "contracts" / ".env").write_text(f"DEPLOYER_PRIVATE_KEY={PRIVATE_KEY}\nOWNER_ADDRESS={OWNER}\n")
    (tmp_path / "refiner" / ".env").write_text("PINATA_API_KEY=pinata-key-1234\nPINATA_API_SECRET=pinata-secret\n")
    (tmp_path / "ui" / ".env").write_text("GOOGLE_CLIENT_ID=client\nPINATA_API_KEY=pinata-key-1234\n")
    write_deployment(tmp_path, base_deployment())
    return tmp_path


@pytest.fixture
def settings() -> ToolkitSettings:
    return ToolkitSettings(registration_poll_interval=0, key_poll_interval=0, key_poll_attempts=2)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def make_ctx(project: Path, settings: ToolkitSettings, chain: FakeChain):
    """Build a StepContext after adjusting deployment.json."""
    def factory(**fields: Any) -> StepContext:
        if fields:
            write_deployment(project, base_deployment(**fields))
        return StepContext(project, settings=settings, chain=chain)
    return factory


@pytest.fixture
def ctx(make_ctx) -> StepContext:
    return make_ctx()


@pytest.fixture
def deployed_fields() -> Dict[str, Any]:
    """Fields present once contracts are deployed and the DataDAO is registered."""
    return {
        "tokenAddress": TOKEN_ADDRESS,
        "proxyAddress": PROXY_ADDRESS,
        "contracts": {"tokenAddress": TOKEN_ADDRESS, "proxyAddress": PROXY_ADDRESS},
        "dlpId": 5,
    }
