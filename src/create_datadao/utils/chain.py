"""
JSON-RPC access to the Vana network.

``ChainClient`` wraps a web3 connection for one network profile and an
optional signing wallet. Reads go through ``call``; writes through
``transact``, which builds, signs, sends and (optionally) waits for the
receipt of a contract transaction.
"""

import re
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger
from pydantic import BaseModel, Field
from web3 import Web3

from ..base.network import NetworkConfig
from ..exceptions import ContractCallError
from .wallet import WalletManager

OPENCHAIN_LOOKUP_URL = "https://api.openchain.xyz/signature-database/v1/lookup"
_SELECTOR_RE = re.compile(r"0x[0-9a-fA-F]{8}")


class BalanceCheck(BaseModel):
    """Outcome of a wallet balance check."""

    address: str = Field(..., description="Checked wallet")
    balance: Optional[float] = Field(default=None, description="Balance in VANA, None when the RPC failed")
    required: float = Field(..., description="Minimum balance in VANA")

    @property
    def known(self) -> bool:
        return self.balance is not None

    @property
    def sufficient(self) -> bool:
        """Unknown balances count as sufficient so an RPC hiccup never blocks a step."""
        return self.balance is None or self.balance >= self.required


class ChainClient:
    """Web3 connection bound to a network profile and an optional wallet."""

    def __init__(
        self,
        network: NetworkConfig,
        wallet: Optional[WalletManager] = None,
        w3: Optional[Web3] = None,
        receipt_timeout: int = 180,
    ):
        self.network = network
        self.wallet = wallet
        self.w3 = w3 or Web3(Web3.HTTPProvider(network.rpc_url, request_kwargs={"timeout": 30}))
        self.receipt_timeout = receipt_timeout
        logger.debug(f"Chain client for {network.display_name} via {network.rpc_url}")

    @classmethod
    def with_private_key(cls, network: NetworkConfig, private_key: str, **kwargs) -> "ChainClient":
        return cls(network, wallet=WalletManager(private_key), **kwargs)

    @property
    def address(self) -> str:
        if not self.wallet:
            raise ContractCallError("No wallet configured for signing")
        return self.wallet.address

    def contract(self, address: str, abi: Sequence[Dict[str, Any]]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # ---------- Balances ----------

    def get_balance(self, address: Optional[str] = None) -> float:
        """Native balance in VANA."""
        address = Web3.to_checksum_address(address or self.address)
        balance_wei = self.w3.eth.get_balance(address)
        return float(Web3.from_wei(balance_wei, 'ether'))

    def check_balance(self, minimum: float, address: Optional[str] = None) -> BalanceCheck:
        """
        Compare a wallet's balance with ``minimum``.

        RPC failures are logged and reported as an unknown balance.
        """
        address = address or self.address
        try:
            balance = self.get_balance(address)
        except Exception as e:
            logger.warning(f"Could not check balance of {address}: {e}")
            balance = None
        return BalanceCheck(address=address, balance=balance, required=minimum)

    # ---------- Reads ----------

    def call(self, address: str, abi: Sequence[Dict[str, Any]], function: str, *args: Any) -> Any:
        """Call a view function."""
        logger.debug(f"call {function}{args} on {address}")
        return getattr(self.contract(address, abi).functions, function)(*args).call()

    # ---------- Writes ----------

    def estimate_gas(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        function: str,
        *args: Any,
        value: int = 0,
    ) -> int:
        fn = getattr(self.contract(address, abi).functions, function)(*args)
        return fn.estimate_gas({"from": self.address, "value": value})

    def transact(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        function: str,
        *args: Any,
        value: int = 0,
        gas: Optional[int] = None,
        wait: bool = True,
    ) -> Dict[str, Any]:
        """
        Sign and send a contract transaction.

        Args:
            address: Contract address
            abi: Contract ABI
            function: Function name
            *args: Function arguments
            value: Wei sent with the call
            gas: Gas limit; estimated by the node when omitted
            wait: Wait for the receipt

        Returns:
            Dict with ``tx_hash`` and, when waited for, ``receipt``

        Raises:
            ContractCallError: If the transaction reverts
        """
        if not self.wallet:
            raise ContractCallError("No wallet configured for signing")

        fn = getattr(self.contract(address, abi).functions, function)(*args)
        params: Dict[str, Any] = {
            "from": self.address,
            "value": value,
            "nonce": self.w3.eth.get_transaction_count(self.address),
            "chainId": self.network.chain_id,
        }
        if gas is not None:
            params["gas"] = gas

        transaction = fn.build_transaction(params)
        raw = self.wallet.sign_transaction(transaction)
        tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(raw))
        logger.info(f"Sent {function} transaction: {tx_hash}")

        result: Dict[str, Any] = {"tx_hash": tx_hash}
        if wait:
            receipt = self.wait_for_receipt(tx_hash)
            result["receipt"] = receipt
        return result

    def wait_for_receipt(self, tx_hash: str, timeout: Optional[int] = None):
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout or self.receipt_timeout)
        if receipt["status"] != 1:
            raise ContractCallError(f"Transaction {tx_hash} reverted")
        logger.success(f"Transaction confirmed in block {receipt['blockNumber']}")
        return receipt


def extract_error_selector(message: str) -> Optional[str]:
    """First 4-byte error selector (``0x`` + 8 hex) found in an error message."""
    match = _SELECTOR_RE.search(message)
    return match.group(0) if match else None


def decode_error_signature(selector: str, client: Optional[httpx.Client] = None) -> str:
    """
    Look up a custom error selector in the openchain signature database.

    Returns:
        The error signature, or ``Unknown error signature: <selector>``
    """
    owns_client = client is None
    client = client or httpx.Client(timeout=10)
    try:
        response = client.get(OPENCHAIN_LOOKUP_URL, params={"function": selector, "filter": "true"})
        if response.status_code == 200:
            functions = (response.json().get("result") or {}).get("function") or {}
            matches: List[Dict[str, Any]] = functions.get(selector) or []
            if matches:
                return matches[0]["name"]
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.debug(f"Signature lookup for {selector} failed: {e}")
    finally:
        if owns_client:
            client.close()
    return f"Unknown error signature: {selector}"
