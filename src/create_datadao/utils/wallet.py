"""Wallet management for DataDAO deployers and contributors."""

from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from loguru import logger
from web3 import Web3


class WalletManager:
    """
    Holds one local account and signs with it.

    Used for the deployer wallet (contract transactions) and for the
    contributor wallet (the encryption-key signature and file registration).
    """

    def __init__(self, private_key: Optional[str] = None):
        """Initialize wallet manager from a private key, or generate a new wallet."""
        self._account = None

        if private_key:
            self._init_from_private_key(private_key)
        else:
            self._generate_new_wallet()

    def _init_from_private_key(self, private_key: str) -> None:
        private_key = private_key.strip()
        if not private_key.startswith('0x'):
            private_key = '0x' + private_key

        try:
            self._account = Account.from_key(private_key)
            logger.debug(f"Initialized wallet from private key: {self.address}")
        except Exception as e:
            logger.error(f"Failed to initialize wallet from private key: {e}")
            raise ValueError(f"Invalid private key: {e}") from e

    def _generate_new_wallet(self) -> None:
        self._account = Account.create()
        logger.info(f"Generated new wallet: {self.address}")

    @property
    def account(self):
        if not self._account:
            raise ValueError("Wallet not initialized")
        return self._account

    @property
    def address(self) -> str:
        """Checksummed wallet address."""
        return self.account.address

    @property
    def public_key(self) -> str:
        """Uncompressed public key (64 bytes, 0x-prefixed hex, no 0x04 marker)."""
        return keys.PrivateKey(bytes(self.account.key)).public_key.to_hex()

    def sign_message(self, message: str) -> str:
        """
        Sign a text message (EIP-191 personal_sign).

        Args:
            message: The message to sign

        Returns:
            0x-prefixed hex signature
        """
        signed_message = self.account.sign_message(encode_defunct(text=message))
        return Web3.to_hex(signed_message.signature)

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw transaction bytes."""
        signed_txn = self.account.sign_transaction(transaction)
        return signed_txn.raw_transaction
