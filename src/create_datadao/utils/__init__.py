"""Utility modules for the DataDAO toolkit."""

from .chain import BalanceCheck, ChainClient
from .ipfs import IPFSClient
from .output import OutputManager, output
from .wallet import WalletManager

__all__ = ["BalanceCheck", "ChainClient", "IPFSClient", "OutputManager", "output", "WalletManager"]
