"""
Configuration for the DataDAO toolkit.

Two layers live here. ``ToolkitSettings`` holds process-level knobs read from
the environment (network, RPC override, quick mode, polling cadence).
``ProjectConfig`` holds the answers collected by ``setup``: the DataDAO
identity, the deployer wallet and the third-party credentials, and knows how
to project them into the ``.env`` files of each template component.
"""

import os
import secrets
import string
import time
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, validator

from .network import DEFAULT_REFINEMENT_ENDPOINT, NetworkConfig, get_network

_BASE36 = string.digits + string.ascii_lowercase


def _env_flag(value: Optional[str]) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class ToolkitSettings(BaseModel):
    """Process-level settings, usually sourced from environment variables."""

    network: str = Field(default="moksha", description="Network profile name")
    rpc_url: Optional[str] = Field(default=None, description="Override for the network RPC endpoint")
    quick_mode: bool = Field(default=False, description="Skip confirmations and prefer automated paths")
    refinement_endpoint: str = Field(
        default=DEFAULT_REFINEMENT_ENDPOINT,
        description="Refinement service used by the contributor UI"
    )
    registration_poll_interval: float = Field(
        default=3.0, ge=0, description="Seconds between dlpId checks after manual registration"
    )
    key_poll_interval: float = Field(
        default=30.0, ge=0, description="Seconds between encryption key checks"
    )
    key_poll_attempts: int = Field(default=60, gt=0, description="Encryption key checks before giving up")
    min_deploy_balance: float = Field(default=0.1, ge=0, description="VANA needed to deploy contracts")
    min_registration_balance: float = Field(default=1.1, ge=0, description="VANA needed to register")

    class Config:
        """Pydantic configuration."""
        validate_assignment = True

    @validator('network')
    def validate_network(cls, v):
        try:
            get_network(v)
        except KeyError as e:
            raise ValueError(str(e))
        return v

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ToolkitSettings":
        """Build settings from ``DATADAO_*`` environment variables."""
        env = os.environ if env is None else env
        values: Dict[str, object] = {}
        if env.get("DATADAO_NETWORK"):
            values["network"] = env["DATADAO_NETWORK"]
        if env.get("DATADAO_RPC_URL"):
            values["rpc_url"] = env["DATADAO_RPC_URL"]
        if env.get("QUICK_MODE"):
            values["quick_mode"] = _env_flag(env["QUICK_MODE"])
        if env.get("REFINEMENT_ENDPOINT"):
            values["refinement_endpoint"] = env["REFINEMENT_ENDPOINT"]
        if env.get("DATADAO_POLL_INTERVAL"):
            values["registration_poll_interval"] = float(env["DATADAO_POLL_INTERVAL"])
        if env.get("DATADAO_KEY_POLL_INTERVAL"):
            values["key_poll_interval"] = float(env["DATADAO_KEY_POLL_INTERVAL"])
        return cls(**values)

    def get_network(self) -> NetworkConfig:
        return get_network(self.network).with_rpc(self.rpc_url)


def generate_token_salt(symbol: str) -> str:
    """Unique salt for the token deployment: ``<symbol>-<epoch ms>-<6 base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{symbol}-{int(time.time() * 1000)}-{suffix}"


class ProjectConfig(BaseModel):
    """Answers collected during ``setup``."""

    dlp_name: str = Field(default="QuickstartDAO", min_length=1, description="DataDAO name")
    token_name: str = Field(default="QuickToken", min_length=1, description="ERC-20 token name")
    token_symbol: str = Field(default="QTKN", min_length=1, description="ERC-20 token symbol")
    private_key: str = Field(..., description="Deployer private key (0x-prefixed)")
    address: str = Field(..., description="Deployer wallet address")
    public_key: str = Field(..., description="Deployer public key, used as the DLP public key")
    pinata_api_key: str = Field(..., min_length=1, description="Pinata API key")
    pinata_api_secret: str = Field(..., min_length=1, description="Pinata API secret")
    google_client_id: str = Field(..., min_length=1, description="Google OAuth client id")
    google_client_secret: str = Field(..., min_length=1, description="Google OAuth client secret")
    refinement_endpoint: str = Field(default=DEFAULT_REFINEMENT_ENDPOINT)

    class Config:
        """Pydantic configuration."""
        validate_assignment = True

    @validator('private_key', 'public_key')
    def validate_hex_prefix(cls, v):
        if not v.startswith('0x'):
            raise ValueError('Value must start with 0x')
        return v

    @validator('address')
    def validate_address(cls, v):
        if not v.startswith('0x') or len(v) != 42:
            raise ValueError('Invalid wallet address format')
        return v

    def contracts_env(self, salt: Optional[str] = None) -> Dict[str, str]:
        return {
            "DEPLOYER_PRIVATE_KEY": self.private_key,
            "OWNER_ADDRESS": self.address,
            "DLP_NAME": self.dlp_name,
            "DLP_PUBLIC_KEY": self.public_key,
            "DLP_TOKEN_NAME": self.token_name,
            "DLP_TOKEN_SYMBOL": self.token_symbol,
            "DLP_TOKEN_SALT": salt or generate_token_salt(self.token_symbol),
        }

    def refiner_env(self) -> Dict[str, str]:
        return {
            "PINATA_API_KEY": self.pinata_api_key,
            "PINATA_API_SECRET": self.pinata_api_secret,
        }

    def ui_env(self) -> Dict[str, str]:
        return {
            "GOOGLE_CLIENT_ID": self.google_client_id,
            "GOOGLE_CLIENT_SECRET": self.google_client_secret,
            "PINATA_API_KEY": self.pinata_api_key,
            "PINATA_API_SECRET": self.pinata_api_secret,
            "REFINEMENT_ENDPOINT": self.refinement_endpoint,
        }

    def to_deployment(self) -> Dict[str, str]:
        """Initial ``deployment.json`` content (camelCase keys)."""
        return {
            "dlpName": self.dlp_name,
            "tokenName": self.token_name,
            "tokenSymbol": self.token_symbol,
            "address": self.address,
            "publicKey": self.public_key,
            "pinataApiKey": self.pinata_api_key,
            "pinataApiSecret": self.pinata_api_secret,
            "googleClientId": self.google_client_id,
            "googleClientSecret": self.google_client_secret,
        }
