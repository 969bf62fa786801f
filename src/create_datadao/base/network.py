"""
Vana network profiles and well-known contract addresses.

Every DataDAO deployment targets one network profile. The profile carries the
chain id, the RPC endpoint, the block explorer and the addresses of the
protocol contracts the toolkit talks to (DLP registry, query engine, refiner
registry, data registry and TEE pool).
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, validator

FAUCET_URL = "https://faucet.vana.org"
DEFAULT_REFINEMENT_ENDPOINT = (
    "https://a7df0ae43df690b889c1201546d7058ceb04d21b-8000.dstack-prod5.phala.network"
)
DEFAULT_DLP_ADDRESS = "0x0161DFbf70a912668dd1B4365b43c1348e8bD3ab"


class ContractName(str, Enum):
    """Protocol contracts shared by every DataDAO on a network."""
    DLP_REGISTRY = "dlp_registry"
    QUERY_ENGINE = "query_engine"
    REFINER_REGISTRY = "refiner_registry"
    DATA_REGISTRY = "data_registry"
    TEE_POOL = "tee_pool"


_PROTOCOL_ADDRESSES: Dict[ContractName, str] = {
    ContractName.DLP_REGISTRY: "0x4D59880a924526d1dD33260552Ff4328b1E18a43",
    ContractName.QUERY_ENGINE: "0xd25Eb66EA2452cf3238A2eC6C1FD1B7F5B320490",
    ContractName.REFINER_REGISTRY: "0x93c3EF89369fDcf08Be159D9DeF0F18AB6Be008c",
    ContractName.DATA_REGISTRY: "0x8C8788f98385F6ba1adD4234e551ABba0f82Cb7C",
    ContractName.TEE_POOL: "0xE8EC6BD73b23Ad40E6B9a6f4bD343FAc411bD99A",
}


class NetworkConfig(BaseModel):
    """Connection details for one Vana network."""

    name: str = Field(..., description="Short network name used on the command line")
    display_name: str = Field(..., description="Human-readable network name")
    chain_id: int = Field(..., description="EVM chain id")
    rpc_url: str = Field(..., description="JSON-RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer base URL")
    currency: str = Field(default="VANA", description="Native currency symbol")
    deploy_network: str = Field(..., description="Network name passed to the contract deployment tool")
    contracts: Dict[ContractName, str] = Field(
        default_factory=lambda: dict(_PROTOCOL_ADDRESSES),
        description="Protocol contract addresses"
    )

    @validator('chain_id')
    def validate_chain_id(cls, v):
        if v <= 0:
            raise ValueError('Chain ID must be positive')
        return v

    @validator('rpc_url', 'explorer_url')
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    def contract_address(self, contract: ContractName) -> str:
        """Address of a protocol contract on this network."""
        try:
            return self.contracts[ContractName(contract)]
        except (KeyError, ValueError):
            raise KeyError(f"No address for contract '{contract}' on {self.display_name}")

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"

    def tx_url(self, tx_hash: str) -> str:
        if not tx_hash.startswith('0x'):
            tx_hash = '0x' + tx_hash
        return f"{self.explorer_url}/tx/{tx_hash}"

    def write_proxy_url(self, address: str) -> str:
        """Explorer page for calling a proxy contract's write functions by hand."""
        return f"{self.address_url(address)}?tab=write_proxy"

    def with_rpc(self, rpc_url: Optional[str]) -> "NetworkConfig":
        """Copy of this profile with an overridden RPC endpoint."""
        if not rpc_url:
            return self
        data = self.model_dump()
        data["rpc_url"] = rpc_url
        return NetworkConfig(**data)


MOKSHA = NetworkConfig(
    name="moksha",
    display_name="Vana Moksha Testnet",
    chain_id=14800,
    rpc_url="https://rpc.moksha.vana.org",
    explorer_url="https://moksha.vanascan.io",
    deploy_network="moksha",
)

MAINNET = NetworkConfig(
    name="mainnet",
    display_name="Vana Mainnet",
    chain_id=1480,
    rpc_url="https://rpc.vana.org",
    explorer_url="https://vanascan.io",
    deploy_network="vana",
)

NETWORKS: Dict[str, NetworkConfig] = {MOKSHA.name: MOKSHA, MAINNET.name: MAINNET}


def get_network(name_or_chain_id) -> NetworkConfig:
    """
    Look up a network profile by name or chain id.

    Raises:
        KeyError: If the network is unknown
    """
    if isinstance(name_or_chain_id, int):
        for network in NETWORKS.values():
            if network.chain_id == name_or_chain_id:
                return network
    elif name_or_chain_id in NETWORKS:
        return NETWORKS[name_or_chain_id]
    raise KeyError(f"Unknown network: {name_or_chain_id}")
