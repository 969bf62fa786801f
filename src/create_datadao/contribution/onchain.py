"""Contract calls made on behalf of a contributor."""

from typing import Any, List, Mapping, Optional, Tuple

from loguru import logger
from web3 import Web3

from ..base.network import ContractName
from ..contracts import DATA_REGISTRY_ABI, DLP_ABI, TEE_POOL_ABI
from ..exceptions import ContractCallError
from ..utils.chain import ChainClient
from .models import TeeDetails

FILE_ADDED_TOPIC = Web3.keccak(text="FileAdded(uint256,address,string)")

# Positions in the jobs() and tees() return tuples.
_JOB_TEE_ADDRESS = 5
_TEE_URL = 1
_TEE_PUBLIC_KEY = 6


def _as_bytes(value: Any) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value) if isinstance(value, str) else bytes(value)


def extract_file_id(receipt: Mapping[str, Any], registry_address: str) -> int:
    """
    Data registry file id from the ``FileAdded`` event of an ``addFileWithPermissions`` receipt.

    Raises:
        ContractCallError: If the receipt has no such event
    """
    logs = receipt.get("logs") or []
    if not logs:
        raise ContractCallError("Transaction receipt has no logs")
    for log in logs:
        if str(log["address"]).lower() != registry_address.lower():
            continue
        topics = log.get("topics") or []
        if len(topics) >= 2 and _as_bytes(topics[0]) == bytes(FILE_ADDED_TOPIC):
            return int.from_bytes(_as_bytes(topics[1]), "big")
    raise ContractCallError("No FileAdded event found in transaction receipt")


class ContributionContracts:
    """Data registry, TEE pool and DataDAO calls signed by the contributor's wallet."""

    def __init__(self, chain: ChainClient, dlp_address: str):
        self.chain = chain
        self.dlp_address = dlp_address
        self.data_registry = chain.network.contract_address(ContractName.DATA_REGISTRY)
        self.tee_pool = chain.network.contract_address(ContractName.TEE_POOL)

    def dlp_public_key(self) -> str:
        return self.chain.call(self.dlp_address, DLP_ABI, "publicKey")

    def add_file(self, url: str, encrypted_key: str) -> Tuple[int, Any]:
        """
        Register a file and grant the DataDAO its decryption key.

        Returns:
            ``(file_id, receipt)``
        """
        permissions = [(Web3.to_checksum_address(self.dlp_address), encrypted_key)]
        result = self.chain.transact(
            self.data_registry, DATA_REGISTRY_ABI, "addFileWithPermissions",
            url, self.chain.address, permissions,
        )
        receipt = result["receipt"]
        file_id = extract_file_id(receipt, self.data_registry)
        logger.info(f"File registered with id {file_id}")
        return file_id, receipt

    def request_contribution_proof(self, file_id: int) -> str:
        result = self.chain.transact(self.tee_pool, TEE_POOL_ABI, "requestContributionProof", file_id)
        return result["tx_hash"]

    def file_job_ids(self, file_id: int) -> List[int]:
        try:
            return [int(j) for j in self.chain.call(self.tee_pool, TEE_POOL_ABI, "fileJobIds", file_id)]
        except Exception as e:
            raise ContractCallError(f"Failed to get job IDs for file: {e}")

    def tee_details(self, job_id: int) -> TeeDetails:
        try:
            job = self.chain.call(self.tee_pool, TEE_POOL_ABI, "jobs", job_id)
            tee_address = job[_JOB_TEE_ADDRESS] if job else None
            if not tee_address or int(tee_address, 16) == 0:
                raise ContractCallError("Job not found or missing TEE address")
            tee = self.chain.call(self.tee_pool, TEE_POOL_ABI, "tees", tee_address)
            if not tee:
                raise ContractCallError("TEE information not found")
        except ContractCallError:
            raise
        except Exception as e:
            raise ContractCallError(f"Failed to get TEE details for job: {e}")
        return TeeDetails(tee_url=tee[_TEE_URL], tee_public_key=tee[_TEE_PUBLIC_KEY], tee_address=tee_address)

    def request_reward(self, file_id: int, proof_index: int = 1) -> Optional[str]:
        result = self.chain.transact(self.dlp_address, DLP_ABI, "requestReward", file_id, proof_index)
        return result["tx_hash"]
