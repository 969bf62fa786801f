"""HTTP clients for the TEE proof service and the refinement service."""

import time
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from ..exceptions import DataDAOError
from .crypto import SIGN_MESSAGE, encryption_parameters


class ServiceError(DataDAOError):
    """A TEE or refinement request failed."""


def build_proof_request(
    job_id: int,
    file_id: int,
    proof_url: str,
    dlp_address: str,
    dlp_public_key: str,
    signature: str,
    google_token: str,
    nonce: Optional[str] = None,
) -> Dict[str, Any]:
    """Body of a ``RunProof`` request."""
    params = encryption_parameters()
    return {
        "job_id": job_id,
        "file_id": file_id,
        "nonce": nonce or str(int(time.time() * 1000)),
        "proof_url": proof_url,
        "encryption_seed": SIGN_MESSAGE,
        "env_vars": {"GOOGLE_TOKEN": google_token},
        "validate_permissions": [
            {
                "address": dlp_address,
                "public_key": dlp_public_key,
                "iv": params["iv"],
                "ephemeral_key": params["ephemeral_key"],
            }
        ],
        "encryption_key": signature,
    }


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class TeeClient:
    """Runs proofs on the TEE assigned to a job."""

    def __init__(self, client: Optional[httpx.Client] = None, timeout: float = 300):
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def run_proof(self, tee_url: str, body: Dict[str, Any]) -> Any:
        logger.debug(f"POST {tee_url}/RunProof job={body.get('job_id')} file={body.get('file_id')}")
        response = self.client.post(f"{tee_url.rstrip('/')}/RunProof", json=body)
        if response.status_code >= 400:
            raise ServiceError(f"TEE request failed: {_json_or_text(response)}")
        return response.json()


class RefinementClient:
    """Submits contributed files to the refinement service."""

    def __init__(
        self,
        endpoint: str,
        pinata_api_key: Optional[str] = None,
        pinata_api_secret: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 300,
    ):
        if not endpoint:
            raise ServiceError("Refinement endpoint not configured")
        self.endpoint = endpoint.rstrip("/")
        self.pinata_api_key = pinata_api_key
        self.pinata_api_secret = pinata_api_secret
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def refine(self, file_id: int, encryption_key: str, refiner_id: Optional[int] = None) -> Any:
        """
        Ask the refinement service to refine a registered file.

        Raises:
            ServiceError: On missing parameters or an error response
        """
        if file_id is None or not encryption_key:
            raise ServiceError("Missing required parameters: file_id or encryption_key")

        payload = {
            "file_id": file_id,
            "encryption_key": encryption_key,
            "refiner_id": refiner_id,
            "env_vars": {
                "PINATA_API_KEY": self.pinata_api_key,
                "PINATA_API_SECRET": self.pinata_api_secret,
            },
        }
        response = self.client.post(f"{self.endpoint}/refine", json=payload)
        data = _json_or_text(response)
        if response.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise ServiceError(message or f"Refinement request failed: {response.status_code}")
        return data
