"""IPFS pinning through Pinata."""

import json
from pathlib import Path
from typing import Optional, Union

import httpx
from loguru import logger

from ..exceptions import DataDAOError

PINATA_API_URL = "https://api.pinata.cloud"
PINATA_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs"


class PinataError(DataDAOError):
    """Pinata rejected or failed an upload."""


class IPFSClient:
    """
    Pinata client used to publish refiner schemas.

    Files are pinned with ``pinFileToIPFS`` and served from the public Pinata
    gateway.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        api_url: str = PINATA_API_URL,
        gateway_url: str = PINATA_GATEWAY_URL,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize IPFS client."""
        if not api_key or not api_secret:
            raise PinataError("Pinata API key and secret are required")
        self.api_url = api_url.rstrip('/')
        self.gateway_url = gateway_url.rstrip('/')
        self._client = client or httpx.Client(timeout=60)
        self._headers = {
            "pinata_api_key": api_key,
            "pinata_secret_api_key": api_secret,
        }
        logger.debug(f"Initialized Pinata client with API: {self.api_url}")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "IPFSClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def gateway_link(self, cid: str) -> str:
        return f"{self.gateway_url}/{cid}"

    def pin_file(self, path: Union[str, Path], name: Optional[str] = None) -> str:
        """
        Upload a file to IPFS and pin it.

        Args:
            path: File to upload
            name: Pin name shown in the Pinata dashboard (defaults to the file name)

        Returns:
            IPFS CID

        Raises:
            PinataError: If the upload is rejected or fails
        """
        path = Path(path)
        if not path.exists():
            raise PinataError(f"File not found: {path}")

        metadata = json.dumps({"name": name or path.name})
        with path.open("rb") as fh:
            try:
                response = self._client.post(
                    f"{self.api_url}/pinning/pinFileToIPFS",
                    headers=self._headers,
                    files={"file": (path.name, fh, "application/json")},
                    data={"pinataMetadata": metadata},
                )
            except httpx.HTTPError as e:
                raise PinataError(f"Pinata upload failed: network error: {e}") from e

        if response.status_code == 401:
            raise PinataError("Pinata upload failed: 401 Unauthorized (check Pinata API credentials)")
        if response.status_code != 200:
            raise PinataError(f"Pinata upload failed: {response.status_code} {response.text}")

        cid = response.json()["IpfsHash"]
        logger.info(f"Pinned {path.name} to IPFS: {cid}")
        return cid

    def upload_file(self, path: Union[str, Path], name: Optional[str] = None) -> str:
        """Pin a file and return its public gateway URL."""
        return self.gateway_link(self.pin_file(path, name))
