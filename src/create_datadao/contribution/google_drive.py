"""Google account and Drive access for contributors, over the REST APIs."""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from ..exceptions import DataDAOError
from .crypto import client_side_encrypt, format_vana_file_id
from .models import DriveInfo, UploadResult, UserInfo

USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files?uploadType=multipart"
FOLDER_NAME = "VANA DLP Data"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class GoogleAPIError(DataDAOError):
    """A Google API request failed."""


def download_link(file_id: str) -> str:
    return f"https://drive.google.com/uc?export=download&id={file_id}"


def build_data_package(user: UserInfo, drive: Optional[DriveInfo], timestamp: int) -> Dict[str, Any]:
    """The profile document a contributor submits."""
    package: Dict[str, Any] = {
        "userId": user.id or "unknown",
        "email": user.email,
        "timestamp": timestamp,
        "profile": {"name": user.name, "locale": user.locale or "en"},
    }
    if drive is not None:
        package["storage"] = {"percentUsed": drive.percent_used}
    package["metadata"] = {
        "source": "Google",
        "collectionDate": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "dataType": "profile",
    }
    return package


class GoogleDriveClient:
    """Calls Google APIs with a contributor's OAuth access token."""

    def __init__(self, access_token: str, client: Optional[httpx.Client] = None):
        if not access_token:
            raise GoogleAPIError("Google access token is required")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=60)
        self.headers = {"Authorization": f"Bearer {access_token}"}
        self.access_token = access_token

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "GoogleDriveClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _check(self, response: httpx.Response, what: str) -> Dict[str, Any]:
        if response.status_code >= 400:
            raise GoogleAPIError(f"{what} failed: {response.status_code} {response.text}")
        return response.json()

    def get_user_info(self) -> UserInfo:
        data = self._check(self.client.get(USERINFO_URL, headers=self.headers), "Fetching user info")
        return UserInfo(id=data.get("sub"), name=data.get("name", ""), email=data.get("email", ""),
                        locale=data.get("locale") or "")

    def get_drive_info(self) -> DriveInfo:
        """Storage usage from ``about.storageQuota``."""
        data = self._check(
            self.client.get(f"{DRIVE_API_URL}/about", params={"fields": "storageQuota"}, headers=self.headers),
            "Fetching storage quota",
        )
        quota = data.get("storageQuota")
        if not quota:
            raise GoogleAPIError("Failed to fetch storage quota")
        total = int(quota.get("limit") or 0)
        used = int(quota.get("usage") or 0)
        percent = used / total * 100 if total > 0 else 0
        return DriveInfo(percent_used=round(percent, 2))

    def find_or_create_folder(self, name: str = FOLDER_NAME) -> str:
        params = {
            "q": f"name = '{name}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false",
            "fields": "files(id, name)",
            "pageSize": "1",
        }
        found = self._check(
            self.client.get(f"{DRIVE_API_URL}/files", params=params, headers=self.headers), "Folder search"
        )
        if found.get("files"):
            return found["files"][0]["id"]

        created = self._check(
            self.client.post(
                f"{DRIVE_API_URL}/files",
                json={"name": name, "mimeType": FOLDER_MIME_TYPE},
                headers=self.headers,
            ),
            "Folder creation",
        )
        logger.debug(f"Created Drive folder {name}: {created['id']}")
        return created["id"]

    def file_details(self, file_id: str) -> Dict[str, Any]:
        return self._check(
            self.client.get(
                f"{DRIVE_API_URL}/files/{file_id}",
                params={"fields": "id,name,webViewLink"},
                headers=self.headers,
            ),
            "Fetching file details",
        )

    def upload_file(self, content: bytes, name: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        """Upload bytes in a multipart request; returns id, name and webViewLink."""
        metadata: Dict[str, Any] = {"name": name}
        if folder_id:
            metadata["parents"] = [folder_id]
        files = {
            "metadata": (None, json.dumps(metadata), "application/json"),
            "file": (name, content, "application/octet-stream"),
        }
        uploaded = self._check(
            self.client.post(DRIVE_UPLOAD_URL, files=files, headers=self.headers), "Google Drive upload"
        )
        return self.file_details(uploaded["id"])

    def share_publicly(self, file_id: str) -> Dict[str, Any]:
        """Grant read access to anyone with the link."""
        return self._check(
            self.client.post(
                f"{DRIVE_API_URL}/files/{file_id}/permissions",
                json={"role": "reader", "type": "anyone"},
                headers=self.headers,
            ),
            "Updating permissions",
        )

    def upload_user_data(
        self,
        user: UserInfo,
        signature: str,
        drive: Optional[DriveInfo] = None,
        timestamp: Optional[int] = None,
    ) -> UploadResult:
        """
        Encrypt the contributor's data package with ``signature`` and publish it.

        Returns:
            UploadResult with the public download link and contribution label
        """
        timestamp = int(time.time() * 1000) if timestamp is None else timestamp
        package = build_data_package(user, drive, timestamp)
        encrypted = client_side_encrypt(json.dumps(package).encode(), signature)

        folder_id = self.find_or_create_folder()
        details = self.upload_file(encrypted, f"encrypted_vana_dlp_data_{timestamp}.json", folder_id)
        self.share_publicly(details["id"])

        return UploadResult(
            download_url=download_link(details["id"]),
            file_id=details["id"],
            vana_file_id=format_vana_file_id(details.get("webViewLink") or "", timestamp),
        )
