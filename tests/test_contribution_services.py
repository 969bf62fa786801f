"""Tests for the Google Drive, TEE and refinement clients and the on-chain contribution calls."""

import json

import httpx
import pytest
from web3 import Web3

from create_datadao.base.network import MOKSHA, ContractName
from create_datadao.contribution import google_drive
from create_datadao.contribution.google_drive import GoogleAPIError, GoogleDriveClient, build_data_package
from create_datadao.contribution.models import DriveInfo, UserInfo
from create_datadao.contribution.onchain import FILE_ADDED_TOPIC, ContributionContracts, extract_file_id
from create_datadao.contribution.services import RefinementClient, ServiceError, TeeClient, build_proof_request
from create_datadao.exceptions import ContractCallError

from .conftest import OWNER, PROXY_ADDRESS, TX_HASH, FakeChain

DATA_REGISTRY = MOKSHA.contract_address(ContractName.DATA_REGISTRY)
TEE_ADDRESS = "0x" + "44" * 20


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def file_added_log(file_id: int, address: str = DATA_REGISTRY):
    return {
        "address": address,
        "topics": [
            Web3.to_hex(FILE_ADDED_TOPIC),
            "0x" + file_id.to_bytes(32, "big").hex(),
            "0x" + "00" * 12 + OWNER[2:].lower(),
        ],
    }


class FakeDrive:
    """Routes Google API requests and remembers what was sent."""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.headers.get("Authorization") != "Bearer token-123":
            return httpx.Response(401, json={"error": "unauthorized"})
        if path == "/v1/userinfo":
            return httpx.Response(200, json={"sub": "42", "name": "Ada", "email": "ada@example.com", "locale": "en"})
        if path == "/drive/v3/about":
            return httpx.Response(200, json={"storageQuota": {"limit": "1000", "usage": "333"}})
        if path == "/drive/v3/files" and request.method == "GET":
            return httpx.Response(200, json={"files": []})
        if path == "/drive/v3/files" and request.method == "POST":
            return httpx.Response(200, json={"id": "folder-1"})
        if path == "/upload/drive/v3/files":
            return httpx.Response(200, json={"id": "file-1"})
        if path == "/drive/v3/files/file-1":
            return httpx.Response(200, json={
                "id": "file-1",
                "name": "encrypted.json",
                "webViewLink": "https://drive.google.com/file/d/file-1/view",
            })
        if path == "/drive/v3/files/file-1/permissions":
            return httpx.Response(200, json={"id": "anyoneWithLink"})
        return httpx.Response(404)


class TestGoogleDrive:
    """Drive REST calls."""

    def test_user_and_storage_info(self):
        with GoogleDriveClient("token-123", client=mock_client(FakeDrive())) as google:
            user = google.get_user_info()
            drive = google.get_drive_info()

        assert user == UserInfo(id="42", name="Ada", email="ada@example.com", locale="en")
        assert drive.percent_used == 33.3

    def test_rejected_token(self):
        google = GoogleDriveClient("expired", client=mock_client(FakeDrive()))

        with pytest.raises(GoogleAPIError, match="401"):
            google.get_user_info()

    def test_token_required(self):
        with pytest.raises(GoogleAPIError):
            GoogleDriveClient("")

    def test_upload_user_data(self, monkeypatch):
        drive_api = FakeDrive()
        monkeypatch.setattr(google_drive, "client_side_encrypt", lambda data, passphrase: b"pgp:" + passphrase.encode())
        google = GoogleDriveClient("token-123", client=mock_client(drive_api))
        user = UserInfo(id="42", name="Ada", email="ada@example.com")

        result = google.upload_user_data(user, "0xsig", DriveInfo(percent_used=12.5), timestamp=1700000000000)

        assert result.file_id == "file-1"
        assert result.download_url == "https://drive.google.com/uc?export=download&id=file-1"
        assert result.vana_file_id == "vana_submission_1700000000000_view"

        upload = next(r for r in drive_api.requests if r.url.path == "/upload/drive/v3/files")
        body = upload.read()
        assert b"encrypted_vana_dlp_data_1700000000000.json" in body
        assert b"folder-1" in body
        assert b"pgp:0xsig" in body
        permission = next(r for r in drive_api.requests if r.url.path.endswith("/permissions"))
        assert json.loads(permission.read()) == {"role": "reader", "type": "anyone"}

    def test_data_package(self):
        package = build_data_package(UserInfo(name="Ada", email="ada@example.com"), None, 5)

        assert package["userId"] == "unknown"
        assert package["profile"] == {"name": "Ada", "locale": "en"}
        assert "storage" not in package
        assert package["metadata"]["source"] == "Google"
        assert package["metadata"]["collectionDate"].endswith("Z")


class TestServices:
    """TEE proof and refinement requests."""

    def test_proof_request_body(self):
        body = build_proof_request(
            job_id=8, file_id=42, proof_url="https://p.tar.gz", dlp_address=PROXY_ADDRESS,
            dlp_public_key="0xpub", signature="0xsig", google_token="token-123", nonce="1",
        )

        assert body["encryption_key"] == "0xsig"
        assert body["env_vars"] == {"GOOGLE_TOKEN": "token-123"}
        assert body["encryption_seed"] == "Please sign to retrieve your encryption key"
        assert body["validate_permissions"][0]["iv"] == "0102030405060708090a0b0c0d0e0f10"
        assert body["nonce"] == "1"

    def test_run_proof(self):
        def handler(request):
            assert str(request.url) == "https://tee.example/RunProof"
            assert json.loads(request.read())["job_id"] == 8
            return httpx.Response(200, json={"score": 1.0, "valid": True})

        assert TeeClient(client=mock_client(handler)).run_proof("https://tee.example/", {"job_id": 8}) == {
            "score": 1.0,
            "valid": True,
        }

    def test_run_proof_error(self):
        tee = TeeClient(client=mock_client(lambda request: httpx.Response(500, json={"detail": "enclave down"})))

        with pytest.raises(ServiceError, match="enclave down"):
            tee.run_proof("https://tee.example", {})

    def test_refine(self):
        def handler(request):
            payload = json.loads(request.read())
            assert request.url.path == "/refine"
            assert payload["refiner_id"] == 0
            assert payload["env_vars"]["PINATA_API_KEY"] == "key"
            return httpx.Response(200, json={"add_refinement_tx_hash": TX_HASH})

        client = RefinementClient("https://refine.example/", "key", "secret", client=mock_client(handler))
        assert client.refine(42, "0xsig", 0) == {"add_refinement_tx_hash": TX_HASH}

    def test_refine_error_message(self):
        client = RefinementClient(
            "https://refine.example",
            client=mock_client(lambda request: httpx.Response(400, json={"error": "unknown refiner"})),
        )

        with pytest.raises(ServiceError, match="unknown refiner"):
            client.refine(42, "0xsig", 99)

    def test_refine_requires_key(self):
        with pytest.raises(ServiceError):
            RefinementClient("https://refine.example", client=mock_client(lambda r: httpx.Response(200))).refine(1, "")


class TestContributionContracts:
    """Data registry and TEE pool calls."""

    def test_extract_file_id(self):
        receipt = {"logs": [file_added_log(77, address="0x" + "99" * 20), file_added_log(42)]}
        assert extract_file_id(receipt, DATA_REGISTRY) == 42

    def test_extract_file_id_without_event(self):
        with pytest.raises(ContractCallError):
            extract_file_id({"logs": []}, DATA_REGISTRY)
        with pytest.raises(ContractCallError):
            extract_file_id({"logs": [{"address": DATA_REGISTRY, "topics": ["0x" + "00" * 32]}]}, DATA_REGISTRY)

    def test_add_file(self):
        chain = FakeChain()
        chain.receipt = {"status": 1, "blockNumber": 3, "logs": [file_added_log(42)]}

        file_id, receipt = ContributionContracts(chain, PROXY_ADDRESS).add_file("https://drive/x", "abcd")

        assert file_id == 42
        transaction = chain.transactions[0]
        assert transaction["address"] == DATA_REGISTRY
        assert transaction["function"] == "addFileWithPermissions"
        assert transaction["args"] == ("https://drive/x", OWNER, [(Web3.to_checksum_address(PROXY_ADDRESS), "abcd")])

    def test_tee_details(self):
        chain = FakeChain()
        chain.responses["jobs"] = (42, 100, 1, 1700000000, 0, TEE_ADDRESS, 8)
        chain.responses["tees"] = (TEE_ADDRESS, "https://tee.example", 1, [], 0, 1, "0xteepub")

        tee = ContributionContracts(chain, PROXY_ADDRESS).tee_details(8)

        assert tee.tee_url == "https://tee.example"
        assert tee.tee_public_key == "0xteepub"
        assert chain.calls[-1] == ("tees", (TEE_ADDRESS,))

    def test_tee_details_without_assigned_tee(self):
        chain = FakeChain()
        chain.responses["jobs"] = (42, 100, 1, 1700000000, 0, "0x" + "00" * 20, 8)

        with pytest.raises(ContractCallError, match="missing TEE"):
            ContributionContracts(chain, PROXY_ADDRESS).tee_details(8)

    def test_request_reward(self):
        chain = FakeChain()

        assert ContributionContracts(chain, PROXY_ADDRESS).request_reward(42) == TX_HASH
        assert chain.transactions[0]["args"] == (42, 1)
