"""
Data refiner deployment.

The refiner turns contributed files into a queryable schema. Deployment
fetches the DataDAO's refinement encryption key from the query engine,
configures the refiner template, generates the schema locally with Docker,
publishes the schema to IPFS and registers the refiner on the refiner
registry, which assigns the ``refinerId`` the contributor UI needs.
"""

import re
import time
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from loguru import logger

from ..base.diagnostics import diagnose
from ..base.network import ContractName
from ..base.state import Step
from ..contracts import QUERY_ENGINE_ABI, REFINER_REGISTRY_ABI
from ..exceptions import DataDAOError
from ..utils import prompts
from ..utils.env_file import read_env, upsert_env_var
from ..utils.ipfs import IPFSClient
from ..utils.output import output
from ..utils.shell import Docker
from .common import StepContext, extract_repo_name, prepare_component_repo, push_component, show_diagnosis

SCHEMA_NAME_RE = re.compile(r"SCHEMA_NAME\s*=\s*[\"'].*[\"']")
REFINER_CONFIG_PATH = Path("refiner") / "refiner" / "config.py"
REFINER_IMAGE = "refiner"


def _non_negative(value: str) -> Optional[str]:
    return None if value.strip().isdigit() else "Please enter a valid refinerId number"


_tarball_url = prompts.url_with_suffix(".tar.gz", "URL must point to a .tar.gz file")


def extract_refiner_id(receipt: Mapping[str, Any], registry_address: str) -> Optional[int]:
    """
    Refiner id from an ``addRefiner`` receipt: the first indexed topic of the
    first log emitted by the registry.
    """
    for log in receipt.get("logs", []):
        if str(log["address"]).lower() != registry_address.lower():
            continue
        topics = log.get("topics") or []
        if len(topics) < 2:
            return None
        topic = topics[1]
        if isinstance(topic, str):
            return int(topic, 16)
        return int.from_bytes(bytes(topic), "big")
    return None


def set_schema_name(config_source: str, dlp_name: str) -> str:
    return SCHEMA_NAME_RE.sub(f'SCHEMA_NAME = "{dlp_name} Data Schema"', config_source)


class RefinerDeployer:
    """Runs the refiner deployment for one project."""

    def __init__(self, ctx: StepContext):
        self.ctx = ctx
        self.refiner_dir = ctx.component_dir("refiner")
        self.query_engine = ctx.network.contract_address(ContractName.QUERY_ENGINE)
        self.registry = ctx.network.contract_address(ContractName.REFINER_REGISTRY)

    @property
    def deployment(self):
        return self.ctx.state.data

    @property
    def dlp_id(self) -> int:
        return int(self.deployment["dlpId"])

    @property
    def refiner_name(self) -> str:
        return f"{self.deployment.get('dlpName')} Refiner"

    # ---------- Encryption key ----------

    def poll_encryption_key(self, attempts: Optional[int] = None) -> Optional[str]:
        """Poll the query engine until the DataDAO's refinement key is published."""
        attempts = attempts or self.ctx.settings.key_poll_attempts
        interval = self.ctx.settings.key_poll_interval
        output.progress(f"Polling for encryption key (dlpId: {self.dlp_id})...")
        output.detail("This usually takes a few minutes after DataDAO registration.")

        for attempt in range(attempts):
            try:
                key = self.ctx.chain().call(self.query_engine, QUERY_ENGINE_ABI, "dlpPubKeys", self.dlp_id)
                if key:
                    output.success("Encryption key retrieved successfully!")
                    return key
                output.detail(f"Waiting for encryption key... ({attempts - attempt - 1} attempts remaining)")
            except Exception as e:
                output.warning(f"Error polling encryption key: {e}")
            if attempt < attempts - 1:
                time.sleep(interval)
        return None

    def obtain_encryption_key(self) -> str:
        key = self.poll_encryption_key()
        if key:
            return key

        output.warning("Could not retrieve encryption key automatically.")
        output.detail("This might be because the registration is still processing.")
        output.numbered("Manual steps to get the encryption key:", [
            f"Visit: {self.ctx.network.address_url(self.query_engine)}?tab=read_proxy",
            f"Call dlpPubKeys with dlpId: {self.dlp_id}",
            "Copy the returned key",
        ])
        return prompts.ask_text("Enter the encryption key manually:", validate=prompts.required("Encryption key is required"))

    # ---------- Local configuration ----------

    def configure_template(self, encryption_key: str) -> None:
        upsert_env_var(self.refiner_dir / ".env", "REFINEMENT_ENCRYPTION_KEY", encryption_key)
        output.success("Refiner .env updated with encryption key")

        config_path = self.ctx.project_root / REFINER_CONFIG_PATH
        if config_path.exists():
            config_path.write_text(set_schema_name(config_path.read_text(), self.deployment.get("dlpName")))
            output.success("Schema configuration updated")

    def generate_schema(self) -> Optional[Path]:
        """
        Build and run the refiner image locally to produce ``output/schema.json``.

        Failures are explained and swallowed: the schema can still be supplied by URL.
        """
        output.progress("Generating schema locally...")
        docker = Docker(self.refiner_dir)
        schema_path = self.refiner_dir / "output" / "schema.json"
        try:
            if not docker.daemon_running():
                raise DataDAOError("Cannot connect to the Docker daemon. Is the docker daemon running?")
            docker.build(REFINER_IMAGE)
            docker.run_with_volumes(
                REFINER_IMAGE,
                {
                    str(self.refiner_dir / "input"): "/input",
                    str(self.refiner_dir / "output"): "/output",
                },
                env_file=".env",
            )
        except DataDAOError as e:
            diagnosis = diagnose(e, "refiner")
            output.warning(f"Local schema generation failed: {e}")
            show_diagnosis(diagnosis, "To fix this:")
            output.info("You can still continue with manual deployment without local schema generation.")
            return None

        if schema_path.exists():
            output.success("Schema generated successfully")
            return schema_path
        output.warning("Schema generation may have failed, but continuing...")
        return None

    # ---------- Publication ----------

    def upload_schema(self, schema_path: Optional[Path]) -> str:
        """Pin the schema on IPFS through Pinata, falling back to a user-supplied URL."""
        if schema_path is None or not schema_path.exists():
            output.warning("Schema file not found locally.")
            return prompts.ask_text("Enter the IPFS URL for the schema.json:", validate=prompts.required("Schema URL is required"))

        output.progress("Uploading schema to IPFS...")
        env = read_env(self.refiner_dir / ".env")
        try:
            with IPFSClient(env.get("PINATA_API_KEY", ""), env.get("PINATA_API_SECRET", "")) as ipfs:
                schema_url = ipfs.upload_file(schema_path, f"{self.deployment.get('dlpName')}-schema.json")
        except DataDAOError as e:
            logger.warning(f"Schema upload failed: {e}")
            output.warning(f"Automatic IPFS upload failed: {e}")
            output.numbered("Please upload schema.json manually to Pinata:", [
                "Go to https://pinata.cloud",
                "Upload the file: refiner/output/schema.json",
                "Copy the IPFS URL",
            ])
            return prompts.ask_text(
                "Enter the IPFS URL for the uploaded schema.json:",
                validate=prompts.required("Schema URL is required"),
            )

        output.success("Schema uploaded to IPFS successfully!")
        output.detail(f"Schema URL: {schema_url}")
        return schema_url

    def register_on_chain(self, schema_url: str, refiner_url: str) -> Optional[int]:
        """
        Call ``addRefiner`` and read the new refiner id from the receipt.

        Returns:
            The refiner id, or None when registration failed
        """
        output.progress("Registering refiner on-chain automatically...")
        output.summary("Transaction parameters", [
            ("Contract", self.registry),
            ("dlpId", self.dlp_id),
            ("name", self.refiner_name),
            ("schemaDefinitionUrl", schema_url),
            ("refinementInstructionUrl", refiner_url),
        ])
        args = (self.dlp_id, self.refiner_name, schema_url, refiner_url)
        try:
            chain = self.ctx.signing_chain()
            output.progress("Estimating gas...")
            gas = chain.estimate_gas(self.registry, REFINER_REGISTRY_ABI, "addRefiner", *args)
            output.detail(f"Estimated gas: {gas}")
            result = chain.transact(self.registry, REFINER_REGISTRY_ABI, "addRefiner", *args, gas=gas)
        except Exception as e:
            logger.error(f"addRefiner failed: {e}")
            output.error(f"Automatic registration failed: {e}")
            message = str(e).lower()
            if "insufficient funds" in message:
                output.info("Make sure your wallet has enough VANA tokens for gas fees", force=True)
            elif "reverted" in message:
                output.info("Transaction was reverted. Possible reasons:", force=True)
                output.bullets([
                    "Refiner already exists for this DLP",
                    "Invalid parameters",
                    "DLP not properly registered",
                ])
            return None

        receipt = result["receipt"]
        output.success("Transaction confirmed!")
        output.detail(f"Block: {receipt['blockNumber']}")
        output.detail(f"Gas used: {receipt['gasUsed']}")

        refiner_id = extract_refiner_id(receipt, self.registry)
        if refiner_id is None:
            output.warning("Could not extract refinerId from transaction logs")
            output.detail(f"You can find it manually at: {self.ctx.network.tx_url(result['tx_hash'])}")
            return None
        output.success(f"Refiner registered with ID: {refiner_id}")
        return refiner_id

    def show_manual_registration(self, schema_url: str, refiner_url: str) -> None:
        output.numbered("Register the refiner manually:", [
            f"Visit the refiner registry: {self.ctx.network.address_url(self.registry)}?tab=read_write_proxy",
            'Find the "addRefiner" method',
            f"Fill in dlpId: {self.dlp_id}, name: {self.refiner_name}, "
            f"schemaDefinitionUrl: {schema_url}, refinementInstructionUrl: {refiner_url}",
            "Connect your wallet and submit the transaction",
            'After the transaction confirms, find the "RefinerAdded" event in the logs',
            "Copy the refinerId from the event",
        ], style="cyan")

    def ask_refiner_id(self) -> int:
        return int(prompts.ask_text("Enter the refinerId from the transaction logs:", validate=_non_negative))

    # ---------- Flows ----------

    def _automatic(self, schema_path: Optional[Path]) -> Tuple[str, str, Optional[int]]:
        repo_url = self.deployment.get("refinerRepo")
        if not push_component(self.refiner_dir):
            raise DataDAOError("Failed to push refiner to GitHub", step=Step.REFINER_CONFIGURED.value)

        output.progress("GitHub Actions is now building your refiner...")
        output.detail("This usually takes 2-3 minutes.")
        output.warning("IMPORTANT: Wait for the NEW build to complete! Don't use an existing/old release.")
        output.next_steps([
            f"Visit: {repo_url}/releases",
            "WAIT for a new release to appear (with your latest changes)",
        ])
        if not prompts.confirm("Is there a successful build available (either new or existing)?", default=True):
            raise DataDAOError("Please wait for a build to complete and run: create-datadao deploy-refiner")

        schema_url = self.upload_schema(schema_path)

        output.next_steps([f"Visit: {repo_url}/releases", "Copy the .tar.gz download URL"])
        refiner_url = prompts.ask_text("Enter the .tar.gz URL from GitHub Releases:", validate=_tarball_url)

        refiner_id = self.register_on_chain(schema_url, refiner_url)
        if refiner_id is None:
            output.warning("Falling back to manual registration...")
            self.show_manual_registration(schema_url, refiner_url)
            if prompts.confirm("Did you register the refiner manually?", default=True):
                refiner_id = self.ask_refiner_id()
        return schema_url, refiner_url, refiner_id

    def _manual(self) -> Tuple[str, str, Optional[int]]:
        output.numbered("Manual deployment instructions:", [
            "Push your changes to GitHub: git push -u origin main",
            "Wait for GitHub Actions to complete (the NEW build, not an old release)",
            "Upload schema.json to Pinata IPFS",
            "Get the refiner .tar.gz URL from Releases",
            "Register the refiner on-chain",
        ])
        schema_url = prompts.ask_text("Enter the IPFS URL for the schema:", validate=prompts.required("Schema URL is required"))
        refiner_url = prompts.ask_text("Enter the .tar.gz URL for the refiner:", validate=prompts.required("Refiner URL is required"))
        self.show_manual_registration(schema_url, refiner_url)
        refiner_id = self.ask_refiner_id()
        return schema_url, refiner_url, refiner_id

    def _save(self, schema_url: str, refiner_url: str, refiner_id: Optional[int]) -> None:
        fields = {"schemaUrl": schema_url, "refinerUrl": refiner_url}
        if refiner_id is not None:
            fields["refinerId"] = refiner_id
        self.ctx.state.update_deployment(**fields)
        self.ctx.state.mark_completed(Step.REFINER_CONFIGURED)
        self.ctx.state.update_state(**{Step.REFINER_PUBLISHED.value: True})

        if refiner_id is not None:
            ui_env = self.ctx.env_path("ui")
            if ui_env.exists():
                upsert_env_var(ui_env, "REFINER_ID", str(refiner_id))
                output.success("UI configuration updated with refinerId")
        else:
            output.warning("refinerId not recorded; add it to deployment.json once registration completes.")

    def run(self) -> Optional[int]:
        """
        Configure, publish and register the refiner.

        Returns:
            The refiner id, or None when skipped or left for later
        """
        output.step("Preparing Data Refinement component for deployment")
        self.ctx.state.validate_required_fields(["dlpId", "refinerRepo"], step=Step.REFINER_CONFIGURED.value)
        repo_url = self.deployment["refinerRepo"]
        if not extract_repo_name(repo_url):
            raise DataDAOError(f"Invalid refiner repository URL format: {repo_url}")

        output.progress("Retrieving encryption key from blockchain...")
        self.configure_template(self.obtain_encryption_key())

        if prepare_component_repo(self.refiner_dir, repo_url, f"Configure refiner for {self.deployment.get('dlpName')}"):
            self.ctx.state.update_state(**{Step.REFINER_GIT_SETUP.value: True})

        schema_path = self.generate_schema()

        choice = prompts.select("How would you like to deploy your refiner?", [
            ("Automatic: Push to GitHub and register refiner", "auto"),
            ("Manual: I'll handle the workflow myself", "manual"),
            ("Skip: Configure later", "skip"),
        ])
        if choice == "skip":
            output.warning("Refiner deployment skipped.")
            output.info("You can complete this later by running: create-datadao deploy-refiner")
            self.ctx.state.update_state(**{Step.REFINER_CONFIGURED.value: True, Step.REFINER_PUBLISHED.value: False})
            return None

        schema_url, refiner_url, refiner_id = self._automatic(schema_path) if choice == "auto" else self._manual()
        self._save(schema_url, refiner_url, refiner_id)

        output.success("Data Refiner configured successfully!")
        output.summary("Refiner Deployment", [
            ("Schema URL", schema_url),
            ("Refiner URL", refiner_url),
            ("Refiner ID", refiner_id if refiner_id is not None else "pending"),
        ])
        return refiner_id


def deploy_refiner(ctx: StepContext) -> Optional[int]:
    """Deploy the refiner, recording failures in deployment.json."""
    try:
        return RefinerDeployer(ctx).run()
    except DataDAOError as e:
        ctx.state.record_error(Step.REFINER_CONFIGURED, e)
        raise
