"""
Deployment state for a DataDAO project.

All progress lives in ``deployment.json`` at the project root: a flat,
camelCase JSON object that accumulates fields as steps complete, a ``state``
object of boolean step flags and an ``errors`` map of the last failure per
step. The file is owned by the toolkit but hand edits are tolerated, so every
completion check also looks at the data itself, not just the flag.
"""

import json
import shutil
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from ..exceptions import MissingFieldsError, StateFileError
from ..utils.env_file import get_env_value

DEPLOYMENT_FILE = "deployment.json"


class Step(str, Enum):
    """Step flags stored under ``deployment.json["state"]``."""
    CONTRACTS_DEPLOYED = "contractsDeployed"
    DATADAO_REGISTERED = "dataDAORegistered"
    PROOF_CONFIGURED = "proofConfigured"
    PROOF_GIT_SETUP = "proofGitSetup"
    PROOF_PUBLISHED = "proofPublished"
    PROOF_INSTRUCTION_UPDATED = "proofInstructionUpdated"
    REFINER_CONFIGURED = "refinerConfigured"
    REFINER_GIT_SETUP = "refinerGitSetup"
    REFINER_PUBLISHED = "refinerPublished"
    UI_CONFIGURED = "uiConfigured"


# Tutorial order of the steps a user has to finish.
STEP_ORDER: Tuple[Step, ...] = (
    Step.CONTRACTS_DEPLOYED,
    Step.DATADAO_REGISTERED,
    Step.PROOF_CONFIGURED,
    Step.REFINER_CONFIGURED,
    Step.UI_CONFIGURED,
)

PROGRESS_STEPS: Tuple[Tuple[Step, str], ...] = (
    (Step.CONTRACTS_DEPLOYED, "Smart Contracts Deployed"),
    (Step.DATADAO_REGISTERED, "DataDAO Registered"),
    (Step.PROOF_CONFIGURED, "Proof of Contribution Configured"),
    (Step.PROOF_PUBLISHED, "Proof of Contribution Published"),
    (Step.REFINER_CONFIGURED, "Data Refiner Configured"),
    (Step.REFINER_PUBLISHED, "Data Refiner Published"),
    (Step.UI_CONFIGURED, "UI Configured"),
)

_SYNCED_STEPS = (
    Step.CONTRACTS_DEPLOYED,
    Step.DATADAO_REGISTERED,
    Step.PROOF_GIT_SETUP,
    Step.REFINER_GIT_SETUP,
    Step.PROOF_CONFIGURED,
    Step.REFINER_CONFIGURED,
)

_RECOVERY_SUGGESTIONS: Dict[Step, Dict[str, Any]] = {
    Step.CONTRACTS_DEPLOYED: {
        "step": "Contract Deployment",
        "issue": "Smart contract deployment failed",
        "solutions": [
            "Check wallet balance (need VANA tokens)",
            "Verify network connectivity",
            "Try again: create-datadao deploy-contracts",
        ],
    },
    Step.DATADAO_REGISTERED: {
        "step": "DataDAO Registration",
        "issue": "Registration on Vana network failed",
        "solutions": [
            "Ensure contracts are deployed first",
            "Check you have 1 VANA for registration fee",
            "Try again: create-datadao register-datadao",
        ],
    },
    Step.PROOF_CONFIGURED: {
        "step": "Proof of Contribution",
        "issue": "Proof system configuration failed",
        "solutions": [
            "Ensure GitHub repository is accessible",
            "Check dlpId is available from registration",
            "Verify git configuration and permissions",
            "Try again: create-datadao deploy-proof",
        ],
    },
    Step.REFINER_CONFIGURED: {
        "step": "Data Refiner",
        "issue": "Refiner configuration failed",
        "solutions": [
            "Ensure Docker is running (for local schema generation)",
            "Check Pinata API credentials are valid",
            "Verify GitHub repository is accessible",
            "Check encryption key retrieval from blockchain",
            "Try again: create-datadao deploy-refiner",
        ],
    },
    Step.UI_CONFIGURED: {
        "step": "User Interface",
        "issue": "UI configuration failed",
        "solutions": [
            "Ensure proof deployment completed (need proofUrl)",
            "Ensure refiner registration completed (need refinerId)",
            "Check Google OAuth credentials are valid",
            "Check Pinata API credentials are valid",
            "Try again: create-datadao deploy-ui",
        ],
    },
}


def _step_key(step: Union[Step, str]) -> str:
    return step.value if isinstance(step, Step) else step


class DeploymentStateManager:
    """
    Reads and writes ``deployment.json`` for one project directory.

    The manager keeps the whole document in ``self.data``; every mutation is
    written back immediately, after the previous version has been copied to
    ``deployment.json.backup``.
    """

    def __init__(self, project_root: Union[str, Path] = "."):
        self.project_root = Path(project_root).resolve()
        self.path = self.project_root / DEPLOYMENT_FILE
        self.data: Dict[str, Any] = self._load()

    @classmethod
    def exists(cls, project_root: Union[str, Path] = ".") -> bool:
        return (Path(project_root) / DEPLOYMENT_FILE).exists()

    @classmethod
    def create(cls, project_root: Union[str, Path], initial: Dict[str, Any]) -> "DeploymentStateManager":
        """Write a fresh ``deployment.json`` and open it."""
        path = Path(project_root) / DEPLOYMENT_FILE
        if path.exists():
            shutil.copyfile(path, path.with_name(path.name + ".backup"))
        path.write_text(json.dumps(initial, indent=2))
        return cls(project_root)

    # ---------- Persistence ----------

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise StateFileError(f"{DEPLOYMENT_FILE} not found. Run deployment steps in order.")

        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            raise StateFileError(f"{DEPLOYMENT_FILE} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise StateFileError(f"{DEPLOYMENT_FILE} must contain a JSON object, got {type(data).__name__}")

        if not isinstance(data.get("state"), dict):
            data["state"] = {
                Step.CONTRACTS_DEPLOYED.value: bool(data.get("tokenAddress") and data.get("proxyAddress")),
                Step.DATADAO_REGISTERED.value: bool(data.get("dlpId")),
                Step.PROOF_CONFIGURED.value: False,
                Step.PROOF_GIT_SETUP.value: False,
                Step.PROOF_PUBLISHED.value: False,
                Step.REFINER_CONFIGURED.value: False,
                Step.REFINER_GIT_SETUP.value: False,
                Step.REFINER_PUBLISHED.value: False,
                Step.UI_CONFIGURED.value: False,
            }
            self._write(data)

        data.setdefault("errors", {})
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        if self.path.exists():
            shutil.copyfile(self.path, self.path.with_name(self.path.name + ".backup"))
        self.path.write_text(json.dumps(data, indent=2))

    def save(self) -> None:
        self._write(self.data)

    def reload(self) -> Dict[str, Any]:
        self.data = self._load()
        return self.data

    # ---------- Accessors ----------

    @property
    def state(self) -> Dict[str, bool]:
        return self.data["state"]

    @property
    def errors(self) -> Dict[str, Dict[str, str]]:
        return self.data["errors"]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def component_dir(self, name: str) -> Path:
        """Directory of a template component (contracts, proof, refiner, ui)."""
        return self.project_root / name

    @property
    def proxy_address(self) -> Optional[str]:
        """DataDAO proxy address from whichever field recorded it."""
        contracts = self.data.get("contracts") or {}
        return (
            self.data.get("proxyAddress")
            or contracts.get("proxyAddress")
            or self.data.get("dlpAddress")
        )

    @property
    def token_address(self) -> Optional[str]:
        contracts = self.data.get("contracts") or {}
        return self.data.get("tokenAddress") or contracts.get("tokenAddress")

    def _has_contract_addresses(self) -> bool:
        contracts = self.data.get("contracts") or {}
        old_format = self.data.get("tokenAddress") and self.data.get("proxyAddress")
        new_format = contracts.get("tokenAddress") and contracts.get("proxyAddress")
        return bool(old_format or new_format)

    # ---------- Mutations ----------

    def update_state(self, **flags: bool) -> Dict[str, Any]:
        """Merge step flags into ``state`` and save."""
        self.state.update(flags)
        self.save()
        return self.data

    def update_deployment(self, **fields: Any) -> Dict[str, Any]:
        """Merge top-level fields into the document and save."""
        self.data.update(fields)
        self.save()
        return self.data

    def mark_completed(self, step: Union[Step, str], **fields: Any) -> None:
        """Set a step flag, store any accompanying fields and clear its error."""
        key = _step_key(step)
        self.data.update(fields)
        self.state[key] = True
        self.errors.pop(key, None)
        self.save()
        logger.success(f"Step {key} completed")

    def record_error(self, step: Union[Step, str], error: BaseException) -> None:
        key = _step_key(step)
        self.errors[key] = {
            "message": str(error),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        self.save()
        logger.error(f"Recorded error for {key}: {error}")

    def clear_error(self, step: Union[Step, str]) -> None:
        key = _step_key(step)
        if key in self.errors:
            del self.errors[key]
            self.save()

    # ---------- Queries ----------

    def is_completed(self, step: Union[Step, str]) -> bool:
        """
        Whether a step is done, judged by its flag or by the data it produces.

        Args:
            step: Step flag name

        Returns:
            True if the flag is set or the step's output is present
        """
        key = _step_key(step)
        if self.state.get(key):
            return True

        if key == Step.CONTRACTS_DEPLOYED.value:
            return self._has_contract_addresses()
        if key == Step.DATADAO_REGISTERED.value:
            return bool(self.data.get("dlpId"))
        if key == Step.PROOF_GIT_SETUP.value:
            return bool(self.data.get("proofRepo"))
        if key == Step.REFINER_GIT_SETUP.value:
            return bool(self.data.get("refinerRepo"))
        if key == Step.PROOF_CONFIGURED.value:
            return bool(self.data.get("proofUrl") or self.data.get("proofContractAddress"))
        if key == Step.REFINER_CONFIGURED.value:
            return self.data.get("refinerId") is not None or bool(self.data.get("refinerContractAddress"))
        return False

    def sync_state_from_data(self) -> Optional[Dict[str, bool]]:
        """
        Raise flags whose completion is evident from the data.

        Returns:
            The flags that were raised, or None if nothing changed
        """
        updates = {
            step.value: True
            for step in _SYNCED_STEPS
            if not self.state.get(step.value) and self.is_completed(step)
        }
        if not updates:
            return None
        self.update_state(**updates)
        return updates

    def next_incomplete_step(self) -> Optional[Step]:
        for step in STEP_ORDER:
            if not self.is_completed(step):
                return step
        return None

    def progress(self) -> List[Tuple[str, bool]]:
        """``(label, completed)`` pairs for the progress display."""
        return [(label, self.is_completed(step)) for step, label in PROGRESS_STEPS]

    def show_progress(self) -> None:
        from ..utils.output import output

        output.progress_list("Deployment Progress", self.progress())

    def validate_required_fields(self, fields: Iterable[str], step: Optional[str] = None) -> None:
        """
        Ensure every field (dotted paths allowed) holds a value.

        Numeric zero counts as present since refiner ids start at 0.

        Raises:
            MissingFieldsError: Naming every missing field
        """
        missing = []
        for field in fields:
            value: Any = self.data
            for part in field.split('.'):
                value = value.get(part) if isinstance(value, dict) else None
                if value is None or value == "":
                    break
            if value is None or value == "" or value is False:
                missing.append(field)
        if missing:
            raise MissingFieldsError(missing, step=step)

    def validate_configuration(self) -> List[str]:
        """List configuration problems without fixing them."""
        issues = []
        for field in ("dlpName", "tokenName", "tokenSymbol", "privateKey", "address"):
            if field == "privateKey":
                if self.data.get("privateKey") or self.private_key():
                    continue
            elif self.data.get(field):
                continue
            issues.append(f"Missing {field}")

        if not self.data.get("pinataApiKey") or not self.data.get("pinataApiSecret"):
            issues.append("Missing Pinata credentials")
        if not self.data.get("googleClientId") or not self.data.get("googleClientSecret"):
            issues.append("Missing Google OAuth credentials")

        if self.state.get(Step.DATADAO_REGISTERED.value) and not self.data.get("dlpId"):
            issues.append("Marked as registered but missing dlpId")
        if self.state.get(Step.CONTRACTS_DEPLOYED.value) and not self._has_contract_addresses():
            issues.append("Marked as deployed but missing contract addresses")
        return issues

    def recovery_suggestions(self) -> List[Dict[str, Any]]:
        return [
            {**suggestion, "solutions": list(suggestion["solutions"])}
            for step, suggestion in _RECOVERY_SUGGESTIONS.items()
            if step.value in self.errors
        ]

    def private_key(self) -> Optional[str]:
        """Deployer key from ``contracts/.env``, which is where setup stores it."""
        return get_env_value(self.component_dir("contracts") / ".env", "DEPLOYER_PRIVATE_KEY")

    def is_quick_mode(self) -> bool:
        return bool(self.data.get("quickMode"))
