"""
Error classification for deployment steps.

Failures from the deployment tool, the RPC node, Docker and Pinata arrive as
free-form messages. This module maps them onto a small set of categories,
each with a headline and numbered recovery steps that the CLI prints.
"""

from enum import Enum
from typing import Dict, List, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from ..exceptions import CommandError
from .network import FAUCET_URL


class ErrorCategory(str, Enum):
    """Failure categories recognised in error messages."""
    FUNDING = "funding"
    NONCE = "nonce"
    NETWORK = "network"
    REVERTED = "reverted"
    SETUP = "setup"
    USER_REJECTED = "user_rejected"
    NAME_CONFLICT = "name_conflict"
    DOCKER_DAEMON = "docker_daemon"
    PINATA_AUTH = "pinata_auth"
    UNKNOWN = "unknown"


class Diagnosis(BaseModel):
    """Classified error with user-facing recovery guidance."""

    category: ErrorCategory = Field(..., description="Matched failure category")
    headline: str = Field(..., description="One-line explanation")
    recovery_steps: List[str] = Field(default_factory=list, description="Numbered recovery steps")
    retryable: bool = Field(default=False, description="Whether simply retrying may succeed")


# A matcher is either a single substring or a tuple of substrings that must all appear.
Matcher = Union[str, Tuple[str, ...]]

_MATCHERS: Dict[ErrorCategory, Sequence[Matcher]] = {
    ErrorCategory.FUNDING: ("insufficient funds", "insufficient_funds"),
    ErrorCategory.USER_REJECTED: ("user rejected", "user denied"),
    ErrorCategory.NAME_CONFLICT: ("already registered", "dlp exists", "invalidname", ("name", "taken")),
    ErrorCategory.NONCE: ("nonce", "already known"),
    ErrorCategory.NETWORK: (
        "timeout", "timed out", "network error", "network request failed", "econnrefused",
        "econnreset", "connection refused", "connection reset", "could not connect",
        "cannot connect to network",
    ),
    ErrorCategory.REVERTED: ("reverted", "execution failed"),
    ErrorCategory.SETUP: ("enoent", "command not found", "no such file or directory"),
    ErrorCategory.DOCKER_DAEMON: ("cannot connect to the docker daemon", "docker daemon"),
    ErrorCategory.PINATA_AUTH: (("401", "pinata"), ("unauthorized", "pinata")),
}

_RETRYABLE = {ErrorCategory.NONCE, ErrorCategory.NETWORK, ErrorCategory.USER_REJECTED}

_DEPLOY_ORDER = [
    ErrorCategory.FUNDING,
    ErrorCategory.NONCE,
    ErrorCategory.NETWORK,
    ErrorCategory.REVERTED,
    ErrorCategory.SETUP,
]

_REGISTRATION_ORDER = [
    ErrorCategory.FUNDING,
    ErrorCategory.USER_REJECTED,
    ErrorCategory.NAME_CONFLICT,
    ErrorCategory.REVERTED,
    ErrorCategory.NONCE,
    ErrorCategory.NETWORK,
]

_REFINER_ORDER = [
    ErrorCategory.DOCKER_DAEMON,
    ErrorCategory.PINATA_AUTH,
    ErrorCategory.SETUP,
    ErrorCategory.FUNDING,
    ErrorCategory.NETWORK,
    ErrorCategory.REVERTED,
]

_DEPLOY_GUIDANCE: Dict[ErrorCategory, Tuple[str, List[str]]] = {
    ErrorCategory.FUNDING: (
        "Your wallet does not have enough VANA to pay for the deployment.",
        [
            f"Get testnet VANA from {FAUCET_URL}",
            "Wait for the faucet transaction to confirm",
            "Run: create-datadao deploy-contracts",
        ],
    ),
    ErrorCategory.NONCE: (
        "A previous transaction from this wallet is still pending.",
        [
            "Wait 30-60 seconds for pending transactions to clear",
            "Run: create-datadao deploy-contracts",
        ],
    ),
    ErrorCategory.NETWORK: (
        "The Vana RPC endpoint did not respond in time.",
        [
            "Check your internet connection",
            "Wait a minute, the network may be congested",
            "Run: create-datadao deploy-contracts",
        ],
    ),
    ErrorCategory.REVERTED: (
        "The deployment transaction was reverted by the network.",
        [
            "Check the values in contracts/.env",
            "Make sure the token name and symbol are valid",
            "Generate a new DLP_TOKEN_SALT if the token was deployed before",
            "Run: create-datadao deploy-contracts",
        ],
    ),
    ErrorCategory.SETUP: (
        "The contract deployment tooling is missing.",
        [
            "Install Node.js 18 or later",
            "Install dependencies: cd contracts && npm install",
            "Run: create-datadao deploy-contracts",
        ],
    ),
}

_REGISTRATION_GUIDANCE: Dict[ErrorCategory, Tuple[str, List[str]]] = {
    ErrorCategory.FUNDING: (
        "Registration needs 1 VANA for the fee plus gas.",
        [
            f"Get testnet VANA from {FAUCET_URL}",
            "Make sure the wallet holds at least 1.1 VANA",
            "Run: create-datadao register-datadao",
        ],
    ),
    ErrorCategory.USER_REJECTED: (
        "The transaction was rejected before it was sent.",
        [
            "Run the registration again and approve the transaction",
        ],
    ),
    ErrorCategory.NAME_CONFLICT: (
        "A DataDAO with this name is already registered.",
        [
            "Pick a different DataDAO name",
            "Update dlpName in deployment.json",
            "Run: create-datadao register-datadao",
        ],
    ),
    ErrorCategory.REVERTED: (
        "The registry reverted the registration.",
        [
            "Check that the DataDAO name is not already taken",
            "Check that the contract addresses in deployment.json are correct",
            "Try the manual registration through Vanascan",
        ],
    ),
    ErrorCategory.NONCE: (
        "A previous transaction from this wallet is still pending.",
        [
            "Wait 30-60 seconds for pending transactions to clear",
            "Run: create-datadao register-datadao",
        ],
    ),
    ErrorCategory.NETWORK: (
        "The Vana RPC endpoint did not respond in time.",
        [
            "Check your internet connection",
            "Run: create-datadao register-datadao",
        ],
    ),
}

_REFINER_GUIDANCE: Dict[ErrorCategory, Tuple[str, List[str]]] = {
    ErrorCategory.DOCKER_DAEMON: (
        "Docker is installed but the daemon is not running.",
        [
            "Start Docker Desktop (or run: sudo systemctl start docker)",
            "Check with: docker info",
            "Run: create-datadao deploy-refiner",
        ],
    ),
    ErrorCategory.PINATA_AUTH: (
        "Pinata rejected the API credentials.",
        [
            "Check PINATA_API_KEY and PINATA_API_SECRET in refiner/.env",
            "Create a new key at https://app.pinata.cloud/developers/api-keys",
            "Run: create-datadao deploy-refiner",
        ],
    ),
    ErrorCategory.SETUP: (
        "Docker or git is not installed.",
        [
            "Install Docker: https://docs.docker.com/get-docker/",
            "Run: create-datadao deploy-refiner",
        ],
    ),
    ErrorCategory.FUNDING: _REGISTRATION_GUIDANCE[ErrorCategory.FUNDING],
    ErrorCategory.NETWORK: _REGISTRATION_GUIDANCE[ErrorCategory.NETWORK],
    ErrorCategory.REVERTED: (
        "The refiner registry reverted the registration.",
        [
            "Check that you own the DataDAO with this dlpId",
            "Check the schema and refinement URLs are reachable",
            "Register manually through Vanascan",
        ],
    ),
}

_CONTEXTS = {
    "deploy": (_DEPLOY_ORDER, _DEPLOY_GUIDANCE),
    "register": (_REGISTRATION_ORDER, _REGISTRATION_GUIDANCE),
    "refiner": (_REFINER_ORDER, _REFINER_GUIDANCE),
}


def _matches(message: str, matcher: Matcher) -> bool:
    if isinstance(matcher, tuple):
        return all(part in message for part in matcher)
    return matcher in message


def classify(message: str, order: Sequence[ErrorCategory]) -> ErrorCategory:
    """Return the first category in ``order`` whose matchers hit ``message``."""
    lowered = message.lower()
    for category in order:
        if any(_matches(lowered, m) for m in _MATCHERS[category]):
            return category
    return ErrorCategory.UNKNOWN


def error_text(error: Union[BaseException, str]) -> str:
    """
    Text to classify for ``error``.

    A failed command is judged by what it printed; its command line carries
    flags such as ``--network`` that would otherwise match.
    """
    if isinstance(error, CommandError):
        return error.output.strip() or error.tail
    return str(error)


def diagnose(error: Union[BaseException, str], context: str = "deploy") -> Diagnosis:
    """
    Classify an error for a deployment context.

    Args:
        error: Exception or raw message
        context: One of "deploy", "register" or "refiner"

    Returns:
        Diagnosis with headline and recovery steps
    """
    if context not in _CONTEXTS:
        raise ValueError(f"Unknown diagnosis context: {context}")

    order, guidance = _CONTEXTS[context]
    message = error_text(error)
    category = classify(message, order)

    if category is ErrorCategory.UNKNOWN:
        return Diagnosis(
            category=category,
            headline=str(error) or "Unexpected error",
            recovery_steps=[
                "Check the error message above",
                "Run: create-datadao status",
                "Retry the step once the cause is fixed",
            ],
        )

    headline, steps = guidance[category]
    return Diagnosis(
        category=category,
        headline=headline,
        recovery_steps=list(steps),
        retryable=category in _RETRYABLE,
    )
