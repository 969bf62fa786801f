"""Exceptions raised by the DataDAO deployment toolkit."""

from typing import Iterable, Optional


class DataDAOError(Exception):
    """Base error for every failure the toolkit reports to the user."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class StateFileError(DataDAOError):
    """deployment.json is missing or unreadable."""


class MissingFieldsError(DataDAOError):
    """Required deployment fields are absent."""

    def __init__(self, fields: Iterable[str], step: Optional[str] = None):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}", step=step)


class StepCancelled(DataDAOError):
    """The user chose to skip or abort a step."""


class CommandError(DataDAOError):
    """An external command (git, docker, hardhat, gh) exited non-zero."""

    def __init__(
        self,
        command: str,
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        step: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout).strip().splitlines()
        self.tail = detail[-1] if detail else "no output"
        super().__init__(f"Command failed ({returncode}): {command}: {self.tail}", step=step)

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return f"{self.stdout}{self.stderr}"


class InsufficientBalanceError(DataDAOError):
    """Wallet cannot cover a deployment or registration."""

    def __init__(self, balance: float, required: float, step: Optional[str] = None):
        self.balance = balance
        self.required = required
        super().__init__(
            f"insufficient funds: balance {balance:.4f} VANA, need at least {required} VANA",
            step=step,
        )


class RegistrationError(DataDAOError):
    """DataDAO registration failed or is not possible."""


class ContractCallError(DataDAOError):
    """A contract read or transaction failed."""


class ContributionError(DataDAOError):
    """A step of the data contribution flow failed."""

    def __init__(self, message: str, flow_step: int, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.flow_step = flow_step
