"""
External command helpers: git, docker, the GitHub CLI and the contract
deployment tool all run through ``run``.
"""

import subprocess
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Union

from loguru import logger
from pydantic import BaseModel, Field

from ..exceptions import CommandError

PathLike = Union[str, Path]


class CommandResult(BaseModel):
    """Finished external command."""

    command: str = Field(..., description="Command line as run")
    returncode: int = Field(..., description="Exit status")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return f"{self.stdout}{self.stderr}"


def run(
    args: Sequence[str],
    cwd: Optional[PathLike] = None,
    check: bool = True,
    env: Optional[Mapping[str, str]] = None,
    on_line: Optional[Callable[[str], None]] = None,
) -> CommandResult:
    """
    Run a command and capture its output.

    Args:
        args: Program and arguments
        cwd: Working directory
        check: Raise ``CommandError`` on a non-zero exit
        env: Full environment for the child process
        on_line: Called with every output line as it is produced; stderr is
            merged into stdout in this mode

    Returns:
        CommandResult

    Raises:
        CommandError: If the program is missing, or exits non-zero with ``check``
    """
    command = " ".join(str(a) for a in args)
    logger.debug(f"$ {command} (cwd={cwd or '.'})")

    try:
        if on_line is None:
            completed = subprocess.run(
                [str(a) for a in args],
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
            )
            result = CommandResult(
                command=command,
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )
        else:
            lines: List[str] = []
            with subprocess.Popen(
                [str(a) for a in args],
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            ) as process:
                for line in process.stdout:
                    lines.append(line)
                    on_line(line.rstrip("\n"))
            result = CommandResult(command=command, returncode=process.returncode, stdout="".join(lines))
    except FileNotFoundError as e:
        raise CommandError(command, 127, stderr=f"command not found: {args[0]} ({e})")

    if check and not result.ok:
        raise CommandError(command, result.returncode, result.stdout, result.stderr)
    return result


def command_available(program: str, version_flag: str = "--version") -> bool:
    try:
        return run([program, version_flag], check=False).ok
    except CommandError:
        return False


class GitRepository:
    """Git working copy of a template component (proof or refiner)."""

    def __init__(self, path: PathLike):
        self.path = Path(path)

    def git(self, *args: str, check: bool = True) -> CommandResult:
        return run(["git", *args], cwd=self.path, check=check)

    def is_initialized(self) -> bool:
        return (self.path / ".git").exists()

    def init(self) -> bool:
        """Initialise the repository; returns False if it already existed."""
        if self.is_initialized():
            return False
        self.git("init")
        return True

    def set_remote(self, url: str, name: str = "origin") -> str:
        """Point ``name`` at ``url``; returns ``"updated"`` or ``"added"``."""
        if self.git("remote", "get-url", name, check=False).ok:
            self.git("remote", "set-url", name, url)
            return "updated"
        self.git("remote", "add", name, url)
        return "added"

    def sync_with_remote(self, branch: str = "main", remote: str = "origin") -> str:
        """
        Bring remote commits (such as release workflow commits) into the local branch.

        Fetches, then merges ``remote/branch`` allowing unrelated histories,
        falling back to a rebase.

        Returns:
            ``"merged"`` or ``"rebased"``

        Raises:
            CommandError: If fetching fails, or both merge and rebase fail
        """
        self.git("fetch", remote)
        merge = self.git("merge", f"{remote}/{branch}", "--allow-unrelated-histories", "--no-edit", check=False)
        if merge.ok:
            return "merged"
        self.git("merge", "--abort", check=False)
        rebase = self.git("rebase", f"{remote}/{branch}", check=False)
        if rebase.ok:
            return "rebased"
        self.git("rebase", "--abort", check=False)
        raise CommandError(
            f"git merge/rebase {remote}/{branch}",
            rebase.returncode,
            stdout=f"Merge: {merge.output.strip()}\n",
            stderr=f"Rebase: {rebase.output.strip()}",
        )

    def commit_all(self, message: str) -> bool:
        """Stage everything and commit; returns False when there was nothing to commit."""
        self.git("add", ".")
        return self.git("commit", "-m", message, check=False).ok

    def push(self, branch: str = "main", remote: str = "origin") -> CommandResult:
        return self.git("push", "-u", remote, branch)


class Docker:
    """The handful of docker commands used for local schema generation."""

    def __init__(self, cwd: PathLike):
        self.cwd = Path(cwd)

    def daemon_running(self) -> bool:
        try:
            return run(["docker", "info"], cwd=self.cwd, check=False).ok
        except CommandError:
            return False

    def build(self, tag: str) -> CommandResult:
        return run(["docker", "build", "-t", tag, "."], cwd=self.cwd)

    def run_with_volumes(self, tag: str, volumes: Mapping[str, str], env_file: Optional[str] = None) -> CommandResult:
        args = ["docker", "run", "--rm"]
        for host, container in volumes.items():
            args += ["-v", f"{host}:{container}"]
        if env_file:
            args += ["--env-file", env_file]
        args.append(tag)
        return run(args, cwd=self.cwd)


class GitHubCLI:
    """Thin wrapper over ``gh`` for creating repositories from templates."""

    def available(self) -> bool:
        return command_available("gh")

    def authenticated(self) -> bool:
        try:
            return run(["gh", "auth", "status"], check=False).ok
        except CommandError:
            return False

    def repo_exists(self, owner: str, name: str) -> bool:
        return run(["gh", "repo", "view", f"{owner}/{name}"], check=False).ok

    def create_from_template(self, name: str, template: str, description: str) -> CommandResult:
        return run([
            "gh", "repo", "create", name,
            "--template", template,
            "--public",
            "--description", description,
        ])

    def enable_actions(self, owner: str, name: str) -> bool:
        result = run([
            "gh", "api", f"repos/{owner}/{name}/actions/permissions",
            "--method", "PUT",
            "--field", "enabled=true",
            "--field", "allowed_actions=all",
        ], check=False)
        return result.ok
