"""Shared plumbing for deployment steps."""

import re
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from ..base.config import ToolkitSettings
from ..base.diagnostics import Diagnosis
from ..base.network import NetworkConfig
from ..base.state import DeploymentStateManager
from ..exceptions import CommandError, DataDAOError
from ..utils.chain import ChainClient
from ..utils.output import output
from ..utils.shell import GitRepository

_GITHUB_REPO_RE = re.compile(r"github\.com/[^/]+/(.+?)(?:\.git)?$")


class StepContext:
    """
    Everything a step needs: the project's deployment state, the toolkit
    settings and lazily created chain clients.
    """

    def __init__(
        self,
        project_root: Union[str, Path] = ".",
        settings: Optional[ToolkitSettings] = None,
        state: Optional[DeploymentStateManager] = None,
        chain: Optional[ChainClient] = None,
    ):
        self.settings = settings or ToolkitSettings.from_env()
        self.state = state or DeploymentStateManager(project_root)
        self.network: NetworkConfig = self.settings.get_network()
        self._chain = chain
        self._signing_chain = chain

    @property
    def project_root(self) -> Path:
        return self.state.project_root

    @property
    def quick_mode(self) -> bool:
        return self.settings.quick_mode or self.state.is_quick_mode()

    def component_dir(self, name: str) -> Path:
        return self.state.component_dir(name)

    def env_path(self, component: str) -> Path:
        return self.component_dir(component) / ".env"

    def chain(self) -> ChainClient:
        """Read-only chain client."""
        if self._chain is None:
            self._chain = ChainClient(self.network)
        return self._chain

    def signing_chain(self) -> ChainClient:
        """Chain client that signs with the deployer key from ``contracts/.env``."""
        if self._signing_chain is None:
            private_key = self.state.private_key()
            if not private_key:
                raise DataDAOError("DEPLOYER_PRIVATE_KEY not found in contracts/.env. Run: create-datadao setup")
            self._signing_chain = ChainClient.with_private_key(self.network, private_key)
        return self._signing_chain


def extract_repo_name(repo_url: str) -> Optional[str]:
    """Repository name from a GitHub URL (``.git`` suffix stripped)."""
    match = _GITHUB_REPO_RE.search(repo_url.strip().rstrip('/'))
    return match.group(1) if match else None


def show_diagnosis(diagnosis: Diagnosis, title: str = "Recovery steps:") -> None:
    output.error(diagnosis.headline)
    output.numbered(title, diagnosis.recovery_steps, style="yellow")
    if diagnosis.retryable:
        output.info("This error is usually temporary; retrying often works.")


def prepare_component_repo(path: Path, repo_url: str, commit_message: str) -> bool:
    """
    Initialise a component's git repository, point it at ``repo_url``, pull in
    remote history and commit local changes.

    Returns:
        True when the repository is ready to push
    """
    output.progress("Setting up git repository...")
    repo = GitRepository(path)
    try:
        if repo.init():
            output.success("Git repository initialized")
        action = repo.set_remote(repo_url)
        output.success(f"Git remote origin {action}")

        try:
            how = repo.sync_with_remote()
            output.success("Synchronized with remote repository" if how == "merged" else "Rebased with remote repository")
        except CommandError as e:
            output.warning("Could not synchronize with the remote repository; resolve conflicts manually:")
            output.detail(str(e))
            output.bullets([
                "git fetch origin",
                "git branch --set-upstream-to origin/main",
                "git pull origin main",
            ])

        if repo.commit_all(commit_message):
            output.success("Changes committed")
        else:
            output.info("No new changes to commit")
    except CommandError as e:
        logger.error(f"Git setup failed in {path}: {e}")
        output.error(f"Git setup failed: {e}")
        output.warning("Set up the repository manually:")
        output.bullets([f"cd {path.name}", "git init", f"git remote add origin {repo_url}"])
        return False

    output.success("Git setup completed")
    return True


def push_component(path: Path) -> bool:
    """Push ``main`` to ``origin``, printing manual instructions on failure."""
    output.progress("Pushing to GitHub...")
    try:
        GitRepository(path).push()
    except CommandError as e:
        output.error(f"Push failed: {e}")
        output.warning(f"Push manually: cd {path.name} && git push -u origin main")
        return False
    output.success("Pushed to GitHub")
    return True
