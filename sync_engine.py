# sync_engine.py

import logging
import os
import shlex
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import paramiko

from errors import (
    FetchError,
    MergeConflictError,
    MergeError,
    RemoteNotFoundError,
    RepositoryNotFoundError,
    SyncAuthError,
    SyncError,
)
from models.policy import Action, PullAction
from models.settings import SyncSettings
from utils import GitCommandError, GitTimeoutError, run_command

logger = logging.getLogger(__name__)

# Key types tried, in order, when loading an SSH private key.
KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)

# stderr fragments that mean the SSH handshake or authorisation failed.
AUTH_FAILURE_MARKERS = (
    "Permission denied (publickey",
    "Host key verification failed",
    "Authentication failed",
    "no such identity",
    "Load key",
)


class SyncOutcome(str, Enum):
    UP_TO_DATE = "up-to-date"
    FAST_FORWARD = "fast-forward"
    MERGED = "merged"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    commit: str


def load_private_key(key_path: str) -> paramiko.PKey:
    """
    Loads the private key at `key_path`, trying each supported key type.
    Raises SyncAuthError if the file is missing or no key type accepts it.
    """
    if not os.path.isfile(key_path):
        raise SyncAuthError(f"SSH key '{key_path}' does not exist.")

    errors = []
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key_file(key_path)
        except (paramiko.SSHException, ValueError) as e:
            errors.append(f"{key_class.__name__}: {e}")
        except OSError as e:
            raise SyncAuthError(f"Unable to read SSH key '{key_path}': {e}") from e
    raise SyncAuthError(f"Unable to load SSH key '{key_path}': {'; '.join(errors)}")


class GitRepository:
    """A git work tree driven through the `git` command line."""

    def __init__(self, path: str, env: dict, timeout: float, git_binary: str = "git"):
        self.path = path
        self.env = env
        self.timeout = timeout
        self.git_binary = git_binary

    def git(self, *args, check: bool = True, timeout_error=SyncError):
        try:
            return run_command(
                [self.git_binary, *args],
                cwd=self.path,
                env=self.env,
                timeout=self.timeout,
                check=check,
            )
        except GitTimeoutError as e:
            raise timeout_error(f"git {args[0]} in '{self.path}' timed out after {e.timeout}s.") from e
        except OSError as e:
            raise SyncError(f"Unable to run git in '{self.path}': {e}") from e

    def output(self, *args) -> str:
        return self.git(*args)[1]

    def resolve(self, ref: str) -> Optional[str]:
        returncode, stdout, _ = self.git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        return stdout if returncode == 0 else None

    def current_branch(self) -> Optional[str]:
        returncode, stdout, _ = self.git("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
        return stdout if returncode == 0 else None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        returncode, _, stderr = self.git("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if returncode not in (0, 1):
            raise MergeError(f"Unable to compare {ancestor} with {descendant}: {stderr}")
        return returncode == 0


class SyncEngine:
    """
    Executes actions against on-disk repositories.

    Work on one repository path is serialized with a per-path lock; work on
    different paths runs concurrently.
    """

    def __init__(
            self,
            timeout: float = 120,
            committer_name: str = "HookSync",
            committer_email: str = "hooksync@localhost",
            git_binary: str = "git",
    ):
        self.timeout = timeout
        self.committer_name = committer_name
        self.committer_email = committer_email
        self.git_binary = git_binary
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._handlers = {
            "Pull": self._pull,
        }

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "SyncEngine":
        return cls(
            timeout=settings.timeout,
            committer_name=settings.committer_name,
            committer_email=settings.committer_email,
        )

    def execute(self, action: Action) -> SyncResult:
        handler = self._handlers.get(action.kind)
        if handler is None:
            raise SyncError(f"Unsupported action kind '{action.kind}'.")
        return handler(action)

    def lock_for(self, path: str) -> threading.Lock:
        key = os.path.realpath(path)
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def _environment(self, key_path: str) -> dict:
        env = dict(os.environ)
        env.update({
            "GIT_SSH_COMMAND": (
                f"ssh -i {shlex.quote(key_path)} -o IdentitiesOnly=yes -o BatchMode=yes "
                f"-o StrictHostKeyChecking=accept-new -o ConnectTimeout={int(self.timeout)}"
            ),
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_AUTHOR_NAME": self.committer_name,
            "GIT_AUTHOR_EMAIL": self.committer_email,
            "GIT_COMMITTER_NAME": self.committer_name,
            "GIT_COMMITTER_EMAIL": self.committer_email,
            "LC_ALL": "C",
        })
        return env

    # ===================================================================
    # PULL
    # ===================================================================
    def _pull(self, action: PullAction) -> SyncResult:
        with self.lock_for(action.path):
            repo = self._open(action.path, action.ssh_key_path)
            logger.info(f"Opened repository: {action.path}")

            remote_url = self._find_remote(repo, action.remote)
            logger.info(f"Using remote '{action.remote}' ({remote_url})")

            # Validates the key only; ssh itself authenticates via GIT_SSH_COMMAND.
            load_private_key(action.ssh_key_path)
            fetched = self._fetch(repo, action.remote, action.branch)
            logger.info(f"Fetched {action.remote}/{action.branch} at {fetched}")

            logger.info("Merging commit...")
            result = self._merge(repo, action, fetched)
            logger.info(f"Repository {action.path} is {result.outcome.value} at {result.commit}")
            return result

    def _open(self, path: str, key_path: str) -> GitRepository:
        if not os.path.isdir(path):
            raise RepositoryNotFoundError(f"Repository path '{path}' does not exist.")

        repo = GitRepository(path, self._environment(key_path), self.timeout, self.git_binary)
        returncode, toplevel, stderr = repo.git("rev-parse", "--show-toplevel", check=False)
        if returncode != 0:
            raise RepositoryNotFoundError(f"'{path}' is not a git work tree: {stderr}")
        if os.path.realpath(toplevel) != os.path.realpath(path):
            raise RepositoryNotFoundError(f"'{path}' is inside the repository at '{toplevel}', not its root.")
        return repo

    def _find_remote(self, repo: GitRepository, remote: str) -> str:
        returncode, url, stderr = repo.git("remote", "get-url", remote, check=False)
        if returncode != 0:
            raise RemoteNotFoundError(f"Couldn't find remote '{remote}': {stderr}")
        return url

    def _fetch(self, repo: GitRepository, remote: str, branch: str) -> str:
        tracking_ref = f"refs/remotes/{remote}/{branch}"
        try:
            repo.git("fetch", "--no-tags", remote, f"+refs/heads/{branch}:{tracking_ref}", timeout_error=FetchError)
        except GitCommandError as e:
            if any(marker in e.stderr for marker in AUTH_FAILURE_MARKERS):
                raise SyncAuthError(f"Authentication with '{remote}' failed: {e.stderr}") from e
            raise FetchError(f"Error fetching {remote}/{branch}: {e.stderr}") from e

        fetched = repo.resolve(tracking_ref)
        if fetched is None:
            raise FetchError(f"Fetched ref '{tracking_ref}' does not resolve to a commit.")
        return fetched

    # ===================================================================
    # MERGE
    # ===================================================================
    def _merge(self, repo: GitRepository, action: PullAction, fetched: str) -> SyncResult:
        branch = action.branch
        local = repo.resolve(f"refs/heads/{branch}")

        if local is not None and (local == fetched or repo.is_ancestor(fetched, local)):
            logger.info(f"Branch '{branch}' is already up to date.")
            return SyncResult(SyncOutcome.UP_TO_DATE, local)

        original = repo.current_branch() or repo.resolve("HEAD")
        try:
            if local is None or repo.is_ancestor(local, fetched):
                return self._fast_forward(repo, branch, local, fetched)
            return self._merge_divergent(repo, action, local, fetched)
        except GitCommandError as e:
            self._restore(repo, original)
            raise MergeError(f"Unable to update branch '{branch}': {e.stderr}") from e
        except SyncError:
            self._restore(repo, original)
            raise

    def _restore(self, repo: GitRepository, original: Optional[str]):
        """Check out `original` again if a failed update switched away from it."""
        if original is None:
            return
        try:
            if (repo.current_branch() or repo.resolve("HEAD")) != original:
                logger.info(f"Restoring checkout of '{original}'")
                repo.git("checkout", "--quiet", original)
        except (GitCommandError, SyncError) as e:
            logger.error(f"Unable to restore checkout of '{original}': {e}")

    def _checkout(self, repo: GitRepository, branch: str):
        if repo.current_branch() != branch:
            logger.info(f"Checking out branch '{branch}'")
            repo.git("checkout", "--quiet", branch)

    def _fast_forward(self, repo: GitRepository, branch: str, local: Optional[str], fetched: str) -> SyncResult:
        if local is None:
            logger.info(f"Creating local branch '{branch}' at {fetched}")
            repo.git("checkout", "--quiet", "-B", branch, fetched)
        else:
            logger.info(f"Fast-forwarding '{branch}' from {local} to {fetched}")
            self._checkout(repo, branch)
            repo.git("merge", "--ff-only", "--quiet", fetched)
        return SyncResult(SyncOutcome.FAST_FORWARD, fetched)

    def _merge_divergent(self, repo: GitRepository, action: PullAction, local: str, fetched: str) -> SyncResult:
        branch = action.branch
        if not action.allow_merge:
            raise MergeConflictError(f"Branch '{branch}' has diverged from {action.remote} and merging is disabled.")

        # Dry run: writes objects only, never touches refs or the working tree.
        returncode, _, stderr = repo.git("merge-tree", "--write-tree", local, fetched, check=False)
        if returncode == 1:
            raise MergeConflictError(f"Merging {fetched} into '{branch}' would conflict.")
        if returncode != 0:
            logger.debug(f"merge-tree unavailable, relying on merge --abort: {stderr}")

        self._checkout(repo, branch)
        message = f"Merge {action.remote}/{branch} into {branch}"
        returncode, _, stderr = repo.git("merge", "--no-ff", "--no-edit", "-m", message, fetched, check=False)
        if returncode != 0:
            if repo.output("ls-files", "--unmerged"):
                repo.git("merge", "--abort")
                raise MergeConflictError(f"Merging {fetched} into '{branch}' conflicted; merge aborted.")
            raise MergeError(f"Unable to merge {fetched} into '{branch}': {stderr}")

        merged = repo.resolve("HEAD")
        return SyncResult(SyncOutcome.MERGED, merged)
