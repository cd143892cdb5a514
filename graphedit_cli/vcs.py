"""Git commit capability used by the apply step."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import git

from .errors import CommitError
from .models import CommitResult

logger = logging.getLogger(__name__)


class Committer(Protocol):
    def commit_all(self, root_dir: Path, message: str) -> CommitResult:
        ...


class GitCommitter:
    """Stage everything under a root and commit it in one go."""

    def _repo(self, root_dir: Path) -> git.Repo:
        try:
            return git.Repo(str(root_dir))
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as exc:
            raise CommitError(f"{root_dir} is not a git repository") from exc

    def init_if_needed(self, root_dir: Path) -> bool:
        """Initialise a repository with an initial commit. Returns True if created."""
        try:
            git.Repo(str(root_dir))
            return False
        except git.exc.InvalidGitRepositoryError:
            pass
        except git.exc.NoSuchPathError as exc:
            raise CommitError(f"{root_dir} does not exist") from exc
        try:
            repo = git.Repo.init(str(root_dir))
            repo.git.add(A=True)
            repo.index.commit("Initial commit")
        except git.exc.GitError as exc:
            raise CommitError(f"git init failed: {exc}") from exc
        logger.info("Initialised git repository at %s", root_dir)
        return True

    def commit_all(self, root_dir: Path, message: str) -> CommitResult:
        """Commit all changes. A clean tree is a no-op with ``committed=False``."""
        repo = self._repo(root_dir)
        try:
            repo.git.add(A=True)
            if repo.head.is_valid():
                nothing_staged = not repo.is_dirty(index=True, working_tree=False, untracked_files=False)
            else:
                nothing_staged = not repo.index.entries
            if nothing_staged:
                return CommitResult(committed=False)
            commit = repo.index.commit(message)
        except git.exc.GitError as exc:
            raise CommitError(str(exc)) from exc
        return CommitResult(committed=True, sha=commit.hexsha)
