"""
Git metadata service for the project list.

Uses native git CLI commands via subprocess. All operations are async to avoid
blocking the event loop; the subprocess itself runs in a worker thread.

Only read-only commands are issued against the configured working tree:
    - rev-parse --is-inside-work-tree  (is this a repository at all)
    - branch --show-current            (current branch)
    - log -1                           (last commit hash/author/date/subject)
"""
import asyncio
import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List

from config.settings import AppConfig

logger = logging.getLogger(__name__)

# Public API
__all__ = [
    'GitService',
    'GitNotAvailableError',
    'GitHeadInfo',
    'get_git_service',
]

# Field separator for `git log --format`; subjects may contain '|' so only the
# first three separators are significant.
LOG_FORMAT = '%H|%an|%ad|%s'


@dataclass
class GitHeadInfo:
    """Current branch and last commit of a working tree."""
    branch: str
    commit: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    message: Optional[str] = None

    @property
    def short_commit(self) -> Optional[str]:
        return self.commit[:8] if self.commit else None


class GitNotAvailableError(RuntimeError):
    """Raised when git is not installed or not accessible."""
    pass


class GitService:
    """
    Git metadata lookups using the native CLI.
    """

    def __init__(self, repo_dir: Optional[str] = None, timeout: Optional[float] = None):
        """
        Initialize GitService.

        Args:
            repo_dir: Working tree to inspect. Defaults to AUTODEPLOY_REPO_DIR.
            timeout: Per-command timeout in seconds.
        """
        self.repo_dir = Path(repo_dir) if repo_dir else Path(AppConfig.REPO_DIR)
        self.timeout = timeout if timeout is not None else AppConfig.COMMAND_TIMEOUT_SECONDS

    async def get_head_info(self) -> Optional[GitHeadInfo]:
        """
        Read branch and last commit of the working tree.

        Returns:
            GitHeadInfo, or None when repo_dir is not inside a git repository

        Raises:
            GitNotAvailableError: If git is not installed or a command timed out
        """
        inside = await self._run_git(['rev-parse', '--is-inside-work-tree'])
        if inside.returncode != 0 or inside.stdout.strip() != 'true':
            return None

        branch_result = await self._run_git(['branch', '--show-current'])
        branch = branch_result.stdout.strip() if branch_result.returncode == 0 else ''
        # Detached HEAD prints nothing
        head = GitHeadInfo(branch=branch or 'main')

        log_result = await self._run_git(['log', '-1', f'--format={LOG_FORMAT}'])
        if log_result.returncode == 0 and log_result.stdout.strip():
            commit, author, date, message = self.parse_log_line(log_result.stdout)
            head.commit = commit
            head.author = author
            head.date = date
            head.message = message
        else:
            logger.debug(f"No commits in {self.repo_dir}: {log_result.stderr.strip()}")

        return head

    @staticmethod
    def parse_log_line(line: str) -> List[Optional[str]]:
        """
        Split one `git log --format=%H|%an|%ad|%s` line into its four fields.

        Missing trailing fields come back as None.
        """
        parts = line.strip().split('|', 3)
        parts += [None] * (4 - len(parts))
        return [p.strip() if p is not None else None for p in parts]

    async def _run_git(self, args: List[str]) -> subprocess.CompletedProcess:
        """
        Run git command asynchronously.

        Args:
            args: Git command arguments (without 'git' prefix)

        Returns:
            CompletedProcess with stdout, stderr, and returncode

        Raises:
            GitNotAvailableError: If git is missing or the command timed out
        """
        full_env = {
            **os.environ,
            'GIT_TERMINAL_PROMPT': '0',  # Disable interactive prompts
        }

        try:
            return await asyncio.to_thread(
                subprocess.run,
                ['git'] + args,
                cwd=self.repo_dir,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            # Raised for a missing git binary and for a missing working directory
            if not self.repo_dir.exists():
                raise GitNotAvailableError(f"Repository directory not found: {self.repo_dir}")
            raise GitNotAvailableError("Git not found. Install git on the host")
        except subprocess.TimeoutExpired:
            raise GitNotAvailableError(f"Git command timed out: git {' '.join(args)}")


# Singleton instance with thread-safe initialization
_git_service: Optional[GitService] = None
_git_service_lock = threading.Lock()


def get_git_service() -> GitService:
    """
    Get or create the singleton GitService instance.

    Thread-safe using double-checked locking pattern.
    """
    global _git_service

    if _git_service is not None:
        return _git_service

    with _git_service_lock:
        if _git_service is None:
            _git_service = GitService()
        return _git_service
