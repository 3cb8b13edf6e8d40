"""
Git metadata module for the project list.

This module provides:
- GitService: Read-only branch / last-commit lookups via the git CLI
- GitHeadInfo: Result dataclass for head lookups
- get_git_service(): Singleton accessor
"""
from vcs.git_service import (
    GitService,
    GitNotAvailableError,
    GitHeadInfo,
    get_git_service,
)

__all__ = [
    'GitService',
    'GitNotAvailableError',
    'GitHeadInfo',
    'get_git_service',
]
