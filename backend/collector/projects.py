"""
Project list derivation.

Combines the working tree's git metadata with the container listing into the
cards shown on the dashboard. Ids are positional (1-based) and not stable
across calls.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import List, Optional

from config.settings import AppConfig
from vcs import GitHeadInfo, GitNotAvailableError, GitService
from models.snapshot_models import (
    ContainerInfo,
    DockerInfo,
    GitCommitInfo,
    Project,
)

logger = logging.getLogger(__name__)

NO_PORTS = 'No ports exposed'


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def placeholder_project(total_deployments: int, status: str = 'running', error: Optional[str] = None) -> Project:
    """Single synthetic entry shown when there is nothing real to list"""
    return Project(
        id=1,
        name=AppConfig.APP_NAME,
        status=status,
        last_deploy=_now_iso(),
        deployments=total_deployments,
        branch='main',
        error=error,
    )


def derive_projects(
    git_head: Optional[GitHeadInfo],
    docker_info: DockerInfo,
    total_deployments: int,
    rng: Optional[random.Random] = None,
) -> List[Project]:
    """
    Build the project list.

    Args:
        git_head: Head metadata of this repository, or None when not in a repo
        docker_info: Latest container listing
        total_deployments: Deployment attempts so far (shown on the repo entry)
        rng: Source for the fabricated per-container deployment counts

    Returns:
        At least one project; the placeholder when git and Docker yield nothing
    """
    rng = rng or random
    now = _now_iso()
    projects = []

    if git_head is not None:
        projects.append(Project(
            id=1,
            name=AppConfig.APP_NAME,
            status='deployed' if docker_info.running else 'stopped',
            last_deploy=now,
            deployments=total_deployments,
            branch=git_head.branch,
            git_info=GitCommitInfo(
                last_commit=git_head.short_commit,
                author=git_head.author,
                message=git_head.message,
                date=git_head.date,
            ),
        ))

    for index, container in enumerate(docker_info.containers):
        if not container.name:
            continue
        projects.append(Project(
            id=index + 2,
            name=container.name.strip(),
            status='deployed' if 'Up' in container.status else 'stopped',
            last_deploy=now,
            deployments=rng.randint(1, 50),
            branch='main',
            container_info=ContainerInfo(
                status=container.status.strip(),
                ports=container.ports.strip() or NO_PORTS,
            ),
        ))

    return projects or [placeholder_project(total_deployments)]


class ProjectDeriver:
    """Re-runs git and container introspection and derives the project list"""

    def __init__(self, probes, git_service: GitService, rng: Optional[random.Random] = None):
        self.probes = probes
        self.git_service = git_service
        self.rng = rng

    async def read_git_head(self) -> Optional[GitHeadInfo]:
        try:
            return await self.git_service.get_head_info()
        except GitNotAvailableError as e:
            logger.debug(f"Git metadata unavailable: {e}")
            return None

    async def build(self, total_deployments: int, docker_info: Optional[DockerInfo] = None) -> List[Project]:
        """
        Derive the project list.

        Args:
            total_deployments: Current deployment attempt count
            docker_info: Container listing to use; probed fresh when omitted
        """
        try:
            if docker_info is None:
                git_head, docker_info = await asyncio.gather(
                    self.read_git_head(),
                    self.probes.collect_container_state(),
                )
            else:
                git_head = await self.read_git_head()
            return derive_projects(git_head, docker_info, total_deployments, rng=self.rng)
        except Exception as e:
            logger.error(f"Error deriving projects: {e}", exc_info=True)
            return [placeholder_project(total_deployments, status='unknown', error=str(e))]
