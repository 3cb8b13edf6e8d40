"""
Simulated deployments for the Auto-Deploy dashboard.

Nothing is built, pushed or deployed here. A trigger bumps the attempt counter
right away and, after a fixed delay, records a random outcome that succeeds
with a fixed high probability. Outcomes still pending at shutdown are dropped.
"""

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Optional, Set

from config.settings import AppConfig
from collector.state import DashboardState
from models.snapshot_models import ProjectId

logger = logging.getLogger(__name__)

# Stages printed by the deployment log view
LOG_STAGES = [
    "Starting deployment...",
    "Checking system resources...",
    "Building Docker image...",
    "Pushing to DockerHub...",
    "Deploying to EC2...",
    "Running health checks...",
    "Deployment successful!",
]
LOG_DURATION = '4m 32s'


class DeploymentValidationError(ValueError):
    """Raised when a deployment request is missing required fields."""
    pass


class DeploymentError(RuntimeError):
    """Raised when a deployment could not be initiated."""
    pass


def make_deployment_id(project_id: ProjectId, now: Optional[float] = None) -> str:
    """Build 'deploy_<epoch-ms>_<projectId>'"""
    epoch_ms = int((now if now is not None else time.time()) * 1000)
    return f"deploy_{epoch_ms}_{project_id}"


class DeploymentSimulator:
    """Fabricates deployment attempts and their delayed outcomes"""

    def __init__(
        self,
        state: DashboardState,
        delay: Optional[float] = None,
        success_rate: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.state = state
        self.delay = delay if delay is not None else AppConfig.DEPLOY_DELAY_SECONDS
        self.success_rate = success_rate if success_rate is not None else AppConfig.DEPLOY_SUCCESS_RATE
        self.rng = rng or random.Random()
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def trigger(self, project_id: Optional[ProjectId], branch: Optional[str] = None) -> dict:
        """
        Start a simulated deployment.

        Args:
            project_id: Project to "deploy"; required
            branch: Branch name, defaults to 'main'

        Returns:
            The "initiated" response body. The outcome is resolved later.

        Raises:
            DeploymentValidationError: If project_id is missing
            DeploymentError: If the outcome could not be scheduled
        """
        if not project_id:
            raise DeploymentValidationError("Project ID is required")

        branch = branch or 'main'
        deployment_id = make_deployment_id(project_id)

        self.state.record_deployment_started()
        success = self.rng.random() < self.success_rate

        try:
            task = asyncio.get_running_loop().create_task(self._resolve_later(deployment_id, success))
        except RuntimeError as e:
            self.state.record_deployment_finished(False)
            logger.error(f"Failed to schedule deployment {deployment_id}: {e}")
            raise DeploymentError(str(e)) from e

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        logger.info(f"Deployment {deployment_id} initiated for project {project_id} on branch {branch}")

        return {
            'success': True,
            'message': f"Deployment initiated for project {project_id}",
            'deploymentId': deployment_id,
            'projectId': project_id,
            'branch': branch,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'estimatedTime': AppConfig.DEPLOY_ESTIMATED_TIME,
        }

    async def _resolve_later(self, deployment_id: str, success: bool):
        await asyncio.sleep(self.delay)
        self.state.record_deployment_finished(success)
        logger.info(f"Deployment {deployment_id} {'succeeded' if success else 'failed'}")

    def log_transcript(self, deployment_id: str) -> dict:
        """
        Canned log view. The id is echoed back without any lookup.
        """
        stamp = datetime.now().strftime('%I:%M:%S %p').lstrip('0')
        snapshot = self.state.snapshot
        system = snapshot.system if snapshot else None

        return {
            'deploymentId': deployment_id,
            'status': 'completed',
            'logs': [f"[{stamp}] {stage}" for stage in LOG_STAGES],
            'duration': LOG_DURATION,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'systemInfo': {
                'hostname': system.hostname if system else None,
                'uptime': system.uptime if system else None,
            },
        }

    async def shutdown(self):
        """Cancel outcomes that have not resolved yet"""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Dropped {len(pending)} pending deployment outcome(s)")
