"""
State Management Module for the Auto-Deploy dashboard
Owns the published snapshot and deployment counters

The snapshot collector is the only writer of `snapshot`; request
handlers only read. Publishing is a single reference assignment, so readers see
either the previous snapshot or the new one, never a mix of two cycles.
"""

import logging
import time
from typing import Optional

from fastapi import Request

from models.snapshot_models import DeploymentStats, Snapshot

logger = logging.getLogger(__name__)


class DashboardState:
    """Process-wide dashboard state, passed to handlers through app.state"""

    def __init__(self):
        self._snapshot: Optional[Snapshot] = None
        self.deployment_stats = DeploymentStats()
        self.started_at = time.monotonic()
        self.refresh_count = 0

    @property
    def snapshot(self) -> Optional[Snapshot]:
        """Latest complete snapshot, or None before the first refresh finishes"""
        return self._snapshot

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.started_at)

    def publish_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self.refresh_count += 1

    # ==================== Deployment Counters ====================

    def record_deployment_started(self) -> None:
        self.deployment_stats.total += 1

    def record_deployment_finished(self, success: bool) -> None:
        if success:
            self.deployment_stats.successful += 1
        else:
            self.deployment_stats.failed += 1

    def system_health(self) -> dict:
        """Per-collaborator health flags for the status endpoint"""
        snapshot = self._snapshot
        if snapshot is None:
            return {'docker': False, 'github': False, 'aws': False}
        return {
            'docker': snapshot.docker.running,
            'github': snapshot.github.active,
            'aws': snapshot.aws.connected,
        }


def get_dashboard_state(request: Request) -> DashboardState:
    """FastAPI dependency returning the app-owned dashboard state"""
    return request.app.state.dashboard
