"""
Snapshot Collector for the Auto-Deploy dashboard
Periodically aggregates every probe group into one published snapshot
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from config.settings import AppConfig
from collector.probes import HostProbes
from collector.state import DashboardState
from models.snapshot_models import AwsInfo, DockerInfo, GitHubInfo, Snapshot, SystemMetrics

logger = logging.getLogger(__name__)


class SnapshotCollector:
    """
    Produces best-effort snapshots of host, container, VCS and cloud state.

    Refreshes never overlap: the periodic loop awaits each refresh before
    sleeping, and a refresh requested while another is running is skipped.
    """

    def __init__(
        self,
        state: DashboardState,
        probes: HostProbes,
        interval: Optional[float] = None,
    ):
        self.state = state
        self.probes = probes
        self.interval = interval if interval is not None else AppConfig.REFRESH_INTERVAL_SECONDS
        self.task: Optional[asyncio.Task] = None
        self._refresh_lock = asyncio.Lock()

    async def _collect_groups(self) -> Snapshot:
        docker_result, system_result, github_result, aws_result = await asyncio.gather(
            self.probes.collect_container_state(),
            self.probes.collect_host_metrics(),
            self.probes.collect_workflow_state(),
            self.probes.collect_cloud_identity(),
            return_exceptions=True,
        )

        # Probes degrade on their own; anything that still escapes is confined
        # to its group
        if isinstance(docker_result, Exception):
            logger.error(f"Container probe failed: {docker_result}", exc_info=docker_result)
            docker_result = DockerInfo.degraded(str(docker_result))
        if isinstance(system_result, Exception):
            logger.error(f"Host metrics probe failed: {system_result}", exc_info=system_result)
            system_result = SystemMetrics(**HostProbes.host_identity(), error=str(system_result))
        if isinstance(github_result, Exception):
            logger.error(f"Workflow probe failed: {github_result}", exc_info=github_result)
            github_result = GitHubInfo.degraded(str(github_result))
        if isinstance(aws_result, Exception):
            logger.error(f"Cloud identity probe failed: {aws_result}", exc_info=aws_result)
            aws_result = AwsInfo.degraded(str(aws_result), region=AppConfig.AWS_REGION)

        return Snapshot(
            docker=docker_result,
            system=system_result,
            github=github_result,
            aws=aws_result,
            last_updated=datetime.now(timezone.utc).isoformat(),
        )

    async def refresh(self) -> Optional[Snapshot]:
        """
        Collect all probe groups concurrently and publish the result.

        Returns:
            The newly published snapshot, or the current one when a refresh
            was already in progress
        """
        if self._refresh_lock.locked():
            logger.debug("Refresh already in progress, skipping")
            return self.state.snapshot

        async with self._refresh_lock:
            snapshot = await self._collect_groups()
            self.state.publish_snapshot(snapshot)

            logger.info(
                f"System data refreshed: docker={'up' if snapshot.docker.running else 'down'} "
                f"containers={snapshot.docker.container_count} "
                f"workflows={snapshot.github.count} aws={snapshot.aws.connected}"
            )
            return snapshot

    async def run_periodic(self):
        """Refresh now, then every `interval` seconds until cancelled"""
        logger.info(f"Snapshot collector started (interval {self.interval:g}s)")
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Next tick is the retry
                logger.error(f"Error refreshing system data: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run_periodic())
        return self.task

    async def stop(self):
        """Cancel the periodic task and wait for it to finish"""
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            logger.info("Snapshot collector cancelled successfully")
        except Exception as e:
            logger.error(f"Error during snapshot collector shutdown: {e}")
        finally:
            self.task = None
