"""
Host Probes for the Auto-Deploy dashboard
Narrow adapters around every external collaborator the snapshot is built from

Each collect_* coroutine returns a result model. Collaborator failures (daemon
down, binary missing, timeout, malformed output) never propagate: they come back
as the model's degraded form with `error` set.
"""

import asyncio
import logging
import os
import platform
import socket
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import docker
import httpx
import psutil
from docker import DockerClient
from docker.errors import DockerException

from config.settings import AppConfig
from models.snapshot_models import (
    AwsInfo,
    ContainerSummary,
    DiskUsage,
    DockerInfo,
    GitHubInfo,
    ImageSummary,
    MemoryInfo,
    SystemMetrics,
)
from utils.async_docker import async_docker_call

logger = logging.getLogger(__name__)

GIB = 1024 ** 3

# Reported when the public-IP lookup or metadata lookup gets no answer
UNKNOWN = 'Unknown'
NOT_ON_AWS = 'Not on AWS'


def format_gib(num_bytes: int) -> str:
    """Format a byte count the way the dashboard cards show memory ("15.54 GB")"""
    return f"{num_bytes / GIB:.2f} GB"


def format_ports(ports: Optional[list]) -> str:
    """
    Render the Ports list of a sparse container listing like `docker ps` does.

    Example:
        >>> format_ports([{'IP': '0.0.0.0', 'PrivatePort': 80, 'PublicPort': 8080, 'Type': 'tcp'}])
        '0.0.0.0:8080->80/tcp'
    """
    rendered = []
    for port in ports or []:
        private = f"{port.get('PrivatePort')}/{port.get('Type', 'tcp')}"
        if port.get('PublicPort'):
            rendered.append(f"{port.get('IP', '0.0.0.0')}:{port['PublicPort']}->{private}")
        else:
            rendered.append(private)
    # IPv4 and IPv6 bindings of the same port show up twice
    return ', '.join(dict.fromkeys(rendered))


def split_image_tag(tag: str) -> tuple:
    """
    Split 'repo[:tag]' into (repository, tag).

    A colon that belongs to a registry port (registry:5000/app) is not a tag separator.
    """
    repository, sep, version = tag.rpartition(':')
    if not sep or '/' in version:
        return tag, 'latest'
    return repository, version


def _image_created_at(created) -> Optional[str]:
    # Image inspect returns an ISO string, /images/json an epoch
    if isinstance(created, (int, float)):
        return datetime.fromtimestamp(created, tz=timezone.utc).isoformat()
    return created


class HostProbes:
    """Collects container, host, workflow and cloud identity state"""

    def __init__(
        self,
        docker_client_factory: Optional[Callable[[], DockerClient]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        workflows_dir: Optional[str] = None,
        disk_path: str = '/',
        command_timeout: Optional[float] = None,
        metadata_timeout: Optional[float] = None,
        public_ip_url: Optional[str] = None,
        metadata_url: Optional[str] = None,
        region: Optional[str] = None,
    ):
        self.command_timeout = command_timeout if command_timeout is not None else AppConfig.COMMAND_TIMEOUT_SECONDS
        self.metadata_timeout = metadata_timeout if metadata_timeout is not None else AppConfig.METADATA_TIMEOUT_SECONDS
        self.docker_client_factory = docker_client_factory or self._default_docker_client
        self.http_transport = http_transport
        self.workflows_dir = Path(workflows_dir or AppConfig.WORKFLOWS_DIR)
        self.disk_path = disk_path
        self.public_ip_url = public_ip_url or AppConfig.PUBLIC_IP_URL
        self.metadata_url = metadata_url or AppConfig.METADATA_URL
        self.region = region or AppConfig.AWS_REGION
        self._docker_client: Optional[DockerClient] = None
        self._docker_client_lock = asyncio.Lock()

    def _default_docker_client(self) -> DockerClient:
        return docker.from_env(timeout=int(self.command_timeout))

    # ==================== Container Runtime ====================

    async def _get_docker_client(self) -> DockerClient:
        if self._docker_client is None:
            async with self._docker_client_lock:
                # Another caller may have connected while we waited
                if self._docker_client is None:
                    self._docker_client = await async_docker_call(self.docker_client_factory)
        return self._docker_client

    def _reset_docker_client(self, failed: Optional[DockerClient]) -> None:
        """Drop the cached client, unless it was already replaced since `failed` was handed out"""
        if failed is None or failed is not self._docker_client:
            return
        client, self._docker_client = self._docker_client, None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.debug(f"Error closing Docker client: {e}")

    async def collect_container_state(self) -> DockerInfo:
        """List running containers and local images"""
        client = None
        try:
            client = await self._get_docker_client()
            containers = await async_docker_call(client.containers.list, sparse=True)
            images = await async_docker_call(client.images.list)
        except (DockerException, OSError) as e:
            # Drop the client so the next refresh reconnects
            self._reset_docker_client(client)
            logger.warning(f"Docker unavailable: {e}")
            return DockerInfo.degraded(str(e))
        except Exception as e:
            self._reset_docker_client(client)
            logger.error(f"Unexpected error listing containers: {e}", exc_info=True)
            return DockerInfo.degraded(str(e))

        container_summaries = []
        for container in containers:
            attrs = container.attrs or {}
            names = attrs.get('Names') or []
            name = names[0].lstrip('/') if names else (container.name or container.short_id)
            container_summaries.append(ContainerSummary(
                name=name,
                status=attrs.get('Status') or container.status or '',
                ports=format_ports(attrs.get('Ports')),
            ))

        image_summaries = []
        for image in images:
            created_at = _image_created_at((image.attrs or {}).get('Created'))
            if not image.tags:
                image_summaries.append(ImageSummary(repository='<none>', tag='<none>', created_at=created_at))
                continue
            for tag in image.tags:
                repository, version = split_image_tag(tag)
                image_summaries.append(ImageSummary(repository=repository, tag=version, created_at=created_at))

        return DockerInfo(
            running=True,
            containers=container_summaries,
            images=image_summaries,
            container_count=len(container_summaries),
        )

    # ==================== Host Metrics ====================

    @staticmethod
    def host_identity() -> dict:
        """Values that are always available, even when metric collection fails"""
        try:
            uptime = max(0.0, time.time() - psutil.boot_time())
        except Exception:
            uptime = 0.0
        return {
            'uptime': uptime,
            'hostname': socket.gethostname(),
            'platform': sys.platform,
        }

    def _read_host_metrics(self) -> SystemMetrics:
        identity = self.host_identity()
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(self.disk_path)
        load_average = [round(x, 2) for x in os.getloadavg()] if hasattr(os, 'getloadavg') else []

        return SystemMetrics(
            **identity,
            architecture=platform.machine(),
            cpu_count=psutil.cpu_count() or 0,
            total_memory=format_gib(memory.total),
            free_memory=format_gib(memory.available),
            load_average=load_average,
            disk_usage=DiskUsage(
                path=self.disk_path,
                total=disk.total,
                used=disk.used,
                free=disk.free,
                percent=disk.percent,
            ),
            memory_info=MemoryInfo(
                total=memory.total,
                used=memory.used,
                available=memory.available,
                percent=memory.percent,
            ),
        )

    async def collect_host_metrics(self) -> SystemMetrics:
        """OS identity, uptime, CPU count, load, disk and memory usage"""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._read_host_metrics),
                timeout=self.command_timeout
            )
        except Exception as e:
            logger.warning(f"Failed to collect host metrics: {e}")
            return SystemMetrics(**self.host_identity(), error=str(e) or type(e).__name__)

    # ==================== CI Workflows ====================

    def _list_workflows(self) -> List[str]:
        if not self.workflows_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.workflows_dir.iterdir() if entry.is_file())

    async def collect_workflow_state(self) -> GitHubInfo:
        """List workflow files under .github/workflows"""
        try:
            workflows = await asyncio.to_thread(self._list_workflows)
        except OSError as e:
            logger.warning(f"Failed to list workflows in {self.workflows_dir}: {e}")
            return GitHubInfo.degraded(str(e))

        return GitHubInfo(active=len(workflows) > 0, workflows=workflows, count=len(workflows))

    # ==================== Cloud Identity ====================

    async def _fetch_text(self, client: httpx.AsyncClient, url: str, timeout: httpx.Timeout) -> Optional[str]:
        try:
            response = await client.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Lookup of {url} failed: {e}")
            return None
        if response.status_code != 200:
            logger.debug(f"Lookup of {url} returned HTTP {response.status_code}")
            return None
        return response.text.strip() or None

    async def collect_cloud_identity(self) -> AwsInfo:
        """Public IP and cloud instance id; not connected when the metadata endpoint is silent"""
        try:
            async with httpx.AsyncClient(transport=self.http_transport) as client:
                public_ip, instance_id = await asyncio.gather(
                    self._fetch_text(client, self.public_ip_url, httpx.Timeout(self.command_timeout)),
                    self._fetch_text(
                        client,
                        self.metadata_url,
                        httpx.Timeout(self.command_timeout, connect=self.metadata_timeout)
                    ),
                )
        except Exception as e:
            logger.warning(f"Failed to resolve cloud identity: {e}")
            return AwsInfo.degraded(str(e), region=self.region)

        return AwsInfo(
            connected=instance_id is not None,
            public_ip=public_ip or UNKNOWN,
            instance_id=instance_id or NOT_ON_AWS,
            region=self.region,
        )

    def close(self) -> None:
        self._reset_docker_client(self._docker_client)
