"""
Unit tests for HostProbes.

Tests verify:
- Container/image listing from the Docker SDK (sparse listing format)
- Degraded DockerInfo when the daemon is unreachable
- Host metrics from psutil, and degraded metrics keeping host identity
- Workflow directory listing
- Cloud identity lookups (public IP, instance metadata) via httpx

These tests mock the Docker client, psutil and HTTP transport; nothing
talks to a real daemon or network.
"""

import asyncio
import time

import httpx
import pytest
from collections import namedtuple
from unittest.mock import MagicMock, patch

from docker.errors import DockerException

from collector.probes import HostProbes, format_gib, format_ports, split_image_tag


# =============================================================================
# Mock Docker Objects
# =============================================================================

def create_mock_container(name="web", status="Up 2 hours", ports=None):
    """Create a container as returned by containers.list(sparse=True)."""
    container = MagicMock()
    container.name = None  # sparse listings carry the name only in attrs
    container.short_id = "abc123def456"
    container.status = None
    container.attrs = {
        'Names': [f'/{name}'],
        'Status': status,
        'Ports': ports or [],
    }
    return container


def create_mock_image(tags=None, created="2024-01-01T00:00:00Z"):
    image = MagicMock()
    image.tags = tags if tags is not None else ["nginx:latest"]
    image.attrs = {'Created': created}
    return image


def make_probes(client=None, **kwargs):
    factory = MagicMock(return_value=client)
    return HostProbes(docker_client_factory=factory, **kwargs), factory


class TestFormatting:
    """Tests for output formatting helpers"""

    def test_format_ports_published(self):
        """Should render published ports like docker ps"""
        ports = [{'IP': '0.0.0.0', 'PrivatePort': 80, 'PublicPort': 8080, 'Type': 'tcp'}]
        assert format_ports(ports) == '0.0.0.0:8080->80/tcp'

    def test_format_ports_unpublished_and_duplicates(self):
        """Should render exposed-only ports and drop duplicate bindings"""
        ports = [
            {'PrivatePort': 443, 'Type': 'tcp'},
            {'IP': '0.0.0.0', 'PrivatePort': 80, 'PublicPort': 80, 'Type': 'tcp'},
            {'IP': '0.0.0.0', 'PrivatePort': 80, 'PublicPort': 80, 'Type': 'tcp'},
        ]
        assert format_ports(ports) == '443/tcp, 0.0.0.0:80->80/tcp'

    def test_format_ports_empty(self):
        assert format_ports(None) == ''
        assert format_ports([]) == ''

    def test_split_image_tag(self):
        """Should split on the tag colon but not on a registry port"""
        assert split_image_tag("nginx:1.25") == ("nginx", "1.25")
        assert split_image_tag("nginx") == ("nginx", "latest")
        assert split_image_tag("registry:5000/app") == ("registry:5000/app", "latest")
        assert split_image_tag("registry:5000/app:v2") == ("registry:5000/app", "v2")

    def test_format_gib(self):
        assert format_gib(16 * 1024 ** 3) == "16.00 GB"


class TestCollectContainerState:
    """Tests for the container runtime probe"""

    @pytest.mark.asyncio
    async def test_lists_containers_and_images(self):
        """Should summarize running containers and tagged images"""
        client = MagicMock()
        client.containers.list.return_value = [
            create_mock_container("web", "Up 2 hours", [{'IP': '0.0.0.0', 'PrivatePort': 80, 'PublicPort': 8080, 'Type': 'tcp'}]),
            create_mock_container("db", "Up 5 minutes"),
        ]
        client.images.list.return_value = [
            create_mock_image(["nginx:latest", "nginx:1.25"]),
            create_mock_image([], created=1704067200),
        ]
        probes, _ = make_probes(client)

        info = await probes.collect_container_state()

        assert info.running is True
        assert info.error is None
        assert info.container_count == 2
        assert [c.name for c in info.containers] == ["web", "db"]
        assert info.containers[0].ports == '0.0.0.0:8080->80/tcp'
        assert info.containers[1].status == "Up 5 minutes"
        assert [(i.repository, i.tag) for i in info.images] == [
            ("nginx", "latest"), ("nginx", "1.25"), ("<none>", "<none>")
        ]
        assert info.images[2].created_at.startswith("2024-01-01")
        client.containers.list.assert_called_once_with(sparse=True)

    @pytest.mark.asyncio
    async def test_daemon_unreachable_returns_degraded(self):
        """Should degrade to running=False with an error when the daemon is down"""
        factory = MagicMock(side_effect=DockerException("Error while fetching server API version"))
        probes = HostProbes(docker_client_factory=factory)

        info = await probes.collect_container_state()

        assert info.running is False
        assert info.containers == []
        assert info.images == []
        assert info.container_count == 0
        assert "server API version" in info.error

    @pytest.mark.asyncio
    async def test_listing_failure_resets_client(self):
        """Should drop the cached client so the next refresh reconnects"""
        client = MagicMock()
        client.containers.list.side_effect = DockerException("connection reset")
        probes, factory = make_probes(client)

        info = await probes.collect_container_state()
        assert info.running is False
        client.close.assert_called_once()

        client.containers.list.side_effect = None
        client.containers.list.return_value = []
        client.images.list.return_value = []
        info = await probes.collect_container_state()

        assert info.running is True
        assert factory.call_count == 2

    @pytest.mark.asyncio
    async def test_reuses_client_between_refreshes(self):
        """Should connect once while the daemon stays reachable"""
        client = MagicMock()
        client.containers.list.return_value = []
        client.images.list.return_value = []
        probes, factory = make_probes(client)

        await probes.collect_container_state()
        await probes.collect_container_state()

        factory.assert_called_once()

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_one_client(self):
        """Should connect once when a refresh and a request race on a cold client"""
        created = []

        def slow_factory():
            time.sleep(0.05)
            client = MagicMock()
            client.containers.list.return_value = []
            client.images.list.return_value = []
            created.append(client)
            return client

        probes = HostProbes(docker_client_factory=slow_factory)

        first, second = await asyncio.gather(
            probes.collect_container_state(),
            probes.collect_container_state(),
        )

        assert first.running is True
        assert second.running is True
        assert len(created) == 1

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_close_replacement_client(self):
        """Should leave a newer client alone when an older one reports failure"""
        old_client, new_client = MagicMock(), MagicMock()
        probes, _ = make_probes(new_client)
        probes._docker_client = new_client

        probes._reset_docker_client(old_client)

        assert probes._docker_client is new_client
        new_client.close.assert_not_called()

    def test_close_releases_cached_client(self):
        client = MagicMock()
        probes, _ = make_probes(client)
        probes._docker_client = client

        probes.close()

        client.close.assert_called_once()
        assert probes._docker_client is None


VirtualMemory = namedtuple('VirtualMemory', 'total available percent used')
DiskUsageTuple = namedtuple('DiskUsage', 'total used free percent')


class TestCollectHostMetrics:
    """Tests for the host metrics probe"""

    @pytest.mark.asyncio
    async def test_collects_memory_disk_and_identity(self):
        """Should report memory, disk, CPU and identity fields"""
        probes = HostProbes(docker_client_factory=MagicMock())
        memory = VirtualMemory(total=16 * 1024 ** 3, available=8 * 1024 ** 3, percent=50.0, used=8 * 1024 ** 3)
        disk = DiskUsageTuple(total=100, used=40, free=60, percent=40.0)

        with patch('collector.probes.psutil') as mock_psutil, \
             patch('collector.probes.socket.gethostname', return_value='build-box'):
            mock_psutil.virtual_memory.return_value = memory
            mock_psutil.disk_usage.return_value = disk
            mock_psutil.cpu_count.return_value = 8
            mock_psutil.boot_time.return_value = 0
            metrics = await probes.collect_host_metrics()

        assert metrics.error is None
        assert metrics.hostname == 'build-box'
        assert metrics.cpu_count == 8
        assert metrics.total_memory == "16.00 GB"
        assert metrics.free_memory == "8.00 GB"
        assert metrics.disk_usage.percent == 40.0
        assert metrics.disk_usage.path == '/'
        assert metrics.memory_info.used == 8 * 1024 ** 3
        assert metrics.uptime > 0

    @pytest.mark.asyncio
    async def test_failure_keeps_identity_fields(self):
        """Should return uptime/hostname/platform plus an error when metrics fail"""
        probes = HostProbes(docker_client_factory=MagicMock())

        with patch('collector.probes.psutil') as mock_psutil:
            mock_psutil.boot_time.return_value = 0
            mock_psutil.virtual_memory.side_effect = OSError("/proc not mounted")
            metrics = await probes.collect_host_metrics()

        assert metrics.error == "/proc not mounted"
        assert metrics.hostname
        assert metrics.platform
        assert metrics.uptime > 0
        assert metrics.disk_usage is None


class TestCollectWorkflowState:
    """Tests for the CI workflow probe"""

    @pytest.mark.asyncio
    async def test_lists_workflow_files(self, tmp_path):
        """Should list workflow files sorted by name"""
        workflows = tmp_path / ".github" / "workflows"
        workflows.mkdir(parents=True)
        (workflows / "deploy.yml").write_text("on: push")
        (workflows / "ci.yml").write_text("on: pull_request")
        (workflows / "templates").mkdir()

        probes = HostProbes(docker_client_factory=MagicMock(), workflows_dir=str(workflows))
        info = await probes.collect_workflow_state()

        assert info.active is True
        assert info.workflows == ["ci.yml", "deploy.yml"]
        assert info.count == 2

    @pytest.mark.asyncio
    async def test_missing_directory_is_inactive(self, tmp_path):
        """Should report inactive without an error when there is no workflow directory"""
        probes = HostProbes(docker_client_factory=MagicMock(), workflows_dir=str(tmp_path / "missing"))
        info = await probes.collect_workflow_state()

        assert info.active is False
        assert info.workflows == []
        assert info.count == 0
        assert info.error is None

    @pytest.mark.asyncio
    async def test_unreadable_directory_is_degraded(self, tmp_path):
        """Should degrade with an error when listing fails"""
        probes = HostProbes(docker_client_factory=MagicMock(), workflows_dir=str(tmp_path))
        with patch.object(HostProbes, '_list_workflows', side_effect=PermissionError("denied")):
            info = await probes.collect_workflow_state()

        assert info.active is False
        assert info.error == "denied"


PUBLIC_IP_URL = "http://checkip.test/"
METADATA_URL = "http://metadata.test/latest/meta-data/instance-id"


def cloud_probes(handler):
    return HostProbes(
        docker_client_factory=MagicMock(),
        http_transport=httpx.MockTransport(handler),
        public_ip_url=PUBLIC_IP_URL,
        metadata_url=METADATA_URL,
        region="eu-west-1",
    )


class TestCollectCloudIdentity:
    """Tests for the public IP / instance metadata probe"""

    @pytest.mark.asyncio
    async def test_on_cloud_instance(self):
        """Should report connected with IP and instance id when metadata answers"""
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == PUBLIC_IP_URL:
                return httpx.Response(200, text="54.1.2.3\n")
            return httpx.Response(200, text="i-0abc")

        info = await cloud_probes(handler).collect_cloud_identity()

        assert info.connected is True
        assert info.public_ip == "54.1.2.3"
        assert info.instance_id == "i-0abc"
        assert info.region == "eu-west-1"
        assert info.error is None

    @pytest.mark.asyncio
    async def test_metadata_unreachable(self):
        """Should report not connected when the metadata endpoint times out"""
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == PUBLIC_IP_URL:
                return httpx.Response(200, text="203.0.113.9")
            raise httpx.ConnectTimeout("timed out", request=request)

        info = await cloud_probes(handler).collect_cloud_identity()

        assert info.connected is False
        assert info.public_ip == "203.0.113.9"
        assert info.instance_id == "Not on AWS"

    @pytest.mark.asyncio
    async def test_offline(self):
        """Should fall back to Unknown / Not on AWS when nothing answers"""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("network unreachable", request=request)

        info = await cloud_probes(handler).collect_cloud_identity()

        assert info.connected is False
        assert info.public_ip == "Unknown"
        assert info.instance_id == "Not on AWS"

    @pytest.mark.asyncio
    async def test_metadata_error_status_is_not_connected(self):
        """Should treat a non-200 metadata answer as not on AWS"""
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == PUBLIC_IP_URL:
                return httpx.Response(200, text="203.0.113.9")
            return httpx.Response(401)

        info = await cloud_probes(handler).collect_cloud_identity()

        assert info.connected is False
        assert info.instance_id == "Not on AWS"
