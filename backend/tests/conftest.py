"""
Shared pytest fixtures for the Auto-Deploy dashboard tests.

Fixtures provided:
- dashboard_state: Fresh DashboardState
- make_snapshot: Factory for complete Snapshot objects
- fake_probes: HostProbes stand-in with AsyncMock collectors (healthy by default)
- fake_git_service: GitService stand-in reporting a repo on 'main'
- client: TestClient wired to fresh state, fake probes and a zero-delay simulator

Note: No test touches a real Docker daemon, git binary or network endpoint.
"""

import os
import random
import sys
from unittest.mock import MagicMock, AsyncMock

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from collector import DashboardState, ProjectDeriver, SnapshotCollector
from deployment import DeploymentSimulator
from vcs import GitHeadInfo
from models.snapshot_models import (
    AwsInfo,
    ContainerSummary,
    DockerInfo,
    GitHubInfo,
    ImageSummary,
    Snapshot,
    SystemMetrics,
)


def healthy_docker_info() -> DockerInfo:
    return DockerInfo(
        running=True,
        containers=[
            ContainerSummary(name='web', status='Up 2 hours', ports='0.0.0.0:8080->80/tcp'),
            ContainerSummary(name='worker', status='Exited (0) 5 minutes ago', ports=''),
        ],
        images=[ImageSummary(repository='nginx', tag='latest', created_at='2024-01-01T00:00:00Z')],
        container_count=2,
    )


def healthy_system_metrics() -> SystemMetrics:
    return SystemMetrics(
        uptime=3600.0,
        hostname='test-host',
        platform='linux',
        architecture='x86_64',
        cpu_count=4,
        total_memory='15.54 GB',
        free_memory='7.77 GB',
        load_average=[0.1, 0.2, 0.3],
    )


def healthy_github_info() -> GitHubInfo:
    return GitHubInfo(active=True, workflows=['deploy.yml'], count=1)


def healthy_aws_info() -> AwsInfo:
    return AwsInfo(connected=True, public_ip='54.0.0.1', instance_id='i-0123456789abcdef0', region='us-east-1')


@pytest.fixture
def dashboard_state():
    return DashboardState()


@pytest.fixture
def make_snapshot():
    """Factory building a complete snapshot; keyword overrides replace single groups"""
    def _make(**overrides):
        fields = {
            'docker': healthy_docker_info(),
            'system': healthy_system_metrics(),
            'github': healthy_github_info(),
            'aws': healthy_aws_info(),
            'last_updated': '2024-01-01T00:00:00+00:00',
        }
        fields.update(overrides)
        return Snapshot(**fields)
    return _make


@pytest.fixture
def fake_probes():
    """
    Mock HostProbes.

    Every collect_* method is an AsyncMock returning a healthy result; tests
    swap return_value / side_effect to simulate degraded collaborators.
    """
    probes = MagicMock()
    probes.collect_container_state = AsyncMock(return_value=healthy_docker_info())
    probes.collect_host_metrics = AsyncMock(return_value=healthy_system_metrics())
    probes.collect_workflow_state = AsyncMock(return_value=healthy_github_info())
    probes.collect_cloud_identity = AsyncMock(return_value=healthy_aws_info())
    return probes


@pytest.fixture
def fake_git_service():
    service = MagicMock()
    service.get_head_info = AsyncMock(return_value=GitHeadInfo(
        branch='main',
        commit='0123456789abcdef0123456789abcdef01234567',
        author='Dev',
        date='Mon Jan 1 00:00:00 2024 +0000',
        message='Initial commit',
    ))
    return service


@pytest.fixture
def collector_parts(dashboard_state, fake_probes, fake_git_service):
    """State, project deriver and collector wired to the fakes"""
    deriver = ProjectDeriver(fake_probes, fake_git_service, rng=random.Random(42))
    collector = SnapshotCollector(dashboard_state, fake_probes, interval=0.01)
    return dashboard_state, deriver, collector


@pytest.fixture
def client(collector_parts, fake_probes):
    """
    TestClient over the real app with its state swapped for fakes.

    The lifespan is not entered, so no background collector runs; tests
    refresh explicitly through app.state.collector when they need a snapshot.
    """
    from main import app

    state, deriver, collector = collector_parts
    saved = {
        name: getattr(app.state, name)
        for name in ('dashboard', 'probes', 'project_deriver', 'collector', 'deployments')
    }
    app.state.dashboard = state
    app.state.probes = fake_probes
    app.state.project_deriver = deriver
    app.state.collector = collector
    app.state.deployments = DeploymentSimulator(state, delay=0, success_rate=1.0)

    yield TestClient(app)

    for name, value in saved.items():
        setattr(app.state, name, value)
