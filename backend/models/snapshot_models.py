"""
Snapshot Models for the Auto-Deploy dashboard
Pydantic models for probe results, the aggregated snapshot and derived projects

Attributes are snake_case; the JSON served to the frontend uses camelCase aliases.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Probe Results ====================

class ContainerSummary(CamelModel):
    """One running container as reported by the Docker engine"""
    name: str
    status: str
    ports: str = ''


class ImageSummary(CamelModel):
    """One local image as reported by the Docker engine"""
    repository: str
    tag: str
    created_at: Optional[str] = None


class DockerInfo(CamelModel):
    """Container runtime state. Degraded form: running=False, empty lists, error set."""
    running: bool = False
    containers: List[ContainerSummary] = Field(default_factory=list)
    images: List[ImageSummary] = Field(default_factory=list)
    container_count: int = 0
    error: Optional[str] = None

    @classmethod
    def degraded(cls, error: str) -> 'DockerInfo':
        return cls(running=False, error=error)


class DiskUsage(CamelModel):
    path: str = '/'
    total: int
    used: int
    free: int
    percent: float


class MemoryInfo(CamelModel):
    total: int
    used: int
    available: int
    percent: float


class SystemMetrics(CamelModel):
    """Host OS, disk and memory metrics"""
    uptime: float
    hostname: str
    platform: str
    architecture: Optional[str] = None
    cpu_count: Optional[int] = None
    total_memory: Optional[str] = None
    free_memory: Optional[str] = None
    load_average: List[float] = Field(default_factory=list)
    disk_usage: Optional[DiskUsage] = None
    memory_info: Optional[MemoryInfo] = None
    error: Optional[str] = None


class GitHubInfo(CamelModel):
    """CI workflow files found in the working tree"""
    active: bool = False
    workflows: List[str] = Field(default_factory=list)
    count: int = 0
    error: Optional[str] = None

    @classmethod
    def degraded(cls, error: str) -> 'GitHubInfo':
        return cls(active=False, error=error)


class AwsInfo(CamelModel):
    """Public address and cloud instance identity"""
    connected: bool = False
    public_ip: str = Field('Unknown', alias='publicIP')
    instance_id: str = 'Unknown'
    region: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def degraded(cls, error: str, region: Optional[str] = None) -> 'AwsInfo':
        return cls(connected=False, error=error, region=region)


class Snapshot(CamelModel):
    """Point-in-time aggregate of every probe group. Replaced wholesale on refresh."""
    docker: DockerInfo
    system: SystemMetrics
    github: GitHubInfo
    aws: AwsInfo
    last_updated: str


# ==================== Derived Views ====================

class GitCommitInfo(CamelModel):
    last_commit: Optional[str] = None
    author: Optional[str] = None
    message: Optional[str] = None
    date: Optional[str] = None


class ContainerInfo(CamelModel):
    status: str
    ports: str


class Project(CamelModel):
    """Display entry built from git metadata and the container listing"""
    id: int
    name: str
    status: str
    last_deploy: str
    deployments: int
    branch: str
    git_info: Optional[GitCommitInfo] = None
    container_info: Optional[ContainerInfo] = None
    error: Optional[str] = None


class DeploymentStats(CamelModel):
    """Process-lifetime deployment counters"""
    total: int = 0
    successful: int = 0
    failed: int = 0


ProjectId = Union[int, str]
