"""
Snapshot collection module.

This module provides:
- HostProbes: Adapters for Docker, host metrics, CI workflows and cloud identity
- DashboardState: Owned container for the published snapshot and counters
- ProjectDeriver: Builds the project list from git and container data
- SnapshotCollector: Periodic fan-out/fan-in refresh
"""
from collector.probes import HostProbes
from collector.projects import ProjectDeriver, derive_projects
from collector.snapshot_collector import SnapshotCollector
from collector.state import DashboardState, get_dashboard_state

__all__ = [
    'HostProbes',
    'ProjectDeriver',
    'derive_projects',
    'SnapshotCollector',
    'DashboardState',
    'get_dashboard_state',
]
