"""
Simulated deployment module.

Exports:
- DeploymentSimulator: Fabricated deployment attempts with delayed outcomes
- DeploymentValidationError / DeploymentError: Trigger failures
- router: /api/deploy and /api/deployments/{id}
"""

from .simulator import (
    DeploymentSimulator,
    DeploymentValidationError,
    DeploymentError,
    make_deployment_id,
)

__all__ = [
    'DeploymentSimulator',
    'DeploymentValidationError',
    'DeploymentError',
    'make_deployment_id',
]
