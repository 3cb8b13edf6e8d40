"""
Deployment API routes for the Auto-Deploy dashboard

Provides REST endpoints for:
- Triggering a simulated deployment
- Viewing a deployment's log transcript
"""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from deployment.simulator import DeploymentError, DeploymentSimulator, DeploymentValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["deployments"])


# ==================== Request/Response Models ====================

class DeployRequest(BaseModel):
    """Trigger deployment request."""
    project_id: Optional[Union[int, str]] = Field(None, alias='projectId', description="Project to deploy")
    branch: Optional[str] = Field(None, description="Branch to deploy (default: main)")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"projectId": 2, "branch": "main"}
        }
    )


class DeployResponse(BaseModel):
    """Deployment initiated response."""
    success: bool
    message: str
    deploymentId: str
    projectId: Union[int, str]
    branch: str
    timestamp: str
    estimatedTime: str


class DeploymentSystemInfo(BaseModel):
    hostname: Optional[str] = None
    uptime: Optional[float] = None


class DeploymentLogResponse(BaseModel):
    """Deployment log transcript response."""
    deploymentId: str
    status: str
    logs: List[str]
    duration: str
    timestamp: str
    systemInfo: DeploymentSystemInfo


def get_deployment_simulator(request: Request) -> DeploymentSimulator:
    return request.app.state.deployments


# ==================== Endpoints ====================

@router.post("/deploy", response_model=DeployResponse)
async def trigger_deployment(
    body: Optional[DeployRequest] = None,
    simulator: DeploymentSimulator = Depends(get_deployment_simulator),
):
    """Start a simulated deployment; returns before the outcome is known"""
    body = body or DeployRequest()
    try:
        return simulator.trigger(body.project_id, body.branch)
    except DeploymentValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except DeploymentError as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Deployment failed", "message": str(e)}
        )


@router.get("/deployments/{deployment_id}", response_model=DeploymentLogResponse)
async def get_deployment_logs(
    deployment_id: str,
    simulator: DeploymentSimulator = Depends(get_deployment_simulator),
):
    """Log transcript for a deployment (any id is accepted)"""
    return simulator.log_transcript(deployment_id)
