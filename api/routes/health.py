"""
Health Check Endpoints
"""

import time
from fastapi import APIRouter, Request

from ..constants import EndpointPath, HealthState
from ..types import HealthStatus
from core.config import SERVER_VERSION

router = APIRouter()


# [ENDPOINT] GET /api/v1/health - Server health and listen address
@router.get(
    EndpointPath.HEALTH.value,
    response_model=HealthStatus,
    summary="Health Check",
    description="""
    ## Check server health

    **Use this to check:**
    - Is the backend up?
    - Which socket path or port is the server bound to?
    - How long has the backend been running?

    ### Response Fields:
    - `status`: "ok" while serving, "disposed" after shutdown started
    - `address`: socket path or port
    - `version`: server version
    - `uptime`: backend uptime in seconds
    """,
)
async def health_check(request: Request):
    """
    Health check endpoint

    Returns:
        Server health status
    """
    state = request.app.state
    status = HealthState.DISPOSED if state.disposed else HealthState.OK

    return HealthStatus(
        status=status.value,
        address=state.listen_address,
        version=SERVER_VERSION,
        uptime=time.time() - state.started_at
    )
