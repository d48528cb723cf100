"""
Read-only views of the dashboard session for the browser page.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from sensor_relay.schemas import ChartsResponse, DashboardStateResponse
from sensor_relay.services.charts import build_charts
from sensor_relay.services.dashboard import DashboardSession

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_dashboard(request: Request) -> Optional[DashboardSession]:
    return getattr(request.app.state, "dashboard", None)


def require_dashboard(
    session: Optional[DashboardSession] = Depends(get_dashboard),
) -> DashboardSession:
    if session is None:
        raise HTTPException(status_code=503, detail="Dashboard polling is disabled")
    return session


@router.get("/state", response_model=DashboardStateResponse)
async def dashboard_state(session: DashboardSession = Depends(require_dashboard)):
    """
    Latest sample, history (oldest first) and fallback status.

    latest is null until the first cycle completes.
    """
    return session.state()


@router.get("/charts", response_model=ChartsResponse, response_model_exclude_none=True)
async def dashboard_charts(session: DashboardSession = Depends(require_dashboard)):
    """Position-indexed series for each chart."""
    return build_charts(session.history.snapshot())
