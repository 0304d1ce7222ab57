"""
Life OS: Dashboard API Server
=============================

HTTP surface over the LifeDashboard. Writes go through the intercepted
record store, so every write invalidates the derived layers and shows
up in the change feed.

Endpoints:
- GET    /health                              -> Status
- GET    /api/v1/state/{layer}                -> Memoized layer state
- GET    /api/v1/vision/snapshots             -> Snapshot history
- POST   /api/v1/vision/compute               -> Recompute and persist
- GET    /api/v1/vision/insights              -> Weekly insights
- POST   /api/v1/milestones                   -> Create milestone
- PATCH  /api/v1/milestones/{id}              -> Update milestone
- DELETE /api/v1/milestones/{id}              -> Remove milestone
- POST   /api/v1/milestones/{id}/commitment   -> Toggle weekly commitment
- POST   /api/v1/decisions                    -> Log decision
- GET    /api/v1/changes                      -> Recent change notifications

Usage:
    uvicorn lifeos.api.server:app --reload
"""
import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..contracts.base import LifeOSError, UnknownLayerError, UnknownRecordError
from ..engine import DashboardConfig, LifeDashboard

logger = logging.getLogger(__name__)

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

# Global Dashboard Instance
dashboard_instance: Optional[LifeDashboard] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the dashboard on startup unless one was installed already."""
    global dashboard_instance

    if dashboard_instance is None:
        config = DashboardConfig.from_env()
        logger.info(
            "Initializing dashboard (%s storage at %s)",
            config.storage.backend_type, config.storage.storage_dir
        )
        dashboard_instance = LifeDashboard(config)

    yield

    logger.info("Shutting down dashboard")


app = FastAPI(
    title="Life OS Dashboard API",
    version=__version__,
    description="Reactive derived-state engine for the Life OS dashboard",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


def _dashboard() -> LifeDashboard:
    if dashboard_instance is None:
        raise HTTPException(status_code=503, detail="Dashboard not initialized")
    return dashboard_instance


def _not_found(dashboard: LifeDashboard, error: LifeOSError, entity_id: str) -> HTTPException:
    """Audit the rejected lookup and build the 404."""
    dashboard.observability.record_error(
        error.to_error(dashboard.clock.now()), layer='store', entity_id=entity_id
    )
    return HTTPException(status_code=404, detail=str(error))


# =============================================================================
# REQUEST MODELS
# =============================================================================

class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1)
    date: Optional[str] = None
    visionType: str = 'Custom'
    completionPct: float = 0
    nextAction: Optional[str] = None
    blocker: Optional[str] = None
    notes: Optional[str] = None
    linkedProjectId: Optional[str] = None


class MilestoneUpdate(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = None
    visionType: Optional[str] = None
    completionPct: Optional[float] = None
    nextAction: Optional[str] = None
    blocker: Optional[str] = None
    notes: Optional[str] = None
    linkedProjectId: Optional[str] = None


class DecisionCreate(BaseModel):
    decision: Literal['yes', 'no']
    note: Optional[str] = None
    energyState: Optional[str] = None
    contextMode: str = 'vision'
    visionType: str = 'Custom'


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    """System status."""
    return {"status": "online", **_dashboard().status()}


@app.get("/api/v1/state/{layer}")
async def get_layer_state(layer: str, force: bool = False):
    """Memoized state of one derived layer."""
    try:
        state = _dashboard().get_state(layer, force_recompute=force)
    except UnknownLayerError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"layer": layer, "state": state}


@app.get("/api/v1/vision/snapshots")
async def get_snapshots(limit: int = 20):
    """Snapshot history, oldest first."""
    snapshots = _dashboard().store.get_snapshots()
    return {"snapshots": snapshots[-limit:] if limit > 0 else snapshots}


@app.post("/api/v1/vision/compute")
async def compute_snapshot():
    """Run the Vision Alignment Engine and append the result to history."""
    snapshot = _dashboard().recompute_vision()
    return snapshot.to_dict()


@app.get("/api/v1/vision/insights")
async def get_insights(reference_date: Optional[str] = None):
    """Weekly insights for the week containing `reference_date` (default: now)."""
    return _dashboard().weekly_insights(reference_date).to_dict()


@app.post("/api/v1/milestones", status_code=201)
async def create_milestone(payload: MilestoneCreate):
    try:
        return _dashboard().store.add_milestone(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.patch("/api/v1/milestones/{milestone_id}")
async def update_milestone(milestone_id: str, payload: MilestoneUpdate):
    dashboard = _dashboard()
    try:
        return dashboard.store.update_milestone(milestone_id, payload.model_dump(exclude_unset=True))
    except UnknownRecordError as e:
        raise _not_found(dashboard, e, milestone_id)


@app.delete("/api/v1/milestones/{milestone_id}")
async def delete_milestone(milestone_id: str):
    dashboard = _dashboard()
    try:
        remaining = dashboard.store.remove_milestone(milestone_id)
    except UnknownRecordError as e:
        raise _not_found(dashboard, e, milestone_id)
    return {"deleted": milestone_id, "remaining": len(remaining)}


@app.post("/api/v1/milestones/{milestone_id}/commitment")
async def toggle_commitment(milestone_id: str):
    dashboard = _dashboard()
    if dashboard.store.get_milestone(milestone_id) is None:
        raise _not_found(dashboard, UnknownRecordError(f"Milestone {milestone_id} not found"), milestone_id)
    return {"weeklyCommitmentIds": dashboard.store.toggle_weekly_commitment(milestone_id)}


@app.post("/api/v1/decisions", status_code=201)
async def log_decision(payload: DecisionCreate):
    """Log a decision stamped with the last snapshot's alignment and drift."""
    return _dashboard().log_decision_with_context(
        payload.decision,
        note=payload.note,
        energy_state=payload.energyState,
        context_mode=payload.contextMode,
        vision_type=payload.visionType,
    )


@app.get("/api/v1/changes")
async def get_changes(limit: int = 50):
    """Change notifications delivered on the subscriber bus."""
    return {"changes": _dashboard().recent_changes(limit)}
