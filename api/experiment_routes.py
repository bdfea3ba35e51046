from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.orm import Session

from models.experiments import (
    ActiveExperimentsResponse,
    Experiment,
    ExperimentCreate,
    ExperimentResponse,
    ExperimentUpdate,
    ListExperimentsResponse,
)
from services import experiments
from services.cache import CacheClient
from services.errors import ExperimentNotFoundError
from api.depends import CLIENT_AUTH, DB_DEPENDENCY, CACHE_CLIENT

import logging

logger = logging.getLogger(__name__)

experiment_router = APIRouter(
    prefix="/experiments",
    tags=["experiments"],
    dependencies=[CLIENT_AUTH], # CLIENT_AUTH is applied to all routes in this router
)


# POST /experiments
@experiment_router.post(
    "",
    response_model=ExperimentResponse,
    status_code=status.HTTP_201_CREATED
)
def create_experiment_route(
    experiment_data: ExperimentCreate,
    db: Session = DB_DEPENDENCY
):
    """Create a new experiment with ordered variants; the first one is the control unless named."""
    return experiments.create_new_experiment(db, experiment_data)


# GET /experiments
@experiment_router.get("", response_model=ListExperimentsResponse)
def list_experiments_route(
    db: Session = DB_DEPENDENCY,
    is_active: bool | None = Query(default=None, alias="active"),
    limit: int = Query(default=experiments.DEFAULT_LIST_LIMIT, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    rows, total = experiments.list_experiments(db, is_active, limit, offset)
    return ListExperimentsResponse(
        experiments=[ExperimentResponse.model_validate(row) for row in rows],
        total=total,
    )


# GET /experiments/active (declared before /{experiment_id} so "active" is not taken as an id)
@experiment_router.get("/active", response_model=ActiveExperimentsResponse, response_model_by_alias=True)
def get_active_experiments_route(
    user_id: str = Query(..., alias="userId", min_length=1),
    session_id: str = Query(..., alias="sessionId", min_length=1),
    db: Session = DB_DEPENDENCY,
):
    """Active experiments the user session is enrolled in, with the variant it sees."""
    return ActiveExperimentsResponse(
        experiments=experiments.get_active_experiments_for_user(db, user_id, session_id)
    )


# GET /experiments/{experiment_id}
@experiment_router.get("/{experiment_id}", response_model=Experiment, response_model_by_alias=True)
def get_experiment_route(
    experiment_id: str,
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT
):
    """Experiment definition as seen by the report generator."""
    try:
        return experiments.get_experiment(db, cache, experiment_id)
    except ExperimentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# PUT /experiments/{experiment_id}
@experiment_router.put("/{experiment_id}", response_model=ExperimentResponse)
def update_experiment_route(
    experiment_id: str,
    updates: ExperimentUpdate,
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT
):
    """Change name, description, activity or enrollment share of an experiment."""
    try:
        return experiments.update_experiment(db, cache, experiment_id, updates)
    except ExperimentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
