from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..errors import NotFoundError, PermissionDeniedError, RuleViolationError
from ..planner_client import PlannerClient
from ..project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


def get_planner_client() -> PlannerClient:
    return PlannerClient()


def get_service(db: Session = Depends(get_db),
                planner: PlannerClient = Depends(get_planner_client)) -> ProjectService:
    return ProjectService(db, planner=planner)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.post("/", response_model=schemas.ProjectView)
def create_project(
    data: schemas.ProjectCreate,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        project = service.create_project(current_user, data)
        return service.get_project(current_user, project.id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.get("/", response_model=List[schemas.ProjectListItem])
def list_projects(
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    return service.list_projects(current_user)


@router.get("/default-elements", response_model=List[schemas.BuildingElement])
def list_default_elements(
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    """Default window elements a project can point its window role at."""
    return service.default_elements()


@router.get("/{project_id}/elements/{element_id}", response_model=schemas.BuildingElementUsage)
def get_project_element(
    project_id: str,
    element_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        return service.get_project_element(current_user, project_id, element_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.get("/{project_id}", response_model=schemas.ProjectView)
def get_project(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        return service.get_project(current_user, project_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.put("/{project_id}", response_model=schemas.ProjectView)
def update_project(
    project_id: str,
    data: schemas.ProjectUpdate,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.update_project(current_user, project_id, data)
        return service.get_project(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.put("/{project_id}/elements/{element_id}/product-results",
            response_model=schemas.BuildingElementUsage)
def update_element_recipe(
    project_id: str,
    element_id: str,
    data: schemas.RecipeUpdate,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    """Override an element's product results, or reset them with reset_default."""
    try:
        return service.update_element_recipe(current_user, project_id, element_id, data)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.put("/{project_id}/default-elements", response_model=schemas.ProjectView)
def set_default_elements(
    project_id: str,
    data: schemas.DefaultElementsUpdate,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.set_default_elements(current_user, project_id, data)
        return service.get_project(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.post("/{project_id}/planner-sync", response_model=schemas.ReconcileResult)
def sync_from_planner(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    """Pull element counts from the planner. A planner failure answers 200 with degraded=true."""
    try:
        return service.sync_from_planner(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.get("/{project_id}/quotes", response_model=List[schemas.Quote])
def get_quotes(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        return service.get_quotes(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.get("/{project_id}/not-included", response_model=schemas.NotIncludedReport)
def not_included_resources(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        return service.not_included_resources(current_user, project_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.post("/{project_id}/accept", response_model=schemas.ProjectView)
def accept_project(
    project_id: str,
    data: schemas.AcceptRequest,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.accept_project(current_user, project_id, data.organization_id)
        return service.get_project(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.post("/{project_id}/complete", response_model=schemas.SummaryView)
def complete_project(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        return service.complete_project(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.post("/{project_id}/manual")
def make_manual(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.make_manual(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)
    return {"success": True}


@router.patch("/{project_id}/name", response_model=schemas.ProjectView)
def rename_project(
    project_id: str,
    data: schemas.RenameRequest,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.rename_project(current_user, project_id, data.name)
        return service.get_project(current_user, project_id)
    except (NotFoundError, RuleViolationError) as e:
        raise _http_error(e)


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    service: ProjectService = Depends(get_service),
    current_user: models.User = Depends(get_current_user),
):
    try:
        service.delete_project(current_user, project_id)
    except NotFoundError as e:
        raise _http_error(e)
    return {"success": True}
