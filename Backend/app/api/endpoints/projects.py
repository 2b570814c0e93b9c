from typing import Any, Dict, List, Optional, Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.auth_dependencies import require_permission
from app.schemas.schemas import ProjectResponse
from app.services.project_service import ProjectService
from app.workflow.engine import Actor

router = APIRouter(
    prefix="/projects",
    tags=["Projets"],
    responses={
        401: {"description": "Non autorisé"},
        403: {"description": "Accès refusé"},
        404: {"description": "Non trouvé"}
    },
)


@router.get("/", response_model=List[ProjectResponse])
def list_projects(
    actor: Annotated[Actor, Depends(require_permission("project:read"))],
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status")
):
    """Projets avec budget restant et pourcentage de consommation"""
    return ProjectService(db).list_projects(status_filter)


@router.get("/budget-overview")
def get_budget_overview(
    actor: Annotated[Actor, Depends(require_permission("budget:read"))],
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    return ProjectService(db).get_budget_overview()


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    actor: Annotated[Actor, Depends(require_permission("project:read"))],
    db: Session = Depends(get_db)
):
    return ProjectService(db).get_project(project_id)
