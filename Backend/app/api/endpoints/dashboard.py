from decimal import Decimal
from typing import Dict, Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.auth_dependencies import get_current_actor
from app.schemas.schemas import DashboardStats
from app.services.dashboard_service import DashboardService
from app.workflow.engine import Actor

router = APIRouter(
    prefix="/dashboard",
    tags=["Tableau de bord"],
    responses={401: {"description": "Non autorisé"}},
)


@router.get("/stats", response_model=DashboardStats)
def get_dashboard_stats(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    """
    Compteurs du tableau de bord. Les bons payés sont comptés comme approuvés.
    Sans la permission 'stats:read', seules les missions de l'utilisateur sont prises en compte.
    """
    return DashboardService(db).get_stats(actor)


@router.get("/monthly-spending", response_model=Dict[str, Decimal])
def get_monthly_spending(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return DashboardService(db).get_monthly_spending(actor)
