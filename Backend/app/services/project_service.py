from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import BUDGET_CRITICAL_THRESHOLD, BUDGET_WARNING_THRESHOLD
from app.core.exceptions import NotFoundError
from app.models.models import MissionOrder, Project

CENT = Decimal("0.01")


def budget_figures(total_budget, spent_budget) -> Dict[str, Any]:
    """Restant, pourcentage de consommation et niveau d'alerte (lecture seule)"""
    total = Decimal(str(total_budget or 0))
    spent = Decimal(str(spent_budget or 0))
    remaining = (total - spent).quantize(CENT, rounding=ROUND_HALF_UP)
    if total > 0:
        percentage = (spent / total * 100).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        percentage = Decimal("0.00")

    if percentage >= BUDGET_CRITICAL_THRESHOLD:
        level = "critical"
    elif percentage >= BUDGET_WARNING_THRESHOLD:
        level = "warning"
    else:
        level = "normal"

    return {
        "remaining_budget": remaining,
        "consumption_percentage": percentage,
        "budget_level": level,
    }


class ProjectService:
    """Vue budgétaire des projets; le circuit de validation n'écrit jamais ici"""

    def __init__(self, db: Session):
        self.db = db

    def _get_project(self, project_id: int) -> Project:
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Projet {project_id} introuvable")
        return project

    @staticmethod
    def to_view(project: Project) -> Dict[str, Any]:
        view = {
            "id": project.id,
            "code": project.code,
            "name": project.name,
            "description": project.description,
            "total_budget": project.total_budget,
            "spent_budget": project.spent_budget,
            "status": project.status,
            "start_date": project.start_date,
            "end_date": project.end_date,
        }
        view.update(budget_figures(project.total_budget, project.spent_budget))
        return view

    def list_projects(self, status_filter: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.db.query(Project)
        if status_filter:
            query = query.filter(Project.status == status_filter)
        return [self.to_view(p) for p in query.order_by(Project.created_at.desc(), Project.id.desc()).all()]

    def get_project(self, project_id: int) -> Dict[str, Any]:
        return self.to_view(self._get_project(project_id))

    def get_budget_overview(self) -> Dict[str, Any]:
        """Totaux tous projets confondus et dépense moyenne par mission"""
        projects = self.db.query(Project).all()
        total_budget = sum((Decimal(str(p.total_budget or 0)) for p in projects), Decimal("0.00"))
        total_spent = sum((Decimal(str(p.spent_budget or 0)) for p in projects), Decimal("0.00"))
        missions_count = self.db.query(MissionOrder).count()
        average = (total_spent / missions_count).quantize(CENT, rounding=ROUND_HALF_UP) if missions_count else Decimal("0.00")
        return {
            "total_budget": total_budget,
            "total_spent": total_spent,
            "missions_count": missions_count,
            "average_per_mission": average,
            **budget_figures(total_budget, total_spent),
        }
