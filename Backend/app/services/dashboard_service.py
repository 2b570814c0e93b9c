from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.config import CURRENCY
from app.core.security import RolePermissions
from app.models.models import MissionAgent, MissionExpense, MissionOrder
from app.workflow.engine import Actor, MissionStatus, PENDING_STATUSES


ZERO = Decimal("0.00")


class DashboardService:
    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, query, actor: Actor):
        """Sans 'stats:read', seules les missions de l'utilisateur sont comptées"""
        if RolePermissions.has_permission([role.value for role in actor.roles], "stats:read"):
            return query
        return query.filter(or_(
            MissionOrder.agent_id == actor.user_id,
            MissionOrder.participants.any(MissionAgent.agent_id == actor.user_id),
        ))

    def get_stats(self, actor: Actor) -> Dict[str, Any]:
        rows = self._scoped(
            self.db.query(MissionOrder.status, func.count(MissionOrder.id), func.sum(MissionOrder.estimated_amount)),
            actor,
        ).group_by(MissionOrder.status).all()

        by_status = {status.value: 0 for status in MissionStatus}
        total_amount = ZERO
        for status_value, count, amount in rows:
            by_status[status_value] = count
            total_amount += Decimal(str(amount or 0))

        pending = sum(by_status[status.value] for status in PENDING_STATUSES)
        # Les bons payés restent comptés comme approuvés
        approved = by_status[MissionStatus.APPROVED.value] + by_status[MissionStatus.PAID.value]

        return {
            "total": sum(by_status.values()),
            "pending": pending,
            "approved": approved,
            "rejected": by_status[MissionStatus.REJECTED.value],
            "draft": by_status[MissionStatus.DRAFT.value],
            "total_amount": total_amount,
            "by_status": by_status,
            "expenses_by_category": self.get_expenses_by_category(actor),
            "currency": CURRENCY,
        }

    def get_expenses_by_category(self, actor: Actor) -> Dict[str, Decimal]:
        row = self._scoped(
            self.db.query(
                func.sum(MissionExpense.accommodation_total),
                func.sum(MissionExpense.per_diem_total),
                func.sum(MissionExpense.transport_total),
                func.sum(MissionExpense.fuel_total),
                func.sum(MissionExpense.other_expenses),
            ).join(MissionOrder, MissionExpense.mission_id == MissionOrder.id),
            actor,
        ).one()
        keys = ("accommodation", "per_diem", "transport", "fuel", "other")
        return {key: Decimal(str(value or 0)) for key, value in zip(keys, row)}

    def get_monthly_spending(self, actor: Actor) -> Dict[str, Decimal]:
        """Montants estimés cumulés par mois de création (AAAA-MM), ordre chronologique"""
        rows = self._scoped(
            self.db.query(MissionOrder.created_at, MissionOrder.estimated_amount),
            actor,
        ).order_by(MissionOrder.created_at.asc()).all()

        monthly: "OrderedDict[str, Decimal]" = OrderedDict()
        for created_at, amount in rows:
            if created_at is None:
                continue
            month = created_at.strftime("%Y-%m")
            monthly[month] = monthly.get(month, ZERO) + Decimal(str(amount or 0))
        return monthly
