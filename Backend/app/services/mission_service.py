import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import CURRENCY
from app.core.exceptions import (
    AuthorizationError, ConflictError, InvalidStateError, MissionValidationError, NotFoundError,
    WorkflowError,
)
from app.core.security import RolePermissions
from app.models.models import MissionAgent, MissionExpense, MissionOrder, Project, Utilisateur
from app.schemas.schemas import ExpenseInput, MissionCreate, MissionUpdate, PaymentRequest
from app.services.expense_calculator import ExpenseBreakdown, ExpenseItems, compute_expenses
from app.services.mission_repository import MissionRepository
from app.services.reference_generator import generate_mission_reference
from app.workflow import engine
from app.workflow.engine import Actor, MissionStatus, TransitionDecision

logger = logging.getLogger(__name__)


class MissionService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = MissionRepository(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_mission(self, mission_id: int) -> MissionOrder:
        return self.repository.get_or_404(mission_id)

    def _get_project(self, project_id: int) -> Project:
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Projet {project_id} introuvable")
        return project

    @staticmethod
    def _validate_dates(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise MissionValidationError("La date de fin doit être postérieure ou égale à la date de début")

    @staticmethod
    def _breakdown(expenses: Optional[ExpenseInput]) -> ExpenseBreakdown:
        data = expenses.model_dump() if expenses else {}
        return compute_expenses(ExpenseItems(**data))

    @staticmethod
    def _apply_breakdown(mission: MissionOrder, breakdown: ExpenseBreakdown) -> None:
        values = breakdown.to_dict()
        values.pop("total")
        if mission.expenses is None:
            mission.expenses = MissionExpense(**values)
        else:
            for field, value in values.items():
                setattr(mission.expenses, field, value)
        mission.estimated_amount = breakdown.total

    def _set_participants(self, mission: MissionOrder, owner_id: int, participant_ids: List[int]) -> None:
        """Le propriétaire est toujours le participant principal"""
        others = []
        for agent_id in participant_ids:
            if agent_id != owner_id and agent_id not in others:
                others.append(agent_id)

        if others:
            found = {
                row.id for row in self.db.query(Utilisateur.id).filter(Utilisateur.id.in_(others)).all()
            }
            missing = [agent_id for agent_id in others if agent_id not in found]
            if missing:
                raise NotFoundError(f"Participants introuvables: {', '.join(str(m) for m in missing)}")

        existing = {participant.agent_id: participant for participant in mission.participants}
        participants = []
        for agent_id in [owner_id] + others:
            participant = existing.get(agent_id) or MissionAgent(agent_id=agent_id)
            participant.is_primary = agent_id == owner_id
            participants.append(participant)
        mission.participants = participants

    def _can_read_all(self, actor: Actor) -> bool:
        return RolePermissions.has_permission([role.value for role in actor.roles], "mission:read")

    def _is_involved(self, mission: MissionOrder, actor: Actor) -> bool:
        return mission.agent_id == actor.user_id or any(
            participant.agent_id == actor.user_id for participant in mission.participants
        )

    def _ensure_can_view(self, mission: MissionOrder, actor: Actor) -> None:
        if not (self._can_read_all(actor) or self._is_involved(mission, actor)):
            raise AuthorizationError("Vous n'avez pas l'autorisation de consulter ce bon de mission")

    def _decide(self, mission: MissionOrder, actor: Actor, operation: str, decide) -> TransitionDecision:
        """Appelle le moteur et journalise les refus avant de les propager"""
        try:
            return decide()
        except WorkflowError as e:
            logger.warning(
                f"Refus '{operation}' sur le bon {mission.reference} (statut '{mission.status}') "
                f"pour l'utilisateur {actor.user_id}: {e.detail}"
            )
            raise

    def _transition(
        self,
        mission: MissionOrder,
        actor: Actor,
        decision: TransitionDecision,
        extra_values: Optional[Dict[str, Any]] = None,
    ) -> MissionOrder:
        reference = mission.reference
        updated = self.repository.apply_transition(mission.id, decision, actor, extra_values)
        if decision.requires_signature:
            logger.info(
                f"Bon {reference}: {decision.from_status.value} -> {decision.to_status.value} "
                f"({decision.action.value} par l'utilisateur {actor.user_id} en tant que {decision.signer_role.value})"
            )
        else:
            logger.info(
                f"Bon {reference}: {decision.from_status.value} -> {decision.to_status.value} "
                f"(utilisateur {actor.user_id})"
            )
        return updated

    # ------------------------------------------------------------------
    # Création et brouillons
    # ------------------------------------------------------------------

    def create_mission(self, mission_data: MissionCreate, actor: Actor) -> MissionOrder:
        self._validate_dates(mission_data.start_date, mission_data.end_date)
        if mission_data.project_id is not None:
            self._get_project(mission_data.project_id)

        status_value = MissionStatus.DRAFT
        if mission_data.submit:
            status_value = engine.submit(MissionStatus.DRAFT, actor, actor.user_id).to_status

        mission = MissionOrder(
            reference=generate_mission_reference(self.db),
            agent_id=actor.user_id,
            title=mission_data.title,
            description=mission_data.description,
            destination=mission_data.destination,
            start_date=mission_data.start_date,
            end_date=mission_data.end_date,
            project_id=mission_data.project_id,
            status=status_value.value,
        )
        self._apply_breakdown(mission, self._breakdown(mission_data.expenses))
        self._set_participants(mission, actor.user_id, mission_data.participant_ids)

        mission = self.repository.save(mission)
        logger.info(
            f"Bon {mission.reference} créé par l'utilisateur {actor.user_id} "
            f"(statut '{mission.status}', montant estimé {mission.estimated_amount} {CURRENCY})"
        )
        return mission

    def update_draft(self, mission_id: int, mission_update: MissionUpdate, actor: Actor) -> MissionOrder:
        """Modification d'un brouillon par son propriétaire, éventuellement suivie de sa soumission"""
        mission = self._get_mission(mission_id)
        self._decide(mission, actor, "modifier", lambda: engine.ensure_can_edit(actor, mission.status, mission.agent_id))

        start_date = mission_update.start_date or mission.start_date
        end_date = mission_update.end_date or mission.end_date
        self._validate_dates(start_date, end_date)

        fields = mission_update.model_dump(
            exclude_unset=True, exclude={"expenses", "participant_ids", "submit"}
        )
        if fields.get("project_id") is not None:
            self._get_project(fields["project_id"])

        target = MissionStatus.DRAFT
        if mission_update.submit:
            target = self._decide(
                mission, actor, "soumettre", lambda: engine.submit(mission.status, actor, mission.agent_id)
            ).to_status

        try:
            for field, value in fields.items():
                setattr(mission, field, value)
            if mission_update.expenses is not None:
                self._apply_breakdown(mission, self._breakdown(mission_update.expenses))
            if mission_update.participant_ids is not None:
                self._set_participants(mission, mission.agent_id, mission_update.participant_ids)
            self.db.flush()
            # Le bon doit toujours être en brouillon au moment de l'écriture
            self.repository.conditional_status_update(
                mission.id, MissionStatus.DRAFT.value, {"status": target.value}
            )
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Échec de la modification du bon {mission_id}: {e}")
            raise

        self.db.refresh(mission)
        logger.info(f"Bon {mission.reference} modifié par l'utilisateur {actor.user_id} (statut '{mission.status}')")
        return mission

    def submit_mission(self, mission_id: int, actor: Actor) -> MissionOrder:
        mission = self._get_mission(mission_id)
        decision = self._decide(
            mission, actor, "soumettre", lambda: engine.submit(mission.status, actor, mission.agent_id)
        )
        return self._transition(mission, actor, decision)

    def delete_mission(self, mission_id: int, actor: Actor) -> None:
        mission = self._get_mission(mission_id)
        self._decide(mission, actor, "supprimer", lambda: engine.ensure_can_delete(actor, mission.status, mission.agent_id))
        reference = mission.reference
        self.repository.delete_draft(mission.id)
        logger.info(f"Bon {reference} supprimé par l'utilisateur {actor.user_id}")

    # ------------------------------------------------------------------
    # Circuit de validation
    # ------------------------------------------------------------------

    def approve_mission(self, mission_id: int, actor: Actor, comment: Optional[str] = None) -> MissionOrder:
        mission = self._get_mission(mission_id)
        decision = self._decide(mission, actor, "approuver", lambda: engine.approve(mission.status, actor, comment))
        return self._transition(mission, actor, decision)

    def reject_mission(self, mission_id: int, actor: Actor, comment: Optional[str]) -> MissionOrder:
        mission = self._get_mission(mission_id)
        decision = self._decide(mission, actor, "rejeter", lambda: engine.reject(mission.status, actor, comment))
        return self._transition(mission, actor, decision)

    def record_payment(self, mission_id: int, actor: Actor, payment: PaymentRequest) -> MissionOrder:
        """approved -> paid; le budget du projet lié n'est pas modifié"""
        mission = self._get_mission(mission_id)
        decision = self._decide(mission, actor, "payer", lambda: engine.record_payment(mission.status, actor))
        return self._transition(mission, actor, decision, extra_values={
            "payment_method": payment.payment_method,
            "payment_date": payment.payment_date,
            "actual_amount": payment.actual_amount,
            "payment_proof_url": payment.payment_proof_url,
        })

    # ------------------------------------------------------------------
    # Consultation
    # ------------------------------------------------------------------

    def get_mission(self, mission_id: int, actor: Actor) -> MissionOrder:
        mission = self._get_mission(mission_id)
        self._ensure_can_view(mission, actor)
        return mission

    def list_missions(
        self,
        actor: Actor,
        status_filter: Optional[str] = None,
        search: Optional[str] = None,
        mine: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[MissionOrder], int]:
        """Liste filtrée, plus récents d'abord; status_filter accepte 'pending' pour les trois étapes"""
        query = self.db.query(MissionOrder)

        if mine or not self._can_read_all(actor):
            query = query.filter(or_(
                MissionOrder.agent_id == actor.user_id,
                MissionOrder.participants.any(MissionAgent.agent_id == actor.user_id),
            ))

        if status_filter == "pending":
            query = query.filter(MissionOrder.status.in_([s.value for s in engine.PENDING_STATUSES]))
        elif status_filter:
            try:
                status_value = MissionStatus(status_filter)
            except ValueError:
                raise MissionValidationError(f"Statut inconnu: '{status_filter}'")
            query = query.filter(MissionOrder.status == status_value.value)

        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                MissionOrder.title.ilike(pattern),
                MissionOrder.reference.ilike(pattern),
                MissionOrder.destination.ilike(pattern),
            ))

        total = query.count()
        items = (
            query.order_by(MissionOrder.created_at.desc(), MissionOrder.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total

    def list_awaiting_decision(self, actor: Actor) -> List[MissionOrder]:
        """Bons dont l'étape courante relève d'un rôle détenu par l'acteur"""
        statuses = [stage.status.value for stage in engine.APPROVAL_CHAIN if actor.has_role(stage.required_role)]
        if not statuses:
            return []
        return (
            self.db.query(MissionOrder)
            .filter(MissionOrder.status.in_(statuses))
            .order_by(MissionOrder.created_at.asc(), MissionOrder.id.asc())
            .all()
        )

    def list_signatures(self, mission_id: int, actor: Actor) -> List[Any]:
        mission = self.get_mission(mission_id, actor)
        return self.repository.list_signatures(mission.id)

    def get_workflow_progress(self, mission_id: int, actor: Actor) -> Dict[str, Any]:
        mission = self.get_mission(mission_id, actor)
        signatures = self.repository.list_signatures(mission.id)
        status_value = MissionStatus(mission.status)
        return {
            "mission_id": mission.id,
            "status": status_value.value,
            "status_label": engine.STATUS_LABELS[status_value],
            "can_act": engine.can_act(actor, status_value),
            "stages": [
                {
                    "status": progress.stage.status.value,
                    "required_role": progress.stage.required_role.value,
                    "label": progress.stage.label,
                    "state": progress.state,
                    "signature": progress.signature,
                }
                for progress in engine.workflow_progress(status_value, signatures)
            ],
        }

    def get_document_payload(self, mission_id: int, actor: Actor) -> Dict[str, Any]:
        mission = self.get_mission(mission_id, actor)
        if not engine.can_generate_document(mission.status):
            logger.warning(f"Document refusé pour le bon {mission.reference}: encore en brouillon")
            raise InvalidStateError("L'ordre de mission n'est disponible qu'après soumission du bon")
        return {
            "mission": mission,
            "agent": mission.agent_rel,
            "expenses": mission.expenses,
            "participants": mission.participants,
            "signatures": self.repository.list_signatures(mission.id),
            "currency": CURRENCY,
            "generated_at": datetime.now(),
        }
