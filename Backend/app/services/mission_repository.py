# app/services/mission_repository.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError
from app.models.models import MissionAgent, MissionExpense, MissionOrder, MissionSignature, UserRole
from app.workflow.engine import Actor, TransitionDecision

logger = logging.getLogger(__name__)


class MissionRepository:
    """
    Accès persistant aux bons de mission pour le circuit de validation:
    lecture par id, mise à jour conditionnée au statut, ajout de signatures
    et lecture des rôles détenus par un utilisateur.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, mission_id: int) -> Optional[MissionOrder]:
        return self.db.query(MissionOrder).filter(MissionOrder.id == mission_id).first()

    def get_or_404(self, mission_id: int) -> MissionOrder:
        mission = self.get(mission_id)
        if not mission:
            raise NotFoundError(f"Bon de mission {mission_id} introuvable")
        return mission

    def get_roles(self, user_id: int) -> List[str]:
        """Rôles actuellement détenus, relus à chaque décision"""
        rows = self.db.query(UserRole.role).filter(UserRole.utilisateur_id == user_id).all()
        return sorted({row.role for row in rows})

    def list_signatures(self, mission_id: int) -> List[MissionSignature]:
        return (
            self.db.query(MissionSignature)
            .filter(MissionSignature.mission_id == mission_id)
            .order_by(MissionSignature.signed_at.asc(), MissionSignature.id.asc())
            .all()
        )

    def conditional_status_update(
        self, mission_id: int, expected_status: str, values: Dict[str, Any]
    ) -> None:
        """
        UPDATE ... WHERE id = :id AND status = :expected.
        Aucune ligne touchée signifie qu'une autre transition a gagné: ConflictError.
        N'effectue pas de commit.
        """
        result = self.db.execute(
            update(MissionOrder)
            .where(MissionOrder.id == mission_id, MissionOrder.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Conflit de statut sur le bon {mission_id}: statut attendu '{expected_status}' déjà modifié"
            )
            raise ConflictError(
                "Le statut du bon de mission a changé entre-temps. Veuillez actualiser et réessayer."
            )

    def append_signature(
        self, mission_id: int, signer_id: int, signer_role: str, action: str, comment: Optional[str]
    ) -> MissionSignature:
        signature = MissionSignature(
            mission_id=mission_id,
            signer_id=signer_id,
            signer_role=signer_role,
            action=action,
            comment=comment,
        )
        self.db.add(signature)
        return signature

    def apply_transition(
        self,
        mission_id: int,
        decision: TransitionDecision,
        actor: Actor,
        extra_values: Optional[Dict[str, Any]] = None,
    ) -> MissionOrder:
        """
        Applique une décision du moteur dans une seule transaction:
        mise à jour conditionnée du statut puis, le cas échéant, la signature.
        Tout échec annule l'ensemble.
        """
        values: Dict[str, Any] = {"status": decision.to_status.value}
        if decision.rejection_reason is not None:
            values["rejection_reason"] = decision.rejection_reason
        if extra_values:
            values.update(extra_values)

        try:
            self.conditional_status_update(mission_id, decision.from_status.value, values)
            if decision.requires_signature:
                self.append_signature(
                    mission_id=mission_id,
                    signer_id=actor.user_id,
                    signer_role=decision.signer_role.value,
                    action=decision.action.value,
                    comment=decision.comment,
                )
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Échec de la transition du bon {mission_id} vers '{decision.to_status.value}': {e}")
            raise

        mission = self.get_or_404(mission_id)
        self.db.refresh(mission)
        return mission

    def save(self, mission: MissionOrder) -> MissionOrder:
        try:
            self.db.add(mission)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Échec de l'enregistrement du bon de mission: {e}")
            raise
        self.db.refresh(mission)
        return mission

    def delete_draft(self, mission_id: int) -> None:
        """
        DELETE ... WHERE id = :id AND status = 'draft', frais et participants compris.
        Un bon soumis entre-temps n'est pas supprimé: ConflictError.
        """
        try:
            self.db.execute(
                delete(MissionExpense)
                .where(MissionExpense.mission_id == mission_id)
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                delete(MissionAgent)
                .where(MissionAgent.mission_id == mission_id)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(
                delete(MissionOrder)
                .where(MissionOrder.id == mission_id, MissionOrder.status == "draft")
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(f"Suppression annulée: le bon {mission_id} n'est plus en brouillon")
                raise ConflictError(
                    "Le bon de mission a été soumis entre-temps et ne peut plus être supprimé."
                )
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Échec de la suppression du bon {mission_id}: {e}")
            raise
