# app/workflow/engine.py
"""
Moteur du circuit de validation des bons de mission.

Logique de décision pure: aucune session, aucun utilisateur implicite.
L'appelant fournit le statut courant et l'acteur (identité + rôles), le moteur
retourne la transition à appliquer ou lève une erreur typée.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

from app.core.exceptions import AuthorizationError, InvalidStateError, MissionValidationError


class Role(str, Enum):
    """Rôles applicatifs (un utilisateur peut en cumuler plusieurs)"""
    AGENT = "agent"
    CHEF_SERVICE = "chef_service"
    DIRECTEUR = "directeur"
    FINANCE = "finance"
    ADMIN = "admin"


class MissionStatus(str, Enum):
    """Statuts d'un bon de mission"""
    DRAFT = "draft"
    PENDING_SERVICE = "pending_service"
    PENDING_DIRECTOR = "pending_director"
    PENDING_FINANCE = "pending_finance"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class SignatureAction(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Stage:
    """Étape du circuit: statut d'attente et rôle habilité à décider"""
    status: MissionStatus
    required_role: Role
    label: str


# Circuit fixe, parcouru dans l'ordre
APPROVAL_CHAIN: Tuple[Stage, ...] = (
    Stage(MissionStatus.PENDING_SERVICE, Role.CHEF_SERVICE, "Chef de Service"),
    Stage(MissionStatus.PENDING_DIRECTOR, Role.DIRECTEUR, "Directeur"),
    Stage(MissionStatus.PENDING_FINANCE, Role.FINANCE, "Finance"),
)

PENDING_STATUSES: FrozenSet[MissionStatus] = frozenset(stage.status for stage in APPROVAL_CHAIN)

# Rôles autorisés à enregistrer un paiement
PAYMENT_ROLES: FrozenSet[Role] = frozenset({Role.FINANCE, Role.ADMIN})

STATUS_LABELS = {
    MissionStatus.DRAFT: "Brouillon",
    MissionStatus.PENDING_SERVICE: "En attente Chef Service",
    MissionStatus.PENDING_DIRECTOR: "En attente Directeur",
    MissionStatus.PENDING_FINANCE: "En attente Finance",
    MissionStatus.APPROVED: "Approuvé",
    MissionStatus.REJECTED: "Rejeté",
    MissionStatus.PAID: "Payé",
}


@dataclass(frozen=True)
class Actor:
    """Utilisateur agissant, résolu par la couche requête avant tout appel au moteur"""
    user_id: int
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    @classmethod
    def from_role_names(cls, user_id: int, role_names: Iterable[str]) -> "Actor":
        """Les noms de rôle inconnus sont ignorés: ils n'accordent aucun droit"""
        known = {role.value for role in Role}
        return cls(user_id=user_id, roles=frozenset(Role(name) for name in role_names if name in known))

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[Role]) -> bool:
        return any(role in self.roles for role in roles)


@dataclass(frozen=True)
class TransitionDecision:
    """Résultat d'une décision: transition à appliquer de manière conditionnelle"""
    from_status: MissionStatus
    to_status: MissionStatus
    action: Optional[SignatureAction] = None
    signer_role: Optional[Role] = None
    comment: Optional[str] = None
    rejection_reason: Optional[str] = None

    @property
    def requires_signature(self) -> bool:
        return self.action is not None


@dataclass
class StageProgress:
    """Avancement d'une étape pour l'affichage du circuit"""
    stage: Stage
    state: str  # completed, rejected, current, upcoming
    signature: Any = None


def _as_status(status) -> MissionStatus:
    return status if isinstance(status, MissionStatus) else MissionStatus(status)


def stage_index(status) -> Optional[int]:
    """Position de l'étape correspondant au statut, None hors circuit"""
    status = _as_status(status)
    for index, stage in enumerate(APPROVAL_CHAIN):
        if stage.status == status:
            return index
    return None


def current_stage(status) -> Optional[Stage]:
    index = stage_index(status)
    return APPROVAL_CHAIN[index] if index is not None else None


def required_role(status) -> Optional[Role]:
    stage = current_stage(status)
    return stage.required_role if stage else None


def next_status(status) -> MissionStatus:
    """Statut suivant après approbation de l'étape courante"""
    index = stage_index(status)
    if index is None:
        raise InvalidStateError(f"Le statut '{_as_status(status).value}' ne fait pas partie du circuit de validation")
    if index < len(APPROVAL_CHAIN) - 1:
        return APPROVAL_CHAIN[index + 1].status
    return MissionStatus.APPROVED


def can_act(actor: Actor, status) -> bool:
    """Vrai si le statut est une étape d'attente et que l'acteur détient le rôle de l'étape"""
    role = required_role(status)
    return role is not None and actor.has_role(role)


def _ensure_can_act(actor: Actor, status: MissionStatus) -> Stage:
    stage = current_stage(status)
    if stage is None:
        raise InvalidStateError(
            f"Aucune validation possible: le bon de mission est au statut '{status.value}'"
        )
    if not actor.has_role(stage.required_role):
        raise AuthorizationError(f"Rôle requis pour cette étape: {stage.required_role.value}")
    return stage


def _clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None


def approve(status, actor: Actor, comment: Optional[str] = None) -> TransitionDecision:
    """Approbation de l'étape courante; la signature porte toujours le rôle de l'étape"""
    status = _as_status(status)
    stage = _ensure_can_act(actor, status)
    return TransitionDecision(
        from_status=status,
        to_status=next_status(status),
        action=SignatureAction.APPROVED,
        signer_role=stage.required_role,
        comment=_clean_comment(comment),
    )


def reject(status, actor: Actor, comment: Optional[str]) -> TransitionDecision:
    """Rejet définitif: le motif est obligatoire et recopié dans rejection_reason"""
    status = _as_status(status)
    stage = _ensure_can_act(actor, status)
    reason = _clean_comment(comment)
    if reason is None:
        raise MissionValidationError("Veuillez fournir un motif de rejet")
    return TransitionDecision(
        from_status=status,
        to_status=MissionStatus.REJECTED,
        action=SignatureAction.REJECTED,
        signer_role=stage.required_role,
        comment=reason,
        rejection_reason=reason,
    )


_OWNER_ACTIONS = {
    "modifier": "modifiés",
    "supprimer": "supprimés",
    "soumettre": "soumis",
}


def _ensure_owner_draft(actor: Actor, status: MissionStatus, owner_id: int, verb: str) -> None:
    if actor.user_id != owner_id:
        raise AuthorizationError(f"Seul l'agent propriétaire peut {verb} ce bon de mission")
    if status != MissionStatus.DRAFT:
        raise InvalidStateError(f"Seuls les bons en brouillon peuvent être {_OWNER_ACTIONS[verb]}")


def can_edit(actor: Actor, status, owner_id: int) -> bool:
    return _as_status(status) == MissionStatus.DRAFT and actor.user_id == owner_id


def can_delete(actor: Actor, status, owner_id: int) -> bool:
    return can_edit(actor, status, owner_id)


def ensure_can_edit(actor: Actor, status, owner_id: int) -> None:
    _ensure_owner_draft(actor, _as_status(status), owner_id, "modifier")


def ensure_can_delete(actor: Actor, status, owner_id: int) -> None:
    _ensure_owner_draft(actor, _as_status(status), owner_id, "supprimer")


def submit(status, actor: Actor, owner_id: int) -> TransitionDecision:
    """Soumission d'un brouillon par son propriétaire: entrée dans le circuit"""
    status = _as_status(status)
    _ensure_owner_draft(actor, status, owner_id, "soumettre")
    return TransitionDecision(from_status=status, to_status=APPROVAL_CHAIN[0].status)


def record_payment(status, actor: Actor) -> TransitionDecision:
    status = _as_status(status)
    if status != MissionStatus.APPROVED:
        raise InvalidStateError(
            f"Seuls les bons approuvés peuvent être marqués payés (statut actuel: '{status.value}')"
        )
    if not actor.has_any_role(PAYMENT_ROLES):
        raise AuthorizationError("Rôle requis pour enregistrer un paiement: finance ou admin")
    return TransitionDecision(from_status=status, to_status=MissionStatus.PAID)


def can_generate_document(status) -> bool:
    """L'ordre de mission imprimable n'est proposé qu'une fois le brouillon soumis"""
    return _as_status(status) != MissionStatus.DRAFT


def workflow_progress(status, signatures: Iterable[Any]) -> List[StageProgress]:
    """
    Avancement de chaque étape du circuit à partir des signatures
    (objets exposant signer_role et action).
    """
    status = _as_status(status)
    by_role = {}
    for signature in signatures:
        role = signature.signer_role
        by_role.setdefault(role.value if isinstance(role, Role) else role, signature)

    progress = []
    for stage in APPROVAL_CHAIN:
        signature = by_role.get(stage.required_role.value)
        if signature is not None:
            action = signature.action
            action = action.value if isinstance(action, SignatureAction) else action
            state = "rejected" if action == SignatureAction.REJECTED.value else "completed"
        elif stage.status == status:
            state = "current"
        else:
            state = "upcoming"
        progress.append(StageProgress(stage=stage, state=state, signature=signature))
    return progress
