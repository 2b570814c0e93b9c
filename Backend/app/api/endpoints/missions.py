from typing import List, Optional, Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.schemas import (
    ExpenseInput,
    ExpensePreviewResponse,
    MissionCreate,
    MissionUpdate,
    MissionResponse,
    MissionDetailResponse,
    MissionListResponse,
    MissionDocumentResponse,
    ApprovalRequest,
    RejectionRequest,
    PaymentRequest,
    SignatureResponse,
    WorkflowProgressResponse
)
from app.core.auth_dependencies import get_current_actor, require_permission
from app.services.expense_calculator import ExpenseItems, compute_expenses
from app.services.mission_service import MissionService
from app.workflow.engine import Actor

router = APIRouter(
    prefix="/missions",
    tags=["Bons de mission"],
    responses={
        401: {"description": "Non autorisé"},
        403: {"description": "Accès refusé"},
        404: {"description": "Non trouvé"},
        409: {"description": "Statut modifié entre-temps"}
    },
)


@router.post("/expenses/preview", response_model=ExpensePreviewResponse)
def preview_expenses(
    expenses: ExpenseInput,
    actor: Annotated[Actor, Depends(get_current_actor)]
):
    """Aperçu du calcul des frais, identique au calcul effectué à l'enregistrement"""
    return compute_expenses(ExpenseItems(**expenses.model_dump())).to_dict()


@router.post("/", response_model=MissionDetailResponse, status_code=status.HTTP_201_CREATED)
def create_mission(
    mission: MissionCreate,
    actor: Annotated[Actor, Depends(require_permission("mission:create"))],
    db: Session = Depends(get_db)
):
    """
    Crée un bon de mission pour l'utilisateur connecté.
    Avec submit=true le bon entre directement dans le circuit (pending_service),
    sinon il est enregistré comme brouillon.
    """
    return MissionService(db).create_mission(mission, actor)


@router.get("/", response_model=MissionListResponse)
def list_missions(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", description="Statut ou 'pending'"),
    search: Optional[str] = Query(None, description="Titre, référence ou destination"),
    mine: bool = Query(False, description="Uniquement mes bons"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200)
):
    items, total = MissionService(db).list_missions(
        actor, status_filter=status_filter, search=search, mine=mine, skip=skip, limit=limit
    )
    return MissionListResponse(
        items=[MissionResponse.model_validate(m) for m in items], total=total, skip=skip, limit=limit
    )


@router.get("/awaiting-decision", response_model=List[MissionResponse])
def list_awaiting_decision(
    actor: Annotated[Actor, Depends(require_permission("mission:validate"))],
    db: Session = Depends(get_db)
):
    """Bons en attente d'une décision relevant d'un des rôles de l'utilisateur"""
    return MissionService(db).list_awaiting_decision(actor)


@router.get("/{mission_id}", response_model=MissionDetailResponse)
def get_mission(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return MissionService(db).get_mission(mission_id, actor)


@router.put("/{mission_id}", response_model=MissionDetailResponse)
def update_mission(
    mission_id: int,
    mission_update: MissionUpdate,
    actor: Annotated[Actor, Depends(require_permission("mission:update"))],
    db: Session = Depends(get_db)
):
    """Modifie un brouillon (propriétaire uniquement); submit=true le soumet dans la foulée"""
    return MissionService(db).update_draft(mission_id, mission_update, actor)


@router.delete("/{mission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_mission(
    mission_id: int,
    actor: Annotated[Actor, Depends(require_permission("mission:delete"))],
    db: Session = Depends(get_db)
):
    MissionService(db).delete_mission(mission_id, actor)


@router.post("/{mission_id}/submit", response_model=MissionDetailResponse)
def submit_mission(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return MissionService(db).submit_mission(mission_id, actor)


@router.post("/{mission_id}/approve", response_model=MissionDetailResponse)
def approve_mission(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    request: Optional[ApprovalRequest] = None,
    db: Session = Depends(get_db)
):
    """Approuve l'étape courante; le rôle exigé est vérifié par le moteur de validation"""
    comment = request.comment if request else None
    return MissionService(db).approve_mission(mission_id, actor, comment)


@router.post("/{mission_id}/reject", response_model=MissionDetailResponse)
def reject_mission(
    mission_id: int,
    request: RejectionRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    """Rejet définitif de la mission, motif obligatoire"""
    return MissionService(db).reject_mission(mission_id, actor, request.comment)


@router.post("/{mission_id}/payment", response_model=MissionDetailResponse)
def record_payment(
    mission_id: int,
    payment: PaymentRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return MissionService(db).record_payment(mission_id, actor, payment)


@router.get("/{mission_id}/signatures", response_model=List[SignatureResponse])
def list_signatures(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return MissionService(db).list_signatures(mission_id, actor)


@router.get("/{mission_id}/workflow", response_model=WorkflowProgressResponse)
def get_workflow_progress(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    return MissionService(db).get_workflow_progress(mission_id, actor)


@router.get("/{mission_id}/document", response_model=MissionDocumentResponse)
def get_mission_document(
    mission_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Session = Depends(get_db)
):
    """Données de l'ordre de mission imprimable (indisponible en brouillon)"""
    return MissionService(db).get_document_payload(mission_id, actor)
