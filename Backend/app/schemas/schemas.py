from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationInfo, field_validator

# ====================================================================
# Pydantic Schemas
# ====================================================================

# --- Frais ---
class ExpenseInput(BaseModel):
    """Saisie des frais; une catégorie absente ou négative compte pour zéro"""
    accommodation_days: Optional[Decimal] = None
    accommodation_unit_price: Optional[Decimal] = None
    per_diem_days: Optional[Decimal] = None
    per_diem_rate: Optional[Decimal] = None
    transport_type: Optional[str] = Field(None, max_length=100)
    transport_distance: Optional[Decimal] = None
    transport_unit_price: Optional[Decimal] = None
    fuel_quantity: Optional[Decimal] = None
    fuel_unit_price: Optional[Decimal] = None
    other_expenses: Optional[Decimal] = None
    other_expenses_description: Optional[str] = None

class ExpenseResponse(BaseModel):
    accommodation_days: Decimal
    accommodation_unit_price: Decimal
    accommodation_total: Decimal
    per_diem_days: Decimal
    per_diem_rate: Decimal
    per_diem_total: Decimal
    transport_type: Optional[str] = None
    transport_distance: Decimal
    transport_unit_price: Decimal
    transport_total: Decimal
    fuel_quantity: Decimal
    fuel_unit_price: Decimal
    fuel_total: Decimal
    other_expenses: Decimal
    other_expenses_description: Optional[str] = None

    class Config:
        from_attributes = True

class ExpensePreviewResponse(ExpenseResponse):
    total: Decimal

# --- Bons de mission ---
class MissionBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    destination: str = Field(..., min_length=1, max_length=255)
    start_date: date
    end_date: date
    project_id: Optional[int] = None

    @field_validator('end_date')
    def end_after_start(cls, v, info: ValidationInfo):
        start = info.data.get('start_date')
        if start and v < start:
            raise ValueError('La date de fin doit être postérieure ou égale à la date de début')
        return v

class MissionCreate(MissionBase):
    expenses: ExpenseInput = Field(default_factory=ExpenseInput)
    participant_ids: List[int] = []
    # False: enregistrer comme brouillon, True: soumettre directement
    submit: bool = False

class MissionUpdate(BaseModel):
    """Modification d'un brouillon; les champs absents restent inchangés"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    destination: Optional[str] = Field(None, min_length=1, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    project_id: Optional[int] = None
    expenses: Optional[ExpenseInput] = None
    participant_ids: Optional[List[int]] = None
    submit: bool = False

    @field_validator('title', 'destination', 'start_date', 'end_date')
    def not_null_when_given(cls, v, info: ValidationInfo):
        # Omettre le champ pour le conserver; null n'efface pas un champ obligatoire
        if v is None:
            raise ValueError(f"Le champ '{info.field_name}' ne peut pas être vide")
        return v

class ApprovalRequest(BaseModel):
    comment: Optional[str] = None

class RejectionRequest(BaseModel):
    # Obligatoire côté moteur; accepté vide ici pour renvoyer le message métier
    comment: Optional[str] = None

class PaymentRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_date: date
    actual_amount: Decimal = Field(..., ge=0)
    payment_proof_url: Optional[str] = Field(None, max_length=500)

class UserSummary(BaseModel):
    id: int
    login: str
    nom_complet: str
    departement: Optional[str] = None

    class Config:
        from_attributes = True

class SignatureResponse(BaseModel):
    id: int
    signer_id: int
    signer_role: str
    action: str
    comment: Optional[str] = None
    signed_at: datetime
    signer_rel: Optional[UserSummary] = None

    class Config:
        from_attributes = True

class ParticipantResponse(BaseModel):
    agent_id: int
    is_primary: bool
    agent_rel: Optional[UserSummary] = None

    class Config:
        from_attributes = True

class MissionResponse(BaseModel):
    id: int
    reference: str
    agent_id: int
    title: str
    description: Optional[str] = None
    destination: str
    start_date: date
    end_date: date
    estimated_amount: Decimal
    actual_amount: Optional[Decimal] = None
    status: str
    rejection_reason: Optional[str] = None
    project_id: Optional[int] = None
    payment_method: Optional[str] = None
    payment_date: Optional[date] = None
    payment_proof_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class MissionDetailResponse(MissionResponse):
    agent_rel: Optional[UserSummary] = None
    expenses: Optional[ExpenseResponse] = None
    participants: List[ParticipantResponse] = []
    signatures: List[SignatureResponse] = []

class MissionListResponse(BaseModel):
    items: List[MissionResponse]
    total: int
    skip: int
    limit: int

class StageProgressResponse(BaseModel):
    status: str
    required_role: str
    label: str
    state: str  # completed, rejected, current, upcoming
    signature: Optional[SignatureResponse] = None

class WorkflowProgressResponse(BaseModel):
    mission_id: int
    status: str
    status_label: str
    can_act: bool
    stages: List[StageProgressResponse]

class MissionDocumentResponse(BaseModel):
    """Données transmises au générateur d'ordre de mission imprimable"""
    mission: MissionResponse
    agent: UserSummary
    expenses: Optional[ExpenseResponse] = None
    participants: List[ParticipantResponse]
    signatures: List[SignatureResponse]
    currency: str
    generated_at: datetime

# --- Projets ---
class ProjectResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    total_budget: Decimal
    spent_budget: Decimal
    remaining_budget: Decimal
    consumption_percentage: Decimal
    budget_level: str  # normal, warning, critical
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

# --- Tableau de bord ---
class ExpenseCategoryTotals(BaseModel):
    accommodation: Decimal
    per_diem: Decimal
    transport: Decimal
    fuel: Decimal
    other: Decimal

class DashboardStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    draft: int
    total_amount: Decimal
    by_status: dict
    expenses_by_category: ExpenseCategoryTotals
    currency: str
