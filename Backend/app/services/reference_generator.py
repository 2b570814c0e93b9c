# app/services/reference_generator.py
import uuid
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import MISSION_REFERENCE_PREFIX
from app.models.models import MissionOrder

MAX_ATTEMPTS = 5


def build_reference(prefix: str = MISSION_REFERENCE_PREFIX, today: Optional[date] = None) -> str:
    """Format: OM-2024-3F9A1C"""
    year = (today or date.today()).year
    return f"{prefix}-{year}-{uuid.uuid4().hex[:6].upper()}"


def generate_mission_reference(db: Session, prefix: str = MISSION_REFERENCE_PREFIX) -> str:
    """Référence unique et immuable attribuée à la création du bon"""
    for _ in range(MAX_ATTEMPTS):
        reference = build_reference(prefix)
        exists = db.query(MissionOrder.id).filter(MissionOrder.reference == reference).first()
        if not exists:
            return reference
    # La contrainte d'unicité en base reste le garde-fou final
    return f"{prefix}-{date.today().year}-{uuid.uuid4().hex.upper()}"
