from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Numeric, Boolean, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func # For default timestamps
from app.core.database import Base # Import Base from our database.py

# ====================================================================
# SQLAlchemy Models
# ====================================================================

class Utilisateur(Base):
    __tablename__ = "Utilisateur"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    login = Column(String(100), unique=True, nullable=False)
    motDePasse = Column(String(255), nullable=False)
    nom_complet = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=True)
    departement = Column(String(100), nullable=True)
    actif = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    roles = relationship("UserRole", back_populates="utilisateur_rel", cascade="all, delete-orphan")
    missions = relationship("MissionOrder", back_populates="agent_rel")

    @property
    def role_names(self):
        return sorted(r.role for r in self.roles)

class UserRole(Base):
    __tablename__ = "UserRole"
    __table_args__ = (UniqueConstraint("utilisateur_id", "role", name="uq_user_role"),)
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    utilisateur_id = Column(Integer, ForeignKey("Utilisateur.id", ondelete="CASCADE"), nullable=False)
    # agent | chef_service | directeur | finance | admin
    role = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=func.now())

    utilisateur_rel = relationship("Utilisateur", back_populates="roles")

class Project(Base):
    __tablename__ = "Project"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    total_budget = Column(Numeric(15, 2), default=0.00, nullable=False)
    spent_budget = Column(Numeric(15, 2), default=0.00, nullable=False)
    status = Column(String(50), default="active")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    missions = relationship("MissionOrder", back_populates="project_rel")

class MissionOrder(Base):
    __tablename__ = "MissionOrder"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    reference = Column(String(50), unique=True, nullable=False)
    agent_id = Column(Integer, ForeignKey("Utilisateur.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    destination = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    estimated_amount = Column(Numeric(15, 2), default=0.00, nullable=False)
    actual_amount = Column(Numeric(15, 2), nullable=True)
    status = Column(String(50), default="draft", nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)
    project_id = Column(Integer, ForeignKey("Project.id"), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_date = Column(Date, nullable=True)
    payment_proof_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    agent_rel = relationship("Utilisateur", back_populates="missions")
    project_rel = relationship("Project", back_populates="missions")
    expenses = relationship(
        "MissionExpense",
        back_populates="mission_rel",
        uselist=False,
        cascade="all, delete-orphan"
    )
    participants = relationship(
        "MissionAgent",
        back_populates="mission_rel",
        cascade="all, delete-orphan",
        order_by=lambda: (MissionAgent.is_primary.desc(), MissionAgent.id)
    )
    # Journal d'audit en ajout seul: jamais de cascade de suppression
    signatures = relationship(
        "MissionSignature",
        back_populates="mission_rel",
        order_by=lambda: (MissionSignature.signed_at, MissionSignature.id)
    )

class MissionExpense(Base):
    __tablename__ = "MissionExpense"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("MissionOrder.id", ondelete="CASCADE"), unique=True, nullable=False)
    accommodation_days = Column(Numeric(10, 2), default=0)
    accommodation_unit_price = Column(Numeric(15, 2), default=0.00)
    accommodation_total = Column(Numeric(15, 2), default=0.00)
    per_diem_days = Column(Numeric(10, 2), default=0)
    per_diem_rate = Column(Numeric(15, 2), default=0.00)
    per_diem_total = Column(Numeric(15, 2), default=0.00)
    transport_type = Column(String(100), nullable=True)
    transport_distance = Column(Numeric(10, 2), default=0)
    transport_unit_price = Column(Numeric(15, 2), default=0.00)
    transport_total = Column(Numeric(15, 2), default=0.00)
    fuel_quantity = Column(Numeric(10, 2), default=0)
    fuel_unit_price = Column(Numeric(15, 2), default=0.00)
    fuel_total = Column(Numeric(15, 2), default=0.00)
    other_expenses = Column(Numeric(15, 2), default=0.00)
    other_expenses_description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    mission_rel = relationship("MissionOrder", back_populates="expenses")

class MissionSignature(Base):
    __tablename__ = "MissionSignature"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("MissionOrder.id"), nullable=False, index=True)
    signer_id = Column(Integer, ForeignKey("Utilisateur.id"), nullable=False)
    signer_role = Column(String(50), nullable=False)
    action = Column(String(20), nullable=False)  # approved | rejected
    comment = Column(Text, nullable=True)
    signed_at = Column(DateTime, default=func.now(), nullable=False)

    mission_rel = relationship("MissionOrder", back_populates="signatures")
    signer_rel = relationship("Utilisateur")

class MissionAgent(Base):
    __tablename__ = "MissionAgent"
    __table_args__ = (UniqueConstraint("mission_id", "agent_id", name="uq_mission_agent"),)
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    mission_id = Column(Integer, ForeignKey("MissionOrder.id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Integer, ForeignKey("Utilisateur.id", ondelete="CASCADE"), nullable=False)
    is_primary = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())

    mission_rel = relationship("MissionOrder", back_populates="participants")
    agent_rel = relationship("Utilisateur")
