"""
SQLAlchemy ORM models for the lead intake engine.

Persistent entities: team members (roster), leads, lead events and
routing decisions.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    JSON, Index, CheckConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class TeamMemberRecord(Base):
    __tablename__ = "team_members"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    team = Column(String(64), nullable=False, index=True)
    specialties_json = Column(JSON, default=list)
    languages_json = Column(JSON, default=list)
    current_load = Column(Integer, nullable=False, default=0)
    max_load = Column(Integer, nullable=False)
    availability = Column(String(10), nullable=False, default="available")  # available, busy, offline
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("max_load > 0", name="ck_member_max_load_positive"),
        CheckConstraint("current_load >= 0", name="ck_member_load_non_negative"),
        Index("ix_member_team_availability", "team", "availability"),
    )


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    preferred_contact = Column(String(32), nullable=True)
    location = Column(String(255), nullable=True)
    source = Column(String(64), nullable=True)
    case_type = Column(String(64), nullable=False)
    case_category = Column(String(64), nullable=False, index=True)
    message = Column(Text, default="")
    language = Column(String(8), nullable=True)
    aggregate_score = Column(Integer, default=0)
    qualification = Column(String(10), default="cold")  # hot, warm, cold
    estimated_value = Column(Integer, default=0)
    factors_json = Column(JSON, default=dict)
    target_response_time = Column(String(32), nullable=True)
    qualification_rule = Column(String(255), default="")
    qualification_override = Column(Boolean, default=False)
    signals_json = Column(JSON, default=list)
    scored_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="scored")  # scored, routed, pending_routing
    assigned_team = Column(String(64), nullable=True)
    assigned_member_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = relationship("LeadEvent", back_populates="lead", cascade="all, delete-orphan")
    decisions = relationship("RoutingDecisionRecord", back_populates="lead", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_lead_status", "status"),
        Index("ix_lead_qualification", "qualification"),
    )


class LeadEvent(Base):
    __tablename__ = "lead_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)  # scored, routed, routing_failed, capacity_released
    details_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    lead = relationship("Lead", back_populates="events")


class RoutingDecisionRecord(Base):
    __tablename__ = "routing_decisions"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_team = Column(String(64), nullable=False)
    assigned_member_id = Column(String(64), nullable=True)
    outcome = Column(String(20), nullable=False)
    priority = Column(String(10), nullable=False)
    reason = Column(Text, default="")
    estimated_response_time = Column(String(32), nullable=True)
    alternative_teams_json = Column(JSON, default=list)
    capacity_reserved = Column(Boolean, default=False)
    attempts = Column(Integer, default=1)
    callback_required = Column(Boolean, default=False)
    special_instructions = Column(Text, default="")
    aggregate_score = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    lead = relationship("Lead", back_populates="decisions")
