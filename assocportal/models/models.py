from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import (
    AttendanceStatus,
    BillingInterval,
    LeadStatus,
    MeetingStatus,
    MeetingType,
    MemberRole,
    MemberStatus,
    MembershipRole,
    MembershipStatus,
    PlatformAdminRole,
    SubscriptionStatus,
    TopicStatus,
    UnitStatus,
    VisibilityKind,
)


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _enum(enum_cls):
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class User(Base):
    """Local mirror of an identity-provider account."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, index=True, nullable=True)
    name = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    memberships = orm_relationship("AssociationMembership", back_populates="user", foreign_keys="AssociationMembership.user_id")
    platform_admin = orm_relationship("PlatformAdmin", back_populates="user", uselist=False, foreign_keys="PlatformAdmin.user_id")
    preference = orm_relationship("UserPreference", back_populates="user", uselist=False, cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@", 1)[0]
        return "User"


class PlatformAdmin(Base):
    __tablename__ = "platform_admins"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    role = Column(_enum(PlatformAdminRole), default=PlatformAdminRole.SUPPORT, nullable=False)
    permissions = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="platform_admin", foreign_keys=[user_id])
    assigned_leads = orm_relationship("Lead", back_populates="assignee")


class Association(Base):
    __tablename__ = "associations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    website = Column(String, nullable=True)

    subscription_tier = Column(String, default="free", nullable=False)
    subscription_status = Column(_enum(SubscriptionStatus), default=SubscriptionStatus.TRIAL, nullable=False, index=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)

    allow_self_registration = Column(Boolean, default=False, nullable=False)
    require_admin_approval = Column(Boolean, default=True, nullable=False)
    max_members = Column(Integer, nullable=True)
    max_units = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    suspended_at = Column(DateTime(timezone=True), nullable=True)
    suspended_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    suspension_reason = Column(Text, nullable=True)

    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    memberships = orm_relationship("AssociationMembership", back_populates="association", cascade="all, delete-orphan")
    members = orm_relationship("Member", back_populates="association", cascade="all, delete-orphan")
    units = orm_relationship("Unit", back_populates="association", cascade="all, delete-orphan")


class AssociationMembership(Base):
    __tablename__ = "association_memberships"
    __table_args__ = (UniqueConstraint("association_id", "user_id", name="uq_membership_association_user"),)

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(_enum(MembershipRole), default=MembershipRole.MEMBER, nullable=False)
    status = Column(_enum(MembershipStatus), default=MembershipStatus.ACTIVE, nullable=False)
    permissions = Column(JSON, default=list, nullable=False)
    invited_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invited_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    association = orm_relationship("Association", back_populates="memberships")
    user = orm_relationship("User", back_populates="memberships", foreign_keys=[user_id])


class Member(Base):
    """Association-scoped profile, possibly created before the person signs up."""

    __tablename__ = "members"
    __table_args__ = (UniqueConstraint("association_id", "email", name="uq_member_association_email"),)

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    email = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(_enum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    status = Column(_enum(MemberStatus), default=MemberStatus.INVITED, nullable=False)
    invited_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invited_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deactivation_reason = Column(Text, nullable=True)
    reactivated_at = Column(DateTime(timezone=True), nullable=True)
    reactivated_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    association = orm_relationship("Association", back_populates="members")
    unit_assignments = orm_relationship("MemberUnit", back_populates="member", cascade="all, delete-orphan")
    votes = orm_relationship("Vote", back_populates="member", cascade="all, delete-orphan")
    attendance = orm_relationship("MeetingAttendance", back_populates="member", cascade="all, delete-orphan")

    @property
    def unit_names(self) -> list[str]:
        return sorted(assignment.unit.name for assignment in self.unit_assignments if assignment.unit)


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("association_id", "name", name="uq_unit_association_name"),)

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    building = Column(String, nullable=True, index=True)
    floor = Column(Integer, nullable=True)
    unit_type = Column(String, nullable=True)
    size = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    status = Column(_enum(UnitStatus), default=UnitStatus.ACTIVE, nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    association = orm_relationship("Association", back_populates="units")
    assignment = orm_relationship("MemberUnit", back_populates="unit", uselist=False, cascade="all, delete-orphan")


class MemberUnit(Base):
    __tablename__ = "member_units"

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    # One holder per unit.
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, unique=True)
    assigned_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    member = orm_relationship("Member", back_populates="unit_assignments")
    unit = orm_relationship("Unit", back_populates="assignment")


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    file_reference = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    file_size = Column(Integer, nullable=False, default=0)
    uploaded_by_member_id = Column(Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    uploaded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_public = Column(Boolean, default=False, nullable=False)
    visibility = Column(_enum(VisibilityKind), nullable=True)
    allowed_units = Column(JSON, default=list, nullable=False)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    uploaded_by = orm_relationship("Member")
    meeting = orm_relationship("Meeting", back_populates="documents")


class VotingTopic(Base):
    __tablename__ = "voting_topics"

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    options = Column(JSON, nullable=False, default=list)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(_enum(TopicStatus), default=TopicStatus.DRAFT, nullable=False, index=True)
    allow_multiple_votes = Column(Boolean, default=False, nullable=False)
    visibility = Column(_enum(VisibilityKind), nullable=True)
    allowed_units = Column(JSON, default=list, nullable=False)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    votes = orm_relationship("Vote", back_populates="topic", cascade="all, delete-orphan")
    meeting = orm_relationship("Meeting", back_populates="voting_topics")


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("topic_id", "member_id", name="uq_vote_topic_member"),)

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("voting_topics.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    selected_options = Column(JSON, nullable=False, default=list)
    voted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    topic = orm_relationship("VotingTopic", back_populates="votes")
    member = orm_relationship("Member", back_populates="votes")


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    meeting_type = Column(_enum(MeetingType), default=MeetingType.GENERAL, nullable=False)
    scheduled_date = Column(DateTime(timezone=True), nullable=False, index=True)
    location = Column(String, nullable=False, default="")
    status = Column(_enum(MeetingStatus), default=MeetingStatus.DRAFT, nullable=False, index=True)
    agenda = Column(JSON, nullable=False, default=list)
    invite_all_members = Column(Boolean, default=True, nullable=False)
    invited_units = Column(JSON, nullable=False, default=list)
    notifications_sent = Column(Boolean, default=False, nullable=False)
    reminders_sent = Column(Boolean, default=False, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    scheduled_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    attendance_count = Column(Integer, nullable=True)
    # Plain id: documents already point back at meetings.
    minutes_document_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    attendance = orm_relationship("MeetingAttendance", back_populates="meeting", cascade="all, delete-orphan")
    documents = orm_relationship("Document", back_populates="meeting")
    voting_topics = orm_relationship("VotingTopic", back_populates="meeting")


class MeetingAttendance(Base):
    __tablename__ = "meeting_attendance"
    __table_args__ = (UniqueConstraint("meeting_id", "member_id", name="uq_attendance_meeting_member"),)

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=False, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    status = Column(_enum(AttendanceStatus), nullable=False)
    notes = Column(Text, nullable=True)
    responded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    meeting = orm_relationship("Meeting", back_populates="attendance")
    member = orm_relationship("Member", back_populates="attendance")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    association_id = Column(Integer, ForeignKey("associations.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=True)
    description = Column(Text, nullable=False, default="")
    details = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)

    user = orm_relationship("User")
    member = orm_relationship("Member")


class SubscriptionTier(Base):
    __tablename__ = "subscription_tiers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    max_members = Column(Integer, nullable=True)
    max_units = Column(Integer, nullable=True)
    price = Column(Integer, nullable=True)
    yearly_price = Column(Integer, nullable=True)
    currency = Column(String, default="gbp", nullable=False)
    billing_interval = Column(_enum(BillingInterval), default=BillingInterval.MONTHLY, nullable=False)
    stripe_price_id = Column(String, nullable=True)
    stripe_yearly_price_id = Column(String, nullable=True)
    features = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class UserPreference(Base):
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    selected_association_id = Column(Integer, ForeignKey("associations.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="preference")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    company_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(_enum(LeadStatus), default=LeadStatus.NEW, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    assigned_to_admin_id = Column(Integer, ForeignKey("platform_admins.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    assignee = orm_relationship("PlatformAdmin", back_populates="assigned_leads")
