import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from ..constants import (
    AgendaItemType,
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
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Visibility -------------------------------------------------------------


class VisibilityAll(BaseModel):
    kind: Literal["all"] = "all"


class VisibilityUnits(BaseModel):
    kind: Literal["units"] = "units"
    units: List[str] = Field(min_length=1)

    @field_validator("units")
    @classmethod
    def _clean_units(cls, value: List[str]) -> List[str]:
        cleaned = []
        for unit in value:
            name = unit.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            raise ValueError("At least one unit is required for unit-restricted visibility")
        return cleaned


class VisibilityAdmin(BaseModel):
    kind: Literal["admin"] = "admin"


Visibility = Annotated[Union[VisibilityAll, VisibilityUnits, VisibilityAdmin], Field(discriminator="kind")]


# --- Users & associations ---------------------------------------------------


class CurrentUserRead(ORMModel):
    id: int
    email: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None
    is_platform_admin: bool = False


class AssociationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    website: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Association name is required")
        return value


class AssociationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    website: Optional[str] = None
    allow_self_registration: Optional[bool] = None
    require_admin_approval: Optional[bool] = None


class AssociationRead(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    website: Optional[str] = None
    subscription_tier: str
    subscription_status: SubscriptionStatus
    trial_ends_at: Optional[datetime] = None
    allow_self_registration: bool
    require_admin_approval: bool
    max_members: Optional[int] = None
    max_units: Optional[int] = None
    is_active: bool
    suspended_at: Optional[datetime] = None
    suspension_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AssociationWithRole(BaseModel):
    association: AssociationRead
    role: MembershipRole
    membership_id: int


class MembershipRead(ORMModel):
    id: int
    association_id: int
    user_id: int
    role: MembershipRole
    status: MembershipStatus
    invited_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    created_at: datetime
    user_email: Optional[str] = None
    user_name: Optional[str] = None


class SelectAssociationRequest(BaseModel):
    association_id: int


# --- Members & units --------------------------------------------------------


class MemberInvite(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER
    unit_ids: List[int] = Field(default_factory=list)

    @field_validator("unit_ids")
    @classmethod
    def _dedupe_unit_ids(cls, value: List[int]) -> List[int]:
        return list(dict.fromkeys(value))


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class MemberStatusUpdate(BaseModel):
    status: Literal["active", "inactive"]
    reason: Optional[str] = None


class MemberRead(ORMModel):
    id: int
    association_id: int
    user_id: Optional[int] = None
    email: str
    name: str
    phone: Optional[str] = None
    role: MemberRole
    status: MemberStatus
    invited_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    deactivation_reason: Optional[str] = None
    unit_names: List[str] = Field(default_factory=list)


class UnitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    building: Optional[str] = None
    floor: Optional[int] = None
    unit_type: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    status: UnitStatus = UnitStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Unit name is required")
        return value


class UnitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    building: Optional[str] = None
    floor: Optional[int] = None
    unit_type: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    status: Optional[UnitStatus] = None


class UnitRead(ORMModel):
    id: int
    association_id: int
    name: str
    building: Optional[str] = None
    floor: Optional[int] = None
    unit_type: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    status: UnitStatus
    created_at: datetime
    assigned_member_id: Optional[int] = None
    assigned_member_name: Optional[str] = None


class UnitAssignmentRequest(BaseModel):
    unit_id: int


class MemberUnitRead(ORMModel):
    id: int
    member_id: int
    unit_id: int
    unit_name: str
    building: Optional[str] = None
    assigned_at: datetime


class UnitStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    assigned: int
    unassigned: int
    by_building: Dict[str, int]


# --- Documents --------------------------------------------------------------


class UploadTargetRequest(BaseModel):
    file_name: str = Field(min_length=1)
    content_type: Optional[str] = None


class UploadTargetRead(BaseModel):
    file_reference: str
    upload_url: str
    method: str = "PUT"
    headers: Dict[str, str] = Field(default_factory=dict)
    expires_in: int


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = Field(min_length=1)
    file_reference: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int = Field(default=0, ge=0)
    content_type: Optional[str] = None
    is_public: bool = False
    visibility: Visibility = Field(default_factory=VisibilityAll)
    meeting_id: Optional[int] = None


class DocumentRead(BaseModel):
    id: int
    association_id: int
    title: str
    description: Optional[str] = None
    category: str
    file_name: str
    file_size: int
    content_type: Optional[str] = None
    is_public: bool
    visibility: Visibility
    meeting_id: Optional[int] = None
    uploaded_by_member_id: Optional[int] = None
    uploaded_at: datetime
    url: Optional[str] = None


class DocumentUrlRead(BaseModel):
    url: str


# --- Voting -----------------------------------------------------------------


def _clean_options(options: List[str]) -> List[str]:
    cleaned: List[str] = []
    for option in options:
        text = option.strip()
        if not text:
            raise ValueError("Options must be non-empty")
        if text in cleaned:
            raise ValueError(f"Duplicate option: {text}")
        cleaned.append(text)
    if len(cleaned) < 2:
        raise ValueError("At least two options are required")
    return cleaned


class TopicCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    options: List[str]
    start_date: datetime
    end_date: datetime
    allow_multiple_votes: bool = False
    visibility: Visibility = Field(default_factory=VisibilityAll)
    meeting_id: Optional[int] = None

    @field_validator("options")
    @classmethod
    def _validate_options(cls, value: List[str]) -> List[str]:
        return _clean_options(value)


class TopicUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    options: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    allow_multiple_votes: Optional[bool] = None
    visibility: Optional[Visibility] = None
    meeting_id: Optional[int] = None

    @field_validator("options")
    @classmethod
    def _validate_options(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return _clean_options(value)


class TopicRead(BaseModel):
    id: int
    association_id: int
    title: str
    description: str
    options: List[str]
    start_date: datetime
    end_date: datetime
    status: TopicStatus
    allow_multiple_votes: bool
    visibility: Visibility
    meeting_id: Optional[int] = None
    created_by_user_id: Optional[int] = None
    created_at: datetime
    total_votes: int = 0
    vote_counts: Dict[str, int] = Field(default_factory=dict)


class VoteCast(BaseModel):
    selected_options: List[str]


class VoteRead(ORMModel):
    id: int
    topic_id: int
    member_id: int
    selected_options: List[str]
    voted_at: datetime


class TallyRead(BaseModel):
    topic_id: int
    vote_counts: Dict[str, int]
    total_votes: int


# --- Meetings ---------------------------------------------------------------


class AgendaItem(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: AgendaItemType = AgendaItemType.DISCUSSION
    estimated_duration: Optional[int] = Field(default=None, gt=0)
    voting_topic_id: Optional[int] = None
    document_ids: List[int] = Field(default_factory=list)


class MeetingCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    meeting_type: MeetingType = MeetingType.GENERAL
    scheduled_date: datetime
    location: str = ""
    agenda: List[AgendaItem] = Field(default_factory=list)
    invite_all_members: bool = True
    invited_units: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invite_scope(self) -> "MeetingCreate":
        if not self.invite_all_members and not self.invited_units:
            raise ValueError("Select at least one unit or invite all members")
        return self


class MeetingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    meeting_type: Optional[MeetingType] = None
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    agenda: Optional[List[AgendaItem]] = None
    invite_all_members: Optional[bool] = None
    invited_units: Optional[List[str]] = None


class MeetingRead(ORMModel):
    id: int
    association_id: int
    title: str
    description: str
    meeting_type: MeetingType
    scheduled_date: datetime
    location: str
    status: MeetingStatus
    agenda: List[AgendaItem]
    invite_all_members: bool
    invited_units: List[str]
    notifications_sent: bool
    reminders_sent: bool
    scheduled_at: Optional[datetime] = None
    scheduled_by_user_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    attendance_count: Optional[int] = None
    minutes_document_id: Optional[int] = None
    notes: Optional[str] = None
    created_by_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class MeetingComplete(BaseModel):
    attendance_count: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    minutes_document_id: Optional[int] = None


class MeetingCancel(BaseModel):
    reason: Optional[str] = None


class RSVPRequest(BaseModel):
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceRead(BaseModel):
    id: int
    meeting_id: int
    member_id: int
    member_name: Optional[str] = None
    member_email: Optional[str] = None
    status: AttendanceStatus
    notes: Optional[str] = None
    responded_at: datetime


class AttendanceStats(BaseModel):
    total: int
    attending: int
    not_attending: int
    maybe: int
    no_response: int


# --- Audit ------------------------------------------------------------------


class AuditLogRead(ORMModel):
    id: int
    association_id: Optional[int] = None
    user_id: Optional[int] = None
    member_id: Optional[int] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    description: str
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="details")
    timestamp: datetime


class AuditStats(BaseModel):
    total_logs: int
    action_counts: Dict[str, int]
    entity_counts: Dict[str, int]


class ClientAuditEvent(BaseModel):
    action: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)
    entity_id: Optional[str] = None
    description: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None


# --- Platform administration -----------------------------------------------


class PlatformAdminRead(ORMModel):
    id: int
    user_id: int
    role: PlatformAdminRole
    permissions: List[str]
    is_active: bool
    created_at: datetime
    user_email: Optional[str] = None
    user_name: Optional[str] = None


class PlatformAssociationRead(BaseModel):
    association: AssociationRead
    member_count: int
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None


class PlatformAdminCreate(BaseModel):
    email: EmailStr
    role: PlatformAdminRole = PlatformAdminRole.SUPPORT
    permissions: Optional[List[str]] = None


class PlatformAssociationCreate(AssociationCreate):
    owner_email: EmailStr
    subscription_tier: str = "free"


class SuspendRequest(BaseModel):
    reason: str = Field(min_length=1)


class SubscriptionUpdate(BaseModel):
    tier: str = Field(min_length=1)
    status: SubscriptionStatus


class PlatformStats(BaseModel):
    total_associations: int
    active_associations: int
    trial_associations: int
    suspended_associations: int
    total_users: int
    active_users: int
    tier_counts: Dict[str, int]


class AssociationAdminAdd(BaseModel):
    user_email: EmailStr
    role: Literal["admin", "member"] = "admin"


class MembershipRoleUpdate(BaseModel):
    role: Literal["admin", "member"]


# --- Billing ----------------------------------------------------------------


class SubscriptionTierRead(ORMModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    max_members: Optional[int] = None
    max_units: Optional[int] = None
    price: Optional[int] = None
    yearly_price: Optional[int] = None
    currency: str
    billing_interval: BillingInterval
    features: List[str]
    sort_order: int


class CheckoutRequest(BaseModel):
    tier: Literal["pro", "enterprise"] = "pro"
    interval: BillingInterval = BillingInterval.MONTHLY


class SessionUrlRead(BaseModel):
    url: str
    session_id: Optional[str] = None


# --- Leads ------------------------------------------------------------------


class LeadCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    company_name: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)
    message: str = Field(min_length=1)


class LeadRead(ORMModel):
    id: int
    name: str
    email: str
    company_name: str
    phone_number: str
    message: str
    status: LeadStatus
    notes: Optional[str] = None
    assigned_to_admin_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class LeadStatusUpdate(BaseModel):
    status: LeadStatus
    notes: Optional[str] = None


class LeadAssign(BaseModel):
    admin_id: int


class LeadStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    unassigned: int
