from enum import Enum


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INVITED = "invited"
    INACTIVE = "inactive"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INVITED = "invited"
    INACTIVE = "inactive"


class UnitStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    VACANT = "vacant"


class VisibilityKind(str, Enum):
    ALL = "all"
    UNITS = "units"
    ADMIN = "admin"


class TopicStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class MeetingType(str, Enum):
    AGM = "agm"
    EGM = "egm"
    BOARD = "board"
    GENERAL = "general"


class MeetingStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class AgendaItemType(str, Enum):
    DISCUSSION = "discussion"
    VOTING = "voting"
    PRESENTATION = "presentation"
    OTHER = "other"


class AttendanceStatus(str, Enum):
    ATTENDING = "attending"
    NOT_ATTENDING = "not_attending"
    MAYBE = "maybe"


class PlatformAdminRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    SUPPORT = "support"
    BILLING = "billing"


class SubscriptionTierName(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TRIAL = "trial"
    SUSPENDED = "suspended"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    LOST = "lost"


ADMIN_MEMBERSHIP_ROLES = frozenset({MembershipRole.OWNER, MembershipRole.ADMIN})

PLATFORM_ADMIN_PERMISSIONS = [
    "manage_associations",
    "manage_subscriptions",
    "manage_admins",
    "view_analytics",
    "suspend_associations",
    "billing_access",
]

DEFAULT_ASSOCIATION_SETTINGS = {
    "allow_self_registration": False,
    "require_admin_approval": True,
    "max_members": 50,
    "max_units": 25,
}

# Used when a tier row is missing from the catalog.
FALLBACK_TIER_LIMITS = {
    "free": {"max_members": 10, "max_units": 25},
    "pro": {"max_members": 50, "max_units": 100},
}

DEFAULT_SUBSCRIPTION_TIERS = [
    {
        "name": "free",
        "display_name": "Free",
        "description": "Perfect for testing and small associations",
        "max_members": 10,
        "max_units": 25,
        "price": 0,
        "yearly_price": 0,
        "currency": "gbp",
        "billing_interval": "monthly",
        "features": [
            "Meeting management",
            "Voting topics",
            "Document storage",
            "Member management",
        ],
        "sort_order": 1,
    },
    {
        "name": "pro",
        "display_name": "Pro",
        "description": "For associations of any size",
        "max_members": 50,
        "max_units": 100,
        "price": 2900,
        "yearly_price": 29000,
        "currency": "gbp",
        "billing_interval": "monthly",
        "features": [
            "All Free features",
            "Advanced meeting features",
            "Enhanced voting systems",
            "Priority support",
        ],
        "sort_order": 2,
    },
    {
        "name": "enterprise",
        "display_name": "Enterprise",
        "description": "For management companies managing multiple sites",
        "max_members": None,
        "max_units": None,
        "price": None,
        "yearly_price": None,
        "currency": "gbp",
        "billing_interval": "monthly",
        "features": [
            "Multi-site management",
            "All Pro features",
            "Custom integrations",
            "Dedicated account manager",
            "White-label options",
        ],
        "sort_order": 3,
    },
]

STRIPE_PRICE_LOOKUP_KEYS = {
    ("pro", "monthly"): "pro_monthly",
    ("pro", "yearly"): "pro_yearly",
    ("enterprise", "monthly"): "enterprise_monthly",
    ("enterprise", "yearly"): "enterprise_yearly",
}

STRIPE_SUBSCRIPTION_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIAL,
    "paused": SubscriptionStatus.SUSPENDED,
    "canceled": SubscriptionStatus.INACTIVE,
    "past_due": SubscriptionStatus.INACTIVE,
    "unpaid": SubscriptionStatus.INACTIVE,
}

AUDIT_LOG_DEFAULT_LIMIT = 100
AUDIT_LOG_MAX_LIMIT = 500
MY_ACTIVITY_DEFAULT_LIMIT = 50
