"""Shared constants and enums used across the application."""

from enum import StrEnum


class UserRole(StrEnum):
    """Application roles for authenticated users."""

    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


class PolicyType(StrEnum):
    """Lines of insurance a policy can cover."""

    LIFE = "life"
    HEALTH = "health"
    AUTO = "auto"
    HOME = "home"
    TRAVEL = "travel"


class PremiumFrequency(StrEnum):
    """How often a policy premium falls due."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi-annual"
    ANNUAL = "annual"


class PolicyStatus(StrEnum):
    """Lifecycle status of a policy."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PremiumStatus(StrEnum):
    """Lifecycle status of a single premium installment."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(StrEnum):
    """Ways a premium can be settled."""

    CREDIT_CARD = "credit-card"
    DEBIT_CARD = "debit-card"
    BANK_TRANSFER = "bank-transfer"
    UPI = "upi"
    CASH = "cash"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"


class ClaimType(StrEnum):
    """Kinds of claim a policyholder can file."""

    MEDICAL = "medical"
    ACCIDENT = "accident"
    DEATH = "death"
    DISABILITY = "disability"
    PROPERTY = "property"


class ClaimStatus(StrEnum):
    """Claim review workflow status."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class ClaimDocumentType(StrEnum):
    """Supporting document categories attached to a claim."""

    MEDICAL_REPORT = "medical-report"
    POLICE_REPORT = "police-report"
    RECEIPT = "receipt"
    PHOTO = "photo"
    OTHER = "other"


class Resource(StrEnum):
    """Record collections subject to role-based read scoping."""

    POLICY = "policy"
    CLAIM = "claim"
    PREMIUM = "premium"
    PAYMENT = "payment"


# ─── Business rules ───────────────────────────
LATE_FEE_RATE = 0.02
DEFAULT_CLAIM_PROCESSING_DAYS = 15

FREQUENCY_MONTHS: dict[PremiumFrequency, int] = {
    PremiumFrequency.MONTHLY: 1,
    PremiumFrequency.QUARTERLY: 3,
    PremiumFrequency.SEMI_ANNUAL: 6,
    PremiumFrequency.ANNUAL: 12,
}

# Premium states a payment may still be applied to
PAYABLE_PREMIUM_STATUSES = frozenset({PremiumStatus.PENDING, PremiumStatus.OVERDUE})

# Claim states the review operation accepts
REVIEWABLE_CLAIM_STATUSES = frozenset({ClaimStatus.SUBMITTED, ClaimStatus.UNDER_REVIEW})
