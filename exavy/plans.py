"""Plan tiers, metered resources and the per-plan limits table.

This module is the only place limits are defined; enforcement points look them
up through ``get_plan_limits`` so that tiers cannot drift apart.
"""

from dataclasses import dataclass, asdict
from enum import Enum

from .errors import ValidationError

UNLIMITED = -1


class PlanTier(str, Enum):
    FREE = 'free'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    ADMIN = 'admin'


class SubscriptionStatus(str, Enum):
    ACTIVE = 'active'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'
    PENDING = 'pending'


PAID_PLANS = (PlanTier.MONTHLY, PlanTier.YEARLY)


class ResourceKind(str, Enum):
    DOCUMENTS = 'documents'
    QUIZZES = 'quizzes'
    FLASHCARDS = 'flashcards'
    SUMMARIES = 'summaries'
    MIND_MAPS = 'mind_maps'

    @property
    def counter_field(self):
        return f"{self.value}_count"

    @property
    def label(self):
        return self.value.replace('_', ' ')


@dataclass(frozen=True)
class PlanLimits:
    documents: int
    quizzes: int
    flashcards: int
    summaries: int
    mind_maps: int
    has_planning: bool = False
    has_transcription: bool = False
    has_offline: bool = False

    def limit_for(self, resource: ResourceKind) -> int:
        limits = {
            ResourceKind.DOCUMENTS: self.documents,
            ResourceKind.QUIZZES: self.quizzes,
            ResourceKind.FLASHCARDS: self.flashcards,
            ResourceKind.SUMMARIES: self.summaries,
            ResourceKind.MIND_MAPS: self.mind_maps,
        }
        return limits[ResourceKind(resource)]

    def features(self):
        return {
            'has_planning': self.has_planning,
            'has_transcription': self.has_transcription,
            'has_offline': self.has_offline,
        }

    def to_dict(self):
        return asdict(self)


FREE_LIMITS = PlanLimits(
    documents=3,
    quizzes=10,
    flashcards=20,
    summaries=3,
    mind_maps=3,
)

PREMIUM_LIMITS = PlanLimits(
    documents=UNLIMITED,
    quizzes=UNLIMITED,
    flashcards=UNLIMITED,
    summaries=UNLIMITED,
    mind_maps=UNLIMITED,
    has_planning=True,
    has_transcription=True,
    has_offline=True,
)

PLAN_LIMITS = {
    PlanTier.FREE: FREE_LIMITS,
    PlanTier.MONTHLY: PREMIUM_LIMITS,
    PlanTier.YEARLY: PREMIUM_LIMITS,
    PlanTier.ADMIN: PREMIUM_LIMITS,
}

_unmapped_tiers = set(PlanTier) - set(PLAN_LIMITS)
if _unmapped_tiers:
    raise RuntimeError(f"Plan limits missing for tiers: {sorted(t.value for t in _unmapped_tiers)}")


def get_plan_limits(plan) -> PlanLimits:
    return PLAN_LIMITS[PlanTier(plan)]


def is_premium(plan) -> bool:
    return PlanTier(plan) in (PlanTier.MONTHLY, PlanTier.YEARLY, PlanTier.ADMIN)


def parse_resource_kind(raw_value) -> ResourceKind:
    if isinstance(raw_value, ResourceKind):
        return raw_value
    value = str(raw_value or '').strip().lower().replace('-', '_')
    try:
        return ResourceKind(value)
    except ValueError:
        raise ValidationError(f"Unknown resource type: {str(raw_value or '')[:40]}") from None


def parse_paid_plan(raw_value) -> PlanTier:
    value = str(raw_value or '').strip().lower()
    if value not in {plan.value for plan in PAID_PLANS}:
        raise ValidationError('Invalid plan selected')
    return PlanTier(value)
