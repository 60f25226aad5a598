"""
Entitlement resolver - plan features and usage quotas per organization.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.clock import utcnow
from dietsaas.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    UsageLimitExceededError,
    ValidationError,
)
from dietsaas.models.user import Organization, OrganizationStatus, SubscriptionPlan
from dietsaas.repositories.user_repo import OrganizationRepository

logger = logging.getLogger(__name__)


_FREE = ["basic_diet_plans", "patient_management"]
_STARTER = _FREE + ["ai_diet_plans", "appointments", "messaging"]
_PROFESSIONAL = _STARTER + ["video_consultation", "white_label", "custom_domain", "advanced_reports"]
_ENTERPRISE = _PROFESSIONAL + ["api_access", "priority_support", "custom_integrations"]

PLAN_FEATURES = {
    SubscriptionPlan.FREE: frozenset(_FREE),
    SubscriptionPlan.STARTER: frozenset(_STARTER),
    SubscriptionPlan.PROFESSIONAL: frozenset(_PROFESSIONAL),
    SubscriptionPlan.ENTERPRISE: frozenset(_ENTERPRISE),
}

# resource name -> (current column, max column)
USAGE_COLUMNS = {
    "users": ("current_users", "max_users"),
    "patients": ("current_patients", "max_patients"),
    "storage": ("current_storage", "max_storage"),
    "ai_queries": ("current_ai_queries", "max_ai_queries"),
}
_RESOURCE_ALIASES = {"aiQueries": "ai_queries"}


@dataclass
class UsageStatus:
    exceeded: bool
    current: int
    max: int


def has_feature(plan, feature: str) -> bool:
    """Whether `plan` includes `feature`. Unknown plans or features are simply False."""
    try:
        plan = SubscriptionPlan(plan)
    except ValueError:
        return False
    return feature in PLAN_FEATURES[plan]


def resolve_resource(resource: str) -> str:
    resource = _RESOURCE_ALIASES.get(resource, resource)
    if resource not in USAGE_COLUMNS:
        raise ValidationError(f"Unknown usage resource '{resource}'", field="resource")
    return resource


def months_between(earlier: datetime, later: datetime) -> int:
    """Whole calendar months from `earlier` to `later` (day of month ignored)."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


class EntitlementService:
    """Feature gating and usage-limit enforcement for organizations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.org_repo = OrganizationRepository(session)

    async def _get_organization(self, organization_id: uuid.UUID) -> Organization:
        organization = await self.org_repo.get_current(organization_id)
        if not organization:
            raise NotFoundError("Organization")
        return organization

    async def require_feature(self, organization_id: uuid.UUID, feature: str) -> None:
        """
        Raises:
            NotFoundError: unknown organization
            ForbiddenError: organization suspended/cancelled, or plan lacks the feature
        """
        organization = await self._get_organization(organization_id)

        if organization.status in (OrganizationStatus.SUSPENDED, OrganizationStatus.CANCELLED):
            raise ForbiddenError("Organization is suspended or cancelled")

        if not has_feature(organization.plan, feature):
            raise ForbiddenError("This feature requires a higher subscription plan")

    async def check_usage_limit(
        self,
        organization_id: uuid.UUID,
        resource: str,
        now: Optional[datetime] = None
    ) -> UsageStatus:
        """
        Current and maximum usage for a counted resource.

        The AI query counter resets once a new calendar month has started
        since the last reset.
        """
        resource = resolve_resource(resource)
        organization = await self._get_organization(organization_id)
        current_col, max_col = USAGE_COLUMNS[resource]

        if resource == "ai_queries":
            now = now or utcnow()
            if months_between(organization.ai_queries_reset_at, now) >= 1:
                await self.org_repo.reset_ai_queries(organization_id, now)
                logger.info(f"Monthly AI query counter reset for organization {organization_id}")
                return UsageStatus(exceeded=False, current=0, max=organization.max_ai_queries)

        current = getattr(organization, current_col)
        maximum = getattr(organization, max_col)
        return UsageStatus(exceeded=current >= maximum, current=current, max=maximum)

    async def check_and_increment_usage(
        self,
        organization_id: uuid.UUID,
        resource: str,
        amount: int = 1
    ) -> None:
        """
        Count `amount` units against the quota, refusing once it is reached.

        Check and increment are separate statements, so concurrent callers
        may briefly overshoot the maximum.
        """
        resource = resolve_resource(resource)
        usage = await self.check_usage_limit(organization_id, resource)
        if usage.exceeded:
            raise UsageLimitExceededError(resource, usage.current, usage.max)

        current_col, _ = USAGE_COLUMNS[resource]
        await self.org_repo.increment_counter(organization_id, current_col, amount)

    async def decrement_usage(
        self,
        organization_id: uuid.UUID,
        resource: str,
        amount: int = 1
    ) -> None:
        """Give back `amount` units. Never fails and never goes below zero."""
        resource = resolve_resource(resource)
        current_col, _ = USAGE_COLUMNS[resource]
        await self.org_repo.decrement_counter(organization_id, current_col, amount)

    async def is_trial_expired(
        self,
        organization_id: uuid.UUID,
        now: Optional[datetime] = None
    ) -> bool:
        organization = await self._get_organization(organization_id)
        return trial_expired(organization, now)

    async def get_usage(self, organization_id: uuid.UUID) -> dict:
        """Usage statistics for every counted resource."""
        # Runs the lazy monthly reset before reporting
        await self.check_usage_limit(organization_id, "ai_queries")
        organization = await self._get_organization(organization_id)

        usage = {}
        for resource, (current_col, max_col) in USAGE_COLUMNS.items():
            current = getattr(organization, current_col)
            maximum = getattr(organization, max_col)
            usage[resource] = {
                "current": current,
                "max": maximum,
                "percentage": (current / maximum) * 100 if maximum else 0,
            }
        usage["ai_queries"]["reset_at"] = organization.ai_queries_reset_at
        return usage


def trial_expired(organization: Organization, now: Optional[datetime] = None) -> bool:
    """True only for a TRIAL organization whose trial end has passed."""
    if organization.status != OrganizationStatus.TRIAL:
        return False
    if not organization.trial_ends_at:
        return False
    return (now or utcnow()) > organization.trial_ends_at
