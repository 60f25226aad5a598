# Models package - database tables
from dietsaas.models.user import (
    User, Organization, UserRole, OrganizationStatus, SubscriptionPlan
)
from dietsaas.models.organization import OrganizationSettings, OrganizationBranding
from dietsaas.models.token import UserSession
from dietsaas.models.activity import SecurityLog, ConsentRecord, SecurityEvents
