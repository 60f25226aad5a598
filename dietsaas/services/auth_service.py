"""
Authentication service - handles all auth operations.
"""
import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.config import settings
from dietsaas.core.clock import utcnow
from dietsaas.core.client_info import ClientInfo
from dietsaas.core.exceptions import (
    AccountLockedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from dietsaas.core.security import (
    TokenClaims,
    expiry_for,
    generate_secure_token,
    hash_password,
    issue_access_token,
    issue_refresh_token,
    parse_duration,
    verify_password,
)
from dietsaas.core.validators import mask_email, mask_national_id
from dietsaas.models.activity import ConsentRecord, SecurityEvents
from dietsaas.models.user import (
    Organization,
    OrganizationStatus,
    SubscriptionPlan,
    User,
    UserRole,
)
from dietsaas.repositories.activity_repo import SecurityLogRepository
from dietsaas.repositories.user_repo import OrganizationRepository, UserRepository
from dietsaas.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from dietsaas.services.email_service import get_email_service, send_in_background
from dietsaas.services.entitlements import EntitlementService, trial_expired
from dietsaas.services.lockout import LockoutGuard
from dietsaas.services.session_service import SessionManager

logger = logging.getLogger(__name__)

KVKK_CONSENT_TEXT = "KVKK disclosure text - processing of personal data"
KVKK_CONSENT_VERSION = "1.0"

FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


def user_summary(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": UserRole(user.role).value,
        "avatar_url": user.avatar_url,
        "email_verified": user.email_verified,
    }


def user_profile(user: User) -> dict:
    """Full profile with the national ID masked."""
    return {
        **user_summary(user),
        "phone": user.phone,
        "national_id": mask_national_id(user.national_id) if user.national_id else None,
        "birth_date": user.birth_date.isoformat() if user.birth_date else None,
        "gender": user.gender,
        "address_line1": user.address_line1,
        "address_line2": user.address_line2,
        "city": user.city,
        "district": user.district,
        "postal_code": user.postal_code,
        "is_active": user.is_active,
        "email_verified_at": user.email_verified_at.isoformat() if user.email_verified_at else None,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat(),
    }


def organization_summary(organization: Organization) -> dict:
    return {
        "id": str(organization.id),
        "name": organization.name,
        "subdomain": organization.subdomain,
        "status": OrganizationStatus(organization.status).value,
    }


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.user_repo = UserRepository(session)
        self.org_repo = OrganizationRepository(session)
        self.security_log = SecurityLogRepository(session)
        self.lockout = LockoutGuard(session)
        self.sessions = SessionManager(session)
        self.entitlements = EntitlementService(session)
        self.email_service = get_email_service()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def register(self, data: RegisterRequest, client: Optional[ClientInfo] = None) -> dict:
        """
        Register a clinic: organization, owner and consent record in one
        transaction. Welcome and verification emails go out in the background.
        """
        if await self.user_repo.get_by_email(data.email):
            raise ConflictError("User", "email")
        if await self.org_repo.get_by_subdomain(data.subdomain):
            raise ConflictError("Organization", "subdomain", data.subdomain)
        if await self.user_repo.get_by_national_id(data.national_id):
            raise ConflictError("User", "national ID")

        now = utcnow()
        verification_token = generate_secure_token(32)

        organization = Organization(
            name=data.organization_name,
            subdomain=data.subdomain,
            owner_email=data.email,
            owner_name=f"{data.first_name} {data.last_name}",
            owner_phone=data.phone,
            status=OrganizationStatus.TRIAL,
            plan=SubscriptionPlan.FREE,
            trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
            current_users=1,
        )
        user = User(
            organization_id=organization.id,
            email=data.email,
            password_hash=hash_password(data.password),
            role=UserRole.ORGANIZATION_OWNER,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            national_id=data.national_id,
            birth_date=data.birth_date,
            gender=data.gender,
            address_line1=data.address_line1,
            address_line2=data.address_line2,
            city=data.city,
            district=data.district,
            postal_code=data.postal_code,
            registration_ip=client.ip if client else None,
            registration_browser=client.browser if client else None,
            registration_device=client.device if client else None,
            registration_os=client.os if client else None,
            email_verification_token=verification_token,
            email_verification_expires=now + timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS),
        )
        consent = ConsentRecord(
            organization_id=organization.id,
            subject_id=user.id,
            consent_text=KVKK_CONSENT_TEXT,
            consent_version=KVKK_CONSENT_VERSION,
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )

        user, organization = await self.user_repo.create_with_organization(organization, user, consent)
        logger.info(f"Organization '{organization.subdomain}' registered by {mask_email(user.email)}")

        send_in_background(
            self.email_service.send_welcome_email(user.email, user.first_name, organization.subdomain),
            "welcome email"
        )
        send_in_background(
            self.email_service.send_verification_email(user.email, user.first_name, verification_token),
            "verification email"
        )

        response = {
            "message": "Registration successful. Please verify your email address.",
            "organization": {
                "id": str(organization.id),
                "name": organization.name,
                "subdomain": organization.subdomain,
            },
            "user": user_summary(user),
        }

        # In DEV_MODE, include the token for easy testing
        if settings.DEV_MODE:
            response["_dev_verification_token"] = verification_token

        return response

    # =========================================================================
    # LOGIN / SESSIONS
    # =========================================================================

    async def login(self, data: LoginRequest, client: Optional[ClientInfo] = None) -> dict:
        """
        Authenticate a user and open a new session.

        Raises:
            UnauthorizedError: unknown email or wrong password
            AccountLockedError: account is locked
            ForbiddenError: failure that just locked the account, inactive
                user, suspended/cancelled organization or expired trial
        """
        ip_address = client.ip if client else None
        user_agent = client.user_agent if client else None

        user = await self.user_repo.get_by_email(data.email)
        if not user:
            logger.warning(f"Login attempt for unknown email {mask_email(data.email)}")
            raise UnauthorizedError("Invalid email or password")

        try:
            self.lockout.ensure_not_locked(user)
        except AccountLockedError as e:
            await self.security_log.record(
                SecurityEvents.LOGIN_LOCKED,
                severity="high",
                user_id=user.id,
                email=user.email,
                details={"minutes_left": e.minutes_left},
                ip_address=ip_address,
                user_agent=user_agent,
                blocked=True,
            )
            raise

        if not verify_password(data.password, user.password_hash):
            result = await self.lockout.register_failure(user)
            await self.security_log.record(
                SecurityEvents.LOGIN_FAILED,
                severity="high" if result.locked else "medium",
                user_id=user.id,
                email=user.email,
                details={"attempt": result.attempts, "locked": result.locked},
                ip_address=ip_address,
                user_agent=user_agent,
                blocked=result.locked,
            )
            if result.locked:
                raise ForbiddenError(
                    "Too many failed login attempts. Your account is locked for "
                    f"{settings.LOCK_DURATION_MINUTES} minutes."
                )
            raise UnauthorizedError(
                f"Invalid email or password. {result.remaining_attempts} attempts remaining."
            )

        if not user.is_active:
            raise ForbiddenError("Your account is suspended. Please contact your administrator.")

        organization = await self.org_repo.get(user.organization_id)
        if not organization:
            raise NotFoundError("Organization")
        if organization.status == OrganizationStatus.SUSPENDED:
            raise ForbiddenError("Your organization is suspended. Please check your billing.")
        if organization.status == OrganizationStatus.CANCELLED:
            raise ForbiddenError("Your organization has been cancelled.")
        if trial_expired(organization):
            raise ForbiddenError("Your trial has expired. Please choose a subscription plan.")

        await self.lockout.register_success(user)

        access_token = issue_access_token(TokenClaims(
            subject_id=str(user.id),
            email=user.email,
            role=UserRole(user.role).value,
            organization_id=str(user.organization_id),
        ))
        refresh_token = issue_refresh_token()
        await self.sessions.create_session(
            user.id,
            refresh_token,
            access_token,
            client,
            expiry_for(settings.REFRESH_TOKEN_EXPIRES_IN),
        )

        await self.user_repo.record_login(
            user,
            ip_address=ip_address,
            browser=client.browser if client else None,
            device=client.device if client else None,
            os=client.os if client else None,
        )
        await self.security_log.record(
            SecurityEvents.LOGIN_SUCCESS,
            user_id=user.id,
            email=user.email,
            details={
                "browser": client.browser if client else None,
                "device": client.device if client else None,
                "os": client.os if client else None,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"User {mask_email(user.email)} logged in")

        cookie_age = settings.REMEMBER_ME_COOKIE_MAX_AGE if data.remember_me else settings.COOKIE_MAX_AGE
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "cookie_max_age": int(parse_duration(cookie_age).total_seconds()),
            "user": user_summary(user),
            "organization": organization_summary(organization),
        }

    async def refresh(self, refresh_token: Optional[str]) -> str:
        """Get new access token using refresh token."""
        if not refresh_token:
            raise UnauthorizedError("Refresh token is required")
        return await self.sessions.refresh(refresh_token)

    async def logout(self, user_id: uuid.UUID, refresh_token: Optional[str]) -> int:
        """Invalidate the user's session behind `refresh_token`, if there is one."""
        if not refresh_token:
            return 0
        return await self.sessions.invalidate(user_id, refresh_token)

    async def logout_all(self, user_id: uuid.UUID, client: Optional[ClientInfo] = None) -> int:
        """Logout from all devices."""
        count = await self.sessions.invalidate_all(user_id)
        user = await self.user_repo.get(user_id)
        await self.security_log.record(
            SecurityEvents.LOGOUT_ALL,
            severity="medium",
            user_id=user_id,
            email=user.email if user else None,
            details={"sessions_invalidated": count},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return count

    # =========================================================================
    # PASSWORDS
    # =========================================================================

    async def forgot_password(self, email: str, client: Optional[ClientInfo] = None) -> dict:
        """Initiate password reset flow. The answer never reveals whether the email exists."""
        response = {"message": FORGOT_PASSWORD_MESSAGE}

        user = await self.user_repo.get_by_email(email)
        if not user or not user.is_active:
            return response

        token = generate_secure_token(32)
        await self.user_repo.set_reset_token(
            user, token, utcnow() + timedelta(hours=settings.PASSWORD_RESET_TOKEN_EXPIRE_HOURS)
        )
        send_in_background(
            self.email_service.send_password_reset_email(user.email, user.first_name, token),
            "password reset email"
        )
        await self.security_log.record(
            SecurityEvents.PASSWORD_RESET_REQUESTED,
            severity="medium",
            user_id=user.id,
            email=user.email,
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return response

    async def verify_reset_token(self, token: Optional[str]) -> dict:
        if not token:
            raise ValidationError("Token is required", field="token")
        user = await self.user_repo.get_by_valid_reset_token(token)
        if not user:
            raise ValidationError("Invalid or expired reset token")
        return {"valid": True, "email": user.email}

    async def reset_password(
        self,
        token: str,
        new_password: str,
        client: Optional[ClientInfo] = None
    ) -> int:
        """Reset password using token and sign the user out everywhere."""
        user = await self.user_repo.get_by_valid_reset_token(token)
        if not user:
            raise ValidationError("Invalid or expired reset token")

        await self.user_repo.set_password(user, hash_password(new_password))
        count = await self.sessions.invalidate_all(user.id)

        await self.security_log.record(
            SecurityEvents.PASSWORD_RESET_COMPLETED,
            severity="medium",
            user_id=user.id,
            email=user.email,
            details={"sessions_invalidated": count},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return count

    async def change_password(
        self,
        user_id: uuid.UUID,
        data: ChangePasswordRequest,
        current_refresh_token: Optional[str] = None,
        client: Optional[ClientInfo] = None
    ) -> int:
        """
        Change password for logged-in user. Every other session is
        invalidated; the one making the request stays signed in.
        """
        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User")

        if not verify_password(data.current_password, user.password_hash):
            await self.security_log.record(
                SecurityEvents.PASSWORD_CHANGE_FAILED,
                severity="medium",
                user_id=user.id,
                email=user.email,
                details={"reason": "invalid_current_password"},
                ip_address=client.ip if client else None,
                user_agent=client.user_agent if client else None,
            )
            raise UnauthorizedError("Current password is incorrect")

        if data.current_password == data.new_password:
            raise ValidationError(
                "New password must be different from the current password", field="new_password"
            )

        await self.user_repo.set_password(user, hash_password(data.new_password))
        count = await self.sessions.invalidate_all(user.id, except_refresh_token=current_refresh_token)

        await self.security_log.record(
            SecurityEvents.PASSWORD_CHANGED,
            severity="medium",
            user_id=user.id,
            email=user.email,
            details={"other_sessions_invalidated": count},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return count

    # =========================================================================
    # EMAIL VERIFICATION
    # =========================================================================

    async def verify_email(self, token: Optional[str]) -> None:
        """Verify email using token."""
        if not token:
            raise ValidationError("Token is required", field="token")
        user = await self.user_repo.get_by_valid_verification_token(token)
        if not user:
            raise ValidationError("Invalid or expired verification token")
        await self.user_repo.mark_email_verified(user)
        logger.info(f"Email verified for {mask_email(user.email)}")

    async def send_verification(self, user_id: uuid.UUID) -> dict:
        """Issue a fresh verification token and email it."""
        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User")
        if user.email_verified:
            raise ValidationError("Email address is already verified")

        token = generate_secure_token(32)
        await self.user_repo.set_verification_token(
            user, token, utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS)
        )
        send_in_background(
            self.email_service.send_verification_email(user.email, user.first_name, token),
            "verification email"
        )

        response = {"message": "Verification email sent"}
        if settings.DEV_MODE:
            response["_dev_verification_token"] = token
        return response

    # =========================================================================
    # PROFILE
    # =========================================================================

    async def get_me(self, user_id: uuid.UUID) -> dict:
        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User")

        organization = await self.org_repo.get(user.organization_id)
        return {
            "user": user_profile(user),
            "organization": {
                **organization_summary(organization),
                "plan": SubscriptionPlan(organization.plan).value,
                "custom_domain": organization.custom_domain,
                "domain_verified": organization.domain_verified,
                "trial_ends_at": organization.trial_ends_at.isoformat() if organization.trial_ends_at else None,
            },
            "usage": await self.entitlements.get_usage(organization.id),
            "active_sessions": await self.sessions.count_active(user.id),
        }

    async def update_profile(self, user_id: uuid.UUID, changes: UpdateProfileRequest) -> dict:
        """Apply only the fields present in the request."""
        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User")
        user = await self.user_repo.apply_changes(user, changes)
        return user_profile(user)
