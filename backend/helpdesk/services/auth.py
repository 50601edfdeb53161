"""Account and authentication service: passwords, one-time codes, 2FA."""

import logging
import re
import secrets
from datetime import UTC, datetime, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import settings
from helpdesk.models.user import Role, User
from helpdesk.services import totp

logger = logging.getLogger(__name__)

# Argon2id, 64 MiB / 3 iterations / parallelism 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
NAME_MIN_LENGTH = 6
NAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 24

# Hash checked when the email is unknown so both paths cost the same
_DUMMY_HASH = ph.hash("not-a-real-password")


class AuthError(Exception):
    """Base authentication error."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid email or password."""

    pass


class EmailAlreadyExistsError(AuthError):
    pass


class UserNotFoundError(AuthError):
    pass


class InvalidCodeError(AuthError):
    """One-time code is wrong, missing or expired."""

    pass


class TwoFactorError(AuthError):
    pass


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        logger.warning("Stored password hash could not be verified")
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_name(name: str) -> str:
    name = name.strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValueError(
            f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
        )
    return name


def validate_email(email: str) -> str:
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise ValueError("Invalid email address")
    return email


def validate_password(password: str) -> str:
    """Enforce the password policy; returns the password unchanged."""
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValueError(
            f"Password must be between {PASSWORD_MIN_LENGTH} and "
            f"{PASSWORD_MAX_LENGTH} characters"
        )
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain a digit")
    if not re.search(r"[^A-Za-z0-9]", password):
        raise ValueError("Password must contain a special character")
    return password


def generate_code() -> str:
    """Six-digit numeric one-time code."""
    return f"{secrets.randbelow(1_000_000):06d}"


class AuthService:
    """Service for account and authentication operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def email_taken(self, email: str, exclude_user_id: int | None = None) -> bool:
        query = select(User.id).where(User.email == normalize_email(email))
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        result = await self.session.execute(query)
        return result.first() is not None

    def _issue_code(self, user: User) -> str:
        code = generate_code()
        user.verify_code = code
        user.verify_code_expires_at = datetime.now(UTC) + timedelta(
            minutes=settings.verification_code_ttl_minutes
        )
        return code

    def _check_code(self, user: User, code: str) -> None:
        if (
            not user.verify_code
            or user.verify_code_expires_at is None
            or not secrets.compare_digest(user.verify_code, code.strip())
        ):
            raise InvalidCodeError("Invalid verification code")
        if user.verify_code_expires_at <= datetime.now(UTC):
            raise InvalidCodeError("Verification code has expired")

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: str | None = None,
    ) -> tuple[User, str]:
        """Create an unverified customer account.

        Returns the user and the email verification code to send.
        """
        email = normalize_email(email)
        if await self.email_taken(email):
            raise EmailAlreadyExistsError("Email is already registered")

        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            role=Role.CUSTOMER.value,
            is_verified=False,
        )
        code = self._issue_code(user)
        self.session.add(user)
        await self.session.flush()

        logger.info(f"Registered user {user.id}")
        return user, code

    async def verify_email(self, email: str, code: str) -> User:
        """Mark an account verified. Verifying twice is not an error."""
        user = await self.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError("Account not found")
        if user.is_verified:
            return user

        self._check_code(user, code)
        user.is_verified = True
        user.verify_code = None
        user.verify_code_expires_at = None
        await self.session.flush()
        return user

    async def new_verification_code(self, email: str) -> tuple[User, str]:
        user = await self.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError("Account not found")
        if user.is_verified:
            raise AuthError("Account is already verified")
        code = self._issue_code(user)
        await self.session.flush()
        return user, code

    async def authenticate(self, email: str, password: str) -> User:
        """Check email and password.

        Raises InvalidCredentialsError for both unknown email and wrong
        password so accounts cannot be enumerated.
        """
        user = await self.get_user_by_email(email)

        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentialsError("Invalid email or password")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid email or password")

        return user

    async def authenticate_two_factor(self, user_id: int, code: str) -> User:
        user = await self.get_user_by_id(user_id)
        if user is None or not user.two_factor_enabled:
            raise TwoFactorError("Two-factor authentication is not enabled")
        if not totp.verify_code(user.two_factor_secret, code):
            raise TwoFactorError("Invalid authentication code")
        return user

    async def record_login(self, user: User) -> None:
        user.last_login_at = datetime.now(UTC)
        await self.session.flush()

    async def start_password_reset(self, email: str) -> tuple[User, str]:
        user = await self.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError("Account not found")
        code = self._issue_code(user)
        await self.session.flush()
        logger.info(f"Password reset requested for user {user.id}")
        return user, code

    async def check_reset_code(self, email: str, code: str) -> User:
        user = await self.get_user_by_email(email)
        if user is None:
            raise InvalidCodeError("Invalid verification code")
        self._check_code(user, code)
        return user

    async def reset_password(self, email: str, code: str, new_password: str) -> User:
        user = await self.check_reset_code(email, code)
        user.password_hash = hash_password(new_password)
        user.verify_code = None
        user.verify_code_expires_at = None
        await self.session.flush()
        logger.info(f"Password reset completed for user {user.id}")
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        await self.session.flush()
        logger.info(f"Password changed for user {user.id}")

    async def update_profile(
        self,
        user: User,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> User:
        """Update profile fields. Changing the email requires re-verification."""
        if name is not None:
            user.name = name
        if phone is not None:
            user.phone = phone
        if email is not None:
            email = normalize_email(email)
            if email != user.email:
                if await self.email_taken(email, exclude_user_id=user.id):
                    raise EmailAlreadyExistsError("Email is already registered")
                user.email = email
                user.is_verified = False
        await self.session.flush()
        return user

    async def setup_two_factor(self, user: User) -> tuple[str, str]:
        """Create (or reuse) a TOTP secret. Returns (secret, otpauth URI)."""
        if user.two_factor_enabled:
            raise TwoFactorError("Two-factor authentication is already enabled")
        if not user.two_factor_secret:
            user.two_factor_secret = totp.generate_secret()
            await self.session.flush()
        uri = totp.provisioning_uri(user.two_factor_secret, user.email, settings.app_name)
        return user.two_factor_secret, uri

    async def enable_two_factor(self, user: User, code: str) -> None:
        if not user.two_factor_secret:
            raise TwoFactorError("Two-factor setup has not been started")
        if not totp.verify_code(user.two_factor_secret, code):
            raise TwoFactorError("Invalid authentication code")
        user.two_factor_enabled = True
        await self.session.flush()
        logger.info(f"Two-factor authentication enabled for user {user.id}")

    async def disable_two_factor(self, user: User, code: str) -> None:
        if not user.two_factor_enabled:
            raise TwoFactorError("Two-factor authentication is not enabled")
        if not totp.verify_code(user.two_factor_secret, code):
            raise TwoFactorError("Invalid authentication code")
        user.two_factor_enabled = False
        user.two_factor_secret = None
        await self.session.flush()
        logger.info(f"Two-factor authentication disabled for user {user.id}")
