"""Tests for AuthService."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from cleanmatch.core import settings
from cleanmatch.models.user import UserRole
from cleanmatch.schemas.auth import RegisterRequest
from cleanmatch.services.auth import AuthService, validate_password_strength
from cleanmatch.services.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from cleanmatch.services.security import (
    TokenKind,
    create_access_token,
    create_refresh_token,
    create_reset_token,
    issue_token,
    verify_token,
)
from cleanmatch.services.token_blacklist import DatabaseTokenBlacklist, MemoryTokenBlacklist

TEST_PASSWORD = "Passw0rd!"


def _customer_data(**overrides) -> RegisterRequest:
    data = {
        "email": "New.Customer@Example.com",
        "password": TEST_PASSWORD,
        "firstName": "New",
        "lastName": "Customer",
        "role": "customer",
        "userName": "newcustomer",
    }
    data.update(overrides)
    return RegisterRequest(**data)


def _cleaner_data(**overrides) -> RegisterRequest:
    data = {
        "email": "cleaner@example.com",
        "password": TEST_PASSWORD,
        "firstName": "Clean",
        "lastName": "Er",
        "role": "cleaner",
        "address": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zipCode": "62701",
        "cleaningServices": ["standard", "deep"],
        "cleaningFrequency": "full-time",
    }
    data.update(overrides)
    return RegisterRequest(**data)


@pytest.fixture
def service(db_session):
    return AuthService(db_session, DatabaseTokenBlacklist(db_session))


class TestPasswordStrength:
    @pytest.mark.parametrize(
        "password, fragment",
        [
            ("Sh0rt!", "at least 8"),
            ("alllower1!", "uppercase"),
            ("ALLUPPER1!", "lowercase"),
            ("NoDigits!!", "number"),
            ("NoSpecial12", "special"),
            ("Aa1!" + "x" * 80, "72 bytes"),
        ],
    )
    def test_weak_passwords(self, password, fragment):
        with pytest.raises(ValidationError, match=fragment) as exc_info:
            validate_password_strength(password)
        assert exc_info.value.field == "password"

    def test_strong_password(self):
        validate_password_strength(TEST_PASSWORD)


class TestRegistrationValidation:
    """Validation happens before any database access."""

    @pytest.fixture
    def offline_service(self):
        return AuthService(MagicMock(), MemoryTokenBlacklist())

    @pytest.mark.asyncio
    async def test_missing_fields(self, offline_service):
        with pytest.raises(ValidationError, match="Missing required fields: firstName") as exc:
            await offline_service.register(_customer_data(firstName=""))
        assert exc.value.field == "firstName"

    @pytest.mark.asyncio
    async def test_bad_email(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_customer_data(email="no-at-sign.com"))
        assert exc.value.field == "email"

    @pytest.mark.asyncio
    async def test_admin_role_rejected(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_customer_data(role="admin"))
        assert exc.value.field == "role"

    @pytest.mark.asyncio
    async def test_customer_needs_user_name(self, offline_service):
        with pytest.raises(ValidationError, match="Username is required"):
            await offline_service.register(_customer_data(userName=None))

    @pytest.mark.asyncio
    async def test_customer_user_name_length(self, offline_service):
        with pytest.raises(ValidationError, match="between 3 and 30"):
            await offline_service.register(_customer_data(userName="ab"))

    @pytest.mark.asyncio
    async def test_cleaner_needs_address(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_cleaner_data(zipCode=None))
        assert exc.value.field == "zipCode"

    @pytest.mark.asyncio
    async def test_cleaner_needs_services(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_cleaner_data(cleaningServices=[]))
        assert exc.value.field == "cleaningServices"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("services", [["x" * 101], ["standard", "   "]])
    async def test_cleaner_service_entry_length(self, offline_service, services):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_cleaner_data(cleaningServices=services))
        assert exc.value.field == "cleaningServices"

    @pytest.mark.asyncio
    async def test_cleaner_frequency(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_cleaner_data(cleaningFrequency="weekends"))
        assert exc.value.field == "cleaningFrequency"

    @pytest.mark.asyncio
    async def test_preferred_hours_required(self, offline_service):
        with pytest.raises(ValidationError) as exc:
            await offline_service.register(_cleaner_data(cleaningFrequency="preferred-hours"))
        assert exc.value.field == "preferredHours"


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_customer(self, service):
        result = await service.register(_customer_data())

        assert result.user.email == "new.customer@example.com"
        assert result.user.role == "customer"
        assert result.user.password_hash != TEST_PASSWORD
        assert result.user.cleaner_profile is None
        claims = verify_token(result.access_token, settings.effective_jwt_secret, TokenKind.ACCESS)
        assert claims.user_id == result.user.id
        assert result.refresh_token is not None

    @pytest.mark.asyncio
    async def test_register_cleaner_creates_profile(self, service):
        result = await service.register(_cleaner_data())

        profile = result.user.cleaner_profile
        assert profile is not None
        assert profile.cleaning_services == ["standard", "deep"]
        assert profile.cleaning_frequency == "full-time"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, service, customer):
        with pytest.raises(ConflictError) as exc:
            await service.register(_customer_data(email="CUSTOMER@example.com"))
        assert exc.value.field == "email"

    @pytest.mark.asyncio
    async def test_duplicate_user_name(self, service, customer):
        with pytest.raises(ConflictError) as exc:
            await service.register(_customer_data(userName=customer.user_name))
        assert exc.value.field == "userName"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, service, customer):
        result = await service.login("Customer@Example.com", TEST_PASSWORD)
        assert result.user.id == customer.id
        assert customer.last_login_at is not None
        assert result.refresh_token is not None

    @pytest.mark.asyncio
    async def test_uniform_failures(self, service, user_factory):
        await user_factory(email="inactive@example.com", is_active=False)
        await user_factory(email="active@example.com")

        messages = []
        for email, password in [
            ("nobody@example.com", TEST_PASSWORD),
            ("active@example.com", "Wr0ng!pass"),
            ("inactive@example.com", TEST_PASSWORD),
        ]:
            with pytest.raises(AuthenticationError) as exc:
                await service.login(email, password)
            messages.append(exc.value.message)

        assert set(messages) == {"Invalid email or password"}


class TestVerifyRequest:
    @pytest.mark.asyncio
    async def test_valid_token(self, service, customer):
        user = await service.verify_request(create_access_token(customer.id))
        assert user.id == customer.id

    @pytest.mark.asyncio
    async def test_refresh_token_rejected(self, service, customer):
        with pytest.raises(AuthenticationError):
            await service.verify_request(create_refresh_token(customer.id))

    @pytest.mark.asyncio
    async def test_expired_token(self, service, customer):
        token = issue_token(
            customer.id, TokenKind.ACCESS, settings.effective_jwt_secret, timedelta(seconds=-1)
        )
        with pytest.raises(AuthenticationError, match="Invalid or expired token"):
            await service.verify_request(token)

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        with pytest.raises(AuthenticationError):
            await service.verify_request(create_access_token(uuid4()))

    @pytest.mark.asyncio
    async def test_inactive_user(self, service, user_factory):
        user = await user_factory(is_active=False)
        with pytest.raises(AuthenticationError):
            await service.verify_request(create_access_token(user.id))

    @pytest.mark.asyncio
    async def test_token_before_invalidation_stamp(self, service, customer):
        token = create_access_token(customer.id)
        customer.token_invalidation_date = datetime.now(UTC) + timedelta(seconds=1)
        with pytest.raises(AuthenticationError):
            await service.verify_request(token)

    @pytest.mark.asyncio
    async def test_logout_revokes_access_token(self, service, customer):
        token = create_access_token(customer.id)
        await service.logout(token, customer)
        assert customer.last_logout_at is not None
        with pytest.raises(AuthenticationError):
            await service.verify_request(token)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_issues_access_token(self, service, customer):
        result = await service.refresh(create_refresh_token(customer.id))
        assert result.user.id == customer.id
        assert result.refresh_token is None
        await service.verify_request(result.access_token)

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, service, customer):
        with pytest.raises(AuthenticationError, match="refresh token"):
            await service.refresh(create_access_token(customer.id))

    @pytest.mark.asyncio
    async def test_refresh_after_logout_all(self, service, customer):
        refresh = create_refresh_token(customer.id)
        await service.logout_all(customer)
        with pytest.raises(AuthenticationError):
            await service.refresh(refresh)

    @pytest.mark.asyncio
    async def test_logout_with_refresh_token_revokes_it(self, service, customer):
        refresh = create_refresh_token(customer.id)
        await service.logout(create_access_token(customer.id), customer, refresh_token=refresh)
        with pytest.raises(AuthenticationError):
            await service.refresh(refresh)

    @pytest.mark.asyncio
    async def test_logout_ignores_foreign_refresh_token(self, service, customer, user_factory):
        other = await user_factory()
        other_refresh = create_refresh_token(other.id)
        await service.logout(create_access_token(customer.id), customer, refresh_token=other_refresh)
        result = await service.refresh(other_refresh)
        assert result.user.id == other.id

    @pytest.mark.asyncio
    async def test_rotation(self, service, customer, monkeypatch):
        monkeypatch.setattr(settings, "jwt_rotate_refresh_tokens", True)
        old = create_refresh_token(customer.id)

        result = await service.refresh(old)
        assert result.refresh_token is not None
        assert result.refresh_token != old

        with pytest.raises(AuthenticationError):
            await service.refresh(old)
        await service.refresh(result.refresh_token)


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, service):
        assert await service.forgot_password("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_forgot_password_issues_reset_token(self, service, customer):
        token = await service.forgot_password("customer@example.com")
        claims = verify_token(token, settings.effective_jwt_secret, TokenKind.RESET)
        assert claims.user_id == customer.id

    @pytest.mark.asyncio
    async def test_reset_changes_password_and_ends_sessions(self, service, customer):
        session_token = create_access_token(customer.id)
        reset_token = create_reset_token(customer.id)

        await service.reset_password(reset_token, "N3w!Password")

        await service.login("customer@example.com", "N3w!Password")
        with pytest.raises(AuthenticationError):
            await service.login("customer@example.com", TEST_PASSWORD)
        with pytest.raises(AuthenticationError):
            await service.verify_request(session_token)

    @pytest.mark.asyncio
    async def test_reset_token_single_use(self, service, customer):
        reset_token = create_reset_token(customer.id)
        await service.reset_password(reset_token, "N3w!Password")
        with pytest.raises(ValidationError, match="reset token"):
            await service.reset_password(reset_token, "An0ther!Pass")

    @pytest.mark.asyncio
    async def test_access_token_cannot_reset(self, service, customer):
        with pytest.raises(ValidationError) as exc:
            await service.reset_password(create_access_token(customer.id), "N3w!Password")
        assert exc.value.field == "token"

    @pytest.mark.asyncio
    async def test_weak_new_password(self, service, customer):
        with pytest.raises(ValidationError) as exc:
            await service.reset_password(create_reset_token(customer.id), "weak")
        assert exc.value.field == "newPassword"


class TestSuspension:
    @pytest.mark.asyncio
    async def test_suspend_ends_sessions_and_blocks_login(self, service, customer, admin_user):
        token = create_access_token(customer.id)

        await service.suspend_user(customer.id, actor=admin_user)

        assert customer.is_active is False
        with pytest.raises(AuthenticationError):
            await service.verify_request(token)
        with pytest.raises(AuthenticationError):
            await service.login("customer@example.com", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_reactivate_allows_login_but_not_old_tokens(self, service, customer, admin_user):
        token = create_access_token(customer.id)
        await service.suspend_user(customer.id, actor=admin_user)
        await service.reactivate_user(customer.id, actor=admin_user)

        await service.login("customer@example.com", TEST_PASSWORD)
        with pytest.raises(AuthenticationError):
            await service.verify_request(token)

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, admin_user):
        with pytest.raises(NotFoundError):
            await service.suspend_user(uuid4(), actor=admin_user)

    @pytest.mark.asyncio
    async def test_cannot_suspend_self(self, service, admin_user):
        with pytest.raises(ValidationError):
            await service.suspend_user(admin_user.id, actor=admin_user)


class TestEnsureAdmin:
    @pytest.mark.asyncio
    async def test_creates_admin(self, service):
        user, status = await service.ensure_admin("boss@example.com", TEST_PASSWORD)
        assert status == "created"
        assert user.role == UserRole.ADMIN.value

    @pytest.mark.asyncio
    async def test_promotes_existing_user(self, service, customer):
        user, status = await service.ensure_admin("customer@example.com", "ignored")
        assert status == "promoted"
        assert user.id == customer.id
        assert user.role == "admin"

        _, status = await service.ensure_admin("customer@example.com", "ignored")
        assert status == "already_admin"


# Connect failures surface from asyncpg unwrapped, not as SQLAlchemy errors
STORAGE_FAILURES = [
    pytest.param(OperationalError("SELECT", {}, Exception("connection refused")), id="sqlalchemy"),
    pytest.param(ConnectionRefusedError(111, "Connect call failed"), id="connection-refused"),
]


class TestStorageErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", STORAGE_FAILURES)
    async def test_database_error_becomes_storage_error(self, error):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=error)
        session.rollback = AsyncMock()
        service = AuthService(session, MemoryTokenBlacklist())

        with pytest.raises(StorageError) as exc:
            await service.login("customer@example.com", TEST_PASSWORD)
        assert exc.value.status_code == 500
        assert "connection refused" not in exc.value.message
        assert "Connect call failed" not in exc.value.message
        session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_unreachable_database_on_verify(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=ConnectionRefusedError(111, "Connect call failed"))
        session.rollback = AsyncMock()
        service = AuthService(session, DatabaseTokenBlacklist(session, fail_open=True))

        with pytest.raises(StorageError):
            await service.verify_request(create_access_token(uuid4()))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", STORAGE_FAILURES)
    async def test_logout_never_raises(self, error):
        session = MagicMock()
        session.commit = AsyncMock(side_effect=error)
        session.rollback = AsyncMock()
        user = MagicMock(id=uuid4())
        service = AuthService(session, MemoryTokenBlacklist())

        await service.logout(create_access_token(user.id), user)
        session.rollback.assert_awaited()
