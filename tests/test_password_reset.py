"""Tests for the password-reset state machine at the service level."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from conftest import RecordingNotifier, create_admin, create_cashier, reload_user
from sqlalchemy.exc import OperationalError

from retailpos.core.config import settings
from retailpos.core.exceptions import (
    ConflictFailure,
    InfrastructureFailure,
    NotFoundFailure,
    TokenFailure,
    ValidationFailure,
)
from retailpos.core.security import verify_password
from retailpos.services.password_reset import (
    PasswordResetService,
    ResetPasswordForm,
    ResetState,
    reset_state,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _service(repo, notifier=None, clock=lambda: NOW, **kwargs) -> PasswordResetService:
    return PasswordResetService(repo, notifier or RecordingNotifier(), clock=clock, **kwargs)


def _form(email, otp="000000", new="new-password-1", confirm=None, initial=False):
    return ResetPasswordForm(
        email=email,
        otp=otp,
        new_password=new,
        confirm_password=new if confirm is None else confirm,
        is_initial_setup=initial,
    )


# ── Transitions ─────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_request_is_idempotent(db_session, repo):
    cashier = await create_cashier(db_session)
    service = _service(repo)
    assert reset_state(cashier, NOW) is ResetState.NONE

    assert await service.request_reset(cashier) is ResetState.REQUESTED
    assert await service.request_reset(cashier) is ResetState.REQUESTED
    stored = await reload_user(db_session, cashier.login_email)
    assert stored.reset_requested is True
    assert stored.reset_token is None


@pytest.mark.asyncio
async def test_issue_clears_request_and_sets_both_fields(db_session, repo):
    cashier = await create_cashier(db_session)
    notifier = RecordingNotifier()
    service = _service(repo, notifier)
    await service.request_reset(cashier)

    issued = await service.issue_token(cashier, address=cashier.personal_email, window_minutes=60)

    stored = await reload_user(db_session, cashier.login_email)
    assert stored.reset_requested is False
    assert len(stored.reset_token) == 6 and stored.reset_token.isdigit()
    assert issued.expires_at == NOW + timedelta(minutes=60)
    assert issued.delivered is True
    assert reset_state(stored, NOW) is ResetState.TOKEN_ISSUED
    assert reset_state(stored, NOW + timedelta(minutes=61)) is ResetState.EXPIRED

    address, _subject, body = notifier.sent[0]
    assert address == "cashier.home@mail.com"
    assert stored.reset_token in body


@pytest.mark.asyncio
async def test_delivery_failure_keeps_token(db_session, repo):
    cashier = await create_cashier(db_session)
    notifier = RecordingNotifier()
    notifier.fail = True
    issued = await _service(repo, notifier).issue_token(
        cashier, address=cashier.personal_email, window_minutes=30
    )
    assert issued.delivered is False
    stored = await reload_user(db_session, cashier.login_email)
    assert stored.reset_token is not None


@pytest.mark.asyncio
async def test_reset_completes_and_returns_to_none(db_session, repo):
    cashier = await create_cashier(db_session)
    clock_now = datetime.now(timezone.utc)
    service = _service(repo, clock=lambda: clock_now)
    await service.issue_token(cashier, address=None, window_minutes=30)
    otp = cashier.reset_token

    user = await service.complete_reset(_form(cashier.login_email, otp, "  fresh-pass-99  "))

    assert reset_state(user, clock_now) is ResetState.NONE
    assert verify_password("fresh-pass-99", user.hashed_password)
    with pytest.raises(TokenFailure):
        await service.complete_reset(_form(cashier.login_email, otp, "another-pass-1"))


@pytest.mark.asyncio
async def test_expired_attempt_returns_to_none(db_session, repo):
    cashier = await create_cashier(db_session)
    issued_at = datetime.now(timezone.utc)
    await _service(repo, clock=lambda: issued_at).issue_token(
        cashier, address=None, window_minutes=30
    )
    otp = cashier.reset_token

    late = _service(repo, clock=lambda: issued_at + timedelta(minutes=31))
    with pytest.raises(TokenFailure):
        await late.complete_reset(_form(cashier.login_email, otp))

    stored = await reload_user(db_session, cashier.login_email)
    assert reset_state(stored) is ResetState.NONE


# ── Validation order ────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_mismatched_confirmation_rejected_before_otp_check(db_session, repo):
    cashier = await create_cashier(db_session)
    spy = AsyncMock()
    service = _service(repo, otp_checker=spy)

    with pytest.raises(ValidationFailure) as excinfo:
        await service.complete_reset(_form(cashier.login_email, new="abcdefgh", confirm="abcdefgx"))
    assert excinfo.value.field == "confirm_password"
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_short_password_rejected_before_otp_check(db_session, repo):
    cashier = await create_cashier(db_session)
    spy = AsyncMock()
    service = _service(repo, otp_checker=spy)

    with pytest.raises(ValidationFailure) as excinfo:
        await service.complete_reset(_form(cashier.login_email, new="short"))
    assert excinfo.value.field == "new_password"
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_confirmation_compared_after_trimming(db_session, repo):
    cashier = await create_cashier(db_session)
    spy = AsyncMock(return_value=type("Check", (), {"valid": True, "user": cashier})())
    service = _service(repo, otp_checker=spy)
    await service.complete_reset(_form(cashier.login_email, new="abcdefgh ", confirm=" abcdefgh"))
    spy.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_field_rejected_first(db_session, repo):
    spy = AsyncMock()
    service = _service(repo, otp_checker=spy)
    with pytest.raises(ValidationFailure) as excinfo:
        await service.complete_reset(_form("a@b.com", otp="  ", new="x", confirm="y"))
    assert excinfo.value.field == "otp"
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_length_policy_is_configurable(db_session, repo):
    cashier = await create_cashier(db_session)
    spy = AsyncMock()
    service = _service(repo, otp_checker=spy)
    with patch.object(settings, "PASSWORD_MIN_LENGTH", 12):
        with pytest.raises(ValidationFailure):
            await service.complete_reset(_form(cashier.login_email, new="elevenchars"))
    spy.assert_not_called()


# ── Signup / bootstrap / admin-initiated ────────────────────────────
@pytest.mark.asyncio
async def test_second_admin_signup_conflicts(db_session, repo):
    service = _service(repo)
    await service.start_admin_signup("A", "a@x.com")
    with pytest.raises(ConflictFailure):
        await service.start_admin_signup("B", "b@x.com")


@pytest.mark.asyncio
async def test_initial_setup_rejected_for_cashier(db_session, repo):
    cashier = await create_cashier(db_session)
    spy = AsyncMock()
    with pytest.raises(ConflictFailure):
        await _service(repo, otp_checker=spy).complete_reset(
            _form(cashier.login_email, initial=True)
        )
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_initial_setup_rejected_when_already_complete(db_session, repo):
    admin = await create_admin(db_session, setup_complete=True)
    with pytest.raises(ConflictFailure):
        await _service(repo).complete_reset(_form(admin.login_email, initial=True))


@pytest.mark.asyncio
async def test_bootstrap_creates_placeholder_admin(db_session, repo):
    notifier = RecordingNotifier()
    with patch.object(settings, "ADMIN_INITIAL_EMAIL", "boss@shop.com"):
        outcome = await _service(repo, notifier).forgot_password("boss@shop.com")
    assert outcome.initial_setup is True

    admin = await reload_user(db_session, "boss@shop.com")
    assert admin.role == "admin"
    assert admin.setup_complete is False
    assert admin.hashed_password is None
    assert admin.reset_token is not None
    assert notifier.sent[0][0] == "boss@shop.com"


@pytest.mark.asyncio
async def test_bootstrap_ignored_once_admin_exists(db_session, repo):
    await create_admin(db_session, email="owner@shop.com")
    notifier = RecordingNotifier()
    with patch.object(settings, "ADMIN_INITIAL_EMAIL", "boss@shop.com"):
        outcome = await _service(repo, notifier).forgot_password("boss@shop.com")
    assert outcome.initial_setup is False
    assert notifier.sent == []
    assert await reload_user(db_session, "boss@shop.com") is None


@pytest.mark.asyncio
async def test_forgot_password_for_cashier_only_flags_request(db_session, repo):
    cashier = await create_cashier(db_session)
    notifier = RecordingNotifier()
    await _service(repo, notifier).forgot_password(cashier.login_email)
    stored = await reload_user(db_session, cashier.login_email)
    assert stored.reset_requested is True
    assert stored.reset_token is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_forgot_password_for_admin_uses_self_service_window(db_session, repo):
    admin = await create_admin(db_session)
    notifier = RecordingNotifier()
    await _service(repo, notifier).forgot_password(admin.login_email)
    stored = await reload_user(db_session, admin.login_email)
    expiry = stored.reset_token_expiry.replace(tzinfo=timezone.utc)
    assert expiry == NOW + timedelta(minutes=settings.SELF_SERVICE_OTP_EXPIRE_MINUTES)
    assert notifier.sent[0][0] == admin.login_email


@pytest.mark.asyncio
async def test_admin_initiated_reset_window_and_address(db_session, repo):
    cashier = await create_cashier(db_session)
    notifier = RecordingNotifier()
    with patch.object(settings, "ADMIN_INITIATED_OTP_EXPIRE_MINUTES", 15):
        issued = await _service(repo, notifier).initiate_cashier_reset(cashier.id)
    assert issued.expires_at == NOW + timedelta(minutes=15)
    assert notifier.sent[0][0] == cashier.personal_email


@pytest.mark.asyncio
async def test_admin_initiated_reset_bad_ids(db_session, repo):
    admin = await create_admin(db_session)
    service = _service(repo)
    with pytest.raises(ValidationFailure):
        await service.initiate_cashier_reset("not-a-uuid")
    with pytest.raises(NotFoundFailure):
        await service.initiate_cashier_reset(admin.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("too_long", ["b" * 73, "é" * 37])
async def test_password_over_bcrypt_limit_rejected_before_otp_check(db_session, repo, too_long):
    cashier = await create_cashier(db_session)
    spy = AsyncMock()
    service = _service(repo, otp_checker=spy)

    with pytest.raises(ValidationFailure) as excinfo:
        await service.complete_reset(_form(cashier.login_email, new=too_long))
    assert excinfo.value.field == "new_password"
    assert "72 bytes" in excinfo.value.detail
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_password_at_bcrypt_limit_accepted(db_session, repo):
    cashier = await create_cashier(db_session)
    service = _service(repo, clock=lambda: datetime.now(timezone.utc))
    await service.issue_token(cashier, address=None, window_minutes=30)

    user = await service.complete_reset(_form(cashier.login_email, cashier.reset_token, "c" * 72))
    assert verify_password("c" * 72, user.hashed_password)


# ── Delivery and store failures ─────────────────────────────────────
class _BrokenNotifier:
    async def send(self, address: str, subject: str, body: str) -> None:
        raise KeyError("template")


@pytest.mark.asyncio
async def test_unexpected_notifier_error_propagates(db_session, repo):
    cashier = await create_cashier(db_session)
    with pytest.raises(KeyError):
        await _service(repo, _BrokenNotifier()).issue_token(
            cashier, address=cashier.personal_email, window_minutes=30
        )


@pytest.mark.asyncio
async def test_store_failure_surfaces_as_infrastructure_failure(db_session, repo):
    cashier = await create_cashier(db_session)
    broken_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
    with patch("sqlalchemy.ext.asyncio.AsyncSession.commit", broken_commit):
        with pytest.raises(InfrastructureFailure):
            await _service(repo).request_reset(cashier)


# ── Pending admin setup ─────────────────────────────────────────────
@pytest.mark.asyncio
async def test_plain_reset_finishes_pending_admin_setup(db_session, repo):
    admin = await create_admin(db_session, password=None, setup_complete=False)
    service = _service(repo, clock=lambda: datetime.now(timezone.utc))
    await service.issue_token(admin, address=None, window_minutes=30)

    user = await service.complete_reset(_form(admin.login_email, admin.reset_token, "owner-pass-1"))

    assert user.setup_complete is True
    stored = await reload_user(db_session, admin.login_email)
    assert stored.setup_complete is True
    assert verify_password("owner-pass-1", stored.hashed_password)


@pytest.mark.asyncio
async def test_cashier_reset_leaves_setup_flag_alone(db_session, repo):
    cashier = await create_cashier(db_session)
    service = _service(repo, clock=lambda: datetime.now(timezone.utc))
    await service.issue_token(cashier, address=None, window_minutes=30)

    await service.complete_reset(_form(cashier.login_email, cashier.reset_token))
    assert (await reload_user(db_session, cashier.login_email)).setup_complete is False
