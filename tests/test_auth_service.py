from datetime import timedelta

import pytest

from inex_auth.core.exceptions import (
    AuthenticationError,
    ConflictError,
    EmailSendError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from inex_auth.core.security import TokenCodec, verify_password
from inex_auth.models.token import TokenKind
from inex_auth.repositories.token_repo import TokenLedger
from inex_auth.repositories.user_repo import UserRepository
from inex_auth.services.auth_service import AuthService, PASSWORD_REUSE_MESSAGE
from inex_auth.services.email_service import MockEmailService

from .conftest import PASSWORD, token_from_email


class FailingEmailService(MockEmailService):
    async def send_email(self, to, subject, body, html=None):
        raise EmailSendError()


async def reload_user(session, email="jane@example.com"):
    user = await UserRepository(session).get_by_email(email)
    await session.refresh(user)
    return user


async def signup(auth_service, email="jane@example.com", password=PASSWORD):
    return await auth_service.signup(
        name="Jane Doe", email=email, password=password, confirm_password=password
    )


async def request_reset(auth_service, mailer, email="jane@example.com"):
    await auth_service.forgot_password(email)
    return token_from_email(mailer.get_last_email())


async def reset(auth_service, mailer, password):
    token = await request_reset(auth_service, mailer)
    return await auth_service.reset_password(token, password, password)


# -----------------------------------------------------------------------------
# Signup / signin
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_signup_creates_unverified_user_and_sends_verification(auth_service, mailer, codec, session):
    response = await signup(auth_service, email="  Jane@Example.com ")

    assert response.user.email == "jane@example.com"
    assert response.user.is_verified is False
    assert codec.verify(response.access_token, "access").email == "jane@example.com"
    assert codec.verify(response.refresh_token, "refresh").user_id == str(response.user.id)

    email = mailer.get_last_email()
    assert email["to"] == "jane@example.com"
    assert "http://client.example.com/auth/verify-account?token=" in email["body"]

    user = await reload_user(session)
    assert user.password_hash != PASSWORD
    assert len(user.password_history) == 1
    assert user.password_history[0]["password_hash"] == user.password_hash


@pytest.mark.asyncio
async def test_signup_response_never_carries_credentials(auth_service):
    response = await signup(auth_service)
    dumped = response.model_dump()
    assert "password_hash" not in dumped["user"]
    assert "password_history" not in dumped["user"]


@pytest.mark.asyncio
async def test_signup_duplicate_email_conflicts(auth_service):
    await signup(auth_service)
    with pytest.raises(ConflictError):
        await signup(auth_service, email="JANE@example.com")


@pytest.mark.asyncio
async def test_signup_rejects_weak_password(auth_service):
    with pytest.raises(ValidationError) as exc_info:
        await signup(auth_service, password="weak")
    assert exc_info.value.errors


@pytest.mark.asyncio
async def test_signup_rejects_mismatched_confirmation(auth_service):
    with pytest.raises(ValidationError):
        await auth_service.signup("Jane", "jane@example.com", PASSWORD, PASSWORD + "x")


@pytest.mark.asyncio
async def test_signup_succeeds_when_verification_email_fails(session, codec, test_settings):
    service = AuthService(
        session, codec=codec, email_service=FailingEmailService(), settings=test_settings
    )
    response = await signup(service)
    assert response.user.email == "jane@example.com"


@pytest.mark.asyncio
async def test_signin_with_valid_credentials(auth_service, codec):
    await signup(auth_service)
    response = await auth_service.signin("JANE@example.com", PASSWORD)

    assert response.message == "Login successful"
    assert codec.verify(response.access_token).email == "jane@example.com"


@pytest.mark.asyncio
async def test_signin_failures_are_indistinguishable(auth_service):
    await signup(auth_service)

    with pytest.raises(AuthenticationError) as wrong_password:
        await auth_service.signin("jane@example.com", "Wrong123!")
    with pytest.raises(AuthenticationError) as unknown_email:
        await auth_service.signin("nobody@example.com", PASSWORD)

    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status_code == unknown_email.value.status_code == 401


@pytest.mark.asyncio
async def test_unverified_user_can_sign_in(auth_service):
    response = await signup(auth_service)
    assert response.user.is_verified is False
    assert (await auth_service.signin("jane@example.com", PASSWORD)).user.id == response.user.id


# -----------------------------------------------------------------------------
# Forgot / reset password
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_forgot_password_unknown_email_is_generic(auth_service, mailer):
    await signup(auth_service)
    known = await auth_service.forgot_password("jane@example.com")
    sent = len(mailer.sent_emails)
    unknown = await auth_service.forgot_password("nobody@example.com")

    assert known.message == unknown.message
    assert len(mailer.sent_emails) == sent


@pytest.mark.asyncio
async def test_forgot_password_email_failure_is_server_error(session, codec, test_settings):
    service = AuthService(
        session, codec=codec, email_service=FailingEmailService(), settings=test_settings
    )
    await signup(service)

    with pytest.raises(ServerError) as exc_info:
        await service.forgot_password("jane@example.com")
    assert exc_info.value.message == "Failed to send reset password email"


@pytest.mark.asyncio
async def test_reset_password_changes_password(auth_service, mailer, session):
    await signup(auth_service)
    old_hash = (await reload_user(session)).password_hash

    response = await reset(auth_service, mailer, "NewSecret456!")
    assert response.message == "Password reset successfully"

    user = await reload_user(session)
    assert verify_password("NewSecret456!", user.password_hash)
    assert user.password_history[-1]["password_hash"] == old_hash
    await auth_service.signin("jane@example.com", "NewSecret456!")
    with pytest.raises(AuthenticationError):
        await auth_service.signin("jane@example.com", PASSWORD)


@pytest.mark.asyncio
async def test_reset_token_is_single_use(auth_service, mailer, session):
    await signup(auth_service)
    token = await request_reset(auth_service, mailer)
    await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.reset_password(token, "Another789!", "Another789!")
    assert exc_info.value.reason == "already_used"

    user = await reload_user(session)
    assert verify_password("NewSecret456!", user.password_hash)


@pytest.mark.asyncio
async def test_reset_with_expired_token_leaves_password_unchanged(auth_service, session, codec):
    await signup(auth_service)
    user = await reload_user(session)
    old_hash = user.password_hash

    token = codec.sign_purpose(TokenKind.PASSWORD_RESET, user.id, user.email, timedelta(seconds=-1))
    await TokenLedger(session).issue(token, TokenKind.PASSWORD_RESET, user.id, timedelta(hours=1))

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")
    assert exc_info.value.reason == "expired"
    assert (await reload_user(session)).password_hash == old_hash


@pytest.mark.asyncio
async def test_reset_with_unledgered_token_fails(auth_service, session, codec):
    await signup(auth_service)
    user = await reload_user(session)
    token = codec.sign_purpose(TokenKind.PASSWORD_RESET, user.id, user.email, timedelta(hours=1))

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")
    assert exc_info.value.reason == "not_found"


@pytest.mark.asyncio
async def test_reset_with_verification_token_fails(auth_service, mailer):
    await signup(auth_service)
    verify_token = token_from_email(mailer.get_last_email())

    with pytest.raises(AuthenticationError):
        await auth_service.reset_password(verify_token, "NewSecret456!", "NewSecret456!")


@pytest.mark.asyncio
async def test_reset_token_signed_with_other_secret_fails(auth_service, session, test_settings):
    await signup(auth_service)
    user = await reload_user(session)
    forger = TokenCodec("forged-access-secret-0123456789abcdefgh", test_settings.JWT_REFRESH_SECRET)
    token = forger.sign_purpose(TokenKind.PASSWORD_RESET, user.id, user.email, timedelta(hours=1))
    await TokenLedger(session).issue(token, TokenKind.PASSWORD_RESET, user.id, timedelta(hours=1))

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")
    assert exc_info.value.reason == "invalid"


@pytest.mark.asyncio
async def test_reset_for_deleted_user_is_not_found(auth_service, mailer, session):
    await signup(auth_service)
    token = await request_reset(auth_service, mailer)
    user = await reload_user(session)
    await UserRepository(session).delete(user.id)

    with pytest.raises(NotFoundError):
        await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")


@pytest.mark.asyncio
async def test_reset_to_current_password_is_rejected(auth_service, mailer):
    await signup(auth_service)
    with pytest.raises(ValidationError) as exc_info:
        await reset(auth_service, mailer, PASSWORD)
    assert exc_info.value.message == PASSWORD_REUSE_MESSAGE


@pytest.mark.asyncio
async def test_rejected_reset_leaves_token_usable(auth_service, mailer):
    await signup(auth_service)
    token = await request_reset(auth_service, mailer)

    with pytest.raises(ValidationError):
        await auth_service.reset_password(token, PASSWORD, PASSWORD)

    response = await auth_service.reset_password(token, "NewSecret456!", "NewSecret456!")
    assert response.message == "Password reset successfully"


@pytest.mark.asyncio
async def test_reset_rejects_any_of_last_five_passwords(auth_service, mailer, session):
    passwords = [PASSWORD] + [f"Secret{i}{i}{i}!" for i in range(1, 6)]
    await signup(auth_service, password=passwords[0])
    for password in passwords[1:]:
        await reset(auth_service, mailer, password)

    # Current password is passwords[5]; history holds passwords[0..4]
    user = await reload_user(session)
    assert len(user.password_history) == 5
    for password in passwords:
        with pytest.raises(ValidationError):
            await reset(auth_service, mailer, password)


@pytest.mark.asyncio
async def test_password_older_than_history_can_be_reused(auth_service, mailer, session):
    passwords = [PASSWORD] + [f"Secret{i}{i}{i}!" for i in range(1, 7)]
    await signup(auth_service, password=passwords[0])
    for password in passwords[1:]:
        await reset(auth_service, mailer, password)

    # Six changes later the original password has aged out
    response = await reset(auth_service, mailer, passwords[0])
    assert response.message == "Password reset successfully"
    with pytest.raises(ValidationError):
        await reset(auth_service, mailer, passwords[2])

    user = await reload_user(session)
    assert len(user.password_history) == 5


# -----------------------------------------------------------------------------
# Verify account
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_verify_account(auth_service, mailer, session):
    await signup(auth_service)
    token = token_from_email(mailer.get_last_email())

    response = await auth_service.verify_account(token)
    assert response.message == "Account verified successfully"
    assert (await reload_user(session)).is_verified is True

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.verify_account(token)
    assert exc_info.value.reason == "already_used"


@pytest.mark.asyncio
async def test_verify_already_verified_account(auth_service, mailer):
    await signup(auth_service)
    first = token_from_email(mailer.get_last_email())
    await auth_service.resend_verification("jane@example.com")
    second = token_from_email(mailer.get_last_email())
    assert first != second

    await auth_service.verify_account(first)
    response = await auth_service.verify_account(second)
    assert response.message == "Account is already verified"

    with pytest.raises(AuthenticationError):
        await auth_service.verify_account(second)


@pytest.mark.asyncio
async def test_verify_with_reset_token_fails(auth_service, mailer):
    await signup(auth_service)
    reset_token = await request_reset(auth_service, mailer)

    with pytest.raises(AuthenticationError):
        await auth_service.verify_account(reset_token)


@pytest.mark.asyncio
async def test_resend_verification_is_generic(auth_service, mailer):
    await signup(auth_service)
    sent = len(mailer.sent_emails)

    unknown = await auth_service.resend_verification("nobody@example.com")
    known = await auth_service.resend_verification("jane@example.com")

    assert unknown.message == known.message
    assert len(mailer.sent_emails) == sent + 1


@pytest.mark.asyncio
async def test_resend_verification_skips_verified_accounts(auth_service, mailer):
    await signup(auth_service)
    await auth_service.verify_account(token_from_email(mailer.get_last_email()))
    sent = len(mailer.sent_emails)

    await auth_service.resend_verification("jane@example.com")
    assert len(mailer.sent_emails) == sent


# -----------------------------------------------------------------------------
# Refresh / verify token
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refresh_token_rotates_both_tokens(auth_service, codec):
    signed_up = await signup(auth_service)

    response = await auth_service.refresh_token(signed_up.refresh_token)

    assert response.access_token != signed_up.access_token
    assert response.refresh_token != signed_up.refresh_token
    assert codec.verify(response.refresh_token, "refresh").user_id == str(signed_up.user.id)
    # Old refresh tokens are not revoked
    await auth_service.refresh_token(signed_up.refresh_token)


@pytest.mark.asyncio
async def test_refresh_with_access_token_fails(auth_service):
    signed_up = await signup(auth_service)

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_service.refresh_token(signed_up.access_token)
    assert exc_info.value.message == "Invalid or expired refresh token"


@pytest.mark.asyncio
async def test_verify_token_returns_user(auth_service):
    signed_up = await signup(auth_service)

    response = await auth_service.verify_token(signed_up.access_token)
    assert response.user.id == signed_up.user.id

    with pytest.raises(AuthenticationError):
        await auth_service.verify_token(signed_up.refresh_token)
