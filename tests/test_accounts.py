from datetime import timedelta

import pytest

from conftest import PASSWORD
from models.user import User
from services.accounts import AccountService
from services.errors import AccountError, ErrorKind
from services.oauth import OAuthIdentity


def _kind(exc_info):
    return exc_info.value.kind


# registration

def test_register_creates_unverified_user_and_sends_email(accounts, notifier, dispatcher):
    user = accounts.register("new@example.com", PASSWORD, "New User", phone="+100")
    assert user.email == "new@example.com"
    assert user.phone == "+100"
    assert not user.email_verified
    assert user.password_hash != PASSWORD
    assert user.verification_token

    to, name, token = notifier.verification[-1]
    assert (to, name, token) == ("new@example.com", "New User", user.verification_token)
    assert dispatcher.failures == []


def test_register_duplicate_email(accounts):
    accounts.register("dup@example.com", PASSWORD, "First")
    with pytest.raises(AccountError) as exc_info:
        accounts.register("dup@example.com", PASSWORD, "Second")
    assert _kind(exc_info) is ErrorKind.USER_ALREADY_EXISTS


def test_register_survives_email_failure(accounts, notifier, dispatcher, users):
    notifier.fail = True
    user = accounts.register("nomail@example.com", PASSWORD, "No Mail")
    assert users.get_by_id(user.id).email == "nomail@example.com"
    assert len(dispatcher.failures) == 1


# login

def test_login_verified(accounts, verified_user):
    assert accounts.login("jane@example.com", PASSWORD).id == verified_user.id


def test_login_unverified(accounts):
    accounts.register("pending@example.com", PASSWORD, "Pending")
    with pytest.raises(AccountError) as exc_info:
        accounts.login("pending@example.com", PASSWORD)
    assert _kind(exc_info) is ErrorKind.EMAIL_NOT_VERIFIED


def test_login_unverified_wrong_password_is_invalid_credentials(accounts):
    accounts.register("pending@example.com", PASSWORD, "Pending")
    with pytest.raises(AccountError) as exc_info:
        accounts.login("pending@example.com", "not-the-password")
    assert _kind(exc_info) is ErrorKind.INVALID_CREDENTIALS


def test_login_unknown_email_matches_wrong_password(accounts, verified_user):
    with pytest.raises(AccountError) as unknown:
        accounts.login("ghost@example.com", PASSWORD)
    with pytest.raises(AccountError) as wrong:
        accounts.login("jane@example.com", "not-the-password")
    assert _kind(unknown) is _kind(wrong) is ErrorKind.INVALID_CREDENTIALS
    assert unknown.value.message == wrong.value.message


def test_login_oauth_only_account(accounts, users):
    users.create(User(email="oauth@example.com", name="O", oauth_provider="google", oauth_id="g1", email_verified=True))
    with pytest.raises(AccountError) as exc_info:
        accounts.login("oauth@example.com", PASSWORD)
    assert _kind(exc_info) is ErrorKind.OAUTH_ACCOUNT


# email verification

def test_verify_email_consumes_token(accounts, notifier, users):
    user = accounts.register("v@example.com", PASSWORD, "V")
    token = notifier.verification[-1][2]
    verified = accounts.verify_email(token)
    assert verified.email_verified
    stored = users.get_by_id(user.id)
    assert stored.verification_token is None
    assert stored.verification_token_expires_at is None

    with pytest.raises(AccountError) as exc_info:
        accounts.verify_email(token)
    assert _kind(exc_info) is ErrorKind.INVALID_VERIFICATION_TOKEN


def test_verify_email_on_verified_account_is_noop(accounts, users, verified_user, clock):
    # A token still stored on an already verified account
    verified_user.set_verification_token("leftover", clock() + timedelta(hours=1))
    users.update(verified_user)
    before = users.get_by_id(verified_user.id).updated_at

    user = accounts.verify_email("leftover")
    assert user.id == verified_user.id
    assert user.email_verified
    stored = users.get_by_id(verified_user.id)
    assert stored.verification_token == "leftover"
    assert stored.updated_at == before


def test_verify_email_unknown_token(accounts):
    with pytest.raises(AccountError) as exc_info:
        accounts.verify_email("nope")
    assert _kind(exc_info) is ErrorKind.INVALID_VERIFICATION_TOKEN


def test_verify_email_expired(accounts, notifier, clock, users):
    user = accounts.register("late@example.com", PASSWORD, "Late")
    token = notifier.verification[-1][2]
    clock.advance(timedelta(hours=24, seconds=1))
    with pytest.raises(AccountError) as exc_info:
        accounts.verify_email(token)
    assert _kind(exc_info) is ErrorKind.VERIFICATION_TOKEN_EXPIRED
    assert not users.get_by_id(user.id).email_verified


def test_verify_email_at_exact_expiry_still_valid(accounts, notifier, clock):
    accounts.register("edge@example.com", PASSWORD, "Edge")
    token = notifier.verification[-1][2]
    clock.advance(timedelta(hours=24))
    assert accounts.verify_email(token).email_verified


def test_resend_verification(accounts, notifier):
    accounts.register("again@example.com", PASSWORD, "Again")
    old = notifier.verification[-1][2]
    accounts.resend_verification_email("again@example.com")
    new = notifier.verification[-1][2]
    assert new != old

    with pytest.raises(AccountError) as exc_info:
        accounts.verify_email(old)
    assert _kind(exc_info) is ErrorKind.INVALID_VERIFICATION_TOKEN
    assert accounts.verify_email(new).email_verified


def test_resend_verification_unknown_and_verified(accounts, verified_user):
    with pytest.raises(AccountError) as exc_info:
        accounts.resend_verification_email("ghost@example.com")
    assert _kind(exc_info) is ErrorKind.USER_NOT_FOUND

    with pytest.raises(AccountError) as exc_info:
        accounts.resend_verification_email(verified_user.email)
    assert _kind(exc_info) is ErrorKind.EMAIL_ALREADY_VERIFIED


def test_resend_verification_delivery_failure(accounts, notifier):
    accounts.register("flaky@example.com", PASSWORD, "Flaky")
    notifier.fail = True
    with pytest.raises(AccountError) as exc_info:
        accounts.resend_verification_email("flaky@example.com")
    assert _kind(exc_info) is ErrorKind.EMAIL_DELIVERY_FAILED
    assert exc_info.value.cause is not None


# password reset

def test_forgot_password_unknown_email_is_silent(accounts, notifier, users, verified_user):
    accounts.forgot_password("ghost@example.com")
    assert notifier.reset == []
    assert all(user.reset_password_token is None for user in users.list(limit=100, offset=0))


def test_forgot_password_skips_oauth_only(accounts, notifier, users):
    users.create(User(email="oauth@example.com", name="O", oauth_provider="google", oauth_id="g1", email_verified=True))
    accounts.forgot_password("oauth@example.com")
    assert notifier.reset == []


def test_reset_password_flow(accounts, notifier, verified_user, users):
    accounts.forgot_password(verified_user.email)
    token = notifier.reset[-1][2]

    accounts.reset_password(token, "a-brand-new-password")
    assert users.get_by_id(verified_user.id).reset_password_token is None
    assert accounts.login(verified_user.email, "a-brand-new-password").id == verified_user.id
    with pytest.raises(AccountError) as exc_info:
        accounts.login(verified_user.email, PASSWORD)
    assert _kind(exc_info) is ErrorKind.INVALID_CREDENTIALS

    with pytest.raises(AccountError) as exc_info:
        accounts.reset_password(token, "yet-another-password")
    assert _kind(exc_info) is ErrorKind.INVALID_RESET_TOKEN


def test_reset_password_expired(accounts, notifier, clock, verified_user):
    accounts.forgot_password(verified_user.email)
    token = notifier.reset[-1][2]
    clock.advance(timedelta(hours=1, seconds=1))
    with pytest.raises(AccountError) as exc_info:
        accounts.reset_password(token, "a-brand-new-password")
    assert _kind(exc_info) is ErrorKind.RESET_TOKEN_EXPIRED


def test_second_forgot_replaces_token(accounts, notifier, verified_user):
    accounts.forgot_password(verified_user.email)
    first = notifier.reset[-1][2]
    accounts.forgot_password(verified_user.email)
    second = notifier.reset[-1][2]
    with pytest.raises(AccountError) as exc_info:
        accounts.reset_password(first, "a-brand-new-password")
    assert _kind(exc_info) is ErrorKind.INVALID_RESET_TOKEN
    accounts.reset_password(second, "a-brand-new-password")


# OAuth resolution

def _identity(**overrides):
    values = dict(external_id="g-42", email="oauth.user@example.com", name="OAuth User", picture_url="https://pic/1.png")
    values.update(overrides)
    return OAuthIdentity(**values)


def test_oauth_creates_verified_oauth_only_account(accounts):
    user = accounts.handle_oauth_login(_identity())
    assert user.email_verified
    assert user.password_hash is None
    assert (user.oauth_provider, user.oauth_id) == ("google", "g-42")
    assert user.avatar_url == "https://pic/1.png"


def test_oauth_returns_linked_account_unchanged(accounts):
    first = accounts.handle_oauth_login(_identity())
    again = accounts.handle_oauth_login(_identity(email="changed@example.com", name="Renamed"))
    assert again.id == first.id
    assert again.email == "oauth.user@example.com"
    assert again.name == "OAuth User"


def test_oauth_links_existing_password_account(accounts, verified_user):
    linked = accounts.handle_oauth_login(_identity(email=verified_user.email))
    assert linked.id == verified_user.id
    assert linked.oauth_id == "g-42"
    assert linked.avatar_url == "https://pic/1.png"
    # password login keeps working for a linked account
    assert accounts.login(verified_user.email, PASSWORD).id == verified_user.id


def test_oauth_link_keeps_existing_avatar(accounts, users, verified_user):
    verified_user.avatar_url = "/static/avatars/mine.png"
    users.update(verified_user)
    linked = accounts.handle_oauth_login(_identity(email=verified_user.email))
    assert linked.avatar_url == "/static/avatars/mine.png"


def test_oauth_email_linked_to_other_identity(accounts):
    accounts.handle_oauth_login(_identity())
    with pytest.raises(AccountError) as exc_info:
        accounts.handle_oauth_login(_identity(external_id="g-other"))
    assert _kind(exc_info) is ErrorKind.OAUTH_ACCOUNT_CONFLICT


def test_login_with_oauth_uses_bridge(accounts, bridge):
    user = accounts.login_with_oauth("auth-code")
    assert bridge.codes == ["auth-code"]
    assert user.email == bridge.identity.email


def test_login_with_oauth_exchange_failure(accounts):
    with pytest.raises(AccountError) as exc_info:
        accounts.login_with_oauth("bad-code")
    assert _kind(exc_info) is ErrorKind.OAUTH_EXCHANGE_FAILED


def test_oauth_without_bridge(users, hasher, notifier, dispatcher):
    service = AccountService(users, hasher, notifier, dispatcher)
    with pytest.raises(AccountError) as exc_info:
        service.oauth_authorization_url("state")
    assert _kind(exc_info) is ErrorKind.OAUTH_EXCHANGE_FAILED


def test_register_verify_login_scenario(accounts, notifier):
    user = accounts.register("a@x.com", "pw12345678", "A", "000")
    assert not user.email_verified
    with pytest.raises(AccountError) as exc_info:
        accounts.login("a@x.com", "pw12345678")
    assert _kind(exc_info) is ErrorKind.EMAIL_NOT_VERIFIED

    accounts.verify_email(notifier.verification[-1][2])
    logged_in = accounts.login("a@x.com", "pw12345678")
    assert logged_in.id == user.id
    assert logged_in.email_verified


def test_oauth_second_callback_does_not_duplicate(accounts, users, verified_user):
    first = accounts.handle_oauth_login(_identity(email=verified_user.email))
    second = accounts.handle_oauth_login(_identity(email=verified_user.email))
    assert first.id == second.id == verified_user.id
    assert users.count() == 1
