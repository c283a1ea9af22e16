"""
One-time secret tests.

Verifies:
- Correct secret before expiry verifies exactly once
- Expired secrets fail even with the correct value
- 30 second issuance cooldown; only the newest secret verifies
- Invalid attempts are counted and burn the secret at the limit
- Only a bcrypt hash is stored
"""

from datetime import timedelta

import pytest

from storefront.errors import (
    AccountNotFoundError,
    AttemptsExceededError,
    InvalidSecretError,
    NoPendingRequestError,
    RateLimitedError,
    SecretExpiredError,
)
from storefront.services import secret_service
from storefront.services.secret_service import (
    MAX_SECRET_ATTEMPTS,
    POLICIES,
    SecretPurpose,
    check_secret,
    issue_secret,
    verify_secret,
)
from storefront.time_utils import utcnow


def _wrong(secret: str) -> str:
    if secret.isdigit():
        return f"{(int(secret) + 1) % 1_000_000:06d}"
    return "0" * 64 if secret != "0" * 64 else "1" * 64


class TestIssue:
    def test_otp_is_six_digits_and_expires_in_ten_minutes(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)

        assert len(issued.secret) == 6 and issued.secret.isdigit()
        assert issued.expires_at == now + timedelta(minutes=10)

    @pytest.mark.parametrize("purpose,ttl", [
        (SecretPurpose.EMAIL_VERIFICATION, timedelta(hours=24)),
        (SecretPurpose.PASSWORD_RESET, timedelta(hours=1)),
        (SecretPurpose.ADMIN_PANEL, timedelta(minutes=30)),
    ])
    def test_link_tokens(self, customer, purpose, ttl):
        now = utcnow()
        issued = issue_secret(customer, purpose, now=now)

        assert len(issued.secret) == 64
        assert issued.expires_at == now + ttl

    def test_only_hash_is_stored(self, customer):
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP)
        stored = customer.login_otp_hash

        assert stored != issued.secret
        assert stored.startswith("$2")
        assert secret_service.secret_matches(issued.secret, stored)

    def test_second_issue_within_cooldown_is_rate_limited(self, customer):
        now = utcnow()
        issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)

        with pytest.raises(RateLimitedError) as exc_info:
            issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now + timedelta(seconds=10))
        assert exc_info.value.retry_after_seconds == 20

    def test_cooldown_is_per_purpose(self, customer):
        now = utcnow()
        issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)
        issue_secret(customer, SecretPurpose.PASSWORD_RESET, now=now)

    def test_reissue_after_cooldown_invalidates_previous(self, customer):
        now = utcnow()
        first = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)
        second = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now + timedelta(seconds=31))

        if first.secret != second.secret:
            with pytest.raises(InvalidSecretError):
                verify_secret(customer.email, SecretPurpose.LOGIN_OTP, first.secret, now=now + timedelta(seconds=32))

        user = verify_secret(customer.email, SecretPurpose.LOGIN_OTP, second.secret, now=now + timedelta(seconds=33))
        assert user.id == customer.id


class TestVerify:
    def test_single_use(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)

        user = verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret, now=now)
        assert user.id == customer.id
        assert user.login_otp_hash is None
        assert user.login_otp_expires_at is None

        with pytest.raises(NoPendingRequestError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret, now=now)

    def test_expired_even_with_correct_value(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)

        with pytest.raises(SecretExpiredError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret, now=now + timedelta(minutes=11))

    def test_expiry_boundary_is_exclusive(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)

        with pytest.raises(SecretExpiredError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret, now=issued.expires_at)

    def test_email_is_normalized(self, customer):
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP)
        user = verify_secret("  USER@Example.com ", SecretPurpose.LOGIN_OTP, issued.secret)
        assert user.id == customer.id

    def test_unknown_account(self, db_session):
        with pytest.raises(AccountNotFoundError):
            verify_secret("nobody@example.com", SecretPurpose.LOGIN_OTP, "123456")

    def test_nothing_pending(self, customer):
        with pytest.raises(NoPendingRequestError):
            verify_secret(customer.email, SecretPurpose.PASSWORD_RESET, "0" * 64)

    def test_invalid_attempts_burn_the_secret(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)
        wrong = _wrong(issued.secret)

        for _ in range(MAX_SECRET_ATTEMPTS - 1):
            with pytest.raises(InvalidSecretError):
                verify_secret(customer.email, SecretPurpose.LOGIN_OTP, wrong, now=now)

        with pytest.raises(AttemptsExceededError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, wrong, now=now)

        # The correct code no longer works either
        with pytest.raises(NoPendingRequestError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret, now=now)

    def test_invalid_attempt_counter_resets_on_reissue(self, customer):
        now = utcnow()
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now)
        with pytest.raises(InvalidSecretError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, _wrong(issued.secret), now=now)
        assert customer.login_otp_attempt_count == 1

        issue_secret(customer, SecretPurpose.LOGIN_OTP, now=now + timedelta(seconds=31))
        assert customer.login_otp_attempt_count == 0

    def test_check_does_not_consume(self, customer):
        issued = issue_secret(customer, SecretPurpose.PASSWORD_RESET)

        check_secret(customer.email, SecretPurpose.PASSWORD_RESET, issued.secret)
        check_secret(customer.email, SecretPurpose.PASSWORD_RESET, issued.secret)
        verify_secret(customer.email, SecretPurpose.PASSWORD_RESET, issued.secret)

    def test_concurrent_consumer_loses(self, customer):
        """A verifier whose compare-and-clear finds the slot already cleared fails."""
        issued = issue_secret(customer, SecretPurpose.LOGIN_OTP)
        policy = POLICIES[SecretPurpose.LOGIN_OTP]
        stored_hash = customer.login_otp_hash

        # First consumer wins the conditional update
        assert secret_service._compare_and_clear(customer.id, policy, stored_hash) is True
        # Second consumer, holding the same stale hash, gets nothing
        assert secret_service._compare_and_clear(customer.id, policy, stored_hash) is False

        with pytest.raises(NoPendingRequestError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, issued.secret)

    def test_scenario_expired_then_fresh_code(self, customer):
        """Expired code fails; a fresh code verifies once and only once."""
        start = utcnow()
        first = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=start)

        later = start + timedelta(minutes=11)
        with pytest.raises(SecretExpiredError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, first.secret, now=later)

        second = issue_secret(customer, SecretPurpose.LOGIN_OTP, now=later)
        verify_secret(customer.email, SecretPurpose.LOGIN_OTP, second.secret, now=later)

        with pytest.raises(NoPendingRequestError):
            verify_secret(customer.email, SecretPurpose.LOGIN_OTP, second.secret, now=later)
