"""
Tests for the pure access evaluator: no database, a fixed clock.
"""
from datetime import datetime, timedelta, timezone

import pytest
from django.contrib.auth.hashers import make_password

from surveys.access import (
    AccessAttempt,
    AccessPolicy,
    AccessReason,
    AuthenticatedRule,
    PublicRule,
    RestrictedRule,
    UrlAccessRule,
    evaluate_access,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope='module')
def password_hash():
    return make_password('s3cret')


def anonymous(**kwargs):
    return AccessAttempt(now=NOW, **kwargs)


def signed_in(email='member@example.com', **kwargs):
    return AccessAttempt(now=NOW, authenticated_user_id='user-1', authenticated_email=email, **kwargs)


class TestActiveAndWindow:

    def test_inactive_policy_denies_everyone(self):
        policy = AccessPolicy(rule=PublicRule(), is_active=False)

        decision = evaluate_access(policy, signed_in())

        assert decision.allowed is False
        assert decision.reason == AccessReason.INACTIVE

    def test_inactive_wins_over_window(self):
        policy = AccessPolicy(rule=PublicRule(), is_active=False, end_date=NOW - timedelta(days=1))

        assert evaluate_access(policy, anonymous()).reason == AccessReason.INACTIVE

    def test_before_start_date(self):
        policy = AccessPolicy(rule=PublicRule(), start_date=NOW + timedelta(hours=1))

        assert evaluate_access(policy, anonymous()).reason == AccessReason.NOT_YET_STARTED

    def test_after_end_date(self):
        policy = AccessPolicy(rule=PublicRule(), end_date=NOW - timedelta(seconds=1))

        assert evaluate_access(policy, anonymous()).reason == AccessReason.EXPIRED

    def test_window_bounds_are_inclusive(self):
        policy = AccessPolicy(rule=PublicRule(), start_date=NOW, end_date=NOW)

        assert evaluate_access(policy, anonymous()).allowed is True

    def test_expired_reported_before_missing_identity(self):
        """An expired authenticated survey tells anonymous visitors it expired."""
        policy = AccessPolicy(rule=AuthenticatedRule(), end_date=NOW - timedelta(days=1))

        assert evaluate_access(policy, anonymous()).reason == AccessReason.EXPIRED

    def test_not_started_reported_before_password(self, password_hash):
        policy = AccessPolicy(
            rule=PublicRule(),
            password_hash=password_hash,
            start_date=NOW + timedelta(days=1),
        )

        assert evaluate_access(policy, anonymous()).reason == AccessReason.NOT_YET_STARTED


class TestPermissionTypes:

    @pytest.mark.parametrize('rule', [PublicRule(), UrlAccessRule()])
    def test_open_types_allow_anonymous(self, rule):
        decision = evaluate_access(AccessPolicy(rule=rule), anonymous())

        assert decision.allowed is True
        assert decision.reason == AccessReason.OK

    def test_url_access_ignores_token_value(self):
        decision = evaluate_access(
            AccessPolicy(rule=UrlAccessRule()),
            anonymous(supplied_access_token='anything'),
        )

        assert decision.allowed is True

    def test_authenticated_requires_sign_in(self):
        policy = AccessPolicy(rule=AuthenticatedRule())

        assert evaluate_access(policy, anonymous()).reason == AccessReason.AUTHENTICATION_REQUIRED
        assert evaluate_access(policy, anonymous(supplied_email='a@example.com')).reason == (
            AccessReason.AUTHENTICATION_REQUIRED
        )
        assert evaluate_access(policy, signed_in()).allowed is True

    def test_restricted_without_identity(self):
        policy = AccessPolicy(rule=RestrictedRule.from_emails(['a@x.com']))

        assert evaluate_access(policy, anonymous()).reason == AccessReason.AUTHENTICATION_REQUIRED

    def test_restricted_allowlist_is_case_insensitive(self):
        policy = AccessPolicy(rule=RestrictedRule.from_emails(['a@x.com']))

        assert evaluate_access(policy, anonymous(supplied_email='A@X.com')).allowed is True
        assert evaluate_access(policy, signed_in(email='A@x.COM')).allowed is True

    def test_restricted_uses_signed_in_email_over_supplied(self):
        policy = AccessPolicy(rule=RestrictedRule.from_emails(['a@x.com']))

        decision = evaluate_access(policy, signed_in(email='b@x.com', supplied_email='a@x.com'))

        assert decision.reason == AccessReason.EMAIL_NOT_ALLOWLISTED

    def test_restricted_email_not_listed(self):
        policy = AccessPolicy(rule=RestrictedRule.from_emails(['a@x.com']))

        assert evaluate_access(policy, anonymous(supplied_email='b@x.com')).reason == (
            AccessReason.EMAIL_NOT_ALLOWLISTED
        )


class TestPassword:

    def test_missing_password(self, password_hash):
        policy = AccessPolicy(rule=PublicRule(), password_hash=password_hash)

        assert evaluate_access(policy, anonymous()).reason == AccessReason.PASSWORD_REQUIRED

    def test_empty_password_counts_as_missing(self, password_hash):
        policy = AccessPolicy(rule=PublicRule(), password_hash=password_hash)

        assert evaluate_access(policy, anonymous(supplied_password='')).reason == AccessReason.PASSWORD_REQUIRED

    def test_wrong_password(self, password_hash):
        policy = AccessPolicy(rule=PublicRule(), password_hash=password_hash)

        assert evaluate_access(policy, anonymous(supplied_password='guess')).reason == (
            AccessReason.PASSWORD_INCORRECT
        )

    def test_correct_password(self, password_hash):
        policy = AccessPolicy(rule=UrlAccessRule(), password_hash=password_hash)

        assert evaluate_access(policy, anonymous(supplied_password='s3cret')).allowed is True

    def test_allowlist_checked_before_password(self, password_hash):
        """A correct password does not admit an email that is not allowlisted."""
        policy = AccessPolicy(
            rule=RestrictedRule.from_emails(['a@x.com']),
            password_hash=password_hash,
        )

        decision = evaluate_access(policy, anonymous(supplied_email='b@x.com', supplied_password='s3cret'))

        assert decision.reason == AccessReason.EMAIL_NOT_ALLOWLISTED

    def test_restricted_with_password_needs_both(self, password_hash):
        policy = AccessPolicy(
            rule=RestrictedRule.from_emails(['a@x.com']),
            password_hash=password_hash,
        )

        assert evaluate_access(policy, anonymous(supplied_email='a@x.com')).reason == (
            AccessReason.PASSWORD_REQUIRED
        )
        assert evaluate_access(
            policy, anonymous(supplied_email='a@x.com', supplied_password='s3cret')
        ).allowed is True


def test_evaluation_is_deterministic(password_hash):
    policy = AccessPolicy(rule=RestrictedRule.from_emails(['a@x.com']), password_hash=password_hash)
    attempt = anonymous(supplied_email='a@x.com', supplied_password='nope')

    assert evaluate_access(policy, attempt) == evaluate_access(policy, attempt)
