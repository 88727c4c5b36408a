"""
Survey access policy evaluation.

`evaluate_access` decides whether an access attempt may view and respond to a
survey. It is a pure function: storage lookups and the current time are
resolved by the caller and passed in, so the same inputs always give the same
decision.

Checks run in a fixed order and the first failing one wins:

1. the policy is inactive                  -> inactive
2. the attempt is before the start date    -> not_yet_started
3. the attempt is after the end date       -> expired
4. the permission type's identity rule     -> authentication_required /
                                              email_not_allowlisted
5. the password gate, if a hash is set     -> password_required /
                                              password_incorrect

The time window is checked before identity so an expired survey always reports
`expired`. The password is checked after identity so a restricted survey
reports an allowlist miss rather than a password failure.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union

from django.contrib.auth.hashers import check_password


class AccessReason(str, Enum):
    OK = 'ok'
    INACTIVE = 'inactive'
    NOT_YET_STARTED = 'not_yet_started'
    EXPIRED = 'expired'
    PASSWORD_REQUIRED = 'password_required'
    PASSWORD_INCORRECT = 'password_incorrect'
    EMAIL_NOT_ALLOWLISTED = 'email_not_allowlisted'
    AUTHENTICATION_REQUIRED = 'authentication_required'


# ---------------------------------------------------------------------------
# Permission rules. Each variant carries only the data it needs.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PublicRule:
    """Anyone may respond."""
    permission_type = 'public'


@dataclass(frozen=True)
class UrlAccessRule:
    """Anyone holding the survey link may respond; no identity required."""
    permission_type = 'url_access'


@dataclass(frozen=True)
class AuthenticatedRule:
    """Any signed-in user may respond."""
    permission_type = 'authenticated'


@dataclass(frozen=True)
class RestrictedRule:
    """Only the listed email addresses may respond."""
    allowed_emails: FrozenSet[str]
    permission_type = 'restricted'

    @classmethod
    def from_emails(cls, emails: Iterable[str]) -> 'RestrictedRule':
        return cls(allowed_emails=frozenset(normalize_email(e) for e in emails if e))


PermissionRule = Union[PublicRule, UrlAccessRule, AuthenticatedRule, RestrictedRule]


@dataclass(frozen=True)
class AccessPolicy:
    rule: PermissionRule
    is_active: bool = True
    password_hash: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @property
    def permission_type(self) -> str:
        return self.rule.permission_type

    @property
    def requires_password(self) -> bool:
        return bool(self.password_hash)


@dataclass(frozen=True)
class AccessAttempt:
    """
    One request to open a survey.

    `authenticated_email` is the identity provider's email for
    `authenticated_user_id`; it is ignored when no user is signed in.
    """
    now: datetime
    supplied_email: Optional[str] = None
    supplied_password: Optional[str] = None
    supplied_access_token: Optional[str] = None
    authenticated_user_id: Optional[str] = None
    authenticated_email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.authenticated_user_id)

    @property
    def effective_email(self) -> Optional[str]:
        if self.is_authenticated and self.authenticated_email:
            return self.authenticated_email
        return self.supplied_email or None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: AccessReason = field(default=AccessReason.OK)

    @classmethod
    def allow(cls) -> 'AccessDecision':
        return cls(allowed=True, reason=AccessReason.OK)

    @classmethod
    def deny(cls, reason: AccessReason) -> 'AccessDecision':
        return cls(allowed=False, reason=reason)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_identity(rule: PermissionRule, attempt: AccessAttempt) -> Optional[AccessReason]:
    """Return the denial reason for the type-specific rule, or None."""
    if isinstance(rule, (PublicRule, UrlAccessRule)):
        return None

    if isinstance(rule, AuthenticatedRule):
        if not attempt.is_authenticated:
            return AccessReason.AUTHENTICATION_REQUIRED
        return None

    if isinstance(rule, RestrictedRule):
        if not attempt.is_authenticated and not attempt.supplied_email:
            return AccessReason.AUTHENTICATION_REQUIRED
        email = attempt.effective_email
        if not email or normalize_email(email) not in rule.allowed_emails:
            return AccessReason.EMAIL_NOT_ALLOWLISTED
        return None

    # Unknown variants are a configuration error upstream; fail closed
    return AccessReason.AUTHENTICATION_REQUIRED


def _check_password(password_hash: str, supplied: Optional[str]) -> Optional[AccessReason]:
    if not supplied:
        return AccessReason.PASSWORD_REQUIRED
    # Hashers compare digests with constant_time_compare
    if not check_password(supplied, password_hash):
        return AccessReason.PASSWORD_INCORRECT
    return None


def evaluate_access(policy: AccessPolicy, attempt: AccessAttempt) -> AccessDecision:
    """Decide whether `attempt` may open a survey governed by `policy`."""
    if not policy.is_active:
        return AccessDecision.deny(AccessReason.INACTIVE)

    if policy.start_date is not None and attempt.now < policy.start_date:
        return AccessDecision.deny(AccessReason.NOT_YET_STARTED)

    if policy.end_date is not None and attempt.now > policy.end_date:
        return AccessDecision.deny(AccessReason.EXPIRED)

    reason = _check_identity(policy.rule, attempt)
    if reason is not None:
        return AccessDecision.deny(reason)

    if policy.password_hash:
        reason = _check_password(policy.password_hash, attempt.supplied_password)
        if reason is not None:
            return AccessDecision.deny(reason)

    return AccessDecision.allow()
