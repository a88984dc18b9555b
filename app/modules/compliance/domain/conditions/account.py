"""
Account-level conditions.

These read account feeds from the provider and emit one verdict per login or
user, keyed by `subject`. Anything that prevents an evaluation (no token, an
empty feed, missing configuration, a failed fetch) yields a single
not_applicable verdict instead.
"""

from typing import Any

import structlog

from app.modules.compliance.domain.registry import conditions
from app.modules.compliance.domain.results import Verdict
from app.shared.adapters.feed_utils import parse_timestamp
from app.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()

DEFAULT_EXCLUDED_USER_TYPES = ["proxy"]


def _login_time(login: dict[str, Any]) -> str:
    parsed = parse_timestamp(login.get("datetime"))
    return parsed.isoformat() if parsed else str(login.get("datetime") or "unknown time")


def _login_subject(login: dict[str, Any]) -> str:
    if login.get("id") is not None:
        return f"login:{login['id']}"
    # Logins without an id are keyed by username and timestamp.
    return f"login:{login.get('username') or 'unknown'}@{login.get('datetime') or 'unknown'}"


@conditions.account("login_allowed_ips")
async def login_allowed_ips(config, ctx) -> list[Verdict]:
    if ctx.directory is None:
        return [Verdict.not_applicable("No API token available to check login history.")]
    try:
        logins = await ctx.directory.list_logins()
    except ExternalAPIError as exc:
        logger.warning("account_logins_fetch_failed", account_id=str(ctx.account_id), error=str(exc))
        return [Verdict.not_applicable(f"Could not fetch login history: {exc.message}")]

    allowed = list(config.get("allowed_ips") or [])
    if not logins:
        return [Verdict.not_applicable("No login history found to evaluate.")]
    if not allowed:
        return [Verdict.not_applicable("No allowed IPs configured for this rule.")]

    verdicts = []
    for login in logins:
        ip = login.get("ip") or "unknown"
        label = f"{login.get('username')} from {ip} on {_login_time(login)}"
        subject = _login_subject(login)
        if ip in allowed:
            verdicts.append(
                Verdict.compliant(f"Login allowed: {label}. IP {ip} is in the allowed list.", subject)
            )
        else:
            verdicts.append(
                Verdict.non_compliant(
                    f"Login from unexpected IP: {label}. IP {ip} is not in the allowed list.",
                    subject,
                )
            )
    return verdicts


@conditions.account("tfa_users")
async def tfa_users(config, ctx) -> list[Verdict]:
    if ctx.directory is None:
        return [Verdict.not_applicable("No API token available to check user TFA status.")]
    try:
        users = await ctx.directory.list_users()
    except ExternalAPIError as exc:
        logger.warning("account_users_fetch_failed", account_id=str(ctx.account_id), error=str(exc))
        return [Verdict.not_applicable(f"Could not fetch users: {exc.message}")]

    excluded = config.get("exclude_user_types") or DEFAULT_EXCLUDED_USER_TYPES
    users = [u for u in users if u.get("user_type") not in excluded]
    if not users:
        return [Verdict.not_applicable("No users found to evaluate.")]

    verdicts = []
    for user in users:
        username = user.get("username")
        verdicts.append(
            Verdict.check(
                user.get("tfa_enabled") is True,
                f'User "{username}" has TFA enabled.',
                f'User "{username}" does not have TFA enabled.',
                subject=f"user:{username}",
            )
        )
    return verdicts
