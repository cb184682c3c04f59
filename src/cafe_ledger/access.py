"""Shared-password login gate.

Every account shares one password (``LOGIN_PASSWORD``). The ``admin`` account
sees the dashboards; staff members land on data entry.
"""

from __future__ import annotations

import hmac
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from cafe_ledger.config import get_settings
from cafe_ledger.ledger import StaffShift

logger = structlog.get_logger(__name__)

ADMIN_ACCOUNT = "admin"
ADMIN_ROLE = "Admin"
DEFAULT_STAFF_ROLE = "Nhân viên"


class LoginError(Exception):
    """The account or password was rejected."""


@dataclass(frozen=True)
class User:
    name: str
    role: str
    avatar: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def login(
    staff: Iterable[StaffShift],
    name: str,
    password: str,
    expected_password: str | None = None,
) -> User:
    """Check the shared password and resolve the account.

    Raises:
        LoginError: No account selected, no password, wrong password, or
            an unknown account.
    """
    if not name:
        raise LoginError("Select a staff member.")
    if not password:
        raise LoginError("Enter the password.")

    if expected_password is None:
        expected_password = get_settings().login_password.get_secret_value()
    if not hmac.compare_digest(password.encode(), expected_password.encode()):
        logger.warning("login_rejected", account=name, reason="wrong_password")
        raise LoginError("Wrong password.")

    member = next((s for s in staff if s.name == name), None)
    if member is not None:
        user = User(
            name=member.name,
            role=member.role or DEFAULT_STAFF_ROLE,
            avatar=member.name[:1],
        )
    elif name == ADMIN_ACCOUNT:
        user = User(name="Senior Manager", role=ADMIN_ROLE, avatar="A")
    else:
        logger.warning("login_rejected", account=name, reason="unknown_account")
        raise LoginError(f"Unknown account {name!r}.")

    logger.info("login_accepted", account=user.name, role=user.role)
    return user
