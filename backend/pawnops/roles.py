# Overview: Role names and the logistics-status column each role owns.

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_AUDITOR = "auditor"
ROLE_ACCOUNT_EXECUTIVE = "accountexecutive"
ROLE_LOGISTICS = "logistics"

ALL_ROLES = (ROLE_ADMIN, ROLE_AUDITOR, ROLE_ACCOUNT_EXECUTIVE, ROLE_LOGISTICS)

_ROLE_ALIASES = {
    "ae": ROLE_ACCOUNT_EXECUTIVE,
    "driver": ROLE_LOGISTICS,
}

# Driver status is mirrored per assigning role; admin (and anything
# unrecognised) writes the plain column.
LOGISTICS_STATUS_COLUMNS = {
    ROLE_ADMIN: "logistics_status",
    ROLE_AUDITOR: "auditor_logistics_status",
    ROLE_ACCOUNT_EXECUTIVE: "account_executive_logistics_status",
}
DEFAULT_LOGISTICS_STATUS_COLUMN = "logistics_status"


def normalize_role(role: str | None) -> str:
    """
    Canonical role key: lower-case with spaces/underscores removed.

    "Account Executive", "account_executive" and "AE" all map to
    "accountexecutive".
    """
    key = "".join(ch for ch in str(role or "").lower() if ch not in " _")
    return _ROLE_ALIASES.get(key, key)


def logistics_status_column_for(role: str | None) -> str:
    return LOGISTICS_STATUS_COLUMNS.get(normalize_role(role), DEFAULT_LOGISTICS_STATUS_COLUMN)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as the services see it: an account id and role."""
    id: int
    role: str

    @classmethod
    def of(cls, account) -> "Principal":
        return cls(id=account.id, role=normalize_role(account.role))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_auditor(self) -> bool:
        return self.role == ROLE_AUDITOR
