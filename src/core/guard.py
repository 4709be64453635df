"""
FILE: src/core/guard.py
Access guard: a pure role check plus the single declarative policy table
consulted by every API route and page.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable
import enum

from src.shared.models import Role


class Decision(str, enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"


def authorize(role: Role, allowed: Iterable[Role]) -> Decision:
    """
    Exact membership of a Role member. No hierarchy: admin must be listed
    to be allowed, and a bare string is never a role.
    """
    if not isinstance(role, Role):
        return Decision.DENIED
    return Decision.GRANTED if role in frozenset(allowed) else Decision.DENIED


class PolicyKind(str, enum.Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"  # identity required, no role check
    ROLES = "roles"


@dataclass(frozen=True)
class AccessPolicy:
    kind: PolicyKind
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    def __post_init__(self):
        if self.kind == PolicyKind.ROLES and not self.roles:
            raise ValueError("A role policy needs at least one role")
        if self.kind != PolicyKind.ROLES and self.roles:
            raise ValueError(f"A {self.kind.value} policy takes no roles")

    @classmethod
    def public(cls) -> "AccessPolicy":
        return cls(PolicyKind.PUBLIC)

    @classmethod
    def authenticated(cls) -> "AccessPolicy":
        return cls(PolicyKind.AUTHENTICATED)

    @classmethod
    def for_roles(cls, *roles: Role) -> "AccessPolicy":
        return cls(PolicyKind.ROLES, frozenset(roles))


ALL_ROLES = (Role.ADMIN, Role.DOCTOR, Role.PHARMACIST, Role.PATIENT)

POLICIES: Dict[str, AccessPolicy] = {
    # Auth
    "auth.login": AccessPolicy.public(),
    "auth.refresh": AccessPolicy.public(),
    "auth.signup": AccessPolicy.public(),
    "auth.logout": AccessPolicy.authenticated(),
    "auth.session": AccessPolicy.authenticated(),

    # Profiles & staff
    "profiles.me": AccessPolicy.for_roles(*ALL_ROLES),
    "profiles.list": AccessPolicy.for_roles(Role.ADMIN),
    "profiles.update_role": AccessPolicy.for_roles(Role.ADMIN),
    "invitations.create": AccessPolicy.for_roles(Role.ADMIN),

    # Pharmacy
    "pharmacy.audit_logs": AccessPolicy.for_roles(Role.ADMIN),
    "pharmacy.reports": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "pharmacy.restock": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "pharmacy.medications": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "pharmacy.sales": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),

    # Clinic
    "clinic.patients": AccessPolicy.for_roles(Role.ADMIN, Role.DOCTOR),
    "clinic.appointments": AccessPolicy.for_roles(Role.ADMIN, Role.DOCTOR, Role.PATIENT),
    "clinic.receipt": AccessPolicy.for_roles(*ALL_ROLES),

    # Pages
    "page.patients": AccessPolicy.for_roles(Role.ADMIN, Role.DOCTOR),
    "page.inventory": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "page.inventory_add": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "page.reports": AccessPolicy.for_roles(Role.ADMIN, Role.PHARMACIST),
    "page.user_settings": AccessPolicy.for_roles(Role.ADMIN),
}


def get_policy(name: str) -> AccessPolicy:
    try:
        return POLICIES[name]
    except KeyError:
        raise KeyError(f"Unknown access policy: {name}") from None
