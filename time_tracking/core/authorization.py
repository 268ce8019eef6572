from dataclasses import dataclass
from enum import Enum


class Role(Enum):
    ADMIN = "ADMIN"
    COMPANY_OWNER = "COMPANY_OWNER"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class Capability(Enum):
    SELF_ONLY = "self-only"
    MANAGE_ALL = "manage-all"


_ROLE_CAPABILITIES = {
    Role.ADMIN: Capability.MANAGE_ALL,
    Role.COMPANY_OWNER: Capability.MANAGE_ALL,
    Role.MANAGER: Capability.MANAGE_ALL,
    Role.EMPLOYEE: Capability.SELF_ONLY,
}


@dataclass(frozen=True)
class Actor:
    user_id: str
    company_id: int
    role: Role = Role.EMPLOYEE


def parse_role(raw) -> Role:
    if not raw:
        return Role.EMPLOYEE
    return Role(str(raw).upper())


def capability_for_role(role: Role) -> Capability:
    return _ROLE_CAPABILITIES.get(role, Capability.SELF_ONLY)
