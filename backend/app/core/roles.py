from enum import Enum


class Role(str, Enum):
    cliente = "CLIENTE"
    admin = "ADMIN"


ADMIN_ROLES = {Role.admin}


def is_admin_role(role: str) -> bool:
    return role in {r.value for r in ADMIN_ROLES}
