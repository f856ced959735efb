from enum import Enum


class Role(str, Enum):
    admin = "ADMIN"


ADMIN_ROLES = {Role.admin}
