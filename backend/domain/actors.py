"""
The authenticated identity invoking a core operation.
"""
from dataclasses import dataclass

from domain.enums import UserRole


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
