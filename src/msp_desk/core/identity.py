"""
Caller Identity
===============

The effective identity an operation runs under, after any acting-as
substitution has been resolved by the boundary layer.
"""

from dataclasses import dataclass

from msp_desk.config import ActorRole


@dataclass(frozen=True)
class Actor:
    """Effective (role, user id) pair handed to application services."""
    role: ActorRole
    user_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_expert(self) -> bool:
        return self.role == ActorRole.EXPERT

    @property
    def is_company(self) -> bool:
        return self.role == ActorRole.COMPANY
