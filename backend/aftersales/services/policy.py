from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.orm import Session
from aftersales.constants.enums import Role, ROLE_TIERS, TIER_TOP, TIER_MANAGER, TIER_TECHNICIAN, TIER_WAREHOUSE
from aftersales.errors import ForbiddenError, UnauthorizedError
from aftersales.models.users import User


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""
    id: int
    role: Role
    department_id: Optional[int] = None
    display_name: str = ''

    @classmethod
    def from_user(cls, user: User) -> 'Actor':
        return cls(id=user.id, role=Role(user.role), department_id=user.department_id, display_name=user.display_name)

    @property
    def tier(self) -> str:
        return ROLE_TIERS[self.role]


def load_actor(session: Session, user_id) -> Actor:
    """Resolve a token identity to an active user; missing or inactive users are 401."""
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        raise UnauthorizedError('Invalid token identity')
    user = session.get(User, uid)
    if user is None or not user.is_active:
        raise UnauthorizedError('User not found or inactive')
    return Actor.from_user(user)


def is_top(actor: Actor) -> bool:
    return actor.tier == TIER_TOP


def is_manager(actor: Actor) -> bool:
    return actor.tier in (TIER_TOP, TIER_MANAGER)


def is_technician(actor: Actor) -> bool:
    return actor.tier == TIER_TECHNICIAN


def is_warehouse(actor: Actor) -> bool:
    return actor.tier == TIER_WAREHOUSE


def assert_department_access(actor: Actor, department_id: Optional[int]):
    """Department managers act only inside their own department."""
    if actor.role == Role.DEPARTMENT_MANAGER and actor.department_id != department_id:
        raise ForbiddenError('Department access denied')


def assert_warehouse_keeper(actor: Actor):
    if not is_warehouse(actor):
        raise ForbiddenError('Only warehouse keepers can modify spare parts')


__all__ = [
    'Actor', 'load_actor', 'is_top', 'is_manager', 'is_technician', 'is_warehouse',
    'assert_department_access', 'assert_warehouse_keeper',
]
