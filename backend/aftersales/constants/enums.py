"""Closed value sets shared by models, services and routes.

Values are persisted as plain strings; never rename a member silently, add a new
one and migrate existing rows instead.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet


class Role(str, Enum):
    COMPANY_MANAGER = 'COMPANY_MANAGER'
    DEPUTY_MANAGER = 'DEPUTY_MANAGER'
    DEPARTMENT_MANAGER = 'DEPARTMENT_MANAGER'
    SECTION_SUPERVISOR = 'SECTION_SUPERVISOR'
    TECHNICIAN = 'TECHNICIAN'
    WAREHOUSE_KEEPER = 'WAREHOUSE_KEEPER'


class RequestStatus(str, Enum):
    NEW = 'NEW'
    ASSIGNED = 'ASSIGNED'
    UNDER_INSPECTION = 'UNDER_INSPECTION'
    WAITING_PARTS = 'WAITING_PARTS'
    IN_REPAIR = 'IN_REPAIR'
    COMPLETED = 'COMPLETED'
    CLOSED = 'CLOSED'


class Priority(str, Enum):
    LOW = 'LOW'
    NORMAL = 'NORMAL'
    HIGH = 'HIGH'
    URGENT = 'URGENT'


class WarrantyStatus(str, Enum):
    UNDER_WARRANTY = 'UNDER_WARRANTY'
    OUT_OF_WARRANTY = 'OUT_OF_WARRANTY'


class ExecutionMethod(str, Enum):
    ON_SITE = 'ON_SITE'
    WORKSHOP = 'WORKSHOP'


class CostType(str, Enum):
    PARTS = 'PARTS'
    LABOR = 'LABOR'
    TRANSPORTATION = 'TRANSPORTATION'
    OTHER = 'OTHER'


class ActivityType(str, Enum):
    CREATED = 'CREATED'
    STATUS_CHANGE = 'STATUS_CHANGE'
    ASSIGNMENT = 'ASSIGNMENT'
    COST_ADDED = 'COST_ADDED'
    COMMENT = 'COMMENT'
    UPDATED = 'UPDATED'


class ChangeType(str, Enum):
    CREATED = 'CREATED'
    UPDATED = 'UPDATED'
    QUANTITY_CHANGED = 'QUANTITY_CHANGED'
    USED_IN_REQUEST = 'USED_IN_REQUEST'
    DELETED = 'DELETED'


class NotificationType(str, Enum):
    ASSIGNMENT = 'ASSIGNMENT'
    OVERDUE = 'OVERDUE'
    STATUS_CHANGE = 'STATUS_CHANGE'
    COMPLETION = 'COMPLETION'
    WAREHOUSE_UPDATE = 'WAREHOUSE_UPDATE'
    COST_ADDED = 'COST_ADDED'
    SPARE_PART_REQUEST = 'SPARE_PART_REQUEST'
    SPARE_PART_APPROVED = 'SPARE_PART_APPROVED'
    SPARE_PART_REJECTED = 'SPARE_PART_REJECTED'
    TECHNICIAN_REPORT = 'TECHNICIAN_REPORT'
    REPORT_APPROVED = 'REPORT_APPROVED'
    REPORT_REJECTED = 'REPORT_REJECTED'


class PartRequestStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    FULFILLED = 'FULFILLED'


class PartRequestUrgency(str, Enum):
    LOW = 'LOW'
    NORMAL = 'NORMAL'
    URGENT = 'URGENT'


# Role tiers. Every Role must appear exactly once; lookups use [] so a role
# added to the enum without a tier fails loudly instead of falling through.
TIER_TOP = 'top'
TIER_MANAGER = 'manager'
TIER_TECHNICIAN = 'technician'
TIER_WAREHOUSE = 'warehouse'

ROLE_TIERS: Dict[Role, str] = {
    Role.COMPANY_MANAGER: TIER_TOP,
    Role.DEPUTY_MANAGER: TIER_TOP,
    Role.DEPARTMENT_MANAGER: TIER_MANAGER,
    Role.SECTION_SUPERVISOR: TIER_MANAGER,
    Role.TECHNICIAN: TIER_TECHNICIAN,
    Role.WAREHOUSE_KEEPER: TIER_WAREHOUSE,
}

TOP_ROLES: FrozenSet[Role] = frozenset(r for r, t in ROLE_TIERS.items() if t == TIER_TOP)
MANAGER_ROLES: FrozenSet[Role] = frozenset(r for r, t in ROLE_TIERS.items() if t in (TIER_TOP, TIER_MANAGER))
DEPARTMENT_LEAD_ROLES: FrozenSet[Role] = frozenset({Role.DEPARTMENT_MANAGER, Role.SECTION_SUPERVISOR})

# Statuses in which the SLA clock has stopped.
TERMINAL_PROGRESS: FrozenSet[RequestStatus] = frozenset({RequestStatus.COMPLETED, RequestStatus.CLOSED})


def values(enum_cls) -> tuple:
    return tuple(m.value for m in enum_cls)


__all__ = [
    'Role', 'RequestStatus', 'Priority', 'WarrantyStatus', 'ExecutionMethod', 'CostType',
    'ActivityType', 'ChangeType', 'NotificationType', 'PartRequestStatus', 'PartRequestUrgency',
    'ROLE_TIERS', 'TOP_ROLES', 'MANAGER_ROLES',
    'DEPARTMENT_LEAD_ROLES', 'TERMINAL_PROGRESS', 'TIER_TOP', 'TIER_MANAGER', 'TIER_TECHNICIAN',
    'TIER_WAREHOUSE', 'values',
]
