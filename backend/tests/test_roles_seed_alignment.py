from aftersales.constants.enums import (
    Role, ROLE_TIERS, TOP_ROLES, MANAGER_ROLES, DEPARTMENT_LEAD_ROLES,
    TIER_TOP, TIER_MANAGER, TIER_TECHNICIAN, TIER_WAREHOUSE,
)
from seeds.demo_data import DEPARTMENTS, USERS


def test_every_role_has_exactly_one_tier():
    assert set(ROLE_TIERS) == set(Role)
    assert set(ROLE_TIERS.values()) <= {TIER_TOP, TIER_MANAGER, TIER_TECHNICIAN, TIER_WAREHOUSE}


def test_tier_sets_are_consistent():
    assert TOP_ROLES == {Role.COMPANY_MANAGER, Role.DEPUTY_MANAGER}
    assert TOP_ROLES < MANAGER_ROLES
    assert DEPARTMENT_LEAD_ROLES <= MANAGER_ROLES
    assert Role.TECHNICIAN not in MANAGER_ROLES
    assert Role.WAREHOUSE_KEEPER not in MANAGER_ROLES


def test_seed_users_reference_known_roles_and_departments():
    for username, (_first, _last, role, dept) in USERS.items():
        assert Role(role) in ROLE_TIERS, username
        assert dept is None or dept in DEPARTMENTS, username


def test_seed_covers_every_role():
    assert {Role(u[2]) for u in USERS.values()} == set(Role)


def test_department_leads_have_a_department():
    for username, (_f, _l, role, dept) in USERS.items():
        if Role(role) in DEPARTMENT_LEAD_ROLES or Role(role) == Role.TECHNICIAN:
            assert dept is not None, username
