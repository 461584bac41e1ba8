"""Seed definitions for departments and staff.
Single source of truth for scripts/seed_demo.py and the role-alignment tests.
"""

DEPARTMENTS = ['LG Maintenance', 'Solar Energy', 'TP-Link', 'Epson']

# username -> (first, last, role, department name or None)
USERS = {
    'admin': ('Ahmed', 'Hassan', 'COMPANY_MANAGER', None),
    'deputy': ('Fatma', 'Ali', 'DEPUTY_MANAGER', None),
    'lg_manager': ('Mohamed', 'Mahmoud', 'DEPARTMENT_MANAGER', 'LG Maintenance'),
    'solar_manager': ('Sara', 'Ahmed', 'DEPARTMENT_MANAGER', 'Solar Energy'),
    'lg_supervisor': ('Omar', 'Khalil', 'SECTION_SUPERVISOR', 'LG Maintenance'),
    'tplink_supervisor': ('Nour', 'Ibrahim', 'SECTION_SUPERVISOR', 'TP-Link'),
    'tech1': ('Youssef', 'Mansour', 'TECHNICIAN', 'LG Maintenance'),
    'tech2': ('Menna', 'Farouk', 'TECHNICIAN', 'Solar Energy'),
    'tech3': ('Kareem', 'Mostafa', 'TECHNICIAN', 'TP-Link'),
    'tech4': ('Heba', 'Salah', 'TECHNICIAN', 'Epson'),
    'warehouse': ('Rami', 'Saeed', 'WAREHOUSE_KEEPER', None),
}
