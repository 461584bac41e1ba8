#!/usr/bin/env python
"""Idempotent seed script for departments & staff users.

Usage:
    python backend/scripts/seed_demo.py              # seed normally
    python backend/scripts/seed_demo.py --dry-run    # run logic then rollback (no DB changes)
    python backend/scripts/seed_demo.py --show-users # print seeded users by role
"""
from __future__ import annotations
import os, sys, argparse
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aftersales import create_app, get_db  # type: ignore
from aftersales.constants.enums import Role
from aftersales.models.users import Base, Department, User
from seeds.demo_data import DEPARTMENTS, USERS


def ensure_departments(session):
    existing = {d.name: d for d in session.execute(select(Department)).scalars().all()}
    created = 0
    for name in DEPARTMENTS:
        if name not in existing:
            dept = Department(name=name, is_active=True)
            session.add(dept)
            existing[name] = dept
            created += 1
    session.flush()
    return existing, created


def ensure_users(session, departments):
    existing = {u.username for u in session.execute(select(User)).scalars().all()}
    created = 0
    for username, (first, last, role, dept_name) in USERS.items():
        if username in existing:
            continue
        Role(role)  # unknown role names fail here rather than in the database
        dept = departments.get(dept_name) if dept_name else None
        session.add(User(
            username=username,
            first_name=first,
            last_name=last,
            email=f"{username}@company.com",
            role=role,
            department_id=dept.id if dept else None,
            is_active=True,
        ))
        created += 1
    return created


def print_users(session):
    rows = session.execute(select(User).order_by(User.role, User.username)).scalars().all()
    if not rows:
        print("[INFO] No users present.")
        return
    width = max(len(u.username) for u in rows)
    for u in rows:
        print(f"{u.username.ljust(width)} | {u.role:<20} | dept={u.department_id}")


def parse_args():
    p = argparse.ArgumentParser(description="Seed departments and staff users")
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--show-users', action='store_true', help='Print users after seeding')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        Base.metadata.create_all(session.get_bind(), checkfirst=True)
        try:
            departments, dept_created = ensure_departments(session)
            users_created = ensure_users(session, departments)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] Would create {dept_created} departments and {users_created} users")
            else:
                session.commit()
                print(f"[OK] Created {dept_created} departments and {users_created} users")
            if args.show_users:
                print_users(session)
        except Exception:
            session.rollback()
            raise


if __name__ == '__main__':
    main()
