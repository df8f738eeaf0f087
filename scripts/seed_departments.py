# scripts/seed_departments.py
r"""
Create departments and projects (idempotent by name).

Usage:
  python scripts/seed_departments.py --department Engineering --department Sales
  python scripts/seed_departments.py --project "Engineering:Platform" --project "Sales:Spring Fair"

A project is given as "<department name>:<project name>"; a missing
department is created on the way.
"""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import select
from sqlalchemy.orm import Session

import expense_desk.models  # noqa: F401
from expense_desk.db import SessionLocal
from expense_desk.models.organization import Department, Project


def _ensure_department(db: Session, name: str) -> Department:
    department = db.execute(select(Department).where(Department.name == name)).scalars().first()
    if department is None:
        department = Department(name=name, is_active=True)
        db.add(department)
        db.flush()
        print(f"Created department '{name}' ({department.id}).")
    return department


def _ensure_project(db: Session, department: Department, name: str) -> Project:
    project = (
        db.execute(select(Project).where(Project.department_id == department.id, Project.name == name))
        .scalars()
        .first()
    )
    if project is None:
        project = Project(department_id=department.id, name=name, is_active=True)
        db.add(project)
        db.flush()
        print(f"Created project '{department.name}:{name}' ({project.id}).")
    return project


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed departments and projects")
    parser.add_argument("--department", action="append", default=[], help="Department name (repeatable)")
    parser.add_argument(
        "--project", action="append", default=[], help='"<department>:<project>" (repeatable)'
    )
    args = parser.parse_args()

    if not args.department and not args.project:
        parser.error("nothing to seed; pass --department and/or --project")

    db = SessionLocal()
    try:
        for name in args.department:
            _ensure_department(db, name.strip())
        for entry in args.project:
            if ":" not in entry:
                print(f"ERROR: project must look like 'Department:Project', got {entry!r}", file=sys.stderr)
                db.rollback()
                return 2
            department_name, project_name = (part.strip() for part in entry.split(":", 1))
            _ensure_project(db, _ensure_department(db, department_name), project_name)
        db.commit()
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
