"""Tiny helpers shared across test modules."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from tests.school.models import AuditEntry, Student


def durable_emails(engine: Engine) -> set[str]:
    """Emails of the students committed to ``engine``, read on a fresh session."""
    with Session(engine) as session:
        return set(session.execute(select(Student.email)).scalars())


def durable_student(engine: Engine, email: str) -> Student | None:
    """Load a committed student on a fresh session (expire_on_commit off)."""
    with Session(engine, expire_on_commit=False) as session:
        student = session.execute(select(Student).where(Student.email == email)).scalar_one_or_none()
        if student is not None:
            session.expunge(student)
        return student


def audit_count(engine: Engine) -> int:
    with Session(engine) as session:
        return int(session.execute(select(func.count()).select_from(AuditEntry)).scalar_one())


def seed_students(engine: Engine, *emails: str) -> dict[str, int]:
    """Commit students directly (outside any scope) and return their ids by email."""
    with Session(engine) as session:
        students = [Student(name=email.split("@")[0].capitalize(), email=email) for email in emails]
        session.add_all(students)
        session.commit()
        return {s.email: s.id for s in students}
