"""Repositories for the school domain."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import InstrumentedAttribute

from scopekeeper.repositories import BaseRepository
from tests.school.models import AuditEntry, Student


class StudentRepository(BaseRepository[Student]):
    model = Student

    def get_by_email(self, email: str) -> Student | None:
        return self.find_one(email=email.strip().lower())

    def _sortable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {"name": Student.name, "score": Student.score}

    def _updatable_fields(self) -> set[str]:
        return {"name", "email"}


class AuditRepository(BaseRepository[AuditEntry]):
    model = AuditEntry
    resource_key = "reporting"
