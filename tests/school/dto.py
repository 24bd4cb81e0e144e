"""Plain output objects returned by school services."""

from __future__ import annotations

from dataclasses import dataclass

from tests.school.models import Student


@dataclass(frozen=True, slots=True)
class StudentOut:
    id: int
    name: str
    email: str
    welcome_email_sent: bool
    score: int | None

    @classmethod
    def from_model(cls, student: Student) -> StudentOut:
        return cls(
            id=student.id,
            name=student.name,
            email=student.email,
            welcome_email_sent=student.welcome_email_sent,
            score=student.score,
        )
