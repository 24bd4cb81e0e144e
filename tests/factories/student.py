"""Factory Boy definition for :class:`tests.school.models.Student`."""

from __future__ import annotations

import factory

from tests.factories import BaseFactory
from tests.school.models import Student


class StudentFactory(BaseFactory):
    """Build :class:`Student` instances with unique emails."""

    class Meta:
        model = Student

    id = None  # let autoincrement handle it
    name = factory.Faker("first_name")
    email = factory.Sequence(lambda n: f"student{n}@example.com")
    welcome_email_sent = False
    score = None
