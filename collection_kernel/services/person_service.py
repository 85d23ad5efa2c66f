"""
Service layer for Person operations.

Registers payers, edits their profile and soft-deletes them.  Registration
opens the person's first cycle in the same transaction, so a person never
exists without somewhere for collections to land.

Returns PersonInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from collection_kernel.domain.amounts import require_positive
from collection_kernel.domain.dtos import PersonInfo
from collection_kernel.exceptions import InvalidInputError, PersonNotFoundError
from collection_kernel.logging_config import get_logger
from collection_kernel.models.person import Person, PersonFrequency
from collection_kernel.services.base import BaseService
from collection_kernel.services.cycle_service import CycleService

logger = get_logger("services.person")


def _clean_name(name: str | None) -> str:
    if name is None or not str(name).strip():
        raise InvalidInputError("name", name, "must not be empty")
    return str(name).strip()


def _coerce_frequency(frequency: PersonFrequency | str) -> PersonFrequency:
    try:
        return PersonFrequency(frequency)
    except ValueError as exc:
        raise InvalidInputError(
            "frequency", frequency, "expected daily, weekly or custom"
        ) from exc


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class PersonService(BaseService[Person]):
    """
    Service for managing people.

    Enforces a non-empty name and a positive default amount; deletion is a
    flag flip so ledger history stays attached.
    """

    def _get_by_id(self, person_id: UUID) -> Person:
        """Get person by ID, raising if not found."""
        person = self.session.get(Person, person_id)
        if person is None:
            raise PersonNotFoundError(str(person_id))
        return person

    def get_by_id(self, person_id: UUID) -> PersonInfo:
        """
        Get person by ID.

        Raises:
            PersonNotFoundError: If person doesn't exist.
        """
        return PersonInfo.from_model(self._get_by_id(person_id))

    def list_people(self, active_only: bool = True) -> list[PersonInfo]:
        """
        List people ordered by name.

        Args:
            active_only: If True, skip soft-deleted people.
        """
        stmt = select(Person)
        if active_only:
            stmt = stmt.where(Person.is_active.is_(True))
        stmt = stmt.order_by(Person.name, Person.created_at)
        return [PersonInfo.from_model(p) for p in self.session.execute(stmt).scalars()]

    def add_person(
        self,
        name: str,
        default_amount: Decimal | int | str,
        phone: str | None = None,
        location: str | None = None,
        photo_path: str | None = None,
        frequency: PersonFrequency | str = PersonFrequency.DAILY,
        notes: str | None = None,
        is_active: bool = True,
    ) -> PersonInfo:
        """
        Register a new person and open their first cycle.

        Args:
            name: Display name (required).
            default_amount: Expected payment per collection (> 0).
            phone: Optional contact number.
            location: Optional address / area.
            photo_path: Optional path to a profile picture.
            frequency: Advisory schedule.
            notes: Free text.
            is_active: Create as active (default) or already deactivated.

        Returns:
            Created PersonInfo DTO.

        Raises:
            InvalidInputError: Empty name or unknown frequency.
            InvalidAmountError: default_amount missing, malformed or <= 0.
        """
        person = Person(
            name=_clean_name(name),
            default_amount=require_positive(default_amount, field="default_amount"),
            phone=_optional_text(phone),
            location=_optional_text(location),
            photo_path=_optional_text(photo_path),
            frequency=_coerce_frequency(frequency),
            notes=_optional_text(notes),
            is_active=is_active,
        )
        self.session.add(person)
        self.session.flush()

        CycleService(self.session, self.clock).create_cycle(person.id)

        logger.info(
            "person_added",
            extra={
                "person_id": str(person.id),
                "default_amount": person.default_amount,
                "frequency": person.frequency,
            },
        )
        return PersonInfo.from_model(person)

    def update_person(
        self,
        person_id: UUID,
        name: str | None = None,
        default_amount: Decimal | int | str | None = None,
        phone: str | None = None,
        location: str | None = None,
        photo_path: str | None = None,
        frequency: PersonFrequency | str | None = None,
        notes: str | None = None,
    ) -> PersonInfo:
        """
        Update person details.  Only provided fields change.

        Raises:
            PersonNotFoundError: If person doesn't exist.
            InvalidInputError / InvalidAmountError: Same rules as add_person.
        """
        person = self._get_by_id(person_id)

        if name is not None:
            person.name = _clean_name(name)
        if default_amount is not None:
            person.default_amount = require_positive(default_amount, field="default_amount")
        if phone is not None:
            person.phone = _optional_text(phone)
        if location is not None:
            person.location = _optional_text(location)
        if photo_path is not None:
            person.photo_path = _optional_text(photo_path)
        if frequency is not None:
            person.frequency = _coerce_frequency(frequency)
        if notes is not None:
            person.notes = _optional_text(notes)

        self.session.flush()
        return PersonInfo.from_model(person)

    def deactivate_person(self, person_id: UUID) -> PersonInfo:
        """
        Soft-delete a person.

        The person disappears from dashboards and lists but every cycle,
        collection and withdrawal stays attached for reports.
        """
        person = self._get_by_id(person_id)
        person.is_active = False
        self.session.flush()
        logger.info("person_deactivated", extra={"person_id": str(person.id)})
        return PersonInfo.from_model(person)

    def reactivate_person(self, person_id: UUID) -> PersonInfo:
        """Reactivate a previously deactivated person."""
        person = self._get_by_id(person_id)
        person.is_active = True
        self.session.flush()
        logger.info("person_reactivated", extra={"person_id": str(person.id)})
        return PersonInfo.from_model(person)
