"""Tests for the document repository."""

from __future__ import annotations

from datetime import date

import pytest

from office_workflow_bot.models import ConflictError, NotFoundError
from office_workflow_bot.workflows import (
    AttendanceRecord,
    BudgetRequest,
    attendance_repository,
    budget_repository,
    leave_repository,
)
from office_workflow_bot.workflows.storage import DuplicateKeyError


def _budget_request(**overrides) -> BudgetRequest:
    data = {
        "created_by": "U1",
        "name": "Q3 promo",
        "partner": "acme",
        "amount": "500",
        "purpose": "ads",
        "deadline": "2025-01-01",
    }
    data.update(overrides)
    return BudgetRequest(**data)


def test_create_assigns_identifier_and_version():
    repository = budget_repository()

    created = repository.create(_budget_request())

    assert len(created.id) == 32
    assert created.version == 1
    assert created.created_at is not None

    loaded = repository.get(created.id)
    assert loaded.name == "Q3 promo"
    assert loaded.version == 1
    assert "version" not in loaded.model_dump()


def test_replace_increments_version():
    repository = budget_repository()
    created = repository.create(_budget_request())

    created.purpose = "brand ads"
    replaced = repository.replace(created)

    assert replaced.version == 2
    assert repository.get(created.id).purpose == "brand ads"


def test_concurrent_replace_raises_conflict():
    repository = budget_repository()
    created = repository.create(_budget_request())
    first = repository.get(created.id)
    second = repository.get(created.id)

    first.purpose = "winner"
    repository.replace(first)
    second.purpose = "loser"

    with pytest.raises(ConflictError):
        repository.replace(second)

    assert repository.get(created.id).purpose == "winner"


@pytest.mark.parametrize("document_id", ["", "123", "g" * 32, None])
def test_malformed_identifiers_are_not_found(document_id):
    with pytest.raises(NotFoundError):
        budget_repository().get(document_id)


def test_get_does_not_cross_collections():
    created = budget_repository().create(_budget_request())

    with pytest.raises(NotFoundError):
        leave_repository().get(created.id)


def test_natural_key_is_unique_per_collection():
    repository = attendance_repository()
    record = AttendanceRecord(
        user_id="U1",
        username="Ann",
        channel_id="CATT",
        day=date(2025, 3, 3),
        check_in="2025-03-03T09:00:00+00:00",
    )
    repository.create(record)

    with pytest.raises(DuplicateKeyError):
        repository.create(record.model_copy())

    found = repository.find_by_key("U1:2025-03-03")
    assert found is not None and found.username == "Ann"
    assert repository.find_by_key("U2:2025-03-03") is None


def test_list_between_filters_by_day_and_owner():
    repository = attendance_repository()
    for user_id, day in (("U1", date(2025, 3, 1)), ("U1", date(2025, 3, 3)), ("U2", date(2025, 3, 3))):
        repository.create(
            AttendanceRecord(
                user_id=user_id,
                username=user_id,
                channel_id="CATT",
                day=day,
                check_in=f"{day.isoformat()}T09:00:00+00:00",
            )
        )

    in_range = repository.list_between(date(2025, 3, 2), date(2025, 3, 3))
    assert sorted(record.user_id for record in in_range) == ["U1", "U2"]

    own = repository.list_between(date(2025, 3, 1), date(2025, 3, 3), owner_id="U1")
    assert [record.day for record in own] == [date(2025, 3, 1), date(2025, 3, 3)]
