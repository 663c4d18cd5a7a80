from decimal import Decimal
from typing import Optional

import pytest

from ledger.accounts import ProjectCatalog, RegistrationService, SubmissionIntakeService
from ledger.balance import BalanceAccessor
from ledger.models import (
    CreateProjectRequest,
    FieldType,
    ProjectFieldDefinition,
    RegisterUserRequest,
    SubmissionValueInput,
)
from ledger.storage import InMemoryStorage


class World:
    """Small factory around one store, used to set up test scenarios."""

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage
        self.registrations = RegistrationService(storage)
        self.projects = ProjectCatalog(storage)
        self.intake = SubmissionIntakeService(storage)
        self.balances = BalanceAccessor(storage)
        self._counter = 0

    def user(self, name: str, upline=None, balance: Decimal = Decimal("0"), referral_code: Optional[str] = None):
        self._counter += 1
        user = self.registrations.register_user(RegisterUserRequest(
            name=name,
            email=f"{name.lower()}{self._counter}@example.com",
            referral_code=referral_code or f"{name.upper()}{self._counter:03d}",
            upline_referral_code=upline.referral_code if upline else None,
        ))
        if balance:
            self.balances.adjust_balance(user.id, balance)
        return user

    def project(self, value: Decimal = Decimal("100000"), fields=None):
        if fields is None:
            fields = [ProjectFieldDefinition(label="Proof link", field_type=FieldType.URL)]
        return self.projects.create_project(CreateProjectRequest(name="Review an app", value=value, fields=fields))

    def submission(self, worker, project):
        values = [SubmissionValueInput(field_id=f.id, value="https://example.com/proof.png") for f in project.fields]
        return self.intake.submit_work(worker.id, project.id, values)

    def balance(self, user) -> Decimal:
        return self.balances.get_balance(user.id)


@pytest.fixture
def storage():
    return InMemoryStorage(default_timeout=2.0)


@pytest.fixture
def world(storage):
    return World(storage)


@pytest.fixture
def world_for():
    """Build a ``World`` around a store the test constructs itself."""
    return World
