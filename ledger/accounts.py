import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from .errors import AlreadyProcessedError, EntityNotFoundError, InvalidRequestError
from .models import (
    AccountOverview,
    CreateProjectRequest,
    FieldType,
    LedgerHistoryResponse,
    Project,
    ProjectField,
    RegisterUserRequest,
    RegistrationStatus,
    ReviewStatus,
    Submission,
    SubmissionValueInput,
    Transaction,
    User,
    UserSummary,
)
from .referrals import ReferralGraphResolver
from .service import submission_from_row, utcnow
from .storage import InMemoryStorage, UnitOfWork

logger = logging.getLogger(__name__)


class RegistrationService:
    def __init__(self, storage: InMemoryStorage, timeout: Optional[float] = None):
        self.storage = storage
        self.timeout = timeout

    def register_user(self, request: RegisterUserRequest) -> User:
        email = request.email.strip().lower()
        referral_code = request.referral_code.strip()

        with self.storage.transaction(timeout=self.timeout) as tx:
            if tx.find_one("users", email=email):
                raise InvalidRequestError(f"Email {email} is already registered")
            if tx.find_one("users", referral_code=referral_code):
                raise InvalidRequestError(f"Referral code {referral_code} is already taken")

            # The upline must already exist, so the referral graph stays acyclic.
            upline_id = None
            if request.upline_referral_code:
                upline = tx.find_one("users", referral_code=request.upline_referral_code.strip())
                if upline is None:
                    raise EntityNotFoundError(f"Referral code {request.upline_referral_code} is not valid")
                upline_id = upline["id"]

            row = tx.insert("users", {
                "name": request.name,
                "email": email,
                "picture": request.picture,
                "referral_code": referral_code,
                "upline_id": upline_id,
                "role": request.role,
                "registration_status": RegistrationStatus.PENDING,
                "balance": Decimal("0.00"),
                "created_at": utcnow(),
            })

        logger.info(f"Registered user {row['id']} with upline {upline_id}")
        return User(**row)

    def approve_registration(self, user_id: int) -> User:
        return self._review(user_id, RegistrationStatus.APPROVED)

    def reject_registration(self, user_id: int) -> User:
        return self._review(user_id, RegistrationStatus.REJECTED)

    def _review(self, user_id: int, status: RegistrationStatus) -> User:
        with self.storage.transaction(timeout=self.timeout) as tx:
            user = tx.get("users", user_id)
            if user is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            if user["registration_status"] != RegistrationStatus.PENDING:
                raise AlreadyProcessedError(f"Registration of user {user_id} was already processed")
            row = tx.update("users", user_id, registration_status=status)

        logger.info(f"Registration of user {user_id} set to {status.value}")
        return User(**row)


class ProjectCatalog:
    def __init__(self, storage: InMemoryStorage, decimal_places: int = 2, timeout: Optional[float] = None):
        self.storage = storage
        self.decimal_places = decimal_places
        self.timeout = timeout

    def create_project(self, request: CreateProjectRequest) -> Project:
        # Values must be payable in whole minor units.
        if request.value.as_tuple().exponent < -self.decimal_places:
            raise InvalidRequestError(
                f"Project value {request.value} has more than {self.decimal_places} decimal places"
            )

        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.insert("projects", {
                "name": request.name,
                "description": request.description,
                "value": request.value,
                "created_by": request.created_by,
                "created_at": utcnow(),
            })
            for position, definition in enumerate(request.fields):
                tx.insert("project_fields", {
                    "project_id": row["id"],
                    "position": position,
                    "label": definition.label,
                    "field_type": definition.field_type,
                    "required": definition.required,
                })
            project = self._build(tx, row)

        logger.info(f"Created project {project.id} worth {project.value} with {len(project.fields)} field(s)")
        return project

    def get_project(self, project_id: int) -> Project:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("projects", project_id)
            if row is None:
                raise EntityNotFoundError(f"Project {project_id} not found")
            return self._build(tx, row)

    @staticmethod
    def _build(tx: UnitOfWork, row: dict) -> Project:
        fields = [ProjectField(**f) for f in tx.find("project_fields", project_id=row["id"])]
        fields.sort(key=lambda f: f.position)
        return Project(**row, fields=fields)


class SubmissionIntakeService:
    """Accepts worker submissions, validated against the project's field schema."""

    def __init__(self, storage: InMemoryStorage, timeout: Optional[float] = None):
        self.storage = storage
        self.timeout = timeout

    def submit_work(self, user_id: int, project_id: int, values: Sequence[SubmissionValueInput]) -> Submission:
        with self.storage.transaction(timeout=self.timeout) as tx:
            if tx.get("users", user_id) is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            if tx.get("projects", project_id) is None:
                raise EntityNotFoundError(f"Project {project_id} not found")

            fields = {f["id"]: f for f in tx.find("project_fields", project_id=project_id)}
            self._validate(fields, values)

            row = tx.insert("submissions", {
                "user_id": user_id,
                "project_id": project_id,
                "status": ReviewStatus.PENDING,
                "created_at": utcnow(),
                "processed_at": None,
                "processed_by": None,
                "admin_note": None,
            })
            for item in values:
                tx.insert("submission_values", {
                    "submission_id": row["id"],
                    "field_id": item.field_id,
                    "value": item.value,
                })
            submission = submission_from_row(tx, row)

        logger.info(f"User {user_id} submitted work {submission.id} for project {project_id}")
        return submission

    @staticmethod
    def _validate(fields: dict[int, dict], values: Sequence[SubmissionValueInput]) -> None:
        seen = set()
        for item in values:
            if item.field_id not in fields:
                raise InvalidRequestError(f"Field {item.field_id} does not belong to this project")
            if item.field_id in seen:
                raise InvalidRequestError(f"Field {item.field_id} was given more than once")
            seen.add(item.field_id)

            definition = fields[item.field_id]
            if definition["required"] and not item.value.strip():
                raise InvalidRequestError(f"Field '{definition['label']}' must not be empty")
            if definition["field_type"] == FieldType.NUMBER and item.value.strip():
                try:
                    Decimal(item.value.strip())
                except InvalidOperation:
                    raise InvalidRequestError(f"Field '{definition['label']}' must be a number") from None
            if definition["field_type"] == FieldType.URL and item.value.strip():
                if not item.value.strip().startswith(("http://", "https://")):
                    raise InvalidRequestError(f"Field '{definition['label']}' must be an http(s) URL")

        missing = [f["label"] for key, f in fields.items() if f["required"] and key not in seen]
        if missing:
            raise InvalidRequestError(f"Missing required field(s): {', '.join(missing)}")


class AccountService:
    def __init__(self, storage: InMemoryStorage, timeout: Optional[float] = None):
        self.storage = storage
        self.timeout = timeout
        self.referrals = ReferralGraphResolver(storage)

    def get_user(self, user_id: int) -> User:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("users", user_id)
        if row is None:
            raise EntityNotFoundError(f"User {user_id} not found")
        return User(**row)

    def get_account(self, user_id: int) -> AccountOverview:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("users", user_id)
            if row is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            upline = tx.get("users", row["upline_id"]) if row["upline_id"] is not None else None
            downlines = self.referrals.list_downlines(user_id)
            entries = tx.find("transactions", user_id=user_id)

        return AccountOverview(
            user=User(**row),
            upline=UserSummary(**upline) if upline else None,
            downlines=[UserSummary.model_validate(d) for d in downlines],
            transactions=self._newest_first(entries),
        )

    def get_ledger_history(self, user_id: int, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("users", user_id)
            if row is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            entries = tx.find("transactions", user_id=user_id)

        all_entries = self._newest_first(entries)
        return LedgerHistoryResponse(
            user_id=user_id,
            entries=all_entries[offset:offset + limit],
            total_count=len(all_entries),
            current_balance=row["balance"],
        )

    @staticmethod
    def _newest_first(rows: list[dict]) -> list[Transaction]:
        entries = [Transaction(**r) for r in rows]
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return entries
