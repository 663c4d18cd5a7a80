from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .accounts import AccountService, ProjectCatalog, RegistrationService, SubmissionIntakeService
from .config import Settings, configure_logging, get_settings
from .errors import (
    AlreadyProcessedError,
    EntityNotFoundError,
    InsufficientFundsError,
    InvalidRequestError,
    LedgerServiceError,
    StorageError,
    TransactionConflictError,
    TransactionTimeoutError,
)
from .models import (
    ADMIN_ROLES,
    AccountOverview,
    CreateProjectRequest,
    LedgerHistoryResponse,
    Project,
    RegisterUserRequest,
    ReviewNoteRequest,
    Role,
    Submission,
    SubmissionReviewResponse,
    SubmitWorkRequest,
    User,
    Withdrawal,
    WithdrawalRequest,
    WithdrawalReviewResponse,
)
from .service import SubmissionApprovalService, WithdrawalApprovalService
from .storage import InMemoryStorage

ERROR_STATUS = {
    EntityNotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyProcessedError: status.HTTP_409_CONFLICT,
    TransactionConflictError: status.HTTP_409_CONFLICT,
    InsufficientFundsError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransactionTimeoutError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass
class Services:
    registrations: RegistrationService
    projects: ProjectCatalog
    intake: SubmissionIntakeService
    submissions: SubmissionApprovalService
    withdrawals: WithdrawalApprovalService
    accounts: AccountService


class Caller(BaseModel):
    id: int
    role: Role


def build_services(storage: InMemoryStorage, settings: Settings) -> Services:
    timeout = settings.transaction_timeout_seconds
    return Services(
        registrations=RegistrationService(storage, timeout=timeout),
        projects=ProjectCatalog(storage, decimal_places=settings.currency_decimal_places, timeout=timeout),
        intake=SubmissionIntakeService(storage, timeout=timeout),
        submissions=SubmissionApprovalService(
            storage,
            schedule=settings.commission_schedule(),
            upline_depth=settings.upline_depth,
            timeout=timeout,
        ),
        withdrawals=WithdrawalApprovalService(
            storage, decimal_places=settings.currency_decimal_places, timeout=timeout
        ),
        accounts=AccountService(storage, timeout=timeout),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_caller(
    x_caller_id: Optional[int] = Header(default=None),
    x_caller_role: Optional[Role] = Header(default=None),
) -> Caller:
    # Identity is established upstream; these headers carry the verified result.
    if x_caller_id is None or x_caller_role is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Caller identity missing")
    return Caller(id=x_caller_id, role=x_caller_role)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return caller


def create_app(storage: Optional[InMemoryStorage] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    storage = storage or InMemoryStorage(default_timeout=settings.transaction_timeout_seconds)

    app = FastAPI(
        title="Referral Task Ledger API",
        description="Task marketplace ledger with two-level referral commissions and audited payouts",
        version="1.0.0",
    )
    app.state.storage = storage
    app.state.services = build_services(storage, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerServiceError)
    async def handle_ledger_error(request: Request, exc: LedgerServiceError) -> JSONResponse:
        code = next(
            (c for kind, c in ERROR_STATUS.items() if isinstance(exc, kind)),
            status.HTTP_400_BAD_REQUEST,
        )
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": settings.service_name}

    @app.post("/users", response_model=User, status_code=status.HTTP_201_CREATED, tags=["Users"])
    def register_user(request: RegisterUserRequest, services: Services = Depends(get_services)) -> User:
        if request.role != Role.WORKER:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only worker accounts can self-register")
        return services.registrations.register_user(request)

    @app.get("/me", response_model=AccountOverview, tags=["Users"])
    def get_me(caller: Caller = Depends(get_caller), services: Services = Depends(get_services)) -> AccountOverview:
        return services.accounts.get_account(caller.id)

    @app.get("/users/{user_id}/ledger", response_model=LedgerHistoryResponse, tags=["Users"])
    def get_user_ledger(
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        caller: Caller = Depends(get_caller),
        services: Services = Depends(get_services),
    ) -> LedgerHistoryResponse:
        if caller.id != user_id and caller.role not in ADMIN_ROLES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your ledger")
        return services.accounts.get_ledger_history(user_id, limit, offset)

    @app.get("/projects/{project_id}", response_model=Project, tags=["Projects"])
    def get_project(
        project_id: int, _: Caller = Depends(get_caller), services: Services = Depends(get_services)
    ) -> Project:
        return services.projects.get_project(project_id)

    @app.post("/projects/{project_id}/submit", response_model=Submission,
              status_code=status.HTTP_201_CREATED, tags=["Submissions"])
    def submit_work(
        project_id: int,
        request: SubmitWorkRequest,
        caller: Caller = Depends(get_caller),
        services: Services = Depends(get_services),
    ) -> Submission:
        return services.intake.submit_work(caller.id, project_id, request.values)

    @app.post("/withdrawals", response_model=Withdrawal, status_code=status.HTTP_201_CREATED, tags=["Withdrawals"])
    def request_withdrawal(
        request: WithdrawalRequest, caller: Caller = Depends(get_caller), services: Services = Depends(get_services)
    ) -> Withdrawal:
        return services.withdrawals.request_withdrawal(caller.id, request.amount)

    @app.put("/admin/users/{user_id}/approve", response_model=User, tags=["Admin"])
    def approve_registration(
        user_id: int, _: Caller = Depends(require_admin), services: Services = Depends(get_services)
    ) -> User:
        return services.registrations.approve_registration(user_id)

    @app.put("/admin/users/{user_id}/reject", response_model=User, tags=["Admin"])
    def reject_registration(
        user_id: int, _: Caller = Depends(require_admin), services: Services = Depends(get_services)
    ) -> User:
        return services.registrations.reject_registration(user_id)

    @app.post("/admin/projects", response_model=Project, status_code=status.HTTP_201_CREATED, tags=["Admin"])
    def create_project(
        request: CreateProjectRequest, caller: Caller = Depends(require_admin), services: Services = Depends(get_services)
    ) -> Project:
        return services.projects.create_project(request.model_copy(update={"created_by": caller.id}))

    @app.put("/admin/submissions/{submission_id}/approve", response_model=SubmissionReviewResponse, tags=["Admin"])
    def approve_submission(
        submission_id: int, caller: Caller = Depends(require_admin), services: Services = Depends(get_services)
    ) -> SubmissionReviewResponse:
        return services.submissions.approve_submission(submission_id, approver_id=caller.id)

    @app.put("/admin/submissions/{submission_id}/reject", response_model=SubmissionReviewResponse, tags=["Admin"])
    def reject_submission(
        submission_id: int,
        request: Optional[ReviewNoteRequest] = None,
        caller: Caller = Depends(require_admin),
        services: Services = Depends(get_services),
    ) -> SubmissionReviewResponse:
        note = request.note if request else None
        return services.submissions.reject_submission(submission_id, note=note, approver_id=caller.id)

    @app.put("/admin/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalReviewResponse, tags=["Admin"])
    def approve_withdrawal(
        withdrawal_id: int, caller: Caller = Depends(require_admin), services: Services = Depends(get_services)
    ) -> WithdrawalReviewResponse:
        return services.withdrawals.approve_withdrawal(withdrawal_id, approver_id=caller.id)

    @app.put("/admin/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalReviewResponse, tags=["Admin"])
    def reject_withdrawal(
        withdrawal_id: int,
        request: Optional[ReviewNoteRequest] = None,
        caller: Caller = Depends(require_admin),
        services: Services = Depends(get_services),
    ) -> WithdrawalReviewResponse:
        note = request.note if request else None
        return services.withdrawals.reject_withdrawal(withdrawal_id, note=note, approver_id=caller.id)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
