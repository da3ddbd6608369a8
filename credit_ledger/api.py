from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .models import (
    AdminContext,
    BalanceSummary,
    CreditTransaction,
    DashboardAggregate,
    LedgerHistory,
    RegistrationRequest,
    TransactionRequest,
    UserAccount,
)
from .service import (
    DuplicateEmailError,
    LedgerError,
    LedgerService,
    StorageUnavailable,
    ValidationError,
)

app = FastAPI(
    title="Credit Ledger API",
    description="Append-only credit ledger, wallet balances and dashboard reporting",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService()


def get_ledger_service() -> LedgerService:
    return ledger_service


def get_admin_context(x_admin_email: Optional[str] = Header(default=None)) -> AdminContext:
    if not x_admin_email or not x_admin_email.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Admin-Email header is required")
    return AdminContext(admin_email=x_admin_email)


def _http_error(e: LedgerError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, DuplicateEmailError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, StorageUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger storage unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "credit-ledger"}


@app.post("/transactions/topups", response_model=CreditTransaction, status_code=status.HTTP_201_CREATED, tags=["Transactions"])
def create_top_up(
    request: TransactionRequest,
    context: AdminContext = Depends(get_admin_context),
    service: LedgerService = Depends(get_ledger_service),
) -> CreditTransaction:
    try:
        return service.top_up(context, request.user_email, request.amount, request.note)
    except LedgerError as e:
        raise _http_error(e)


@app.post("/transactions/spends", response_model=CreditTransaction, status_code=status.HTTP_201_CREATED, tags=["Transactions"])
def create_spend(
    request: TransactionRequest,
    context: AdminContext = Depends(get_admin_context),
    service: LedgerService = Depends(get_ledger_service),
) -> CreditTransaction:
    try:
        return service.charge(context, request.user_email, request.amount, request.note)
    except LedgerError as e:
        raise _http_error(e)


@app.get("/transactions/topups/recent", response_model=List[CreditTransaction], tags=["Transactions"])
def get_recent_top_ups(
    limit: Optional[int] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> List[CreditTransaction]:
    try:
        return service.recent_top_ups(limit)
    except LedgerError as e:
        raise _http_error(e)


@app.get("/users", response_model=List[UserAccount], tags=["Users"])
def list_users(q: str = "", service: LedgerService = Depends(get_ledger_service)) -> List[UserAccount]:
    try:
        return service.search_users(q)
    except LedgerError as e:
        raise _http_error(e)


@app.get("/users/{email}/balance", response_model=BalanceSummary, tags=["Users"])
def get_user_balance(email: str, service: LedgerService = Depends(get_ledger_service)) -> BalanceSummary:
    try:
        return service.get_balance(email)
    except LedgerError as e:
        raise _http_error(e)


@app.get("/users/{email}/ledger", response_model=LedgerHistory, tags=["Users"])
def get_user_ledger(
    email: str,
    limit: int = 50,
    offset: int = 0,
    service: LedgerService = Depends(get_ledger_service),
) -> LedgerHistory:
    try:
        return service.get_history(email, limit, offset)
    except LedgerError as e:
        raise _http_error(e)


@app.get("/dashboard", response_model=DashboardAggregate, tags=["Reporting"])
def get_dashboard(
    start: Optional[date] = None,
    end: Optional[date] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> DashboardAggregate:
    try:
        return service.dashboard(start, end)
    except LedgerError as e:
        raise _http_error(e)


@app.post("/accounts", response_model=UserAccount, status_code=status.HTTP_201_CREATED, tags=["Accounts"])
def register_account(
    request: RegistrationRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> UserAccount:
    try:
        return service.register(
            request.full_name,
            request.email,
            request.phone,
            request.password,
            request.telegram,
            request.program,
            request.confirm_password,
        )
    except LedgerError as e:
        raise _http_error(e)


if __name__ == "__main__":
    import uvicorn

    from .logging_setup import configure_logging

    configure_logging(get_settings().LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=8000)
