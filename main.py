from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import auth
import models
import ownership
from config import Settings, get_settings
from database import engine, get_db
from logging_config import configure_logging, get_logger
from models import User
from ownership import Outcome, Result
from schemas import (
    AccountCreate,
    AccountRead,
    AuthResult,
    CategoryCreate,
    CategoryRead,
    TransactionCreate,
    TransactionRead,
    TransactionSummary,
    UserLogin,
    UserProfile,
    UserRegister,
)

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    models.Base.metadata.create_all(bind=engine)
    logger.info("startup", environment=settings.app_env)
    yield


app = FastAPI(title="FinTrack API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


AUTH_PAYLOAD_ERRORS = {
    "/auth/register": "Invalid payload for registration.",
    "/auth/login": "Invalid login payload.",
}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Auth routes always answer with an AuthResult body
    auth_error = AUTH_PAYLOAD_ERRORS.get(request.url.path)
    if auth_error:
        return auth_response(400, AuthResult(is_success=False, errors=[auth_error]))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def unwrap(result: Result):
    """Map a failed Result onto the matching HTTP error, or return its value."""
    if result.outcome is Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.message or "Not Found")
    if result.outcome is Outcome.CONFLICT:
        raise HTTPException(status_code=400, detail=result.message)
    return result.value


def auth_response(status_code: int, result: AuthResult) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(by_alias=True, mode="json"),
    )


@app.get("/")
def root():
    return {"message": "FinTrack API is running"}


# ----------------------------
# AUTH
# ----------------------------

@app.post("/auth/register", response_model=AuthResult)
def register(
    data: UserRegister,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        user = auth.register(
            db,
            email=data.email,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
        )
    except auth.WeakPasswordError as exc:
        return auth_response(400, AuthResult(is_success=False, errors=exc.errors))
    except auth.DuplicateEmailError as exc:
        return auth_response(400, AuthResult(is_success=False, errors=[str(exc)]))

    return AuthResult(
        is_success=True,
        token=auth.issue_token(user, settings),
        display_name=user.first_name,
    )


@app.post("/auth/login", response_model=AuthResult)
def login(
    data: UserLogin,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        user = auth.verify_credentials(db, data.email, data.password)
    except auth.InvalidCredentialsError as exc:
        return auth_response(401, AuthResult(is_success=False, errors=[str(exc)]))

    return AuthResult(
        is_success=True,
        token=auth.issue_token(user, settings),
        display_name=user.first_name,
    )


@app.get("/auth/me", response_model=UserProfile)
def me(current_user: User = Depends(auth.get_current_user)):
    return current_user


# ----------------------------
# ACCOUNTS
# ----------------------------

@app.get("/accounts", response_model=List[AccountRead])
def get_accounts(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return ownership.list_accounts(db, current_user.id)


@app.get("/accounts/{account_id}", response_model=AccountRead)
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return unwrap(ownership.get_account(db, current_user.id, account_id))


@app.post("/accounts", response_model=AccountRead, status_code=201)
def create_account(
    data: AccountCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    account = ownership.create_account(db, current_user.id, data)
    response.headers["Location"] = f"/accounts/{account.id}"
    return account


@app.put("/accounts/{account_id}", status_code=204)
def update_account(
    account_id: int,
    data: AccountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.update_account(db, current_user.id, account_id, data))
    return Response(status_code=204)


@app.delete("/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.delete_account(db, current_user.id, account_id))
    return Response(status_code=204)


# ----------------------------
# CATEGORIES
# ----------------------------

@app.get("/categories", response_model=List[CategoryRead])
def get_categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return ownership.list_categories(db, current_user.id)


@app.get("/categories/{category_id}", response_model=CategoryRead)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return unwrap(ownership.get_category(db, current_user.id, category_id))


@app.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(
    data: CategoryCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    category = ownership.create_category(db, current_user.id, data)
    response.headers["Location"] = f"/categories/{category.id}"
    return category


@app.put("/categories/{category_id}", status_code=204)
def update_category(
    category_id: int,
    data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.update_category(db, current_user.id, category_id, data))
    return Response(status_code=204)


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.delete_category(db, current_user.id, category_id))
    return Response(status_code=204)


# ----------------------------
# TRANSACTIONS
# ----------------------------

@app.get("/transactions", response_model=List[TransactionRead])
def get_transactions(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return ownership.list_transactions(db, current_user.id)


# Declared before /transactions/{transaction_id} so "summary" is not read as an id
@app.get("/transactions/summary", response_model=List[TransactionSummary])
def transaction_summary(
    group_by: str = Query("category", alias="groupBy"),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    try:
        return ownership.summarize_transactions(db, current_user.id, group_by)
    except ownership.UnsupportedGroupingError:
        raise HTTPException(
            status_code=400,
            detail=f"groupBy must be one of: {', '.join(ownership.SUMMARY_GROUPINGS)}",
        )


@app.get("/transactions/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    return unwrap(ownership.get_transaction(db, current_user.id, transaction_id))


@app.post("/transactions", response_model=TransactionRead, status_code=201)
def create_transaction(
    data: TransactionCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    txn = unwrap(ownership.create_transaction(db, current_user.id, data))
    response.headers["Location"] = f"/transactions/{txn.id}"
    return txn


@app.put("/transactions/{transaction_id}", status_code=204)
def update_transaction(
    transaction_id: int,
    data: TransactionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.update_transaction(db, current_user.id, transaction_id, data))
    return Response(status_code=204)


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    unwrap(ownership.delete_transaction(db, current_user.id, transaction_id))
    return Response(status_code=204)


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
