"""
Ownership and derivation layer.

Every read or write goes through one ownership predicate: each model exposes
``owned_by(user_id)`` and the helpers below apply it, so a record that
belongs to somebody else is indistinguishable from one that does not exist.

Account balances are derived here on every read (initial balance plus the
sum of the account's transaction amounts) and never stored.

Operations that can fail for domain reasons return a ``Result`` instead of
raising; only unexpected persistence faults propagate.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from logging_config import get_logger
from models import Account, Category, Transaction
from schemas import (
    AccountCreate,
    AccountRead,
    CategoryCreate,
    CategoryRead,
    TransactionCreate,
    TransactionRead,
    TransactionSummary,
)

logger = get_logger(__name__)

ZERO = Decimal("0")

ACCOUNT_REFERENCE_ERROR = "Account not found or access denied."
CATEGORY_REFERENCE_ERROR = "Category not found or access denied."
ACCOUNT_IN_USE_ERROR = "Cannot delete account because it still contains transactions."
CATEGORY_IN_USE_ERROR = "Cannot delete category because it still contains transactions."

SUMMARY_GROUPINGS = ("category", "month", "account")


class UnsupportedGroupingError(ValueError):
    pass


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass
class Result:
    outcome: Outcome
    value: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    @classmethod
    def success(cls, value=None) -> "Result":
        return cls(Outcome.OK, value)

    @classmethod
    def not_found(cls, message: Optional[str] = None) -> "Result":
        return cls(Outcome.NOT_FOUND, message=message)

    @classmethod
    def conflict(cls, message: str) -> "Result":
        return cls(Outcome.CONFLICT, message=message)


# ----------------------------
# GENERIC OWNERSHIP HELPERS
# ----------------------------

def owned(db: Session, model, user_id: str):
    return db.query(model).filter(model.owned_by(user_id))


def find_owned(db: Session, model, entity_id: int, user_id: str, *options):
    return (
        owned(db, model, user_id)
        .options(*options)
        .filter(model.id == entity_id)
        .first()
    )


def is_owned(db: Session, model, entity_id: int, user_id: str) -> bool:
    return db.query(
        owned(db, model, user_id).filter(model.id == entity_id).exists()
    ).scalar()


def _save_changes(db: Session, model, entity_id: int, user_id: str) -> Result:
    """Commit an update. A concurrent modification only matters if the row is gone."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        if not is_owned(db, model, entity_id, user_id):
            return Result.not_found()
        logger.warning(
            "concurrent_update_ignored",
            entity=model.__tablename__,
            entity_id=entity_id,
        )
    return Result.success()


def _delete_restricted(db: Session, record, message: str) -> Result:
    entity = record.__tablename__
    entity_id = record.id
    db.delete(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("delete_blocked", entity=entity, entity_id=entity_id)
        return Result.conflict(message)

    logger.info("entity_deleted", entity=entity, entity_id=entity_id)
    return Result.success()


# ----------------------------
# ACCOUNTS
# ----------------------------

def current_balance(account: Account) -> Decimal:
    return account.initial_balance + sum(
        (t.amount for t in account.transactions), ZERO
    )


def account_view(account: Account) -> AccountRead:
    return AccountRead(
        id=account.id,
        name=account.name,
        type=account.type,
        initial_balance=account.initial_balance,
        current_balance=current_balance(account),
    )


def list_accounts(db: Session, user_id: str) -> List[AccountRead]:
    accounts = (
        owned(db, Account, user_id)
        .options(selectinload(Account.transactions))
        .order_by(Account.id)
        .all()
    )
    return [account_view(a) for a in accounts]


def get_account(db: Session, user_id: str, account_id: int) -> Result:
    account = find_owned(
        db, Account, account_id, user_id, selectinload(Account.transactions)
    )
    if not account:
        return Result.not_found()
    return Result.success(account_view(account))


def create_account(db: Session, user_id: str, data: AccountCreate) -> AccountRead:
    account = Account(
        user_id=user_id,
        name=data.name,
        type=data.type,
        initial_balance=data.initial_balance,
    )
    db.add(account)
    db.commit()
    db.refresh(account)

    logger.info("account_created", user_id=user_id, account_id=account.id)
    return account_view(account)


def update_account(
    db: Session, user_id: str, account_id: int, data: AccountCreate
) -> Result:
    account = find_owned(db, Account, account_id, user_id)
    if not account:
        return Result.not_found()

    account.name = data.name
    account.type = data.type
    account.initial_balance = data.initial_balance

    return _save_changes(db, Account, account_id, user_id)


def delete_account(db: Session, user_id: str, account_id: int) -> Result:
    account = find_owned(db, Account, account_id, user_id)
    if not account:
        return Result.not_found()
    return _delete_restricted(db, account, ACCOUNT_IN_USE_ERROR)


# ----------------------------
# CATEGORIES
# ----------------------------

def list_categories(db: Session, user_id: str) -> List[CategoryRead]:
    categories = owned(db, Category, user_id).order_by(Category.id).all()
    return [CategoryRead.model_validate(c) for c in categories]


def get_category(db: Session, user_id: str, category_id: int) -> Result:
    category = find_owned(db, Category, category_id, user_id)
    if not category:
        return Result.not_found()
    return Result.success(CategoryRead.model_validate(category))


def create_category(db: Session, user_id: str, data: CategoryCreate) -> CategoryRead:
    category = Category(
        user_id=user_id,
        name=data.name,
        is_expense=data.is_expense,
    )
    db.add(category)
    db.commit()
    db.refresh(category)

    logger.info("category_created", user_id=user_id, category_id=category.id)
    return CategoryRead.model_validate(category)


def update_category(
    db: Session, user_id: str, category_id: int, data: CategoryCreate
) -> Result:
    category = find_owned(db, Category, category_id, user_id)
    if not category:
        return Result.not_found()

    category.name = data.name
    category.is_expense = data.is_expense

    return _save_changes(db, Category, category_id, user_id)


def delete_category(db: Session, user_id: str, category_id: int) -> Result:
    category = find_owned(db, Category, category_id, user_id)
    if not category:
        return Result.not_found()
    return _delete_restricted(db, category, CATEGORY_IN_USE_ERROR)


# ----------------------------
# TRANSACTIONS
# ----------------------------

def _naive_utc(value):
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def transaction_view(txn: Transaction) -> TransactionRead:
    return TransactionRead(
        id=txn.id,
        date=txn.date,
        amount=txn.amount,
        description=txn.description,
        notes=txn.notes,
        account_id=txn.account_id,
        account_name=txn.account.name,
        category_id=txn.category_id,
        category_name=txn.category.name,
    )


def _with_names():
    return (joinedload(Transaction.account), joinedload(Transaction.category))


def check_references(
    db: Session, user_id: str, account_id: int, category_id: int
) -> Result:
    # Account is reported first when both references are bad
    if not is_owned(db, Account, account_id, user_id):
        return Result.not_found(ACCOUNT_REFERENCE_ERROR)
    if not is_owned(db, Category, category_id, user_id):
        return Result.not_found(CATEGORY_REFERENCE_ERROR)
    return Result.success()


def list_transactions(db: Session, user_id: str) -> List[TransactionRead]:
    transactions = (
        owned(db, Transaction, user_id)
        .options(*_with_names())
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )
    return [transaction_view(t) for t in transactions]


def get_transaction(db: Session, user_id: str, transaction_id: int) -> Result:
    txn = find_owned(db, Transaction, transaction_id, user_id, *_with_names())
    if not txn:
        return Result.not_found()
    return Result.success(transaction_view(txn))


def create_transaction(
    db: Session, user_id: str, data: TransactionCreate
) -> Result:
    refs = check_references(db, user_id, data.account_id, data.category_id)
    if not refs.ok:
        return refs

    txn = Transaction(
        date=_naive_utc(data.date),
        amount=data.amount,
        description=data.description,
        notes=data.notes,
        account_id=data.account_id,
        category_id=data.category_id,
    )
    db.add(txn)
    db.commit()

    logger.info(
        "transaction_created",
        user_id=user_id,
        transaction_id=txn.id,
        account_id=txn.account_id,
    )
    return get_transaction(db, user_id, txn.id)


def update_transaction(
    db: Session, user_id: str, transaction_id: int, data: TransactionCreate
) -> Result:
    txn = find_owned(db, Transaction, transaction_id, user_id)
    if not txn:
        return Result.not_found()

    refs = check_references(db, user_id, data.account_id, data.category_id)
    if not refs.ok:
        return refs

    txn.date = _naive_utc(data.date)
    txn.amount = data.amount
    txn.description = data.description
    txn.notes = data.notes
    txn.account_id = data.account_id
    txn.category_id = data.category_id

    return _save_changes(db, Transaction, transaction_id, user_id)


def delete_transaction(db: Session, user_id: str, transaction_id: int) -> Result:
    txn = find_owned(db, Transaction, transaction_id, user_id)
    if not txn:
        return Result.not_found()

    db.delete(txn)
    db.commit()

    logger.info("entity_deleted", entity="transactions", entity_id=transaction_id)
    return Result.success()


# ----------------------------
# AGGREGATES
# ----------------------------

def _group_key(txn: Transaction, group_by: str) -> str:
    if group_by == "month":
        return txn.date.strftime("%Y-%m")
    if group_by == "account":
        return txn.account.name
    return txn.category.name


def summarize_transactions(
    db: Session, user_id: str, group_by: str = "category"
) -> List[TransactionSummary]:
    """
    Income/expense totals per group.

    Income is the sum of positive amounts, expenses the sum of the absolute
    values of negative amounts. Groups come back sorted by name.
    """
    if group_by not in SUMMARY_GROUPINGS:
        raise UnsupportedGroupingError(f"Unsupported grouping: {group_by}")

    transactions = owned(db, Transaction, user_id).options(*_with_names()).all()

    income = defaultdict(lambda: ZERO)
    expenses = defaultdict(lambda: ZERO)
    for t in transactions:
        key = _group_key(t, group_by)
        if t.amount >= 0:
            income[key] += t.amount
        else:
            expenses[key] += -t.amount

    return [
        TransactionSummary(
            group_name=name,
            total_income=income[name],
            total_expenses=expenses[name],
            net_flow=income[name] - expenses[name],
        )
        for name in sorted(set(income) | set(expenses))
    ]
