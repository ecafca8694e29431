import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from database import Base


# -------------------------------
# USER MODEL (AUTH)
# -------------------------------

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(256), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    accounts = relationship("Account", back_populates="user", passive_deletes="all")
    categories = relationship("Category", back_populates="user", passive_deletes="all")


# -------------------------------
# ACCOUNT MODEL
# -------------------------------

class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name = Column(String(100), nullable=False)
    type = Column(String(50), nullable=False)          # Checking | Savings | Credit Card ...
    initial_balance = Column(Numeric(18, 2), nullable=False, default=0)

    user = relationship("User", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="account", passive_deletes="all")

    @classmethod
    def owned_by(cls, user_id):
        return cls.user_id == user_id


# -------------------------------
# CATEGORY MODEL
# -------------------------------

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name = Column(String(50), nullable=False)
    is_expense = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="categories")
    transactions = relationship("Transaction", back_populates="category", passive_deletes="all")

    @classmethod
    def owned_by(cls, user_id):
        return cls.user_id == user_id


# -------------------------------
# TRANSACTION MODEL
# -------------------------------

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)

    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)    # positive = inflow, negative = outflow
    description = Column(String(200), nullable=False)
    notes = Column(String(500), nullable=True)

    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    account = relationship("Account", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")

    @classmethod
    def owned_by(cls, user_id):
        # Owner is inherited from the account
        return cls.account.has(Account.user_id == user_id)
