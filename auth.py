"""
Identity and token service.

Passwords are hashed with argon2 through passlib, bearer tokens are HS256
JWTs signed with the configured secret. Callers get typed exceptions from
this module; turning them into HTTP responses is main.py's job.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db
from logging_config import get_logger
from models import User

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

MIN_PASSWORD_LENGTH = 8


class AuthError(Exception):
    pass


class DuplicateEmailError(AuthError):
    def __init__(self):
        super().__init__("User with this email already exists.")


class WeakPasswordError(AuthError):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class InvalidCredentialsError(AuthError):
    def __init__(self):
        super().__init__("Invalid authentication request.")


class InvalidTokenError(AuthError):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def password_policy_errors(password: str) -> List[str]:
    """Return one message per violated rule; an empty list means acceptable."""
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Passwords must be at least {MIN_PASSWORD_LENGTH} characters.")
    if not any('0' <= c <= '9' for c in password):
        errors.append("Passwords must have at least one digit ('0'-'9').")
    if not any('a' <= c <= 'z' for c in password):
        errors.append("Passwords must have at least one lowercase ('a'-'z').")
    if not any('A' <= c <= 'Z' for c in password):
        errors.append("Passwords must have at least one uppercase ('A'-'Z').")
    return errors


def find_user_by_email(db: Session, email: str):
    return db.query(User).filter(
        func.lower(User.email) == normalize_email(email)
    ).first()


def register(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> User:
    normalized_email = normalize_email(email)

    if find_user_by_email(db, normalized_email):
        logger.info("registration_rejected", reason="duplicate_email")
        raise DuplicateEmailError()

    errors = password_policy_errors(password)
    if errors:
        logger.info("registration_rejected", reason="weak_password", rules=len(errors))
        raise WeakPasswordError(errors)

    user = User(
        email=normalized_email,
        hashed_password=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_registered", user_id=user.id)
    return user


def verify_credentials(db: Session, email: str, password: str) -> User:
    user = find_user_by_email(db, email)

    # Unknown email and wrong password look the same to the caller
    if not user or not verify_password(password, user.hashed_password):
        logger.info("login_failed")
        raise InvalidCredentialsError()

    logger.info("login_succeeded", user_id=user.id)
    return user


def issue_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user.id,
        "email": user.email,
        "jti": str(uuid.uuid4()),
        "firstName": user.first_name or "",
        "lastName": user.last_name or "",
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + timedelta(days=settings.access_token_expire_days),
    }
    return jwt.encode(
        claims, settings.secret_key.get_secret_value(), algorithm=settings.algorithm
    )


def validate_token(token: str, settings: Settings) -> dict:
    try:
        claims = jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[settings.algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    if not claims.get("sub"):
        raise InvalidTokenError("Token has no subject")
    return claims


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = validate_token(token, settings)
    except InvalidTokenError:
        raise credentials_exception

    user = db.get(User, claims["sub"])
    if not user:
        raise credentials_exception

    return user
