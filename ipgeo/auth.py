"""Password login and opaque bearer tokens.

Tokens are handed out as ``"<token id>|<secret>"``; only the SHA-256 digest of the
secret is stored, so a leaked database does not leak usable tokens.
"""

import hashlib
import hmac
import secrets
from typing import Annotated

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from ipgeo.config import Settings, get_settings
from ipgeo.database import get_session, utcnow
from ipgeo.errors import AuthenticationError
from ipgeo.logger import logger
from ipgeo.models.db_models import AccessToken, User
from ipgeo.models.request_models import LoginRequest
from ipgeo.models.response_models import (
    ErrorResponse,
    LoginData,
    LoginResponse,
    MessageResponse,
    UserOut,
    UserResponse,
)

_password_hasher = PasswordHasher()
bearer_scheme = HTTPBearer(auto_error=False)

router = APIRouter(tags=["auth"])


def hash_password(password: str) -> str:
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def _digest(secret: str) -> str:
    return hashlib.sha256(secret.encode()).hexdigest()


def register_user(session: Session, name: str, email: str, password: str) -> User:
    """Create a user with an argon2-hashed password."""
    user = User(name=name, email=email.strip().lower(), password_hash=hash_password(password))
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def authenticate(session: Session, email: str, password: str) -> User | None:
    user = session.scalar(select(User).where(User.email == email.strip().lower()))
    if user is None or not verify_password(user.password_hash, password):
        return None
    return user


def issue_token(session: Session, user: User, name: str) -> str:
    """Persist a new access token for `user` and return its plaintext form."""
    secret = secrets.token_hex(20)
    token = AccessToken(user_id=user.id, name=name, token_hash=_digest(secret))
    session.add(token)
    session.commit()
    session.refresh(token)
    return f"{token.id}|{secret}"


def find_token(session: Session, plaintext: str) -> AccessToken | None:
    token_id, separator, secret = plaintext.partition("|")
    if not separator:
        return session.scalar(select(AccessToken).where(AccessToken.token_hash == _digest(plaintext)))

    if not token_id.isdigit():
        return None
    token = session.get(AccessToken, int(token_id))
    if token is None or not hmac.compare_digest(token.token_hash, _digest(secret)):
        return None
    return token


def get_current_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: Annotated[Session, Depends(get_session)],
) -> AccessToken:
    """Resolve the bearer token on the request, raising AuthenticationError if there is none."""
    if credentials is None:
        raise AuthenticationError("Unauthenticated.")

    token = find_token(session, credentials.credentials)
    if token is None:
        raise AuthenticationError("Unauthenticated.")

    token.last_used_at = utcnow()
    session.commit()
    return token


def get_current_user(token: Annotated[AccessToken, Depends(get_current_token)]) -> User:
    return token.user


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse}},
    summary="Exchange email and password for a bearer token.",
)
def login(
    request: Request,
    credentials: LoginRequest,
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    user = authenticate(session, credentials.email, credentials.password)
    if user is None:
        logger.info(f"Rejected login path={request.url.path} email={credentials.email}")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=ErrorResponse(message="Invalid credentials").model_dump(exclude_none=True),
        )

    token = issue_token(session, user, settings.token_name)
    logger.info(f"User logged in user_id={user.id}")
    return LoginResponse(data=LoginData(user=UserOut.model_validate(user), token=token))


@router.post("/logout", response_model=MessageResponse, summary="Revoke the token used for this request.")
def logout(
    token: Annotated[AccessToken, Depends(get_current_token)],
    session: Annotated[Session, Depends(get_session)],
) -> MessageResponse:
    user_id = token.user_id
    session.delete(token)
    session.commit()
    logger.info(f"User logged out user_id={user_id}")
    return MessageResponse(message="Logged out successfully")


@router.get("/user", response_model=UserResponse, summary="Return the authenticated user.")
def current_user(user: Annotated[User, Depends(get_current_user)]) -> UserResponse:
    return UserResponse(data=UserOut.model_validate(user))
