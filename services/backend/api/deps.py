"""Shared API dependencies: caller identity and the lifecycle engine"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt

from config import get_settings
from domain.errors import PermissionDeniedError
from domain.lifecycle import ReportLifecycle, Responder

ROLES = ("resident", "responder", "admin")


@dataclass(frozen=True)
class Identity:
    subject: str
    username: str
    display_name: str
    role: str

    def as_responder(self) -> Responder:
        return Responder(identity=self.subject, display_name=self.display_name)


def decode_identity(token: str) -> Identity:
    settings = get_settings()
    claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    subject = claims.get("sub")
    role = claims.get("role")
    if not subject or role not in ROLES:
        raise JWTError("Token is missing subject or role")

    username = claims.get("username") or subject
    name = claims.get("name") or " ".join(
        part for part in (claims.get("firstName"), claims.get("lastName")) if part
    )
    return Identity(subject=str(subject), username=username, display_name=name or username, role=role)


def get_identity(authorization: Optional[str] = Header(None)) -> Identity:
    """Verified caller identity. Fails closed."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    try:
        scheme, token = authorization.split(" ", 1)
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
        return decode_identity(token)
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def require_role(*roles: str):
    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise PermissionDeniedError(f"Role '{identity.role}' may not perform this action")
        return identity

    return dependency


def get_lifecycle(request: Request) -> ReportLifecycle:
    return request.app.state.lifecycle
