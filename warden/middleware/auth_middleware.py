"""Authentication middleware"""

from typing import Optional
from fastapi import Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from warden.database.database import get_db
from warden.database.models import User, Session as SessionModel
from warden.errors import AuthenticationRequired
from warden.services.auth_service import AuthService

security = HTTPBearer(auto_error=False)


class AuthContext:
    """Authentication context for one request

    Built from the bearer token on every request. Organization roles are not
    carried here; services resolve them from the database.
    """
    def __init__(
        self,
        user: Optional[User] = None,
        session: Optional[SessionModel] = None,
    ):
        self.user = user
        self.session = session

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.session is not None

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None


async def get_auth_context(
    request: Request,
    db: Session = Depends(get_db)
) -> AuthContext:
    """Get authentication context from request - use as dependency"""
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
    if credentials:
        resolved = AuthService.get_current_session(db, credentials.credentials)
        if resolved:
            user, session = resolved
            return AuthContext(user=user, session=session)

    return AuthContext()


async def require_auth(
    auth_context: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Dependency that rejects anonymous requests"""
    if not auth_context.is_authenticated:
        raise AuthenticationRequired()
    return auth_context


def get_client_info(request: Request) -> dict:
    """User agent and IP address recorded on new sessions"""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": ip_address,
    }
