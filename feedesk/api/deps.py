"""Shared dependencies: JWT auth, role checks, pagination."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from feedesk.config import settings

security = HTTPBearer(auto_error=False)


class StaffRole(str, Enum):
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    PARENT = "parent"


class Principal(BaseModel):
    """Caller identity taken from the access token; users live in the auth service."""
    id: str
    role: StaffRole
    student_ids: list[str] = Field(default_factory=list)


def create_access_token(subject: str, role: str, student_ids: Optional[list[str]] = None) -> str:
    expire = datetime.utcnow() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    if student_ids:
        to_encode["student_ids"] = student_ids
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Principal:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        role = StaffRole(payload.get("role"))
    except ValueError:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return Principal(id=user_id, role=role, student_ids=payload.get("student_ids") or [])


def require_roles(*allowed: StaffRole):
    async def checker(user: Annotated[Principal, Depends(get_current_user)]):
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


def ensure_can_view_student(user: Principal, student_id: str) -> None:
    if user.role == StaffRole.PARENT and student_id not in user.student_ids:
        raise HTTPException(status_code=403, detail="Not authorized")


class Page(BaseModel):
    page: int
    limit: int


def pagination(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> Page:
    return Page(page=page, limit=min(limit or settings.default_page_limit, settings.max_page_limit))


def paginated(items: list, total: int, page: Page) -> dict:
    return {
        "data": items,
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": total,
            "total_pages": (total + page.limit - 1) // page.limit,
        },
    }


# Type aliases for route injection
CurrentUser = Annotated[Principal, Depends(get_current_user)]
FeeManager = Annotated[Principal, Depends(require_roles(StaffRole.ADMIN, StaffRole.ACCOUNTANT))]
AdminOnly = Annotated[Principal, Depends(require_roles(StaffRole.ADMIN))]
Pagination = Annotated[Page, Depends(pagination)]
