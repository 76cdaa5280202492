"""Admin API router.

User listing and role management. All endpoints require the AdminUser
dependency, which re-reads the caller's persisted role on every request.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query

from photaro.api.deps import AdminUser, DbSession
from photaro.core.errors import NotFoundError, ValidationError
from photaro.core.responses import DataResponse, ListResponse, PaginationMeta
from photaro.models.user import UserRole
from photaro.repositories.user_repository import UserRepository
from photaro.schemas.user import AdminUserResponse

logger = logging.getLogger(__name__)

router = APIRouter()

PageParam = Annotated[int, Query(ge=1, description="Page number (1-based)")]
PerPageParam = Annotated[
    int, Query(ge=1, le=100, description="Items per page (max 100)")
]


# =============================================================================
# Users
# =============================================================================


@router.get("/users")
async def list_users(
    _admin: AdminUser,
    db: DbSession,
    page: PageParam = 1,
    per_page: PerPageParam = 20,
) -> ListResponse[AdminUserResponse]:
    """List all users, including deleted accounts, newest first."""
    users, total = await UserRepository.list_users(
        db, offset=(page - 1) * per_page, limit=per_page
    )
    return ListResponse(
        data=[AdminUserResponse.from_user(u) for u in users],
        meta=PaginationMeta(total=total, page=page, per_page=per_page),
    )


async def _set_role(
    db: DbSession, user_id: uuid.UUID, role: UserRole
) -> AdminUserResponse:
    user = await UserRepository.set_role(db, user_id, role=role)
    if user is None:
        raise NotFoundError("User", str(user_id))
    await db.commit()
    return AdminUserResponse.from_user(user)


@router.post("/promote/{user_id}")
async def promote_user(
    admin: AdminUser,
    db: DbSession,
    user_id: uuid.UUID,
) -> DataResponse[AdminUserResponse]:
    """Grant the Admin role to a user."""
    result = await _set_role(db, user_id, UserRole.ADMIN)
    logger.info("Admin %s promoted user %s", admin.id, user_id)
    return DataResponse(data=result)


@router.post("/demote/{user_id}")
async def demote_user(
    admin: AdminUser,
    db: DbSession,
    user_id: uuid.UUID,
) -> DataResponse[AdminUserResponse]:
    """Return a user to the User role.

    An admin cannot demote their own account.
    """
    if user_id == admin.id:
        raise ValidationError("Admins cannot demote themselves")
    result = await _set_role(db, user_id, UserRole.USER)
    logger.info("Admin %s demoted user %s", admin.id, user_id)
    return DataResponse(data=result)
