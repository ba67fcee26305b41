from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import admin_required, get_passcode_policy, get_passcode_store, get_verification_service
from core.config import PasscodePolicy
from db.session import get_db_session
from schemas.user_schema import AdminIdentity, AdminLogin, AdminUserCreate, AdminUserUpdate
from services.admin_service import (
    create_user_as_admin,
    delete_user_as_admin,
    get_passcode_history,
    get_system_status,
    get_user,
    list_users,
    login_admin,
    update_user_as_admin,
)
from services.otp_service import VerificationService
from services.passcode_store import PasscodeStore
from utils.ratelimit import limit_by_ip, login_limiter
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter(prefix="/admin")


@router.post("/login", dependencies=[Depends(limit_by_ip(login_limiter))])
@timeit("admin_login")
async def admin_login(payload: AdminLogin):
    return no_store_json(login_admin(payload.email, payload.password))


@router.get("/profile")
@timeit("admin_profile")
async def admin_profile(admin: AdminIdentity = Depends(admin_required)):
    return no_store_json({"success": True, "data": {"admin": admin.model_dump()}})


@router.get("/system/status")
@timeit("admin_system_status")
async def system_status(
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    return no_store_json(await get_system_status(db))


@router.get("/users")
@timeit("admin_list_users")
async def admin_list_users(
    page: int = 1,
    size: int = 20,
    search: Optional[str] = None,
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    return no_store_json(await list_users(db, page=page, size=size, search=search))


@router.post("/users")
@timeit("admin_create_user")
async def admin_create_user(
    payload: AdminUserCreate,
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
    policy: PasscodePolicy = Depends(get_passcode_policy),
):
    return no_store_json(await create_user_as_admin(payload, db, policy), status_code=201)


@router.get("/users/{user_id}")
@timeit("admin_get_user")
async def admin_get_user(
    user_id: str,
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    return no_store_json(await get_user(user_id, db))


@router.put("/users/{user_id}")
@timeit("admin_update_user")
async def admin_update_user(
    user_id: str,
    payload: AdminUserUpdate,
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    return no_store_json(await update_user_as_admin(user_id, payload, db))


@router.delete("/users/{user_id}")
@timeit("admin_delete_user")
async def admin_delete_user(
    user_id: str,
    admin: AdminIdentity = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    return no_store_json(await delete_user_as_admin(user_id, db))


@router.get("/passcodes/{email}")
@timeit("admin_passcode_history")
async def passcode_history(
    email: str,
    limit: int = 10,
    admin: AdminIdentity = Depends(admin_required),
    store: PasscodeStore = Depends(get_passcode_store),
):
    return no_store_json(await get_passcode_history(email, store, limit=max(1, min(limit, 100))))


@router.post("/passcodes/purge-expired")
@timeit("admin_purge_expired")
async def purge_expired_passcodes(
    admin: AdminIdentity = Depends(admin_required),
    verification: VerificationService = Depends(get_verification_service),
):
    removed = await verification.purge_expired()
    return no_store_json({"success": True, "message": "Expired passcodes purged", "data": {"deleted": removed}})
