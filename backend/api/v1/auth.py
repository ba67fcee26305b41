from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_current_user, get_password_reset_workflow, get_verification_service
from db.session import get_db_session
from schemas.otp_schema import EmailRequest, ResetPasswordRequest
from schemas.user_schema import CurrentUser, UserCreate, UserLogin
from services.otp_service import VerificationService
from services.password_service import PasswordResetWorkflow
from services.user_service import create_user, login_user, get_user_profile
from utils.ratelimit import limit_by_ip, login_limiter, otp_limiter, signup_limiter
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter(prefix="/auth")


@router.post("/signup", dependencies=[Depends(limit_by_ip(signup_limiter))])
@timeit("signup")
async def signup(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db_session),
    verification: VerificationService = Depends(get_verification_service),
):
    return no_store_json(await create_user(payload, db, verification), status_code=201)


@router.post("/signin", dependencies=[Depends(limit_by_ip(login_limiter))])
@timeit("signin")
async def signin(payload: UserLogin, db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await login_user(payload.login, payload.password, db))


@router.get("/profile")
@timeit("profile")
async def profile(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_user_profile(current_user.id, db))


@router.post("/forgot-password", dependencies=[Depends(limit_by_ip(otp_limiter))])
@timeit("forgot_password")
async def forgot_password(payload: EmailRequest, workflow: PasswordResetWorkflow = Depends(get_password_reset_workflow)):
    return no_store_json(await workflow.request_reset(payload.email))


@router.post("/reset-password", dependencies=[Depends(limit_by_ip(otp_limiter))])
@timeit("reset_password")
async def reset_password(payload: ResetPasswordRequest, workflow: PasswordResetWorkflow = Depends(get_password_reset_workflow)):
    return no_store_json(await workflow.complete_reset(payload.email, payload.otp.strip(), payload.new_password))
