from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_dispatcher, get_verification_service
from db.session import get_db_session
from schemas.otp_schema import EmailRequest, VerifyEmailRequest
from services.notification_service import NotificationDispatcher
from services.otp_service import VerificationService
from services.user_service import send_verification_code, verify_email, get_verification_status
from utils.ratelimit import limit_by_ip, otp_limiter
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter(prefix="/otp")


@router.post("/send-verification", dependencies=[Depends(limit_by_ip(otp_limiter))])
@timeit("send_verification")
async def send_verification(
    payload: EmailRequest,
    db: AsyncSession = Depends(get_db_session),
    verification: VerificationService = Depends(get_verification_service),
):
    return no_store_json(await send_verification_code(payload.email, db, verification))


@router.post("/verify-email", dependencies=[Depends(limit_by_ip(otp_limiter))])
@timeit("verify_email")
async def verify_email_endpoint(
    payload: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db_session),
    verification: VerificationService = Depends(get_verification_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return no_store_json(await verify_email(payload.email, payload.otp, db, verification, dispatcher))


@router.get("/verification-status/{email}")
@timeit("verification_status")
async def verification_status(email: str, db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_verification_status(email, db))
