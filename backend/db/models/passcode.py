import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, Index
from core.config import MAX_OTP_LENGTH
from db.session import Base
from utils.timing import utcnow


class PasscodePurpose(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class Passcode(Base):
    __tablename__ = "passcodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    code = Column(String(MAX_OTP_LENGTH), nullable=False)
    purpose = Column(
        Enum(PasscodePurpose, name="passcode_purpose", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PasscodePurpose.EMAIL_VERIFICATION,
    )
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    # Set client side so ordering keeps sub-second resolution
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_passcodes_email_purpose_created", "email", "purpose", "created_at"),
        Index("ix_passcodes_lookup", "email", "code", "purpose"),
        Index("ix_passcodes_expires_at", "expires_at"),
    )
