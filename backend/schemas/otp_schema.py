from pydantic import BaseModel


class EmailRequest(BaseModel):
    email: str = ""


class VerifyEmailRequest(BaseModel):
    email: str = ""
    otp: str = ""


class ResetPasswordRequest(BaseModel):
    email: str = ""
    otp: str = ""
    new_password: str = ""
