from pydantic import BaseModel
from typing import Optional

# Plain str fields: format and policy checks happen in the services so that
# callers get the 400 messages the API documents instead of pydantic 422s.

class UserCreate(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""

class UserLogin(BaseModel):
    login: str = ""
    password: str = ""

class AdminLogin(BaseModel):
    email: str = ""
    password: str = ""

class CurrentUser(BaseModel):
    id: int
    username: str
    email: str
    role: str
    email_verified: bool

    class Config:
        from_attributes = True
        extra = "ignore"

class AdminIdentity(BaseModel):
    id: str
    email: str
    username: str
    role: str = "admin"

class AdminUserCreate(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""
    role: str = "user"
    email_verified: bool = False

class AdminUserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    email_verified: Optional[bool] = None
