from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.orm import Session

from filevault.core.errors import ValidationError
from filevault.routers.deps import get_db, get_identity, get_services
from filevault.services.container import Services
from filevault.services.sessions import Identity

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    username: str = Field(min_length=1, max_length=50)
    password: str
    confirm_password: str | None = Field(default=None, alias="confirmPassword")


class LoginSchema(BaseModel):
    email: str
    password: str


class ForgotPasswordSchema(BaseModel):
    email: str


class VerifyOtpSchema(BaseModel):
    email: str
    otp: str


class ResetPasswordSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    otp: str
    new_password: str = Field(alias="newPassword")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterSchema, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    if payload.confirm_password is not None and payload.confirm_password != payload.password:
        raise ValidationError("Passwords do not match", kind="password_mismatch")

    user = services.credentials.create_user(db, payload.email, payload.username, payload.password)
    return {"message": "User created successfully", "userId": user.id}


@router.post("/login")
def login(payload: LoginSchema, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    token, user = services.sessions.login(db, payload.email, payload.password)
    return {"message": "Login successful", "token": token, "user": user.to_public()}


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordSchema,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    services.otp.request_otp(db, payload.email)
    return {"message": "OTP sent to your email"}


@router.post("/verify-otp")
def verify_otp(payload: VerifyOtpSchema, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    services.otp.verify_otp(db, payload.email, payload.otp)
    return {"message": "OTP verified", "verified": True}


@router.post("/reset-password")
def reset_password(
    payload: ResetPasswordSchema,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    services.otp.reset_password(db, payload.email, payload.otp, payload.new_password)
    return {"message": "Password reset successfully"}


@router.get("/verify")
def verify(identity: Identity = Depends(get_identity)):
    return {"valid": True, "user": identity.to_dict()}
