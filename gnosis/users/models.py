from typing import Optional

from pydantic import BaseModel


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    profilePic: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None
    confirmPassword: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None


class UserUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class UpdatePasswordRequest(BaseModel):
    oldPassword: Optional[str] = None
    newPassword: Optional[str] = None
    confirmNewPassword: Optional[str] = None
