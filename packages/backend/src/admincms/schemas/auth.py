"""Pydantic schemas for login, token refresh, password change and the current user.

Learn: Responses use camelCase keys on the wire (accessToken, expiresAt)
via serialization_alias, while Python code keeps snake_case field names.
FastAPI serializes response_model by alias by default.
"""

import uuid

from pydantic import BaseModel, EmailStr, Field

from admincms.services.session_service import SessionResult


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=255)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=6, max_length=255)
    new_password: str = Field(min_length=6, max_length=255)
    confirm_password: str = Field(min_length=6, max_length=255)


class MessageRead(BaseModel):
    message: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=255)


class TokenRead(BaseModel):
    token: str
    expires_at: int = Field(serialization_alias="expiresAt")


class SessionTokens(BaseModel):
    access_token: TokenRead = Field(serialization_alias="accessToken")
    refresh_token: TokenRead = Field(serialization_alias="refreshToken")

    @classmethod
    def from_result(cls, result: SessionResult) -> "SessionTokens":
        return cls(
            access_token=TokenRead(
                token=result.access_token.token,
                expires_at=result.access_token.expires_at,
            ),
            refresh_token=TokenRead(
                token=result.refresh_token.token,
                expires_at=result.refresh_token.expires_at,
            ),
        )


class MeRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    permissions: list[str]


class RoleRead(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str = Field(serialization_alias="displayName")

    model_config = {"from_attributes": True}


class ErrorBody(BaseModel):
    code: int
    message: str
