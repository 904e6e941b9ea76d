"""Profile and identity models"""

from typing import Optional

from pydantic import BaseModel, field_validator


class Identity(BaseModel):
    """The signed-in principal"""
    id: str
    email: Optional[str] = None
    access_token: Optional[str] = None


class Profile(BaseModel):
    id: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None

    @field_validator("display_name", "bio")
    @classmethod
    def strip_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None
