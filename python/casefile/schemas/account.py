"""Account and preference schemas."""

from pydantic import BaseModel, Field


class PasswordResetRequest(BaseModel):
    email: str = Field(min_length=1)


class PasswordUpdateRequest(BaseModel):
    password: str = Field(min_length=1)


class PreferencesOut(BaseModel):
    has_completed_onboarding: bool


class PreferencesUpdateRequest(BaseModel):
    has_completed_onboarding: bool
