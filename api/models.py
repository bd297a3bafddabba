"""
API request and response models for the deal pipeline REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
deals/models.py, which own the internal domain representation. Route handlers
map between the two.

Session payloads use camelCase field names on the wire (accessToken,
refreshToken, tokenType) to match existing clients; everything else is
snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Role, User
from auth.tokens import MAX_PASSWORD_BYTES
from deals.models import Deal, DealNote, DealStage, DealType

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # Over-long input never matches; verify_password treats it as a mismatch
    password: str = Field(min_length=1, max_length=72)


class RefreshTokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and /logout."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1, max_length=128)


class SessionResponse(BaseModel):
    """Token pair returned by login and refresh."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(serialization_alias="accessToken")
    refresh_token: str = Field(serialization_alias="refreshToken")
    token_type: str = Field(default="Bearer", serialization_alias="tokenType")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _check_password_bytes(v: str) -> str:
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return v


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users and /users/init-admin."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=72)
    role: Role = Role.USER

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_bytes(v)


class PasswordReset(BaseModel):
    """Request body for PUT /api/v1/users/{username}/password."""

    model_config = ConfigDict(populate_by_name=True)

    new_password: str = Field(alias="newPassword", min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password_bytes(v)


class UserResponse(BaseModel):
    """Public view of an identity. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: Role
    active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            active=user.is_active,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class DealCreate(BaseModel):
    """Request body for POST /api/v1/deals.

    deal_value is accepted from anyone but only kept when an admin sends it.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    sector: Optional[str] = Field(default=None, max_length=100)
    deal_type: Optional[DealType] = None
    deal_value: Optional[float] = Field(default=None, ge=0)


class DealUpdate(BaseModel):
    """Request body for PATCH /api/v1/deals/{id}. Absent fields are left unchanged.

    deal_value is accepted for compatibility and ignored; use PATCH .../value.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    sector: Optional[str] = Field(default=None, max_length=100)
    deal_type: Optional[DealType] = None
    stage: Optional[DealStage] = None
    deal_value: Optional[float] = None


class DealValueUpdate(BaseModel):
    """Request body for PATCH /api/v1/deals/{id}/value (admin only)."""

    deal_value: Optional[float] = Field(default=None, ge=0)


class NoteCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    note: str = Field(min_length=1, max_length=2000)


class NoteView(BaseModel):
    model_config = ConfigDict(frozen=True)

    note_id: str
    user_id: int
    note: str
    created_at: str

    @classmethod
    def from_note(cls, note: DealNote) -> "NoteView":
        return cls(note_id=note.note_id, user_id=note.user_id, note=note.note, created_at=note.created_at)


class DealView(BaseModel):
    """Full (admin) view of a deal, before role projection.

    Routes never return this model directly: they dump it and pass the dict
    through auth.policy.project_for_role() so non-admins never receive
    deal_value, not even as null.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    sector: Optional[str]
    deal_type: Optional[DealType]
    stage: DealStage
    deal_value: Optional[float]
    owner_id: int
    notes: list[NoteView]
    created_at: str
    updated_at: str

    @classmethod
    def from_deal(cls, deal: Deal) -> "DealView":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=deal.id,
            title=deal.title,
            sector=deal.sector,
            deal_type=deal.deal_type,
            stage=deal.stage,
            deal_value=deal.deal_value,
            owner_id=deal.owner_id,
            notes=[NoteView.from_note(n) for n in deal.notes],
            created_at=deal.created_at,
            updated_at=deal.updated_at,
        )
