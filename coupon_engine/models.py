from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from datetime import (
    UTC,
    datetime,
)
from typing import (
    Optional,
)
from pydantic_core import PydanticCustomError

from .constants import (
    DEFAULT_CODE_LENGTH,
    MAX_CODE_TEXT_LENGTH,
)


def _normalize_datetime(v: Optional[datetime]) -> Optional[datetime]:
    # Naive datetimes are UTC; aware ones are converted to it
    if v is None:
        return v
    if v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v.astimezone(UTC)


class BookCreateRequest(BaseModel):
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    max_codes_per_user: int = Field(
        ...,
        ge=0,
    )
    max_redeem_count_per_user: Optional[int] = Field(
        None,
        ge=0,
    )


class BookCreateResponse(BaseModel):
    book_id: str


class BookResponse(BaseModel):
    id: str
    name: str
    max_codes_per_user: int
    max_redeem_count_per_user: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v):
        return _normalize_datetime(v)


class ManualCode(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CODE_TEXT_LENGTH,
    )
    expiration: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def validate_code(cls, v):
        if any(ch.isspace() for ch in v):
            raise PydanticCustomError(
                "value_error",
                "Code must not contain whitespace",
            )
        return v

    @field_validator("expiration")
    @classmethod
    def validate_expiration(cls, v):
        return _normalize_datetime(v)


class GenerationSpec(BaseModel):
    amount: int = Field(
        ...,
        gt=0,
        le=100_000,
    )
    prefix: str = Field(
        "",
        max_length=32,
    )
    code_length: int = Field(
        DEFAULT_CODE_LENGTH,
        gt=0,
        le=64,
    )
    expiration: Optional[datetime] = None

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v):
        if any(ch.isspace() for ch in v):
            raise PydanticCustomError(
                "value_error",
                "Prefix must not contain whitespace",
            )
        return v

    @field_validator("expiration")
    @classmethod
    def validate_expiration(cls, v):
        return _normalize_datetime(v)


class AddCodesRequest(BaseModel):
    manual: Optional[list[ManualCode]] = None
    generated: Optional[GenerationSpec] = None

    @model_validator(mode="after")
    def require_some_source(self):
        if not self.manual and self.generated is None:
            raise PydanticCustomError(
                "value_error",
                "Provide manual codes, a generation spec, or both",
            )
        return self


class CodeResponse(BaseModel):
    code: str
    expiration: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("expiration")
    @classmethod
    def validate_expiration(cls, v):
        return _normalize_datetime(v)


class AssignRequest(BaseModel):
    code: Optional[str] = Field(
        None,
        min_length=1,
        max_length=MAX_CODE_TEXT_LENGTH,
    )
    user_id: Optional[str] = Field(
        None,
        min_length=1,
    )


class AssignResponse(BaseModel):
    code: str


class CodeActionRequest(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CODE_TEXT_LENGTH,
    )
    book_id: Optional[str] = None


class LockResponse(BaseModel):
    locked_until: datetime


class RedeemResponse(BaseModel):
    success: bool = True


class UserCodeResponse(BaseModel):
    code: str
    expiration: Optional[datetime]
    locked_until: Optional[datetime]
    redeemed_count: int
    last_redeemed_on: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("expiration", "locked_until", "last_redeemed_on")
    @classmethod
    def validate_timestamps(cls, v):
        return _normalize_datetime(v)


class RedemptionResponse(BaseModel):
    redeemed_on: datetime
    redeemed_by: Optional[str]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("redeemed_on")
    @classmethod
    def validate_redeemed_on(cls, v):
        return _normalize_datetime(v)


class SweepResponse(BaseModel):
    unlocked: int
