"""Pydantic schemas for API request/response bodies.

JSON field names are camelCase (aliases); Python attributes are snake_case.
"""

import re
from typing import Optional, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_PHONE_SEPARATORS = re.compile(r"[\s\-().+]")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdvocateIn(_CamelModel):
    """Body of POST /advocates and the shape of each seed record."""

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    city: str = Field(min_length=1, max_length=100)
    degree: str = Field(min_length=1, max_length=100)
    specialties: List[str] = Field(min_length=1)
    years_of_experience: int = Field(ge=0, le=50)
    phone_number: Union[int, str]

    @field_validator("first_name", "last_name", "city", "degree", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("specialties")
    @classmethod
    def _clean_specialties(cls, v: List[str]) -> List[str]:
        cleaned = [s.strip() for s in v]
        if any(not s for s in cleaned):
            raise ValueError("specialties must not contain empty values")
        return cleaned

    @field_validator("phone_number")
    @classmethod
    def _digits_only(cls, v: Union[int, str]) -> int:
        if isinstance(v, bool):
            raise ValueError("phone number must be digits")
        if isinstance(v, int):
            if v < 0:
                raise ValueError("phone number must be digits")
            digits = str(v)
        else:
            digits = _PHONE_SEPARATORS.sub("", v)
            if not digits.isdigit():
                raise ValueError("phone number must be digits")
        if not 10 <= len(digits) <= 15:
            raise ValueError("phone number must have 10 to 15 digits")
        return int(digits)


class AdvocateOut(_CamelModel):
    id: int
    first_name: str
    last_name: str
    city: str
    degree: str
    specialties: List[str]
    years_of_experience: int
    phone_number: int
    created_at: Optional[str] = None


class AdvocateList(BaseModel):
    advocates: List[AdvocateOut]


class SearchResult(BaseModel):
    advocates: List[AdvocateOut]
    total: int
    limit: Optional[int] = None
    offset: Optional[int] = None


class CreatedOut(BaseModel):
    message: str
    advocate: AdvocateOut


class SeedStats(BaseModel):
    inserted: int
    updated: int
    total: int
    failed: int = 0


class SeedOut(BaseModel):
    message: str
    advocates: List[AdvocateOut]
    stats: SeedStats


class HealthcheckOut(BaseModel):
    status: Literal["ok", "degraded"]
    db_ok: bool
    cache_ok: bool
    cache_backend: str
    advocate_count: int


class ErrorOut(BaseModel):
    """Uniform error body."""

    error: str
