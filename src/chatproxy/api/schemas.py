"""Pydantic request schemas for API endpoints."""
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


class ControlFields(BaseModel):
    """Reserved keys consumed by the gateway and never forwarded upstream."""

    security_key: Optional[Any] = None
    openai_api_key: Optional[str] = None
    project: Optional[str] = None
    organization: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)
    image: Optional[Any] = None

    class Config:
        extra = "forbid"


class ImageSpec(BaseModel):
    url: Optional[str] = None
    base64: Optional[str] = None
    data: Optional[str] = None
    mime_type: str = Field(default="image/png", alias="mimeType")
    detail: Optional[Literal["auto", "low", "high"]] = None

    class Config:
        populate_by_name = True
        extra = "ignore"


class SimpleChatRequest(BaseModel):
    prompt: str
    security_key: Optional[str] = None
    role: Optional[str] = None
    model: Optional[str] = None
    schema_: Optional[str] = Field(default=None, alias="schema")
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("temperature")
    @classmethod
    def _check_temperature(cls, value):
        if value is not None and not (MIN_TEMPERATURE <= value <= MAX_TEMPERATURE):
            raise ValueError(f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}")
        return value

    @field_validator("top_p")
    @classmethod
    def _check_top_p(cls, value):
        if value is not None and not (0.0 <= value <= 1.0):
            raise ValueError("top_p must be between 0 and 1")
        return value


class EmbeddingsRequest(BaseModel):
    input: Union[str, List[str], List[int], List[List[int]]]
    model: Optional[str] = None
    dimensions: Optional[int] = Field(default=None, gt=0)
    encoding_format: Optional[Literal["float", "base64"]] = None
    user: Optional[str] = None

    class Config:
        # Forward-compat fields are passed through to the upstream API.
        extra = "allow"
