"""Error body shared by the JSON exception handlers."""
from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """JSON error body. code is set for generation failures only."""

    detail: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


def error_body(detail: str, code: Optional[str] = None) -> dict:
    return ErrorResponse(detail=detail, code=code).model_dump(exclude_none=True)
