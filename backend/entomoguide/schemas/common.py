"""
EntomoGuide Backend: Shared Response Schemas
=============================================

What:  Small response bodies reused by several routers.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain confirmation returned by update/delete style endpoints."""

    message: str = Field(description="Human-readable confirmation")


class ErrorResponse(BaseModel):
    """
    Shape of every error body produced by the global exception handlers.
    Declared for the OpenAPI docs; the handlers build the dict directly.
    """

    error: str = Field(description="Machine-readable error code, e.g. 'not_found'")
    message: str = Field(description="Human-readable explanation")
    details: Optional[Dict[str, Any]] = Field(default=None)
    request_id: str = Field(default="", description="Correlation id (also in X-Request-ID)")
