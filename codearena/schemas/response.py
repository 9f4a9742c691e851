"""Shared schema bases and generic API responses"""

from pydantic import AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class RequestModel(BaseModel):
    """Request body: accepts camelCase (wire) or snake_case field names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResponseModel(BaseModel):
    """Response body: built from ORM attributes, serialized as camelCase"""
    model_config = ConfigDict(
        alias_generator=AliasGenerator(serialization_alias=to_camel),
        from_attributes=True,
    )


class ErrorResponse(ResponseModel):
    """Generic API error response"""
    success: bool = False
    error: str
    details: Optional[Any] = None
    path: Optional[str] = None
    timestamp: str
