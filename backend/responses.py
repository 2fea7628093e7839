# responses.py: Uniform result envelope: {data, error, message}
from typing import Any, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from errors import ErrorDefinition, get_error_by_code

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for every payload that crosses the API boundary (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(BaseModel, Generic[T]):
    """Result of every service operation.

    Exactly one of ``data`` / ``error`` is meaningful: a successful call
    carries ``error=None``; a failed one carries ``data=None`` and an entry
    from the error catalogue.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: Optional[T] = None
    error: Optional[ErrorDefinition] = None
    message: str = "Success"

    @classmethod
    def ok(cls, data: T, message: str = "Success") -> "Envelope[T]":
        return cls(data=data, error=None, message=message)

    @classmethod
    def fail(cls, code: str, message: Optional[str] = None) -> "Envelope[T]":
        error = get_error_by_code(code)
        return cls(data=None, error=error, message=message or error.message)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def status_code(self, success_status: int = 200) -> int:
        return self.error.status_code if self.error else success_status

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def to_response(envelope: Envelope[Any], success_status: int = 200) -> JSONResponse:
    """Map an envelope onto an HTTP response; the body is forwarded verbatim"""
    return JSONResponse(
        status_code=envelope.status_code(success_status),
        content=envelope.to_dict(),
    )
