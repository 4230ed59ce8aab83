from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ListResponse(BaseModel, Generic[T]):
    items: list[T]
    count: int
    limit: int | None = None
    offset: int | None = None


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict | list | None = None
