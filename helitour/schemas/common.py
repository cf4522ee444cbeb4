from typing import Optional, List, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper — used by admin list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error responses
class ErrorResponse(BaseModel):
    error: str
    message: str


class InsufficientCapacityError(ErrorResponse):
    available: int
    requested: int


class MessageResponse(BaseModel):
    message: str
    id: Optional[str] = None
