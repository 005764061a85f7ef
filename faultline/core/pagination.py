"""Page number arithmetic for paginated listings."""

import math

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    """Page numbers derived from a page request and a total item count.

    ``previous`` and ``next`` are 0 when there is no such page.
    """

    first: int = Field(1, description="First page number")
    last: int = Field(1, description="Last page number")
    previous: int = Field(0, description="Previous page number, 0 if none")
    current: int = Field(1, description="Current page number")
    next: int = Field(0, description="Next page number, 0 if none")
    size: int = Field(0, description="Items per page")
    items: int = Field(0, description="Total number of items")

    @classmethod
    def compute(cls, current: int, size: int, items: int) -> "Pagination":
        """Calculate page numbers, clamping ``current`` into the valid range."""
        size = max(size, 0)
        items = max(items, 0)

        first = 1
        last = math.ceil(items / size) if items > 0 and size > 0 else 1
        current = min(max(current, first), last)

        return cls(
            first=first,
            last=last,
            previous=current - 1 if current > first else 0,
            current=current,
            next=current + 1 if current < last else 0,
            size=size,
            items=items,
        )

    @property
    def limit(self) -> int:
        """LIMIT value for a database query."""
        return self.size

    @property
    def offset(self) -> int:
        """OFFSET value for a database query."""
        return (self.current - 1) * self.size
