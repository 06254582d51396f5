from dataclasses import dataclass


@dataclass(frozen=True)
class Window:
    """A pagination window: rows ``[offset, offset + limit)``."""

    offset: int = 0
    limit: int = 10

    @classmethod
    def for_page(cls, page: int, limit: int) -> "Window":
        return cls(offset=(page - 1) * limit, limit=limit)
