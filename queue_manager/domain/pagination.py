import math
from dataclasses import asdict, dataclass
from typing import Any, Sequence, TypeVar

T = TypeVar("T")

MAX_PER_PAGE = 100


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Pagination:
    current_page: int
    per_page: int
    total_pages: int
    total_jobs: int
    has_previous: bool
    has_next: bool

    @classmethod
    def build(cls, page: Any, per_page: Any, total: int) -> "Pagination":
        """
        Clamps page to >= 1 and per_page to [1, MAX_PER_PAGE] before deriving
        the page count. Nothing is persisted; every request recomputes it.
        """
        page = max(_as_int(page, 1), 1)
        per_page = min(max(_as_int(per_page, 1), 1), MAX_PER_PAGE)
        total_pages = math.ceil(total / per_page)
        return cls(
            current_page=page,
            per_page=per_page,
            total_pages=total_pages,
            total_jobs=total,
            has_previous=page > 1,
            has_next=page < total_pages,
        )

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.per_page

    def slice(self, items: Sequence[T]) -> list[T]:
        return list(items[self.offset:self.offset + self.per_page])

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
