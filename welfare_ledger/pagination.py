"""
Breakdown Pagination

Splits breakdown rows into fixed-size pages and builds the page-control model
shown under each breakdown table: first/previous/next/last buttons, the first
and last page, a window of one page either side of the current one, and
ellipsis markers standing in for the hidden ranges.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar('T')

DEFAULT_PAGE_SIZE = 10


class ControlKind(Enum):
    FIRST = "first"
    PREVIOUS = "previous"
    PAGE = "page"
    ELLIPSIS = "ellipsis"
    NEXT = "next"
    LAST = "last"


@dataclass(frozen=True)
class PageControl:
    kind: ControlKind
    page: Optional[int] = None
    active: bool = False
    disabled: bool = False
    hidden_pages: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'page': self.page,
            'active': self.active,
            'disabled': self.disabled,
            'hidden_pages': list(self.hidden_pages),
        }


@dataclass
class Page(Generic[T]):
    items: List[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    controls: List[PageControl] = field(default_factory=list)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def first_index(self) -> int:
        """1-based index of the first row on this page, 0 when empty"""
        if self.total_items == 0:
            return 0
        return (self.page - 1) * self.page_size + 1

    @property
    def last_index(self) -> int:
        return min(self.page * self.page_size, self.total_items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page': self.page,
            'page_size': self.page_size,
            'total_items': self.total_items,
            'total_pages': self.total_pages,
            'first_index': self.first_index,
            'last_index': self.last_index,
            'controls': [c.to_dict() for c in self.controls],
        }


def page_controls(current: int, total_pages: int) -> List[PageControl]:
    """Build the control row for ``current`` out of ``total_pages``"""
    at_start = current <= 1
    at_end = current >= total_pages

    controls = [
        PageControl(ControlKind.FIRST, page=1, disabled=at_start),
        PageControl(ControlKind.PREVIOUS, page=max(1, current - 1), disabled=at_start),
    ]

    for number in range(1, total_pages + 1):
        if number == 1 or number == total_pages or abs(number - current) <= 1:
            controls.append(PageControl(ControlKind.PAGE, page=number, active=number == current))
        elif number == 2 and current > 3:
            controls.append(PageControl(
                ControlKind.ELLIPSIS,
                hidden_pages=tuple(range(2, current - 1))
            ))
        elif number == total_pages - 1 and current < total_pages - 2:
            controls.append(PageControl(
                ControlKind.ELLIPSIS,
                hidden_pages=tuple(range(current + 2, total_pages))
            ))

    controls.extend([
        PageControl(ControlKind.NEXT, page=min(total_pages, current + 1), disabled=at_end),
        PageControl(ControlKind.LAST, page=total_pages, disabled=at_end),
    ])
    return controls


def paginate(items: Sequence[T], page: Optional[int] = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page[T]:
    """
    Return one page of ``items``.

    Out-of-range page numbers are clamped to the nearest valid page. An empty
    sequence yields a single empty page.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")

    total_items = len(items)
    total_pages = max(1, -(-total_items // page_size))
    current = min(max(page or 1, 1), total_pages)

    offset = (current - 1) * page_size
    return Page(
        items=list(items[offset:offset + page_size]),
        page=current,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        controls=page_controls(current, total_pages),
    )
