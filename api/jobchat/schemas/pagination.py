from pydantic import BaseModel

MAX_PAGE = 1_000_000


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    page_size: int
    has_next_page: bool
    has_prev_page: bool


def build_pagination(*, page: int, page_size: int, total_items: int) -> PaginationOut:
    total_pages = -(-total_items // page_size) if page_size > 0 else 0
    return PaginationOut(
        current_page=page,
        total_pages=total_pages,
        total_items=total_items,
        page_size=page_size,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
