import math
from dataclasses import dataclass

from fastapi import Query


@dataclass
class PaginationParams:
    limit: int = 50
    offset: int = 0


def get_pagination(
    limit: int = Query(50, ge=1, le=100, description="Maximum rows to return"),
    offset: int = Query(0, ge=0, description="Rows to skip"),
) -> PaginationParams:
    return PaginationParams(limit=limit, offset=offset)


def build_pagination_meta(total_count: int, pagination: PaginationParams) -> dict:
    return {
        "limit": pagination.limit,
        "offset": pagination.offset,
        "total_count": total_count,
        "total_pages": math.ceil(total_count / pagination.limit) if total_count > 0 else 0,
    }
