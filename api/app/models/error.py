"""Error body returned by project routes (401, 403, 404, 422 slug errors, 500, 502).

Request validation errors keep FastAPI's default 422 shape.
"""

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """``{"detail": "..."}`` with no extra keys."""

    detail: str
