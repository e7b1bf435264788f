"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Header

from finops_agent.core.database import get_db

__all__ = ["get_db", "get_actor"]


async def get_actor(
    x_actor: Annotated[str | None, Header(max_length=100)] = None,
) -> str:
    """Name recorded on recommendations and in the audit log for manual actions."""
    return x_actor or "api"
