"""
Dialect helpers for single-statement conditional writes
"""
from typing import Any, Optional, Sequence

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_if_absent(
    session: AsyncSession,
    model,
    values: dict[str, Any],
    *,
    conflict_on: Sequence[str],
    returning,
) -> Optional[Any]:
    """
    INSERT ... ON CONFLICT DO NOTHING RETURNING <col>.

    Returns the returned column value, or None when the row already existed.
    Other dialects fall back to a savepoint plus IntegrityError.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_on))
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_on))
    else:
        try:
            async with session.begin_nested():
                result = await session.execute(insert(model).values(**values).returning(returning))
                return result.scalar_one()
        except IntegrityError:
            return None

    result = await session.execute(stmt.returning(returning))
    return result.scalar_one_or_none()
