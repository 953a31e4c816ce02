"""
Persistence layer contract.

The core never assumes a multi-table transaction. Every write goes through
one of the helpers below, each of which is a single statement committed on
its own:

- conditional_update: "update row X set fields where predicate P holds",
  reporting whether a row was affected (compare-and-swap on status).
- insert_row / insert_rows: append new rows.
- reload: re-read a row, bypassing stale identity-map state.
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Type

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import Base


async def conditional_update(
    db: AsyncSession,
    model: Type[Base],
    where: Sequence[Any],
    values: Dict[str, Any],
) -> bool:
    """
    Apply a single-row conditional UPDATE and commit it.

    Args:
        db: Database session
        model: Mapped class to update
        where: Predicates that must all hold (id match plus guard clauses)
        values: Column values or SQL expressions to set

    Returns:
        True if a row matched the predicate and was updated, False otherwise

    Raises:
        SQLAlchemyError: On persistence failure (caller decides on rollback/compensation)
    """
    stmt = (
        update(model)
        .where(*where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount > 0


async def insert_row(db: AsyncSession, row: Base) -> Base:
    """Insert one row, commit and return it refreshed."""
    db.add(row)
    await db.commit()
    await db.refresh(row)
    return row


async def insert_rows(db: AsyncSession, rows: Iterable[Base]) -> list:
    """Insert a batch of rows of the same table in one commit."""
    rows = list(rows)
    db.add_all(rows)
    await db.commit()
    for row in rows:
        await db.refresh(row)
    return rows


async def delete_rows(db: AsyncSession, model: Type[Base], where: Sequence[Any]) -> int:
    """Delete rows matching the predicate and commit. Returns affected count."""
    result = await db.execute(
        delete(model).where(*where).execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def reload(db: AsyncSession, model: Type[Base], *where: Any) -> Optional[Base]:
    """
    Re-select a single row, overwriting whatever the session already holds.

    Needed after conditional_update because bulk UPDATEs do not touch
    objects already loaded in the identity map.
    """
    result = await db.execute(
        select(model).where(*where).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
