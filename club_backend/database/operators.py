"""
Document-style update operators over the JSON columns.

Each operator is applied to every row matching a filter. Rows are loaded with
SELECT ... FOR UPDATE (a no-op on SQLite, which serializes writers anyway) so
concurrent add-to-set / pull calls on the same player cannot lose updates.
The return value of apply_operation is the number of rows actually modified,
mirroring a document store's modified count.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import Boolean, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.functions import FunctionElement


class json_array_contains(FunctionElement):
    """``json_array_contains(column, value)``: true when the JSON array holds value."""

    type = Boolean()
    name = "json_array_contains"
    inherit_cache = True


@compiles(json_array_contains)
def _json_array_contains_default(element, compiler, **kw):
    raise NotImplementedError(
        f"json_array_contains is not supported on dialect {compiler.dialect.name}"
    )


@compiles(json_array_contains, "postgresql")
def _json_array_contains_postgresql(element, compiler, **kw):
    column, value = list(element.clauses)
    return "(%s)::jsonb @> jsonb_build_array(CAST(%s AS TEXT))" % (
        compiler.process(column, **kw),
        compiler.process(value, **kw),
    )


@compiles(json_array_contains, "sqlite")
def _json_array_contains_sqlite(element, compiler, **kw):
    column, value = list(element.clauses)
    return "EXISTS (SELECT 1 FROM json_each(%s) WHERE json_each.value = %s)" % (
        compiler.process(column, **kw),
        compiler.process(value, **kw),
    )


@compiles(json_array_contains, "mysql")
@compiles(json_array_contains, "mariadb")
def _json_array_contains_mysql(element, compiler, **kw):
    column, value = list(element.clauses)
    return "JSON_CONTAINS(%s, JSON_QUOTE(%s))" % (
        compiler.process(column, **kw),
        compiler.process(value, **kw),
    )


class json_document_contains(FunctionElement):
    """
    ``json_document_contains(column, value)``: true when value appears as a string
    anywhere in a JSON document, e.g. in any position array of a lineup (or
    as a legacy single-id position).
    """

    type = Boolean()
    name = "json_document_contains"
    inherit_cache = True


@compiles(json_document_contains)
def _json_document_contains_default(element, compiler, **kw):
    raise NotImplementedError(
        f"json_document_contains is not supported on dialect {compiler.dialect.name}"
    )


@compiles(json_document_contains, "postgresql")
def _json_document_contains_postgresql(element, compiler, **kw):
    column, value = list(element.clauses)
    # jsonb @> matches both ["id", ...] and a bare "id" position value
    return (
        "EXISTS (SELECT 1 FROM jsonb_each((%s)::jsonb) AS doc "
        "WHERE doc.value @> to_jsonb(CAST(%s AS TEXT)))"
    ) % (compiler.process(column, **kw), compiler.process(value, **kw))


@compiles(json_document_contains, "sqlite")
def _json_document_contains_sqlite(element, compiler, **kw):
    column, value = list(element.clauses)
    return (
        "EXISTS (SELECT 1 FROM json_tree(%s) "
        "WHERE json_tree.type = 'text' AND json_tree.atom = %s)"
    ) % (compiler.process(column, **kw), compiler.process(value, **kw))


@compiles(json_document_contains, "mysql")
@compiles(json_document_contains, "mariadb")
def _json_document_contains_mysql(element, compiler, **kw):
    column, value = list(element.clauses)
    return "(JSON_SEARCH(%s, 'one', %s) IS NOT NULL)" % (
        compiler.process(column, **kw),
        compiler.process(value, **kw),
    )


def _pull_values(current: Any, values: frozenset) -> Any:
    """Remove values from a list, or from every list of a position mapping."""
    if isinstance(current, dict):
        pulled = {}
        for key, entry in current.items():
            if isinstance(entry, list):
                pulled[key] = [item for item in entry if item not in values]
            elif entry in values:
                # Legacy single-reference position
                pulled[key] = []
            else:
                pulled[key] = entry
        return pulled
    if isinstance(current, list):
        return [item for item in current if item not in values]
    return current


@dataclass(frozen=True)
class AddToSet:
    """Set-union of values into a JSON array column."""

    field: str
    values: Tuple[str, ...]

    def apply(self, document) -> bool:
        current = list(getattr(document, self.field) or [])
        missing = [value for value in dict.fromkeys(self.values) if value not in current]
        if not missing:
            return False
        setattr(document, self.field, current + missing)
        return True


@dataclass(frozen=True)
class Pull:
    """Remove values from JSON arrays (or from every array of a position mapping)."""

    fields: Tuple[str, ...]
    values: Tuple[str, ...]

    def apply(self, document) -> bool:
        values = frozenset(self.values)
        changed = False
        for name in self.fields:
            current = getattr(document, name)
            pulled = _pull_values(current, values)
            if pulled != current:
                setattr(document, name, pulled)
                changed = True
        return changed


@dataclass(frozen=True)
class SetFields:
    """Absolute field assignment."""

    values: Dict[str, Any]

    def apply(self, document) -> bool:
        changed = False
        for name, value in self.values.items():
            if getattr(document, name) != value:
                setattr(document, name, value)
                changed = True
        return changed


@dataclass(frozen=True)
class Increment:
    """Relative numeric increment, clamped to [lower, upper] when bounds are given."""

    deltas: Dict[str, int]
    lower: Optional[int] = None
    upper: Optional[int] = None

    def apply(self, document) -> bool:
        changed = False
        for name, delta in self.deltas.items():
            current = getattr(document, name) or 0
            updated = current + delta
            if self.lower is not None:
                updated = max(self.lower, updated)
            if self.upper is not None:
                updated = min(self.upper, updated)
            if updated != current:
                setattr(document, name, updated)
                changed = True
        return changed


@dataclass(frozen=True)
class Combined:
    """Several operators applied to the same rows in one pass."""

    operations: Tuple[Any, ...] = field(default_factory=tuple)

    def apply(self, document) -> bool:
        changed = False
        for operation in self.operations:
            # No short-circuit: every operator must run
            changed = operation.apply(document) or changed
        return changed


@dataclass(frozen=True)
class DeleteDocuments:
    """Delete every matching row."""


async def apply_operation(
    session: AsyncSession,
    model,
    where: Optional[ColumnElement],
    operation,
) -> int:
    """
    Apply an operator to all rows of model matching where.

    Args:
        session: Database session (the caller owns commit/rollback)
        model: ORM model class
        where: Filter clause, or None for every row
        operation: One of the operator dataclasses above

    Returns:
        Number of rows modified or deleted
    """
    stmt = select(model)
    if where is not None:
        stmt = stmt.where(where)
    stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    documents = result.scalars().all()

    if isinstance(operation, DeleteDocuments):
        for document in documents:
            await session.delete(document)
        await session.flush()
        return len(documents)

    modified = 0
    for document in documents:
        if operation.apply(document):
            modified += 1
    await session.flush()
    return modified


def as_tuple(values: Iterable[str]) -> Tuple[str, ...]:
    """Normalize ids to a tuple of strings, preserving order."""
    return tuple(str(value) for value in values)
