"""Base repository with compare-and-set writes for lifecycle entities."""

from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..schema import Base
from ..utils import to_db_datetime

RowT = TypeVar("RowT", bound=Base)
DomainT = TypeVar("DomainT")


def to_column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_db_datetime(value)
    return value


class BaseEntityRepository(Generic[RowT, DomainT]):
    """Keyed store supporting conditional update.

    ``compare_and_set`` is the only write path after creation: the UPDATE
    carries every expected column value in its WHERE clause, so concurrent
    writers serialize on the row and exactly one of them observes rowcount 1.
    """

    model_class: ClassVar[type[Any]]
    id_column: ClassVar[str]

    def __init__(self, session: Session) -> None:
        self.session = session

    def _to_domain(self, row: RowT) -> DomainT:
        raise NotImplementedError

    def get_row(self, entity_id: str) -> RowT | None:
        row: RowT | None = self.session.get(
            self.model_class, entity_id, populate_existing=True
        )
        return row

    def get(self, entity_id: str) -> DomainT | None:
        """Get entity by ID, returning domain model."""
        row = self.get_row(entity_id)
        if row is None:
            return None
        return self._to_domain(row)

    def compare_and_set(
        self,
        entity_id: str,
        expected: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> bool:
        """Write ``values`` only if every column in ``expected`` still matches.

        ``None`` in ``expected`` matches SQL NULL.
        """
        if not values:
            raise ValueError("compare_and_set requires at least one value to write")

        model = self.model_class
        conditions = [getattr(model, self.id_column) == entity_id]
        for column, value in expected.items():
            attr = getattr(model, column)
            db_value = to_column_value(value)
            conditions.append(attr.is_(None) if db_value is None else attr == db_value)

        stmt = (
            update(model)
            .where(*conditions)
            .values({k: to_column_value(v) for k, v in values.items()})
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return bool(result.rowcount == 1)

    def list_by_status(self, statuses: Iterable[str | Enum]) -> list[DomainT]:
        """List entities whose status is one of ``statuses``."""
        values = [to_column_value(s) for s in statuses]
        stmt = select(self.model_class).where(self.model_class.status.in_(values))
        result = self.session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]
