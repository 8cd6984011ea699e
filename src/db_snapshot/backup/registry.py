"""Ordered registry of the tables that take part in a snapshot.

Order encodes foreign key dependency: a table may only reference tables
earlier in the list.  Export and merge-restore walk the registry forward;
replace-restore deletes in reverse, skipping ``PROTECTED_TABLES``.

Usage:
    from db_snapshot.backup.registry import TableRegistry
    from db_snapshot.backup.models import ForeignKey, TableDef

    registry = TableRegistry([
        TableDef(name="user_roles"),
        TableDef(name="users", redact_fields=["password"]),
        TableDef(name="brands"),
        TableDef(name="models", parent=ForeignKey(table="brands", field="brand_id")),
    ])
    registry.deletion_order()   # [models, brands]
"""

from collections.abc import Iterable, Iterator

from db_snapshot.backup.errors import RegistryError
from db_snapshot.backup.models import TableDef

# Replace-mode restores never clear these, so a restore cannot lock every
# operator out.
PROTECTED_TABLES: tuple[str, ...] = ("user_roles", "users")

# Key types keyset pagination can walk (strictly increasing numbers).
NUMERIC_KEY_TYPES = frozenset({"integer", "bigint", "smallint"})


class TableRegistry:
    """Validated, ordered list of ``TableDef`` entries.

    Raises:
        RegistryError: On duplicate names, non-numeric keys, or a foreign
            key that points at a later (or unknown) table.
    """

    def __init__(
        self,
        tables: Iterable[TableDef],
        protected: Iterable[str] = PROTECTED_TABLES,
    ) -> None:
        self._tables: list[TableDef] = list(tables)
        self._protected: frozenset[str] = frozenset(protected)
        self._validate()
        self._by_name = {t.name: t for t in self._tables}

    def _validate(self) -> None:
        seen: set[str] = set()
        for table in self._tables:
            if table.name in seen:
                raise RegistryError(f"Duplicate table in registry: {table.name}")

            if table.key_type not in NUMERIC_KEY_TYPES:
                raise RegistryError(
                    f"Table {table.name} has a {table.key_type} primary key "
                    f"'{table.pk}'; keyset pagination requires a strictly "
                    f"increasing numeric key"
                )

            for ref in table.references:
                if ref.table == table.name:
                    # Self references resolve within the same table.
                    continue
                if ref.table not in seen:
                    raise RegistryError(
                        f"Table {table.name} references {ref.table} "
                        f"(via {ref.field}) which is not registered before it"
                    )

            seen.add(table.name)

    def __iter__(self) -> Iterator[TableDef]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._tables]

    @property
    def protected(self) -> frozenset[str]:
        return self._protected

    def get(self, name: str) -> TableDef | None:
        return self._by_name.get(name)

    def is_protected(self, name: str) -> bool:
        return name in self._protected

    def deletion_order(self) -> list[TableDef]:
        """Tables to clear in a replace restore, children first.

        Protected tables are excluded.
        """
        return [
            t for t in reversed(self._tables) if t.name not in self._protected
        ]
