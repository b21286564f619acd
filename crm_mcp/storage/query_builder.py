"""Query builder helpers for PostgreSQL queries with dynamic filters."""

import re
from typing import Any

from .query import Filter, Query

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_COMPARISON_OPS = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def validate_identifier(name: str) -> str:
    """Validate a table or column name before it is interpolated into SQL.

    Raises:
        ValueError: If the identifier contains anything but letters, digits and underscores.
    """
    if not IDENTIFIER_PATTERN.fullmatch(name):
        raise ValueError(
            f"Invalid identifier '{name}': must start with letter or underscore "
            "and contain only letters, numbers, and underscores"
        )
    return name


class SQLFilterBuilder:
    """Helper for building PostgreSQL WHERE clauses from ``Filter`` objects.

    Manages parameter placeholders and values for safe parameterized queries.

    Example:
        builder = SQLFilterBuilder()
        builder.add_filters(Query("tasks").eq("status", "To Do").filters)

        sql = builder.build_query_with_filter("SELECT * FROM tasks", order_by="created_at DESC")
        rows = await conn.fetch(sql, *builder.get_params())
    """

    def __init__(self, base_params: list[Any] | None = None):
        """Initialize the builder.

        Args:
            base_params: Initial parameters (e.g. SET values of an UPDATE).
                        Filter params are appended to this list.
        """
        self.params: list[Any] = base_params if base_params is not None else []
        self.conditions: list[str] = []

    def _placeholder(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def add_filter(self, f: Filter) -> "SQLFilterBuilder":
        """Add one filter condition.

        Returns:
            Self for method chaining.

        Raises:
            ValueError: If a column name is not a safe SQL identifier.
        """
        if f.op == "search":
            columns = [validate_identifier(col) for col in f.columns]
            placeholder = self._placeholder(f"%{f.value}%")
            self.conditions.append(
                "(" + " OR ".join(f"{col} ILIKE {placeholder}" for col in columns) + ")"
            )
            return self

        column = validate_identifier(f.column)
        if f.op in _COMPARISON_OPS:
            if f.value is None and f.op in ("eq", "neq"):
                self.conditions.append(f"{column} IS {'NOT ' if f.op == 'neq' else ''}NULL")
            else:
                self.conditions.append(f"{column} {_COMPARISON_OPS[f.op]} {self._placeholder(f.value)}")
        elif f.op == "in":
            self.conditions.append(f"{column} = ANY({self._placeholder(list(f.value))})")
        elif f.op == "ilike":
            self.conditions.append(f"{column} ILIKE {self._placeholder(f.value)}")
        else:
            raise ValueError(f"Unsupported filter operator: {f.op}")
        return self

    def add_filters(self, filters: list[Filter]) -> "SQLFilterBuilder":
        for f in filters:
            self.add_filter(f)
        return self

    def add_match(self, match: dict[str, Any]) -> "SQLFilterBuilder":
        """Add an equality condition per column in ``match``."""
        for column, value in match.items():
            self.add_filter(Filter(column=column, op="eq", value=value))
        return self

    def has_conditions(self) -> bool:
        """Check if any filter conditions have been added."""
        return len(self.conditions) > 0

    def get_where_clause(self) -> str:
        """Get the complete WHERE clause (without the 'WHERE' keyword)."""
        return " AND ".join(self.conditions) if self.conditions else ""

    def get_params(self) -> list[Any]:
        """Get the parameter list for the query."""
        return self.params

    def build_query_with_filter(
        self,
        base_query: str,
        order_by: str = "",
        limit: int | None = None,
        offset: int | None = None,
    ) -> str:
        """Build complete query by appending WHERE, ORDER BY, LIMIT, and OFFSET.

        Args:
            base_query: Base statement (e.g., "SELECT * FROM table")
            order_by: Optional ORDER BY clause (e.g., "created_at DESC")
            limit: Optional LIMIT value
            offset: Optional OFFSET value

        Returns:
            Complete SQL query string.
        """
        query = base_query

        if self.has_conditions():
            query += " WHERE " + self.get_where_clause()

        if order_by:
            query += f" ORDER BY {order_by}"

        if limit is not None:
            query += f" LIMIT {int(limit)}"

        if offset is not None:
            query += f" OFFSET {int(offset)}"

        return query


def build_select(query: Query) -> tuple[str, list[Any]]:
    """Render a ``Query`` as a SELECT statement and its parameters."""
    table = validate_identifier(query.table)
    builder = SQLFilterBuilder().add_filters(query.filters)
    order_by = ""
    if query.order_by:
        direction = "DESC" if query.descending else "ASC"
        order_by = f"{validate_identifier(query.order_by)} {direction} NULLS LAST"
    sql = builder.build_query_with_filter(
        f"SELECT * FROM {table}",
        order_by=order_by,
        limit=query.limit_value,
        offset=query.offset_value,
    )
    return sql, builder.get_params()


def build_insert(table: str, values: dict[str, Any]) -> tuple[str, list[Any]]:
    """Render an INSERT ... RETURNING * statement."""
    table = validate_identifier(table)
    if not values:
        return f"INSERT INTO {table} DEFAULT VALUES RETURNING *", []
    columns = [validate_identifier(col) for col in values]
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *"
    return sql, list(values.values())


def build_update(
    table: str, match: dict[str, Any], values: dict[str, Any], touch_updated_at: bool = True
) -> tuple[str, list[Any]]:
    """Render an UPDATE ... RETURNING * statement."""
    table = validate_identifier(table)
    assignments = []
    params: list[Any] = []
    for column, value in values.items():
        params.append(value)
        assignments.append(f"{validate_identifier(column)} = ${len(params)}")
    if touch_updated_at and "updated_at" not in values:
        assignments.append("updated_at = NOW()")
    if not assignments:
        raise ValueError("UPDATE requires at least one column")
    builder = SQLFilterBuilder(base_params=params).add_match(match)
    sql = builder.build_query_with_filter(f"UPDATE {table} SET {', '.join(assignments)}")
    return sql + " RETURNING *", builder.get_params()


def build_delete(table: str, match: dict[str, Any]) -> tuple[str, list[Any]]:
    """Render a DELETE statement; refuses to delete without conditions."""
    table = validate_identifier(table)
    builder = SQLFilterBuilder().add_match(match)
    if not builder.has_conditions():
        raise ValueError("DELETE requires at least one match condition")
    return builder.build_query_with_filter(f"DELETE FROM {table}"), builder.get_params()
