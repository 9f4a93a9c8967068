"""Dashboard layouts and the widgets placed on them, stored in SQLite."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_GRID_COLUMNS = 4
DEFAULT_GRID_ROWS = 3
SNAPSHOT_DESCRIPTION = "Automatically saved layout"

_LAYOUT_COLUMNS = (
    "id, name, description, grid_columns, grid_rows, is_default, created_at, updated_at"
)
_WIDGET_COLUMNS = (
    "id, layout_id, widget_type, plugin_id, position_col, position_row, "
    "size_col_span, size_row_span, config, created_at"
)


class LayoutNotFoundError(LookupError):
    """Raised when a layout with the requested id does not exist."""


def _to_utc(value: Any) -> datetime:
    """Read a stored timestamp as UTC; a missing one becomes the current time."""
    if value is None:
        return datetime.now(timezone.utc)
    moment = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_config(text: str | None) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


@dataclass
class DashboardLayout:
    id: int
    name: str
    description: str | None
    grid_columns: int
    grid_rows: int
    is_default: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> DashboardLayout:
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            grid_columns=row["grid_columns"],
            grid_rows=row["grid_rows"],
            is_default=bool(row["is_default"]),
            created_at=_to_utc(row["created_at"]),
            updated_at=_to_utc(row["updated_at"]),
        )


@dataclass
class LayoutWidget:
    id: int
    layout_id: int
    widget_type: str
    plugin_id: str | None
    position_col: int
    position_row: int
    size_col_span: int
    size_row_span: int
    config: Any
    created_at: datetime

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> LayoutWidget:
        return cls(
            id=row["id"],
            layout_id=row["layout_id"],
            widget_type=row["widget_type"],
            plugin_id=row["plugin_id"],
            position_col=row["position_col"],
            position_row=row["position_row"],
            size_col_span=row["size_col_span"],
            size_row_span=row["size_row_span"],
            config=_parse_config(row["config"]),
            created_at=_to_utc(row["created_at"]),
        )


@dataclass(kw_only=True)
class CreateWidgetRequest:
    widget_type: str
    plugin_id: str | None = None
    position_col: int
    position_row: int
    size_col_span: int = 1
    size_row_span: int = 1
    config: Any = None


@dataclass(kw_only=True)
class CreateLayoutRequest:
    name: str
    description: str | None = None
    grid_columns: int | None = None
    grid_rows: int | None = None
    widgets: list[CreateWidgetRequest] = field(default_factory=list)


class LayoutManager:
    """Creates, reads and deletes dashboard layouts on an SQLite connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def _fetch(self, sql: str, params: Any = ()) -> list[sqlite3.Row]:
        cursor = self._conn.cursor()
        cursor.row_factory = sqlite3.Row
        return cursor.execute(sql, params).fetchall()

    def create_layout(self, request: CreateLayoutRequest) -> DashboardLayout:
        """Store a layout and its widgets in one transaction and return it."""
        grid_columns = (
            DEFAULT_GRID_COLUMNS if request.grid_columns is None else request.grid_columns
        )
        grid_rows = DEFAULT_GRID_ROWS if request.grid_rows is None else request.grid_rows

        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO dashboard_layouts (name, description, grid_columns, grid_rows)
                VALUES (?, ?, ?, ?)
                """,
                (request.name, request.description, grid_columns, grid_rows),
            )
            layout_id = cursor.lastrowid
            self._conn.executemany(
                """
                INSERT INTO layout_widgets
                (layout_id, widget_type, plugin_id, position_col, position_row,
                 size_col_span, size_row_span, config)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        layout_id,
                        widget.widget_type,
                        widget.plugin_id,
                        widget.position_col,
                        widget.position_row,
                        widget.size_col_span,
                        widget.size_row_span,
                        None if widget.config is None else json.dumps(widget.config),
                    )
                    for widget in request.widgets
                ],
            )

        return self.get_layout(layout_id)

    def get_layout(self, layout_id: int) -> DashboardLayout:
        rows = self._fetch(
            f"SELECT {_LAYOUT_COLUMNS} FROM dashboard_layouts WHERE id = ?", (layout_id,)
        )
        if not rows:
            raise LayoutNotFoundError(f"layout {layout_id} not found")
        return DashboardLayout._from_row(rows[0])

    def get_layout_widgets(self, layout_id: int) -> list[LayoutWidget]:
        """Return the layout's widgets ordered by row, then column."""
        rows = self._fetch(
            f"""
            SELECT {_WIDGET_COLUMNS} FROM layout_widgets
            WHERE layout_id = ?
            ORDER BY position_row, position_col
            """,
            (layout_id,),
        )
        return [LayoutWidget._from_row(row) for row in rows]

    def list_layouts(self) -> list[DashboardLayout]:
        """Return all layouts, the default first, then newest first."""
        rows = self._fetch(
            f"""
            SELECT {_LAYOUT_COLUMNS} FROM dashboard_layouts
            ORDER BY is_default DESC, created_at DESC, id DESC
            """
        )
        return [DashboardLayout._from_row(row) for row in rows]

    def set_default_layout(self, layout_id: int) -> None:
        """Make one layout the default, clearing the flag on all others."""
        with self._conn:
            self._conn.execute("UPDATE dashboard_layouts SET is_default = FALSE")
            self._conn.execute(
                "UPDATE dashboard_layouts SET is_default = TRUE WHERE id = ?", (layout_id,)
            )

    def delete_layout(self, layout_id: int) -> None:
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM dashboard_layouts WHERE id = ?", (layout_id,)
            )
        if cursor.rowcount == 0:
            raise LayoutNotFoundError("Layout not found")

    def save_current_layout(
        self, name: str, widgets: list[CreateWidgetRequest]
    ) -> DashboardLayout:
        """Save a snapshot of the current widgets as a new layout."""
        return self.create_layout(
            CreateLayoutRequest(
                name=name,
                description=SNAPSHOT_DESCRIPTION,
                grid_columns=DEFAULT_GRID_COLUMNS,
                grid_rows=DEFAULT_GRID_ROWS,
                widgets=list(widgets),
            )
        )

    def get_default_layout(self) -> DashboardLayout | None:
        rows = self._fetch(
            f"""
            SELECT {_LAYOUT_COLUMNS} FROM dashboard_layouts
            WHERE is_default = TRUE
            LIMIT 1
            """
        )
        return DashboardLayout._from_row(rows[0]) if rows else None