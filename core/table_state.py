# ================================================================
# File     : core/table_state.py
# Purpose  : Python model of the device table controller that ships
#            inside the HTML report (filter, sort, column visibility,
#            column order, CSV export, persisted layout).
# Notes    : Every transition returns a new TableState. The embedded
#            script (core/device_report.py) runs the same transitions
#            against the DOM; this model drives the CSV written at
#            generation time.
# ================================================================

import json
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from core.models import COLUMNS, COLUMN_KEYS

ORDER_STORAGE_KEY = "fleethound.columnOrder"
VISIBILITY_STORAGE_KEY = "fleethound.columnVisibility"

_LABELS = dict(COLUMNS)


def _csv_quote(value: str) -> str:
    return '"' + str(value).replace('"', '""') + '"'


@dataclass(frozen=True)
class TableState:
    rows: Tuple[Mapping[str, str], ...]
    order: Tuple[str, ...] = COLUMN_KEYS
    hidden: FrozenSet[str] = frozenset()
    row_order: Tuple[int, ...] = ()
    global_text: str = ""
    status: str = ""
    group_tags: FrozenSet[str] = frozenset()
    column_filters: Mapping[str, str] = field(default_factory=dict)
    sort_key: Optional[str] = None
    sort_dir: Optional[str] = None

    # ---------- construction ----------

    @classmethod
    def initial(cls, rows: Sequence[Mapping[str, str]]) -> "TableState":
        rows = tuple(rows)
        return cls(rows=rows, row_order=tuple(range(len(rows))))

    @classmethod
    def restore(cls, rows: Sequence[Mapping[str, str]], store: Mapping[str, str]) -> "TableState":
        """Initial state with any valid persisted order/visibility applied.

        Order goes first because the visibility vector is positional
        against the order it was saved with. Anything malformed or of the
        wrong length is ignored.
        """
        state = cls.initial(rows)

        order = _read_json(store, ORDER_STORAGE_KEY)
        if (isinstance(order, list) and len(order) == len(COLUMN_KEYS)
                and set(order) == set(COLUMN_KEYS)):
            state = replace(state, order=tuple(order))

        visibility = _read_json(store, VISIBILITY_STORAGE_KEY)
        if isinstance(visibility, list) and len(visibility) == len(state.order):
            hidden = frozenset(k for k, shown in zip(state.order, visibility) if shown is False)
            state = replace(state, hidden=hidden)

        return state

    # ---------- queries ----------

    def visible_columns(self) -> List[str]:
        return [k for k in self.order if k not in self.hidden]

    def row_matches(self, row: Mapping[str, str]) -> bool:
        if self.status and row.get("enrolled", "") != self.status:
            return False
        if self.group_tags and row.get("groupTag", "") not in self.group_tags:
            return False
        for key, text in self.column_filters.items():
            needle = (text or "").lower()
            if needle and needle not in (row.get(key) or "").lower():
                return False
        if self.global_text:
            haystack = " ".join(row.get(k, "") for k in self.visible_columns()).lower()
            if self.global_text.lower() not in haystack:
                return False
        return True

    def visible_rows(self) -> List[Mapping[str, str]]:
        return [self.rows[i] for i in self.row_order if self.row_matches(self.rows[i])]

    @property
    def visible_count(self) -> int:
        return len(self.visible_rows())

    def export_csv(self) -> str:
        cols = self.visible_columns()
        lines = [",".join(_csv_quote(_LABELS[k]) for k in cols)]
        for row in self.visible_rows():
            lines.append(",".join(_csv_quote(row.get(k, "")) for k in cols))
        return "\n".join(lines)

    # ---------- transitions ----------

    def with_filters(self, global_text: Optional[str] = None, status: Optional[str] = None,
                     group_tags: Optional[Sequence[str]] = None,
                     column_filters: Optional[Dict[str, str]] = None) -> "TableState":
        changes = {}
        if global_text is not None:
            changes["global_text"] = global_text
        if status is not None:
            changes["status"] = status
        if group_tags is not None:
            changes["group_tags"] = frozenset(group_tags)
        if column_filters is not None:
            unknown = set(column_filters) - set(COLUMN_KEYS)
            if unknown:
                raise KeyError(f"Unknown column(s): {', '.join(sorted(unknown))}")
            merged = dict(self.column_filters)
            merged.update(column_filters)
            changes["column_filters"] = merged
        return replace(self, **changes)

    def clear_filters(self) -> "TableState":
        return replace(self, global_text="", status="", group_tags=frozenset(), column_filters={})

    def sort_by(self, key: str) -> "TableState":
        """Ascending on first activation, then flips by reversing the current order."""
        if key not in COLUMN_KEYS:
            raise KeyError(key)
        if self.sort_key == key:
            new_dir = "desc" if self.sort_dir == "asc" else "asc"
            return replace(self, row_order=tuple(reversed(self.row_order)), sort_dir=new_dir)

        ordered = sorted(self.row_order, key=lambda i: (self.rows[i].get(key) or "").lower())
        return replace(self, row_order=tuple(ordered), sort_key=key, sort_dir="asc")

    def toggle_column(self, key: str, show: bool) -> "TableState":
        if key not in COLUMN_KEYS:
            raise KeyError(key)
        hidden = self.hidden - {key} if show else self.hidden | {key}
        return replace(self, hidden=frozenset(hidden))

    def select_all(self) -> "TableState":
        return replace(self, hidden=frozenset())

    def deselect_all(self) -> "TableState":
        return replace(self, hidden=frozenset(COLUMN_KEYS))

    def move_column(self, source: int, target: int) -> "TableState":
        # out-of-range or no-op moves leave the state unchanged, as the script does
        size = len(self.order)
        if source == target or not (0 <= source < size and 0 <= target < size):
            return self
        order = list(self.order)
        moved = order.pop(source)
        order.insert(target, moved)
        return replace(self, order=tuple(order))

    def reset(self, store: MutableMapping[str, str]) -> "TableState":
        store.pop(ORDER_STORAGE_KEY, None)
        store.pop(VISIBILITY_STORAGE_KEY, None)
        return TableState.initial(self.rows)

    # ---------- persistence ----------

    def persist(self, store: MutableMapping[str, str]) -> None:
        store[ORDER_STORAGE_KEY] = json.dumps(list(self.order))
        store[VISIBILITY_STORAGE_KEY] = json.dumps([k not in self.hidden for k in self.order])


def _read_json(store: Mapping[str, str], key: str):
    raw = store.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None
