"""Shopper session: current items, school info, list history and pending grade lists.

Every mutation is written through to the key/value store. If the store is missing or
fails, the failure is logged and the session carries on in memory.
"""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.models import CartCandidateItem, GradeList, ListHistoryEntry, SchoolInfo
from ..logging import get_logger
from .store import KeyValueStore, SqliteKeyValueStore, StoreError

LOG = get_logger("session")

KEY_ITEMS = "scannedItems"
KEY_SCHOOL_INFO = "schoolInfo"
KEY_HISTORY = "listHistory"
KEY_PENDING = "pendingGradeLists"
KEY_SELECTED_INDEX = "selectedGradeIndex"


class UnknownItemError(KeyError):
    """No item with the given id in the current session."""


def _records(key: str, rows: Any, from_dict: Callable[[Dict[str, Any]], Any]) -> List[Any]:
    out: List[Any] = []
    for idx, row in enumerate(rows if isinstance(rows, list) else []):
        if not isinstance(row, dict):
            LOG.warning(f"Skipping {key}[{idx}]: not an object")
            continue
        try:
            out.append(from_dict(row))
        except (KeyError, TypeError, ValueError) as e:
            LOG.warning(f"Skipping malformed {key}[{idx}]: {e!r}")
    return out


class SessionState:
    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self.store = store
        self._lock = threading.Lock()
        self._items: List[CartCandidateItem] = []
        self._school_info: Optional[SchoolInfo] = None
        self._history: List[ListHistoryEntry] = []
        self._pending: List[GradeList] = []
        self._selected_index: Optional[int] = None
        if store is None:
            LOG.warning("No session store configured; session state is kept in memory only")

    # ---------- persistence ----------
    def _read(self, key: str) -> Any:
        if self.store is None:
            return None
        try:
            return self.store.get(key)
        except StoreError as e:
            LOG.warning(f"Session store read failed for {key}: {e}")
            return None

    def _write(self, key: str, value: Any) -> None:
        if self.store is None:
            return
        try:
            if value is None:
                self.store.delete(key)
            else:
                self.store.set(key, value)
        except StoreError as e:
            LOG.warning(f"Session store write failed for {key}; keeping in-memory value: {e}")

    def load(self) -> "SessionState":
        """Populate from the store; malformed records are skipped."""
        items = self._read(KEY_ITEMS) or []
        school = self._read(KEY_SCHOOL_INFO)
        history = self._read(KEY_HISTORY) or []
        pending = self._read(KEY_PENDING) or []
        selected = self._read(KEY_SELECTED_INDEX)
        with self._lock:
            self._items = _records(KEY_ITEMS, items, CartCandidateItem.from_dict)
            self._school_info = SchoolInfo.from_dict(school) if isinstance(school, dict) else None
            self._history = _records(KEY_HISTORY, history, ListHistoryEntry.from_dict)
            self._pending = _records(KEY_PENDING, pending, GradeList.from_dict)
            self._selected_index = selected if isinstance(selected, int) and not isinstance(selected, bool) else None
        LOG.debug(f"Session loaded: {len(self._items)} item(s), {len(self._history)} history entr(y/ies)")
        return self

    # ---------- school info ----------
    @property
    def school_info(self) -> Optional[SchoolInfo]:
        return self._school_info

    def set_school_info(self, info: Optional[SchoolInfo]) -> None:
        with self._lock:
            self._school_info = info
            self._write(KEY_SCHOOL_INFO, info.to_dict() if info else None)

    # ---------- items ----------
    @property
    def items(self) -> List[CartCandidateItem]:
        return [replace(it) for it in self._items]

    def set_items(self, items: Sequence[CartCandidateItem]) -> None:
        with self._lock:
            self._items = [replace(it) for it in items]
            self._write(KEY_ITEMS, [it.to_dict() for it in self._items])
        LOG.info(f"Stored {len(items)} item(s) in session")

    def _index_of(self, item_id: str) -> int:
        for idx, it in enumerate(self._items):
            if it.id == item_id:
                return idx
        raise UnknownItemError(item_id)

    def update_item(
        self, item_id: str, *, in_cart: Optional[bool] = None, requested_quantity: Optional[int] = None
    ) -> CartCandidateItem:
        """Change inclusion and/or quantity of one item. Other fields never change here."""
        if requested_quantity is not None:
            if isinstance(requested_quantity, bool) or not isinstance(requested_quantity, int) or requested_quantity < 1:
                raise ValueError(f"Quantity must be an integer >= 1, got {requested_quantity!r}")
        with self._lock:
            idx = self._index_of(item_id)
            item = self._items[idx]
            if in_cart is not None:
                item = replace(item, in_cart=bool(in_cart))
            if requested_quantity is not None:
                item = replace(item, requested_quantity=requested_quantity)
            self._items[idx] = item
            self._write(KEY_ITEMS, [it.to_dict() for it in self._items])
        return replace(item)

    def toggle_item(self, item_id: str) -> CartCandidateItem:
        with self._lock:
            current = self._items[self._index_of(item_id)].in_cart
        return self.update_item(item_id, in_cart=not current)

    def set_quantity(self, item_id: str, quantity: int) -> CartCandidateItem:
        return self.update_item(item_id, requested_quantity=quantity)

    def selected_items(self) -> List[CartCandidateItem]:
        return [replace(it) for it in self._items if it.in_cart]

    # ---------- grade selection ----------
    @property
    def pending_grade_lists(self) -> List[GradeList]:
        return list(self._pending)

    @property
    def selected_grade_index(self) -> Optional[int]:
        return self._selected_index

    def set_pending_grade_lists(self, grade_lists: Sequence[GradeList]) -> None:
        with self._lock:
            self._pending = list(grade_lists)
            self._selected_index = None
            self._write(KEY_PENDING, [gl.to_dict() for gl in self._pending] or None)
            self._write(KEY_SELECTED_INDEX, None)

    def mark_grade_selected(self, index: Optional[int]) -> None:
        with self._lock:
            self._selected_index = index
            self._write(KEY_SELECTED_INDEX, index)

    # ---------- history ----------
    def _next_history_id(self) -> str:
        candidate = int(time.time() * 1000)
        if self._history:
            try:
                candidate = max(candidate, int(self._history[-1].id) + 1)
            except ValueError:
                pass
        return str(candidate)

    def append_history(self, info: Optional[SchoolInfo], items: Sequence[CartCandidateItem]) -> ListHistoryEntry:
        info = info or SchoolInfo()
        with self._lock:
            entry = ListHistoryEntry(
                id=self._next_history_id(),
                timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                school_name=info.school_name,
                grade=info.grade,
                teacher_name=info.teacher_name,
                year=info.year,
                item_count=len(items),
                items=tuple(replace(it) for it in items),
            )
            self._history.append(entry)
            self._write(KEY_HISTORY, [e.to_dict() for e in self._history])
        LOG.info(f"History entry {entry.id} added ({entry.item_count} item(s), grade={entry.grade!r})")
        return entry

    def history(self) -> List[ListHistoryEntry]:
        return list(self._history)

    # ---------- reset ----------
    def reset(self, *, include_history: bool = False) -> None:
        """Clear the active list. History survives unless `include_history`."""
        with self._lock:
            self._items = []
            self._school_info = None
            self._pending = []
            self._selected_index = None
            for key in (KEY_ITEMS, KEY_SCHOOL_INFO, KEY_PENDING, KEY_SELECTED_INDEX):
                self._write(key, None)
            if include_history:
                self._history = []
                self._write(KEY_HISTORY, None)
        LOG.info("Session reset" + (" (history cleared)" if include_history else ""))


def open_session(root_dir: Optional[str] = None) -> SessionState:
    """SessionState over the sqlite store under `root_dir`, or memory-only if that fails."""
    try:
        store: Optional[KeyValueStore] = SqliteKeyValueStore(root_dir)
    except (StoreError, OSError) as e:
        LOG.warning(f"Session store unavailable, continuing in memory: {e}")
        store = None
    return SessionState(store).load()
