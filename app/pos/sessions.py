"""
app/pos/sessions.py
-------------------
Owns every open tab, which one is active, and the parked ("held") orders.

State is written through a SessionStore after every mutating operation,
so a page reload (or a new request) picks up exactly where the operator
left off. Three blobs are kept under separate keys:

    posTabs        — JSON list of serialised CartSessions, in tab order
    posActiveTab   — id of the active tab
    posHoldOrders  — JSON list of {"id", "parked_at", "session"}

A missing or unparsable blob is treated as "nothing saved yet".

Invariants:
    • at least one tab always exists
    • active_id always names a tab in the set
"""
from __future__ import annotations
import json
import logging
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, MutableMapping, Optional

from app.pos.cart import CartSession, new_session_id
from app.pos.errors import EmptyCart, UnknownParkedOrder, UnknownTab

logger = logging.getLogger(__name__)


TABS_KEY   = 'posTabs'
ACTIVE_KEY = 'posActiveTab'
PARKED_KEY = 'posHoldOrders'

_TAB_LABEL = re.compile(r'^Tab (\d+)$')


# ── Persistence port ──────────────────────────────────────────────

class SessionStore:
    """Load/save for the three state blobs. Subclasses supply the backing map."""

    def load_tabs(self) -> Optional[list]:
        return self._load_json(TABS_KEY, list)

    def save_tabs(self, tabs: list) -> None:
        self._write(TABS_KEY, json.dumps(tabs))

    def load_active_id(self) -> Optional[str]:
        return self._read(ACTIVE_KEY) or None

    def save_active_id(self, session_id: str) -> None:
        self._write(ACTIVE_KEY, session_id)

    def load_parked(self) -> Optional[list]:
        return self._load_json(PARKED_KEY, list)

    def save_parked(self, parked: list) -> None:
        self._write(PARKED_KEY, json.dumps(parked))

    # ── Backend hooks ─────────────────────────────────────────────
    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _load_json(self, key: str, expected_type):
        raw = self._read(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unparsable POS state under %r", key)
            return None
        if not isinstance(value, expected_type):
            logger.warning("Discarding POS state of unexpected shape under %r", key)
            return None
        return value


class KeyValueSessionStore(SessionStore):
    """Store backed by any mutable str → str mapping (a dict in tests)."""

    def __init__(self, backend: MutableMapping[str, str] = None):
        self.backend = backend if backend is not None else {}

    def _read(self, key):
        value = self.backend.get(key)
        return value if isinstance(value, str) else None

    def _write(self, key, value):
        self.backend[key] = value


# ── Parked orders ─────────────────────────────────────────────────

@dataclass
class ParkedOrder:
    id:        str
    parked_at: datetime
    session:   CartSession

    @property
    def customer_name(self) -> str:
        return self.session.customer.name if self.session.customer else 'Walk-in'

    def to_dict(self) -> dict:
        return {
            'id':        self.id,
            'parked_at': self.parked_at.isoformat(),
            'session':   self.session.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ParkedOrder':
        return cls(
            id        = data['id'],
            parked_at = datetime.fromisoformat(data['parked_at']),
            session   = CartSession.from_dict(data['session']),
        )


def next_tab_label(sessions) -> str:
    """Smallest unused "Tab N" — numbers freed by closed tabs are reused."""
    used = set()
    for s in sessions:
        match = _TAB_LABEL.match(s.display_name)
        if match:
            used.add(int(match.group(1)))
    n = 1
    while n in used:
        n += 1
    return f'Tab {n}'


# ── Manager ───────────────────────────────────────────────────────

class SessionManager:

    def __init__(self, store: SessionStore):
        self.store = store
        self._sessions: Dict[str, CartSession] = {}
        self.active_id: Optional[str] = None
        self.parked: List[ParkedOrder] = []
        self._restore()

    # ── Loading ───────────────────────────────────────────────────

    def _restore(self) -> None:
        for data in self.store.load_tabs() or []:
            try:
                session = CartSession.from_dict(data)
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable saved tab: %r", data)
                continue
            self._sessions[session.id] = session

        for data in self.store.load_parked() or []:
            try:
                self.parked.append(ParkedOrder.from_dict(data))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable parked order: %r", data)

        active = self.store.load_active_id()
        if not self._sessions:
            fresh = self._new_session()
            self._sessions[fresh.id] = fresh
            active = fresh.id
        if active not in self._sessions:
            active = next(iter(self._sessions))
        self.active_id = active

    def _new_session(self) -> CartSession:
        return CartSession(id=new_session_id(),
                           display_name=next_tab_label(self._sessions.values()))

    def save(self) -> None:
        self.store.save_tabs([s.to_dict() for s in self._sessions.values()])
        self.store.save_active_id(self.active_id)
        self.store.save_parked([p.to_dict() for p in self.parked])

    # ── Reads ─────────────────────────────────────────────────────

    @property
    def sessions(self) -> List[CartSession]:
        return list(self._sessions.values())

    @property
    def active(self) -> CartSession:
        return self._sessions[self.active_id]

    def get(self, session_id: str = None) -> CartSession:
        if session_id is None:
            return self.active
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownTab() from None

    def _find_parked(self, parked_id: str) -> ParkedOrder:
        for order in self.parked:
            if order.id == parked_id:
                return order
        raise UnknownParkedOrder()

    # ── Cart edits ────────────────────────────────────────────────

    @contextmanager
    def editing(self, session_id: str = None):
        """
        Yield a tab for mutation; state is saved once the block completes.
        Cart operations leave the tab unchanged when they raise, so nothing
        is written on error.
        """
        session = self.get(session_id)
        yield session
        self.save()

    # ── Tabs ──────────────────────────────────────────────────────

    def open_tab(self) -> CartSession:
        session = self._new_session()
        self._sessions[session.id] = session
        self.active_id = session.id
        self.save()
        return session

    def close_tab(self, session_id: str) -> None:
        self.get(session_id)
        if len(self._sessions) == 1:
            return
        del self._sessions[session_id]
        if self.active_id == session_id:
            self.active_id = next(iter(self._sessions))
        self.save()

    def switch_to(self, session_id: str) -> CartSession:
        session = self.get(session_id)
        self.active_id = session.id
        self.save()
        return session

    def reorder(self, session_id: str, before_id: str = None) -> None:
        """Move a tab so it sits immediately before `before_id` (None → last)."""
        moving = self.get(session_id)
        if before_id is not None:
            self.get(before_id)
        if before_id == session_id:
            return

        ordered = [s for s in self._sessions.values() if s.id != session_id]
        if before_id is None:
            ordered.append(moving)
        else:
            index = next(i for i, s in enumerate(ordered) if s.id == before_id)
            ordered.insert(index, moving)
        self._sessions = {s.id: s for s in ordered}
        self.save()

    def retire(self, session_id: str) -> CartSession:
        """
        Remove a checked-out tab. Returns the new active tab — a fresh
        "Tab 1" if the retired tab was the last one.
        """
        self.get(session_id)
        del self._sessions[session_id]
        if not self._sessions:
            fresh = self._new_session()
            self._sessions[fresh.id] = fresh
            self.active_id = fresh.id
        elif self.active_id == session_id or self.active_id not in self._sessions:
            self.active_id = next(iter(self._sessions))
        self.save()
        return self.active

    # ── Parked orders ─────────────────────────────────────────────

    def park_active(self) -> ParkedOrder:
        session = self.active
        if session.is_empty:
            raise EmptyCart()

        snapshot = CartSession.from_dict(session.to_dict())
        order = ParkedOrder(id=uuid.uuid4().hex, parked_at=datetime.now(), session=snapshot)
        self.parked.append(order)
        session.clear()
        self.save()
        logger.info("Parked %s (%d lines, customer=%s)",
                    session.display_name, len(snapshot.lines), order.customer_name)
        return order

    def retrieve_parked(self, parked_id: str) -> CartSession:
        """Reopen a parked order in a new tab, which becomes active."""
        order = self._find_parked(parked_id)

        session = CartSession.from_dict(order.session.to_dict())
        session.id = new_session_id()
        session.display_name = next_tab_label(self._sessions.values())

        self._sessions[session.id] = session
        self.active_id = session.id
        self.parked.remove(order)
        self.save()
        return session

    def discard_parked(self, parked_id: str) -> None:
        self.parked.remove(self._find_parked(parked_id))
        self.save()

    # ── Serialisation for the HTTP layer ──────────────────────────

    def to_dict(self) -> dict:
        return {
            'active_id': self.active_id,
            'tabs':      [s.to_dict() for s in self._sessions.values()],
            'parked':    [
                {**p.to_dict(), 'customer_name': p.customer_name}
                for p in self.parked
            ],
        }
