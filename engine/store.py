"""Position store abstraction (source of truth for the user's positions)."""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from engine.domain.models import Position

logger = logging.getLogger(__name__)


class PositionStore(ABC):
    """Abstract position store. The engine only reads from it during a refresh."""

    @abstractmethod
    def list(self, user_id: str) -> List[Position]:
        """Return the user's positions in insertion order."""
        pass

    @abstractmethod
    def insert(self, user_id: str, position: Position) -> Position:
        """Store a new position."""
        pass

    @abstractmethod
    def update(self, position_id: str, **fields) -> Optional[Position]:
        """Edit shares, avg_price and/or name; None when the id is unknown."""
        pass

    @abstractmethod
    def delete(self, position_id: str) -> bool:
        """Remove a position; False when the id is unknown."""
        pass

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex


class InMemoryPositionStore(PositionStore):
    """Process-local store keyed by user id."""

    EDITABLE_FIELDS = {"shares", "avg_price", "name"}

    def __init__(self):
        self._positions: Dict[str, Position] = {}
        self._owners: Dict[str, str] = {}
        self._lock = threading.Lock()

    def list(self, user_id: str) -> List[Position]:
        with self._lock:
            return [
                p for pid, p in self._positions.items()
                if self._owners.get(pid) == user_id
            ]

    def insert(self, user_id: str, position: Position) -> Position:
        with self._lock:
            if position.id in self._positions:
                raise ValueError(f"Position id already exists: {position.id}")
            self._positions[position.id] = position
            self._owners[position.id] = user_id
        logger.info("Inserted position %s (%s) for user %s", position.id, position.symbol, user_id)
        return position

    def update(self, position_id: str, **fields) -> Optional[Position]:
        unknown = set(fields) - self.EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._positions.get(position_id)
            if current is None:
                return None
            updated = current.with_updates(**fields)
            self._positions[position_id] = updated
        logger.info("Updated position %s: %s", position_id, sorted(fields))
        return updated

    def delete(self, position_id: str) -> bool:
        with self._lock:
            if self._positions.pop(position_id, None) is None:
                return False
            self._owners.pop(position_id, None)
        logger.info("Deleted position %s", position_id)
        return True
