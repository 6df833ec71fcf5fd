"""Local entity stores.

The sync engine only needs simple CRUD keyed by identifier strings. The
JSON file store backs the command line interface; applications embedding
dashsync plug in their own :class:`EntityStore`.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from .ids import parse_entity_id
from .models import CalendarEvent, Task


logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", Task, CalendarEvent)


class EntityStore(ABC, Generic[EntityT]):
    """CRUD over local entities keyed by their identifier string."""

    @abstractmethod
    def load_all(self) -> List[EntityT]:
        pass

    @abstractmethod
    def upsert(self, entities: Iterable[EntityT]) -> None:
        """Insert or replace entities by identifier."""
        pass

    @abstractmethod
    def rename(self, old_id: str, new_id: str) -> bool:
        """Re-key an entity after it was created remotely.

        Returns:
            True if an entity with ``old_id`` existed
        """
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        pass

    def get(self, entity_id: str) -> Optional[EntityT]:
        return next((e for e in self.load_all() if str(e.id) == entity_id), None)


class MemoryEntityStore(EntityStore[EntityT]):
    """Entities kept in a dict, in insertion order."""

    def __init__(self, entities: Optional[Iterable[EntityT]] = None):
        self._entities: Dict[str, EntityT] = {}
        self.upsert(entities or [])

    def load_all(self) -> List[EntityT]:
        return list(self._entities.values())

    def upsert(self, entities: Iterable[EntityT]) -> None:
        for entity in entities:
            self._entities[str(entity.id)] = entity

    def rename(self, old_id: str, new_id: str) -> bool:
        entity = self._entities.pop(old_id, None)
        if entity is None:
            return False
        entity.id = parse_entity_id(new_id)
        self._entities[new_id] = entity
        return True

    def delete(self, entity_id: str) -> bool:
        return self._entities.pop(entity_id, None) is not None


class JsonEntityStore(EntityStore[EntityT]):
    """Entities persisted as a JSON list in one file."""

    def __init__(self, path: Union[str, Path], factory: Callable[[dict], EntityT]):
        """Initialize the store.

        Args:
            path: JSON file holding the entities
            factory: Builds an entity from its dictionary form, for example
                ``Task.from_dict``
        """
        self.path = Path(path)
        self.factory = factory
        self.logger = logging.getLogger(__name__)

    def _read(self) -> Dict[str, EntityT]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                items = json.load(f)
            except json.JSONDecodeError as e:
                self.logger.error(f"Corrupted entity file {self.path}: {e}")
                return {}

        entities: Dict[str, EntityT] = {}
        for item in items if isinstance(items, list) else []:
            try:
                entity = self.factory(item)
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(f"Skipping unreadable entity in {self.path}: {e}")
                continue
            entities[str(entity.id)] = entity
        return entities

    def _write(self, entities: Dict[str, EntityT]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump([e.to_dict() for e in entities.values()], f, indent=2)
        os.replace(temp_file, self.path)

    def load_all(self) -> List[EntityT]:
        return list(self._read().values())

    def upsert(self, entities: Iterable[EntityT]) -> None:
        current = self._read()
        for entity in entities:
            current[str(entity.id)] = entity
        self._write(current)

    def rename(self, old_id: str, new_id: str) -> bool:
        current = self._read()
        entity = current.pop(old_id, None)
        if entity is None:
            return False
        entity.id = parse_entity_id(new_id)
        current[new_id] = entity
        self._write(current)
        return True

    def delete(self, entity_id: str) -> bool:
        current = self._read()
        if current.pop(entity_id, None) is None:
            return False
        self._write(current)
        return True
