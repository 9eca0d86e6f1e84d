"""Entity store contract and an in-memory implementation.

The real store belongs to the tabletop host; the assistant only needs CRUD
over named collections plus macro execution.
"""

import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

from .errors import EntityStoreError


COLLECTIONS: Tuple[str, ...] = ("actors", "items", "scenes", "journals", "macros")

# Singular type names accepted in chat commands
ENTITY_TYPES: Dict[str, str] = {
    "actor": "actors",
    "item": "items",
    "scene": "scenes",
    "journal": "journals",
    "macro": "macros",
}


def resolve_collection(name: str) -> Optional[str]:
    """Map ``actor``/``actors`` style names to a collection, or None."""
    name = name.strip().lower()
    if name in COLLECTIONS:
        return name
    return ENTITY_TYPES.get(name)


@runtime_checkable
class EntityStore(Protocol):
    """CRUD contract over the host's game-world documents."""

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def update(self, collection: str, entity_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def delete(self, collection: str, entity_id: str) -> None:
        ...

    async def query(
        self, collection: str, filters: Optional[Dict[str, Any]] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        ...

    async def count(self, collection: str) -> int:
        ...

    async def execute_macro(self, macro_id: str, args: List[str]) -> Any:
        ...


MacroHandler = Callable[..., Union[Any, Awaitable[Any]]]


class InMemoryEntityStore:
    """Dict-backed entity store used by the CLI and the tests.

    Every call is appended to ``calls`` as ``(method, collection)``.
    """

    def __init__(self, seed: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.logger = logging.getLogger(__name__)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        self._macro_handlers: Dict[str, MacroHandler] = {}
        self.calls: List[Tuple[str, str]] = []

        for collection, entities in (seed or {}).items():
            documents = self._collection(collection)
            for entity in entities:
                entity = dict(entity)
                entity.setdefault("id", uuid.uuid4().hex[:16])
                documents[entity["id"]] = entity

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        try:
            return self._collections[name]
        except KeyError:
            raise EntityStoreError(f"Unknown collection: {name}", collection=name) from None

    def _require(self, collection: str, entity_id: str) -> Dict[str, Any]:
        entity = self._collection(collection).get(entity_id)
        if entity is None:
            raise EntityStoreError(
                f"No document with id {entity_id!r} in {collection}", collection=collection
            )
        return entity

    def add_macro_handler(self, macro_name: str, handler: MacroHandler) -> None:
        """Attach a callable run when the macro named ``macro_name`` executes."""
        self._macro_handlers[macro_name] = handler

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("create", collection))
        documents = self._collection(collection)
        entity = {"id": uuid.uuid4().hex[:16], **data}
        documents[entity["id"]] = entity
        self.logger.debug(f"Created {collection} document {entity['id']}")
        return dict(entity)

    async def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", collection))
        entity = self._collection(collection).get(entity_id)
        return dict(entity) if entity is not None else None

    async def update(self, collection: str, entity_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("update", collection))
        entity = self._require(collection, entity_id)
        entity.update({k: v for k, v in changes.items() if k != "id"})
        return dict(entity)

    async def delete(self, collection: str, entity_id: str) -> None:
        self.calls.append(("delete", collection))
        self._require(collection, entity_id)
        del self._collection(collection)[entity_id]

    async def query(
        self, collection: str, filters: Optional[Dict[str, Any]] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        self.calls.append(("query", collection))
        results = []
        for entity in self._collection(collection).values():
            if self._matches(entity, filters or {}):
                results.append(dict(entity))
                if limit is not None and len(results) >= limit:
                    break
        return results

    @staticmethod
    def _matches(entity: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        for key, expected in filters.items():
            actual = entity.get(key)
            if key == "name" and isinstance(expected, str):
                if actual is None or expected.lower() not in str(actual).lower():
                    return False
            elif actual != expected:
                return False
        return True

    async def count(self, collection: str) -> int:
        return len(self._collection(collection))

    async def execute_macro(self, macro_id: str, args: List[str]) -> Any:
        self.calls.append(("execute", "macros"))
        macro = self._require("macros", macro_id)
        handler = self._macro_handlers.get(macro.get("name", ""))
        if handler is None:
            return macro.get("command")
        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result
