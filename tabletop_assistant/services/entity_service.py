"""Queued CRUD operations over the host entity store."""

from typing import Any, Dict, List, Optional

from .base import BaseService, ServiceResult
from .queue import Operation, OperationKind, OperationQueue
from ..entity_store import COLLECTIONS, EntityStore, resolve_collection
from ..errors import InsufficientPermission, InvalidArgument
from ..permissions import Capability, PermissionStore


CREATE_CAPABILITIES = {
    "actors": Capability.CREATE_ACTOR,
    "items": Capability.CREATE_ITEM,
    "scenes": Capability.CREATE_SCENE,
    "journals": Capability.CREATE_JOURNAL,
    "macros": Capability.CREATE_MACRO,
}

UPDATE_CAPABILITIES = {
    "actors": Capability.UPDATE_ACTOR,
    "items": Capability.UPDATE_ITEM,
    "scenes": Capability.UPDATE_SCENE,
    "journals": Capability.UPDATE_JOURNAL,
    "macros": Capability.UPDATE_MACRO,
}

# Macros have no dedicated delete capability
DELETE_CAPABILITIES = {
    "actors": Capability.DELETE_ACTOR,
    "items": Capability.DELETE_ITEM,
    "scenes": Capability.DELETE_SCENE,
    "journals": Capability.DELETE_JOURNAL,
    "macros": Capability.DELETE_ANY_DOCUMENT,
}

QUERY_CAPABILITIES = {
    "actors": Capability.QUERY_ACTORS,
    "items": Capability.QUERY_ITEMS,
    "scenes": Capability.QUERY_SCENES,
    "journals": Capability.QUERY_JOURNAL,
    "macros": Capability.QUERY_MACROS,
}

MAX_NAME_LENGTH = 50


def _singular(collection: str) -> str:
    return collection[:-1] if collection.endswith("s") else collection


class EntityService(BaseService):
    """Runs mutations through the operation queue and reads directly.

    Capabilities are checked again inside each queued operation body, at
    the moment the store is touched.
    """

    def __init__(self, store: EntityStore, permissions: PermissionStore, queue: OperationQueue):
        super().__init__()
        self.store = store
        self.permissions = permissions
        self.queue = queue

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve(collection: str) -> str:
        resolved = resolve_collection(collection)
        if resolved is None:
            raise InvalidArgument(
                f"Unsupported type: {collection}",
                f'Type "{collection}" is not supported. Valid types: actor, item, scene, journal, macro',
            )
        return resolved

    def _require(self, capability: Capability, action: str) -> None:
        if not self.permissions.check(capability):
            raise InsufficientPermission(capability.value, f"Insufficient permission to {action}")

    @staticmethod
    def _validate_payload(data: Dict[str, Any], is_update: bool = False) -> None:
        if not isinstance(data, dict):
            raise InvalidArgument("Entity data must be an object")
        name = data.get("name")
        if not is_update and not name:
            raise InvalidArgument("Name is required")
        if name is not None and not (1 <= len(str(name)) <= MAX_NAME_LENGTH):
            raise InvalidArgument(f"Name must be between 1 and {MAX_NAME_LENGTH} characters")

    async def _find(self, collection: str, name_or_id: str) -> Optional[Dict[str, Any]]:
        entity = await self.store.get(collection, name_or_id)
        if entity is not None:
            return entity
        for candidate in await self.store.query(collection, {"name": name_or_id}):
            if str(candidate.get("name", "")).lower() == name_or_id.lower():
                return candidate
        return None

    async def _find_or_fail(self, collection: str, name_or_id: str) -> Dict[str, Any]:
        entity = await self._find(collection, name_or_id)
        if entity is None:
            raise InvalidArgument(f'{_singular(collection).capitalize()} "{name_or_id}" not found')
        return entity

    # ------------------------------------------------------------------
    # Operation builders
    # ------------------------------------------------------------------

    def build_create(
        self, collection: str, data: Dict[str, Any], *, allow_duplicates: bool = False
    ) -> Operation:
        collection = self._resolve(collection)
        payload = dict(data) if isinstance(data, dict) else data

        async def execute() -> Dict[str, Any]:
            self._require(CREATE_CAPABILITIES[collection], f"create {collection}")
            self._validate_payload(payload)
            if not allow_duplicates and await self._find(collection, payload["name"]) is not None:
                raise InvalidArgument(
                    f'{_singular(collection).capitalize()} named "{payload["name"]}" already exists'
                )
            return await self.store.create(collection, payload)

        return Operation(
            kind=OperationKind.CREATE,
            execute=execute,
            collection=collection,
            payload=payload if isinstance(payload, dict) else {},
            description=f"create {_singular(collection)}",
        )

    def build_update(self, collection: str, entity_id: str, changes: Dict[str, Any]) -> Operation:
        collection = self._resolve(collection)

        async def execute() -> Dict[str, Any]:
            self._require(UPDATE_CAPABILITIES[collection], f"update {collection}")
            self._validate_payload(changes, is_update=True)
            return await self.store.update(collection, entity_id, changes)

        return Operation(
            kind=OperationKind.UPDATE,
            execute=execute,
            collection=collection,
            payload={"id": entity_id, **changes},
            description=f"update {_singular(collection)}",
        )

    def build_delete(self, collection: str, entity_id: str) -> Operation:
        collection = self._resolve(collection)

        async def execute() -> str:
            self._require(DELETE_CAPABILITIES[collection], f"delete {collection}")
            await self.store.delete(collection, entity_id)
            return entity_id

        return Operation(
            kind=OperationKind.DELETE,
            execute=execute,
            collection=collection,
            payload={"id": entity_id},
            description=f"delete {_singular(collection)}",
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create(
        self, collection: str, data: Dict[str, Any], *, allow_duplicates: bool = False
    ) -> ServiceResult[Dict[str, Any]]:
        async def run():
            return await self.queue.enqueue(
                self.build_create(collection, data, allow_duplicates=allow_duplicates)
            )

        return await self._execute_with_error_handling(
            run,
            f"create {collection}",
            lambda entity: f'{_singular(self._resolve(collection)).capitalize()} "{entity.get("name")}" created successfully',
        )

    async def update(
        self, collection: str, entity_id: str, changes: Dict[str, Any]
    ) -> ServiceResult[Dict[str, Any]]:
        async def run():
            return await self.queue.enqueue(self.build_update(collection, entity_id, changes))

        return await self._execute_with_error_handling(
            run,
            f"update {collection}",
            lambda entity: f'{_singular(self._resolve(collection)).capitalize()} "{entity.get("name", entity_id)}" updated successfully',
        )

    async def delete(self, collection: str, entity_id: str) -> ServiceResult[str]:
        async def run():
            return await self.queue.enqueue(self.build_delete(collection, entity_id))

        return await self._execute_with_error_handling(
            run,
            f"delete {collection}",
            lambda removed: f"{_singular(self._resolve(collection)).capitalize()} {removed} deleted",
        )

    async def execute_macro(self, name_or_id: str, args: List[str]) -> ServiceResult[Any]:
        async def execute():
            self._require(Capability.EXECUTE_MACRO, "execute macros")
            macro = await self._find_or_fail("macros", name_or_id)
            return {"name": macro.get("name", name_or_id), "result": await self.store.execute_macro(macro["id"], args)}

        async def run():
            return await self.queue.enqueue(
                Operation(
                    kind=OperationKind.EXECUTE,
                    execute=execute,
                    collection="macros",
                    payload={"macro": name_or_id, "args": list(args)},
                    description="execute macro",
                )
            )

        return await self._execute_with_error_handling(
            run, "execute macro", lambda outcome: f'Macro "{outcome["name"]}" executed successfully'
        )

    async def activate_scene(self, name_or_id: str) -> ServiceResult[Dict[str, Any]]:
        async def execute():
            self._require(Capability.ACTIVATE_SCENE, "activate scenes")
            scene = await self._find_or_fail("scenes", name_or_id)
            for active in await self.store.query("scenes", {"active": True}):
                if active["id"] != scene["id"]:
                    await self.store.update("scenes", active["id"], {"active": False})
            return await self.store.update("scenes", scene["id"], {"active": True})

        async def run():
            return await self.queue.enqueue(
                Operation(
                    kind=OperationKind.UPDATE,
                    execute=execute,
                    collection="scenes",
                    payload={"scene": name_or_id, "active": True},
                    description="activate scene",
                )
            )

        return await self._execute_with_error_handling(
            run, "activate scene", lambda scene: f'Scene "{scene.get("name")}" activated'
        )

    async def search(
        self, collection: str, term: str = "", limit: int = 10
    ) -> ServiceResult[List[Dict[str, Any]]]:
        """Read-only query; does not go through the queue."""

        async def run():
            resolved = self._resolve(collection)
            self._require(QUERY_CAPABILITIES[resolved], f"query {resolved}")
            filters = {"name": term} if term else {}
            return await self.store.query(resolved, filters, limit)

        return await self._execute_with_error_handling(
            run, f"search {collection}", lambda found: f"Found {len(found)} result(s)"
        )

    async def counts(self) -> Dict[str, int]:
        return {collection: await self.store.count(collection) for collection in COLLECTIONS}
