"""Tiered permission model for the assistant.

The store keeps three pieces of state:

- permanent grants, replaced wholesale by :meth:`PermissionStore.set_level`
  and adjusted one capability at a time by :meth:`PermissionStore.grant`;
- temporary grants, which shadow permanent grants until they expire;
- a bounded history of every change.

Permanent grants, the current level and the history are written to a
:class:`~tabletop_assistant.storage.SettingsStore` after each change.
"""

import asyncio
import logging
import re
from collections import deque
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Callable, Deque, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import InsufficientPermission, InvalidArgument, UnknownLevel
from .storage import MemorySettingsStore, SettingsStore


class Capability(str, Enum):
    """Named permission flags checked before a command runs."""

    # Chat
    SEND_MESSAGE = "send-message"
    SEND_WHISPER = "send-whisper"
    ROLL_DICE = "roll-dice"

    # Read-only queries
    QUERY_ACTORS = "query-actors"
    QUERY_ITEMS = "query-items"
    QUERY_SCENES = "query-scenes"
    QUERY_JOURNAL = "query-journal"
    QUERY_MACROS = "query-macros"
    QUERY_TABLES = "query-tables"
    QUERY_PLAYLISTS = "query-playlists"
    QUERY_COMPENDIUM = "query-compendium"
    VIEW_DOCUMENTS = "view-documents"

    # Content editing
    CREATE_ITEM = "create-item"
    UPDATE_ITEM = "update-item"
    DELETE_ITEM = "delete-item"
    CREATE_JOURNAL = "create-journal"
    UPDATE_JOURNAL = "update-journal"
    DELETE_JOURNAL = "delete-journal"
    CREATE_MACRO = "create-macro"
    UPDATE_MACRO = "update-macro"
    EXECUTE_MACRO = "execute-macro"
    UPDATE_ACTOR = "update-actor"
    IMPORT_FROM_COMPENDIUM = "import-from-compendium"

    # World manipulation
    CREATE_ACTOR = "create-actor"
    DELETE_ACTOR = "delete-actor"
    CREATE_SCENE = "create-scene"
    UPDATE_SCENE = "update-scene"
    DELETE_SCENE = "delete-scene"
    ACTIVATE_SCENE = "activate-scene"
    CREATE_ROLL_TABLE = "create-roll-table"
    UPDATE_ROLL_TABLE = "update-roll-table"
    DELETE_ROLL_TABLE = "delete-roll-table"
    ROLL_TABLE = "roll-table"
    CREATE_PLAYLIST = "create-playlist"
    UPDATE_PLAYLIST = "update-playlist"
    DELETE_PLAYLIST = "delete-playlist"
    PLAY_AUDIO = "play-audio"
    CREATE_TOKEN = "create-token"
    UPDATE_TOKEN = "update-token"
    DELETE_TOKEN = "delete-token"
    MANAGE_COMBAT = "manage-combat"

    # Administration
    MANAGE_USERS = "manage-users"
    MODIFY_SETTINGS = "modify-settings"
    MANAGE_MODULES = "manage-modules"
    DELETE_ANY_DOCUMENT = "delete-any-document"
    EXECUTE_ARBITRARY_CODE = "execute-arbitrary-code"
    MODIFY_PERMISSIONS = "modify-permissions"
    FILESYSTEM_ACCESS = "filesystem-access"
    NETWORK_ACCESS = "network-access"

    @classmethod
    def parse(cls, name: Union["Capability", str]) -> "Capability":
        """Resolve a capability from kebab-case, snake_case or camelCase.

        Raises:
            InvalidArgument: if the name is empty or not a known capability
        """
        if isinstance(name, Capability):
            return name
        if not isinstance(name, str) or not name.strip():
            raise InvalidArgument("Capability name cannot be empty")

        normalized = name.strip()
        if not normalized.isupper():
            normalized = re.sub(r"(?<!^)(?=[A-Z])", "-", normalized)
        normalized = normalized.replace("_", "-").lower()
        normalized = _CAPABILITY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidArgument(f"Unknown capability: {name!r}") from None


_CAPABILITY_ALIASES = {
    "access-file-system": Capability.FILESYSTEM_ACCESS.value,
    "query-journals": Capability.QUERY_JOURNAL.value,
}


class PermissionLevel(IntEnum):
    """Ordered permission tiers; each tier includes all lower ones."""

    NONE = 0
    BASIC = 1
    STANDARD = 2
    ADVANCED = 3
    FULL = 4

    @classmethod
    def parse(cls, level: Union["PermissionLevel", str]) -> "PermissionLevel":
        """Resolve a level by name (case-insensitive).

        Raises:
            UnknownLevel: if no tier has that name
        """
        if isinstance(level, PermissionLevel):
            return level
        name = str(level).strip().upper()
        if name not in cls.__members__:
            raise UnknownLevel(str(level))
        return cls[name]


_TIER_INCREMENTS: Dict[PermissionLevel, FrozenSet[Capability]] = {
    PermissionLevel.NONE: frozenset(),
    PermissionLevel.BASIC: frozenset({
        Capability.SEND_MESSAGE,
        Capability.SEND_WHISPER,
        Capability.ROLL_DICE,
        Capability.QUERY_ACTORS,
        Capability.QUERY_ITEMS,
        Capability.QUERY_SCENES,
        Capability.QUERY_JOURNAL,
        Capability.QUERY_MACROS,
        Capability.QUERY_TABLES,
        Capability.QUERY_PLAYLISTS,
        Capability.QUERY_COMPENDIUM,
        Capability.VIEW_DOCUMENTS,
    }),
    PermissionLevel.STANDARD: frozenset({
        Capability.CREATE_ITEM,
        Capability.UPDATE_ITEM,
        Capability.DELETE_ITEM,
        Capability.CREATE_JOURNAL,
        Capability.UPDATE_JOURNAL,
        Capability.DELETE_JOURNAL,
        Capability.CREATE_MACRO,
        Capability.UPDATE_MACRO,
        Capability.EXECUTE_MACRO,
        Capability.UPDATE_ACTOR,
        Capability.IMPORT_FROM_COMPENDIUM,
    }),
    PermissionLevel.ADVANCED: frozenset({
        Capability.CREATE_ACTOR,
        Capability.DELETE_ACTOR,
        Capability.CREATE_SCENE,
        Capability.UPDATE_SCENE,
        Capability.DELETE_SCENE,
        Capability.ACTIVATE_SCENE,
        Capability.CREATE_ROLL_TABLE,
        Capability.UPDATE_ROLL_TABLE,
        Capability.DELETE_ROLL_TABLE,
        Capability.ROLL_TABLE,
        Capability.CREATE_PLAYLIST,
        Capability.UPDATE_PLAYLIST,
        Capability.DELETE_PLAYLIST,
        Capability.PLAY_AUDIO,
        Capability.CREATE_TOKEN,
        Capability.UPDATE_TOKEN,
        Capability.DELETE_TOKEN,
        Capability.MANAGE_COMBAT,
    }),
    PermissionLevel.FULL: frozenset({
        Capability.MANAGE_USERS,
        Capability.MODIFY_SETTINGS,
        Capability.MANAGE_MODULES,
        Capability.DELETE_ANY_DOCUMENT,
        Capability.EXECUTE_ARBITRARY_CODE,
        Capability.MODIFY_PERMISSIONS,
        Capability.FILESYSTEM_ACCESS,
        Capability.NETWORK_ACCESS,
    }),
}

_LEVEL_DESCRIPTIONS = {
    PermissionLevel.NONE: ("None", "No permissions"),
    PermissionLevel.BASIC: ("Basic", "Chat, dice and read-only queries"),
    PermissionLevel.STANDARD: ("Standard", "Create and edit basic content"),
    PermissionLevel.ADVANCED: ("Advanced", "Full content manipulation"),
    PermissionLevel.FULL: ("Full", "All permissions (use with care)"),
}

# Always require a game master's approval, whatever the current grants say
DANGEROUS_CAPABILITIES: FrozenSet[Capability] = frozenset({
    Capability.DELETE_ANY_DOCUMENT,
    Capability.EXECUTE_ARBITRARY_CODE,
    Capability.MODIFY_SETTINGS,
    Capability.MANAGE_USERS,
    Capability.FILESYSTEM_ACCESS,
    Capability.NETWORK_ACCESS,
})

# Eligible for auto-approved temporary grants
AUTO_APPROVABLE_CAPABILITIES: FrozenSet[Capability] = frozenset({
    Capability.ROLL_DICE,
    Capability.SEND_MESSAGE,
    Capability.QUERY_ACTORS,
    Capability.QUERY_ITEMS,
    Capability.QUERY_SCENES,
    Capability.VIEW_DOCUMENTS,
})


def level_capabilities(level: Union[PermissionLevel, str]) -> Dict[Capability, bool]:
    """Return the cumulative capability map of a tier."""
    level = PermissionLevel.parse(level)
    capabilities: Dict[Capability, bool] = {}
    for tier in PermissionLevel:
        if tier > level:
            break
        for capability in _TIER_INCREMENTS[tier]:
            capabilities[capability] = True
    return capabilities


class LevelInfo(BaseModel):
    """Description of a permission tier."""

    key: str
    name: str
    description: str
    rank: int
    capability_count: int


class TemporaryGrant(BaseModel):
    """A time-boxed override of a capability's value."""

    capability: Capability
    value: bool
    granted_at: datetime
    expires_at: datetime
    auto_granted: bool = False
    granted_by: str = "system"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def remaining(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())


class HistoryKind(str, Enum):
    GRANT = "grant"
    LEVEL = "level"


class PermissionHistoryEntry(BaseModel):
    """Immutable record of one permission change."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    kind: HistoryKind = HistoryKind.GRANT
    capability: Optional[Capability] = None
    previous_value: Optional[Union[bool, str]] = None
    new_value: Union[bool, str]
    actor: str = "system"
    temporary: bool = False
    reason: str = ""


class PermissionValidation(BaseModel):
    """Advisory result of :meth:`PermissionStore.validate`."""

    capability: str
    valid: bool
    requires_manual_approval: bool = False
    reason: str = ""


class PermissionRequestResult(BaseModel):
    """Outcome of :meth:`PermissionStore.request`."""

    granted: bool
    temporary: bool = False
    pending: bool = False
    message: str = ""


class ActiveGrant(BaseModel):
    capability: Capability
    type: str
    granted: bool
    expires_at: Optional[datetime] = None
    remaining_seconds: Optional[float] = None


class PermissionStore:
    """Holds the assistant's permission level, grants and change history."""

    LEVEL_KEY = "permission-level"
    GRANTS_KEY = "permissions"
    HISTORY_KEY = "permission-history"

    def __init__(
        self,
        settings: Optional[SettingsStore] = None,
        *,
        default_level: Union[PermissionLevel, str] = PermissionLevel.BASIC,
        history_limit: int = 50,
        default_duration: float = 300.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if history_limit <= 0:
            raise InvalidArgument("history_limit must be positive")
        if default_duration <= 0:
            raise InvalidArgument("default_duration must be positive")

        self.settings = settings if settings is not None else MemorySettingsStore()
        self.default_level = PermissionLevel.parse(default_level)
        self.history_limit = history_limit
        self.default_duration = default_duration
        self._clock = clock
        self.logger = logging.getLogger(__name__)

        self._level: Optional[PermissionLevel] = None
        self._grants: Dict[Capability, bool] = {}
        self._temporary: Dict[Capability, TemporaryGrant] = {}
        self._timers: Dict[Capability, asyncio.TimerHandle] = {}
        self._history: Deque[PermissionHistoryEntry] = deque(maxlen=history_limit)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self) -> "PermissionStore":
        """Restore level, custom grants and history from the settings store."""
        stored_level = self.settings.get(self.LEVEL_KEY) or self.default_level.name
        try:
            level = PermissionLevel.parse(stored_level)
        except UnknownLevel:
            self.logger.warning(
                f"Stored permission level {stored_level!r} is unknown, using {self.default_level.name}"
            )
            level = self.default_level

        self._level = level
        self._grants = level_capabilities(level)

        for name, value in (self.settings.get(self.GRANTS_KEY) or {}).items():
            try:
                self._grants[Capability.parse(name)] = bool(value)
            except InvalidArgument:
                self.logger.warning(f"Ignoring stored grant for unknown capability {name!r}")

        for raw_entry in (self.settings.get(self.HISTORY_KEY) or [])[-self.history_limit:]:
            self._history.append(PermissionHistoryEntry.model_validate(raw_entry))

        self.logger.info(f"Permissions loaded at level {level.name}")
        return self

    def _persist(self) -> None:
        self.settings.set(self.LEVEL_KEY, self._level.name if self._level is not None else None)
        self.settings.set(
            self.GRANTS_KEY, {capability.value: value for capability, value in self._grants.items()}
        )
        self.settings.set(
            self.HISTORY_KEY, [entry.model_dump(mode="json") for entry in self._history]
        )

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    @property
    def current_level(self) -> Optional[PermissionLevel]:
        return self._level

    def set_level(
        self, level: Union[PermissionLevel, str], *, actor: str = "system", reason: str = ""
    ) -> None:
        """Replace all permanent grants with a tier's cumulative capability set.

        Temporary grants are left in place.

        Raises:
            UnknownLevel: if ``level`` is not a registered tier
        """
        target = PermissionLevel.parse(level)
        previous = self._level

        self._grants = level_capabilities(target)
        self._level = target

        self._record(
            kind=HistoryKind.LEVEL,
            capability=None,
            previous_value=previous.name if previous is not None else None,
            new_value=target.name,
            actor=actor,
            temporary=False,
            reason=reason,
        )
        self._persist()
        self.logger.info(f"Permission level set to {target.name} by {actor}")

    def available_levels(self) -> List[LevelInfo]:
        return [
            LevelInfo(
                key=level.name,
                name=_LEVEL_DESCRIPTIONS[level][0],
                description=_LEVEL_DESCRIPTIONS[level][1],
                rank=int(level),
                capability_count=len(level_capabilities(level)),
            )
            for level in PermissionLevel
        ]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check(self, capability: Union[Capability, str]) -> bool:
        """Return whether ``capability`` is currently granted.

        Unknown capabilities are denied rather than rejected.
        """
        try:
            capability = Capability.parse(capability)
        except InvalidArgument:
            self.logger.debug(f"Permission denied for unknown capability {capability!r}")
            return False

        temporary = self._temporary.get(capability)
        if temporary is not None:
            if not temporary.is_expired(self._clock()):
                return temporary.value
            self._expire(capability, temporary)

        granted = self._grants.get(capability, False)
        if not granted:
            self.logger.debug(f"Permission denied for {capability.value}")
        return granted

    def validate(self, capability: Union[Capability, str]) -> PermissionValidation:
        """Flag capabilities that always need manual approval.

        Advisory only; :meth:`check` does not consult it.
        """
        try:
            parsed = Capability.parse(capability)
        except InvalidArgument as e:
            return PermissionValidation(capability=str(capability), valid=False, reason=str(e))

        if parsed in DANGEROUS_CAPABILITIES:
            self.logger.warning(f"Dangerous capability requested: {parsed.value}")
            return PermissionValidation(
                capability=parsed.value,
                valid=False,
                requires_manual_approval=True,
                reason="Action requires manual approval by a game master",
            )
        return PermissionValidation(capability=parsed.value, valid=True)

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def grant(
        self,
        capability: Union[Capability, str],
        value: bool = True,
        *,
        temporary: Optional[float] = None,
        force: bool = False,
        actor: str = "system",
        reason: str = "",
        auto_granted: bool = False,
    ) -> None:
        """Set a capability's value, permanently or for ``temporary`` seconds.

        Raises:
            InvalidArgument: for an empty or unknown capability or a
                non-positive duration
            InsufficientPermission: unless modify-permissions is held or
                ``force`` is set
        """
        capability = Capability.parse(capability)
        if temporary is not None and temporary <= 0:
            raise InvalidArgument(f"Temporary grant duration must be positive, got {temporary}")

        if not force and not self.check(Capability.MODIFY_PERMISSIONS):
            raise InsufficientPermission(
                Capability.MODIFY_PERMISSIONS.value,
                "Insufficient permission to modify permissions",
            )

        value = bool(value)
        if temporary is None:
            previous = self._grants.get(capability)
            self._grants[capability] = value
        else:
            previous = self.check(capability)
            self._set_temporary(capability, value, temporary, auto_granted, actor)

        self._record(
            kind=HistoryKind.GRANT,
            capability=capability,
            previous_value=previous,
            new_value=value,
            actor=actor,
            temporary=temporary is not None,
            reason=reason,
        )
        self._persist()

        verb = "granted" if value else "revoked"
        if temporary is None:
            self.logger.info(f"Permission {verb}: {capability.value}")
        else:
            self.logger.info(f"Temporary permission {verb}: {capability.value} (expires in {temporary}s)")

    def revoke(self, capability: Union[Capability, str], **options: Any) -> None:
        self.grant(capability, False, **options)

    def grant_temporary(
        self,
        capability: Union[Capability, str],
        duration: Optional[float] = None,
        value: bool = True,
        *,
        auto_granted: bool = True,
        actor: str = "system",
        reason: str = "",
    ) -> None:
        """Host-side temporary grant that bypasses the modify-permissions check."""
        self.grant(
            capability,
            value,
            temporary=self.default_duration if duration is None else duration,
            force=True,
            actor=actor,
            reason=reason,
            auto_granted=auto_granted,
        )

    def request(
        self,
        capability: Union[Capability, str],
        reason: str = "",
        *,
        auto_approve: bool = False,
        duration: Optional[float] = None,
    ) -> PermissionRequestResult:
        """Ask for a capability, auto-approving basic ones when allowed."""
        capability = Capability.parse(capability)
        if self.check(capability):
            return PermissionRequestResult(granted=True, message="Permission already granted")

        self.logger.info(f"Permission requested: {capability.value} - reason: {reason or 'n/a'}")

        if auto_approve and capability in AUTO_APPROVABLE_CAPABILITIES:
            self.grant_temporary(capability, duration, reason=reason)
            return PermissionRequestResult(
                granted=True, temporary=True, message="Temporary permission auto-approved"
            )

        return PermissionRequestResult(
            granted=False, pending=True, message="Request sent to the game masters"
        )

    def _set_temporary(
        self, capability: Capability, value: bool, duration: float, auto_granted: bool, actor: str
    ) -> None:
        now = self._clock()
        temporary = TemporaryGrant(
            capability=capability,
            value=value,
            granted_at=now,
            expires_at=now + timedelta(seconds=duration),
            auto_granted=auto_granted,
            granted_by=actor,
        )
        self._cancel_timer(capability)
        self._temporary[capability] = temporary

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: expiry is applied lazily by check()
            return
        self._timers[capability] = loop.call_later(
            duration, self._on_expiry_timer, capability, temporary
        )

    def _on_expiry_timer(self, capability: Capability, temporary: TemporaryGrant) -> None:
        self._timers.pop(capability, None)
        if self._temporary.get(capability) is temporary:
            self._expire(capability, temporary)

    def _expire(self, capability: Capability, temporary: TemporaryGrant) -> None:
        if self._temporary.get(capability) is temporary:
            del self._temporary[capability]
            self._cancel_timer(capability)
            self.logger.info(f"Temporary permission expired: {capability.value}")

    def _cancel_timer(self, capability: Capability) -> None:
        handle = self._timers.pop(capability, None)
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # History and introspection
    # ------------------------------------------------------------------

    def _record(self, **fields: Any) -> None:
        self._history.append(PermissionHistoryEntry(timestamp=self._clock(), **fields))

    def history(self, limit: int = 50) -> List[PermissionHistoryEntry]:
        """Return at most ``limit`` entries, most recent last."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def active_grants(self) -> List[ActiveGrant]:
        now = self._clock()
        active = [
            ActiveGrant(capability=capability, type="permanent", granted=True)
            for capability, granted in self._grants.items()
            if granted
        ]
        for capability, temporary in list(self._temporary.items()):
            if temporary.is_expired(now):
                continue
            active.append(
                ActiveGrant(
                    capability=capability,
                    type="temporary",
                    granted=temporary.value,
                    expires_at=temporary.expires_at,
                    remaining_seconds=temporary.remaining(now),
                )
            )
        return active

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "current_level": self._level.name if self._level is not None else None,
            "total_permissions": len(self._grants),
            "active_permissions": len(self.active_grants()),
            "temporary_permissions": sum(
                1 for temporary in self._temporary.values() if not temporary.is_expired(now)
            ),
            "history_entries": len(self._history),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, *, actor: str = "system") -> None:
        """Drop every grant and the history, then apply the default level."""
        self.logger.warning("Resetting permissions to default")
        self.close()
        self._temporary.clear()
        self._grants.clear()
        self._history.clear()
        self._level = None
        self.set_level(self.default_level, actor=actor, reason="reset")

    def close(self) -> None:
        """Cancel pending expiry timers."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
