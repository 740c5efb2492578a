"""Client-side view of one room: ordered messages and who is typing.

The message list is always ordered by ``created_at`` (ties by ``id``),
never by arrival order, so out-of-order delivery from the change feed or
from sender lookups cannot reorder the view.
"""

import bisect
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from studychat.core.config import settings
from studychat.realtime.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from studychat.schemas.message_schema import ChatMessageRecord, SenderProfile


@dataclass(frozen=True)
class ProjectedMessage:
    """A message as shown in the room view."""

    record: ChatMessageRecord
    sender: SenderProfile | None = None
    pending: bool = False

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.record.created_at, self.record.id)


MAX_TOMBSTONES = 1000


def _sort_key(entry: ProjectedMessage) -> tuple[datetime, str]:
    return entry.sort_key


class RoomProjection:
    """Ordered, id-keyed message list reconciled from snapshot and feed."""

    def __init__(self, room_id: int, max_tombstones: int = MAX_TOMBSTONES) -> None:
        self.room_id = room_id
        self._max_tombstones = max_tombstones
        self._entries: list[ProjectedMessage] = []
        self._by_id: dict[str, ProjectedMessage] = {}
        # updates that arrived before their insert
        self._early_updates: dict[
            str, tuple[ChatMessageRecord, SenderProfile | None]
        ] = {}
        # ids seen deleted, oldest first; capped at max_tombstones
        self._deleted: dict[str, None] = {}

    # --- Views ---

    @property
    def messages(self) -> tuple[ProjectedMessage, ...]:
        return tuple(self._entries)

    @property
    def message_ids(self) -> list[str]:
        return [entry.id for entry in self._entries]

    def get(self, message_id: str) -> ProjectedMessage | None:
        return self._by_id.get(message_id)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    # --- Feed events ---

    def load_snapshot(
        self,
        records: Iterable[ChatMessageRecord],
        senders: Mapping[int, SenderProfile] | None = None,
    ) -> None:
        """Merge a bulk-loaded snapshot; ids already present are kept."""
        senders = senders or {}
        for record in records:
            self.apply_insert(record, senders.get(record.sender_id))

    def apply_insert(
        self, record: ChatMessageRecord, sender: SenderProfile | None = None
    ) -> bool:
        """Insert a message in sorted position. Returns False if ignored."""
        if record.room_id != self.room_id:
            return False
        if record.id in self._by_id or record.id in self._deleted:
            return False
        early = self._early_updates.pop(record.id, None)
        if early is not None:
            record, sender = early[0], early[1] or sender
        self._put(ProjectedMessage(record=record, sender=sender))
        return True

    def apply_update(
        self, record: ChatMessageRecord, sender: SenderProfile | None = None
    ) -> bool:
        """Replace a message with its authoritative row.

        An update for an unknown id is held back and applied when the
        matching insert arrives. Returns True if the view changed.
        """
        if record.room_id != self.room_id or record.id in self._deleted:
            return False
        current = self._by_id.get(record.id)
        if current is None:
            self._early_updates[record.id] = (record, sender)
            return False
        self._remove(current)
        self._put(ProjectedMessage(record=record, sender=sender or current.sender))
        return True

    def apply_delete(self, message_id: str) -> bool:
        """Remove a message by id; unknown ids are a no-op."""
        self._tombstone(message_id)
        self._early_updates.pop(message_id, None)
        current = self._by_id.get(message_id)
        if current is None:
            return False
        self._remove(current)
        return True

    # --- Optimistic local changes ---

    def apply_local_edit(self, message_id: str, body: str) -> ProjectedMessage | None:
        """Show an edit immediately, marked pending.

        Returns the entry as it was before, for rollback, or None if the
        message is not in view.
        """
        current = self._by_id.get(message_id)
        if current is None:
            return None
        edited = current.record.model_copy(
            update={"body": body, "updated_at": datetime.now(UTC)}
        )
        self._remove(current)
        self._put(replace(current, record=edited, pending=True))
        return current

    def apply_local_delete(self, message_id: str) -> ProjectedMessage | None:
        """Hide a message immediately; returns the removed entry for rollback."""
        current = self._by_id.get(message_id)
        if current is None:
            return None
        self._remove(current)
        return current

    def restore(self, entry: ProjectedMessage) -> bool:
        """Roll back an optimistic change to the given last known-good entry."""
        if entry.id in self._deleted:
            return False
        current = self._by_id.get(entry.id)
        if current is not None:
            self._remove(current)
        self._put(entry)
        return True

    # --- Internals ---

    def _tombstone(self, message_id: str) -> None:
        self._deleted.pop(message_id, None)
        self._deleted[message_id] = None
        while len(self._deleted) > self._max_tombstones:
            del self._deleted[next(iter(self._deleted))]

    def _put(self, entry: ProjectedMessage) -> None:
        bisect.insort(self._entries, entry, key=_sort_key)
        self._by_id[entry.id] = entry

    def _remove(self, entry: ProjectedMessage) -> None:
        index = bisect.bisect_left(self._entries, entry.sort_key, key=_sort_key)
        while index < len(self._entries):
            if self._entries[index].id == entry.id:
                del self._entries[index]
                break
            index += 1
        self._by_id.pop(entry.id, None)


def format_typing_text(names: list[str]) -> str:
    """Render the typing indicator line."""
    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} is typing"
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing"
    return f"{names[0]} and {len(names) - 1} others are typing"


class TypingTracker:
    """Users currently typing in a room, keyed by user id.

    Each ``start`` (re)arms a local expiry timer, independent of the
    sender's own debounce timer, so a lost ``stop`` still clears the entry.
    A ``stop`` removes the user immediately whenever it arrives.
    """

    def __init__(
        self,
        local_user_id: int | None = None,
        timeout: float | None = None,
        scheduler: Scheduler | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._local_user_id = local_user_id
        self._timeout = (
            timeout if timeout is not None else settings.chat.typing_timeout_seconds
        )
        self._scheduler = scheduler or AsyncioScheduler()
        self._on_change = on_change
        self._names: dict[int, str] = {}
        self._timers: dict[int, TimerHandle] = {}

    @property
    def names(self) -> list[str]:
        return list(self._names.values())

    @property
    def user_ids(self) -> set[int]:
        return set(self._names)

    @property
    def text(self) -> str:
        return format_typing_text(self.names)

    def start(self, user_id: int, display_name: str) -> None:
        if user_id == self._local_user_id:
            return
        self._cancel_timer(user_id)
        changed = self._names.get(user_id) != display_name
        self._names[user_id] = display_name
        self._timers[user_id] = self._scheduler.call_later(
            self._timeout, lambda: self._expire(user_id)
        )
        if changed:
            self._notify()

    def stop(self, user_id: int) -> None:
        self._cancel_timer(user_id)
        if self._names.pop(user_id, None) is not None:
            self._notify()

    def clear(self) -> None:
        """Forget everyone and cancel all pending expiry timers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        had_entries = bool(self._names)
        self._names.clear()
        if had_entries:
            self._notify()

    def _expire(self, user_id: int) -> None:
        self._timers.pop(user_id, None)
        if self._names.pop(user_id, None) is not None:
            self._notify()

    def _cancel_timer(self, user_id: int) -> None:
        timer = self._timers.pop(user_id, None)
        if timer is not None:
            timer.cancel()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
