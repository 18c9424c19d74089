"""Debounced auto-save coordinator.

Persists a continuously edited value (one onboarding step's form blob)
without flooding the backend and without losing the newest edit.

Guarantees:
- Debounce: a save starts only after the value has been structurally
  unchanged for the quiet period.
- Dirty tracking: any change sets dirty and restarts the quiet period; a
  successful save clears dirty (unless a newer edit arrived meanwhile) and
  stamps last_saved.
- At most one save in flight. An edit that arrives mid-save re-arms the
  quiet period once the in-flight save settles.
- save_now() cancels the pending timer and saves immediately, returning or
  raising the outcome. Submit actions await it before committing a step.
- Failures set last_error and keep dirty; there is no automatic retry. The
  next edit or flush is the retry.
- In-flight saves are never cancelled.

State machine:
    Clean --edit--> Dirty --quiet period | save_now--> Saving
    Saving --success--> Clean
    Saving --failure--> Dirty(error)
    Saving --edit--> Saving (re-armed after settling)

All methods must be called from the event loop that runs the saves.
"""

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from homecare_onboarding.core.errors import OnboardingError, StaleTokenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SaveCallback = Callable[[T], Awaitable[object]]


class SaveStatus(str, Enum):
    """Display status for a save indicator."""

    IDLE = "idle"
    UNSAVED = "unsaved"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


_STATUS_LABELS: dict[SaveStatus, str] = {
    SaveStatus.IDLE: "No changes",
    SaveStatus.UNSAVED: "Unsaved changes",
    SaveStatus.SAVING: "Saving...",
    SaveStatus.SAVED: "All changes saved",
    SaveStatus.ERROR: "Save failed",
}


@dataclass(frozen=True)
class SaveState:
    """Snapshot of one coordinator's persistence state.

    Attributes:
        dirty: Local value has changes not yet confirmed persisted.
        in_flight: A save call is running.
        last_saved: When the last successful save finished (UTC).
        last_error: Error from the most recent failed save, cleared when the
            next save starts.
    """

    dirty: bool = False
    in_flight: bool = False
    last_saved: datetime | None = None
    last_error: OnboardingError | None = None

    @property
    def status(self) -> SaveStatus:
        if self.in_flight:
            return SaveStatus.SAVING
        if self.last_error is not None:
            return SaveStatus.ERROR
        if self.dirty:
            return SaveStatus.UNSAVED
        if self.last_saved is not None:
            return SaveStatus.SAVED
        return SaveStatus.IDLE

    @property
    def label(self) -> str:
        """Indicator text for the current status."""
        return _STATUS_LABELS[self.status]

    @property
    def can_save_now(self) -> bool:
        """Whether a manual "save now" affordance should be offered."""
        return self.dirty and not self.in_flight


def _as_onboarding_error(exc: Exception) -> OnboardingError:
    if isinstance(exc, OnboardingError):
        return exc
    return OnboardingError(code="SAVE_FAILED", message=str(exc) or "Save failed")


class AutoSaveCoordinator(Generic[T]):
    """Debounced, single-flight persistence for one editable value.

    Example:
        coordinator = AutoSaveCoordinator(client_save, initial_blob, delay_ms=2000)
        coordinator.set(edited_blob)     # arms the 2 s quiet period
        await coordinator.save_now()     # before committing the step
        await coordinator.close()        # when the step unmounts
    """

    def __init__(
        self,
        save: SaveCallback,
        initial: T,
        *,
        delay_ms: int,
        enabled: bool = True,
        on_error: Callable[[OnboardingError], None] | None = None,
        on_change: Callable[[SaveState], None] | None = None,
        name: str = "autosave",
    ) -> None:
        """Initialize the coordinator.

        Args:
            save: Async callback persisting a value. Raising marks the save
                failed.
            initial: Value already persisted (e.g. loaded from the profile).
            delay_ms: Quiet period before a save starts.
            enabled: When False, changes are tracked but never saved.
            on_error: Called with the error of a timer-triggered save failure.
            on_change: Called with the new SaveState after every transition.
            name: Label used in log messages.
        """
        if delay_ms <= 0:
            raise ValueError(f"delay_ms must be positive, got {delay_ms}")
        self._save = save
        self._delay = delay_ms / 1000
        self._enabled = enabled
        self._on_error = on_error
        self._on_change = on_change
        self._name = name

        self._value: T = initial
        self._snapshot: T = copy.deepcopy(initial)
        self._state = SaveState()
        self._edit_seq = 0
        self._clean_seq = 0
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[OnboardingError | None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def value(self) -> T:
        return self._value

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def timer_pending(self) -> bool:
        """Whether a quiet-period timer is armed."""
        return self._timer is not None and not self._timer.done()

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def set(self, value: T) -> None:
        """Record a new value.

        A value structurally equal to the current one is ignored. Otherwise
        the coordinator turns dirty and the quiet period restarts, unless a
        save is in flight, in which case the timer is re-armed once it
        settles.

        Raises:
            RuntimeError: If the coordinator has been closed.
        """
        if self._closed:
            raise RuntimeError(f"{self._name}: coordinator is closed")
        if value == self._snapshot:
            return

        self._value = value
        self._snapshot = copy.deepcopy(value)
        self._edit_seq += 1
        self._update(dirty=True)

        if not self._enabled:
            return
        self._cancel_timer()
        if self._in_flight is None:
            self._arm_timer()

    def reset(self, value: T) -> None:
        """Adopt a value as already persisted and discard pending changes.

        Used after (re)loading a step's data from the backend.
        """
        self._cancel_timer()
        self._value = value
        self._snapshot = copy.deepcopy(value)
        self._edit_seq += 1
        self._clean_seq = self._edit_seq
        self._update(
            dirty=False,
            last_saved=None,
            last_error=None,
        )

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def save_now(self) -> None:
        """Cancel the pending timer and save the current value immediately.

        Waits for an in-flight save to settle first, so at most one save runs
        at a time. Does nothing when the coordinator is disabled.

        Raises:
            OnboardingError: The save failed (NetworkError, StaleTokenError, ...).
        """
        if not self._enabled:
            return
        self._cancel_timer()
        while self._in_flight is not None:
            await asyncio.wait({self._in_flight})
            # Settling may have re-armed the timer for a mid-flight edit
            self._cancel_timer()

        task = self._start_save()
        await asyncio.wait({task})
        error = task.result()
        if error is not None:
            raise error

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no save is in flight."""
        while True:
            pending = {
                t for t in (self._timer, self._in_flight) if t is not None and not t.done()
            }
            if not pending:
                return
            await asyncio.wait(pending)

    async def close(self) -> None:
        """Flush pending changes and wait for in-flight work.

        Call when the owning step unmounts. After closing, set() raises.

        Raises:
            OnboardingError: The final flush failed.
        """
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        if self._in_flight is not None:
            await asyncio.wait({self._in_flight})
            self._cancel_timer()
        if self._state.dirty:
            await self.save_now()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _update(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)
        if self._on_change is not None:
            self._on_change(self._state)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            if not self._timer.done():
                self._timer.cancel()
            self._timer = None

    def _arm_timer(self) -> None:
        self._timer = asyncio.get_running_loop().create_task(self._debounce())

    async def _debounce(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        if self._in_flight is None:
            self._start_save(notify=True)

    def _start_save(self, notify: bool = False) -> "asyncio.Task[OnboardingError | None]":
        seq = self._edit_seq
        payload = self._snapshot
        self._update(in_flight=True, last_error=None)
        logger.debug("%s: saving (edit %d)", self._name, seq)
        task = asyncio.get_running_loop().create_task(
            self._perform_save(payload, seq, notify)
        )
        self._in_flight = task
        return task

    async def _perform_save(
        self, payload: T, seq: int, notify: bool
    ) -> OnboardingError | None:
        error: OnboardingError | None = None
        try:
            await self._save(payload)
        except Exception as exc:
            error = _as_onboarding_error(exc)
            logger.warning(
                "%s: save failed (%s): %s", self._name, error.code, error.message
            )

        self._in_flight = None
        newer_edit = self._edit_seq > max(seq, self._clean_seq)
        if error is None:
            self._update(
                in_flight=False,
                dirty=newer_edit,
                last_saved=datetime.now(UTC),
                last_error=None,
            )
        else:
            self._update(in_flight=False, dirty=True, last_error=error)

        rearm = (
            newer_edit
            and self._enabled
            and not self._closed
            and not isinstance(error, StaleTokenError)
        )
        if rearm:
            self._cancel_timer()
            self._arm_timer()

        if error is not None and notify and self._on_error is not None:
            self._on_error(error)
        return error
