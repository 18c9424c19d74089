"""Onboarding progress tracker.

Sequences the eight onboarding steps from the completion vector and gates
navigation between them.

Derivation:
    current step = first step (in order) whose flag is false;
                   the last step once every flag is true
    status_of(step) = completed  if its flag is true
                      current    if it is the derived current step
                      locked     otherwise

A candidate may open any completed step (review mode) or the current step.
Locked steps stay closed until everything before them is complete.

The backend owns the completion vector; the tracker holds a read-through
copy. A failed fetch falls back to the all-false vector (current step =
prescreen) and never assumes completion.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from homecare_onboarding.adapters.profile_api import ProfileBackend
from homecare_onboarding.core.auth import AuthContext
from homecare_onboarding.core.errors import (
    OnboardingError,
    StaleTokenError,
    StepLockedError,
)
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.steps import (
    LAST_STEP,
    STEP_DESCRIPTORS,
    OnboardingStep,
    StepDescriptor,
    get_next_step,
    get_previous_step,
    parse_step,
)

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    """Navigation status of one step."""

    COMPLETED = "completed"
    CURRENT = "current"
    LOCKED = "locked"


@dataclass(frozen=True)
class ProgressItem:
    """One row of the progress sidebar."""

    descriptor: StepDescriptor
    status: StepStatus

    @property
    def navigable(self) -> bool:
        return self.status is not StepStatus.LOCKED


@dataclass(frozen=True)
class OnboardingSession:
    """Snapshot of the tracker's runtime state.

    Attributes:
        current_step: Step being shown (the override when one is set).
        completion: Cached completion vector.
        review_mode: True while a completed step is re-opened.
        override: Step explicitly opened by the candidate, if any.
        loaded: At least one fetch succeeded.
        load_failed: The most recent fetch failed and the tracker fell back
            to the all-false vector.
    """

    current_step: OnboardingStep
    completion: CompletionVector
    review_mode: bool
    override: OnboardingStep | None
    loaded: bool
    load_failed: bool


def derive_current_step(completion: CompletionVector) -> OnboardingStep:
    """First incomplete step in order, or the last step when all are done."""
    for descriptor in STEP_DESCRIPTORS:
        if not completion.is_complete(descriptor.step):
            return descriptor.step
    return LAST_STEP


class OnboardingProgressTracker:
    """State machine over the completion vector.

    Example:
        tracker = OnboardingProgressTracker(backend)
        await tracker.refresh(auth)
        if tracker.can_navigate_to("references"):
            tracker.navigate_to("references")
    """

    def __init__(
        self,
        backend: ProfileBackend,
        completion: CompletionVector | None = None,
    ) -> None:
        self._backend = backend
        self._completion = completion or CompletionVector.empty()
        self._override: OnboardingStep | None = None
        self._review_mode = False
        self._loaded = completion is not None
        self._load_failed = False

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def refresh(self, auth: AuthContext) -> CompletionVector:
        """Fetch the completion vector from the backend.

        On success the cached vector is replaced (not merged), so an
        administrative rejection that cleared flags is picked up here. An
        override that is no longer reachable is dropped.

        On failure the tracker falls back to the all-false vector and marks
        load_failed.

        Returns:
            The vector now cached.

        Raises:
            StaleTokenError: Authentication failed. The fallback is still
                applied before raising.
        """
        try:
            completion = await self._backend.fetch_progress(auth)
        except StaleTokenError:
            self._fall_back()
            raise
        except OnboardingError as exc:
            logger.warning("Progress fetch failed (%s): %s", exc.code, exc.message)
            self._fall_back()
            return self._completion

        self.adopt(completion)
        return self._completion

    def adopt(self, completion: CompletionVector) -> None:
        """Replace the cached vector with one fetched elsewhere (e.g. GET profile)."""
        self._completion = completion
        self._loaded = True
        self._load_failed = False
        if self._override is not None and not self.can_navigate_to(self._override):
            logger.info("Dropping override %s: step is locked", self._override.value)
            self.clear_override()
        elif self._override is not None and not completion.is_complete(self._override):
            self._review_mode = False

    def _fall_back(self) -> None:
        self._completion = CompletionVector.empty()
        self._override = None
        self._review_mode = False
        self._load_failed = True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def completion(self) -> CompletionVector:
        return self._completion

    @property
    def review_mode(self) -> bool:
        return self._review_mode

    @property
    def override(self) -> OnboardingStep | None:
        return self._override

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def load_failed(self) -> bool:
        return self._load_failed

    @property
    def frontier_step(self) -> OnboardingStep:
        """Derived current step, ignoring any override."""
        return derive_current_step(self._completion)

    def current_step(self) -> OnboardingStep:
        """Step to display: the explicit override, else the derived step."""
        return self._override or self.frontier_step

    def status_of(self, step: str | OnboardingStep) -> StepStatus:
        """Completed, current, or locked."""
        step = parse_step(step)
        if self._completion.is_complete(step):
            return StepStatus.COMPLETED
        if step is self.frontier_step:
            return StepStatus.CURRENT
        return StepStatus.LOCKED

    def can_navigate_to(self, step: str | OnboardingStep) -> bool:
        return self.status_of(step) is not StepStatus.LOCKED

    def next_step(self) -> OnboardingStep | None:
        """Step after the displayed one if it can be opened, else None."""
        following = get_next_step(self.current_step())
        if following is None or not self.can_navigate_to(following):
            return None
        return following

    def previous_step(self) -> OnboardingStep | None:
        """Step before the displayed one, or None at the start."""
        return get_previous_step(self.current_step())

    def progress_items(self) -> list[ProgressItem]:
        """Every step with its status, in order."""
        return [ProgressItem(d, self.status_of(d.step)) for d in STEP_DESCRIPTORS]

    def snapshot(self) -> OnboardingSession:
        return OnboardingSession(
            current_step=self.current_step(),
            completion=self._completion,
            review_mode=self._review_mode,
            override=self._override,
            loaded=self._loaded,
            load_failed=self._load_failed,
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_complete(self, step: str | OnboardingStep) -> None:
        """Set a step's flag locally after the backend confirmed it.

        Idempotent. Never clears a flag. Completing the step the candidate
        explicitly opened returns the tracker to the derived current step.
        """
        step = parse_step(step)
        self._completion = self._completion.with_completed(step)
        if self._override is step:
            self.clear_override()
        logger.debug(
            "Step %s complete; current step now %s",
            step.value,
            self.current_step().value,
        )

    def enter_for_review(self, step: str | OnboardingStep) -> None:
        """Re-open an already completed step.

        Progress is unaffected; the step keeps its completed flag.

        Raises:
            StepLockedError: If the step is locked.
            ValueError: If the step is the current (incomplete) step.
        """
        step = parse_step(step)
        status = self.status_of(step)
        if status is StepStatus.LOCKED:
            raise StepLockedError(step.value)
        if status is not StepStatus.COMPLETED:
            raise ValueError(f"Step '{step.value}' is not completed yet")
        self._override = step
        self._review_mode = True

    def navigate_to(self, step: str | OnboardingStep) -> None:
        """Open a step explicitly.

        Completed steps open in review mode; the current step clears any
        override.

        Raises:
            StepLockedError: If the step is locked.
        """
        step = parse_step(step)
        status = self.status_of(step)
        if status is StepStatus.LOCKED:
            raise StepLockedError(step.value)
        if status is StepStatus.COMPLETED:
            self.enter_for_review(step)
        else:
            self.clear_override()

    def clear_override(self) -> None:
        """Return to the derived current step and leave review mode."""
        self._override = None
        self._review_mode = False
