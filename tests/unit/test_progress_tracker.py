"""Unit tests for the onboarding progress tracker.

Tests cover:
- Current step derivation for empty, partial, gapped, and full vectors
- Status and navigation gating (completed ⇒ navigable, locked steps closed)
- mark_complete idempotence and monotonicity
- Review mode and explicit navigation overrides
- refresh(): replacement on success, all-false fallback on failure
"""

import pytest

from homecare_onboarding.core.errors import NetworkError, StaleTokenError, StepLockedError
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.progress_tracker import (
    OnboardingProgressTracker,
    StepStatus,
    derive_current_step,
)
from homecare_onboarding.services.steps import STEP_DESCRIPTORS, OnboardingStep
from tests.conftest import FakeProfileBackend

_ALL_DONE = CompletionVector.from_progress({d.progress_field: True for d in STEP_DESCRIPTORS})


def _tracker(completion: CompletionVector | None = None) -> OnboardingProgressTracker:
    return OnboardingProgressTracker(FakeProfileBackend(), completion)


# =============================================================================
# Derivation
# =============================================================================


class TestCurrentStep:
    """Current step = first incomplete step, or the last when all are done."""

    def test_empty_vector_starts_at_prescreen(self):
        assert _tracker().current_step() is OnboardingStep.PRESCREEN

    def test_after_prescreen(self):
        tracker = _tracker(CompletionVector(prescreen=True))
        assert tracker.current_step() is OnboardingStep.PERSONAL_INFO

    def test_gap_takes_first_incomplete(self):
        """A later flag does not skip an earlier incomplete step."""
        tracker = _tracker(CompletionVector(prescreen=True, references=True))
        assert tracker.current_step() is OnboardingStep.PERSONAL_INFO
        assert tracker.status_of("references") is StepStatus.COMPLETED

    def test_all_complete_is_last_step(self):
        assert derive_current_step(_ALL_DONE) is OnboardingStep.PROFILE_SUBMISSION

    @pytest.mark.parametrize("done", range(8))
    def test_prefix_vectors(self, done: int):
        flags = {d.progress_field: d.ordinal < done for d in STEP_DESCRIPTORS}
        tracker = _tracker(CompletionVector.from_progress(flags))
        assert tracker.current_step() is STEP_DESCRIPTORS[done].step


class TestStatusAndNavigation:
    """status_of() and can_navigate_to()."""

    def test_statuses_after_two_steps(self):
        tracker = _tracker(CompletionVector(prescreen=True, personal_info=True))
        statuses = [item.status for item in tracker.progress_items()]
        assert statuses == [
            StepStatus.COMPLETED,
            StepStatus.COMPLETED,
            StepStatus.CURRENT,
            *[StepStatus.LOCKED] * 5,
        ]

    def test_completed_steps_are_navigable(self):
        tracker = _tracker(CompletionVector(prescreen=True, documents=True))
        for descriptor in STEP_DESCRIPTORS:
            if tracker.completion.is_complete(descriptor.step):
                assert tracker.can_navigate_to(descriptor.step)

    def test_locked_step_not_navigable(self):
        tracker = _tracker()
        assert not tracker.can_navigate_to("references")
        with pytest.raises(StepLockedError) as exc_info:
            tracker.navigate_to("references")
        assert exc_info.value.step == "references"

    def test_next_step_only_when_unlocked(self):
        tracker = _tracker(CompletionVector(prescreen=True))
        assert tracker.next_step() is None
        assert tracker.previous_step() is OnboardingStep.PRESCREEN


# =============================================================================
# Transitions
# =============================================================================


class TestMarkComplete:
    """mark_complete() sets flags and moves the current step."""

    def test_personal_info_moves_to_identity(self):
        tracker = _tracker(CompletionVector(prescreen=True))
        assert tracker.current_step() is OnboardingStep.PERSONAL_INFO

        tracker.mark_complete("personal_info")

        assert tracker.current_step() is OnboardingStep.IDENTITY_VERIFICATION
        assert tracker.status_of("personal_info") is StepStatus.COMPLETED

    def test_idempotent(self):
        tracker = _tracker()
        tracker.mark_complete("prescreen")
        before = tracker.completion
        tracker.mark_complete("prescreen")
        assert tracker.completion == before

    def test_completing_reviewed_step_returns_to_frontier(self):
        tracker = _tracker(CompletionVector(prescreen=True, personal_info=True))
        tracker.navigate_to("prescreen")
        assert tracker.review_mode

        tracker.mark_complete("prescreen")

        assert not tracker.review_mode
        assert tracker.current_step() is OnboardingStep.IDENTITY_VERIFICATION


class TestReview:
    """Re-entering completed steps never regresses progress."""

    def test_enter_for_review_sets_review_mode(self):
        tracker = _tracker(CompletionVector(prescreen=True, personal_info=True))

        tracker.enter_for_review("prescreen")

        assert tracker.review_mode
        assert tracker.current_step() is OnboardingStep.PRESCREEN
        assert tracker.frontier_step is OnboardingStep.IDENTITY_VERIFICATION
        assert tracker.completion.percent_complete == 25

    def test_next_step_from_review(self):
        tracker = _tracker(CompletionVector(prescreen=True, personal_info=True))
        tracker.enter_for_review("prescreen")
        assert tracker.next_step() is OnboardingStep.PERSONAL_INFO

    def test_enter_for_review_rejects_current_step(self):
        tracker = _tracker(CompletionVector(prescreen=True))
        with pytest.raises(ValueError):
            tracker.enter_for_review("personal_info")

    def test_navigate_to_current_clears_override(self):
        tracker = _tracker(CompletionVector(prescreen=True))
        tracker.navigate_to("prescreen")
        tracker.navigate_to("personal_info")
        assert tracker.override is None
        assert not tracker.review_mode

    def test_all_complete_last_step_is_review(self):
        tracker = _tracker(_ALL_DONE)
        assert tracker.status_of(OnboardingStep.PROFILE_SUBMISSION) is StepStatus.COMPLETED
        assert all(item.navigable for item in tracker.progress_items())


# =============================================================================
# Refresh
# =============================================================================


class TestRefresh:
    """Loading the vector from the backend."""

    @pytest.mark.asyncio
    async def test_success_replaces_vector(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True, personal_info=True))
        tracker = OnboardingProgressTracker(backend)

        await tracker.refresh(auth)

        assert tracker.loaded
        assert not tracker.load_failed
        assert tracker.current_step() is OnboardingStep.IDENTITY_VERIFICATION

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_prescreen(self, auth):
        """A failed fetch never assumes completion."""
        backend = FakeProfileBackend(CompletionVector(prescreen=True, personal_info=True))
        backend.fail_with = NetworkError("down")
        tracker = OnboardingProgressTracker(backend, CompletionVector(prescreen=True))

        completion = await tracker.refresh(auth)

        assert completion == CompletionVector.empty()
        assert tracker.load_failed
        assert tracker.current_step() is OnboardingStep.PRESCREEN
        assert [s for s in OnboardingStep if tracker.can_navigate_to(s)] == [
            OnboardingStep.PRESCREEN
        ]

    @pytest.mark.asyncio
    async def test_stale_token_falls_back_and_raises(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True))
        backend.fail_with = StaleTokenError()
        tracker = OnboardingProgressTracker(backend)

        with pytest.raises(StaleTokenError):
            await tracker.refresh(auth)

        assert tracker.current_step() is OnboardingStep.PRESCREEN

    @pytest.mark.asyncio
    async def test_rejection_clears_flags_and_locked_override(self, auth):
        """An administrative reset reaches the tracker through refresh."""
        backend = FakeProfileBackend(
            CompletionVector(prescreen=True, personal_info=True, identity=True)
        )
        tracker = OnboardingProgressTracker(backend)
        await tracker.refresh(auth)
        tracker.navigate_to("identity_verification")

        backend.completion = CompletionVector(prescreen=True)
        await tracker.refresh(auth)

        assert tracker.override is None
        assert tracker.current_step() is OnboardingStep.PERSONAL_INFO

    @pytest.mark.asyncio
    async def test_override_survives_refresh(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True, personal_info=True))
        tracker = OnboardingProgressTracker(backend)
        await tracker.refresh(auth)
        tracker.navigate_to("prescreen")

        await tracker.refresh(auth)

        assert tracker.current_step() is OnboardingStep.PRESCREEN
        assert tracker.snapshot().review_mode
