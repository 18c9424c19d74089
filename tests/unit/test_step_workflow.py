"""Unit tests for the step workflow (StepSession).

Tests cover:
- Opening a step through the tracker's navigation gate
- Submit ordering: flush → validate → commit → mark complete → unlock
- Prescreen evaluation with and without a requirement matrix
- Validation and authentication failures leaving the step incomplete
- Profile submission and the final flush on close()
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from homecare_onboarding.core.config import settings
from homecare_onboarding.core.errors import (
    ApplicationLockedError,
    NetworkError,
    StaleTokenError,
    StepLockedError,
    ValidationError,
)
from homecare_onboarding.schemas.requirements import RequirementMatrix
from homecare_onboarding.services.completion import CompletionVector
from homecare_onboarding.services.eligibility import Verdict
from homecare_onboarding.services.progress_tracker import OnboardingProgressTracker
from homecare_onboarding.services.step_workflow import StepSession
from homecare_onboarding.services.steps import STEP_DESCRIPTORS, OnboardingStep
from tests.conftest import (
    FakeProfileBackend,
    make_personal_info_blob,
    make_prescreen_blob,
)

_ALL_BUT_SUBMISSION = CompletionVector.from_progress(
    {d.progress_field: d.step is not OnboardingStep.PROFILE_SUBMISSION for d in STEP_DESCRIPTORS}
)


async def _open(auth, backend: FakeProfileBackend, step: str, **kwargs) -> StepSession:
    tracker = OnboardingProgressTracker(backend)
    return await StepSession.open(auth, step, backend, tracker, **kwargs)


# =============================================================================
# Opening
# =============================================================================


class TestOpen:
    """StepSession.open()."""

    @pytest.mark.asyncio
    async def test_locked_step_cannot_open(self, auth, backend):
        with pytest.raises(StepLockedError):
            await _open(auth, backend, "references")

    @pytest.mark.asyncio
    async def test_seeded_with_stored_blob(self, auth):
        backend = FakeProfileBackend(
            CompletionVector(prescreen=True),
            profile={"fullName": "Priya Sharma", "jobTitle": "nurse"},
        )
        session = await _open(auth, backend, "personal_info")

        assert session.value["fullName"] == "Priya Sharma"
        assert not session.save_state.dirty
        assert not session.review_mode

    @pytest.mark.asyncio
    async def test_completed_step_opens_in_review(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True, personal_info=True))
        session = await _open(auth, backend, "prescreen")
        assert session.review_mode

    @pytest.mark.asyncio
    async def test_upload_step_uses_longer_quiet_period(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True, personal_info=True))
        session = await _open(auth, backend, "identity_verification")
        assert session.descriptor.autosave_delay_ms == settings.autosave_upload_delay_ms


# =============================================================================
# Prescreen
# =============================================================================


class TestPrescreenSubmit:
    """Prescreen submission evaluates and records the verdict."""

    @pytest.mark.asyncio
    async def test_full_marks_pass_and_unlock(self, auth, backend):
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        outcome = await session.submit()

        assert outcome.verdict is Verdict.PASS
        assert outcome.score.score == 100
        assert outcome.next_step is OnboardingStep.PERSONAL_INFO
        assert backend.call_names() == [
            "fetch_profile",
            "auto_save",
            "fetch_requirement_matrix",
            "commit_step",
            "mark_step_complete",
            "update_profile",
        ]
        update = dict(backend.calls)["update_profile"]
        assert update == {
            "prescreenResult": "pass",
            "prescreenCompleted": True,
            "baseCity": "Delhi",
            "languages": ["English", "Hindi", "Punjabi"],
        }

    @pytest.mark.asyncio
    async def test_matrix_lookup_uses_profile_job_and_defaults(self, auth):
        backend = FakeProfileBackend(profile={"jobTitle": "caregiver"})
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        await session.submit()

        assert dict(backend.calls)["fetch_requirement_matrix"] == (
            "caregiver",
            settings.default_city,
        )

    @pytest.mark.asyncio
    async def test_matrix_replaces_rubric(self, auth):
        backend = FakeProfileBackend(
            matrix=RequirementMatrix.model_validate(
                {"requirements": {"requiredCertifications": ["NALS"]}}
            )
        )
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        outcome = await session.submit()

        assert outcome.score.rubric == "matrix"
        assert outcome.verdict is Verdict.FAIL

    @pytest.mark.asyncio
    async def test_matrix_failure_falls_back_to_default(self, auth, backend):
        backend.matrix_error = NetworkError("Profile service returned 500", status_code=500)
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        outcome = await session.submit()

        assert outcome.score.rubric == "default"
        assert outcome.verdict is Verdict.PASS

    @pytest.mark.asyncio
    async def test_rejected_matrix_lookup_falls_back_to_default(self, auth, backend):
        """A 400/422 from the matrix lookup is not a candidate input error."""
        backend.matrix_error = ValidationError("unknown jobTitle")
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        outcome = await session.submit()

        assert outcome.score.rubric == "default"
        assert outcome.verdict is Verdict.PASS
        assert "mark_step_complete" in backend.call_names()

    @pytest.mark.asyncio
    async def test_stale_token_on_matrix_lookup_propagates(self, auth, backend):
        backend.matrix_error = StaleTokenError()
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        with pytest.raises(StaleTokenError):
            await session.submit()

        assert "commit_step" not in backend.call_names()

    @pytest.mark.asyncio
    async def test_failing_verdict_still_completes_step(self, auth, backend):
        tracker = OnboardingProgressTracker(backend)
        session = await StepSession.open(auth, "prescreen", backend, tracker)
        session.update(
            make_prescreen_blob(
                experience_months=0,
                icu_exposure=False,
                certifications=[],
                languages=["English"],
                education_level="High School",
            )
        )

        outcome = await session.submit()

        assert outcome.verdict is Verdict.FAIL
        assert outcome.message.next_action == "Back to Dashboard"
        assert tracker.completion.prescreen

    @pytest.mark.asyncio
    async def test_invalid_answers_never_scored(self, auth, backend):
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob(languages=[]))

        with pytest.raises(ValidationError) as exc_info:
            await session.submit()

        assert "languages" in exc_info.value.field_errors
        assert "fetch_requirement_matrix" not in backend.call_names()
        assert "commit_step" not in backend.call_names()


# =============================================================================
# Form Steps
# =============================================================================


class TestFormStepSubmit:
    """Submitting ordinary form steps."""

    @pytest.mark.asyncio
    async def test_personal_info_unlocks_identity(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True))
        tracker = OnboardingProgressTracker(backend)
        session = await StepSession.open(auth, "personal_info", backend, tracker)
        session.update(make_personal_info_blob())

        outcome = await session.submit()

        assert outcome.next_step is OnboardingStep.IDENTITY_VERIFICATION
        assert outcome.score is None
        assert tracker.current_step() is OnboardingStep.IDENTITY_VERIFICATION
        assert dict(backend.calls)["mark_step_complete"] is OnboardingStep.PERSONAL_INFO

    @pytest.mark.asyncio
    async def test_validation_error_blocks_commit_not_save(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True))
        tracker = OnboardingProgressTracker(backend)
        session = await StepSession.open(auth, "personal_info", backend, tracker)
        session.update(make_personal_info_blob(fullName=""))

        with pytest.raises(ValidationError):
            await session.submit()

        assert "auto_save" in backend.call_names()
        assert "commit_step" not in backend.call_names()
        assert tracker.current_step() is OnboardingStep.PERSONAL_INFO

    @pytest.mark.asyncio
    async def test_stale_token_propagates(self, auth):
        backend = FakeProfileBackend(CompletionVector(prescreen=True))
        tracker = OnboardingProgressTracker(backend)
        session = await StepSession.open(auth, "personal_info", backend, tracker)
        session.update(make_personal_info_blob())
        backend.fail_with = StaleTokenError()

        with pytest.raises(StaleTokenError):
            await session.submit()

        assert not tracker.completion.personal_info
        assert session.save_state.dirty


# =============================================================================
# Profile Submission
# =============================================================================


class TestProfileSubmission:
    """The final, read-only step."""

    @pytest.mark.asyncio
    async def test_submits_when_everything_complete(self, auth):
        backend = FakeProfileBackend(_ALL_BUT_SUBMISSION)
        tracker = OnboardingProgressTracker(backend)
        session = await StepSession.open(auth, "profile_submission", backend, tracker)

        outcome = await session.submit()

        assert outcome.next_step is None
        assert "submit_profile" in backend.call_names()
        assert "auto_save" not in backend.call_names()
        assert tracker.completion.all_complete

    @pytest.mark.asyncio
    async def test_submitted_application_is_read_only(self, auth):
        backend = FakeProfileBackend(
            CompletionVector(prescreen=True), profile={"applicationStatus": "submitted"}
        )
        session = await _open(auth, backend, "personal_info")
        assert not session.editable

        with pytest.raises(ApplicationLockedError) as exc_info:
            session.update(make_personal_info_blob(fullName="Edited After Submit"))
        assert exc_info.value.status == "submitted"

        with pytest.raises(ApplicationLockedError):
            await session.submit()

        await session.save_now()

        assert backend.call_names() == ["fetch_profile"]

    @pytest.mark.asyncio
    async def test_rejected_application_stays_editable(self, auth):
        backend = FakeProfileBackend(
            CompletionVector(prescreen=True), profile={"applicationStatus": "rejected"}
        )
        session = await _open(auth, backend, "personal_info")
        session.update(make_personal_info_blob())

        outcome = await session.submit()

        assert session.editable
        assert outcome.next_step is OnboardingStep.IDENTITY_VERIFICATION
        assert "commit_step" in backend.call_names()


# =============================================================================
# Auto-save
# =============================================================================


class TestAutoSave:
    """Background saves and the final flush."""

    @pytest.mark.asyncio
    async def test_close_flushes_pending_edit(self, auth, backend):
        session = await _open(auth, backend, "prescreen")
        session.update(make_prescreen_blob())

        await session.close()

        step, blob = dict(backend.calls)["auto_save"]
        assert step is OnboardingStep.PRESCREEN
        assert blob["experience_months"] == 24

    @pytest.mark.asyncio
    async def test_background_failure_reported(self, auth, backend, monkeypatch):
        monkeypatch.setattr(settings, "autosave_delay_ms", 10)
        on_error = MagicMock()
        session = await _open(auth, backend, "prescreen", on_error=on_error)
        backend.fail_with = NetworkError("down")

        session.update(make_prescreen_blob())
        await asyncio.sleep(0.1)

        on_error.assert_called_once()
        assert session.save_state.last_error is not None
