"""Step workflow: edit → auto-save → submit → mark complete → unlock next.

A StepSession is the engine-side counterpart of one open step screen. It
owns the step's auto-save coordinator and drives the explicit submit action:

1. Flush pending edits (save_now).
2. Validate the blob; a ValidationError stops here with per-field messages.
3. Prescreen only: fetch the job/city requirement matrix and score the
   answers. A missing matrix or any failed lookup other than an expired
   token falls back to the default rubric.
4. Commit the blob (PUT profile/{segment}) and set the step's backend flag
   (PUT profile/onboarding-step).
5. Prescreen only: record the verdict (PUT profile/update).
6. Mark the step complete in the tracker, which unlocks the next step.

The final step (profile submission) is read-only: it never auto-saves and
its submit posts the application (POST profile/submit) once every earlier
step is complete.

Once the application is submitted (or under review or approved) the session
is read-only: edits and submits raise ApplicationLockedError.

A failing prescreen verdict still completes the prescreen step. The verdict
is reported in the StepOutcome and the caller decides whether to continue.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pydantic
import structlog

from homecare_onboarding.adapters.profile_api import ProfileBackend
from homecare_onboarding.core.auth import AuthContext
from homecare_onboarding.core.config import settings
from homecare_onboarding.core.errors import (
    ApplicationLockedError,
    OnboardingError,
    StaleTokenError,
)
from homecare_onboarding.schemas.prescreen import PrescreenAnswers
from homecare_onboarding.schemas.profile import ProfileSnapshot
from homecare_onboarding.services.auto_save import AutoSaveCoordinator, SaveState
from homecare_onboarding.services.eligibility import (
    EligibilityScore,
    Verdict,
    VerdictMessage,
    describe_verdict,
    score_answers,
)
from homecare_onboarding.services.progress_tracker import OnboardingProgressTracker
from homecare_onboarding.services.step_validation import validate_step
from homecare_onboarding.services.steps import (
    OnboardingStep,
    StepDescriptor,
    get_descriptor,
    get_next_step,
    parse_step,
)

logger = structlog.get_logger()

Blob = dict[str, Any]


@dataclass(frozen=True)
class StepOutcome:
    """Result of a successful submit.

    Attributes:
        step: The step that was completed.
        next_step: Step unlocked by this submit, None after the last step.
        score: Prescreen breakdown (prescreen only).
    """

    step: OnboardingStep
    next_step: OnboardingStep | None
    score: EligibilityScore | None = None

    @property
    def verdict(self) -> Verdict | None:
        return self.score.verdict if self.score is not None else None

    @property
    def message(self) -> VerdictMessage | None:
        """Result-screen copy for the prescreen verdict."""
        verdict = self.verdict
        return describe_verdict(verdict) if verdict is not None else None


def _initial_blob(step: OnboardingStep, snapshot: ProfileSnapshot) -> Blob:
    if step is not OnboardingStep.PRESCREEN:
        return snapshot.step_data(step)
    try:
        return snapshot.prescreen_answers().to_payload()
    except pydantic.ValidationError:
        # Keep unparseable answers as typed so the candidate can fix them
        logger.warning("stored_prescreen_unparseable")
        return snapshot.step_data(step)


class StepSession:
    """One open onboarding step bound to the backend and the tracker."""

    def __init__(
        self,
        auth: AuthContext,
        step: str | OnboardingStep,
        backend: ProfileBackend,
        tracker: OnboardingProgressTracker,
        *,
        initial: Blob | None = None,
        job_title: str | None = None,
        base_city: str | None = None,
        application_status: str = "draft",
        editable: bool = True,
        on_error: Callable[[OnboardingError], None] | None = None,
        on_state_change: Callable[[SaveState], None] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            auth: Credentials for every backend call this session makes.
            step: Step this session edits.
            backend: Profile backend.
            tracker: Progress tracker to notify on completion.
            initial: Blob already persisted for this step.
            job_title: Job the candidate applied for. Defaults to
                settings.default_job_title.
            base_city: Candidate's base city, used to pick the requirement
                matrix. Defaults to settings.default_city.
            application_status: Backend status of the application.
            editable: False once the application has been submitted. The
                coordinator then never saves and edits and submits are
                refused.
            on_error: Receives background auto-save failures.
            on_state_change: Receives every SaveState transition.
        """
        self._auth = auth
        self._descriptor: StepDescriptor = get_descriptor(step)
        self._backend = backend
        self._tracker = tracker
        self._job_title = job_title or settings.default_job_title
        self._base_city = base_city or settings.default_city
        self._on_error = on_error
        self._application_status = application_status
        self._editable = editable
        self._log = logger.bind(step=self.step.value, user_id=auth.user_id)

        autosave_enabled = editable and self.step is not OnboardingStep.PROFILE_SUBMISSION
        self._coordinator: AutoSaveCoordinator[Blob] = AutoSaveCoordinator(
            self._persist,
            initial if initial is not None else {},
            delay_ms=self._descriptor.autosave_delay_ms,
            enabled=autosave_enabled,
            on_error=self._report_error,
            on_change=on_state_change,
            name=f"autosave:{self.step.value}",
        )

    @classmethod
    def from_snapshot(
        cls,
        auth: AuthContext,
        step: str | OnboardingStep,
        snapshot: ProfileSnapshot,
        backend: ProfileBackend,
        tracker: OnboardingProgressTracker,
        **kwargs: Any,
    ) -> "StepSession":
        """Build a session seeded with the step's stored blob."""
        step = parse_step(step)
        return cls(
            auth,
            step,
            backend,
            tracker,
            initial=_initial_blob(step, snapshot),
            job_title=snapshot.job_title,
            base_city=snapshot.base_city,
            application_status=snapshot.application_status,
            editable=snapshot.is_editable,
            **kwargs,
        )

    @classmethod
    async def open(
        cls,
        auth: AuthContext,
        step: str | OnboardingStep,
        backend: ProfileBackend,
        tracker: OnboardingProgressTracker,
        **kwargs: Any,
    ) -> "StepSession":
        """Load the profile, open the step in the tracker, and start a session.

        Raises:
            StepLockedError: If the step is locked.
            StaleTokenError: If authentication failed.
            NetworkError: If the profile could not be loaded.
        """
        snapshot = await backend.fetch_profile(auth)
        tracker.adopt(snapshot.completion)
        tracker.navigate_to(step)
        return cls.from_snapshot(auth, step, snapshot, backend, tracker, **kwargs)

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    @property
    def step(self) -> OnboardingStep:
        return self._descriptor.step

    @property
    def descriptor(self) -> StepDescriptor:
        return self._descriptor

    @property
    def value(self) -> Blob:
        return self._coordinator.value

    @property
    def save_state(self) -> SaveState:
        return self._coordinator.state

    @property
    def review_mode(self) -> bool:
        return self._tracker.review_mode

    @property
    def editable(self) -> bool:
        return self._editable

    def update(self, blob: Blob) -> None:
        """Record an edit; auto-save picks it up after the quiet period.

        Raises:
            ApplicationLockedError: The application is no longer editable.
        """
        self._ensure_editable()
        self._coordinator.set(blob)

    async def save_now(self) -> None:
        """Persist pending edits immediately.

        Raises:
            OnboardingError: The save failed.
        """
        await self._coordinator.save_now()

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    async def submit(self) -> StepOutcome:
        """Complete the step.

        Returns:
            StepOutcome with the unlocked step (and the prescreen score).

        Raises:
            ValidationError: The blob is incomplete; nothing was committed.
            NetworkError: A backend call failed; the step stays incomplete.
            ApplicationLockedError: The application is no longer editable.
            StaleTokenError: Authentication failed.
        """
        self._ensure_editable()
        await self._coordinator.save_now()

        if self.step is OnboardingStep.PROFILE_SUBMISSION:
            return await self._submit_profile()

        blob = self._coordinator.value
        validate_step(self.step, blob, job_title=self._job_title)

        score: EligibilityScore | None = None
        answers: PrescreenAnswers | None = None
        if self.step is OnboardingStep.PRESCREEN:
            answers = PrescreenAnswers.model_validate(blob)
            score = await self._evaluate_prescreen(answers)

        await self._backend.commit_step(self._auth, self.step, blob)
        await self._backend.mark_step_complete(self._auth, self.step)

        if score is not None and answers is not None:
            await self._backend.update_profile(
                self._auth,
                {
                    "prescreenResult": score.verdict.value,
                    "prescreenCompleted": True,
                    "baseCity": answers.current_location,
                    "languages": answers.languages,
                },
            )

        self._tracker.mark_complete(self.step)
        outcome = StepOutcome(step=self.step, next_step=get_next_step(self.step), score=score)
        self._log.info(
            "step_completed",
            next_step=outcome.next_step.value if outcome.next_step else None,
            verdict=outcome.verdict.value if outcome.verdict else None,
        )
        return outcome

    async def _submit_profile(self) -> StepOutcome:
        validate_step(self.step, {}, completion=self._tracker.completion)
        await self._backend.submit_profile(self._auth)
        self._tracker.mark_complete(self.step)
        self._log.info("profile_submitted")
        return StepOutcome(step=self.step, next_step=None)

    async def _evaluate_prescreen(self, answers: PrescreenAnswers) -> EligibilityScore:
        try:
            matrix = await self._backend.fetch_requirement_matrix(
                self._auth, self._job_title, self._base_city
            )
        except StaleTokenError:
            raise
        except OnboardingError as exc:
            self._log.warning(
                "requirement_matrix_unavailable",
                job_title=self._job_title,
                city=self._base_city,
                error=exc.message,
                code=exc.code,
            )
            matrix = None

        score = score_answers(answers, matrix)
        self._log.info(
            "prescreen_scored",
            rubric=score.rubric,
            score=score.score,
            max_possible=score.max_possible,
            verdict=score.verdict.value,
        )
        return score

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Flush pending edits before the step screen goes away.

        Raises:
            OnboardingError: The final flush failed.
        """
        await self._coordinator.close()

    def _ensure_editable(self) -> None:
        if not self._editable:
            raise ApplicationLockedError(self._application_status)

    async def _persist(self, blob: Blob) -> None:
        await self._backend.auto_save(self._auth, self.step, blob)

    def _report_error(self, error: OnboardingError) -> None:
        self._log.warning("autosave_failed", code=error.code, error=error.message)
        if self._on_error is not None:
            self._on_error(error)
