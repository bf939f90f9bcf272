"""
One user's pass through one assigned test.

Lifecycle: ``NOT_STARTED -> STARTED -> SUBMITTING -> COMPLETED``. Answers are
drafted locally and only reach the backend on submit, either when the user
asks for it or when the countdown reaches zero. The countdown fires the
automatic submission at most once per session.
"""
import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

import pydantic

from aptitude.api.user import UserAPI
from aptitude.core.config import Settings, get_settings
from aptitude.core.exceptions import (
    APIError, AptitudeError, NotFoundError, SessionStateError, SubmissionError, ValidationError,
)
from aptitude.models.schemas import AnswerEntry, TestView, merge_answers, parse_test
from aptitude.services.grading import QuestionReview, build_review
from aptitude.services.timer import Countdown, CountdownTimer, TimerState

logger = logging.getLogger(__name__)

ALREADY_STARTED = ("already started", "current status: started", "already in progress")

class SessionState(str, enum.Enum):
    NOT_STARTED = "not-started"
    STARTED = "started"
    SUBMITTING = "submitting"
    COMPLETED = "completed"

@dataclass(frozen=True)
class SubmissionResult:
    message: str
    answers: List[AnswerEntry]
    minutes_spent: float
    completed: bool  # whether the follow-up completion call went through
    automatic: bool = False
    data: dict = field(default_factory=dict)

def is_already_started(error: APIError) -> bool:
    # the status code alone is not enough: a 409 also covers completed or expired tests
    message = error.message.lower()
    return any(marker in message for marker in ALREADY_STARTED)

AnswersArg = Optional[Union[Mapping[str, str], Sequence[AnswerEntry]]]

class TestAttemptSession:
    __test__ = False

    def __init__(self, user_api: UserAPI, settings: Optional[Settings] = None):
        self.user_api = user_api
        self.settings = settings or get_settings()
        self.test_id: Optional[str] = None
        self.view: Optional[TestView] = None
        self.state = SessionState.NOT_STARTED
        self.countdown: Optional[Countdown] = None
        self.result: Optional[SubmissionResult] = None
        self.error: Optional[AptitudeError] = None
        self._draft: Dict[str, str] = {}
        self._timer: Optional[CountdownTimer] = None
        self._auto_submitted = False
        self._in_flight = False
        self._lock = threading.RLock()

    def __enter__(self) -> "TestAttemptSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- loading & starting ----------

    def load(self, test_id: str) -> TestView:
        with self._lock:
            if self.state in (SessionState.SUBMITTING, SessionState.COMPLETED):
                raise SessionStateError("Cannot reload a session that has been submitted")
        raw = self.user_api.test(test_id)
        if not raw:
            raise NotFoundError(f"Test {test_id} not found")
        try:
            view = parse_test(raw, self.settings.DEFAULT_TIME_LIMIT_MINUTES)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Malformed test payload for {test_id}") from e
        with self._lock:
            self.test_id = str(test_id)
            self.view = view
            self.countdown = Countdown.for_minutes(view.time_limit_minutes)
            if view.in_progress and self.state == SessionState.NOT_STARTED:
                logger.info(f"Test {test_id} already in progress, skipping start")
                self.state = SessionState.STARTED
        logger.info(f"Loaded test {test_id}: {len(view.questions)} questions, {view.time_limit_minutes} min")
        return view

    def start(self, test_id: Optional[str] = None) -> None:
        test_id = str(test_id or self.test_id or "")
        if not test_id:
            raise SessionStateError("No test to start")
        with self._lock:
            if self.state in (SessionState.SUBMITTING, SessionState.COMPLETED):
                raise SessionStateError(f"Cannot start a session in state {self.state.value}")
            if self.state == SessionState.STARTED and self.test_id == test_id:
                return
        try:
            self.user_api.start(test_id)
        except APIError as e:
            if not is_already_started(e):
                raise
            logger.info(f"Test {test_id} was already started, proceeding")
        with self._lock:
            self.test_id = test_id
            if self.countdown is None:
                self.countdown = Countdown.for_minutes(self.settings.DEFAULT_TIME_LIMIT_MINUTES)
            self.state = SessionState.STARTED

    # ---------- answers ----------

    def record_answer(self, question_id: str, value: str) -> None:
        with self._lock:
            if self.state == SessionState.COMPLETED:
                raise SessionStateError("Session is completed; answers are final")
            if self._in_flight:
                raise SessionStateError("Answers are being submitted; edits are not accepted until it finishes")
            self._draft[str(question_id)] = value

    @property
    def draft(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._draft)

    @property
    def answers(self) -> List[AnswerEntry]:
        """Draft as submission entries, in drafting order, blank answers left out."""
        with self._lock:
            return self._entries(self._draft)

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    @staticmethod
    def _entries(answers: Union[Mapping[str, str], Sequence[AnswerEntry]]) -> List[AnswerEntry]:
        return [AnswerEntry.model_validate(a) for a in merge_answers(answers) if a["answer"] != ""]

    # ---------- time ----------

    @staticmethod
    def compute_elapsed(limit_minutes: float, remaining_seconds: float) -> float:
        total = limit_minutes * 60
        remaining = min(max(remaining_seconds, 0), total)
        return (total - remaining) / 60

    @property
    def remaining_seconds(self) -> int:
        return self.countdown.remaining_seconds if self.countdown else 0

    def elapsed_minutes(self) -> float:
        if self.countdown is None:
            return 0.0
        return self.compute_elapsed(self.countdown.total_seconds / 60, self.countdown.remaining_seconds)

    def tick(self) -> TimerState:
        with self._lock:
            if self.countdown is None:
                raise SessionStateError("No test loaded")
            if self.state != SessionState.STARTED:
                return self.countdown.state()
            state = self.countdown.tick()
            if not state.fired or self._auto_submitted:
                return state
            self._auto_submitted = True
        logger.info(f"Time limit reached for test {self.test_id}, submitting automatically")
        try:
            self.submit(automatic=True)
        except AptitudeError as e:
            # the timer fires once; a retry has to come from the user
            logger.error(f"Automatic submission of test {self.test_id} failed: {e}")
        return state

    def run_timer(self, interval: Optional[float] = None) -> CountdownTimer:
        with self._lock:
            if self.state != SessionState.STARTED:
                raise SessionStateError("Timer can only run while the test is in progress")
            if self._timer is not None and not self._timer.cancelled:
                raise SessionStateError("Timer already running")
            self._timer = CountdownTimer(
                self.tick, interval or self.settings.TICK_INTERVAL_SECONDS, name=f"countdown-{self.test_id}",
            )
        self._timer.start()
        return self._timer

    def wait(self, timeout: Optional[float] = None) -> None:
        if self._timer is not None:
            self._timer.join(timeout)

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    # ---------- submission ----------

    def submit(
        self, answers: AnswersArg = None, minutes_spent: Optional[float] = None, *, automatic: bool = False,
    ) -> SubmissionResult:
        with self._lock:
            if self.state == SessionState.NOT_STARTED:
                raise SessionStateError("Test has not been started")
            if self.state == SessionState.COMPLETED:
                raise SessionStateError("Test has already been submitted")
            if self._in_flight:
                raise SessionStateError("A submission is already in progress")
            self.state = SessionState.SUBMITTING
            self._in_flight = True
            entries = self._entries(self._draft if answers is None else answers)
            if minutes_spent is None:
                minutes_spent = self.elapsed_minutes()
            test_id = self.test_id
        self._stop_timer()

        logger.info(f"Submitting {len(entries)} answers for test {test_id} after {minutes_spent:.2f} min")
        try:
            body = self.user_api.submit(test_id, entries)
        except AptitudeError as e:
            error = SubmissionError(f"Failed to submit test {test_id}: {e.message}", cause=e)
            with self._lock:
                self._in_flight = False
                self.error = error
            raise error from e
        body = body if isinstance(body, dict) else {}

        completed = True
        try:
            self.user_api.complete(test_id)
        except AptitudeError as e:
            completed = False
            logger.warning(f"Completing test {test_id} failed after a successful submit: {e}")

        result = SubmissionResult(
            message=str(body.get("message", "")),
            answers=entries,
            minutes_spent=minutes_spent,
            completed=completed,
            automatic=automatic,
            data=body.get("data") or {},
        )
        with self._lock:
            self.result = result
            self.error = None
            self._in_flight = False
            self._draft.clear()
            self.state = SessionState.COMPLETED
        return result

    # ---------- review & teardown ----------

    def review(self) -> List[QuestionReview]:
        if not self.test_id:
            raise SessionStateError("No test loaded")
        data = self.user_api.submitted(self.test_id)
        return build_review(data.to_attempt(), data.to_template())

    def close(self) -> None:
        """Tear the session down; an unsent draft is discarded."""
        self._stop_timer()
        with self._lock:
            if self.state != SessionState.COMPLETED and self._draft:
                logger.info(f"Discarding {len(self._draft)} unsent answers for test {self.test_id}")
                self._draft.clear()
