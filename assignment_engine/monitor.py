"""
Learner-side quiz session: answer sheet, violation monitor and submit.

The monitor counts integrity violations (tab switches, window blur, blocked
copy/paste) and escalates through ARMED -> WARNED -> FLAGGED. Once the count
goes past the auto-submit threshold it forces a submission of whatever the
learner has answered so far, exactly once.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from assignment_engine.config import Settings, get_settings
from assignment_engine.errors import ChannelUnavailable, DuplicateSubmission, TransientStoreFailure
from assignment_engine.questions import Question
from assignment_engine.services.submission_service import SubmitOutcome
from assignment_engine.transactors import SubmissionTransactor

logger = logging.getLogger(__name__)


class MonitorPhase(str, Enum):
    ARMED = "armed"
    WARNED = "warned"
    FLAGGED = "flagged"
    FORCED_SUBMIT = "forced_submit"
    CLOSED = "closed"


class ViolationKind(str, Enum):
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    FORBIDDEN_INPUT = "forbidden_input"


@dataclass(frozen=True)
class Thresholds:
    warning: int = 5
    auto_submit: int = 10

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Thresholds":
        settings = settings or get_settings()
        return cls(warning=settings.warning_threshold, auto_submit=settings.auto_submit_threshold)


@dataclass(frozen=True)
class MonitorState:
    phase: MonitorPhase = MonitorPhase.ARMED
    violations: int = 0
    flagged: bool = False

    @property
    def finished(self) -> bool:
        return self.phase in (MonitorPhase.FORCED_SUBMIT, MonitorPhase.CLOSED)


def record_violation(state: MonitorState, thresholds: Thresholds) -> MonitorState:
    """Next state after one more violation. Finished monitors ignore violations."""
    if state.finished:
        return state
    count = state.violations + 1
    flagged = state.flagged or count >= thresholds.warning
    if count > thresholds.auto_submit:
        phase = MonitorPhase.FORCED_SUBMIT
    elif flagged:
        phase = MonitorPhase.FLAGGED
    else:
        phase = MonitorPhase.WARNED
    return MonitorState(phase=phase, violations=count, flagged=flagged)


def close_state(state: MonitorState) -> MonitorState:
    if state.finished:
        return state
    return replace(state, phase=MonitorPhase.CLOSED)


def severity_for(state: MonitorState, thresholds: Thresholds) -> str:
    if state.violations > thresholds.auto_submit:
        return "high"
    if state.violations >= thresholds.warning:
        return "medium"
    return "low"


class ViolationMonitor:
    """Tracks violations and fires ``forced_submit`` once when the limit is passed.

    A forced submission that meets an existing submission is not an error:
    the learner already submitted by other means. A forced submission that
    fails with a retryable error (`TransientStoreFailure`, `ChannelUnavailable`)
    is raised to the caller and re-armed; `retry_forced_submit()` runs it again.
    Any other failure keeps the latch set.
    """

    def __init__(
        self,
        forced_submit: Callable[[], Any],
        thresholds: Optional[Thresholds] = None,
        on_violation: Optional[Callable[[ViolationKind, MonitorState], None]] = None,
    ):
        self.forced_submit = forced_submit
        self.thresholds = thresholds or Thresholds.from_settings()
        self.on_violation = on_violation
        self.state = MonitorState()
        self._fired = False
        self._lock = threading.Lock()

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def forced_submit_pending(self) -> bool:
        """The limit was passed but no forced submit has gone through yet."""
        return self.state.phase is MonitorPhase.FORCED_SUBMIT and not self._fired

    def report(self, kind: ViolationKind) -> MonitorState:
        with self._lock:
            if self.state.finished:
                return self.state
            self.state = record_violation(self.state, self.thresholds)
            state = self.state
            fire = self._claim()

        if state.phase is MonitorPhase.WARNED and state.violations == 1:
            logger.info(f"First integrity violation ({kind.value}) recorded")
        elif state.flagged:
            logger.warning(f"Integrity violation #{state.violations} ({kind.value}), phase {state.phase.value}")

        try:
            if fire:
                self._fire()
        finally:
            if self.on_violation:
                self.on_violation(kind, state)
        return state

    def retry_forced_submit(self) -> bool:
        """Run a forced submit that failed with a retryable error. Returns whether it ran."""
        with self._lock:
            fire = self._claim()
        if fire:
            self._fire()
        return fire

    def close(self) -> MonitorState:
        with self._lock:
            self.state = close_state(self.state)
            return self.state

    def _claim(self) -> bool:
        if not self.forced_submit_pending:
            return False
        self._fired = True
        return True

    def _fire(self) -> None:
        logger.warning(f"Violation limit passed after {self.state.violations} violations, forcing submit")
        try:
            self.forced_submit()
        except DuplicateSubmission:
            logger.info("Forced submit skipped: answers were already submitted")
        except (TransientStoreFailure, ChannelUnavailable) as e:
            with self._lock:
                self._fired = False
            logger.warning(f"Forced submit failed and can be retried: {e.code}")
            raise


class AnswerSheet:
    """In-progress answers, keyed by question index."""

    def __init__(self, questions: Sequence[Question]):
        self.questions = list(questions)
        self._choices: Dict[int, Set[int]] = {}
        self._texts: Dict[int, str] = {}

    def toggle_choice(self, question_idx: int, option_idx: int) -> List[int]:
        chosen = self._choices.setdefault(question_idx, set())
        if option_idx in chosen:
            chosen.remove(option_idx)
        else:
            chosen.add(option_idx)
        return sorted(chosen)

    def set_text(self, question_idx: int, value: str) -> None:
        self._texts[question_idx] = value

    def is_complete(self) -> bool:
        """Every MCQ has a choice and every text question has non-blank text."""
        for idx, question in enumerate(self.questions):
            if question.is_mcq:
                if not self._choices.get(idx):
                    return False
            elif not self._texts.get(idx, "").strip():
                return False
        return True

    def snapshot(self) -> List[dict]:
        entries = []
        for idx, question in enumerate(self.questions):
            if question.is_mcq:
                entries.append({"kind": "mcq", "choices": sorted(self._choices.get(idx, ()))})
            else:
                entries.append({"kind": "text", "value": self._texts.get(idx, "")})
        return entries


class ProctoredQuiz:
    """One learner taking one quiz through a submission transactor."""

    def __init__(
        self,
        assignment_id: int,
        questions: Sequence[Question],
        transactor: SubmissionTransactor,
        thresholds: Optional[Thresholds] = None,
        reporter: Optional[Callable[[int, str, int, str], None]] = None,
    ):
        self.assignment_id = assignment_id
        self.transactor = transactor
        self.sheet = AnswerSheet(questions)
        self.reporter = reporter
        self.outcome: Optional[SubmitOutcome] = None
        self.monitor = ViolationMonitor(
            forced_submit=self._forced_submit,
            thresholds=thresholds,
            on_violation=self._report if reporter else None,
        )

    def report_violation(self, kind: ViolationKind) -> MonitorState:
        return self.monitor.report(kind)

    def submit(self) -> SubmitOutcome:
        """Submit on the learner's request. `DuplicateSubmission` propagates."""
        self.outcome = self.transactor.submit(self.assignment_id, self.sheet.snapshot())
        self.monitor.close()
        return self.outcome

    def _forced_submit(self) -> None:
        self.outcome = self.transactor.submit(self.assignment_id, self.sheet.snapshot(), forced=True)

    def _report(self, kind: ViolationKind, state: MonitorState) -> None:
        self.reporter(
            self.assignment_id,
            kind.value,
            state.violations,
            severity_for(state, self.monitor.thresholds),
        )
