"""
Administrator-side marking of submitted attempts.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from aptitude.api.admin import AdminAPI
from aptitude.core.exceptions import ValidationError
from aptitude.models.schemas import Attempt, AttemptForReview, AttemptStatus, Question, TestTemplate
from aptitude.services.grading import GradeSummary, QuestionReview, build_review, summarize

logger = logging.getLogger(__name__)

MARKED_STATUSES = (AttemptStatus.MARKED, AttemptStatus.APPROVED, AttemptStatus.REJECTED)

@dataclass(frozen=True)
class AttemptSummary:
    total_attempts: int
    pending_review: int
    marked: int
    approved: int
    rejected: int
    average_score: float

class MarkingSheet:
    """Per-question points for one attempt; every question starts at full marks."""

    def __init__(self, attempt: Attempt, questions: List[Question], feedback: Optional[str] = None):
        self.attempt = attempt
        self.questions = list(questions)
        self.feedback = feedback if feedback is not None else (attempt.feedback or "")
        self.scores: Dict[str, float] = {q.id: q.points for q in self.questions}

    @classmethod
    def for_review(cls, review: AttemptForReview) -> "MarkingSheet":
        template = review.template
        if template is None:
            raise ValidationError(f"Attempt {review.id} came without its test template")
        return cls(review, template.questions)

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    @property
    def total_score(self) -> float:
        return sum(self.scores.values())

    def reviews(self) -> List[QuestionReview]:
        template = TestTemplate(id=self.attempt.test_template_id or "", questions=self.questions)
        return build_review(self.attempt, template)

    def set_points(self, question_id: str, points: float) -> None:
        question = next((q for q in self.questions if q.id == question_id), None)
        if question is None:
            raise ValidationError(f"Question {question_id} is not part of this attempt")
        if points < 0 or points > question.points:
            raise ValidationError(f"Points for question {question_id} must be between 0 and {question.points}")
        self.scores[question_id] = points

    def summary(self) -> GradeSummary:
        return summarize(self.scores, self.total_points)

    def begin_review(self) -> None:
        if self.attempt.status == AttemptStatus.SUBMITTED:
            self.attempt.advance(AttemptStatus.UNDER_REVIEW)

    def submit(self, admin: AdminAPI, approved: bool = False, feedback: Optional[str] = None) -> GradeSummary:
        if feedback is not None:
            self.feedback = feedback
        summary = self.summary()
        self.begin_review()
        if self.attempt.status != AttemptStatus.UNDER_REVIEW:
            raise ValidationError(f"Attempt {self.attempt.id} is already {self.attempt.status.value}")
        admin.mark_attempt(self.attempt.id, summary.total_score, approved, self.feedback or None)
        self.attempt.score = summary.total_score
        self.attempt.feedback = self.feedback or None
        self.attempt.reviewed_by = admin.api.session.user_id
        self.attempt.advance(AttemptStatus.MARKED)
        if approved:
            self.attempt.approved = True
            self.attempt.advance(AttemptStatus.APPROVED)
        logger.info(f"Marked attempt {self.attempt.id}: {summary.display_score} ({summary.grade})")
        return summary

def summarize_attempts(attempts: Iterable[Attempt]) -> AttemptSummary:
    attempts = list(attempts)
    counts = {s: 0 for s in AttemptStatus}
    for a in attempts:
        counts[a.status] += 1
    scored = [a.score for a in attempts if a.status in MARKED_STATUSES and a.score is not None]
    return AttemptSummary(
        total_attempts=len(attempts),
        pending_review=counts[AttemptStatus.SUBMITTED] + counts[AttemptStatus.UNDER_REVIEW],
        marked=counts[AttemptStatus.MARKED],
        approved=counts[AttemptStatus.APPROVED],
        rejected=counts[AttemptStatus.REJECTED],
        average_score=round(sum(scored) / len(scored), 1) if scored else 0.0,
    )
