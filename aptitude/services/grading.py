"""
Read-only grading view over a submitted attempt.

Nothing here talks to the backend: it pairs each question of a template with
the recorded answer, auto-checks what can be auto-checked and turns awarded
points into a percentage and a letter grade.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from aptitude.core.exceptions import ValidationError
from aptitude.models.schemas import Attempt, Question, TestResult, TestTemplate

logger = logging.getLogger(__name__)

NO_ANSWER = "No answer provided"

# Ordered (threshold, grade) bands, highest first
GRADE_BANDS = ((80.0, "A"), (60.0, "B"), (0.0, "C"))

class Verdict(str, enum.Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    MANUAL_REVIEW = "manual-review"

@dataclass(frozen=True)
class QuestionReview:
    question: Question
    submitted_answer: Optional[str]
    verdict: Verdict

    @property
    def answered(self) -> bool:
        return self.submitted_answer is not None

    @property
    def display_answer(self) -> str:
        return self.submitted_answer if self.answered else NO_ANSWER

    @property
    def is_correct(self) -> Optional[bool]:
        if self.verdict == Verdict.MANUAL_REVIEW:
            return None
        return self.verdict == Verdict.CORRECT

@dataclass(frozen=True)
class GradeSummary:
    total_score: float
    total_points: float
    percentage: float
    grade: str

    @property
    def display_score(self) -> str:
        return f"{_num(self.total_score)}/{_num(self.total_points)}"

@dataclass(frozen=True)
class ResultStatistics:
    count: int
    average_percentage: int
    best_percentage: int
    average_minutes: int

def _num(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else f"{v:g}"

def judge(question: Question, answer: Optional[str]) -> Verdict:
    if not question.type.auto_gradable or not question.correct_answers:
        return Verdict.MANUAL_REVIEW
    # exact, case-sensitive, untrimmed
    if answer is not None and answer in question.correct_answers:
        return Verdict.CORRECT
    return Verdict.INCORRECT

def build_review(attempt: Attempt, template: TestTemplate) -> List[QuestionReview]:
    return [
        QuestionReview(question=q, submitted_answer=attempt.answer_for(q.id), verdict=judge(q, attempt.answer_for(q.id)))
        for q in template.questions
    ]

def percentage(score: float, total_points: float) -> float:
    if total_points <= 0:
        return 0.0
    return round(score / total_points * 100, 1)

def grade_for(pct: float) -> str:
    for threshold, grade in GRADE_BANDS:
        if pct >= threshold:
            return grade
    return GRADE_BANDS[-1][1]

def summarize(question_scores: Mapping[str, float], total_points: float) -> GradeSummary:
    for question_id, points in question_scores.items():
        if points < 0:
            raise ValidationError(f"Negative points for question {question_id}")
    total = sum(question_scores.values())
    if total > total_points:
        raise ValidationError(f"Score {_num(total)} exceeds the maximum of {_num(total_points)}")
    pct = percentage(total, total_points)
    return GradeSummary(total_score=total, total_points=total_points, percentage=pct, grade=grade_for(pct))

def auto_scores(reviews: Iterable[QuestionReview]) -> dict:
    """Points earned on auto-checked questions; manual questions are left out."""
    return {
        r.question.id: (r.question.points if r.verdict == Verdict.CORRECT else 0)
        for r in reviews if r.verdict != Verdict.MANUAL_REVIEW
    }

def result_percentage(result: TestResult) -> float:
    return percentage(result.score, result.total_points)

def result_statistics(results: Iterable[TestResult]) -> ResultStatistics:
    results = list(results)
    if not results:
        return ResultStatistics(0, 0, 0, 0)
    percentages = [result_percentage(r) for r in results]
    return ResultStatistics(
        count=len(results),
        average_percentage=round(sum(percentages) / len(percentages)),
        best_percentage=round(max(percentages)),
        average_minutes=round(sum(r.time_spent for r in results) / len(results)),
    )
