"""
Wire models for the platform's REST payloads.

The backend speaks camelCase JSON and is loose about a few shapes (JSON-encoded
option lists, ``marks`` vs ``points``, flat vs nested test payloads). Everything
is normalised here so the services only ever see one shape.
"""
import enum
import json
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices, BaseModel, BeforeValidator, ConfigDict, Discriminator, Field,
    Tag, TypeAdapter, field_validator,
)
from pydantic.alias_generators import to_camel

from aptitude.core.exceptions import ValidationError

def _as_str(v: Any) -> Any:
    return v if v is None or isinstance(v, str) else str(v)

Id = Annotated[str, BeforeValidator(_as_str)]

def string_list(v: Any) -> List[str]:
    """Accept a list, a JSON-encoded list, a single string or null."""
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [_as_str(x) for x in v if x is not None]
    if isinstance(v, str):
        raw = v.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                return [v]
            if isinstance(parsed, list):
                return [_as_str(x) for x in parsed if x is not None]
        return [v]
    return [_as_str(v)]

class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

# ========== Content ==========

class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    SENTENCE = "sentence"
    BOOLEAN = "boolean"

    @property
    def auto_gradable(self) -> bool:
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.BOOLEAN)

class Question(WireModel):
    id: Id
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    text: str = ""
    options: List[str] = []
    correct_answers: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("correctAnswer", "correctAnswers", "correct_answers", "answer"),
    )
    points: int = Field(default=1, ge=1, validation_alias=AliasChoices("points", "marks", "maxPoints"))

    @field_validator("type", mode="before")
    @classmethod
    def legacy_type_names(cls, v):
        # admin payloads call open-ended questions "text"
        return QuestionType.SENTENCE.value if v in ("text", "essay") else v

    @field_validator("options", "correct_answers", mode="before")
    @classmethod
    def decode_lists(cls, v):
        return string_list(v)

    @field_validator("points", mode="before")
    @classmethod
    def whole_points(cls, v):
        return 1 if v is None else int(v)

class TestTemplate(WireModel):
    __test__ = False

    id: Id
    name: str = Field(default="", validation_alias=AliasChoices("name", "title"))
    category: str = ""
    department: str = ""
    description: str = ""
    time_limit: Optional[int] = Field(default=None, validation_alias=AliasChoices("timeLimit", "time_limit", "duration"))
    created_by: Optional[Id] = None
    questions: List[Question] = []

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

class User(WireModel):
    id: Id
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    role: str = "user"
    department: str = ""

# ========== Assignment ==========

class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

def _assignment_status(v: Any) -> Any:
    return AssignmentStatus.IN_PROGRESS.value if v == "started" else v

class Assignment(WireModel):
    id: Id
    user_id: Optional[Id] = None
    test_template_id: Optional[Id] = None
    assigned_by: Optional[Id] = None
    assigned_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: Annotated[AssignmentStatus, BeforeValidator(_assignment_status)] = AssignmentStatus.ASSIGNED
    test_template: Optional[TestTemplate] = None
    user: Optional[User] = None

    @property
    def is_open(self) -> bool:
        return self.status in (AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS)

    def to_view(self, default_time_limit: int) -> "TestView":
        template = self.test_template
        if template is None:
            raise ValidationError(f"Assignment {self.id} carries no test template")
        return TestView(
            id=self.id,
            title=template.name,
            description=template.description or " / ".join(p for p in (template.category, template.department) if p),
            time_limit_minutes=template.time_limit or default_time_limit,
            questions=template.questions,
            status=self.status,
            template_id=template.id,
        )

class FlatTest(WireModel):
    """Legacy test payload with everything at the top level."""

    id: Id
    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    description: str = ""
    time_limit: Optional[int] = Field(default=None, validation_alias=AliasChoices("timeLimit", "time_limit", "duration"))
    questions: List[Question] = []
    status: Optional[Annotated[AssignmentStatus, BeforeValidator(_assignment_status)]] = None
    test_template_id: Optional[Id] = None

    def to_view(self, default_time_limit: int) -> "TestView":
        return TestView(
            id=self.id,
            title=self.title,
            description=self.description,
            time_limit_minutes=self.time_limit or default_time_limit,
            questions=self.questions,
            status=self.status,
            template_id=self.test_template_id,
        )

class TestView(BaseModel):
    """Single normalised view of a test, whatever shape the backend sent."""

    __test__ = False

    id: str
    title: str
    description: str = ""
    time_limit_minutes: int
    questions: List[Question] = []
    status: Optional[AssignmentStatus] = None
    template_id: Optional[str] = None

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    @property
    def in_progress(self) -> bool:
        return self.status == AssignmentStatus.IN_PROGRESS

    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def as_template(self) -> TestTemplate:
        return TestTemplate(
            id=self.template_id or self.id, name=self.title, description=self.description,
            time_limit=self.time_limit_minutes, questions=self.questions,
        )

def _test_shape(v: Any) -> str:
    if isinstance(v, dict):
        return "assignment" if v.get("testTemplate") or v.get("test_template") else "flat"
    return "assignment" if getattr(v, "test_template", None) is not None else "flat"

TestPayload = Annotated[
    Union[Annotated[Assignment, Tag("assignment")], Annotated[FlatTest, Tag("flat")]],
    Discriminator(_test_shape),
]
_test_payload = TypeAdapter(TestPayload)

def parse_test(payload: Any, default_time_limit: int = 60) -> TestView:
    if not isinstance(payload, dict):
        raise ValidationError("Unexpected test payload")
    return _test_payload.validate_python(payload).to_view(default_time_limit)

# ========== Attempts ==========

class AttemptStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under-review"
    MARKED = "marked"
    APPROVED = "approved"
    REJECTED = "rejected"

    def can_advance_to(self, other: "AttemptStatus") -> bool:
        return other in ATTEMPT_TRANSITIONS[self]

ATTEMPT_TRANSITIONS = {
    AttemptStatus.SUBMITTED: {AttemptStatus.UNDER_REVIEW},
    AttemptStatus.UNDER_REVIEW: {AttemptStatus.MARKED},
    AttemptStatus.MARKED: {AttemptStatus.APPROVED, AttemptStatus.REJECTED},
    AttemptStatus.APPROVED: set(),
    AttemptStatus.REJECTED: set(),
}

_STATUS_ALIASES = {"pending": "submitted", "completed": "submitted", "under review": "under-review"}

def _attempt_status(v: Any) -> Any:
    return _STATUS_ALIASES.get(v.lower(), v.lower()) if isinstance(v, str) else v

class AnswerEntry(WireModel):
    question_id: Id
    answer: str

def merge_answers(entries: Any) -> List[Dict[str, Any]]:
    """Collapse duplicates last-write-wins, keeping first-seen order."""
    if isinstance(entries, dict):
        entries = [{"questionId": k, "answer": v} for k, v in entries.items()]
    merged: Dict[str, Any] = {}
    for entry in entries or []:
        if isinstance(entry, AnswerEntry):
            merged[entry.question_id] = entry.answer
            continue
        qid = entry.get("questionId", entry.get("question_id"))
        if qid is None:
            continue
        merged[str(qid)] = _as_str(entry.get("answer"))
    return [{"questionId": k, "answer": v} for k, v in merged.items() if v is not None]

class Attempt(WireModel):
    id: Id
    assignment_id: Optional[Id] = None
    user_id: Optional[Id] = None
    test_template_id: Optional[Id] = Field(default=None, validation_alias=AliasChoices("testTemplateId", "templateId"))
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    status: Annotated[AttemptStatus, BeforeValidator(_attempt_status)] = AttemptStatus.SUBMITTED
    answers: List[AnswerEntry] = Field(
        default_factory=list, validation_alias=AliasChoices("answers", "parsedAnswers", "responses"),
    )
    score: Optional[float] = None
    approved: Optional[bool] = None
    reviewed_by: Optional[Id] = Field(default=None, validation_alias=AliasChoices("reviewedBy", "markedBy"))
    feedback: Optional[str] = None
    time_spent: Optional[float] = None
    user: Optional[User] = None

    @field_validator("answers", mode="before")
    @classmethod
    def one_answer_per_question(cls, v):
        return merge_answers(v)

    def answer_for(self, question_id: str) -> Optional[str]:
        return next((a.answer for a in self.answers if a.question_id == question_id), None)

    def advance(self, status: AttemptStatus) -> None:
        status = AttemptStatus(status)
        if not self.status.can_advance_to(status):
            raise ValidationError(f"Attempt {self.id} cannot move from {self.status.value} to {status.value}")
        self.status = status

class AttemptForReview(Attempt):
    """Admin review payload: the attempt plus its assignment and template."""

    assignment: Optional[Assignment] = None

    @property
    def template(self) -> Optional[TestTemplate]:
        return self.assignment.test_template if self.assignment else None

# ========== Review payloads ==========

class ReviewQuestion(Question):
    submitted_answer: Optional[str] = None

class ReviewData(WireModel):
    """Frozen record returned by ``GET /user/test/{id}/submitted``."""

    id: Id
    test_template: TestTemplate
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    status: str = AttemptStatus.SUBMITTED.value
    score: Optional[float] = None
    approved: Optional[bool] = None
    assignment: Optional[Dict[str, Any]] = None
    questions: List[ReviewQuestion] = []
    total_questions: Optional[int] = None
    answered_questions: Optional[int] = None

    def to_template(self) -> TestTemplate:
        questions = [Question.model_validate(q.model_dump(exclude={"submitted_answer"})) for q in self.questions]
        return self.test_template.model_copy(update={"questions": questions})

    def to_attempt(self) -> Attempt:
        answers = [{"questionId": q.id, "answer": q.submitted_answer} for q in self.questions if q.submitted_answer]
        return Attempt(
            id=self.id, test_template_id=self.test_template.id, started_at=self.started_at,
            submitted_at=self.submitted_at, status=self.status, answers=answers,
            score=self.score, approved=self.approved,
        )

class QuestionResult(WireModel):
    question_id: Id = Field(validation_alias=AliasChoices("questionId", "question_id", "id"))
    text: str = ""
    type: Optional[str] = None
    user_answer: Optional[str] = Field(default=None, validation_alias=AliasChoices("userAnswer", "submittedAnswer", "user_answer"))
    correct_answer: Optional[str] = None
    points: float = Field(default=0, validation_alias=AliasChoices("pointsAwarded", "points"))
    max_points: float = Field(default=0, validation_alias=AliasChoices("maxPoints", "max_points", "marks"))
    is_correct: Optional[bool] = None

class ReviewStatistics(WireModel):
    total_questions: int = 0
    answered_questions: int = 0
    correct_answers: int = 0
    total_score: float = 0
    max_score: float = 0

class DetailedReview(WireModel):
    question_results: List[QuestionResult] = []
    statistics: ReviewStatistics = Field(default_factory=ReviewStatistics)

    @classmethod
    def from_payload(cls, data: Any) -> "DetailedReview":
        if isinstance(data, dict) and "breakdown" in data:
            data = data["breakdown"]
        return cls.model_validate(data or {})

class TestResult(WireModel):
    """Row of ``GET /user/results``; percentage is derived, never stored."""

    __test__ = False

    id: Id
    test_id: Optional[Id] = None
    score: float = 0
    total_points: float = 0
    time_spent: float = 0
    submitted_at: Optional[datetime] = None
    marked_at: Optional[datetime] = None
    feedback: Optional[str] = None
    status: str = "pending"
