from typing import Any, List, Sequence
from aptitude.core.exceptions import NotFoundError
from aptitude.core.http import ApiClient, unwrap
from aptitude.models.schemas import (
    AnswerEntry, Assignment, Attempt, DetailedReview, ReviewData, TestResult, User,
)

class UserAPI:
    """Student-facing endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    def profile(self) -> User:
        return User.model_validate(unwrap(self.api.get("/user/profile")))

    def assigned_tests(self) -> List[Assignment]:
        return [Assignment.model_validate(a) for a in unwrap(self.api.get("/user/assigned-tests")) or []]

    def test(self, test_id: str) -> Any:
        """Raw test payload; both the singular and plural paths are served."""
        try:
            return unwrap(self.api.get(f"/user/test/{test_id}"))
        except NotFoundError:
            return unwrap(self.api.get(f"/user/tests/{test_id}"))

    def start(self, test_id: str) -> dict:
        return self.api.post(f"/user/test/{test_id}/start") or {}

    def submit(self, test_id: str, answers: Sequence[AnswerEntry]) -> dict:
        payload = {"responses": [a.model_dump(by_alias=True) for a in answers]}
        return self.api.post(f"/user/test/{test_id}/submit", payload) or {}

    def complete(self, test_id: str) -> dict:
        return self.api.post(f"/user/test/{test_id}/complete") or {}

    def submitted(self, test_id: str) -> ReviewData:
        return ReviewData.model_validate(unwrap(self.api.get(f"/user/test/{test_id}/submitted")))

    def submitted_tests(self) -> List[Attempt]:
        return [Attempt.model_validate(a) for a in unwrap(self.api.get("/user/submitted-tests")) or []]

    def results(self) -> List[TestResult]:
        return [TestResult.model_validate(r) for r in unwrap(self.api.get("/user/results")) or []]

    def detailed_review(self, attempt_id: str) -> DetailedReview:
        return DetailedReview.from_payload(unwrap(self.api.get(f"/user/results/{attempt_id}/detailed-review")))
