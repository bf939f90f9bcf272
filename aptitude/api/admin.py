import logging
from datetime import date, datetime
from typing import List, Optional, Union
from aptitude.core.exceptions import ValidationError
from aptitude.core.http import ApiClient, unwrap
from aptitude.models.schemas import Assignment, AttemptForReview, Attempt, TestTemplate, User

logger = logging.getLogger(__name__)

DueDate = Optional[Union[date, datetime, str]]

class AdminAPI:
    """Administrator endpoints used for assigning, reviewing and marking."""

    def __init__(self, api: ApiClient):
        self.api = api

    def templates(self) -> List[TestTemplate]:
        return [TestTemplate.model_validate(t) for t in unwrap(self.api.get("/admin/test-templates")) or []]

    def template(self, template_id: str) -> TestTemplate:
        return TestTemplate.model_validate(unwrap(self.api.get(f"/admin/test-templates/{template_id}")))

    def users(self) -> List[User]:
        return [User.model_validate(u) for u in unwrap(self.api.get("/admin/users")) or []]

    def user_assignments(self, user_id: str) -> List[Assignment]:
        return [Assignment.model_validate(a) for a in unwrap(self.api.get(f"/admin/users/{user_id}/assignments")) or []]

    def assign_test(self, user_id: str, template_id: str, due_date: DueDate = None) -> Assignment:
        assigned_by = self.api.session.user_id
        if not assigned_by:
            raise ValidationError("An administrator must be signed in to assign tests")
        payload = {"userId": user_id, "testTemplateId": template_id, "assignedBy": assigned_by}
        if due_date:
            payload["dueDate"] = due_date.isoformat() if isinstance(due_date, (date, datetime)) else due_date
        assignment = Assignment.model_validate(unwrap(self.api.post("/admin/assign-test", payload)))
        logger.info(f"Assigned template {template_id} to user {user_id} ({assignment.id})")
        return assignment

    def reassign(self, assignment: Assignment, template_id: str, due_date: DueDate = None) -> Assignment:
        """
        Give the same user another template.

        Always creates a new assignment; the previous one and any attempts made
        against it are left untouched.
        """
        if not assignment.user_id:
            raise ValidationError(f"Assignment {assignment.id} has no user to reassign")
        return self.assign_test(assignment.user_id, template_id, due_date or assignment.due_date)

    def template_attempts(self, template_id: str) -> List[Attempt]:
        return [Attempt.model_validate(a) for a in unwrap(self.api.get(f"/admin/attempts/{template_id}")) or []]

    def attempt_for_review(self, attempt_id: str) -> AttemptForReview:
        return AttemptForReview.model_validate(unwrap(self.api.get(f"/admin/attempts/review/{attempt_id}")))

    def mark_attempt(self, attempt_id: str, score: float, approved: bool = False, feedback: Optional[str] = None) -> dict:
        payload = {"score": score, "approved": approved}
        if feedback:
            payload["feedback"] = feedback
        return unwrap(self.api.put(f"/admin/attempts/{attempt_id}/mark", payload)) or {}
