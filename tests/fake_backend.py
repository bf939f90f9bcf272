"""In-memory stand-in for the platform backend, just enough to drive the client."""
import json
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

SECRET = "test-secret"

def create_token(user_id: str, roles: List[str], ttl_minutes: int = 120) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "roles": roles, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp())}
    return jwt.encode(payload, SECRET, algorithm="HS256")

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

class Store:
    def __init__(self):
        self.users = {
            "u-1": {"id": "u-1", "email": "student@example.com", "password": "secret", "firstName": "Sam", "lastName": "Lee", "role": "user"},
            "admin-1": {"id": "admin-1", "email": "admin@example.com", "password": "admin123", "firstName": "Ada", "lastName": "Admin", "role": "admin"},
        }
        self.templates = {
            "tpl-1": {
                "id": "tpl-1", "name": "Aptitude Basics", "category": "Logic", "department": "Engineering", "timeLimit": 1,
                "questions": [
                    {"id": "q-1", "type": "multiple-choice", "text": "Pick B", "options": json.dumps(["A", "B", "C"]), "answer": json.dumps(["B"]), "marks": 5},
                    {"id": "q-2", "type": "sentence", "text": "Explain", "options": None, "answer": json.dumps(["reference text"]), "marks": 5},
                ],
            },
            "tpl-2": {
                "id": "tpl-2", "name": "Reasoning", "category": "Logic", "department": "Sales", "timeLimit": 30,
                "questions": [
                    {"id": "q-3", "type": "boolean", "text": "True?", "options": None, "answer": json.dumps(["true"]), "marks": 2},
                    {"id": "q-4", "type": "multiple-choice", "text": "Pick 4", "options": json.dumps(["3", "4"]), "answer": json.dumps(["4"]), "marks": 3},
                ],
            },
        }
        self.assignments = {
            "as-1": {"id": "as-1", "userId": "u-1", "testTemplateId": "tpl-1", "assignedBy": "admin-1", "assignedAt": _now(), "status": "assigned"},
            "as-2": {"id": "as-2", "userId": "u-1", "testTemplateId": "tpl-2", "assignedBy": "admin-1", "assignedAt": _now(), "status": "in-progress"},
        }
        self.flat_tests = {
            "legacy-1": {"id": "legacy-1", "title": "Legacy Test", "description": "Old shape", "duration": 15, "questions": [
                {"id": "q-9", "type": "boolean", "text": "Old?", "points": 1},
            ]},
        }
        self.attempts: Dict[str, dict] = {}
        self.submissions: List[dict] = []
        self.calls: List[tuple] = []
        self.revoked: set = set()
        self.fail_submit = False
        self.fail_complete = False

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.endswith(suffix))

    def assignment_view(self, assignment_id: str) -> dict:
        a = deepcopy(self.assignments[assignment_id])
        a["testTemplate"] = deepcopy(self.templates[a["testTemplateId"]])
        return a

class Responses(BaseModel):
    responses: List[dict]

class Credentials(BaseModel):
    email: str
    password: str

class NewUser(BaseModel):
    email: str
    password: str
    firstName: str
    lastName: str
    department: Optional[str] = None

class AssignIn(BaseModel):
    userId: str
    testTemplateId: str
    assignedBy: str
    dueDate: Optional[str] = None

class MarkIn(BaseModel):
    score: float
    approved: bool = False
    feedback: Optional[str] = None

def create_app(store: Store) -> FastAPI:
    def record(request: Request):
        store.calls.append((request.method, request.url.path))

    def current_user(authorization: Optional[str] = Header(None)) -> dict:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(401, "Unauthorized")
        token = authorization.split(" ", 1)[1]
        if token in store.revoked:
            raise HTTPException(401, "Token revoked")
        try:
            payload = jwt.decode(token, SECRET, algorithms=["HS256"])
        except jwt.PyJWTError:
            raise HTTPException(401, "Invalid or expired token")
        return store.users[payload["sub"]]

    def require_admin(user: dict = Depends(current_user)) -> dict:
        if user["role"] != "admin":
            raise HTTPException(403, "Insufficient role")
        return user

    def own_assignment(test_id: str, user: dict) -> dict:
        a = store.assignments.get(test_id)
        if not a or a["userId"] != user["id"]:
            raise HTTPException(404, "Test not found")
        return a

    auth = APIRouter()

    @auth.post("/login")
    def login(payload: Credentials):
        user = next((u for u in store.users.values() if u["email"] == payload.email), None)
        if not user or user["password"] != payload.password:
            raise HTTPException(401, "Invalid credentials")
        public = {k: v for k, v in user.items() if k != "password"}
        return {"message": "Login successful", "data": {"access_token": create_token(user["id"], [user["role"]]), "user": public}}

    @auth.post("/register", status_code=201)
    def register(payload: NewUser):
        if any(u["email"] == payload.email for u in store.users.values()):
            raise HTTPException(409, "Email already registered")
        user_id = f"u-{len(store.users) + 1}"
        store.users[user_id] = {"id": user_id, "role": "user", **payload.model_dump()}
        return {"message": "User registered", "data": {k: v for k, v in store.users[user_id].items() if k != "password"}}

    @auth.post("/logout")
    def logout(authorization: Optional[str] = Header(None), user: dict = Depends(current_user)):
        store.revoked.add(authorization.split(" ", 1)[1])
        return {"message": "Logged out"}

    @auth.post("/refresh")
    def refresh(user: dict = Depends(current_user)):
        return {"data": {"access_token": create_token(user["id"], [user["role"]], ttl_minutes=240)}}

    user_router = APIRouter()

    @user_router.get("/profile")
    def profile(user: dict = Depends(current_user)):
        return {"data": {k: v for k, v in user.items() if k != "password"}}

    @user_router.get("/assigned-tests")
    def assigned_tests(user: dict = Depends(current_user)):
        return {"data": [store.assignment_view(a["id"]) for a in store.assignments.values() if a["userId"] == user["id"]]}

    @user_router.get("/test/{test_id}")
    def get_test(test_id: str, user: dict = Depends(current_user)):
        own_assignment(test_id, user)
        return {"message": "Test fetched successfully", "data": store.assignment_view(test_id)}

    @user_router.get("/tests/{test_id}")
    def get_test_plural(test_id: str, user: dict = Depends(current_user)):
        if test_id in store.flat_tests:
            return deepcopy(store.flat_tests[test_id])
        own_assignment(test_id, user)
        return store.assignment_view(test_id)

    @user_router.post("/test/{test_id}/start")
    def start(test_id: str, user: dict = Depends(current_user)):
        a = own_assignment(test_id, user)
        if a["status"] != "assigned":
            raise HTTPException(400, "Test already started. Current status: started")
        a["status"] = "in-progress"
        store.attempts[f"at-{test_id}"] = {
            "id": f"at-{test_id}", "assignmentId": test_id, "userId": user["id"], "testTemplateId": a["testTemplateId"],
            "startedAt": _now(), "submittedAt": None, "status": "started", "answers": [], "score": None, "approved": None,
        }
        return {"message": "Test started", "data": {"attemptId": f"at-{test_id}"}}

    @user_router.post("/test/{test_id}/submit")
    def submit(test_id: str, payload: Responses, user: dict = Depends(current_user)):
        own_assignment(test_id, user)
        if store.fail_submit:
            raise HTTPException(500, "Database unavailable")
        attempt = store.attempts.setdefault(f"at-{test_id}", {
            "id": f"at-{test_id}", "assignmentId": test_id, "userId": user["id"],
            "testTemplateId": store.assignments[test_id]["testTemplateId"], "startedAt": _now(), "score": None, "approved": None,
        })
        store.submissions.append(payload.model_dump())
        attempt.update(answers=payload.responses, status="submitted", submittedAt=_now())
        return {"message": "Answers submitted successfully", "data": {"attemptId": attempt["id"], "status": "submitted", "answeredQuestions": len(payload.responses)}}

    @user_router.post("/test/{test_id}/complete")
    def complete(test_id: str, user: dict = Depends(current_user)):
        a = own_assignment(test_id, user)
        if store.fail_complete:
            raise HTTPException(500, "Could not complete")
        a["status"] = "completed"
        return {"message": "Test completed"}

    @user_router.get("/test/{test_id}/submitted")
    def submitted(test_id: str, user: dict = Depends(current_user)):
        a = own_assignment(test_id, user)
        attempt = store.attempts.get(f"at-{test_id}")
        if not attempt or attempt.get("status") == "started":
            raise HTTPException(404, "No submitted attempt")
        template = store.templates[a["testTemplateId"]]
        answers = {r["questionId"]: r["answer"] for r in attempt["answers"]}
        questions = [
            {"id": q["id"], "type": q["type"], "text": q["text"], "options": q["options"], "marks": q["marks"],
             "correctAnswer": q["answer"], "submittedAnswer": answers.get(q["id"], "")}
            for q in template["questions"]
        ]
        return {"data": {
            "id": attempt["id"], "testTemplate": {k: template[k] for k in ("id", "name", "category", "timeLimit")},
            "submittedAt": attempt["submittedAt"], "startedAt": attempt["startedAt"], "status": attempt["status"],
            "score": attempt["score"], "approved": attempt["approved"],
            "assignment": {"assignedAt": a["assignedAt"], "assignedBy": a["assignedBy"]},
            "questions": questions, "totalQuestions": len(questions), "answeredQuestions": len(answers),
        }}

    @user_router.get("/results")
    def results(user: dict = Depends(current_user)):
        rows = []
        for attempt in store.attempts.values():
            if attempt["userId"] != user["id"] or attempt.get("score") is None:
                continue
            template = store.templates[attempt["testTemplateId"]]
            rows.append({"id": attempt["id"], "testId": attempt["assignmentId"], "score": attempt["score"],
                         "totalPoints": sum(q["marks"] for q in template["questions"]), "timeSpent": 20,
                         "status": attempt["status"], "percentage": 999})
        return {"data": rows}

    @user_router.get("/results/{attempt_id}/detailed-review")
    def detailed_review(attempt_id: str, user: dict = Depends(current_user)):
        attempt = store.attempts.get(attempt_id)
        if not attempt or attempt["userId"] != user["id"]:
            raise HTTPException(404, "Result not found")
        template = store.templates[attempt["testTemplateId"]]
        answers = {r["questionId"]: r["answer"] for r in attempt["answers"]}
        results = [
            {"questionId": q["id"], "text": q["text"], "type": q["type"], "userAnswer": answers.get(q["id"]),
             "correctAnswer": q["answer"], "pointsAwarded": q["marks"] if answers.get(q["id"]) in json.loads(q["answer"]) else 0,
             "maxPoints": q["marks"]}
            for q in template["questions"]
        ]
        return {"data": {"breakdown": {"questionResults": results, "statistics": {
            "totalQuestions": len(results), "answeredQuestions": len(answers),
            "totalScore": sum(r["pointsAwarded"] for r in results), "maxScore": sum(r["maxPoints"] for r in results),
        }}}}

    @user_router.get("/submitted-tests")
    def submitted_tests(user: dict = Depends(current_user)):
        return {"data": [a for a in store.attempts.values() if a["userId"] == user["id"] and a.get("status") != "started"]}

    admin = APIRouter(dependencies=[Depends(require_admin)])

    @admin.get("/test-templates")
    def templates():
        return {"data": list(store.templates.values())}

    @admin.get("/test-templates/{template_id}")
    def template(template_id: str):
        if template_id not in store.templates:
            raise HTTPException(404, "Template not found")
        return {"data": store.templates[template_id]}

    @admin.get("/users")
    def users():
        return {"data": [{k: v for k, v in u.items() if k != "password"} for u in store.users.values()]}

    @admin.get("/users/{user_id}/assignments")
    def user_assignments(user_id: str):
        return {"data": [store.assignment_view(a["id"]) for a in store.assignments.values() if a["userId"] == user_id]}

    @admin.post("/assign-test")
    def assign_test(payload: AssignIn):
        if payload.testTemplateId not in store.templates or payload.userId not in store.users:
            raise HTTPException(404, "User or template not found")
        new_id = f"as-{len(store.assignments) + 1}"
        store.assignments[new_id] = {"id": new_id, "userId": payload.userId, "testTemplateId": payload.testTemplateId,
                                     "assignedBy": payload.assignedBy, "assignedAt": _now(), "dueDate": payload.dueDate, "status": "assigned"}
        return {"message": "Template assigned", "data": store.assignments[new_id]}

    @admin.get("/attempts/review/{attempt_id}")
    def attempt_for_review(attempt_id: str):
        attempt = store.attempts.get(attempt_id)
        if not attempt:
            raise HTTPException(404, "Attempt not found")
        body = {k: v for k, v in attempt.items() if k != "answers"}
        body["parsedAnswers"] = {r["questionId"]: r["answer"] for r in attempt["answers"]}
        body["assignment"] = store.assignment_view(attempt["assignmentId"])
        return {"data": body}

    @admin.get("/attempts/{template_id}")
    def template_attempts(template_id: str):
        return {"data": [a for a in store.attempts.values() if a["testTemplateId"] == template_id and a.get("status") != "started"]}

    @admin.put("/attempts/{attempt_id}/mark")
    def mark(attempt_id: str, payload: MarkIn, user: dict = Depends(require_admin)):
        attempt = store.attempts.get(attempt_id)
        if not attempt:
            raise HTTPException(404, "Attempt not found")
        total = sum(q["marks"] for q in store.templates[attempt["testTemplateId"]]["questions"])
        if payload.score < 0 or payload.score > total:
            raise HTTPException(400, f"Score must be between 0 and {total}")
        attempt.update(score=payload.score, approved=payload.approved, feedback=payload.feedback,
                       reviewedBy=user["id"], status="approved" if payload.approved else "marked")
        return {"message": "Attempt marked", "data": attempt}

    app = FastAPI(title="Aptitude fake backend", dependencies=[Depends(record)])
    app.include_router(auth, prefix="/api/auth")
    app.include_router(user_router, prefix="/api/user")
    app.include_router(admin, prefix="/api/admin")
    return app
