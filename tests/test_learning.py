from datetime import datetime, timedelta

from tests.conftest import run


def _branch(client, name="Algebra", category="math"):
    response = client.post("/api/branches/", json={
        "name": name, "description": "Equations", "icon": "x", "category": category,
    })
    assert response.status_code == 201
    return response.json()["data"]["branch"]


def _question(client, branch_id, level=1, correct=1):
    response = client.post("/api/questions/", json={
        "branchId": branch_id,
        "level": level,
        "questionText": "2 + 2 = ?",
        "options": ["3", "4", "5"],
        "correctAnswerIndex": correct,
    })
    assert response.status_code == 201
    return response.json()["data"]["question"]


def _subscribe(db, user):
    now = datetime.utcnow()
    run(db.user_subscriptions.insert_one({
        "userId": user["_id"],
        "status": "active",
        "isTrialActive": False,
        "startDate": now,
        "endDate": now + timedelta(days=30),
    }))


def test_create_branch_requires_admin(client, as_student):
    response = client.post("/api/branches/", json={"name": "A", "description": "B", "icon": "c", "category": "math"})
    assert response.status_code == 403


def test_create_branch_validates_category(client, as_admin):
    response = client.post("/api/branches/", json={"name": "A", "description": "B", "icon": "c", "category": "art"})
    assert response.status_code == 400
    assert response.json()["message"] == 'Invalid category. Must be either "math" or "reading_writing"'


def test_duplicate_branch_name_in_category(client, as_admin):
    _branch(client)
    response = client.post("/api/branches/", json={
        "name": "Algebra", "description": "Again", "icon": "x", "category": "math",
    })
    assert response.status_code == 400


def test_list_branches_groups_by_category(client, as_admin):
    _branch(client, "Algebra", "math")
    _branch(client, "Grammar", "reading_writing")
    data = client.get("/api/branches/").json()["data"]
    assert [b["name"] for b in data["mathBranches"]] == ["Algebra"]
    assert [b["name"] for b in data["readingWritingBranches"]] == ["Grammar"]


def test_question_numbers_fill_first_free_slot(client, as_admin):
    branch = _branch(client)
    first = _question(client, branch["_id"])
    second = _question(client, branch["_id"])
    assert (first["questionNumber"], second["questionNumber"]) == (1, 2)
    assert first["options"][1]["isCorrect"] is True


def test_question_rejects_out_of_range_answer_index(client, as_admin):
    branch = _branch(client)
    response = client.post("/api/questions/", json={
        "branchId": branch["_id"], "level": 1, "questionText": "?", "options": ["a", "b"], "correctAnswerIndex": 5,
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Correct answer index must be within the options range"


def test_answering_requires_active_subscription(client, auth, admin, student):
    auth["user"] = admin
    branch = _branch(client)
    question = _question(client, branch["_id"])

    auth["user"] = student
    response = client.post(f"/api/questions/{question['_id']}/answer", json={"selectedOptionIndex": 1})
    assert response.status_code == 403
    body = response.json()
    assert body["requiresSubscription"] is True
    assert body["redirectTo"] == "/choose-plan"


def test_level_flow_completes_level_and_unlocks_next(client, db, auth, admin, student):
    auth["user"] = admin
    branch = _branch(client)
    question = _question(client, branch["_id"], level=1)
    _question(client, branch["_id"], level=2)

    auth["user"] = student
    locked = client.get(f"/api/levels/branch/{branch['_id']}/level/2")
    assert locked.status_code == 404

    play = client.get(f"/api/levels/branch/{branch['_id']}/level/1")
    assert play.status_code == 200
    assert play.json()["data"]["totalQuestions"] == 1

    response = client.post(f"/api/levels/question/{question['_id']}/answer", json={"selectedOptionIndex": 1})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["isCorrect"] is True
    assert data["levelCompleted"] is True
    assert data["currentLevel"] == 2

    assert client.get(f"/api/levels/branch/{branch['_id']}/level/2").status_code == 200


def test_question_answer_with_subscription(client, db, auth, admin, student):
    auth["user"] = admin
    branch = _branch(client)
    question = _question(client, branch["_id"])

    _subscribe(db, student)
    auth["user"] = student
    response = client.post(f"/api/questions/{question['_id']}/answer", json={"selectedOptionIndex": 0})
    assert response.status_code == 200
    assert response.json()["message"] == "Incorrect answer"


def test_bulk_reports_malformed_items_per_question(client, as_admin):
    branch = _branch(client)
    valid = {"branchId": branch["_id"], "level": 1, "questionText": "1 + 1 = ?", "options": ["1", "2"], "correctAnswerIndex": 1}
    response = client.post("/api/questions/bulk", json={"questions": [
        {**valid, "questionText": 5},
        {**valid, "points": "many"},
        valid,
    ]})
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["created"] == 1
    assert data["errors"] == [
        "Question 1: Question text must be a non-empty string",
        "Question 2: Points must be a number",
    ]


def test_update_question_validates_option_text(client, as_admin):
    branch = _branch(client)
    question = _question(client, branch["_id"])

    response = client.put(f"/api/questions/{question['_id']}", json={"options": [{"isCorrect": True}, "4"]})
    assert response.status_code == 400
    assert response.json()["message"] == "All options must be non-empty strings"

    response = client.put(f"/api/questions/{question['_id']}", json={"options": ["four", {"optionText": "4"}]})
    assert response.status_code == 200
    assert [o["optionText"] for o in response.json()["data"]["question"]["options"]] == ["four", "4"]
