from gnosis.packets.database import calculate_progress, is_packet_completed, score_answers, validate_packet_questions
from tests.conftest import run


def _questions(n=2):
    return [
        {
            "questionText": f"Question {i}",
            "options": ["A", "B", "C", "D"],
            "correctAnswer": "A",
            "reasonForCorrectAnswer": "Because A",
        }
        for i in range(n)
    ]


PACKET = {
    "packetTitle": "Fractions",
    "packetDescription": "Warm-up",
    "subjectCategory": "Maths",
    "category": "Numbers",
    "difficultyLevel": "Beginner",
    "questions": _questions(),
}


def test_calculate_progress_states():
    assert calculate_progress([])["status"] == "empty"
    assert calculate_progress([1, 2], [1]) == {
        "current": 1, "max": 2, "percentage": 50, "isComplete": False, "status": "incomplete",
    }
    assert calculate_progress([1, 2], [1, 2])["status"] == "complete"


def test_validate_packet_questions():
    assert validate_packet_questions([]) == "A question packet must contain at least 1 question"
    bad = _questions(1)
    bad[0]["options"] = ["A", "B"]
    assert validate_packet_questions(bad) == "Question 1 must have exactly 4 options"
    assert validate_packet_questions(_questions()) is None


def test_score_answers_completes_only_when_all_correct():
    scored = score_answers(_questions(), ["A", "B"])
    assert scored["correctAnswers"] == 1
    assert scored["score"] == 50
    assert scored["isCompleted"] is False
    assert score_answers(_questions(), ["A", "A"])["isCompleted"] is True


def _create(client):
    response = client.post("/api/questionPacket/create", json=PACKET)
    assert response.status_code == 201
    return response.json()["data"]


def test_create_packet_sets_question_count(client, as_admin):
    packet = _create(client)
    assert packet["numberOfQuestions"] == 2
    assert packet["status"] == "Active"
    assert packet["progress"]["status"] == "empty"


def test_create_packet_requires_four_options(client, as_admin):
    questions = _questions(1)
    questions[0]["options"] = ["A", "B", "C"]
    response = client.post("/api/questionPacket/create", json={**PACKET, "questions": questions})
    assert response.status_code == 400


def test_save_draft_skips_question_validation(client, as_admin):
    response = client.post("/api/questionPacket/save-draft", json={**PACKET, "questions": []})
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "Draft"


def test_subject_alias_filter(client, auth, admin, student):
    auth["user"] = admin
    _create(client)
    auth["user"] = student
    packets = client.get("/api/questionPacket/", params={"subject": "Math"}).json()["data"]
    assert len(packets) == 1
    assert packets[0]["subjectCategory"] == "Maths"
    assert client.get("/api/questionPacket/", params={"subject": "Reading & Writing"}).json()["data"] == []


def test_submit_answers_counts_must_match(client, auth, admin, student):
    auth["user"] = admin
    packet = _create(client)
    auth["user"] = student
    response = client.post(f"/api/questionPacket/{packet['_id']}/submit-answers", json={"answers": ["A"]})
    assert response.status_code == 400
    assert response.json()["message"] == "You must answer all 2 questions"


def test_answer_question_tracks_progress(client, auth, admin, student):
    auth["user"] = admin
    packet = _create(client)
    auth["user"] = student

    first = client.post(
        f"/api/questionPacket/{packet['_id']}/answer-question", json={"questionIndex": 0, "userAnswer": "A"}
    ).json()["data"]
    assert first["isCorrect"] is True
    assert first["progress"]["isCompleted"] is False

    second = client.post(
        f"/api/questionPacket/{packet['_id']}/answer-question", json={"questionIndex": 1, "userAnswer": "C"}
    ).json()["data"]
    assert second["progress"] == {"answered": 2, "total": 2, "correct": 1, "isCompleted": False, "score": 50}

    progress = client.get(f"/api/questionPacket/{packet['_id']}/progress").json()["data"]["progress"]
    assert progress["answered"] == 2
    assert progress["isCompleted"] is False
    assert progress["allCorrect"] is False


def test_answer_question_rejects_bad_index(client, auth, admin, student):
    auth["user"] = admin
    packet = _create(client)
    auth["user"] = student
    response = client.post(
        f"/api/questionPacket/{packet['_id']}/answer-question", json={"questionIndex": 5, "userAnswer": "A"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid question index"


def test_unknown_packet_is_404(client, as_student):
    response = client.get("/api/questionPacket/64b000000000000000000000")
    assert response.status_code == 404
    assert response.json()["message"] == "Question packet not found"


def test_packet_with_wrong_answers_is_not_completed(client, db, auth, admin, student):
    auth["user"] = admin
    packet = client.post("/api/questionPacket/create", json={**PACKET, "questions": _questions(1)}).json()["data"]
    auth["user"] = student

    wrong = client.post(
        f"/api/questionPacket/{packet['_id']}/answer-question", json={"questionIndex": 0, "userAnswer": "B"}
    ).json()["data"]
    assert wrong["progress"]["isCompleted"] is False
    assert wrong["progress"]["score"] == 0
    assert client.get("/api/profile/").json()["data"]["user"]["overallLevel"] == 0

    right = client.post(
        f"/api/questionPacket/{packet['_id']}/answer-question", json={"questionIndex": 0, "userAnswer": "A"}
    ).json()["data"]
    assert right["progress"]["isCompleted"] is True
    stored = run(db.question_packet_answers.find_one({"userId": student["_id"]}))
    assert stored["completedAt"] is not None


def test_is_packet_completed_requires_every_answer_correct():
    assert is_packet_completed([{"isCorrect": True}], 1) is True
    assert is_packet_completed([{"isCorrect": False}], 1) is False
    assert is_packet_completed([{"isCorrect": True}], 2) is False
    assert is_packet_completed([], 0) is False
