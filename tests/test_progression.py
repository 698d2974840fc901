from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from gnosis.learning import progression
from tests.conftest import run


def test_lowest_uncompleted_level():
    assert progression.lowest_uncompleted_level([]) == 1
    assert progression.lowest_uncompleted_level([1, 2, 4]) == 3
    assert progression.lowest_uncompleted_level(list(range(1, 11))) == 10


def test_level_percentage():
    assert progression.level_percentage(0, 0) == 0
    assert progression.level_percentage(3, 4) == 75


def test_overall_level_thresholds():
    assert progression.overall_level(0, 10) == 0
    assert progression.overall_level(1, 0) == 1
    assert progression.overall_level(3, 0) == 2
    assert progression.overall_level(6, 2) == 3
    assert progression.overall_level(6, 3) == 4
    assert progression.overall_level(7, 9) == 6


def test_question_packets_do_not_count_below_level_three():
    assert progression.overall_level(2, 30) == 1


def test_next_level_requirement():
    assert progression.next_level_requirement(1, 1, 0) == {
        "type": "branches", "required": 3, "current": 1, "remaining": 2,
    }
    assert progression.next_level_requirement(3, 6, 4) == {
        "type": "question_packets", "required": 6, "current": 4, "remaining": 2,
    }


def _seed_level(db, branch, level, count):
    now = datetime.utcnow()
    questions = []
    for number in range(1, count + 1):
        question = {
            "branchId": branch["_id"],
            "level": level,
            "questionNumber": number,
            "questionText": f"Q{number}",
            "options": [{"optionText": "a", "isCorrect": True}, {"optionText": "b", "isCorrect": False}],
            "correctAnswerIndex": 0,
            "points": 10,
            "isActive": True,
            "createdAt": now,
        }
        question["_id"] = run(db.questions.insert_one(question)).inserted_id
        questions.append(question)
    return questions


def test_answering_every_question_completes_the_level(db, student):
    branch = {"name": "Algebra", "category": "math", "isActive": True}
    branch["_id"] = run(db.branches.insert_one(branch)).inserted_id
    questions = _seed_level(db, branch, 1, 2)

    first = run(progression.record_answer(db, student["_id"], questions[0], 0))
    assert first["isCorrect"] is True
    assert first["levelCompleted"] is False
    assert first["levelProgress"] == {"answered": 1, "total": 2, "percentage": 50}

    second = run(progression.record_answer(db, student["_id"], questions[1], 1))
    assert second["isCorrect"] is False
    assert second["levelCompleted"] is True
    assert second["userLevel"]["currentLevel"] == 2
    assert [c["level"] for c in second["userLevel"]["completedLevels"]] == [1]


def test_reanswering_does_not_complete_a_level_twice(db, student):
    branch = {"name": "Grammar", "category": "reading_writing", "isActive": True}
    branch["_id"] = run(db.branches.insert_one(branch)).inserted_id
    questions = _seed_level(db, branch, 1, 1)

    assert run(progression.record_answer(db, student["_id"], questions[0], 1))["levelCompleted"] is True
    again = run(progression.record_answer(db, student["_id"], questions[0], 0))
    assert again["isNewAnswer"] is False
    assert again["levelCompleted"] is False
    assert len(again["userLevel"]["completedLevels"]) == 1


def test_locked_level_is_rejected(db, student):
    branch = {"name": "Geometry", "category": "math", "isActive": True}
    branch["_id"] = run(db.branches.insert_one(branch)).inserted_id
    questions = _seed_level(db, branch, 3, 1)

    with pytest.raises(HTTPException) as exc:
        run(progression.record_answer(db, student["_id"], questions[0], 0))
    assert exc.value.status_code == 403


# ==================== ACHIEVEMENTS ====================

def _achievement(db, **fields):
    achievement = {
        "name": fields.pop("name", "Badge"),
        "description": "Earned by playing",
        "type": "level_completion",
        "branchId": None,
        "category": None,
        "isActive": True,
        "pointsReward": 50,
        "createdAt": datetime.utcnow(),
        **fields,
    }
    achievement["_id"] = run(db.achievements.insert_one(achievement)).inserted_id
    return achievement


def _math_branch(db, name="Algebra"):
    branch = {"name": name, "category": "math", "isActive": True}
    branch["_id"] = run(db.branches.insert_one(branch)).inserted_id
    return branch


def test_completing_a_level_unlocks_level_achievement(db, student):
    branch = _math_branch(db)
    badge = _achievement(db, name="First Steps", branchId=branch["_id"], requirements={"levelsCompleted": 1})
    _achievement(db, name="Marathon", branchId=branch["_id"], requirements={"levelsCompleted": 5})
    question = _seed_level(db, branch, 1, 1)[0]

    result = run(progression.record_answer(db, student["_id"], question, 0))
    assert [a["name"] for a in result["achievementsUnlocked"]] == ["First Steps"]

    earned = run(db.user_achievements.find_one({"achievementId": badge["_id"]}))
    assert earned["isCompleted"] is True
    assert earned["levelsCompleted"] == 1
    assert earned["pointsEarned"] == 50


def test_daily_goal_unlocks_and_resets_next_day(db, student):
    branch = _math_branch(db)
    goal = _achievement(db, name="Daily Two", type="daily", category="math", requirements={"questionsAnswered": 2})
    questions = _seed_level(db, branch, 1, 3)

    assert run(progression.record_answer(db, student["_id"], questions[0], 0))["achievementsUnlocked"] == []
    second = run(progression.record_answer(db, student["_id"], questions[1], 1))
    assert [a["name"] for a in second["achievementsUnlocked"]] == ["Daily Two"]

    yesterday = datetime.utcnow() - timedelta(days=1)
    run(db.user_achievements.update_one({"achievementId": goal["_id"]}, {"$set": {"lastResetDate": yesterday}}))

    unlocked = run(progression.check_daily_achievements(db, student["_id"], branch, True))
    assert unlocked == []
    record = run(db.user_achievements.find_one({"achievementId": goal["_id"]}))
    assert record["dailyProgress"] == 1
    assert record["isCompleted"] is False
    assert record["pointsEarned"] == 50


def test_yesterdays_daily_goal_is_not_completed_today(client, db, as_student):
    goal = _achievement(db, name="Daily Five", type="daily", category="math", requirements={"questionsAnswered": 5})
    run(db.user_achievements.insert_one({
        "userId": as_student["_id"],
        "achievementId": goal["_id"],
        "dailyProgress": 5,
        "isCompleted": True,
        "completedAt": datetime.utcnow() - timedelta(days=1),
        "lastResetDate": datetime.utcnow() - timedelta(days=1),
        "pointsEarned": 50,
    }))

    achievements = client.get("/api/achievements/").json()["data"]
    assert achievements[0]["progress"] == {"current": 0, "total": 5, "percentage": 0}
    assert achievements[0]["isCompleted"] is False
    assert achievements[0]["completedAt"] is None

    assert client.get("/api/achievements/completed").json()["data"] == []
    stats = client.get("/api/achievements/stats").json()["data"]
    assert stats["completedAchievements"] == 0
    assert stats["totalPointsEarned"] == 50
