from tests.conftest import make_user, run

REVIEW = {"rating": 5, "title": "Great tutor", "comment": "Explains every step very clearly."}


def _submit(client, admin):
    response = client.post("/api/reviews/", json={**REVIEW, "adminId": str(admin["_id"])})
    assert response.status_code == 201
    return response.json()["data"]["review"]


def test_student_submits_review_for_admin(client, admin, as_student):
    review = _submit(client, admin)
    assert review["status"] == "pending"
    assert review["adminId"]["firstName"] == "Ada"
    assert review["studentId"]["firstName"] == "Sam"


def test_review_target_must_be_admin(client, db, as_student):
    other = make_user(db, "peer@gnosis.test", role="student")
    response = client.post("/api/reviews/", json={**REVIEW, "adminId": str(other["_id"])})
    assert response.status_code == 400
    assert response.json()["message"] == "Selected user is not an admin"


def test_unknown_admin(client, as_student):
    response = client.post("/api/reviews/", json={**REVIEW, "adminId": "64b000000000000000000000"})
    assert response.status_code == 404
    assert response.json()["message"] == "Admin not found"


def test_review_validation(client, admin, as_student):
    response = client.post("/api/reviews/", json={**REVIEW, "rating": 6, "adminId": str(admin["_id"])})
    assert response.status_code == 400
    assert response.json()["errors"][0]["msg"] == "Rating must be between 1 and 5"

    response = client.post("/api/reviews/", json={**REVIEW, "comment": "short", "adminId": str(admin["_id"])})
    assert response.status_code == 400


def test_admin_cannot_submit_reviews(client, as_admin):
    response = client.post("/api/reviews/", json={**REVIEW, "adminId": str(as_admin["_id"])})
    assert response.status_code == 403


def test_approve_then_reprocess_is_rejected(client, auth, admin, student):
    auth["user"] = student
    review = _submit(client, admin)

    auth["user"] = admin
    approved = client.patch(f"/api/reviews/{review['_id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["data"]["review"]["status"] == "approved"

    again = client.patch(f"/api/reviews/{review['_id']}/decline")
    assert again.status_code == 400
    assert again.json()["message"] == "Review has already been processed"


def test_only_assigned_admin_may_decide(client, db, auth, admin, student):
    auth["user"] = student
    review = _submit(client, admin)

    auth["user"] = make_user(db, "other-admin@gnosis.test", role="admin")
    response = client.patch(f"/api/reviews/{review['_id']}/approve")
    assert response.status_code == 403
    assert response.json()["message"] == "You can only approve reviews assigned to you"


def test_counts_and_status_listing(client, db, auth, admin, student):
    auth["user"] = student
    first = _submit(client, admin)
    _submit(client, admin)

    auth["user"] = admin
    client.patch(f"/api/reviews/{first['_id']}/decline")

    counts = client.get("/api/reviews/counts").json()["data"]["counts"]
    assert counts == {"pending": 1, "approved": 0, "declined": 1, "total": 2}

    declined = client.get("/api/reviews/status/declined").json()
    assert declined["message"] == "Declined reviews retrieved successfully"
    assert declined["data"]["pagination"]["totalReviews"] == 1

    bad = client.get("/api/reviews/status/archived")
    assert bad.status_code == 400
    assert bad.json()["message"] == "Invalid status. Must be one of: pending, approved, declined"

    combined = client.get("/api/reviews/count").json()["data"]
    assert combined["currentStatus"] == "pending"
    assert len(combined["reviews"]) == 1
    assert combined["counts"]["total"] == 2


def test_student_sees_own_reviews_and_admin_list(client, admin, as_student):
    _submit(client, admin)
    mine = client.get("/api/reviews/my-reviews").json()["data"]
    assert mine["pagination"]["totalReviews"] == 1

    admins = client.get("/api/reviews/admins").json()["data"]["admins"]
    assert [a["firstName"] for a in admins] == ["Ada"]
    assert "password" not in admins[0]


def test_declined_at_is_recorded(client, db, auth, admin, student):
    auth["user"] = student
    review = _submit(client, admin)
    auth["user"] = admin
    client.patch(f"/api/reviews/{review['_id']}/decline")
    stored = run(db.reviews.find_one({}))
    assert stored["status"] == "declined"
    assert stored["declinedAt"] is not None
