import pytest

from gnosis.community import about_us_router

MISSION = {"section": "our_mission", "title": "Our Mission", "content": "Help every student learn.", "order": 2}
TEAM = {"section": "meet_our_team", "title": "Team", "content": "The people behind Gnosis", "order": 1}


def test_upsert_creates_then_updates(client, as_admin):
    created = client.post("/api/about-us/", json=MISSION)
    assert created.status_code == 201
    assert created.json()["message"] == "About Us section created successfully"

    updated = client.post("/api/about-us/", json={**MISSION, "title": "Mission"})
    assert updated.status_code == 200
    assert updated.json()["data"]["section"]["title"] == "Mission"


def test_upsert_requires_core_fields(client, as_admin):
    response = client.post("/api/about-us/", json={"section": "our_vision", "title": "Vision"})
    assert response.status_code == 400
    assert response.json()["message"] == "Section, title, and content are required"


def test_unknown_section_name_is_rejected(client, as_admin):
    response = client.post("/api/about-us/", json={**MISSION, "section": "our_secrets"})
    assert response.status_code == 400


def test_public_reads_are_ordered_and_keyed(client, auth, admin):
    auth["user"] = admin
    client.post("/api/about-us/", json=MISSION)
    client.post("/api/about-us/", json=TEAM)
    auth["user"] = None

    sections = client.get("/api/about-us/").json()["data"]["sections"]
    assert [s["section"] for s in sections] == ["meet_our_team", "our_mission"]

    page = client.get("/api/about-us/page-data").json()["data"]["pageData"]
    assert page["ourMission"]["title"] == "Our Mission"
    assert page["ourVision"] is None

    assert client.get("/api/about-us/our_vision").status_code == 404


def test_inactive_section_is_hidden(client, as_admin):
    client.post("/api/about-us/", json=MISSION)
    client.put("/api/about-us/our_mission", json={"isActive": False})
    assert client.get("/api/about-us/our_mission").status_code == 404


def test_team_member_lifecycle(client, as_admin):
    client.post("/api/about-us/", json=TEAM)

    added = client.post("/api/about-us/meet_our_team/team-members", json={"name": "Grace", "role": "Teacher"})
    assert added.status_code == 200
    member_id = added.json()["data"]["teamMember"]["_id"]

    updated = client.put(f"/api/about-us/meet_our_team/team-members/{member_id}", json={"bio": "Loves maths"})
    assert updated.json()["data"]["teamMember"] == {
        "_id": member_id, "name": "Grace", "role": "Teacher", "image": None, "bio": "Loves maths",
    }

    assert client.delete(f"/api/about-us/meet_our_team/team-members/{member_id}").status_code == 200
    missing = client.delete(f"/api/about-us/meet_our_team/team-members/{member_id}")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Team member not found"


def test_team_member_requires_name_and_role(client, as_admin):
    client.post("/api/about-us/", json=TEAM)
    response = client.post("/api/about-us/meet_our_team/team-members", json={"name": " ", "role": "Teacher"})
    assert response.status_code == 400


def test_writes_require_admin(client, as_student):
    assert client.post("/api/about-us/", json=MISSION).status_code == 403


@pytest.fixture
def fake_upload(monkeypatch):
    calls = []

    async def upload(file, folder):
        calls.append(folder)
        return {"url": "https://res.cloudinary.com/demo/image/upload/v1/gnosis/team-members/grace/a.png",
                "publicId": "gnosis/team-members/grace/a"}

    async def destroy(url):
        return True

    monkeypatch.setattr(about_us_router, "upload_image", upload)
    monkeypatch.setattr(about_us_router, "destroy_image", destroy)
    return calls


def test_upload_image_attaches_to_member(client, as_admin, fake_upload):
    client.post("/api/about-us/", json=TEAM)
    member = client.post(
        "/api/about-us/meet_our_team/team-members", json={"name": "Grace Hopper", "role": "Teacher"}
    ).json()["data"]["teamMember"]

    response = client.post(
        "/api/about-us/upload-image",
        data={"name": "Grace Hopper", "section": "meet_our_team", "memberId": member["_id"]},
        files={"image": ("a.png", b"\x89PNG", "image/png")},
    )
    assert response.status_code == 200
    assert fake_upload == ["gnosis/team-members/grace-hopper"]

    section = client.get("/api/about-us/meet_our_team").json()["data"]["section"]
    assert section["teamMembers"][0]["image"].startswith("https://res.cloudinary.com/")
