"""
About Us Router
Marketing page sections (public reads, admin writes) and team members.
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from gnosis.community.models import (
    PAGE_DATA_KEYS,
    AboutUsSection,
    SectionUpdate,
    SectionUpsert,
    TeamMember,
    TeamMemberUpdate,
)
from gnosis.core.database import get_db, maybe_object_id
from gnosis.core.dependencies import require_admin
from gnosis.core.responses import success_response
from gnosis.core.uploads import destroy_image, slugify, upload_image

logger = logging.getLogger(__name__)

router = APIRouter(tags=["About Us"])

SECTION_NOT_FOUND = "About Us section not found"


# ==================== HELPER FUNCTIONS ====================

def with_member_ids(members: list[dict]) -> list[dict]:
    """Team members are addressed by their own ObjectId"""
    return [{"_id": m.get("_id") or ObjectId(), **{k: v for k, v in m.items() if k != "_id"}} for m in members]


async def get_section_or_404(db: AsyncIOMotorDatabase, section: str) -> dict:
    doc = await db.about_us.find_one({"section": section})
    if not doc:
        raise HTTPException(status_code=404, detail=SECTION_NOT_FOUND)
    return doc


def find_member(doc: dict, member_id: str) -> int:
    oid = maybe_object_id(member_id)
    for index, member in enumerate(doc.get("teamMembers", [])):
        if oid is not None and member.get("_id") == oid:
            return index
    raise HTTPException(status_code=404, detail="Team member not found")


async def _save_members(db: AsyncIOMotorDatabase, doc: dict) -> None:
    await db.about_us.update_one(
        {"_id": doc["_id"]},
        {"$set": {"teamMembers": doc["teamMembers"], "updatedAt": datetime.utcnow()}},
    )


# ==================== PUBLIC ENDPOINTS ====================

@router.get("/")
async def list_sections(db: AsyncIOMotorDatabase = Depends(get_db)):
    sections = await db.about_us.find({"isActive": True}).sort("order", ASCENDING).to_list(length=None)
    return success_response("About Us sections retrieved successfully", {"sections": sections})


@router.get("/page-data")
async def page_data(db: AsyncIOMotorDatabase = Depends(get_db)):
    sections = await db.about_us.find({"isActive": True}).sort("order", ASCENDING).to_list(length=None)
    by_section = {s["section"]: s for s in sections}
    data = {key: by_section.get(section) for section, key in PAGE_DATA_KEYS.items()}
    return success_response("About Us page data retrieved successfully", {"pageData": data})


@router.get("/{section}")
async def get_section(section: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    doc = await db.about_us.find_one({"section": section, "isActive": True})
    if not doc:
        raise HTTPException(status_code=404, detail=SECTION_NOT_FOUND)
    return success_response("About Us section retrieved successfully", {"section": doc})


# ==================== ADMIN ENDPOINTS ====================

@router.post("/upload-image")
async def upload_team_member_image(
    name: str = Form(...),
    image: UploadFile = File(...),
    section: Optional[AboutUsSection] = Form(None),
    memberId: Optional[str] = Form(None),
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Upload a team photo; when section and memberId are sent the member's image is replaced too"""
    uploaded = await upload_image(image, folder=f"gnosis/team-members/{slugify(name)}")

    if section and memberId:
        doc = await get_section_or_404(db, section.value)
        index = find_member(doc, memberId)
        previous = doc["teamMembers"][index].get("image")
        doc["teamMembers"][index]["image"] = uploaded["url"]
        await _save_members(db, doc)
        if previous:
            await destroy_image(previous)

    return success_response("Team member image uploaded successfully", {
        "imageUrl": uploaded["url"],
        "publicId": uploaded["publicId"],
    })


@router.post("/")
async def upsert_section(
    data: SectionUpsert,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.section or not data.title or not data.content:
        raise HTTPException(status_code=400, detail="Section, title, and content are required")

    payload = data.model_dump(mode="json")
    payload["teamMembers"] = with_member_ids(payload["teamMembers"])
    now = datetime.utcnow()

    existing = await db.about_us.find_one({"section": payload["section"]})
    if existing:
        payload["order"] = data.order or existing.get("order", 0)
        payload["updatedAt"] = now
        await db.about_us.update_one({"_id": existing["_id"]}, {"$set": payload})
        existing.update(payload)
        return success_response("About Us section updated successfully", {"section": existing})

    payload.update({"order": data.order or 0, "isActive": True, "createdAt": now, "updatedAt": now})
    result = await db.about_us.insert_one(payload)
    payload["_id"] = result.inserted_id
    logger.info(f"✅ About Us section created: {payload['section']}")
    return success_response("About Us section created successfully", {"section": payload}, 201)


@router.put("/{section}")
async def update_section(
    section: str,
    data: SectionUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    doc = await get_section_or_404(db, section)
    updates = data.model_dump(exclude_none=True, mode="json")
    if "teamMembers" in updates:
        updates["teamMembers"] = with_member_ids(updates["teamMembers"])
    updates["updatedAt"] = datetime.utcnow()

    await db.about_us.update_one({"_id": doc["_id"]}, {"$set": updates})
    doc.update(updates)
    return success_response("About Us section updated successfully", {"section": doc})


@router.delete("/{section}")
async def delete_section(
    section: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    doc = await get_section_or_404(db, section)
    await db.about_us.delete_one({"_id": doc["_id"]})
    return success_response("About Us section deleted successfully")


# ==================== TEAM MEMBERS ====================

@router.post("/{section}/team-members")
async def add_team_member(
    section: str,
    data: TeamMember,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.name.strip() or not data.role.strip():
        raise HTTPException(status_code=400, detail="Name and role are required")

    doc = await get_section_or_404(db, section)
    member = {"_id": ObjectId(), **data.model_dump()}
    await db.about_us.update_one(
        {"_id": doc["_id"]},
        {"$push": {"teamMembers": member}, "$set": {"updatedAt": datetime.utcnow()}},
    )
    return success_response("Team member added successfully", {"teamMember": member})


@router.put("/{section}/team-members/{member_id}")
async def update_team_member(
    section: str,
    member_id: str,
    data: TeamMemberUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    doc = await get_section_or_404(db, section)
    index = find_member(doc, member_id)
    member = doc["teamMembers"][index]

    # empty name/role are ignored; image and bio may be cleared
    for field in ("name", "role"):
        if getattr(data, field):
            member[field] = getattr(data, field)
    for field in ("image", "bio"):
        if field in data.model_fields_set:
            member[field] = getattr(data, field)

    await _save_members(db, doc)
    return success_response("Team member updated successfully", {"teamMember": member})


@router.delete("/{section}/team-members/{member_id}")
async def delete_team_member(
    section: str,
    member_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    doc = await get_section_or_404(db, section)
    index = find_member(doc, member_id)
    removed = doc["teamMembers"].pop(index)
    await _save_members(db, doc)
    if removed.get("image"):
        await destroy_image(removed["image"])
    return success_response("Team member deleted successfully")
