"""
Chat Router
Conversations with the Gnosis AI tutor
"""

import logging
import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.chat import ai_service
from gnosis.chat.models import ChatMessageRequest
from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_current_user
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

TITLE_LENGTH = 50
PREVIEW_LENGTH = 300


# ==================== HELPER FUNCTIONS ====================

def chat_title(message: str) -> str:
    return message[:TITLE_LENGTH] + "..." if len(message) > TITLE_LENGTH else message


def chat_preview(messages: list[dict]) -> str:
    if not messages:
        return "No messages"
    content = messages[-1].get("content", "")
    flat = re.sub(r"\s+", " ", content).strip()
    return flat[:PREVIEW_LENGTH] + ("..." if len(content) > PREVIEW_LENGTH else "")


def _message(role: str, content: str) -> dict:
    return {"role": role, "content": content, "timestamp": datetime.utcnow()}


def _chat_view(chat: dict, with_count: bool = False) -> dict:
    view = {
        "id": chat["_id"],
        "title": chat.get("title"),
        "messages": chat.get("messages", []),
        "createdAt": chat.get("createdAt"),
        "lastMessageAt": chat.get("lastMessageAt"),
    }
    if with_count:
        view["messageCount"] = len(view["messages"])
    return view


async def _get_chat_or_404(db: AsyncIOMotorDatabase, chat_id: str, user_id) -> dict:
    chat = await db.chats.find_one({"_id": to_object_id(chat_id, "chat"), "userId": user_id, "isActive": True})
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


# ==================== PROVIDER CHECKS ====================

@router.get("/test-gemini")
async def test_gemini(user: dict = Depends(get_current_user)):
    try:
        reply = await ai_service.generate_gemini_text("Say hello in one short sentence.")
    except Exception as e:
        logger.error(f"❌ Gemini test failed: {e}")
        raise HTTPException(status_code=500, detail=f"Gemini API test failed: {e}")
    return success_response("Gemini API is working", {"response": reply})


@router.get("/test-openai")
async def test_openai(user: dict = Depends(get_current_user)):
    try:
        reply = await ai_service.generate_openai_text("Say hello in one short sentence.")
    except Exception as e:
        logger.error(f"❌ OpenAI test failed: {e}")
        raise HTTPException(status_code=500, detail=f"OpenAI API test failed: {e}")
    return success_response("OpenAI API is working", {"response": reply})


# ==================== CONVERSATIONS ====================

@router.get("/recent")
async def recent_chats(
    limit: int = Query(10, ge=1, le=50),
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    cursor = db.chats.find({"userId": user["_id"], "isActive": True}).sort("lastMessageAt", DESCENDING).limit(limit)
    chats = await cursor.to_list(length=limit)
    formatted = []
    for chat in chats:
        messages = chat.get("messages", [])
        formatted.append({
            "id": chat["_id"],
            "title": chat.get("title"),
            "lastMessageAt": chat.get("lastMessageAt"),
            "messageCount": len(messages),
            "createdAt": chat.get("createdAt"),
            "preview": chat_preview(messages),
            "lastMessage": messages[-1].get("content") if messages else None,
        })
    return success_response("Recent chats retrieved successfully", {"chats": formatted, "total": len(formatted)})


@router.post("/new")
async def new_chat(
    data: ChatMessageRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    reply = await ai_service.tutor_reply(data.message)
    now = datetime.utcnow()
    chat = {
        "userId": user["_id"],
        "title": chat_title(data.message),
        "messages": [_message("user", data.message), _message("assistant", reply)],
        "lastMessageAt": now,
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db.chats.insert_one(chat)
    chat["_id"] = result.inserted_id
    return success_response("New chat created successfully", {"chat": _chat_view(chat)}, 201)


@router.post("/{chat_id}/message")
async def send_message(
    chat_id: str,
    data: ChatMessageRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    chat = await _get_chat_or_404(db, chat_id, user["_id"])
    user_message = _message("user", data.message)
    history = chat.get("messages", []) + [user_message]

    reply = await ai_service.tutor_reply(data.message, history)
    assistant_message = _message("assistant", reply)
    now = datetime.utcnow()
    await db.chats.update_one(
        {"_id": chat["_id"]},
        {
            "$push": {"messages": {"$each": [user_message, assistant_message]}},
            "$set": {"lastMessageAt": now, "updatedAt": now},
        }
    )
    chat["messages"] = history + [assistant_message]
    chat["lastMessageAt"] = now
    return success_response("Message sent successfully", {"chat": _chat_view(chat)})


@router.get("/{chat_id}")
async def get_chat(chat_id: str, user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    chat = await _get_chat_or_404(db, chat_id, user["_id"])
    return success_response("Chat retrieved successfully", {"chat": _chat_view(chat, with_count=True)})


@router.delete("/{chat_id}")
async def delete_chat(chat_id: str, user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    chat = await _get_chat_or_404(db, chat_id, user["_id"])
    await db.chats.update_one({"_id": chat["_id"]}, {"$set": {"isActive": False, "updatedAt": datetime.utcnow()}})
    return success_response("Chat deleted successfully")
