"""
Gnosis AI tutor
Gemini replies for the chat module, OpenAI kept for connectivity checks
"""

import logging
from typing import Optional

import google.generativeai as genai
from openai import AsyncOpenAI

from gnosis.core.config import GEMINI_API_KEY, GEMINI_MODEL, OPENAI_API_KEY, OPENAI_MODEL

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10

FALLBACK_REPLY = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment."
)

SYSTEM_PERSONA = """You are Gnosis AI, an educational AI assistant that helps students with practice questions, explanations, and learning.

Your responses should be:
- Educational and helpful
- Clear and well-structured
- Encouraging and supportive
- Formatted nicely with proper numbering for lists
- Include tips when appropriate"""

if GEMINI_API_KEY:
    genai.configure(api_key=GEMINI_API_KEY)
else:
    logger.warning("⚠️ GEMINI_API_KEY is not set. Chat replies will use the fallback message.")


def build_prompt(user_message: str, history: Optional[list[dict]] = None) -> str:
    prompt = f"{SYSTEM_PERSONA}\n\nCurrent user message: {user_message}"
    if history:
        lines = [
            f"{'User' if msg.get('role') == 'user' else 'Assistant'}: {msg.get('content', '')}"
            for msg in history[-HISTORY_WINDOW:]
        ]
        prompt += "\n\nRecent conversation:\n" + "\n".join(lines)
    return prompt


async def generate_gemini_text(prompt: str) -> str:
    if not GEMINI_API_KEY:
        raise RuntimeError("GEMINI_API_KEY is not configured")
    model = genai.GenerativeModel(GEMINI_MODEL)
    response = await model.generate_content_async(prompt)
    return response.text.strip()


async def tutor_reply(user_message: str, history: Optional[list[dict]] = None) -> str:
    """Gemini answer for the conversation, or the fallback reply when the provider fails"""
    try:
        return await generate_gemini_text(build_prompt(user_message, history))
    except Exception as e:
        logger.error(f"❌ Gemini response failed: {e}")
        return FALLBACK_REPLY


async def generate_openai_text(prompt: str) -> str:
    if not OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY is not configured")
    client = AsyncOpenAI(api_key=OPENAI_API_KEY)
    completion = await client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=[{"role": "user", "content": prompt}],
        max_tokens=50,
    )
    return (completion.choices[0].message.content or "").strip()
