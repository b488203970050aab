# healthmate/chat.py
import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from . import config, database, models, schemas
from .deps import get_current_user, get_ai
from .errors import ValidationError
from .gemini import GeminiService
from .utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

AI_UNAVAILABLE = "I apologize, but I encountered an error processing your request. Please try again later."


def _message(sender: str, text: str) -> dict:
    return {"sender": sender, "text": text, "timestamp": utcnow().isoformat()}


def append_messages(history: list, *messages: dict) -> list:
    """New list with messages appended, keeping only the newest CHAT_HISTORY_LIMIT."""
    return (list(history) + list(messages))[-config.CHAT_HISTORY_LIMIT:]


@router.post("/message")
async def send_message(
    payload: schemas.ChatMessageIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
    ai: GeminiService = Depends(get_ai),
):
    if not isinstance(payload.message, str) or not payload.message.strip():
        raise ValidationError("Please provide a valid message")
    text = payload.message.strip()

    chat = db.query(models.Chat).filter(models.Chat.user_id == current.id).first()
    if not chat:
        chat = models.Chat(user_id=current.id, messages=[])
        db.add(chat)
    history = list(chat.messages or [])
    user_message = _message("user", text)

    try:
        reply = await run_in_threadpool(ai.chat, text, history)
    except Exception as e:
        logger.warning(f"AI chat failed for user {current.id}: {e}")
        reply = AI_UNAVAILABLE
    ai_message = _message("ai", reply)

    # reassign so the JSON column is flagged dirty
    chat.messages = append_messages(history, user_message, ai_message)
    db.commit()
    return schemas.envelope(
        "Message sent successfully",
        {"userMessage": user_message, "aiMessage": ai_message},
    )


@router.get("/history")
def get_history(
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    chat = db.query(models.Chat).filter(models.Chat.user_id == current.id).first()
    if not chat or not chat.messages:
        return schemas.envelope("No chat history found", {"messages": [], "totalMessages": 0})
    return schemas.envelope(
        "Chat history retrieved successfully",
        {"messages": chat.messages, "totalMessages": len(chat.messages)},
    )


@router.delete("/history")
def clear_history(
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    chat = db.query(models.Chat).filter(models.Chat.user_id == current.id).first()
    if not chat:
        return schemas.envelope("No chat history to clear")
    chat.messages = []
    db.commit()
    return schemas.envelope("Chat history cleared successfully")
