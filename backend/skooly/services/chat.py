"""
Chat Service

Tutor chat over the course materials with persisted per-user history.

Each message is routed by a keyword intent detector:

- search          → list matching materials, no generation
- chitchat        → short friendly reply, no retrieval
- explain / summarize / generate-theory / generate-lab
                  → RAG answer with an intent-specific system prompt and the
                    last CHAT_HISTORY_WINDOW messages as conversation context
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from skooly.core.config import settings
from skooly.models.chat import ChatHistory, ChatMessage, MessageRole
from skooly.services.processors.embedder import EmbeddingError
from skooly.services.rag.context import RAGContext, RAGContextAssembler
from skooly.services.rag.generator import AnswerGenerator, build_system_prompt
from skooly.services.rag.validator import ContentValidator


logger = logging.getLogger(__name__)


INTENT_GENERATE_THEORY = "generate-theory"
INTENT_GENERATE_LAB = "generate-lab"
INTENT_SUMMARIZE = "summarize"
INTENT_EXPLAIN = "explain"
INTENT_SEARCH = "search"
INTENT_CHITCHAT = "chitchat"

TITLE_MAX_LENGTH = 50
HISTORY_MESSAGE_CHARS = 300
CHAT_LIST_LIMIT = 50


# ========================================
# Intent Detection
# ========================================

_THEORY_PATTERNS = [
    re.compile(r"\b(generate|create|make|write).*(theory|notes|study guide|flashcards|revision|concept)\b"),
    re.compile(r"\b(theory|notes|study guide|flashcards|revision).*(generate|create|make|write)\b"),
]
_LAB_PATTERNS = [
    re.compile(r"\b(generate|create|make|write).*(lab|code|program|example|practice|implementation)\b"),
    re.compile(r"\b(lab|code|program|example|practice).*(generate|create|make|write)\b"),
]
_SUMMARY_PATTERN = re.compile(
    r"\b(summarize|summary|give me a summary|tldr|tl;dr|brief|overview|key points)\b"
)
_EXPLAIN_PATTERN = re.compile(
    r"\b(explain|what is|what are|how does|how do|why does|why do|tell me about|describe|definition|meaning)\b"
)
_SEARCH_PATTERN = re.compile(
    r"\b(find|search|show|give|get|list|any|where|materials?|files?|documents?|pdfs?|slides?|notes?|lectures?|resources?)\b"
)
_NOT_SEARCH_PATTERN = re.compile(r"\b(explain|summary|summarize|what is|how does|generate|create)\b")
_CHITCHAT_PATTERN = re.compile(r"^(hi|hello|hey|thanks|thank you|bye|goodbye)")


def detect_intent(message: str) -> str:
    """Keyword routing; first match wins, default is explain."""
    text = (message or "").lower()

    if any(p.search(text) for p in _THEORY_PATTERNS):
        return INTENT_GENERATE_THEORY
    if any(p.search(text) for p in _LAB_PATTERNS):
        return INTENT_GENERATE_LAB
    if _SUMMARY_PATTERN.search(text):
        return INTENT_SUMMARIZE
    if _EXPLAIN_PATTERN.search(text):
        return INTENT_EXPLAIN
    if _SEARCH_PATTERN.search(text) and not _NOT_SEARCH_PATTERN.search(text):
        return INTENT_SEARCH
    if _CHITCHAT_PATTERN.match(text.strip()):
        return INTENT_CHITCHAT
    return INTENT_EXPLAIN


# ========================================
# Prompts
# ========================================

INTENT_PROMPTS = {
    INTENT_GENERATE_THEORY: """You are Skooly, an expert AI learning assistant.
Your task is to GENERATE comprehensive study notes/theory content.

Guidelines:
- Create well-structured study notes with clear headings
- Include key definitions and concepts
- Add bullet points for important facts
- Include examples where helpful
- Make it exam-ready and easy to revise
- Use markdown formatting for clarity""",

    INTENT_GENERATE_LAB: """You are Skooly, an expert AI coding assistant.
Your task is to GENERATE practical code examples and lab content.

Guidelines:
- Provide working code examples with comments
- Explain the logic step by step
- Include input/output examples
- Add common pitfalls to avoid
- Make code beginner-friendly
- Use proper code formatting with language tags""",

    INTENT_SUMMARIZE: """You are Skooly, an expert AI learning assistant.
Your task is to SUMMARIZE the content concisely and clearly.

Guidelines:
- Use bullet points for key concepts
- Keep it structured with clear sections
- Highlight the most important takeaways
- Be brief but comprehensive
- Include only essential information""",

    INTENT_EXPLAIN: """You are Skooly, an expert AI learning assistant.
Your task is to EXPLAIN the concept clearly and thoroughly.

Guidelines:
- Start with a simple definition or overview
- Break down complex ideas step by step
- Use analogies and examples where helpful
- Make it easy to understand for students
- Connect it to related concepts if relevant""",
}

DEFAULT_PROMPT = """You are Skooly, an expert AI learning assistant.
Answer the student's question accurately and helpfully using the course materials."""

FOCUS_INSTRUCTION = (
    "IMPORTANT: If the student mentions a specific file or document name, focus ONLY "
    "on that specific file. Do not include content from other files."
)

CHITCHAT_PROMPT = "You are Skooly, a friendly AI learning assistant. Respond briefly to: {message}"

NO_MATERIALS_FOUND = (
    "I couldn't find any materials matching your search. "
    "Try different keywords or check the materials page."
)


def format_history(messages: List[Dict[str, str]], window: Optional[int] = None) -> str:
    """Last ``window`` messages as "Student: ..." / "Assistant: ..." lines."""
    window = window or settings.CHAT_HISTORY_WINDOW
    recent = messages[-window:]
    if not recent:
        return ""

    lines = [
        f"{'Student' if m['role'] == MessageRole.USER.value else 'Assistant'}: "
        f"{m['content'][:HISTORY_MESSAGE_CHARS]}"
        for m in recent
    ]
    return "\nRecent conversation:\n" + "\n".join(lines) + "\n\n"


def build_chat_prompt(message: str, history: List[Dict[str, str]]) -> str:
    return f"{FOCUS_INSTRUCTION}{format_history(history)}\n\nStudent's current question: {message}"


def chat_title(message: str) -> str:
    title = message[:TITLE_MAX_LENGTH]
    return title + "..." if len(message) > TITLE_MAX_LENGTH else title


def _relevant_files(rag: RAGContext) -> List[Dict[str, Any]]:
    return [
        {
            "material_id": source["material_id"],
            "title": source["title"],
            "type": source["type"],
            "file_url": source["file_url"],
        }
        for source in rag.sources
        if source.get("file_url")
    ]


class ChatNotFoundError(Exception):
    """No chat with that id for this user."""


# ========================================
# Service
# ========================================

class ChatService:
    """
    Usage:
    ------
    service = ChatService(db, assembler, generator, validator)
    result = await service.chat(user_id, "Explain quicksort", validate=True)
    """

    def __init__(
        self,
        db: AsyncSession,
        assembler: RAGContextAssembler,
        generator: AnswerGenerator,
        validator: Optional[ContentValidator] = None,
    ):
        self.db = db
        self.assembler = assembler
        self.generator = generator
        self.validator = validator

    async def chat(
        self,
        user_id: str,
        message: str,
        chat_id: Optional[int] = None,
        validate: bool = False,
    ) -> Dict[str, Any]:
        """
        Answer one message and persist both sides of the exchange.

        An unknown (or foreign) chat_id starts a new chat.
        """
        chat = await self._load_chat(chat_id, user_id) if chat_id else None
        if chat is None:
            chat = ChatHistory(user_id=user_id, title=chat_title(message), messages=[])
            self.db.add(chat)

        history = [{"role": m.role, "content": m.content} for m in chat.messages]
        intent = detect_intent(message)

        rag = RAGContext()

        if intent == INTENT_SEARCH:
            rag = await self._retrieve(message)
            if rag.sources:
                titles = ", ".join(source["title"] or "Untitled" for source in rag.sources)
                count = len(rag.sources)
                response = f"Found {count} relevant material{'s' if count > 1 else ''}: {titles}"
            else:
                response = NO_MATERIALS_FOUND

        elif intent == INTENT_CHITCHAT:
            response = await self.generator.generate(CHITCHAT_PROMPT.format(message=message))

        else:
            rag = await self._retrieve(message)
            response = await self.generator.generate(
                build_chat_prompt(message, history),
                system_instruction=build_system_prompt(
                    rag.context, base=INTENT_PROMPTS.get(intent, DEFAULT_PROMPT)
                ),
                file_refs=rag.file_urls,
            )

        validation = None
        if validate and self.validator is not None and intent not in (INTENT_SEARCH, INTENT_CHITCHAT):
            validation = await self.validator.validate(response, message)

        chat.messages.append(ChatMessage(role=MessageRole.USER.value, content=message))
        chat.messages.append(ChatMessage(
            role=MessageRole.ASSISTANT.value,
            content=response,
            intent=intent,
            sources=rag.sources,
            validation=validation,
        ))
        chat.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info(f"Chat {chat.id}: intent={intent}, {len(rag.sources)} sources")

        return {
            "chat_id": chat.id,
            "response": response,
            "intent": intent,
            "sources": rag.sources,
            "relevant_files": _relevant_files(rag),
            "validation": validation,
        }

    async def _retrieve(self, message: str) -> RAGContext:
        try:
            return await self.assembler.get_context(message, limit=settings.RAG_DEFAULT_LIMIT)
        except EmbeddingError as e:
            logger.warning(f"Retrieval failed, answering without course context: {e}")
            return RAGContext()

    async def _load_chat(self, chat_id: int, user_id: str) -> Optional[ChatHistory]:
        result = await self.db.execute(
            select(ChatHistory)
            .options(selectinload(ChatHistory.messages))
            .where(ChatHistory.id == chat_id, ChatHistory.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_chats(self, user_id: str, limit: int = CHAT_LIST_LIMIT) -> List[ChatHistory]:
        result = await self.db.execute(
            select(ChatHistory)
            .where(ChatHistory.user_id == user_id)
            .order_by(ChatHistory.updated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_chat(self, chat_id: int, user_id: str) -> ChatHistory:
        chat = await self._load_chat(chat_id, user_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat {chat_id} not found")
        return chat

    async def delete_chat(self, chat_id: int, user_id: str) -> None:
        chat = await self.get_chat(chat_id, user_id)
        await self.db.delete(chat)
        await self.db.commit()

    async def evaluate(self, response: str, query: str, quick: bool = False) -> Dict[str, Any]:
        validator = self.validator or ContentValidator(searcher=self.assembler, judge=self.generator)
        if quick:
            return await validator.quick_validate(response, query)
        return await validator.validate(response, query)
