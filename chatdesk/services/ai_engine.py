# chatdesk/services/ai_engine.py
"""
AI engine - answers visitor messages with the OpenAI chat completions API.

Transfer intent is detected from keyword phrases before any model call.
Model calls are bounded by AI_TIMEOUT_SECONDS; an unreachable or slow
upstream produces a fallback reply instead of an error.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError
from sqlalchemy.orm import Session

from chatdesk.core import config
from chatdesk.models.settings import KnowledgeDoc, SystemSetting

log = logging.getLogger("chatdesk.ai_engine")

TRANSFER_PHRASES = (
    "speak to a human",
    "speak to an agent",
    "talk to a human",
    "talk to a person",
    "talk to an agent",
    "real person",
    "real agent",
    "human agent",
    "live agent",
    "human support",
    "agent support",
    "transfer me",
    "connect me",
    "i want to speak",
    "i need to speak",
    "can i speak",
    "let me speak",
    "get me an agent",
    "get me a human",
    "i need help from",
    "i want help from",
    "escalate",
    "hand me over",
    "pass me to",
)

TRANSFER_REPLY = "Alright, I'm transferring your chat to a real agent."
FALLBACK_REPLY = "Sorry, I couldn't process your message right now. Please try again or ask to speak with a human agent."
DEFAULT_SYSTEM_MESSAGE = (
    "You are a helpful customer support AI assistant. "
    "You should be friendly, professional, and helpful."
)

# Values shipped in sample env files, never real keys
PLACEHOLDER_KEYS = ("your-openai-api-key-here", "sk-your-actual-openai-api-key-here")

KNOWLEDGE_DOC_LIMIT = 10


@dataclass
class AIReply:
    response: str
    confidence: float
    tokens_used: int = 0
    is_transfer_request: bool = False


def is_transfer_request(message: str, extra_keywords: Optional[Iterable[str]] = None) -> bool:
    """
    True when the message asks for a human.
    Phrases match as whole words, so inflected forms such as "escalated" do not count.
    """
    text = (message or "").lower()
    phrases = list(TRANSFER_PHRASES) + [k.lower().strip() for k in (extra_keywords or []) if k and k.strip()]
    return any(re.search(rf"\b{re.escape(phrase)}\b", text) for phrase in phrases)


class AIEngine:
    """Service for AI replies"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else config.AI_TIMEOUT_SECONDS
        # One client per key; each holds its own connection pool
        self._clients: Dict[str, AsyncOpenAI] = {}

    # ────────────────────────────────────────────
    # Settings
    # ────────────────────────────────────────────

    def get_api_key(self, db: Session) -> Optional[str]:
        """System setting first, then the OPENAI_API_KEY environment variable"""
        setting = db.query(SystemSetting).filter(SystemSetting.setting_key == "openai_api_key").first()
        for api_key in (setting.value if setting else None, config.OPENAI_API_KEY):
            if api_key and api_key.strip() and api_key.strip() not in PLACEHOLDER_KEYS:
                return api_key.strip()
        return None

    def has_credential(self, db: Session) -> bool:
        return self.get_api_key(db) is not None

    def get_client(self, api_key: str) -> AsyncOpenAI:
        client = self._clients.get(api_key)
        if client is None:
            client = AsyncOpenAI(api_key=api_key, timeout=self.timeout)
            self._clients[api_key] = client
        return client

    def get_ai_settings(self, db: Session) -> Dict[str, object]:
        rows = db.query(SystemSetting).filter(SystemSetting.category == "ai").all()
        values = {row.setting_key: row.value for row in rows}

        def _number(key, cast, default):
            try:
                return cast(values.get(key)) if values.get(key) not in (None, "") else default
            except (TypeError, ValueError):
                log.warning(f"⚠️ Invalid AI setting {key}={values.get(key)!r}, using {default}")
                return default

        return {
            "model": values.get("ai_model") or config.AI_MODEL,
            "temperature": _number("ai_temperature", float, config.AI_TEMPERATURE),
            "max_tokens": _number("ai_max_tokens", int, config.AI_MAX_TOKENS),
            "system_message": values.get("ai_system_message") or DEFAULT_SYSTEM_MESSAGE,
        }

    # ────────────────────────────────────────────
    # Knowledge context
    # ────────────────────────────────────────────

    def knowledge_docs(self, db: Session, tenant_id: str, brand_id: Optional[int]) -> List[KnowledgeDoc]:
        """Brand docs when the brand has any, else tenant-wide docs"""
        base = db.query(KnowledgeDoc).filter(
            KnowledgeDoc.tenant_id == tenant_id,
            KnowledgeDoc.is_active.is_(True)
        )
        order = (KnowledgeDoc.category, KnowledgeDoc.created_at.desc())

        docs: List[KnowledgeDoc] = []
        if brand_id:
            docs = base.filter(KnowledgeDoc.brand_id == brand_id).order_by(*order).limit(KNOWLEDGE_DOC_LIMIT).all()
        if not docs:
            docs = base.filter(KnowledgeDoc.brand_id.is_(None)).order_by(*order).limit(KNOWLEDGE_DOC_LIMIT).all()
        return docs

    def build_knowledge_context(self, docs: List[KnowledgeDoc]) -> str:
        if not docs:
            return ""

        by_category: Dict[str, List[KnowledgeDoc]] = {}
        for doc in docs:
            by_category.setdefault(doc.category, []).append(doc)

        parts = []
        for category, category_docs in by_category.items():
            parts.append(f"=== {category.upper()} KNOWLEDGE ===")
            parts.extend(f"{doc.title}: {doc.content}" for doc in category_docs)
            parts.append("")
        return "\n".join(parts)

    def build_system_prompt(self, system_message: str, knowledge: str, context: str = "") -> str:
        prompt = [system_message]
        if knowledge:
            prompt.append(f"Here is some context about the company and common questions:\n\n{knowledge}")
        if context:
            prompt.append(f"Conversation so far:\n{context}")
        prompt.append(
            "Please provide helpful responses to customer inquiries. "
            "If you cannot help with a specific request, politely suggest contacting a human agent."
        )
        return "\n\n".join(prompt)

    # ────────────────────────────────────────────
    # Replies
    # ────────────────────────────────────────────

    async def generate_response(
        self,
        db: Session,
        message: str,
        context: str = "",
        tenant_id: Optional[str] = None,
        brand_id: Optional[int] = None,
        extra_keywords: Optional[Iterable[str]] = None
    ) -> AIReply:
        """
        Answer a visitor message.

        Returns:
            AIReply with is_transfer_request set when the visitor asked for a human
        """
        if is_transfer_request(message, extra_keywords):
            log.info(f"🔀 Transfer intent detected (tenant {tenant_id}, brand {brand_id})")
            return AIReply(response=TRANSFER_REPLY, confidence=0.9, tokens_used=0, is_transfer_request=True)

        api_key = self.get_api_key(db)
        if not api_key:
            log.error("❌ OpenAI API key not configured")
            return AIReply(response=FALLBACK_REPLY, confidence=0.0)

        knowledge = self.build_knowledge_context(self.knowledge_docs(db, tenant_id, brand_id)) if tenant_id else ""
        ai_settings = self.get_ai_settings(db)
        system_prompt = self.build_system_prompt(ai_settings["system_message"], knowledge, context)

        try:
            text, tokens = await asyncio.wait_for(
                self._complete(api_key, system_prompt, message, ai_settings),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            log.error(f"❌ AI reply timed out after {self.timeout}s (tenant {tenant_id})")
            return AIReply(response=FALLBACK_REPLY, confidence=0.0)
        except OpenAIError as e:
            log.error(f"❌ OpenAI request failed: {e}")
            return AIReply(response=FALLBACK_REPLY, confidence=0.0)

        log.debug(f"AI reply generated ({tokens} tokens, model {ai_settings['model']})")
        return AIReply(response=text or FALLBACK_REPLY, confidence=0.8 if text else 0.0, tokens_used=tokens)

    async def _complete(
        self,
        api_key: str,
        system_prompt: str,
        message: str,
        ai_settings: Dict[str, object]
    ) -> Tuple[str, int]:
        completion = await self.get_client(api_key).chat.completions.create(
            model=ai_settings["model"],
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message},
            ],
            max_tokens=ai_settings["max_tokens"],
            temperature=ai_settings["temperature"],
        )
        text = (completion.choices[0].message.content or "").strip()
        tokens = completion.usage.total_tokens if completion.usage else 0
        return text, tokens
