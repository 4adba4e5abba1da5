"""Chat assistant that recommends catalog tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from trendi_tools.ai.client import AIClient
from trendi_tools.config import AssistantConfig
from trendi_tools.log import get_logger
from trendi_tools.search.aggregator import SearchAggregator, ToolResult
from trendi_tools.storage.chat_repo import ChatRepository
from trendi_tools.storage.models import ChatMessageRecord, TokenUsage

logger = get_logger(__name__)

FALLBACK_RESPONSE = (
    "Here to help discover amazing digital tools! "
    "What kind of tool are you looking for today?"
)
EMPTY_RESPONSE = "Here to help find the perfect digital tools! What are you looking for?"

SYSTEM_PROMPT = """You are the TrendiTools Assistant for Trendi Tools - a search engine for digital tools. Help users discover the perfect digital tools for their needs.

{tools_context}Your role:
- Help users find digital tools that match their requirements
- Provide insights about tool features, use cases, and benefits
- Be enthusiastic and knowledgeable about digital tools and technology
- Keep responses concise but helpful
- If relevant tools are provided above, reference them naturally in responses
- Always encourage exploration of the tool database"""


@dataclass
class AssistantReply:
    response: str
    recommendations: list[ToolResult]


@dataclass
class ChatTurn:
    record: ChatMessageRecord
    recommended_tools: list[ToolResult] = field(default_factory=list)


def build_system_prompt(tools: list[ToolResult]) -> str:
    tools_context = ""
    if tools:
        lines = "\n".join(
            f"- {r.tool.name}: {r.tool.tagline} ({r.tool.summary})" for r in tools
        )
        tools_context = f"Here are some relevant digital tools I found:\n{lines}\n\n"
    return SYSTEM_PROMPT.format(tools_context=tools_context)


class ChatAssistant:
    """Answers a user message using catalog search results as context."""

    def __init__(
        self,
        ai_client: AIClient,
        aggregator: SearchAggregator,
        chat_repo: ChatRepository,
        config: AssistantConfig,
    ):
        self._ai_client = ai_client
        self._aggregator = aggregator
        self._chat_repo = chat_repo
        self._config = config

    async def send_message(
        self, message: str, session_id: str, user_id: Optional[str] = None
    ) -> AssistantReply:
        page = await self._aggregator.search_tools(
            message,
            page_size=self._config.recommendation_count,
            user_id=user_id,
        )
        recommendations = page.items

        response_text, usage = await self._generate(message, recommendations)

        await self._chat_repo.save(
            ChatMessageRecord(
                session_id=session_id,
                user_id=user_id,
                message=message,
                response=response_text,
                tool_recommendations=[r.tool.id for r in recommendations],  # type: ignore[misc]
                token_usage=usage,
            )
        )
        logger.info(
            "chat_message_answered",
            session_id=session_id,
            recommendations=len(recommendations),
            total_tokens=usage.total_tokens if usage else None,
        )
        return AssistantReply(response=response_text, recommendations=recommendations)

    async def _generate(
        self, message: str, tools: list[ToolResult]
    ) -> tuple[str, Optional[TokenUsage]]:
        try:
            response = await self._ai_client.chat(
                system=build_system_prompt(tools),
                messages=[{"role": "user", "content": message}],
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
        except Exception as e:
            logger.error("ai_response_failed", error=str(e))
            return FALLBACK_RESPONSE, None

        usage = TokenUsage(
            prompt_tokens=response.input_tokens,
            completion_tokens=response.output_tokens,
            total_tokens=response.total_tokens,
        )
        return response.text or EMPTY_RESPONSE, usage

    async def get_chat_history(self, session_id: str) -> list[ChatTurn]:
        records = await self._chat_repo.get_session_history(
            session_id, limit=self._config.history_limit
        )
        turns: list[ChatTurn] = []
        for record in records:
            tools = await self._aggregator.get_tools(record.tool_recommendations)
            turns.append(ChatTurn(record=record, recommended_tools=tools))
        return turns
