"""Agent-to-agent conversation simulator.

Participants take turns on a topic. Each speaker sees its own earlier messages
as ``assistant`` turns and everyone else's as ``user`` turns, and is prompted
with what the previous speaker just said.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from .agents import AgentConfig
from .cancellation import CancellationToken
from .exceptions import AbortedError, ConfigurationError
from .models import Role, StreamRequest, Turn
from .orchestrator import StreamOrchestrator

logger = logging.getLogger(__name__)

HUMAN_AGENT_ID = "human-user"
HUMAN_AGENT_NAME = "You (Human)"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class AgentConversationMessage(BaseModel):
    id: str = Field(default_factory=lambda: f"msg-{uuid.uuid4().hex}")
    conversation_id: str = ""
    agent_id: str
    agent_name: str
    content: str = ""
    timestamp: float = Field(default_factory=time.time)
    turn_number: int = 1


class AgentConversation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    participants: List[str]
    topic: str
    messages: List[AgentConversationMessage] = Field(default_factory=list)
    turn_count: int = 0
    max_turns: int = 5
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def touch(self) -> None:
        self.updated_at = time.time()


MessageChunkCallback = Callable[[AgentConversationMessage, str], Any]


def build_prompt(
    speaker: AgentConfig,
    listener: AgentConfig,
    topic: str,
    previous: Sequence[AgentConversationMessage],
) -> str:
    if not previous:
        return f"Start a discussion about: {topic}"
    return (
        f'{listener.name} just said: "{previous[-1].content}". Now respond as '
        f"{speaker.name} to continue the discussion about {topic}. Keep your "
        f"response concise and focused."
    )


def build_history(
    speaker: AgentConfig, previous: Sequence[AgentConversationMessage]
) -> Tuple[Turn, ...]:
    """The conversation so far, from *speaker*'s point of view."""
    return tuple(
        Turn(
            id=message.id,
            role=Role.ASSISTANT if message.agent_id == speaker.id else Role.USER,
            content=message.content,
            timestamp=message.timestamp,
        )
        for message in previous
    )


class AgentConversationRunner:
    def __init__(self, orchestrator: StreamOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._pause_requested = False

    def pause(self) -> None:
        """Stop before the next speaker. The current speaker finishes."""
        self._pause_requested = True

    def start(
        self, participants: Sequence[AgentConfig], topic: str, max_turns: int = 5
    ) -> AgentConversation:
        ids = [agent.id for agent in participants]
        if len(set(ids)) < 2:
            raise ConfigurationError("A conversation needs at least two different agents.")
        if not topic.strip():
            raise ConfigurationError("A conversation needs a topic.")
        return AgentConversation(participants=ids, topic=topic.strip(), max_turns=max_turns)

    def add_human_message(
        self, conversation: AgentConversation, content: str
    ) -> Optional[AgentConversationMessage]:
        text = content.strip()
        if not text:
            return None
        message = AgentConversationMessage(
            conversation_id=conversation.id,
            agent_id=HUMAN_AGENT_ID,
            agent_name=HUMAN_AGENT_NAME,
            content=text,
            turn_number=len(conversation.messages) + 1,
        )
        conversation.messages.append(message)
        conversation.touch()
        return message

    async def run(
        self,
        participants: Sequence[AgentConfig],
        topic: str,
        max_turns: int = 5,
        *,
        on_chunk: Optional[MessageChunkCallback] = None,
        token: Optional[CancellationToken] = None,
        conversation: Optional[AgentConversation] = None,
    ) -> AgentConversation:
        """Run up to *max_turns* rounds in which every participant speaks once.

        Passing an existing *conversation* continues it (for example after a
        human message was added). Cancelling *token* stops the current speaker,
        keeps what it said so far and leaves the conversation ``paused``.
        """
        if conversation is None:
            conversation = self.start(participants, topic, max_turns)
        self._pause_requested = False
        token = token or CancellationToken()
        conversation.status = ConversationStatus.ACTIVE

        try:
            for _ in range(max_turns):
                for index, speaker in enumerate(participants):
                    if self._pause_requested:
                        break
                    listener = next(p for i, p in enumerate(participants) if i != index)
                    await self.speak(
                        speaker, listener, conversation, on_chunk=on_chunk, token=token
                    )
                if self._pause_requested:
                    break
                conversation.turn_count += 1
        except AbortedError:
            logger.info("Conversation %s aborted", conversation.id)
            conversation.status = ConversationStatus.PAUSED
            conversation.touch()
            return conversation
        except Exception:
            conversation.status = ConversationStatus.PAUSED
            conversation.touch()
            raise

        conversation.status = (
            ConversationStatus.PAUSED if self._pause_requested else ConversationStatus.COMPLETED
        )
        conversation.touch()
        return conversation

    async def speak(
        self,
        speaker: AgentConfig,
        listener: AgentConfig,
        conversation: AgentConversation,
        *,
        on_chunk: Optional[MessageChunkCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> AgentConversationMessage:
        previous = list(conversation.messages)
        message = AgentConversationMessage(
            conversation_id=conversation.id,
            agent_id=speaker.id,
            agent_name=speaker.name,
            turn_number=len(previous) // 2 + 1,
        )
        conversation.messages.append(message)

        request = StreamRequest(
            provider=speaker.provider,
            model=speaker.model,
            system_instruction=speaker.system_instruction,
            history=build_history(speaker, previous),
            new_message=build_prompt(speaker, listener, conversation.topic, previous),
            enabled_capabilities=speaker.capabilities,
            cancellation_token=token or CancellationToken(),
        )

        def _on_chunk(chunk: str) -> Any:
            message.content += chunk
            if on_chunk is not None:
                return on_chunk(message, chunk)
            return None

        try:
            result = await self.orchestrator.run(request, on_chunk=_on_chunk)
        except AbortedError:
            message.content = message.content.strip()
            if not message.content:
                conversation.messages.remove(message)
            raise
        except Exception as e:
            logger.error("Stream error for %s: %s", speaker.name, e)
            conversation.messages.remove(message)
            raise

        if result.content:
            message.content = result.content
        conversation.touch()
        return message
