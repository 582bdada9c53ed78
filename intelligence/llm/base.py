"""
Base LLM
Abstract provider interface
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum

from core import Source


class MessageRole(str, Enum):
    """Message role"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """Conversation message"""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)


@dataclass
class LLMResponse:
    """LLM response"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)  # prompt_tokens, completion_tokens, total_tokens
    citations: List[Source] = field(default_factory=list)  # search grounding, provider order
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())


class BaseLLM(ABC):
    """
    Abstract LLM provider.

    Providers implement ``acomplete``. Two keyword options are understood by
    every provider that supports them:

    - ``json_schema``: request an ``application/json`` response matching the schema
    - ``grounding``: consult web search and return the grounding chunks as
      ``LLMResponse.citations``
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        timeout: float = 120.0,
        **kwargs,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.extra_config = kwargs

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name"""
        pass

    @property
    def supports_grounding(self) -> bool:
        return False

    @abstractmethod
    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a response.

        Args:
            messages: conversation messages
            tools: provider-specific tool declarations
            **kwargs: ``temperature``, ``max_tokens``, ``json_schema``, ``grounding``

        Returns:
            LLMResponse
        """
        pass

    async def achat(self, user_message: str, system_prompt: Optional[str] = None, **kwargs) -> LLMResponse:
        """Single-turn helper"""
        messages = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(user_message))

        return await self.acomplete(messages, **kwargs)

    async def aclose(self) -> None:
        """Release client resources (no-op by default)."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, provider={self.provider})"
