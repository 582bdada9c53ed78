"""
Google Gemini LLM
Supports JSON-mode responses and Google Search grounding.
"""
from typing import Any, List, Optional, Dict
import logging

from core import Source
from utils.exceptions import ServiceFailure
from .base import BaseLLM, Message, MessageRole, LLMResponse


logger = logging.getLogger(__name__)

# Search grounding tool understood by google-generativeai
GROUNDING_TOOL = "google_search_retrieval"


class GeminiLLM(BaseLLM):
    """
    Google Gemini LLM

    Recommended models:
    - gemini-1.5-flash (default)
    - gemini-1.5-pro
    """

    def __init__(
        self,
        model: str = "gemini-1.5-flash",
        api_key: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        timeout: float = 120.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key

    @property
    def provider(self) -> str:
        return "gemini"

    @property
    def supports_grounding(self) -> bool:
        return True

    def _convert_messages(self, messages: List[Message]) -> tuple:
        """
        Convert messages to the Gemini chat layout.

        Returns:
            (system_instruction, history, last_message)
        """
        system_instruction = None
        history = []
        last_message = None

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_instruction = msg.content
            elif msg.role == MessageRole.USER:
                last_message = msg.content
            elif msg.role == MessageRole.ASSISTANT:
                if last_message:
                    history.append({"role": "user", "parts": [last_message]})
                    last_message = None
                history.append({"role": "model", "parts": [msg.content]})

        return system_instruction, history, last_message

    def _generation_config(self, **kwargs) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "temperature": kwargs.get("temperature", self.temperature),
            "max_output_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        json_schema = kwargs.get("json_schema")
        if json_schema is not None:
            config["response_mime_type"] = "application/json"
            config["response_schema"] = json_schema
        return config

    @staticmethod
    def _extract_text(response: Any) -> str:
        # response.text raises when the candidate has no parts (e.g. blocked)
        try:
            return response.text or ""
        except ValueError as exc:
            logger.warning("Gemini returned no text parts: %s", exc)
            return ""

    @staticmethod
    def _extract_citations(response: Any) -> List[Source]:
        """Web grounding chunks carrying both a title and a uri, in provider order."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = getattr(metadata, "grounding_chunks", None) or []

        citations: List[Source] = []
        for chunk in chunks:
            web = getattr(chunk, "web", None)
            if web is None:
                continue
            uri = str(getattr(web, "uri", "") or "").strip()
            title = str(getattr(web, "title", "") or "").strip()
            if uri and title:
                citations.append(Source(title=title, uri=uri))
        return citations

    @staticmethod
    def _extract_usage(response: Any) -> Dict[str, int]:
        meta = getattr(response, "usage_metadata", None)
        if not meta:
            return {}
        return {
            "prompt_tokens": meta.prompt_token_count,
            "completion_tokens": meta.candidates_token_count,
            "total_tokens": meta.total_token_count,
        }

    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        """Generate a response; ``grounding=True`` enables Google Search retrieval."""
        import google.generativeai as genai

        genai.configure(api_key=self.api_key)

        system_instruction, history, last_message = self._convert_messages(messages)

        request_tools: Any = tools
        if kwargs.get("grounding"):
            request_tools = GROUNDING_TOOL

        model = genai.GenerativeModel(
            model_name=self.model,
            generation_config=self._generation_config(**kwargs),
            system_instruction=system_instruction,
            tools=request_tools,
        )
        chat = model.start_chat(history=history)

        try:
            response = await chat.send_message_async(
                last_message or "",
                request_options={"timeout": self.timeout},
            )
        except Exception as exc:
            raise ServiceFailure(
                f"Gemini request failed: {exc}",
                provider=self.provider,
                model=self.model,
            ) from exc

        finish_reason = None
        if response.candidates:
            finish_reason = getattr(response.candidates[0].finish_reason, "name", None)

        return LLMResponse(
            content=self._extract_text(response),
            model=self.model,
            usage=self._extract_usage(response),
            citations=self._extract_citations(response),
            finish_reason=finish_reason,
            raw_response=response,
        )
