"""OpenAI-compatible text generation client.

Provides plain chat, JSON-mode chat (instruction + tolerant parse + validation)
and token streaming. Works against any chat-completions endpoint, so the same
client talks to Ollama, OpenRouter or OpenAI depending on LLM_BASE_URL.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..errors import ParseFailure, UpstreamFailure
from ..log import get_logger
from .parse import extract_json
from .prompts import load_prompt

logger = get_logger("llm")

ChatMessage = Dict[str, str]


@dataclass
class JsonSpec:
    """Short schema-like instruction for the model plus a validator that raises on bad shape."""
    instruction: str
    parse: Callable[[Any], Any]


class ChatResult(BaseModel):
    text: str
    parsed: Any = None


def json_only_system_prompt(instruction: str) -> str:
    return f"{load_prompt('json_only').strip()}\nJSON Spec: {instruction}"


class LLMClient:
    def __init__(self, model: str, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        settings = settings or get_settings()
        self.model = model
        self.client = client or OpenAI(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_BASE_URL,
            timeout=settings.LLM_TIMEOUT_S,
            max_retries=settings.LLM_MAX_RETRIES,
        )

    def chat(self, messages: List[ChatMessage], temperature: float = 0.2, json_spec: Optional[JsonSpec] = None) -> ChatResult:
        """
        Single non-streamed completion.
        With json_spec, the reply is parsed and validated; ParseFailure if it doesn't fit.
        """
        if json_spec is not None:
            messages = [{"role": "system", "content": json_only_system_prompt(json_spec.instruction)}, *messages]

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                stream=False,
            )
        except OpenAIError as e:
            raise UpstreamFailure(f"Chat completion failed ({self.model}): {e}") from e

        text = ""
        if completion.choices:
            text = completion.choices[0].message.content or ""

        if json_spec is None:
            return ChatResult(text=text)

        raw = extract_json(text)
        try:
            parsed = json_spec.parse(raw)
        except (ValueError, TypeError) as e:
            # pydantic.ValidationError is a ValueError
            raise ParseFailure(f"Model JSON did not match the expected shape: {e}", raw=text) from e
        return ChatResult(text=text, parsed=parsed)

    def stream_chat(self, messages: List[ChatMessage], temperature: float, on_token: Callable[[str], None]) -> str:
        """Streams assistant text chunks in order to on_token. Returns the full text."""
        parts: List[str] = []
        try:
            stream = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                stream=True,
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    parts.append(delta)
                    on_token(delta)
        except OpenAIError as e:
            raise UpstreamFailure(f"Chat stream failed ({self.model}): {e}") from e
        return "".join(parts)


def build_llm(settings: Optional[Settings] = None) -> LLMClient:
    settings = settings or get_settings()
    return LLMClient(settings.MODEL, settings=settings)


def build_llm_fast(settings: Optional[Settings] = None) -> LLMClient:
    """Cheap model for planning and claim extraction; same as MODEL when MODEL_FAST is unset."""
    settings = settings or get_settings()
    return LLMClient(settings.fast_model, settings=settings)
