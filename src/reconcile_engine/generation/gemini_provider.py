"""Google Gemini LLM client using the google-genai SDK."""

from __future__ import annotations

from google import genai
from google.genai import types

from reconcile_engine.exceptions import LLMError
from reconcile_engine.observability.logger import get_logger
from reconcile_engine.protocols.llm import TaskType

logger = get_logger("gemini")

TASK_TEMPERATURES = {
    TaskType.INFERENCE: 0.1,
    TaskType.NAMING: 0.4,
    TaskType.QUALITY: 0.0,
}


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_tokens: int = 4096,
    ) -> None:
        self._client = genai.Client(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens

    async def invoke(
        self,
        messages: list[dict[str, str]],
        task_type: TaskType,
        prompt_caching: bool = False,
    ) -> str:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part.from_text(text=m["content"])],
            )
            for m in messages
            if m["role"] != "system"
        ]

        config = types.GenerateContentConfig(
            temperature=TASK_TEMPERATURES.get(task_type, 0.1),
            max_output_tokens=self._max_tokens,
        )
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)
        # Gemini applies implicit caching to repeated prefixes; the hint is only logged.
        if prompt_caching:
            logger.debug("prompt_caching_requested", task_type=task_type.value)

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )
            return response.text or ""
        except Exception as e:
            raise LLMError(f"Gemini invocation failed: {e}") from e
