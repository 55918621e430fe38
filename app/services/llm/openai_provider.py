from typing import List, Optional

import httpx

from app.services.llm.base import LLMError, LLMProvider, LLMResponse


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider (text and vision messages)."""

    def __init__(self, api_key: str, default_model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.openai.com/v1/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from OpenAI. Raises LLMError on non-200 answers."""
        if not self.api_key:
            raise LLMError("OpenAI API key is not configured")

        model = model or self.default_model

        timeout = timeout_seconds if timeout_seconds is not None else 60.0
        with httpx.Client(timeout=timeout) as client:
            payload = {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_completion_tokens": max_tokens,
            }

            response = client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

            if response.status_code != 200:
                raise LLMError(f"OpenAI API error: {response.status_code} - {response.text}")

            data = response.json()

            content = ""
            if data.get("choices") and len(data["choices"]) > 0:
                message = data["choices"][0].get("message", {})
                content = message.get("content") or ""

            return LLMResponse(
                content=content,
                model=data.get("model", model),
                usage=data.get("usage"),
            )
