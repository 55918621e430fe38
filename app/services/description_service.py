import base64
from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMError, LLMProvider
from app.services.result import Result

logger = get_logger("description_service")

DESCRIPTION_PROMPT = (
    "Eres redactor de una tienda de regalos. Mira la foto del producto y escribe una "
    "descripción comercial breve en español (máximo 3 frases), cálida y atractiva. "
    "No inventes precios ni medidas. Responde solo con la descripción."
)


class DescriptionService:
    """Turns a product photo into a short marketing description."""

    def __init__(
        self,
        provider: LLMProvider,
        model: Optional[str] = None,
        timeout_seconds: float = 60.0,
        max_tokens: int = 300,
    ):
        self.provider = provider
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens

    def describe(self, image_bytes: bytes, content_type: str = "image/jpeg") -> Result[str]:
        if not image_bytes:
            return Result.failure("Image is empty", "empty_image")

        encoded = base64.b64encode(image_bytes).decode("ascii")
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": DESCRIPTION_PROMPT},
                    {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
                ],
            }
        ]

        try:
            response = self.provider.generate(
                messages,
                model=self.model,
                max_tokens=self.max_tokens,
                timeout_seconds=self.timeout_seconds,
            )
        except (LLMError, httpx.HTTPError, ValueError) as e:
            return Result.failure(str(e), "ai_error")

        description = (response.content or "").strip()
        if not description:
            return Result.failure("Model returned an empty description", "ai_empty")
        logger.info(
            "Description generated",
            extra={"context": {"model": response.model, "usage": response.usage, "length": len(description)}},
        )
        return Result.success(description)
