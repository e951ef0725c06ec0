from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI, OpenAIError

from rulesapp.core.errors import CompletionUnavailable


@dataclass
class LLMResponse:
    text: str


class OpenAILLM:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 20.0,
        temperature: float = 0.3,
        max_tokens: int = 800,
    ):
        # retries would cross the request boundary; a failure goes to the fallback instead
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                top_p=0.95,
            )
        except OpenAIError as exc:
            raise CompletionUnavailable(f"completion request failed: {exc.__class__.__name__}") from exc

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise CompletionUnavailable("malformed completion response") from exc
        if not content or not content.strip():
            raise CompletionUnavailable("empty completion")
        return LLMResponse(text=content)
