"""OpenAI Responses API client for content enrichment."""

import json
from dataclasses import dataclass

from openai import AsyncOpenAI

from lecture_recall.services.enrichment import EnrichmentClient


@dataclass
class OpenAIEnrichmentClient(EnrichmentClient):
    """Enrichment client backed by OpenAI Responses API.

    Reasoning models reject sampling parameters, so ``temperature`` is only
    sent when no reasoning effort is configured.
    """

    client: AsyncOpenAI
    model: str
    reasoning_effort: str | None = None
    store: bool = False

    @classmethod
    def create(
        cls,
        api_key: str,
        model: str,
        reasoning_effort: str | None = None,
        store: bool = False,
    ) -> "OpenAIEnrichmentClient":
        """Create an OpenAI enrichment client."""
        return cls(
            client=AsyncOpenAI(api_key=api_key),
            model=model,
            reasoning_effort=reasoning_effort,
            store=store,
        )

    async def generate_json(
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        temperature: float,
    ) -> dict[str, object]:
        """Call OpenAI Responses API with structured outputs."""
        request_payload = self._base_payload(prompt, temperature)
        request_payload["text"] = {
            "format": {
                "type": "json_schema",
                "name": schema_name,
                "strict": True,
                "schema": schema,
            }
        }
        response = await self.client.responses.create(**request_payload)
        output_text = response.output_text
        if not output_text:
            raise RuntimeError("OpenAI returned an empty response")
        return json.loads(output_text)

    async def generate_text(self, *, prompt: str, temperature: float) -> str:
        """Call OpenAI Responses API for free-form text."""
        response = await self.client.responses.create(
            **self._base_payload(prompt, temperature)
        )
        return response.output_text or ""

    async def close(self) -> None:
        await self.client.close()

    def _base_payload(self, prompt: str, temperature: float) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
            "store": self.store,
        }
        if self.reasoning_effort:
            payload["reasoning"] = {"effort": self.reasoning_effort}
        else:
            payload["temperature"] = temperature
        return payload
