"""Gemini generateContent client for content enrichment."""

import json
from dataclasses import dataclass

import httpx

from lecture_recall.services.enrichment import EnrichmentClient

# generateContent accepts an OpenAPI subset; these JSON Schema keys are rejected.
_UNSUPPORTED_SCHEMA_KEYS = {"additionalProperties"}


@dataclass
class HttpxGeminiEnrichmentClient(EnrichmentClient):
    """HTTPX-backed Gemini client."""

    api_key: str
    model: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, api_key: str, model: str, base_url: str
    ) -> "HttpxGeminiEnrichmentClient":
        """Create a Gemini client with a managed httpx session."""
        return cls(
            api_key=api_key,
            model=model,
            base_url=base_url,
            http_client=httpx.AsyncClient(),
        )

    async def generate_json(
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        temperature: float,
    ) -> dict[str, object]:
        """Request JSON output constrained by a response schema."""
        text = await self._generate(
            prompt,
            {
                "temperature": temperature,
                "responseMimeType": "application/json",
                "responseSchema": to_gemini_schema(schema),
            },
        )
        if not text:
            raise RuntimeError(f"Gemini returned an empty {schema_name} response")
        return json.loads(text)

    async def generate_text(self, *, prompt: str, temperature: float) -> str:
        """Request free-form text."""
        return await self._generate(prompt, {"temperature": temperature})

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _generate(
        self, prompt: str, generation_config: dict[str, object]
    ) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        response = await self.http_client.post(
            url,
            params={"key": self.api_key},
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": generation_config,
            },
            timeout=15,
        )
        response.raise_for_status()
        return _extract_text(response.json())


def to_gemini_schema(schema: object) -> object:
    """Convert a JSON Schema into the subset Gemini accepts.

    ``anyOf`` with a ``null`` branch becomes ``nullable``.
    """
    if isinstance(schema, list):
        return [to_gemini_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema
    branches = schema.get("anyOf")
    if isinstance(branches, list):
        non_null = [branch for branch in branches if branch.get("type") != "null"]
        if len(non_null) == 1 and len(non_null) < len(branches):
            converted = dict(to_gemini_schema(non_null[0]))
            converted["nullable"] = True
            return converted
    return {
        key: to_gemini_schema(value)
        for key, value in schema.items()
        if key not in _UNSUPPORTED_SCHEMA_KEYS
    }


def _extract_text(payload: dict[str, object]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return "".join(str(part.get("text", "")) for part in parts)
