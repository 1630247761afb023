"""Primary provider: Gemini ``generateContent`` over REST.

This is the only provider with grounding tools (Google Search and Google Maps),
so URL extraction and store lookup depend on it alone.
"""
import logging
from typing import Any, Dict, List

from mise_recipes.app.services.errors import MalformedResponseError
from mise_recipes.app.services.providers.base import (
    BaseProviderClient,
    GroundingKind,
    ProviderReply,
    ProviderRequest,
)

logger = logging.getLogger(__name__)


class GeminiClient(BaseProviderClient):
    name = "gemini"
    credential_env = "GEMINI_API_KEY"

    def _api_key(self) -> str:
        return self._require_key(self.settings.gemini_api_key)

    def build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [
            {"inline_data": {"mime_type": image.mime_type, "data": image.b64()}} for image in request.images
        ]
        parts.append({"text": request.prompt})
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}

        generation_config: Dict[str, Any] = {}
        if request.contract is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = request.contract.gemini_schema()
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if generation_config:
            payload["generationConfig"] = generation_config

        grounding = request.grounding
        if grounding is not None:
            if grounding.kind is GroundingKind.SEARCH:
                payload["tools"] = [{"google_search": {}}]
            else:
                payload["tools"] = [{"google_maps": {}}]
                if grounding.latitude is not None and grounding.longitude is not None:
                    payload["toolConfig"] = {
                        "retrievalConfig": {
                            "latLng": {"latitude": grounding.latitude, "longitude": grounding.longitude}
                        }
                    }
        return payload

    async def generate(self, request: ProviderRequest) -> ProviderReply:
        api_key = self._api_key()
        model = request.model or self.settings.gemini_model
        url = f"{self.settings.gemini_base_url.rstrip('/')}/v1beta/models/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}
        data = await self._post(url, self.build_payload(request), headers)

        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise MalformedResponseError(
                f"gemini returned no candidates (blockReason={feedback.get('blockReason')})", provider=self.name
            )
        candidate = candidates[0] or {}
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict) and not part.get("thought"))
        chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
        logger.debug("gemini raw content (%s): %s", model, text[:500])
        return self._build_reply(request, text, chunks)
