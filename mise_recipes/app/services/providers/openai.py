"""Fallback provider: OpenAI chat completions.

JSON mode only accepts an object at the root, so list-shaped contracts are
requested inside an envelope object and unwrapped by the normalizer.
"""
import logging
from typing import Any, Dict, List

from mise_recipes.app.services.errors import MalformedResponseError
from mise_recipes.app.services.providers.base import BaseProviderClient, ProviderReply, ProviderRequest

logger = logging.getLogger(__name__)


class OpenAIClient(BaseProviderClient):
    name = "openai"
    credential_env = "OPENAI_API_KEY"

    def _api_key(self) -> str:
        return self._require_key(self.settings.openai_api_key)

    def build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        system = request.system_prompt or "You are an expert chef API."
        if request.contract is not None:
            system = f"{system} Return strictly valid JSON matching this structure: {request.contract.prompt_hint()}."
        if request.grounding is not None:
            logger.debug("openai has no %s grounding; sending the request without it", request.grounding.kind.value)

        if request.images:
            content: Any = [{"type": "text", "text": request.prompt}]
            content.extend({"type": "image_url", "image_url": {"url": image.data_url()}} for image in request.images)
        else:
            content = request.prompt

        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system},
            {"role": "user", "content": content},
        ]
        payload: Dict[str, Any] = {
            "model": self.settings.openai_model,
            "messages": messages,
            "temperature": request.temperature if request.temperature is not None else self.settings.openai_temperature,
        }
        if request.contract is not None:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def generate(self, request: ProviderRequest) -> ProviderReply:
        api_key = self._api_key()
        url = f"{self.settings.openai_base_url.rstrip('/')}/v1/chat/completions"
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
        data = await self._post(url, self.build_payload(request), headers)

        choices = data.get("choices") or []
        if not choices:
            raise MalformedResponseError("openai returned no choices", provider=self.name)
        content = (choices[0].get("message") or {}).get("content")
        text = content if isinstance(content, str) else ""
        logger.debug("openai raw content: %s", text[:500])
        return self._build_reply(request, text)
