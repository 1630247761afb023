"""Request/reply types shared by the provider clients, plus JSON repair helpers."""
import base64
import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from mise_recipes.app.core.config import Settings, get_settings
from mise_recipes.app.services.errors import (
    MalformedResponseError,
    MissingCredentialError,
    ProviderUnavailableError,
)
from mise_recipes.app.services.output_contract import ContractKind, OutputContract

logger = logging.getLogger(__name__)


class GroundingKind(str, enum.Enum):
    SEARCH = "search"
    MAPS = "maps"


@dataclass(frozen=True)
class Grounding:
    kind: GroundingKind
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str = "image/jpeg"

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64()}"


@dataclass
class ProviderRequest:
    prompt: str
    system_prompt: Optional[str] = None
    images: List[ImagePart] = field(default_factory=list)
    contract: Optional[OutputContract] = None
    grounding: Optional[Grounding] = None
    model: Optional[str] = None
    temperature: Optional[float] = None


class ReplyShape(str, enum.Enum):
    OBJECT = "object"
    ARRAY = "array"
    ENVELOPE = "envelope"
    TEXT = "text"


@dataclass
class ProviderReply:
    provider: str
    shape: ReplyShape
    body: Any = None
    text: str = ""
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)


def detect_content_type(image_bytes: bytes) -> str:
    """Detect image content type from magic bytes."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    elif image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    elif image_bytes.startswith(b"GIF87a") or image_bytes.startswith(b"GIF89a"):
        return "image/gif"
    elif image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    else:
        return "image/jpeg"


def _strip_invalid_control_chars(s: str) -> str:
    """Remove ASCII control chars that frequently break json.loads (except \n, \r, \t)."""
    return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F]", "", s)


def _strip_code_fence(text: str) -> str:
    txt = text.strip()
    if txt.startswith("```"):
        txt = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", txt, count=1)
        txt = re.sub(r"\s*```$", "", txt, count=1).strip()
    return txt


def parse_json_content(raw: str) -> Any:
    """Parse model output as JSON, repairing fences, control chars and surrounding prose."""
    cleaned = _strip_code_fence(_strip_invalid_control_chars(raw))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = cleaned.find(open_char)
        end = cleaned.rfind(close_char)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise MalformedResponseError(f"Response was not valid JSON: {cleaned[:200]}")


class BaseProviderClient:
    """Shared plumbing: lazy credentials, timeouts, transport errors, contract checks."""

    name = "provider"
    credential_env = ""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _api_key(self) -> str:
        raise NotImplementedError

    def _require_key(self, value: Optional[str]) -> str:
        if not value:
            raise MissingCredentialError(
                f"{self.credential_env} is not set; the {self.name} provider cannot be used.",
                provider=self.name,
            )
        return value

    def _timeout(self) -> httpx.Timeout:
        s = self.settings
        return httpx.Timeout(s.provider_timeout_seconds, connect=s.provider_connect_timeout_seconds)

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout(), transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError(f"{self.name} timed out", provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            detail = _error_message(data) or resp.text[:500]
            logger.warning("%s returned status %s: %s", self.name, resp.status_code, detail)
            raise ProviderUnavailableError(
                f"{self.name} returned status {resp.status_code}: {detail}",
                status_code=resp.status_code,
                provider=self.name,
            )
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.name} returned a non-JSON envelope", provider=self.name)
        if "error" in data:
            detail = _error_message(data) or "unknown error"
            raise ProviderUnavailableError(f"{self.name} error: {detail}", provider=self.name)
        return data

    async def generate(self, request: ProviderRequest) -> ProviderReply:
        raise NotImplementedError

    def _build_reply(
        self, request: ProviderRequest, text: str, grounding_chunks: Optional[List[Dict[str, Any]]] = None
    ) -> ProviderReply:
        chunks = grounding_chunks or []
        if request.contract is None:
            return ProviderReply(provider=self.name, shape=ReplyShape.TEXT, text=text, grounding_chunks=chunks)
        if not text or not text.strip():
            raise MalformedResponseError(f"Empty response from {self.name}", provider=self.name)
        try:
            body = request.contract.validate(parse_json_content(text))
        except MalformedResponseError as exc:
            exc.provider = self.name
            logger.warning("%s returned malformed content: %s", self.name, text[:500])
            raise
        if isinstance(body, list):
            shape = ReplyShape.ARRAY
        elif request.contract.kind is ContractKind.SUGGESTIONS:
            shape = ReplyShape.ENVELOPE
        else:
            shape = ReplyShape.OBJECT
        return ProviderReply(provider=self.name, shape=shape, body=body, text=text, grounding_chunks=chunks)


def _error_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict) or "error" not in data:
        return None
    error_info = data["error"]
    if isinstance(error_info, dict):
        return str(error_info.get("message") or error_info.get("status") or error_info)[:500]
    return str(error_info)[:500]
