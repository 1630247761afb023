"""Primary -> fallback cascade.

At most two attempts, strictly one after the other. The fallback is only
issued once the primary failure has been observed.
"""
import logging
from typing import Optional, Protocol

from mise_recipes.app.services.errors import (
    BothProvidersFailedError,
    MalformedResponseError,
    MissingCredentialError,
    ProviderUnavailableError,
    UnsupportedFallbackError,
)
from mise_recipes.app.services.providers.base import ProviderReply, ProviderRequest

logger = logging.getLogger(__name__)

_RECOVERABLE = (MissingCredentialError, ProviderUnavailableError, MalformedResponseError)


class ProviderClient(Protocol):
    name: str

    async def generate(self, request: ProviderRequest) -> ProviderReply: ...


async def run_with_fallback(
    operation: str,
    request: ProviderRequest,
    primary: ProviderClient,
    fallback: Optional[ProviderClient] = None,
) -> ProviderReply:
    try:
        return await primary.generate(request)
    except _RECOVERABLE as exc:
        exc.operation = operation
        if fallback is None:
            if isinstance(exc, MissingCredentialError):
                raise
            logger.error("%s failed on %s and has no fallback: %s", operation, primary.name, exc.message)
            raise UnsupportedFallbackError(operation, exc) from exc
        primary_error = exc

    logger.warning(
        "%s failed on %s (%s), attempting %s fallback...",
        operation,
        primary.name,
        primary_error.error_code,
        fallback.name,
    )
    try:
        return await fallback.generate(request)
    except _RECOVERABLE as exc:
        exc.operation = operation
        logger.error("%s failed on both %s and %s", operation, primary.name, fallback.name)
        raise BothProvidersFailedError(operation, primary_error, exc) from exc
