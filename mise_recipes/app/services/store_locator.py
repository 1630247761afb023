import logging
from typing import Any, Dict, List, Optional

from mise_recipes.app.schemas.recipe import StoreLocation
from mise_recipes.app.services.errors import ExtractionError
from mise_recipes.app.services.providers.base import Grounding, GroundingKind, ProviderRequest

logger = logging.getLogger(__name__)


def _store_from_chunk(chunk: Dict[str, Any]) -> Optional[StoreLocation]:
    maps = chunk.get("maps") if isinstance(chunk, dict) else None
    if not isinstance(maps, dict):
        return None
    name = (maps.get("title") or "").strip()
    if not name:
        return None
    sources = maps.get("placeAnswerSources")
    place_id = None
    if isinstance(sources, list) and sources and isinstance(sources[0], dict):
        place_id = sources[0].get("placeId")
    elif isinstance(sources, dict):
        place_id = sources.get("placeId")
    rating = maps.get("rating")
    return StoreLocation(
        name=name,
        address=maps.get("address") or maps.get("text") or place_id or "Nearby",
        uri=maps.get("uri"),
        rating=rating if isinstance(rating, (int, float)) and not isinstance(rating, bool) else None,
    )


def dedupe_stores(stores: List[StoreLocation], limit: int = 3) -> List[StoreLocation]:
    """Deduplicate by exact name (the later entry wins) and keep at most ``limit``."""
    by_name: Dict[str, StoreLocation] = {}
    for store in stores:
        by_name[store.name] = store
    return list(by_name.values())[:limit]


class StoreLocator:
    """Finds nearby places selling an ingredient via maps grounding.

    Only the primary provider can ground on maps data, so there is no fallback.
    Lookup is an enhancement: any failure yields an empty list.
    """

    def __init__(self, client, model: Optional[str] = None, limit: int = 3):
        self.client = client
        self.model = model
        self.limit = min(limit, 3)

    async def find(self, ingredient: str, latitude: float, longitude: float) -> List[StoreLocation]:
        request = ProviderRequest(
            prompt=(
                f"Find 3 closest grocery stores near lat:{latitude}, long:{longitude} "
                f"that likely sell {ingredient}."
            ),
            grounding=Grounding(GroundingKind.MAPS, latitude=latitude, longitude=longitude),
            model=self.model,
        )
        try:
            reply = await self.client.generate(request)
        except ExtractionError as exc:
            logger.warning("Store lookup for %r failed on %s: %s", ingredient, exc.provider, exc.message)
            return []
        stores = [store for store in (_store_from_chunk(c) for c in reply.grounding_chunks) if store is not None]
        return dedupe_stores(stores, self.limit)
