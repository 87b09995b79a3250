import json
import logging
import httpx
from typing import List, Optional
from pydantic import ValidationError
from ..config import settings
from ..models import CatalogItem
from ..state import PlaybackStore

logger = logging.getLogger(__name__)

class GalleryClient:
    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            base_url=(base_url or settings.SERVER_URL).rstrip('/'),
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport
        )

    async def close(self):
        await self.client.aclose()

    async def list_catalog(self) -> List[CatalogItem]:
        items = []
        try:
            resp = await self.client.get("/gallery")
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, list):
                logger.error(f"Unexpected catalog listing: {type(data).__name__}")
                return items

            for raw in data:
                try:
                    items.append(CatalogItem.model_validate(raw))
                except ValidationError as e:
                    logger.debug(f"Skipping unreadable catalog entry: {e}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch gallery: {e}")

        return items

    async def sync_catalog_names(self, store: PlaybackStore) -> int:
        """
        Refresh display names of every video in the catalog. Returns the
        number of items seen.
        """
        items = [i for i in await self.list_catalog() if i.is_video]
        for item in items:
            store.set_name(item.ID, item.Name)
        if items:
            logger.info(f"Refreshed names for {len(items)} catalog items")
        return len(items)

    async def request_recommendation(self, request: str, store: PlaybackStore) -> Optional[CatalogItem]:
        if not request.strip():
            logger.warning("Refusing to send empty recommendation request")
            return None

        # Server expects the whole local storage, stringified, as context
        payload = {"Request": request, "Context": json.dumps(store.dump())}
        logger.info(f"Requesting recommendation: {request}")
        try:
            resp = await self.client.post("/gallery/recommend", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Recommendation request failed: {e}")
            return None

        if not data or not isinstance(data, dict) or not data.get("ID"):
            logger.info("No recommendation")
            return None
        try:
            item = CatalogItem.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unreadable recommendation: {e}")
            return None

        logger.info(f"Recommended: {item.Name or item.ID}")
        return item

    async def post_log(self, level: str, message: str) -> bool:
        try:
            resp = await self.client.post("/gallery/log", json={"level": level, "message": message})
            resp.raise_for_status()
            return True
        except httpx.HTTPError:
            # Never log from here, records would loop back through the remote handler
            return False
