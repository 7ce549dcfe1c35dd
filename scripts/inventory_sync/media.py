"""
media.py – Photo pipeline: download, optimise and upload vehicle photos,
reusing media ids already cached on the record.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from .client import WordPressClient
from .exceptions import MediaError, RequestError
from .imaging import OPTIMIZED_CONTENT_TYPE, OPTIMIZED_SUFFIX, optimize_image
from .models import (
    FIELD_EXTERIOR_IDS,
    FIELD_FEATURED_IMAGE_ID,
    FIELD_INTERIOR_IDS,
    InventoryRecord,
    sanitize_filename,
)

logger = logging.getLogger(__name__)

Optimizer = Callable[[bytes], Optional[bytes]]
WriteBack = Callable[[dict], None]

_USER_AGENT = "inventory-sync/1.0 (+https://wordpress.org/)"


@dataclass
class MediaIds:
    """Media ids to attach to a post."""

    featured: int = 0
    exterior: list[int] = field(default_factory=list)
    interior: list[int] = field(default_factory=list)


class MediaPipeline:
    """Turns photo URLs into WordPress media ids."""

    def __init__(
        self,
        client: WordPressClient,
        optimizer: Optimizer = optimize_image,
        *,
        session: Optional[requests.Session] = None,
        delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 20,
    ) -> None:
        self._client = client
        self._optimizer = optimizer
        self._session = session or requests.Session()
        self._delay = delay
        self._sleep = sleep
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, record: InventoryRecord, write_back: WriteBack) -> MediaIds:
        """
        Return the media ids for *record*.

        Cached ids are used as-is. Otherwise each photo is uploaded once and
        the new ids are handed to *write_back* straight away, so a later
        failure in the same record does not cause a re-upload next run.
        """
        label = f"{record.make} {record.model}".strip()
        ids = MediaIds()

        cached_featured = record.featured_image_id
        if cached_featured:
            logger.debug("Row %s: reusing featured image %s", record.row_number, cached_featured)
            ids.featured = cached_featured
        elif record.text("fotooficial"):
            media_id = self.upload_from_url(record.text("fotooficial"), f"{label} Oficial")
            if media_id:
                ids.featured = media_id
                write_back({FIELD_FEATURED_IMAGE_ID: media_id})

        ids.exterior = self._resolve_gallery(
            record.exterior_image_ids, record.exterior_photo_urls,
            f"{label} Exterior", FIELD_EXTERIOR_IDS, write_back,
        )
        ids.interior = self._resolve_gallery(
            record.interior_image_ids, record.interior_photo_urls,
            f"{label} Interior", FIELD_INTERIOR_IDS, write_back,
        )
        return ids

    def upload_from_url(self, url: str, title: str) -> Optional[int]:
        """Download, optimise and upload one image; None on any failure."""
        self._sleep(self._delay)
        try:
            original = self._download(url)
            optimized = self._optimizer(original)
            if optimized is None:
                raise MediaError(f"optimisation failed for {url}")
            filename = sanitize_filename(title) + OPTIMIZED_SUFFIX
            return self._client.upload_media(optimized, filename, OPTIMIZED_CONTENT_TYPE, alt_text=title)
        except (MediaError, RequestError) as exc:
            logger.warning("Image from '%s' not uploaded: %s", url, exc)
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_gallery(
        self,
        cached: list[int],
        urls: list[str],
        title: str,
        cache_field: str,
        write_back: WriteBack,
    ) -> list[int]:
        if cached:
            return cached
        uploaded = [i for i in (self.upload_from_url(url, title) for url in urls) if i]
        if uploaded:
            write_back({cache_field: ",".join(str(i) for i in uploaded)})
        return uploaded

    def _download(self, url: str) -> bytes:
        try:
            resp = self._session.get(url, timeout=self._timeout, headers={"User-Agent": _USER_AGENT})
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise MediaError(f"download failed: {exc}") from exc
        if not resp.content:
            raise MediaError("download returned no data")
        return resp.content
