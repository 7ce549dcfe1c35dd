"""
record_manager.py – Create-or-update logic for one inventory record.

Orchestrates eligibility, term resolution, media, the create/update call,
relation edges and the write-back of results to the record source.
"""

import logging
from typing import Callable, Optional

from .changes import diff, is_eligible
from .client import AUTOS_ENDPOINT, WordPressClient
from .exceptions import RequestError, ResolutionError, SyncError, ValidationError
from .media import MediaIds, MediaPipeline
from .models import (
    EXTERIOR_GALLERY_KEY,
    FIELD_LAST_SYNC,
    FIELD_MAKE_ID,
    FIELD_MODEL_ID,
    FIELD_POST_ID,
    FIELD_STATUS_MESSAGE,
    INTERIOR_GALLERY_KEY,
    META_FIELDS,
    POST_PUBLISH,
    POST_TRASH,
    STATUS_HISTORIC,
    STATUS_PURCHASED,
    TAXONOMY_BRANCH,
    TAXONOMY_CLASSIFICATION,
    TAXONOMY_MAKES,
    TAXONOMY_MODELS,
    TITLE_META_KEY,
    ContentPayload,
    InventoryRecord,
    Outcome,
    SyncResult,
    SyncStage,
    parse_id,
    utc_now,
)
from .relations import RelationIds, link_content_object
from .sources import RecordSource
from .terms import resolve_term

logger = logging.getLogger(__name__)

MSG_PUBLISHED = "Success: vehicle published/updated."
MSG_TRASHED = "Moved to Historico."
MSG_UNCHANGED = "Success: no changes."
MSG_INVALID_KEY = "ordencompra is empty or invalid"


def publication_state(status: str, post_id: Optional[int]) -> Optional[str]:
    """Map a record status to the post status; None means leave the post alone."""
    if status == STATUS_PURCHASED:
        return POST_PUBLISH
    if status == STATUS_HISTORIC and post_id:
        return POST_TRASH
    return None


class RecordManager:
    """Synchronises single records with the ``autos`` post type."""

    def __init__(
        self,
        client: WordPressClient,
        source: RecordSource,
        media: Optional[MediaPipeline] = None,
        relation_ids: Optional[RelationIds] = None,
        clock: Callable = utc_now,
    ) -> None:
        self.client = client
        self.source = source
        self.media = media
        self.relation_ids = relation_ids or RelationIds()
        self._clock = clock

    # ------------------------------------------------------------------
    # Remote lookups
    # ------------------------------------------------------------------

    def find_post_id(self, ordencompra: str) -> Optional[int]:
        """Return the id of the post carrying *ordencompra*, or None.

        Lookup failures raise RequestError: treating them as "not found"
        would create a duplicate post.
        """
        posts = self.client.request("GET", AUTOS_ENDPOINT, params={"ordencompra": ordencompra})
        if not isinstance(posts, list) or not all(isinstance(p, dict) for p in posts):
            raise RequestError(
                self.client.url_for(AUTOS_ENDPOINT), None, repr(posts)[:500],
                message=f"Unexpected search response for ordencompra '{ordencompra}'",
            )
        if posts:
            post_id = parse_id(posts[0].get("id"))
            logger.debug("Post for ordencompra '%s': %s", ordencompra, post_id)
            return post_id
        return None

    def fetch_post(self, post_id: int) -> dict:
        posts = self.client.request("GET", AUTOS_ENDPOINT, params={"id": post_id})
        if isinstance(posts, list) and posts and isinstance(posts[0], dict):
            return posts[0]
        raise RequestError(
            self.client.url_for(AUTOS_ENDPOINT), None, repr(posts)[:500],
            message=f"Post {post_id} could not be fetched",
        )

    # ------------------------------------------------------------------
    # Payload
    # ------------------------------------------------------------------

    def build_payload(
        self,
        record: InventoryRecord,
        status: str,
        make_id: int,
        model_id: int,
        branch_id: Optional[int],
        classification_id: Optional[int],
        media: MediaIds,
    ) -> ContentPayload:
        name = " ".join(p for p in (record.make, record.model) if p)
        title = " ".join(p for p in (name, record.year) if p)

        meta: dict = {key: record.text(field) for key, field in META_FIELDS}
        meta[TITLE_META_KEY] = name
        meta[EXTERIOR_GALLERY_KEY] = list(media.exterior)
        meta[INTERIOR_GALLERY_KEY] = list(media.interior)

        return ContentPayload(
            title=title,
            content=record.text("metadescripcion") or f"Detalles para {title}",
            status=status,
            featured_media=media.featured or 0,
            meta=meta,
            taxonomies={
                TAXONOMY_MAKES: [make_id],
                TAXONOMY_MODELS: [model_id],
                TAXONOMY_CLASSIFICATION: [classification_id] if classification_id else [],
                TAXONOMY_BRANCH: [branch_id] if branch_id else [],
            },
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def sync_record(self, record: InventoryRecord, manual: bool = False) -> SyncResult:
        """
        Create, update, retire or skip the post for *record*.

        Errors specific to this record are caught here: the message is written
        to the row's status field and its sync time is left untouched so the
        row is retried next run. Unexpected exceptions propagate.
        """
        result = SyncResult(row_number=record.row_number, ordencompra=record.ordencompra)
        if not is_eligible(record, manual=manual):
            result.enter(SyncStage.INELIGIBLE)
            return result

        try:
            self._sync(record, result)
        except SyncError as exc:
            result.enter(SyncStage.ERROR)
            result.outcome = Outcome.FAILED
            result.error = exc
            result.message = f"Error: {exc}"
            logger.error("Row %s (%s): %s", record.row_number, record.ordencompra or "-", exc)
            self.source.write_fields(record, {FIELD_STATUS_MESSAGE: result.message})
        return result

    def _sync(self, record: InventoryRecord, result: SyncResult) -> None:
        if not record.ordencompra:
            raise ValidationError(MSG_INVALID_KEY)

        status = record.status
        if publication_state(status, record.post_id) is None:
            result.enter(SyncStage.SKIPPED)
            result.message = f"Skipped: status '{status}' needs no post"
            logger.debug("Row %s: %s", record.row_number, result.message)
            return

        result.enter(SyncStage.RESOLVING)
        post_id = self.find_post_id(record.ordencompra)
        post_status = publication_state(status, post_id)
        if post_status is None:
            result.enter(SyncStage.SKIPPED)
            result.message = f"Skipped: no post found for ordencompra '{record.ordencompra}'"
            logger.info("Row %s: %s", record.row_number, result.message)
            return

        make_id = resolve_term(self.client, TAXONOMY_MAKES, record.make)
        model_id = resolve_term(self.client, TAXONOMY_MODELS, record.model)
        if not make_id or not model_id:
            raise ResolutionError(
                f"could not resolve make '{record.make}' / model '{record.model}'"
            )
        branch_id = self._optional_term(TAXONOMY_BRANCH, record.text("sucursal"))
        classification_id = self._optional_term(TAXONOMY_CLASSIFICATION, record.text("clasificacionid"))

        if self.media is not None:
            media = self.media.resolve(record, lambda values: self.source.write_fields(record, values))
        else:
            media = MediaIds(
                featured=record.featured_image_id or 0,
                exterior=record.exterior_image_ids,
                interior=record.interior_image_ids,
            )

        payload = self.build_payload(
            record, post_status, make_id, model_id, branch_id, classification_id, media
        )

        if post_id is None:
            result.enter(SyncStage.CREATING)
            post_id = self._create(payload)
            result.outcome = Outcome.CREATED
            result.changed_fields = payload.to_dict()
            result.message = MSG_PUBLISHED
        else:
            result.enter(SyncStage.UPDATING)
            existing = self.fetch_post(post_id)
            if post_status == POST_TRASH:
                # Retiring a post only moves it to the trash; its fields stay as published.
                changes = {} if existing.get("status") == POST_TRASH else {"status": POST_TRASH}
            else:
                changes = diff(payload, existing)
            if not changes:
                result.enter(SyncStage.NOOP)
                result.outcome = Outcome.UNCHANGED
                result.message = MSG_UNCHANGED
                logger.info("Post %s unchanged (row %s)", post_id, record.row_number)
            else:
                self.client.request("POST", f"{AUTOS_ENDPOINT}/{post_id}", changes)
                result.changed_fields = changes
                if post_status == POST_TRASH:
                    result.outcome = Outcome.TRASHED
                    result.message = MSG_TRASHED
                else:
                    result.outcome = Outcome.UPDATED
                    result.message = MSG_PUBLISHED
                logger.info(
                    "Updated post %s (row %s): %s",
                    post_id, record.row_number, ", ".join(sorted(changes)),
                )
        result.post_id = post_id

        link_content_object(self.client, post_id, make_id, model_id, branch_id, self.relation_ids)
        result.enter(SyncStage.LINKED)

        self.source.write_fields(record, {
            FIELD_STATUS_MESSAGE: result.message,
            FIELD_POST_ID: post_id,
            FIELD_MAKE_ID: make_id,
            FIELD_MODEL_ID: model_id,
            FIELD_LAST_SYNC: self._clock(),
        })
        result.enter(SyncStage.DONE)

    def _optional_term(self, taxonomy: str, name: str) -> Optional[int]:
        if not name:
            return None
        return resolve_term(self.client, taxonomy, name)

    def _create(self, payload: ContentPayload) -> int:
        created = self.client.request("POST", AUTOS_ENDPOINT, payload.to_dict())
        post_id = parse_id(created.get("id")) if isinstance(created, dict) else None
        if post_id is None:
            raise RequestError(
                self.client.url_for(AUTOS_ENDPOINT), None, repr(created)[:500],
                message="Creating the post returned no id",
            )
        logger.info("Created post %s for '%s'", post_id, payload.title)
        return post_id
