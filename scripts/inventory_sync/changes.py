"""
changes.py – Eligibility checks and field-level diffs between the desired
post payload and the post currently stored in WordPress.
"""

from typing import Any, Optional

from .models import (
    EPOCH,
    SCALAR_FIELDS,
    STATUS_HISTORIC,
    STATUS_PURCHASED,
    ContentPayload,
    InventoryRecord,
    parse_id,
)


def is_eligible(record: InventoryRecord, manual: bool = False) -> bool:
    """Return True when *record* should be synchronised in this run.

    A record qualifies when it changed after its last sync and is either
    purchased, or historic with a post to retire. In *manual* mode the
    timestamp comparison is skipped.
    """
    if not manual:
        last_modified = record.last_modified
        if last_modified is None:
            return False
        last_sync = record.last_sync_time or EPOCH
        if last_modified <= last_sync:
            return False

    status = record.status
    if status == STATUS_PURCHASED:
        return True
    return status == STATUS_HISTORIC and record.post_id is not None


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------

def _unwrap_scalar(value: Any) -> Any:
    """WordPress may return ``{"raw": ..., "rendered": ...}`` for text fields."""
    if isinstance(value, dict):
        if "raw" in value:
            return value["raw"]
        if "rendered" in value:
            return value["rendered"]
    return value


def _scalar_equal(field: str, desired: Any, existing: Any) -> bool:
    if field == "featured_media":
        return (parse_id(desired) or 0) == (parse_id(existing) or 0)
    return desired == existing


def _unwrap_meta(value: Any) -> Any:
    """Remote meta values arrive as single-element lists."""
    if isinstance(value, (list, tuple)) and len(value) == 1:
        return value[0]
    return value


def _canonical(value: Any) -> Any:
    """Canonical form for meta comparison: strings, recursively for lists."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _meta_equal(desired: Any, existing: Any) -> bool:
    existing = _unwrap_meta(existing)
    # A one-item gallery is unwrapped to its id; compare it as a list again.
    if isinstance(desired, list) and not isinstance(existing, (list, tuple)) and existing is not None:
        existing = [existing]
    return _canonical(desired) == _canonical(existing)


def _term_set(ids: Any) -> set[int]:
    if not isinstance(ids, (list, tuple, set)):
        ids = [ids] if ids not in (None, "") else []
    return {i for i in (parse_id(v) for v in ids) if i is not None}


def diff(desired: ContentPayload, existing: Optional[dict]) -> dict[str, Any]:
    """Return the subset of *desired* that differs from the *existing* post.

    The result only contains changed scalar fields, changed meta keys and
    taxonomies whose term sets differ; empty ``meta``/``taxonomies`` maps are
    left out. An empty result means nothing needs sending.
    """
    existing = existing or {}
    desired_data = desired.to_dict()
    changes: dict[str, Any] = {}

    for field in SCALAR_FIELDS:
        value = desired_data[field]
        if not _scalar_equal(field, value, _unwrap_scalar(existing.get(field))):
            changes[field] = value

    existing_meta = existing.get("meta") or {}
    meta_changes = {
        key: value
        for key, value in desired.meta.items()
        if not _meta_equal(value, existing_meta.get(key))
    }
    if meta_changes:
        changes["meta"] = meta_changes

    existing_taxonomies = existing.get("taxonomies") or {}
    taxonomy_changes = {
        name: list(ids)
        for name, ids in desired.taxonomies.items()
        if _term_set(ids) != _term_set(existing_taxonomies.get(name, []))
    }
    if taxonomy_changes:
        changes["taxonomies"] = taxonomy_changes

    return changes
