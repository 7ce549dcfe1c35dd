"""
models.py – Record, payload and result types shared by the sync modules.

The content-object schema is enumerated here (scalar fields, meta keys and
taxonomy names) so that payload building and diffing work over known fields.
"""

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Record statuses and publication states
# ---------------------------------------------------------------------------

STATUS_PURCHASED = "Comprado"
STATUS_HISTORIC = "Historico"

POST_PUBLISH = "publish"
POST_TRASH = "trash"

# ---------------------------------------------------------------------------
# Content-object schema
# ---------------------------------------------------------------------------

SCALAR_FIELDS = ("title", "content", "status", "featured_media")

# (meta key on the post, field key on the record); values are string-coerced.
META_FIELDS: tuple[tuple[str, str], ...] = (
    ("ordenstatus", "ordenstatus"),
    ("ordencompra", "ordencompra"),
    ("ordenid", "ordenid"),
    ("autoano", "autoano"),
    ("autoprecio", "autoprecio"),
    ("autokilometraje", "autokilometraje"),
    ("automotor", "automotor"),
    ("autocombustible", "autocombustible"),
    ("autotransmision", "autotransmision"),
    ("autocilindros", "autocilindros"),
    ("color_exterior", "colorexterior"),
    ("color_interior", "colorinterior"),
    ("autogarantia", "autogarantia"),
    ("detalles_esteticos", "detallesesteticos"),
    ("monto_separacion", "montoseparacion"),
    ("enganche", "enganchemin"),
    ("plazo", "plazo"),
    ("nosiniestros", "nosiniestros"),
    ("mensualidad", "mensualidad"),
    ("fotooficial", "fotooficial"),
    ("proximamente", "proximamente"),
    ("separado", "separado"),
)

# Meta keys computed while building the payload rather than copied.
TITLE_META_KEY = "titulo"
EXTERIOR_GALLERY_KEY = "fotos_exterior"
INTERIOR_GALLERY_KEY = "fotos_interior"

META_KEYS = tuple(key for key, _ in META_FIELDS) + (
    TITLE_META_KEY,
    EXTERIOR_GALLERY_KEY,
    INTERIOR_GALLERY_KEY,
)

TAXONOMY_MAKES = "makes"
TAXONOMY_MODELS = "models"
TAXONOMY_CLASSIFICATION = "clasificacionid"
TAXONOMY_BRANCH = "sucursal"

TAXONOMIES = (TAXONOMY_MAKES, TAXONOMY_MODELS, TAXONOMY_CLASSIFICATION, TAXONOMY_BRANCH)

# Record fields written back to the source.
FIELD_STATUS_MESSAGE = "estatus"
FIELD_POST_ID = "post_id"
FIELD_LAST_SYNC = "last_sync_time"
FIELD_MAKE_ID = "make_id"
FIELD_MODEL_ID = "model_id"
FIELD_FEATURED_IMAGE_ID = "featured_image_id"
FIELD_EXTERIOR_IDS = "fotos_exterior_ids"
FIELD_INTERIOR_IDS = "fotos_interior_ids"


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

_TIMESTAMP_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a sheet timestamp cell, returning None when empty or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return ensure_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def parse_id(value: Any) -> Optional[int]:
    """Parse a remote identifier cached in a cell ('123', 123, '123.0')."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = int(float(text))
    except ValueError:
        return None
    return number if number > 0 else None


def parse_id_list(value: Any) -> list[int]:
    """Parse a comma-separated id cell into a list of ints, dropping junk."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        parts = value
    else:
        parts = str(value).split(",")
    return [i for i in (parse_id(p) for p in parts) if i is not None]


def split_urls(value: Any) -> list[str]:
    """Split a comma-separated URL cell into a list of trimmed URLs."""
    if not isinstance(value, str):
        return []
    return [url.strip() for url in value.split(",") if url.strip()]


def as_text(value: Any) -> str:
    """String-coerce a cell value; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Inventory record
# ---------------------------------------------------------------------------

@dataclass
class InventoryRecord:
    """One row of the inventory sheet, keyed by internal field names.

    *row_number* is the 1-based row in the source (the header is row 1).
    """

    row_number: int
    fields: dict[str, Any] = field(default_factory=dict)

    def text(self, key: str) -> str:
        return as_text(self.fields.get(key)).strip()

    @property
    def ordencompra(self) -> str:
        return self.text("ordencompra")

    @property
    def status(self) -> str:
        return self.text("ordenstatus")

    @property
    def make(self) -> str:
        return self.text("automarca")

    @property
    def model(self) -> str:
        return self.text("autosubmarcaversion")

    @property
    def year(self) -> str:
        return self.text("autoano")

    @property
    def last_modified(self) -> Optional[datetime]:
        return parse_timestamp(self.fields.get("ultimamodificacion"))

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return parse_timestamp(self.fields.get(FIELD_LAST_SYNC))

    @property
    def post_id(self) -> Optional[int]:
        return parse_id(self.fields.get(FIELD_POST_ID))

    @property
    def featured_image_id(self) -> Optional[int]:
        return parse_id(self.fields.get(FIELD_FEATURED_IMAGE_ID))

    @property
    def exterior_image_ids(self) -> list[int]:
        return parse_id_list(self.fields.get(FIELD_EXTERIOR_IDS))

    @property
    def interior_image_ids(self) -> list[int]:
        return parse_id_list(self.fields.get(FIELD_INTERIOR_IDS))

    @property
    def exterior_photo_urls(self) -> list[str]:
        return split_urls(self.fields.get("fotos_exterior"))

    @property
    def interior_photo_urls(self) -> list[str]:
        return split_urls(self.fields.get("fotos_interior"))


# ---------------------------------------------------------------------------
# Content-object payload
# ---------------------------------------------------------------------------

@dataclass
class ContentPayload:
    """Desired state of an ``autos`` post, built from one record."""

    title: str
    content: str
    status: str
    featured_media: int = 0
    meta: dict[str, Any] = field(default_factory=dict)
    taxonomies: dict[str, list[int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "status": self.status,
            "featured_media": self.featured_media,
            "meta": dict(self.meta),
            "taxonomies": {name: list(ids) for name, ids in self.taxonomies.items()},
        }


# ---------------------------------------------------------------------------
# Orchestration results
# ---------------------------------------------------------------------------

class SyncStage(enum.Enum):
    """States a record passes through while being synchronised."""

    INELIGIBLE = "ineligible"
    RESOLVING = "resolving"
    CREATING = "creating"
    UPDATING = "updating"
    NOOP = "noop"
    SKIPPED = "skipped"
    LINKED = "linked"
    DONE = "done"
    ERROR = "error"


class Outcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    TRASHED = "trashed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of synchronising one record."""

    row_number: int
    ordencompra: str
    outcome: Outcome = Outcome.SKIPPED
    post_id: Optional[int] = None
    message: str = ""
    error: Optional[Exception] = None
    changed_fields: dict[str, Any] = field(default_factory=dict)
    stages: list[SyncStage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stage(self) -> Optional[SyncStage]:
        return self.stages[-1] if self.stages else None

    def enter(self, stage: SyncStage) -> None:
        self.stages.append(stage)


_FILENAME_RE = re.compile(r"[^a-z0-9\-_.]", re.IGNORECASE)


def sanitize_filename(name: str) -> str:
    """Replace anything but letters, digits, '-', '_' and '.' with '_'."""
    return _FILENAME_RE.sub("_", name)
