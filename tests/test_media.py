from __future__ import annotations

import io

import pytest
import requests
from PIL import Image

from conftest import FakeResponse, FakeSession, FakeWordPress, make_record
from inventory_sync.exceptions import RequestError
from inventory_sync.imaging import optimize_image
from inventory_sync.media import MediaPipeline


def _pipeline(wp: FakeWordPress, responses: list, optimizer=lambda data: data[::-1]) -> tuple[MediaPipeline, FakeSession, list]:
    session = FakeSession(responses)
    sleeps: list[float] = []
    return MediaPipeline(wp, optimizer, session=session, delay=1.0, sleep=sleeps.append), session, sleeps


def _png(width: int, height: int, mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height)).save(buf, "PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def test_upload_from_url_downloads_optimises_and_uploads(wp: FakeWordPress) -> None:
    pipeline, session, sleeps = _pipeline(wp, [FakeResponse(200, content=b"abc")])

    media_id = pipeline.upload_from_url("https://img.test/a.jpg", "Nissan Versa Oficial")

    assert media_id is not None
    assert sleeps == [1.0]
    assert session.calls[0][1] == "https://img.test/a.jpg"
    assert wp.media[media_id]["content"] == b"cba"
    assert wp.media[media_id]["filename"] == "Nissan_Versa_Oficial.webp"
    assert wp.media[media_id]["alt_text"] == "Nissan Versa Oficial"


def test_failed_download_yields_none(wp: FakeWordPress) -> None:
    pipeline, _, _ = _pipeline(wp, [FakeResponse(404, text="missing")])

    assert pipeline.upload_from_url("https://img.test/gone.jpg", "x") is None
    assert wp.media == {}


def test_transport_error_yields_none(wp: FakeWordPress) -> None:
    pipeline, _, _ = _pipeline(wp, [requests.ConnectionError("refused")])

    assert pipeline.upload_from_url("https://img.test/a.jpg", "x") is None


def test_optimiser_failure_skips_upload(wp: FakeWordPress) -> None:
    pipeline, _, _ = _pipeline(wp, [FakeResponse(200, content=b"abc")], optimizer=lambda data: None)

    assert pipeline.upload_from_url("https://img.test/a.jpg", "x") is None
    assert wp.media == {}


def test_upload_error_yields_none(wp: FakeWordPress) -> None:
    def failing_upload(*args, **kwargs):
        raise RequestError("https://wp.test/wp-json/wp/v2/media", 413, "too large")

    wp.upload_media = failing_upload
    pipeline, _, _ = _pipeline(wp, [FakeResponse(200, content=b"abc")])

    assert pipeline.upload_from_url("https://img.test/a.jpg", "x") is None


def test_resolve_reuses_cached_ids_without_downloads(wp: FakeWordPress) -> None:
    pipeline, session, _ = _pipeline(wp, [])
    record = make_record(
        featured_image_id="5",
        fotos_exterior_ids="6,7",
        fotos_interior_ids="8",
        fotooficial="https://img.test/o.jpg",
        fotos_exterior="https://img.test/a.jpg",
    )
    writes: list[dict] = []

    ids = pipeline.resolve(record, writes.append)

    assert (ids.featured, ids.exterior, ids.interior) == (5, [6, 7], [8])
    assert session.calls == []
    assert writes == []


def test_resolve_uploads_and_writes_back_new_ids(wp: FakeWordPress) -> None:
    pipeline, _, _ = _pipeline(wp, [
        FakeResponse(200, content=b"o"),
        FakeResponse(200, content=b"a"),
        FakeResponse(404),
        FakeResponse(200, content=b"i"),
    ])
    record = make_record(
        fotooficial="https://img.test/o.jpg",
        fotos_exterior="https://img.test/a.jpg, https://img.test/broken.jpg",
        fotos_interior="https://img.test/i.jpg",
    )
    writes: list[dict] = []

    ids = pipeline.resolve(record, writes.append)

    assert len(ids.exterior) == 1
    assert len(ids.interior) == 1
    assert writes == [
        {"featured_image_id": ids.featured},
        {"fotos_exterior_ids": str(ids.exterior[0])},
        {"fotos_interior_ids": str(ids.interior[0])},
    ]
    titles = [c[3]["alt_text"] for c in wp.calls if c[0] == "UPLOAD"]
    assert titles == ["Nissan Versa Advance Oficial", "Nissan Versa Advance Exterior", "Nissan Versa Advance Interior"]


def test_resolve_without_photos_returns_empty_ids(wp: FakeWordPress) -> None:
    pipeline, session, _ = _pipeline(wp, [])

    ids = pipeline.resolve(make_record(), lambda values: None)

    assert (ids.featured, ids.exterior, ids.interior) == (0, [], [])
    assert session.calls == []


# ---------------------------------------------------------------------------
# Image optimisation
# ---------------------------------------------------------------------------

def test_wide_image_is_scaled_and_converted_to_webp() -> None:
    result = optimize_image(_png(2400, 1200))

    with Image.open(io.BytesIO(result)) as img:
        assert img.format == "WEBP"
        assert img.size == (1200, 600)


def test_small_image_keeps_its_size() -> None:
    with Image.open(io.BytesIO(optimize_image(_png(300, 200, mode="P")))) as img:
        assert img.size == (300, 200)


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_invalid_image_data_yields_none(data: bytes) -> None:
    assert optimize_image(data) is None
