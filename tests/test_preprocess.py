import base64
import os
import sys

import cv2
import numpy as np

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.extraction.preprocess import (
    TARGET_WIDTH,
    prepare_payload,
    sniff_mime,
    strip_data_url,
)


def _noise_png(width: int, height: int) -> str:
    rng = np.random.default_rng(0)
    img = rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return base64.b64encode(buf.tobytes()).decode("ascii")


def _decoded_width(prepared) -> int:
    arr = np.frombuffer(base64.b64decode(prepared.data), dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    assert img is not None
    return img.shape[1]


def test_strip_data_url():
    assert strip_data_url("data:image/png;base64,QUJD") == "QUJD"
    assert strip_data_url("QUJD") == "QUJD"


def test_large_image_is_downscaled_and_smaller():
    payload = "data:image/png;base64," + _noise_png(1600, 1200)
    prepared = prepare_payload(payload)
    assert prepared.optimized_bytes < prepared.original_bytes
    assert prepared.mime_type in ("image/webp", "image/jpeg")
    assert _decoded_width(prepared) == TARGET_WIDTH
    assert prepared.reduction_pct > 0


def test_small_image_is_never_enlarged():
    prepared = prepare_payload(_noise_png(200, 100))
    assert _decoded_width(prepared) == 200
    assert prepared.optimized_bytes <= prepared.original_bytes


def test_garbage_payload_passes_through():
    prepared = prepare_payload("not-an-image!!")
    assert prepared.data == "not-an-image!!"


def test_undecodable_image_bytes_fall_back_to_original():
    data = base64.b64encode(b"\x00" * 64).decode("ascii")
    prepared = prepare_payload(data)
    assert prepared.data == data
    assert prepared.optimized_bytes == prepared.original_bytes == 64


def test_optimization_can_be_disabled():
    data = _noise_png(1600, 1200)
    prepared = prepare_payload("data:image/png;base64," + data, optimize=False)
    assert prepared.data == data
    assert prepared.mime_type == "image/png"


def test_sniff_mime():
    assert sniff_mime(b"\xff\xd8\xff\xe0") == "image/jpeg"
    assert sniff_mime(b"\x89PNG\r\n") == "image/png"
    assert sniff_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
