import io

import pytest
from PIL import Image

from tests.conftest import make_image_bytes, make_upload
from travelmap.services.media_normalizer import jpeg_name, needs_conversion, normalize_upload, scaled_size
from travelmap.utils.image_utils import UploadedImage


def test_jpeg_and_png_pass_through_untouched():
    for upload in (make_upload("a.jpg"), make_upload("b.png", "image/png")):
        assert normalize_upload(upload) is upload


def test_webp_is_converted_and_downscaled():
    upload = UploadedImage("wide.webp", "image/webp", make_image_bytes(3000, 1000, fmt="WEBP"))
    converted = normalize_upload(upload)

    assert converted.name == "wide.jpg"
    assert converted.content_type == "image/jpeg"
    with Image.open(io.BytesIO(converted.data)) as image:
        assert image.format == "JPEG"
        assert image.size == (2200, 733)


def test_small_webp_is_not_upscaled():
    upload = UploadedImage("small.WEBP", "", make_image_bytes(300, 200, fmt="WEBP"))
    assert needs_conversion(upload)
    with Image.open(io.BytesIO(normalize_upload(upload).data)) as image:
        assert image.size == (300, 200)


def test_broken_webp_falls_back_to_original():
    upload = UploadedImage("broken.webp", "image/webp", b"definitely not an image")
    assert normalize_upload(upload) is upload


def test_broken_heic_falls_back_to_original():
    pytest.importorskip("pillow_heif")
    upload = UploadedImage("IMG_0001.HEIC", "", b"\x00\x00\x00\x18ftypheic")
    assert needs_conversion(upload)
    assert normalize_upload(upload) is upload


def test_scaled_size_and_names():
    assert scaled_size(4400, 2200) == (2200, 1100)
    assert scaled_size(1000, 800) == (1000, 800)
    assert jpeg_name("IMG_1.heic") == "IMG_1.jpg"
    assert jpeg_name("") == "photo.jpg"
