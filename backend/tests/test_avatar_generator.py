import base64
import random
import re

import httpx
import pytest

from registration.client.avatar_generator import (
    AvatarGenerator, AvatarRequest, available_styles,
    DEFAULT_AVATAR_API_URL, DEFAULT_STYLE, FEMALE_STYLE
)
from registration.client.face_detection import FacialCharacteristics

from factories import FakeServices

AVATAR_API_URL = "http://avatars.test/7.x"
STAMP = r"1700000000000-[0-9a-z]{6}"


@pytest.fixture
def generator():
    return AvatarGenerator(AVATAR_API_URL, rng=random.Random(7), clock=lambda: 1700000000.0)


def test_available_styles():
    assert [s["value"] for s in available_styles()] == [FEMALE_STYLE, DEFAULT_STYLE]


def test_female_gets_lorelei(generator):
    request = generator.intelligent_avatar(FacialCharacteristics(gender="female", age=31))
    assert request.style == "lorelei"
    assert re.fullmatch(r"female-31-medium-false-oval-" + STAMP, request.seed)


def test_other_genders_get_micah(generator):
    for gender in ("male", "neutral"):
        assert generator.intelligent_avatar(FacialCharacteristics(gender=gender)).style == "micah"


def test_seed_includes_every_characteristic(generator):
    characteristics = FacialCharacteristics(gender="male", age=40, skin_tone="dark",
                                            has_glasses=True, face_shape="long")
    seed = generator.characteristic_seed(characteristics)
    assert re.fullmatch(r"male-40-dark-true-long-" + STAMP, seed)


def test_seeds_differ_for_identical_characteristics(generator):
    characteristics = FacialCharacteristics()
    assert generator.characteristic_seed(characteristics) != generator.characteristic_seed(characteristics)


def test_fallback_avatar(generator):
    request = generator.request_for(None)
    assert request.style in (FEMALE_STYLE, DEFAULT_STYLE)
    assert re.fullmatch(r"fallback-" + STAMP, request.seed)


def test_request_url():
    url = httpx.URL(AvatarRequest("micah", "abc 1").url)
    assert str(url).startswith(DEFAULT_AVATAR_API_URL + "/micah/svg?")
    assert url.params["seed"] == "abc 1"
    assert url.params["size"] == "200"
    assert url.params["radius"] == "50"


@pytest.mark.asyncio
async def test_fetch_embedded_returns_data_uri(generator):
    services = FakeServices()
    async with httpx.AsyncClient(transport=httpx.MockTransport(services.handler)) as client:
        asset = await generator.fetch_embedded(AvatarRequest("micah", "s", AVATAR_API_URL), client)

    prefix = "data:image/svg+xml;base64,"
    assert asset.data_uri.startswith(prefix)
    assert base64.b64decode(asset.data_uri[len(prefix):]) == FakeServices.SVG
    assert asset.source_url.startswith(AVATAR_API_URL + "/micah/svg")


@pytest.mark.asyncio
async def test_fetch_embedded_propagates_http_errors(generator):
    services = FakeServices()
    services.avatar_status = 503
    async with httpx.AsyncClient(transport=httpx.MockTransport(services.handler)) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await generator.fetch_embedded(AvatarRequest("micah", "s", AVATAR_API_URL), client)
