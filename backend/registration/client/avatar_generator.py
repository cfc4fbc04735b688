"""
Avatar Generator - placeholder avatars from an image-by-seed service.

The style follows the detected gender (lorelei for female, micah otherwise);
the seed mixes the characteristics with a millisecond timestamp and a random
suffix so two students with similar features still get different avatars.
Without characteristics both style and seed are random ("fallback avatar").

The generated image is downloaded and embedded as a data URI so the stored
record does not depend on the external service staying up.
"""

import base64
import random
import string
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from registration.client.face_detection import FacialCharacteristics
from registration.logging_config import get_logger, log_with_context

logger = get_logger("avatar")

DEFAULT_AVATAR_API_URL = "https://api.dicebear.com/7.x"
FEMALE_STYLE = "lorelei"
DEFAULT_STYLE = "micah"
AVATAR_SIZE = 200
AVATAR_RADIUS = 50

BASE36 = string.digits + string.ascii_lowercase


def available_styles():
    return [
        {"value": FEMALE_STYLE, "label": "Lorelei", "description": "Professional female style"},
        {"value": DEFAULT_STYLE, "label": "Micah", "description": "Professional male style"},
    ]


@dataclass
class AvatarRequest:
    style: str
    seed: str
    base_url: str = DEFAULT_AVATAR_API_URL
    size: int = AVATAR_SIZE
    radius: int = AVATAR_RADIUS

    @property
    def url(self) -> str:
        return str(httpx.URL(
            "{}/{}/svg".format(self.base_url.rstrip("/"), self.style),
            params={"seed": self.seed, "size": self.size, "radius": self.radius},
        ))


@dataclass
class AvatarAsset:
    source_url: str
    data_uri: str


class AvatarGenerator:
    def __init__(self, base_url: str = DEFAULT_AVATAR_API_URL,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.time):
        self.base_url = base_url
        self.rng = rng or random.Random()
        self.clock = clock

    def _stamp(self) -> str:
        millis = int(self.clock() * 1000)
        suffix = "".join(self.rng.choice(BASE36) for _ in range(6))
        return "{}-{}".format(millis, suffix)

    def characteristic_seed(self, characteristics: FacialCharacteristics) -> str:
        c = characteristics
        return "{}-{}-{}-{}-{}-{}".format(
            c.gender, c.age, c.skin_tone, str(c.has_glasses).lower(), c.face_shape, self._stamp())

    def intelligent_avatar(self, characteristics: FacialCharacteristics) -> AvatarRequest:
        style = FEMALE_STYLE if characteristics.gender == "female" else DEFAULT_STYLE
        request = AvatarRequest(style, self.characteristic_seed(characteristics), self.base_url)
        log_with_context(logger, "INFO", "Generated avatar request",
                         extra_data={"style": style, "seed": request.seed})
        return request

    def fallback_avatar(self) -> AvatarRequest:
        style = self.rng.choice([FEMALE_STYLE, DEFAULT_STYLE])
        request = AvatarRequest(style, "fallback-{}".format(self._stamp()), self.base_url)
        log_with_context(logger, "INFO", "Generated fallback avatar request",
                         extra_data={"style": style, "seed": request.seed})
        return request

    def request_for(self, characteristics: Optional[FacialCharacteristics]) -> AvatarRequest:
        if characteristics is None:
            return self.fallback_avatar()
        return self.intelligent_avatar(characteristics)

    async def fetch_embedded(self, request: AvatarRequest, client: httpx.AsyncClient) -> AvatarAsset:
        """Download the avatar and return it as a data URI. HTTP errors propagate."""
        url = request.url
        response = await client.get(url)
        response.raise_for_status()

        content_type = response.headers.get("content-type", "image/svg+xml").split(";")[0].strip()
        encoded = base64.b64encode(response.content).decode("ascii")
        log_with_context(logger, "DEBUG", "Avatar embedded",
                         extra_data={"bytes": len(response.content), "content_type": content_type})
        return AvatarAsset(source_url=url, data_uri="data:{};base64,{}".format(content_type, encoded))
