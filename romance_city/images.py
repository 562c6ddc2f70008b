"""Scene image URLs and off-screen preloading.

The image service renders on GET: the URL itself is the request, so building
it needs no network call. ImagePreloader fetches the image once so that the
URL is only committed to GameState after the picture actually exists.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Literal
from urllib.parse import quote, urlencode

import httpx

logger = logging.getLogger(__name__)

ImageKind = Literal["background", "scene"]

BASE_STYLE = (
    "Summertime Saga style, western visual novel art, 2d cartoon, high quality, "
    "american cartoon style, vibrant colors, clean lines, detailed background"
)

KIND_SUFFIX: dict[str, str] = {
    "background": "no characters, scenery only, wide shot, empty room",
    "scene": "with characters in the scene, character focus, interaction, detailed character design",
}


@dataclass(frozen=True)
class ImageRequest:
    prompt: str
    kind: ImageKind


def build_image_request(background_description: str, speaker_visual: str | None) -> ImageRequest:
    if speaker_visual:
        return ImageRequest(
            prompt=f"{background_description}. A character is present in the scene: {speaker_visual}",
            kind="scene",
        )
    return ImageRequest(prompt=background_description, kind="background")


def styled_prompt(request: ImageRequest) -> str:
    return f"{BASE_STYLE}, {request.prompt}, {KIND_SUFFIX[request.kind]}"


class ImageGenerator:
    """Turns an ImageRequest into a directly fetchable image URL."""

    def __init__(
        self,
        base_url: str = "https://image.pollinations.ai",
        width: int = 1280,
        height: int = 720,
        model: str = "flux",
        rng: random.Random | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._width = width
        self._height = height
        self._model = model
        self._rng = rng or random.Random()

    def url_for(self, request: ImageRequest, seed: int | None = None) -> str:
        if seed is None:
            seed = self._rng.randrange(1_000_000)
        encoded = quote(styled_prompt(request), safe="!~*'()")
        query = urlencode({
            "width": self._width,
            "height": self._height,
            "seed": seed,
            "nologo": "true",
            "model": self._model,
        })
        return f"{self._base_url}/prompt/{encoded}?{query}"


class ImagePreloader:
    """Downloads an image fully before it is shown.

    Image generation can take a while; the timeout is generous.
    """

    def __init__(self, timeout: float = 120.0) -> None:
        self._timeout = timeout

    async def __call__(self, url: str) -> bool:
        """Return True once the whole image has arrived, False on any failure."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Image preload failed for %s: %s", url, e)
            return False

        content_type = resp.headers.get("content-type", "")
        if not content_type.startswith("image/") or not resp.content:
            logger.warning("Image preload got %r (%d bytes), not an image", content_type, len(resp.content))
            return False
        return True
