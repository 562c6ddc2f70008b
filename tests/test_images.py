"""Tests for image prompt composition, URLs and preloading."""

import random
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, unquote, urlsplit

import httpx
import pytest

from romance_city.images import (
    BASE_STYLE,
    ImageGenerator,
    ImagePreloader,
    ImageRequest,
    build_image_request,
    styled_prompt,
)


class TestBuildImageRequest:
    def test_background_only(self) -> None:
        req = build_image_request("A quiet park at dusk.", None)
        assert req == ImageRequest(prompt="A quiet park at dusk.", kind="background")

    def test_with_character(self) -> None:
        req = build_image_request("A quiet park at dusk.", "A woman in a red dress")
        assert req.kind == "scene"
        assert req.prompt == (
            "A quiet park at dusk.. A character is present in the scene: A woman in a red dress"
        )

    def test_empty_speaker_visual_is_background(self) -> None:
        assert build_image_request("Park.", "").kind == "background"


class TestStyledPrompt:
    def test_background_suffix(self) -> None:
        text = styled_prompt(ImageRequest(prompt="Park", kind="background"))
        assert text.startswith(BASE_STYLE + ", Park, ")
        assert text.endswith("no characters, scenery only, wide shot, empty room")

    def test_scene_suffix(self) -> None:
        text = styled_prompt(ImageRequest(prompt="Park", kind="scene"))
        assert "with characters in the scene, character focus" in text


class TestImageGenerator:
    def test_url_shape(self) -> None:
        gen = ImageGenerator(base_url="https://img.test/")
        url = gen.url_for(ImageRequest(prompt="Beach & sun", kind="background"), seed=42)
        parts = urlsplit(url)
        assert parts.netloc == "img.test"
        assert parts.path.startswith("/prompt/")
        assert unquote(parts.path[len("/prompt/"):]) == styled_prompt(
            ImageRequest(prompt="Beach & sun", kind="background")
        )
        query = parse_qs(parts.query)
        assert query == {
            "width": ["1280"],
            "height": ["720"],
            "seed": ["42"],
            "nologo": ["true"],
            "model": ["flux"],
        }

    def test_prompt_is_fully_encoded(self) -> None:
        url = ImageGenerator().url_for(ImageRequest(prompt="a/b?c", kind="background"), seed=1)
        path = urlsplit(url).path
        assert "?" not in path
        assert path.count("/") == 2

    def test_random_seed_in_range(self) -> None:
        gen = ImageGenerator(rng=random.Random(7))
        for _ in range(20):
            url = gen.url_for(ImageRequest(prompt="x", kind="background"))
            seed = int(parse_qs(urlsplit(url).query)["seed"][0])
            assert 0 <= seed < 1_000_000


def _image_response(content_type: str = "image/jpeg", content: bytes = b"\xff\xd8data", status: int = 200):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = {"content-type": content_type}
    resp.content = content
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


class TestImagePreloader:
    @pytest.fixture
    def preload(self) -> ImagePreloader:
        return ImagePreloader(timeout=5)

    async def test_loaded_image(self, preload: ImagePreloader) -> None:
        mock_get = AsyncMock(return_value=_image_response())
        with patch("httpx.AsyncClient.get", mock_get):
            assert await preload("https://img.test/prompt/x") is True
        assert mock_get.call_args[0][0] == "https://img.test/prompt/x"

    async def test_http_error(self, preload: ImagePreloader) -> None:
        mock_get = AsyncMock(return_value=_image_response(status=502))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await preload("https://img.test/prompt/x") is False

    async def test_connect_error(self, preload: ImagePreloader) -> None:
        mock_get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await preload("https://img.test/prompt/x") is False

    async def test_not_an_image(self, preload: ImagePreloader) -> None:
        mock_get = AsyncMock(return_value=_image_response(content_type="text/html"))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await preload("https://img.test/prompt/x") is False

    async def test_empty_body(self, preload: ImagePreloader) -> None:
        mock_get = AsyncMock(return_value=_image_response(content=b""))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await preload("https://img.test/prompt/x") is False
