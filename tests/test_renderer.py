from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import png_bytes
from snappydoo.constants import DEFAULT_BUILDER_URL
from snappydoo.services.renderer import PlaywrightRenderer, builder_url, image_size


@pytest.mark.unit
def test_builder_url_encodes_message_into_msg_parameter() -> None:
    message = '{"attachments": [{"text": "Fish & chips #1"}]}'

    url = builder_url(DEFAULT_BUILDER_URL, message)

    assert url.startswith(DEFAULT_BUILDER_URL + "?msg=")
    encoded = url[len(DEFAULT_BUILDER_URL + "?msg=") :]
    for raw in ("&", "#", " ", "/", '"'):
        assert raw not in encoded
    assert parse_qs(urlsplit(url).query)["msg"] == [message]


@pytest.mark.unit
def test_builder_url_appends_to_existing_query() -> None:
    url = builder_url("https://builder.test/app?mode=dark", "a&b")

    assert url == "https://builder.test/app?mode=dark&msg=a%26b"
    assert parse_qs(urlsplit(url).query) == {"mode": ["dark"], "msg": ["a&b"]}


@pytest.mark.unit
def test_image_size_reads_png_and_rejects_other_bytes() -> None:
    assert image_size(png_bytes(6, 3)) == (6, 3)
    with pytest.raises(ValueError, match="not a valid image"):
        image_size(b"<html></html>")


class _Context:
    def __init__(self) -> None:
        self.closed = False

    async def new_page(self):
        raise RuntimeError("target closed")

    async def close(self) -> None:
        self.closed = True


class _Browser:
    def __init__(self) -> None:
        self.contexts = []

    async def new_context(self, **kwargs):
        context = _Context()
        self.contexts.append((context, kwargs))
        return context


@pytest.mark.unit
@pytest.mark.asyncio
async def test_open_page_closes_context_when_page_creation_fails() -> None:
    renderer = PlaywrightRenderer()
    browser = _Browser()
    renderer._browser = browser

    with pytest.raises(RuntimeError, match="target closed"):
        await renderer.open_page()

    context, kwargs = browser.contexts[0]
    assert context.closed
    assert kwargs["viewport"] == {"width": 1000, "height": 600}
