"""Tests for the watermark policy and the hosted file write path."""

from __future__ import annotations

import pytest

from hostpanel_storage.records import PlanTier
from hostpanel_storage.remote import InMemoryContentsTransport
from hostpanel_storage.remote.client import ContentStoreClient
from hostpanel_storage.services.files import HostedFileWriter, is_html_file
from hostpanel_storage.watermark import (
    BEGIN_SENTINEL,
    END_SENTINEL,
    LEGACY_TEXT,
    WatermarkPolicy,
    apply_policy,
    count_markers,
    is_entry_file,
    strip_markers,
)

PAGE = "<html>\n<head><title>Blog</title></head>\n<body>\n<h1>Hello</h1>\n</body>\n</html>\n"

LEGACY_DIV = (
    '<div id="shamim-cloud-watermark" style="position:fixed; bottom:10px;">\n'
    '  <a href="https://shamimcloud.vercel.app">🚀 Powered by <b>ShamimCloud</b></a>\n'
    "</div>"
)

SAMPLES = [
    PAGE,
    "",
    "plain text, no markup",
    "<BODY>upper case</BODY>",
    "<body>first</body><body>second</body>",
    PAGE.replace("</body>", LEGACY_DIV + "\n</body>"),
    "<p>Powered by Shamim Cloud</p>",
    "<div class='badge'>Powered by Shamim Cloud</div><body></body>",
]


class TestApplyPolicy:
    """Tests for apply_policy."""

    @pytest.mark.parametrize("content", SAMPLES)
    @pytest.mark.parametrize("tier", ["free", "pro", "vip"])
    @pytest.mark.parametrize("entry", [True, False])
    def test_idempotent(self, content: str, tier: str, entry: bool) -> None:
        """Applying the policy to its own output changes nothing."""
        once = apply_policy(content, entry, tier)
        assert apply_policy(once, entry, tier) == once

    @pytest.mark.parametrize("content", SAMPLES)
    def test_free_entry_page_has_exactly_one_marker(self, content: str) -> None:
        """A free entry page always ends up with a single marker."""
        result = apply_policy(content, True, PlanTier.FREE)
        assert count_markers(result) == 1

    @pytest.mark.parametrize("content", SAMPLES)
    @pytest.mark.parametrize(
        "entry,tier", [(True, "pro"), (True, "vip"), (False, "free"), (False, "pro")]
    )
    def test_no_marker_otherwise(self, content: str, entry: bool, tier: str) -> None:
        """Paid tiers and non-entry files never carry a marker."""
        marked = apply_policy(content, True, "free")
        assert count_markers(apply_policy(marked, entry, tier)) == 0

    def test_marker_inserted_before_body_close(self) -> None:
        """The marker sits immediately before </body>."""
        result = apply_policy(PAGE, True, "free")
        body_close = result.index("</body>")
        marker_end = result.index(END_SENTINEL) + len(END_SENTINEL)
        assert result.index(BEGIN_SENTINEL) < body_close
        assert result[marker_end:body_close] == "\n"

    def test_marker_before_last_body_close(self) -> None:
        """With several </body> tags the last one is used."""
        result = apply_policy("<body>a</body><body>b</body>", True, "free")
        assert result.index(BEGIN_SENTINEL) > result.index("a</body>")
        assert result.endswith(f"{END_SENTINEL}\n</body>")

    def test_body_close_is_case_insensitive(self) -> None:
        """Upper-case </BODY> is found."""
        result = apply_policy("<BODY>x</BODY>", True, "free")
        assert result.endswith(f"{END_SENTINEL}\n</BODY>")

    def test_appended_without_body(self) -> None:
        """Content without </body> gets the marker at the end."""
        result = apply_policy("hello", True, "free")
        assert result.startswith("hello\n")
        assert result.endswith(END_SENTINEL)
        assert count_markers(result) == 1

    def test_strip_restores_original(self) -> None:
        """Removing the marker gives back the unmarked page."""
        assert strip_markers(apply_policy(PAGE, True, "free")) == PAGE
        assert strip_markers(apply_policy("hello", True, "free")) == "hello"

    def test_legacy_div_replaced(self) -> None:
        """A legacy watermark div is swapped for the current marker."""
        legacy = PAGE.replace("</body>", LEGACY_DIV + "\n</body>")
        result = apply_policy(legacy, True, "free")
        assert "shamim-cloud-watermark" not in result
        assert count_markers(result) == 1

    def test_legacy_text_removed_for_paid_tier(self) -> None:
        """Legacy text and its wrapping div are removed for paid users."""
        result = apply_policy("<div class='badge'>Powered by Shamim Cloud</div><p>x</p>", True, "pro")
        assert result == "<p>x</p>"

    def test_legacy_text_keeps_sibling_divs(self) -> None:
        """Stripping legacy text never swallows a neighbouring div's content."""
        page = '<div class="w"><div>Hello</div><footer>Powered by Shamim Cloud</footer></div>'

        result = apply_policy(page, True, "pro")

        assert "Hello" in result
        assert LEGACY_TEXT not in result
        assert result.count("<div") == result.count("</div>") == 2

    def test_duplicate_markers_collapse(self) -> None:
        """Several stacked markers collapse into one."""
        policy = WatermarkPolicy()
        stacked = f"<body>{policy.marker}\n{policy.marker}\n{LEGACY_DIV}</body>"
        result = policy.apply(stacked, True, "free")
        assert count_markers(result) == 1

    def test_custom_brand_is_escaped(self) -> None:
        """Brand names are HTML-escaped inside the marker."""
        policy = WatermarkPolicy(brand_name="A&B <Cloud>", brand_url="https://x.test/?a=1&b=2")
        assert "A&amp;B &lt;Cloud&gt;" in policy.marker
        assert 'href="https://x.test/?a=1&amp;b=2"' in policy.marker


class TestEntryFile:
    """Tests for entry page detection."""

    def test_is_entry_file(self) -> None:
        assert is_entry_file("index.html")
        assert is_entry_file("hosting/blog/index.html")
        assert not is_entry_file("about.html")
        assert not is_entry_file("index_bak.html")

    def test_is_html_file(self) -> None:
        assert is_html_file("index.html")
        assert is_html_file("PAGE.HTM")
        assert not is_html_file("style.css")
        assert not is_html_file("logo.png")


class TestHostedFileWriter:
    """Tests for the hosted file write path."""

    @pytest.fixture
    def transport(self) -> InMemoryContentsTransport:
        return InMemoryContentsTransport()

    @pytest.fixture
    def writer(self, transport: InMemoryContentsTransport) -> HostedFileWriter:
        return HostedFileWriter(ContentStoreClient(transport), WatermarkPolicy())

    async def test_free_entry_page_watermarked(
        self, writer: HostedFileWriter, transport: InMemoryContentsTransport
    ) -> None:
        """Uploading a free entry page stores it with one marker."""
        assert await writer.write("blog", "index.html", PAGE.encode(), "free", "Deploy")
        assert count_markers(transport.text("hosting/blog/index.html")) == 1

    async def test_other_pages_are_cleaned(
        self, writer: HostedFileWriter, transport: InMemoryContentsTransport
    ) -> None:
        """Non-entry HTML pages have markers removed."""
        marked = apply_policy(PAGE, True, "free")
        assert await writer.write("blog", "about.html", marked, "free", "Deploy")
        assert transport.text("hosting/blog/about.html") == PAGE

    async def test_binary_files_untouched(
        self, writer: HostedFileWriter, transport: InMemoryContentsTransport
    ) -> None:
        """Non-HTML content is stored byte for byte."""
        data = b"\x89PNG\r\n\x1a\n\x00\xff"
        assert await writer.write("blog", "logo.png", data, "free", "Deploy")
        assert transport.files["hosting/blog/logo.png"] == data

    def test_non_utf8_entry_page_still_watermarked(self, writer: HostedFileWriter) -> None:
        """A Latin-1 entry page gets one marker and keeps its own bytes."""
        data = "<html><body><h1>Café</h1></body></html>".encode("latin-1")

        rendered = writer.render("index.html", data, "free")

        text = rendered.decode("utf-8", "surrogateescape")
        assert count_markers(text) == 1
        assert text.index(BEGIN_SENTINEL) < text.index("</body>")
        assert strip_markers(text).encode("utf-8", "surrogateescape") == data

    def test_non_utf8_page_cleaned_for_paid_tier(self, writer: HostedFileWriter) -> None:
        data = b"<body>\xe9" + apply_policy("</body>", True, "free").encode()
        rendered = writer.render("index.html", data, "pro")
        assert count_markers(rendered.decode("utf-8", "surrogateescape")) == 0
        assert rendered.startswith(b"<body>\xe9")
