"""
Watermark policy for hosted entry pages.

Free-plan projects carry a "Powered by" badge in their entry page. Whether
the badge is present is derived from ``(is_entry_file, owner_tier)`` and
recomputed on every write: the policy always strips every known marker
form first and then re-inserts at most one.

Marker forms recognised when stripping:
- current: a block between BEGIN_SENTINEL and END_SENTINEL comments
- legacy div: ``<div id="shamim-cloud-watermark" ...>...</div>``
- legacy text: ``Powered by Shamim Cloud``, with the div wrapping it

The policy is idempotent: applying it to its own output changes nothing.
"""

from __future__ import annotations

import html
import posixpath
import re

from .records import PlanTier

BEGIN_SENTINEL = "<!-- hostpanel:watermark:begin -->"
END_SENTINEL = "<!-- hostpanel:watermark:end -->"

ENTRY_FILE_NAME = "index.html"

LEGACY_DIV_RE = re.compile(r'<div id="shamim-cloud-watermark".*?</div>', re.S)
LEGACY_TEXT = "Powered by Shamim Cloud"
LEGACY_TEXT_DIV_RE = re.compile(
    r"<div\b[^>]*>(?:(?!</?div\b).)*?" + re.escape(LEGACY_TEXT) + r"(?:(?!</?div\b).)*?</div>",
    re.S | re.I,
)

_BADGE_STYLE = (
    "position:fixed; bottom:10px; right:10px; z-index:9999; "
    "background: linear-gradient(45deg, #6b21a8, #7c3aed); padding: 6px 12px; "
    "border-radius: 50px; font-family: sans-serif; font-size: 12px; "
    "box-shadow: 0 4px 15px rgba(0,0,0,0.3); pointer-events: auto; cursor: pointer;"
)
_LINK_STYLE = (
    "text-decoration: none; color: white; display: flex; align-items: center; gap: 5px;"
)


def _strip_sentinel_blocks(content: str) -> str:
    """Remove every BEGIN..END block, plus the newline that joined it."""
    out: list[str] = []
    pos = 0
    while True:
        begin = content.find(BEGIN_SENTINEL, pos)
        if begin == -1:
            out.append(content[pos:])
            break
        end = content.find(END_SENTINEL, begin + len(BEGIN_SENTINEL))
        if end == -1:
            # Unterminated block: drop the dangling sentinel only
            out.append(content[pos:begin])
            pos = begin + len(BEGIN_SENTINEL)
            continue

        head = content[pos:begin]
        stop = end + len(END_SENTINEL)
        if content.startswith("\n", stop):
            stop += 1
        elif stop == len(content) and head.endswith("\n"):
            head = head[:-1]
        out.append(head)
        pos = stop

    return "".join(out).replace(END_SENTINEL, "")


def _strip_legacy(content: str) -> str:
    content = LEGACY_DIV_RE.sub("", content)
    content = LEGACY_TEXT_DIV_RE.sub("", content)
    return content.replace(LEGACY_TEXT, "")


def strip_markers(content: str) -> str:
    """Remove all marker forms, repeating until nothing more matches."""
    while True:
        stripped = _strip_legacy(_strip_sentinel_blocks(content))
        if stripped == content:
            return stripped
        content = stripped


def count_markers(content: str) -> int:
    """Count marker instances of any recognised form."""
    current = content.count(BEGIN_SENTINEL)
    legacy = len(LEGACY_DIV_RE.findall(content))
    without_div = LEGACY_DIV_RE.sub("", content)
    return current + legacy + without_div.count(LEGACY_TEXT)


def is_entry_file(path: str, entry_name: str = ENTRY_FILE_NAME) -> bool:
    """Return True if ``path`` names a project's entry page."""
    return posixpath.basename(path) == entry_name


class WatermarkPolicy:
    """Branded watermark policy.

    Example:
        >>> policy = WatermarkPolicy(brand_name="ShamimCloud")
        >>> html = policy.apply("<body></body>", is_entry_file=True, tier="free")
    """

    def __init__(
        self,
        brand_name: str = "ShamimCloud",
        brand_url: str = "https://shamimcloud.vercel.app",
    ):
        self.brand_name = brand_name
        self.brand_url = brand_url
        self.marker = self._render_marker()

    def _render_marker(self) -> str:
        url = html.escape(self.brand_url, quote=True)
        name = html.escape(self.brand_name)
        return (
            f"{BEGIN_SENTINEL}\n"
            f'<div id="hostpanel-watermark" style="{_BADGE_STYLE}">\n'
            f'  <a href="{url}" target="_blank" rel="noopener" style="{_LINK_STYLE}">'
            f"&#128640; Powered by <b>{name}</b></a>\n"
            f"</div>\n"
            f"{END_SENTINEL}"
        )

    def apply(self, content: str, is_entry_file: bool, tier: PlanTier | str) -> str:
        """Return ``content`` with the watermark the tier calls for.

        Args:
            content: HTML (or any text)
            is_entry_file: Whether the content is a project's entry page
            tier: Owner's plan tier

        Returns:
            Content with exactly one marker for a free entry page, none
            otherwise
        """
        content = strip_markers(content)
        if not (is_entry_file and tier == PlanTier.FREE):
            return content

        close = content.lower().rfind("</body>")
        if close == -1:
            return f"{content}\n{self.marker}"
        return f"{content[:close]}{self.marker}\n{content[close:]}"


_default_policy = WatermarkPolicy()


def apply_policy(content: str, is_entry_file: bool, tier: PlanTier | str) -> str:
    """Apply the default-branded watermark policy. See WatermarkPolicy.apply."""
    return _default_policy.apply(content, is_entry_file, tier)
