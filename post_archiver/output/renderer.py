"""
Output rendering for extracted posts.

Posts are written as ``<output>/<slug>/<slug>.<format>`` in one of:
- html: The body fragment as extracted, optionally under an <h1> title
- md: Markdown converted with markdownify, YouTube embeds become thumbnail links
- txt: Plain text with scripts and styles removed
"""

from __future__ import annotations

import html
from pathlib import Path
import re

from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

from ..core.types import Post


_YOUTUBE_ID_RE = re.compile(r"(?:youtube\.com|youtube-nocookie\.com)/embed/([^&?/]+)")


class PostMarkdownConverter(MarkdownConverter):
    """markdownify converter that renders YouTube iframes as thumbnail links."""

    def convert_iframe(self, el, text, *args, **kwargs):
        src = el.get("src") or ""
        match = _YOUTUBE_ID_RE.search(src)
        if not match:
            return text
        video_id = match.group(1)
        title = el.get("title") or ""
        return (
            f"\n\n[![{title}](https://img.youtube.com/vi/{video_id}/0.jpg)]"
            f"(https://www.youtube.com/watch?v={video_id})\n\n"
        )


def to_html(post: Post, with_title: bool = True) -> str:
    if with_title:
        return f"<h1>{html.escape(post.title)}</h1>\n\n{post.body_html}"
    return post.body_html


def to_markdown(post: Post, with_title: bool = True) -> str:
    body = PostMarkdownConverter(heading_style=ATX).convert(post.body_html).strip()
    if with_title:
        return f"# {post.title}\n\n{body}\n"
    return f"{body}\n"


def to_text(post: Post, with_title: bool = True) -> str:
    soup = BeautifulSoup(post.body_html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    body = "\n".join([line.strip() for line in text.splitlines() if line.strip()])
    if with_title:
        return f"{post.title}\n\n{body}\n"
    return f"{body}\n"


def render_post(post: Post, fmt: str, with_title: bool = True) -> str:
    """Render a post body in the requested format.

    Raises:
        ValueError: If fmt is not "html", "md" or "txt"
    """
    if fmt == "html":
        return to_html(post, with_title)
    if fmt == "md":
        return to_markdown(post, with_title)
    if fmt == "txt":
        return to_text(post, with_title)
    raise ValueError(f"Unknown format: {fmt}")


def post_output_path(output_dir: Path, post: Post, fmt: str) -> Path:
    return output_dir / post.slug / f"{post.slug}.{fmt}"


def write_post(post: Post, path: Path, fmt: str, with_title: bool = True) -> Path:
    """Render a post and write it to path, creating parent folders."""
    content = render_post(post, fmt, with_title)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
