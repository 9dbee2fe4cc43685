"""
Output generation.

This package renders extracted posts to HTML, Markdown
or plain text files.
"""

from .renderer import post_output_path, render_post, to_html, to_markdown, to_text, write_post

__all__ = [
    "render_post",
    "to_html",
    "to_markdown",
    "to_text",
    "post_output_path",
    "write_post",
]
