"""
Post Archiver - download posts from a hosted blogging platform.

This package discovers posts through a publication's sitemap, extracts
each post from the JSON payload embedded in its page, downloads the
images it references and writes it as HTML, Markdown or plain text.
A ledger of processed posts lets repeated runs skip finished work.

Main entry point is the CLI via `post-archiver download` command.

Example:
    $ post-archiver download -u https://example.substack.com -f md -o posts/
"""

__all__ = ["__version__", "Post", "ExtractResult", "PostExtractor", "BatchRunner", "DedupLedger"]
__version__ = "0.1.0"

from .batch import BatchRunner
from .core.ledger import DedupLedger
from .core.types import ExtractResult, Post
from .fetch.extractor import PostExtractor
