"""
Post fetching and extraction.

This package handles HTTP fetching, sitemap discovery, payload
extraction and media localisation.
"""

from .extractor import PostExtractor, decode_payload, parse_post_page
from .fetcher import Fetcher
from .media import download_media, find_media_urls, media_filename, rewrite_media_urls
from .sitemap import base_url, discover, parse_sitemap, sitemap_url

__all__ = [
    "Fetcher",
    "PostExtractor",
    "parse_post_page",
    "decode_payload",
    "discover",
    "parse_sitemap",
    "sitemap_url",
    "base_url",
    "download_media",
    "find_media_urls",
    "media_filename",
    "rewrite_media_urls",
]
