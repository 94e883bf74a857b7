"""Conversion of shared media links to iframe-embeddable URLs."""

from __future__ import annotations

import re

__all__ = ["convert_to_embed_url", "detect_media_type", "ensure_scheme"]

_GOOGLE_SLIDES = re.compile(r"docs\.google\.com/presentation/d/([a-zA-Z0-9_-]+)")
_YOUTUBE = re.compile(r"(?:youtube\.com/(?:watch\?v=|embed/)|youtu\.be/)([a-zA-Z0-9_-]{11})")
_LOOM = re.compile(r"loom\.com/share/([a-zA-Z0-9]+)")
_VIMEO = re.compile(r"(?:vimeo\.com/|player\.vimeo\.com/video/)(\d+)")
_RESID = re.compile(r"resid=([^&]+)")
_AUTHKEY = re.compile(r"authkey=([^&]+)")


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` to links typed without a scheme."""
    url = url.strip()
    if url and not url.startswith(("https://", "http://")):
        return f"https://{url}"
    return url


def _is_embed(url: str) -> bool:
    return "/embed" in url or "action=embedview" in url


def convert_to_embed_url(url: str | None) -> str | None:
    """Return an embeddable URL for ``url``, or None when it cannot be embedded."""
    if not url:
        return None

    if match := _GOOGLE_SLIDES.search(url):
        return (
            f"https://docs.google.com/presentation/d/{match.group(1)}"
            "/embed?start=false&loop=false&delayms=3000"
        )
    if match := _YOUTUBE.search(url):
        return f"https://www.youtube.com/embed/{match.group(1)}"
    if match := _LOOM.search(url):
        return f"https://www.loom.com/embed/{match.group(1)}"
    if match := _VIMEO.search(url):
        return f"https://player.vimeo.com/video/{match.group(1)}"

    if "onedrive.live.com" in url or "1drv.ms" in url:
        if "/embed" in url:
            return url
        if resid := _RESID.search(url):
            embed_url = f"https://onedrive.live.com/embed?resid={resid.group(1)}"
            if authkey := _AUTHKEY.search(url):
                embed_url += f"&authkey={authkey.group(1)}"
            return embed_url + "&em=2"
        # Short links render directly for public files
        if "1drv.ms" in url:
            return url

    if ".sharepoint.com" in url:
        if _is_embed(url):
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}action=embedview"

    if "office.com" in url or "officeapps.live.com" in url:
        return url
    if _is_embed(url):
        return url
    if url.startswith("https://"):
        return url
    return None


def detect_media_type(url: str | None) -> str:
    if not url:
        return "unknown"
    if "docs.google.com/presentation" in url:
        return "google"
    if "youtube.com" in url or "youtu.be" in url:
        return "youtube"
    if "loom.com" in url:
        return "loom"
    if "vimeo.com" in url:
        return "vimeo"
    if "onedrive.live.com" in url or "1drv.ms" in url:
        return "onedrive"
    if ".sharepoint.com" in url:
        return "sharepoint"
    if "office.com" in url or "officeapps.live.com" in url:
        return "office365"
    return "other"
