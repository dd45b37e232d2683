"""Per-platform content adaptation applied before each channel publish."""

from __future__ import annotations

from dataclasses import dataclass

from pubflow.publishing.models import Channel, PublishableContent

ELLIPSIS = "..."


@dataclass(frozen=True)
class PlatformLimits:
    max_length: int
    hashtag_limit: int


PLATFORM_LIMITS: dict[str, PlatformLimits] = {
    "twitter": PlatformLimits(max_length=280, hashtag_limit=2),
    "linkedin": PlatformLimits(max_length=3000, hashtag_limit=5),
    "facebook": PlatformLimits(max_length=2000, hashtag_limit=10),
    "instagram": PlatformLimits(max_length=2200, hashtag_limit=30),
    "tiktok": PlatformLimits(max_length=150, hashtag_limit=5),
}


def truncate(text: str, max_length: int) -> str:
    """Cut *text* to *max_length* characters, ending in an ellipsis when cut."""
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[:max_length]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def _merge_tags(tags: tuple[str, ...], defaults: tuple[str, ...], limit: int | None) -> tuple[str, ...]:
    merged: list[str] = []
    seen: set[str] = set()
    for tag in (*tags, *defaults):
        key = tag.lstrip("#").lower()
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(tag)
    if limit is not None:
        merged = merged[:limit]
    return tuple(merged)


def adapt_content(content: PublishableContent, channel: Channel) -> PublishableContent:
    """Return *content* adjusted to the channel's platform limits and default hashtags.

    Unknown platforms keep the body and tags as-is, plus the channel defaults.
    """
    limits = PLATFORM_LIMITS.get(channel.platform.lower())
    body = truncate(content.body, limits.max_length) if limits else content.body
    tags = _merge_tags(content.tags, channel.settings.default_hashtags, limits.hashtag_limit if limits else None)
    if body == content.body and tags == content.tags:
        return content
    return content.model_copy(update={"body": body, "tags": tags})


def blocked_term(content: PublishableContent, channel: Channel) -> str | None:
    """Return the first channel content filter found in *content*, if any."""
    haystack = " ".join((content.title, content.body, *content.tags)).lower()
    for term in channel.settings.content_filters:
        needle = term.strip().lower()
        if needle and needle in haystack:
            return term
    return None
