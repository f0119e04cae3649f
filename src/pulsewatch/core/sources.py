"""
Source type vocabulary and the content category each source maps to.
"""
from typing import Dict

from pulsewatch.core.entities import ContentCategory

REVIEW_SOURCES = frozenset({
    "g2",
    "capterra",
    "trustradius",
    "getapp",
    "softwareadvice",
    "gartnerpeerinsights",
    "facebookreviews",
})

CONTENT_SOURCES = frozenset({
    "blog",
    "linkedin",
    "facebook",
    "instagram",
    "news",
    "emailnewsletters",
    "companycontent",
})

COMMUNITY_SOURCES = frozenset({
    "reddit",
})

SOURCE_LABELS: Dict[str, str] = {
    "g2": "G2",
    "capterra": "Capterra",
    "trustradius": "TrustRadius",
    "getapp": "GetApp",
    "softwareadvice": "Software Advice",
    "gartnerpeerinsights": "Gartner Peer Insights",
    "facebookreviews": "Facebook Reviews",
    "linkedin": "LinkedIn",
    "x": "X",
    "youtube": "YouTube",
    "emailnewsletters": "Email Newsletters",
    "companycontent": "Company Content",
}


def normalize_source(source_type: str) -> str:
    return "".join(ch for ch in (source_type or "").lower() if ch.isalnum())


def source_label(source_type: str) -> str:
    key = normalize_source(source_type)
    if key in SOURCE_LABELS:
        return SOURCE_LABELS[key]
    if not key:
        return "Unknown"
    return key[0].upper() + key[1:]


def category_for_source(source_type: str) -> ContentCategory:
    """
    Map a source type to its content category.
    Anything not known as a review or community site is treated as company content.
    """
    key = normalize_source(source_type)
    if key in REVIEW_SOURCES:
        return ContentCategory.REVIEW
    if key in COMMUNITY_SOURCES:
        return ContentCategory.COMMUNITY
    return ContentCategory.COMPANY_CONTENT
