"""
Purpose: Map platform category labels onto one unified category vocabulary.
Constraints: Pure helpers only; no side effects.
"""

# Imports
from typing import Dict, FrozenSet, Optional


UNIFIED_CATEGORIES: FrozenSet[str] = frozenset(
    {
        "wildcard",
        "url",
        "cidr",
        "android",
        "ios",
        "ai",
        "hardware",
        "blockchain",
        "binary",
        "code",
        "other",
    }
)

# Raw labels seen on HackerOne, Bugcrowd, Intigriti, YesWeHack and Immunefi.
_CATEGORY_TABLE: Dict[str, str] = {
    "wildcard": "wildcard",
    "url": "url",
    "website": "url",
    "web": "url",
    "api": "url",
    "domain": "url",
    "ip_address": "url",
    "ip-address": "url",
    "web-application": "url",
    "websites_and_applications": "url",
    "cidr": "cidr",
    "iprange": "cidr",
    "ip-range": "cidr",
    "network": "cidr",
    "android": "android",
    "google_play_app_id": "android",
    "other_apk": "android",
    "mobile-application-android": "android",
    "ios": "ios",
    "apple_store_app_id": "ios",
    "testflight": "ios",
    "other_ipa": "ios",
    "mobile-application-ios": "ios",
    "ai": "ai",
    "ai_model": "ai",
    "hardware": "hardware",
    "device": "hardware",
    "iot": "hardware",
    "blockchain": "blockchain",
    "smart_contract": "blockchain",
    "binary": "binary",
    "executable": "binary",
    "application": "binary",
    "downloadable_executables": "binary",
    "windows_app_store_app_id": "binary",
    "code": "code",
    "source_code": "code",
    "other": "other",
}

# Filter names accepted by --category.
_FILTERS: Dict[str, FrozenSet[str]] = {
    "wildcard": frozenset({"wildcard"}),
    "url": frozenset({"url", "wildcard"}),
    "cidr": frozenset({"cidr"}),
    "mobile": frozenset({"android", "ios"}),
    "android": frozenset({"android"}),
    "apple": frozenset({"ios"}),
    "ios": frozenset({"ios"}),
    "ai": frozenset({"ai"}),
    "hardware": frozenset({"hardware"}),
    "blockchain": frozenset({"blockchain"}),
    "binary": frozenset({"binary"}),
    "executable": frozenset({"binary"}),
    "code": frozenset({"code", "blockchain"}),
    "other": frozenset({"other"}),
}


# Helpers
def flatten_text(text: Optional[str]) -> str:
    """Collapse newlines so a description fits on one output line."""
    if not text:
        return ""
    return text.replace("\r", "").replace("\n", "  ").strip()


def _cosmetic(label: str) -> str:
    return " ".join(label.replace("_", " ").replace("-", " ").split())


# Public API
def is_wildcard_target(target: Optional[str]) -> bool:
    return bool(target) and target.strip().startswith("*.")


def normalize_category(raw: Optional[str], target: Optional[str] = None) -> str:
    """Return the unified category for a raw platform label.

    A wildcard-shaped target wins over whatever label the platform sent.
    Unknown labels are passed through with separators turned into spaces.
    """
    if is_wildcard_target(target):
        return "wildcard"
    label = (raw or "").strip().lower()
    if not label:
        return "other"
    mapped = _CATEGORY_TABLE.get(label)
    if mapped:
        return mapped
    return _cosmetic(label) or "other"


def category_filter(name: Optional[str]) -> Optional[FrozenSet[str]]:
    """Return the unified categories selected by a filter name, or None for all."""
    key = (name or "all").strip().lower()
    if key in ("", "all"):
        return None
    if key not in _FILTERS:
        raise ValueError(f"Unknown category filter: {name}")
    return _FILTERS[key]


def matches_category_filter(raw: Optional[str], target: Optional[str], name: Optional[str]) -> bool:
    selected = category_filter(name)
    if selected is None:
        return True
    return normalize_category(raw, target) in selected
