"""
Catalog Mapping.

Static lookup tables built once per process from the environment:

- price id -> display name, registration-link keys, archive-session keys
- registration key -> session title and registration URL
- archive session key -> title, video id, duration
- circle membership product id (full archive access)

All tables are immutable; use get_catalog() to access the process-wide
instance and reset_catalog() in tests after changing the environment.
"""

import json
import logging
import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from shared.constants import REGISTRATION_KEY_ORDER, SESSION_KEY_ORDER

logger = logging.getLogger(__name__)

DEFAULT_CIRCLE_PRODUCT_ID = "prod_TA2S72xlZ4teEN"


@dataclass(frozen=True)
class CatalogEntry:
    """A purchasable item and the access it grants."""

    price_id: str
    display_name: str
    registration_keys: tuple[str, ...]
    archive_session_keys: tuple[str, ...]


@dataclass(frozen=True)
class ArchiveSession:
    """Archived recording shown on the archive page."""

    key: str
    title: str
    video_id: str
    duration: str
    coming_soon: Optional[str] = None


def canonical_order(keys: Iterable[str], order: tuple[str, ...]) -> list[str]:
    """Filter keys against a fixed ordering; unknown keys are dropped."""
    present = set(keys)
    return [key for key in order if key in present]


class Catalog:
    """Immutable lookup tables for one event."""

    def __init__(
        self,
        entries: Iterable[CatalogEntry],
        registration_titles: Mapping[str, str],
        registration_urls: Mapping[str, str],
        archive_sessions: Iterable[ArchiveSession],
        circle_product_id: str,
    ):
        self._entries = MappingProxyType({e.price_id: e for e in entries})
        self._registration_titles = MappingProxyType(dict(registration_titles))
        self._registration_urls = MappingProxyType(dict(registration_urls))
        self._archive_sessions = MappingProxyType({s.key: s for s in archive_sessions})
        self.circle_product_id = circle_product_id

    @property
    def entries(self) -> Mapping[str, CatalogEntry]:
        return self._entries

    @property
    def archive_sessions(self) -> Mapping[str, ArchiveSession]:
        return self._archive_sessions

    def lookup(self, price_id: Optional[str]) -> Optional[CatalogEntry]:
        if not price_id:
            return None
        return self._entries.get(price_id)

    def archive_keys_for(self, price_id: Optional[str]) -> tuple[str, ...]:
        entry = self.lookup(price_id)
        return entry.archive_session_keys if entry else ()

    def registration_title(self, key: str) -> str:
        return self._registration_titles.get(key, key)

    def registration_url(self, key: str) -> Optional[str]:
        return self._registration_urls.get(key)

    @property
    def full_access_keys(self) -> tuple[str, ...]:
        return SESSION_KEY_ORDER


REGISTRATION_TITLES = {
    "A": "AI FES. Last 30 days: AI news roundup for the architecture industry",
    "B": "AI FES. Product walkthrough (COMPASS / SpotPDF / KAKOME)",
    "C": "Practical AI x Architecture Seminar (2nd edition)",
    "D": "Image Generation AI You Can Use Today (2nd edition)",
    "E": "Free Website and Workflow Automation with Google Services (GAS) (1st edition)",
    "F": "AI FES. Gift handout, final Q&A and AI x Architecture Circle introduction",
}

ARCHIVE_SESSIONS = (
    ArchiveSession("A", "Last 30 days: AI news roundup", "zspijMjW-tU", "75min"),
    ArchiveSession("B", "Product walkthrough (COMPASS / SpotPDF / KAKOME)", "J33xRxt2kiU", "80min"),
    ArchiveSession("C", "Practical AI x Architecture Seminar", "4ItAbxrfL84", "145min"),
    ArchiveSession("D", "Image Generation AI You Can Use Today", "ZyKBkx0IrT8", "90min"),
    ArchiveSession(
        "E1",
        "Workflow automation with GAS",
        "",
        "50min",
        coming_soon="The recording had a technical issue and will be published later.",
    ),
    ArchiveSession("E2", "Free website with Google services", "fiF6r7ZOUCI", "120min"),
    ArchiveSession("F", "Gift handout and final Q&A", "QZ3voPMY7QU", "60min"),
)


def _price_id(env_var: str, fallback: str) -> str:
    # Use `or` to handle empty string env vars
    return os.environ.get(env_var) or fallback


def _load_registration_urls() -> dict[str, str]:
    raw = os.environ.get("REGISTRATION_LINKS") or "{}"
    try:
        urls = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"REGISTRATION_LINKS is not valid JSON: {e}")
        return {}
    if not isinstance(urls, dict):
        logger.error("REGISTRATION_LINKS must be a JSON object")
        return {}
    unknown = set(urls) - set(REGISTRATION_KEY_ORDER)
    if unknown:
        logger.warning(f"Ignoring unknown registration keys: {sorted(unknown)}")
    return {k: str(v) for k, v in urls.items() if k in REGISTRATION_KEY_ORDER}


def load_catalog() -> Catalog:
    """Build the catalog from the environment."""
    entries = [
        CatalogEntry(
            price_id=_price_id("PRICE_ID_FULL_DAY", "price_full_day"),
            display_name="AI FES. Ticket (full day)",
            registration_keys=("A", "B", "C", "D", "E", "F"),
            archive_session_keys=("A", "B", "C", "D", "E1", "E2", "F"),
        ),
        CatalogEntry(
            price_id=_price_id("PRICE_ID_PRACTICAL_AI_ARCHITECTURE", "price_practical_ai_architecture"),
            display_name="Practical AI x Architecture Seminar (2nd edition)",
            registration_keys=("C", "F"),
            archive_session_keys=("A", "B", "C", "F"),
        ),
        CatalogEntry(
            price_id=_price_id("PRICE_ID_IMAGE_GEN_AI", "price_image_gen_ai"),
            display_name="Image Generation AI You Can Use Today (2nd edition)",
            registration_keys=("D", "F"),
            archive_session_keys=("A", "B", "D", "F"),
        ),
        CatalogEntry(
            price_id=_price_id("PRICE_ID_GOOGLE_HP_GAS", "price_google_hp_gas"),
            display_name="Free Website and Workflow Automation with Google Services (GAS) (1st edition)",
            registration_keys=("E", "F"),
            archive_session_keys=("A", "B", "E1", "E2", "F"),
        ),
    ]

    return Catalog(
        entries=entries,
        registration_titles=REGISTRATION_TITLES,
        registration_urls=_load_registration_urls(),
        archive_sessions=ARCHIVE_SESSIONS,
        circle_product_id=os.environ.get("CIRCLE_PRODUCT_ID") or DEFAULT_CIRCLE_PRODUCT_ID,
    )


_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Get the process-wide catalog, building it on first use."""
    global _catalog
    if _catalog is None:
        _catalog = load_catalog()
    return _catalog


def reset_catalog() -> None:
    """Drop the cached catalog. Used in tests for clean state."""
    global _catalog
    _catalog = None
