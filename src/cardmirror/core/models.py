# cardmirror/core/models.py

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import MetadataError

ALIAS_PREFIX = "yoto:#"

def is_remote_url(ref: Optional[str]) -> bool:
    """True for http(s) URLs, as opposed to export aliases."""
    return bool(ref) and ref.startswith(("http://", "https://"))

def alias_id(ref: str) -> str:
    """Strips the alias prefix, leaving the file name used inside an export."""
    return ref.replace(ALIAS_PREFIX, "")


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MetadataError(f"Expected an object for '{where}'")
    return value

def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class CardSummary:
    """A lightweight listing entry."""
    card_id: str
    title: str

@dataclass
class Cover:
    large_image_url: Optional[str] = None

@dataclass
class Track:
    """A single playable unit within a chapter."""
    title: str
    type: str = "audio"
    source_ref: Optional[str] = None  # signed URL or export alias
    overlay_label: Optional[str] = None
    overlay_label_override: Optional[str] = None
    key: Optional[str] = None

    @property
    def is_stream(self) -> bool:
        return self.type == "stream"

    @classmethod
    def from_dict(cls, data: Any) -> "Track":
        data = _mapping(data, "track")
        return cls(
            title=str(data.get("title") or "").strip(),
            type=str(data.get("type") or "audio"),
            source_ref=_optional_str(data.get("trackUrl")),
            overlay_label=_optional_str(data.get("overlayLabel")),
            overlay_label_override=_optional_str(data.get("overlayLabelOverride")),
            key=_optional_str(data.get("key")),
        )

@dataclass
class Chapter:
    """A named group of tracks, optionally carrying a small icon."""
    title: str
    icon_ref: Optional[str] = None
    tracks: List[Track] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Chapter":
        data = _mapping(data, "chapter")
        display = data.get("display") or {}
        tracks = data.get("tracks")
        if tracks is None:
            tracks = []
        if not isinstance(tracks, list):
            raise MetadataError("Expected a list for 'tracks'")
        return cls(
            title=str(data.get("title") or ""),
            icon_ref=_optional_str(display.get("icon16x16")) if isinstance(display, dict) else None,
            tracks=[Track.from_dict(t) for t in tracks],
        )

@dataclass
class CardMetadata:
    """The validated contents of a card document."""
    card_id: str
    title: str
    author: Optional[str] = None
    cover: Optional[Cover] = None
    chapters: List[Chapter] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: Any) -> "CardMetadata":
        """
        Builds the model from the provider's raw card document.

        Raises:
            MetadataError: if the card, its title or its content are missing.
        """
        card = _mapping(_mapping(doc, "document").get("card"), "card")
        title = card.get("title")
        if not title:
            raise MetadataError("Card document has no title")

        content = _mapping(card.get("content"), "card.content")
        chapters = content.get("chapters")
        if chapters is None:
            chapters = []
        if not isinstance(chapters, list):
            raise MetadataError("Expected a list for 'chapters'")

        cover = None
        cover_data = content.get("cover")
        if isinstance(cover_data, dict) and cover_data.get("imageL"):
            cover = Cover(large_image_url=str(cover_data["imageL"]))

        metadata = card.get("metadata") or {}
        author = metadata.get("author") if isinstance(metadata, dict) else None

        return cls(
            card_id=str(card.get("cardId") or ""),
            title=str(title),
            author=_optional_str(author),
            cover=cover,
            chapters=[Chapter.from_dict(c) for c in chapters],
        )

    def track_at(self, chapter_index: int, track_index: int) -> Optional[Track]:
        """Returns the track at the given position, or None if out of range."""
        if 0 <= chapter_index < len(self.chapters):
            tracks = self.chapters[chapter_index].tracks
            if 0 <= track_index < len(tracks):
                return tracks[track_index]
        return None

@dataclass
class LoadedCard:
    """A card document as handed from a card source to the engine."""
    metadata: CardMetadata
    raw: bytes
    origin: str  # "export", "cache" or "remote"
    card_id: str = ""
    title: Optional[str] = None  # listing title, when the card came from a listing
    source_dir: Optional[Path] = None
    persisted: bool = False

    @property
    def display_title(self) -> str:
        return self.title or self.metadata.title

    @property
    def is_fresh(self) -> bool:
        """Signed URLs are only trusted when fetched during this run."""
        return self.origin == "remote"

@dataclass
class CardOutcome:
    copied_any: bool = False
    missing_any: bool = False

@dataclass
class RunSummary:
    """Per-run totals."""
    cards: List[str] = field(default_factory=list)
    copied_cards: List[str] = field(default_factory=list)
    missing_cards: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cards)

    @property
    def copied(self) -> int:
        return len(self.copied_cards)

    @property
    def missing(self) -> int:
        return len(self.missing_cards)

    def add(self, title: str, outcome: CardOutcome) -> None:
        self.cards.append(title)
        if outcome.copied_any:
            self.copied_cards.append(title)
        if outcome.missing_any:
            self.missing_cards.append(title)
