# cardmirror/core/metadata.py

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from mutagen import MutagenError
from mutagen.id3 import APIC, ID3, ID3NoHeaderError, TALB, TIT2, TPE1, TRCK

from .logging import get_logger
from .models import CardMetadata, Chapter, Track

logger = get_logger(__name__)

@dataclass
class TrackTags:
    """Descriptive tags written into a freshly copied audio file."""
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    track_number: Optional[str] = None
    artwork: Optional[bytes] = None
    artwork_mime: str = "image/jpeg"

    @classmethod
    def for_track(cls, card: CardMetadata, chapter: Chapter, track: Track,
                  artwork: Optional[bytes] = None) -> "TrackTags":
        """
        Chapter title as title, card author as artist, card title as album.
        The track key becomes the track number only for labelled tracks.
        """
        return cls(
            title=chapter.title,
            artist=card.author,
            album=card.title,
            track_number=track.key if track.overlay_label else None,
            artwork=artwork,
        )


def embed_tags(tags: TrackTags, path: Union[str, Path]) -> bool:
    """
    Writes ID3 tags into the audio file at `path` in place.

    Tagging is best effort: failures are logged and reported by returning
    False, the file itself is left as it is.
    """
    try:
        try:
            id3 = ID3(str(path))
        except ID3NoHeaderError:
            id3 = ID3()

        id3.add(TIT2(encoding=3, text=tags.title))
        if tags.artist:
            id3.add(TPE1(encoding=3, text=tags.artist))
        if tags.album:
            id3.add(TALB(encoding=3, text=tags.album))
        if tags.track_number:
            id3.add(TRCK(encoding=3, text=tags.track_number))
        if tags.artwork:
            id3.add(APIC(encoding=3, mime=tags.artwork_mime, type=3, desc="Cover", data=tags.artwork))

        id3.save(str(path), v2_version=3)
    except (MutagenError, OSError) as e:
        logger.error(f"Could not write tags to {path}: {e}")
        return False

    logger.debug(f"Tagged {path}")
    return True
