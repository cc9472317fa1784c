# cardmirror/core/naming.py

"""Deterministic, filesystem-safe names for output artifacts."""

import re
from typing import Tuple

from .models import Track

MAX_FILENAME_BYTES = 255

_ILLEGAL = re.compile(r'[/?<>\\:*|"]')
_CONTROL = re.compile(r'[\x00-\x1f\x80-\x9f]')
_RESERVED = re.compile(r'^\.+$')
_WINDOWS_RESERVED = re.compile(r'^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$', re.IGNORECASE)
_WINDOWS_TRAILING = re.compile(r'[. ]+$')


def _truncate_utf8(value: str, limit: int) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= limit:
        return value
    return encoded[:limit].decode("utf-8", errors="ignore")


def sanitize(name: str) -> str:
    """
    Converts an arbitrary title into a safe file name.

    Path separators, reserved punctuation and control characters are
    removed, as are names made only of dots, Windows device names and
    trailing dots or spaces. The result is capped at 255 UTF-8 bytes.

    Example:
        "What/Is: This?" -> "WhatIs This"
    """
    cleaned = _ILLEGAL.sub("", name)
    cleaned = _CONTROL.sub("", cleaned)
    cleaned = _RESERVED.sub("", cleaned)
    cleaned = _WINDOWS_RESERVED.sub("", cleaned)
    cleaned = _WINDOWS_TRAILING.sub("", cleaned)
    return _truncate_utf8(cleaned, MAX_FILENAME_BYTES)


def track_ordinal(track: Track, track_number: int) -> str:
    """Override label, then overlay label, then the running number; padded to 2 digits."""
    label = track.overlay_label_override or track.overlay_label or str(track_number)
    return label.rjust(2, "0")


def with_suffix(stem: str, suffix: str) -> str:
    """
    Sanitized `stem` + `suffix`, with the stem shortened so the suffix
    survives the file name limit.
    """
    limit = MAX_FILENAME_BYTES - len(suffix.encode("utf-8"))
    return sanitize(_truncate_utf8(sanitize(stem), limit) + suffix)


def track_filenames(track: Track, track_number: int) -> Tuple[str, str]:
    """Returns the (audio, icon) file names for a track; they always differ."""
    stem = track_stem(track, track_number)
    return with_suffix(stem, ".mp3"), with_suffix(stem, ".jpg")


def track_stem(track: Track, track_number: int) -> str:
    return f"{track_ordinal(track, track_number)}. {track.title.strip()}"
