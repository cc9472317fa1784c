# cardmirror/core/engine.py

"""
Reconciliation of a card against the output directory.

The files on disk are the only state: an artifact that exists is left
alone, a missing one is produced once. Each step is awaited before the
next begins, so an interrupted run leaves a tree the next run completes.
"""

import enum
from pathlib import Path
from typing import Optional

from .config import Settings
from .errors import (
    AlreadyExistsError,
    AuthRequiredError,
    MetadataError,
    NetworkError,
    NotFoundError,
    RemoteError,
)
from .logging import get_logger
from .metadata import TrackTags, embed_tags
from .models import CardOutcome, Chapter, LoadedCard, RunSummary, Track, alias_id, is_remote_url
from .naming import track_filenames
from .sources import CARD_JSON, CardSource
from .writer import ArtifactWriter

logger = get_logger(__name__)

COVER_FILE = "cover.jpg"

# Failures that only cost the artifact being produced.
ARTIFACT_ERRORS = (NetworkError, NotFoundError, AlreadyExistsError, RemoteError, OSError)


class ArtifactStatus(enum.Enum):
    PRESENT = "present"
    COPIED = "copied"
    MISSING = "missing"
    SKIPPED = "skipped"


class Reporter:
    """Receives progress events; the default does nothing."""

    def card_started(self, index: int, total: int, card: LoadedCard) -> None:
        pass

    def card_skipped(self, entry: object, reason: str) -> None:
        pass

    def artifact(self, status: ArtifactStatus, name: str, detail: Optional[str] = None) -> None:
        pass


class _CardState:
    """The document currently trusted for a card, replaced at most once by a refresh."""

    def __init__(self, loaded: LoadedCard, card_dir: Path):
        self.loaded = loaded
        self.card_dir = card_dir
        self.refreshed = False


class Reconciler:
    def __init__(
        self,
        source: CardSource,
        writer: ArtifactWriter,
        settings: Optional[Settings] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.source = source
        self.writer = writer
        self.settings = settings or Settings()
        self.reporter = reporter or Reporter()

    @property
    def authenticated(self) -> bool:
        return self.source.authenticated

    async def run(self, output_dir: Path, summary: Optional[RunSummary] = None) -> RunSummary:
        """
        Reconciles every card the source lists, one at a time.

        `summary` is filled in as cards complete, so a caller that passes
        its own can still report totals when a fatal error propagates.
        """
        summary = summary if summary is not None else RunSummary()
        output_dir = Path(output_dir)

        entries = [entry async for entry in self.source.list_cards()]
        for index, entry in enumerate(entries, 1):
            try:
                loaded = await self.source.resolve(entry, output_dir)
            except (NotFoundError, MetadataError) as e:
                logger.error(f"Skipping {entry}: {e}")
                self.reporter.card_skipped(entry, str(e))
                continue

            self.reporter.card_started(index, len(entries), loaded)
            outcome = await self.reconcile_card(loaded, output_dir)
            summary.add(loaded.display_title, outcome)

        return summary

    async def reconcile_card(self, loaded: LoadedCard, output_dir: Path) -> CardOutcome:
        card_dir = self.source.card_dir(loaded, Path(output_dir))
        card_dir.mkdir(parents=True, exist_ok=True)

        state = _CardState(loaded, card_dir)
        outcome = CardOutcome()

        self._apply(outcome, self._reconcile_document(loaded, card_dir))
        self._apply(outcome, await self._reconcile_cover(loaded, card_dir))

        card = loaded.metadata
        track_number = 0
        for chapter_index, chapter in enumerate(card.chapters):
            for track_index, track in enumerate(chapter.tracks):
                # streams take a number too, so labels stay stable across variants
                track_number += 1

                if track.is_stream:
                    self.reporter.artifact(ArtifactStatus.SKIPPED, track.title or "stream", "stream")
                    continue

                audio_name, icon_name = track_filenames(track, track_number)
                icon_path = card_dir / icon_name
                if chapter.icon_ref and icon_name != audio_name:
                    self._apply(outcome, await self._reconcile_icon(loaded, chapter, icon_path))

                status = await self._reconcile_audio(
                    state, chapter_index, track_index, chapter, track, card_dir / audio_name, icon_path
                )
                self._apply(outcome, status)

        return outcome

    def _apply(self, outcome: CardOutcome, status: ArtifactStatus) -> None:
        if status is ArtifactStatus.COPIED:
            outcome.copied_any = True
        elif status is ArtifactStatus.MISSING:
            outcome.missing_any = True

    def _reconcile_document(self, loaded: LoadedCard, card_dir: Path) -> ArtifactStatus:
        path = card_dir / CARD_JSON
        if loaded.persisted:
            status = ArtifactStatus.COPIED
        elif path.exists():
            status = ArtifactStatus.PRESENT
        else:
            try:
                self.writer.write_bytes(loaded.raw, path)
                status = ArtifactStatus.COPIED
            except ARTIFACT_ERRORS as e:
                logger.error(f"Could not write {path}: {e}")
                status = ArtifactStatus.MISSING
        self.reporter.artifact(status, "JSON data")
        return status

    async def _reconcile_cover(self, loaded: LoadedCard, card_dir: Path) -> ArtifactStatus:
        cover = loaded.metadata.cover
        if not cover or not cover.large_image_url:
            return ArtifactStatus.SKIPPED

        path = card_dir / COVER_FILE
        if path.exists():
            status = ArtifactStatus.PRESENT
        else:
            try:
                await self.writer.write_remote_image(cover.large_image_url, path)
                status = ArtifactStatus.COPIED
            except ARTIFACT_ERRORS as e:
                logger.error(f"Could not fetch cover {cover.large_image_url}: {e}")
                status = ArtifactStatus.MISSING
        self.reporter.artifact(status, "Album Art", cover.large_image_url)
        return status

    async def _reconcile_icon(self, loaded: LoadedCard, chapter: Chapter, path: Path) -> ArtifactStatus:
        if path.exists():
            return ArtifactStatus.PRESENT

        ref = chapter.icon_ref
        local = self._local_file(loaded, ref)
        try:
            if local is not None:
                self.writer.write_local_copy(local, path)
            else:
                url = ref if is_remote_url(ref) else self.settings.icon_url_for(alias_id(ref))
                await self.writer.write_remote_image(url, path)
        except ARTIFACT_ERRORS as e:
            logger.error(f"Could not fetch icon {ref} for '{chapter.title}': {e}")
            self.reporter.artifact(ArtifactStatus.MISSING, path.name, ref)
            return ArtifactStatus.MISSING

        self.reporter.artifact(ArtifactStatus.COPIED, path.name, ref)
        return ArtifactStatus.COPIED

    async def _reconcile_audio(
        self,
        state: _CardState,
        chapter_index: int,
        track_index: int,
        chapter: Chapter,
        track: Track,
        path: Path,
        icon_path: Path,
    ) -> ArtifactStatus:
        # a. already backed up
        if path.exists():
            self.reporter.artifact(ArtifactStatus.PRESENT, path.name)
            return ArtifactStatus.PRESENT

        # b. extracted file from the export
        local = self._local_file(state.loaded, track.source_ref)
        if local is not None:
            try:
                self.writer.write_local_copy(local, path)
            except ARTIFACT_ERRORS as e:
                logger.error(f"Could not copy {local} to {path}: {e}")
            else:
                self._tag(state.loaded, chapter, track, path, icon_path)
                self.reporter.artifact(ArtifactStatus.COPIED, path.name, str(local))
                return ArtifactStatus.COPIED

        # c. signed download URL from the service, also after a failed copy
        if self.authenticated:
            try:
                url = await self._signed_url(state, chapter_index, track_index)
            except AuthRequiredError:
                raise
            except ARTIFACT_ERRORS as e:
                logger.error(f"Could not resolve a download URL for '{track.title}': {e}")
                url = None

            if url:
                try:
                    await self.writer.write_remote_file(url, path)
                except ARTIFACT_ERRORS as e:
                    logger.error(f"Could not download '{track.title}': {e}")
                else:
                    self._tag(state.loaded, chapter, track, path, icon_path)
                    self.reporter.artifact(ArtifactStatus.COPIED, path.name, "downloaded")
                    return ArtifactStatus.COPIED

        # d. nothing available
        logger.info(f"Missing content: {path.name} ({track.source_ref})")
        self.reporter.artifact(ArtifactStatus.MISSING, path.name, track.source_ref)
        return ArtifactStatus.MISSING

    async def _signed_url(self, state: _CardState, chapter_index: int, track_index: int) -> Optional[str]:
        """
        URL of this track in the trusted document. A document not fetched
        during this run, or one without a URL for the track, is refreshed
        once per card, on the first track that needs it.
        """
        url = self._url_at(state.loaded, chapter_index, track_index)
        if state.loaded.is_fresh and url:
            return url
        if state.refreshed:
            return None

        state.refreshed = True
        state.loaded = await self.source.refresh(state.loaded, state.card_dir)
        return self._url_at(state.loaded, chapter_index, track_index)

    def _url_at(self, loaded: LoadedCard, chapter_index: int, track_index: int) -> Optional[str]:
        track = loaded.metadata.track_at(chapter_index, track_index)
        if track is None or not is_remote_url(track.source_ref):
            return None
        return track.source_ref

    def _local_file(self, loaded: LoadedCard, ref: Optional[str]) -> Optional[Path]:
        if loaded.source_dir is None or not ref or is_remote_url(ref):
            return None
        candidate = loaded.source_dir / alias_id(ref)
        return candidate if candidate.is_file() else None

    def _tag(self, loaded: LoadedCard, chapter: Chapter, track: Track, path: Path, icon_path: Path) -> None:
        artwork = None
        if chapter.icon_ref and icon_path.is_file():
            try:
                artwork = icon_path.read_bytes()
            except OSError as e:
                logger.warning(f"Could not read icon {icon_path} for artwork: {e}")
        embed_tags(TrackTags.for_track(loaded.metadata, chapter, track, artwork), path)
