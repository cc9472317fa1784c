import abc
import json
import os
import tempfile
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

from .api import CardApiClient
from .errors import AlreadyExistsError, AuthRequiredError, MetadataError, NotFoundError
from .logging import get_logger
from .models import CardMetadata, CardSummary, LoadedCard
from .naming import sanitize

logger = get_logger(__name__)

CARD_JSON = "card.json"

CardEntry = Union[CardSummary, Path]

def parse_document(raw: bytes, where: str) -> CardMetadata:
    """Parses raw card JSON into the typed model."""
    try:
        doc = json.loads(raw)
    except ValueError as e:
        raise MetadataError(f"{where} is not valid JSON: {e}") from e
    return CardMetadata.from_document(doc)


class CardSource(abc.ABC):
    """
    An abstract base class (ABC) that defines the contract for card sources.
    A source enumerates cards and turns each entry into a LoadedCard; the
    engine never sees the raw document structure.
    """
    def __init__(self, name: str, api: Optional[CardApiClient] = None):
        self.name = name
        self.api = api

    @property
    def authenticated(self) -> bool:
        return self.api is not None and self.api.authenticated

    @abc.abstractmethod
    def list_cards(self) -> AsyncIterator[CardEntry]:
        """Yields card entries in the order they should be processed."""
        pass

    @abc.abstractmethod
    async def resolve(self, entry: CardEntry, output_dir: Path) -> LoadedCard:
        """Loads the metadata document for one card entry."""
        pass

    def card_dir(self, loaded: LoadedCard, output_dir: Path) -> Path:
        return Path(output_dir) / sanitize(loaded.display_title)

    async def refresh(self, loaded: LoadedCard, card_dir: Path) -> LoadedCard:
        """
        Re-fetches the card from the service to obtain freshly signed URLs,
        replacing the persisted card.json with the new response.
        """
        if not self.authenticated:
            raise AuthRequiredError("Refreshing card metadata requires a login")
        logger.info(f"Refreshing metadata for card {loaded.card_id}")
        doc, raw = await self.api.card(loaded.card_id)
        metadata = CardMetadata.from_document(doc)
        _replace_file(Path(card_dir) / CARD_JSON, raw)
        return LoadedCard(
            metadata=metadata,
            raw=raw,
            origin="remote",
            card_id=loaded.card_id,
            title=loaded.title,
            source_dir=loaded.source_dir,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"


class LocalExportSource(CardSource):
    """
    Cards extracted from a player's storage: one directory per card, holding
    the card document (named like the directory) and the audio and icon
    files it refers to by alias.
    """
    def __init__(self, input_dir: Union[str, Path], api: Optional[CardApiClient] = None):
        super().__init__("export", api)
        self.input_dir = Path(input_dir)
        if not self.input_dir.is_dir():
            raise NotFoundError(f"{self.input_dir} does not exist")

    def entries(self) -> List[Path]:
        return sorted(p for p in self.input_dir.iterdir() if p.is_dir())

    async def list_cards(self) -> AsyncIterator[Path]:
        for entry in self.entries():
            yield entry

    async def resolve(self, entry: Path, output_dir: Path) -> LoadedCard:
        entry = Path(entry)
        document = entry / entry.name
        if not document.is_file():
            raise NotFoundError(f"{document} does not exist")

        raw = document.read_bytes()
        metadata = parse_document(raw, str(document))
        return LoadedCard(
            metadata=metadata,
            raw=raw,
            origin="export",
            card_id=entry.name,
            source_dir=entry,
        )


class RemoteCardSource(CardSource):
    """Cards of the logged-in account, cached per card as card.json."""

    def __init__(self, api: CardApiClient):
        super().__init__("remote", api)

    async def fetch_listing(self) -> List[CardSummary]:
        """Own cards then family cards, deduplicated by id in provider order."""
        if not self.authenticated:
            raise AuthRequiredError("Listing cards requires a login")

        summaries: List[CardSummary] = []
        seen = set()

        def add(card_id, title):
            if not card_id or card_id in seen:
                return
            seen.add(card_id)
            summaries.append(CardSummary(card_id=str(card_id), title=str(title or card_id)))

        for c in await self.api.my_cards():
            add(c.get("cardId"), c.get("title"))
        for c in await self.api.family_cards():
            add(c.get("cardId"), (c.get("card") or {}).get("title"))

        logger.debug(f"Listing returned {len(summaries)} cards")
        return summaries

    async def list_cards(self) -> AsyncIterator[CardSummary]:
        for summary in await self.fetch_listing():
            yield summary

    async def resolve(self, entry: CardSummary, output_dir: Path) -> LoadedCard:
        card_dir = Path(output_dir) / sanitize(entry.title)
        cache = card_dir / CARD_JSON
        cached = cache.exists()
        if cached:
            raw = cache.read_bytes()
            try:
                metadata = parse_document(raw, str(cache))
            except MetadataError:
                # treated as absent when the card can be fetched again
                if not self.authenticated:
                    raise
                logger.warning(f"{cache} is unreadable, fetching card {entry.card_id} again")
            else:
                return LoadedCard(
                    metadata=metadata,
                    raw=raw,
                    origin="cache",
                    card_id=entry.card_id,
                    title=entry.title,
                )

        if not self.authenticated:
            raise AuthRequiredError(f"Fetching card {entry.card_id} requires a login")

        doc, raw = await self.api.card(entry.card_id)
        metadata = CardMetadata.from_document(doc)
        card_dir.mkdir(parents=True, exist_ok=True)
        if cached:
            _replace_file(cache, raw)
        else:
            _create_file(cache, raw)
        return LoadedCard(
            metadata=metadata,
            raw=raw,
            origin="remote",
            card_id=entry.card_id,
            title=entry.title,
            persisted=True,
        )


def _replace_file(path: Path, data: bytes) -> None:
    """Atomically replaces `path` with `data`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".card-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def _create_file(path: Path, data: bytes) -> None:
    """
    Creates `path` holding `data` in one step, so a killed run leaves
    either the whole document or nothing. Fails if `path` exists.
    """
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".card-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        try:
            os.link(tmp, path)
        except FileExistsError as e:
            raise AlreadyExistsError(f"Refusing to overwrite {path}") from e
        except OSError:
            # filesystems without hard links (FAT on SD cards)
            if path.exists():
                raise AlreadyExistsError(f"Refusing to overwrite {path}")
            os.replace(tmp, path)
    finally:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
