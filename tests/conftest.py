"""Shared fixtures: card documents and a fake content service on httpx.MockTransport."""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from cardmirror.core.api import CardApiClient
from cardmirror.core.auth import Session
from cardmirror.core.config import Settings

BASE_URL = "https://api.test"
MEDIA_URL = "https://media.test"

FAKE_MP3 = b"\xff\xfb\x90\x00" + b"\x00" * 256
FAKE_JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64


@pytest.fixture
def anyio_backend():
    return "asyncio"


def track(title: str, url: Optional[str] = None, type: str = "audio", **extra: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {"title": title, "type": type}
    if url is not None:
        data["trackUrl"] = url
    data.update(extra)
    return data


def chapter(title: str, tracks: List[Dict[str, Any]], icon: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"title": title, "tracks": tracks}
    if icon is not None:
        data["display"] = {"icon16x16": icon}
    return data


def card_document(card_id: str, title: str, chapters: List[Dict[str, Any]],
                  author: str = "Jane Doe", cover: Optional[str] = None) -> Dict[str, Any]:
    content: Dict[str, Any] = {"chapters": chapters}
    if cover is not None:
        content["cover"] = {"imageL": cover}
    return {
        "card": {
            "cardId": card_id,
            "title": title,
            "metadata": {"author": author},
            "content": content,
        }
    }


def bedtime_stories(prefix: str = MEDIA_URL + "/signed") -> Dict[str, Any]:
    """Two chapters: one plain track, then a stream and a labelled track."""
    return card_document(
        "bed1",
        "Bedtime Stories",
        [
            chapter("The Fox", [track("The Fox ", f"{prefix}/fox.mp3")], icon=f"{MEDIA_URL}/icons/fox.png"),
            chapter("Radio and Owl", [
                track("Live Radio", "https://radio.test/live", type="stream"),
                track("The Owl", f"{prefix}/owl.mp3", overlayLabel="03", key="03"),
            ]),
        ],
        cover=f"{MEDIA_URL}/covers/bed1.jpg",
    )


class FakeService:
    """
    In-memory content service. Cards are served verbatim from `raw`;
    media URLs under MEDIA_URL return audio or image bytes unless listed
    in `fail_urls`. Every request is recorded in `requests`.
    """

    def __init__(self):
        self.mine: List[Dict[str, Any]] = []
        self.family: List[Dict[str, Any]] = []
        self.raw: Dict[str, bytes] = {}
        self.card_status: Dict[str, int] = {}
        self.fail_urls: set = set()
        self.requests: List[httpx.Request] = []

    def add_card(self, doc: Dict[str, Any], family: bool = False) -> bytes:
        card = doc["card"]
        raw = json.dumps(doc, indent=2).encode("utf-8")
        self.raw[card["cardId"]] = raw
        if family:
            self.family.append({"cardId": card["cardId"], "card": {"title": card["title"]}})
        else:
            self.mine.append({"cardId": card["cardId"], "title": card["title"]})
        return raw

    def paths(self, prefix: str = "") -> List[str]:
        return [str(r.url) for r in self.requests if str(r.url).startswith(prefix)]

    def card_fetches(self, card_id: str) -> int:
        return len(self.paths(f"{BASE_URL}/card/{card_id}"))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith(MEDIA_URL) or url.startswith("https://radio.test"):
            if url in self.fail_urls:
                return httpx.Response(500)
            if "/icons/" in url or "/covers/" in url:
                return httpx.Response(200, content=FAKE_JPEG, headers={"content-type": "image/jpeg"})
            return httpx.Response(200, content=FAKE_MP3, headers={"content-type": "audio/mpeg"})

        path = request.url.path
        if path == "/content/mine":
            return httpx.Response(200, json={"cards": self.mine})
        if path == "/card/family/library":
            return httpx.Response(200, json={"cards": self.family})
        if path.startswith("/card/"):
            card_id = path.rsplit("/", 1)[-1]
            status = self.card_status.get(card_id)
            if status:
                return httpx.Response(status, json={"error": "denied", "error_description": "no access"})
            if card_id not in self.raw:
                return httpx.Response(404, json={"error": {"code": "notFound", "message": "Card not found"}})
            return httpx.Response(200, content=self.raw[card_id], headers={"content-type": "application/json"})
        return httpx.Response(404)


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
async def client(service):
    async with httpx.AsyncClient(transport=httpx.MockTransport(service.handler)) as c:
        yield c


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        client_id="client-123",
        base_url=BASE_URL,
        auth_url="https://login.test",
        icon_url=MEDIA_URL + "/icons/{icon_id}",
        credentials_file=str(tmp_path / "device-auth.json"),
    )


@pytest.fixture
def api(client) -> CardApiClient:
    return CardApiClient(client, Session(access_token="token-abc"), BASE_URL)


@pytest.fixture
def anonymous_api(client) -> CardApiClient:
    return CardApiClient(client, Session(), BASE_URL)


@pytest.fixture
def write_export(tmp_path) -> Callable[..., Any]:
    """Creates an extracted-export card directory with the given files."""
    def _write(doc: Dict[str, Any], files: Optional[Dict[str, bytes]] = None, dirname: Optional[str] = None):
        export = tmp_path / "export"
        card_dir = export / (dirname or doc["card"]["cardId"])
        card_dir.mkdir(parents=True, exist_ok=True)
        (card_dir / card_dir.name).write_text(json.dumps(doc), encoding="utf-8")
        for name, data in (files or {}).items():
            (card_dir / name).write_bytes(data)
        return export
    return _write
