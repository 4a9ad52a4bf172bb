import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def make_record(
    series: str = "A",
    manga_seq: str = "1",
    manga_title: str = "",
    ln_title: str = "",
    ln_volume: str = "",
    ln_seq: str = "",
    manga_format: str = "Manga",
    **extra: str,
) -> dict[str, str]:
    """既定のヘッダー名でシートの1行分の辞書を作るテスト用ヘルパー."""
    record = {
        "Franchise (series)": series,
        "Content format 1": manga_format,
        "sequence number": manga_seq,
        'title (chapter, not official title, just like "chapter 2")': manga_title,
        'LN title (chapter, not official title, just like "chapter 2")': ln_title,
        "LN volume/season": ln_volume,
        "LN sequence number": ln_seq,
    }
    record.update(extra)
    return record


class MockSheetApi:
    """シート API 呼び出しの結果を順番にモックするテスト用ヘルパー."""

    def __init__(self, monkeypatch: pytest.MonkeyPatch):
        self.calls: list[dict[str, Any]] = []
        self._queue: list[Any] = []
        from mapping_browser import sheet_client

        self._sheet_client = sheet_client
        monkeypatch.setattr(self._sheet_client.httpx, "get", self._fake_get)

    def enqueue_response(self, status_code: int, text: str = "") -> None:
        """HTTPステータス付きレスポンスを1件追加する."""
        self._queue.append(SimpleNamespace(status_code=status_code, text=text))

    def enqueue_records(self, records: list[dict[str, Any]]) -> None:
        """シート行の JSON 配列を返す 200 レスポンスを1件追加する."""
        self.enqueue_response(200, json.dumps(records, ensure_ascii=False))

    def enqueue_timeout(self, message: str = "timeout") -> None:
        """タイムアウト例外を1件追加する."""
        self._queue.append(httpx.TimeoutException(message))

    def enqueue_connect_error(self, message: str = "connect failed") -> None:
        """通信失敗例外を1件追加する."""
        request = httpx.Request("GET", "https://example.com/sheet")
        self._queue.append(httpx.ConnectError(message, request=request))

    def _fake_get(self, url: str, timeout: float):
        self.calls.append({"url": url, "timeout": timeout})
        if len(self._queue) == 0:
            raise AssertionError(
                "MockSheetApi queue is empty. enqueue_records/enqueue_timeout を設定してください。"
            )

        queued = self._queue.pop(0)
        if isinstance(queued, Exception):
            raise queued

        return queued


@pytest.fixture
def mock_sheet_api(monkeypatch: pytest.MonkeyPatch) -> MockSheetApi:
    """シート API（httpx.get）を順序付きで差し替える."""
    return MockSheetApi(monkeypatch)
