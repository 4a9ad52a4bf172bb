import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from mapping_browser.config import load_settings

logger = logging.getLogger(__name__)

SHEET_UPSTREAM_NAME = "Google Sheets (opensheet)"


@dataclass(frozen=True)
class SheetRequestPolicy:
    """シート取得時のタイムアウト方針."""

    timeout_seconds: float = 10.0


DEFAULT_REQUEST_POLICY = SheetRequestPolicy()


@dataclass(eq=False)
class SheetClientError(Exception):
    """シート取得失敗を HTTP ステータス付きで表す例外."""

    status_code: int
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)


class SheetClient:
    """opensheet 経由で Google Sheets のタブを JSON 配列として取得するクライアント."""

    def __init__(
        self,
        base_url: str,
        sheet_id: str,
        tab_name: str,
        request_policy: SheetRequestPolicy = DEFAULT_REQUEST_POLICY,
    ):
        self._base_url = base_url.rstrip("/")
        self._sheet_id = sheet_id
        self._tab_name = tab_name
        self._request_policy = request_policy

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._sheet_id}/{quote(self._tab_name, safe='')}"

    def fetch_records(self) -> list[dict[str, Any]]:
        """シートの全行を1回だけ取得し、ヘッダー名をキーとする辞書の一覧を返す."""
        try:
            response = httpx.get(self.url, timeout=self._request_policy.timeout_seconds)
        except httpx.TimeoutException as error:
            raise SheetClientError(
                status_code=504,
                code="SHEET_API_TIMEOUT",
                message="Sheet API request timed out",
                details={
                    "upstream": SHEET_UPSTREAM_NAME,
                    "failureType": "timeout",
                    "retryable": True,
                    "timeoutSeconds": _format_timeout_seconds(
                        self._request_policy.timeout_seconds
                    ),
                },
            ) from error
        except httpx.HTTPError as error:
            raise SheetClientError(
                status_code=502,
                code="SHEET_API_BAD_GATEWAY",
                message="Failed to connect Sheet API",
                details={
                    "upstream": SHEET_UPSTREAM_NAME,
                    "failureType": "communication",
                    "retryable": False,
                },
            ) from error

        if response.status_code != 200:
            raise SheetClientError(
                status_code=502,
                code="SHEET_API_BAD_GATEWAY",
                message="Sheet API returned non-200 status",
                details={
                    "upstream": SHEET_UPSTREAM_NAME,
                    "failureType": "status",
                    "retryable": False,
                    "statusCode": response.status_code,
                },
            )

        return _parse_sheet_records(response.text)


def fetch_sheet_records() -> list[dict[str, Any]]:
    """設定値を使ってマッピングシートの全行を取得する."""
    runtime_settings = load_settings()
    sheet_client = SheetClient(
        base_url=runtime_settings.sheet_api_base_url,
        sheet_id=runtime_settings.sheet_id,
        tab_name=runtime_settings.sheet_tab_name,
        request_policy=SheetRequestPolicy(
            timeout_seconds=runtime_settings.sheet_timeout_seconds
        ),
    )
    return sheet_client.fetch_records()


def _format_timeout_seconds(timeout_seconds: float) -> Any:
    """エラー詳細向けにタイムアウト秒を整数優先で整形する."""
    if timeout_seconds.is_integer():
        return int(timeout_seconds)

    return timeout_seconds


def _invalid_payload_error(reason: str) -> SheetClientError:
    return SheetClientError(
        status_code=502,
        code="SHEET_API_BAD_GATEWAY",
        message="Sheet API returned invalid JSON",
        details={
            "upstream": SHEET_UPSTREAM_NAME,
            "failureType": "parse",
            "retryable": False,
            "reason": reason,
        },
    )


def _parse_sheet_records(json_text: str) -> list[dict[str, Any]]:
    """opensheet の JSON 配列から行辞書の一覧を抽出する."""
    try:
        payload = json.loads(json_text)
    except ValueError as error:
        raise _invalid_payload_error("body is not JSON") from error

    if not isinstance(payload, list):
        raise _invalid_payload_error("body is not a JSON array")

    records = [item for item in payload if isinstance(item, dict)]
    skipped_count = len(payload) - len(records)
    if skipped_count > 0:
        logger.debug("シート応答の非オブジェクト要素を除外しました。skippedCount=%s", skipped_count)

    return records
