import pytest

from mapping_browser import sheet_client


def test_sheet_client_fetches_records_from_sheet_api(mock_sheet_api):
    """クライアント経由でシート API にアクセスし、行辞書の一覧を返す."""
    mock_sheet_api.enqueue_records([{"Franchise (series)": "A"}, {"Notes": "x"}])
    request_policy = sheet_client.SheetRequestPolicy(timeout_seconds=8.0)
    client = sheet_client.SheetClient(
        base_url="https://example.com/sheets/",
        sheet_id="sheet-1",
        tab_name="LN Mappings",
        request_policy=request_policy,
    )

    records = client.fetch_records()

    assert mock_sheet_api.calls == [
        {"url": "https://example.com/sheets/sheet-1/LN%20Mappings", "timeout": 8.0}
    ]
    assert records == [{"Franchise (series)": "A"}, {"Notes": "x"}]


def test_sheet_client_skips_non_object_elements(mock_sheet_api):
    """配列内のオブジェクト以外の要素は除外する."""
    mock_sheet_api.enqueue_response(200, '[{"a": "1"}, "stray", 3, null]')
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    assert client.fetch_records() == [{"a": "1"}]


def test_sheet_client_raises_timeout_error_without_retry(mock_sheet_api):
    """既定ではタイムアウト時に再試行せず 504 相当のエラーにする."""
    mock_sheet_api.enqueue_timeout()
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    with pytest.raises(sheet_client.SheetClientError) as error_info:
        client.fetch_records()

    assert len(mock_sheet_api.calls) == 1
    assert error_info.value.status_code == 504
    assert error_info.value.code == "SHEET_API_TIMEOUT"
    assert error_info.value.details["timeoutSeconds"] == 10


def test_sheet_client_raises_bad_gateway_on_connect_error(mock_sheet_api):
    """通信失敗は 502 相当のエラーにする."""
    mock_sheet_api.enqueue_connect_error()
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    with pytest.raises(sheet_client.SheetClientError) as error_info:
        client.fetch_records()

    assert error_info.value.status_code == 502
    assert error_info.value.code == "SHEET_API_BAD_GATEWAY"
    assert error_info.value.message == "Failed to connect Sheet API"
    assert error_info.value.details == {
        "upstream": sheet_client.SHEET_UPSTREAM_NAME,
        "failureType": "communication",
        "retryable": False,
    }


def test_sheet_client_raises_bad_gateway_on_non_200_status(mock_sheet_api):
    """200 以外のステータスはステータスコード付きの 502 相当エラーにする."""
    mock_sheet_api.enqueue_response(404, "not found")
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    with pytest.raises(sheet_client.SheetClientError) as error_info:
        client.fetch_records()

    assert error_info.value.code == "SHEET_API_BAD_GATEWAY"
    assert error_info.value.details["statusCode"] == 404


@pytest.mark.parametrize("body", ["<html>oops</html>", '{"error": "no tab"}'])
def test_sheet_client_rejects_invalid_json_payload(mock_sheet_api, body):
    """JSON でない応答や配列でない応答は 502 相当エラーにする."""
    mock_sheet_api.enqueue_response(200, body)
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    with pytest.raises(sheet_client.SheetClientError) as error_info:
        client.fetch_records()

    assert error_info.value.message == "Sheet API returned invalid JSON"
    assert error_info.value.details["failureType"] == "parse"


def test_sheet_client_fetches_only_once_even_when_upstream_is_unavailable(mock_sheet_api):
    """取得は1回だけで、503 応答でも再試行せずに失敗を返す."""
    mock_sheet_api.enqueue_response(503)
    mock_sheet_api.enqueue_records([{"a": "1"}])
    client = sheet_client.SheetClient("https://example.com", "sheet-1", "Mappings")

    with pytest.raises(sheet_client.SheetClientError) as error_info:
        client.fetch_records()

    assert len(mock_sheet_api.calls) == 1
    assert error_info.value.details["statusCode"] == 503


def test_fetch_sheet_records_uses_settings(monkeypatch, mock_sheet_api):
    """設定値（ベースURL・シートID・タブ名・タイムアウト）で取得する."""
    monkeypatch.setenv("SHEET_API_BASE_URL", "https://example.com/opensheet")
    monkeypatch.setenv("SHEET_ID", "sheet-9")
    monkeypatch.setenv("SHEET_TAB_NAME", "Mappings")
    monkeypatch.setenv("SHEET_TIMEOUT_SECONDS", "3")
    mock_sheet_api.enqueue_records([])

    assert sheet_client.fetch_sheet_records() == []
    assert mock_sheet_api.calls == [
        {"url": "https://example.com/opensheet/sheet-9/Mappings", "timeout": 3.0}
    ]
