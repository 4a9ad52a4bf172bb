import logging
from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from mapping_browser.chapter_view import ChapterView, ChapterViewRow
from mapping_browser.config import load_settings
from mapping_browser.detail import ChapterDetail, LnGroupDetail
from mapping_browser.ln_groups import LnGroup
from mapping_browser.row_store import ingest
from mapping_browser.service import (
    LOAD_FAILED_MESSAGE,
    NO_CHAPTERS_MESSAGE,
    NO_LN_GROUPS_MESSAGE,
    NO_SERIES_MESSAGE,
    MappingBrowser,
    ViewMode,
)
from mapping_browser.sheet_client import SHEET_UPSTREAM_NAME, SheetClientError, fetch_sheet_records

load_dotenv()
settings = load_settings()
logger = logging.getLogger(__name__)

DEFAULT_ERROR_CODE_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    status.HTTP_502_BAD_GATEWAY: "BAD_GATEWAY",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "INTERNAL_SERVER_ERROR",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
    status.HTTP_504_GATEWAY_TIMEOUT: "GATEWAY_TIMEOUT",
}


def _build_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    """統一フォーマットのエラーレスポンスを構築する."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            }
        },
    )


def _extract_error_code(status_code: int, detail: Any) -> str:
    """HTTP例外detailから code を抽出し、なければHTTPステータスで補完する."""
    if isinstance(detail, Mapping):
        code_value = detail.get("code")
        if isinstance(code_value, str) and code_value.strip():
            return code_value

    return DEFAULT_ERROR_CODE_BY_STATUS.get(status_code, "HTTP_ERROR")


def _extract_error_message(detail: Any) -> str:
    """HTTP例外detailから message を抽出し、なければ文字列化する."""
    if isinstance(detail, Mapping):
        message_value = detail.get("message")
        if isinstance(message_value, str) and message_value.strip():
            return message_value

    if isinstance(detail, str):
        stripped = detail.strip()
        if stripped != "":
            return stripped

    return "Request failed."


def _extract_error_details(detail: Any) -> dict[str, Any]:
    """HTTP例外detailから details を抽出する."""
    if isinstance(detail, Mapping):
        detail_value = detail.get("details")
        if isinstance(detail_value, dict):
            return dict(detail_value)

    return {}


def _build_validation_details(errors: Sequence[Any]) -> dict[str, Any]:
    """FastAPIのバリデーションエラーを統一フォーマット向けに変換する."""
    field_errors = []
    for item in errors:
        locations = item.get("loc", [])
        if isinstance(locations, (list, tuple)):
            field_parts = [str(location) for location in locations if location != "body"]
        else:
            field_parts = [str(locations)]

        field_errors.append(
            {
                "field": ".".join(field_parts) if field_parts else "request",
                "reason": str(item.get("msg", "invalid")),
            }
        )

    return {"fieldErrors": field_errors}


def _log_external_api_failure(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]],
) -> None:
    """外部API失敗を重要イベントとして記録する."""
    normalized_details = details or {}
    logger.error(
        (
            "重要イベント: 外部API失敗 "
            "statusCode=%s code=%s message=%s upstream=%s failureType=%s retryable=%s details=%s"
        ),
        status_code,
        code,
        message,
        normalized_details.get("upstream"),
        normalized_details.get("failureType"),
        normalized_details.get("retryable"),
        normalized_details,
    )


def _log_sheet_load_failure(error: Exception) -> None:
    """シート取得失敗を一度だけ記録する."""
    if isinstance(error, SheetClientError):
        _log_external_api_failure(
            status_code=error.status_code,
            code=error.code,
            message=error.message,
            details=error.details,
        )
        return

    failure_type = (
        "timeout" if isinstance(error, (httpx.TimeoutException, TimeoutError)) else "unexpected"
    )
    _log_external_api_failure(
        status_code=status.HTTP_502_BAD_GATEWAY,
        code="SHEET_API_BAD_GATEWAY",
        message="Failed to load mapping sheet",
        details={
            "upstream": SHEET_UPSTREAM_NAME,
            "failureType": failure_type,
            "retryable": False,
        },
    )
    logger.exception("マッピングシート取得で予期しない例外が発生しました。")


def load_mapping_browser() -> MappingBrowser:
    """マッピングシートを一度だけ取得し、行集合を取り込んだ問い合わせ窓口を返す.

    取得に失敗した場合は空の行集合で動作を続け、各問い合わせは空の結果を返す。
    """
    try:
        records = fetch_sheet_records()
    except Exception as error:
        _log_sheet_load_failure(error)
        return MappingBrowser.unavailable(LOAD_FAILED_MESSAGE)

    return MappingBrowser(ingest(records))


class SeriesSummaryResponse(BaseModel):
    """シリーズ一覧の1件."""

    name: str
    row_count: int
    manga_label_count: int
    ln_label_count: int


class SeriesListResponse(BaseModel):
    """シリーズ一覧レスポンス."""

    series: list[SeriesSummaryResponse]
    default_series: Optional[str] = None
    status_message: Optional[str] = Field(
        default=None,
        description="一覧が空のときの表示文言。取得失敗時は失敗文言。",
    )


class ChapterRowResponse(BaseModel):
    """章一覧の1行."""

    row_id: int
    manga_seq: str
    manga_volume: str
    manga_title: str
    ln_volume: str
    ln_seq: str
    ln_title: str
    manga_format: str
    manga_duplicate_count: int
    ln_duplicate_count: int
    is_manga_duplicate: bool
    is_ln_duplicate: bool


class ChapterViewResponse(BaseModel):
    """章一覧ビューのレスポンス."""

    mode: ViewMode = "chapters"
    series: str
    search_term: str
    rows: list[ChapterRowResponse]
    status_message: Optional[str] = None


class LnGroupResponse(BaseModel):
    """LN グループ一覧の1件."""

    index: int = Field(description="表示順の1始まり番号。")
    ln_title: str
    ln_volume: str
    ln_seq: str
    row_count: int
    manga_seqs: list[float]
    manga_seq_range: Optional[str] = Field(
        default=None,
        description="マンガ連番の範囲表記。連番が無い場合はnull。",
    )


class LnGroupViewResponse(BaseModel):
    """LN グループ一覧ビューのレスポンス."""

    mode: ViewMode = "ln-groups"
    series: str
    search_term: str
    groups: list[LnGroupResponse]
    status_message: Optional[str] = None


class ChapterDetailResponse(BaseModel):
    """章の詳細レスポンス."""

    row_id: int
    series: str
    manga: str
    ln_mapping: str
    formats: str
    manga_duplicate_count: int
    ln_duplicate_count: int
    duplication: list[str]
    notes: str


class LnGroupDetailResponse(BaseModel):
    """LN グループの詳細レスポンス."""

    series: str
    ln_chapter: str
    mapped_manga_chapters: list[str]
    group_size: str


def _get_mapping_browser(request: Request) -> MappingBrowser:
    """アプリ状態から問い合わせ窓口を取り出す."""
    mapping_browser = getattr(request.app.state, "mapping_browser", None)
    if mapping_browser is None:
        return MappingBrowser.unavailable(LOAD_FAILED_MESSAGE)

    return mapping_browser


def _to_chapter_row_response(view_row: ChapterViewRow) -> ChapterRowResponse:
    row = view_row.row
    return ChapterRowResponse(
        row_id=row.row_id,
        manga_seq=row.manga_seq,
        manga_volume=row.manga_volume,
        manga_title=row.manga_title,
        ln_volume=row.ln_volume,
        ln_seq=row.ln_seq,
        ln_title=row.ln_title,
        manga_format=row.manga_format,
        manga_duplicate_count=view_row.manga_duplicate_count,
        ln_duplicate_count=view_row.ln_duplicate_count,
        is_manga_duplicate=view_row.is_manga_duplicate,
        is_ln_duplicate=view_row.is_ln_duplicate,
    )


def _to_chapter_view_response(
    series: str, search_term: Optional[str], chapter_view: ChapterView
) -> ChapterViewResponse:
    """章一覧ビューをレスポンスへ変換する."""
    return ChapterViewResponse(
        series=series,
        search_term=search_term or "",
        rows=[_to_chapter_row_response(view_row) for view_row in chapter_view.rows],
        status_message=NO_CHAPTERS_MESSAGE if chapter_view.is_empty else None,
    )


def _to_ln_group_view_response(
    series: str, search_term: Optional[str], groups: Sequence[LnGroup]
) -> LnGroupViewResponse:
    """LN グループ一覧をレスポンスへ変換する."""
    return LnGroupViewResponse(
        series=series,
        search_term=search_term or "",
        groups=[
            LnGroupResponse(
                index=index,
                ln_title=group.ln_title,
                ln_volume=group.ln_volume,
                ln_seq=group.ln_seq,
                row_count=group.row_count,
                manga_seqs=list(group.manga_seqs),
                manga_seq_range=group.manga_seq_range_label,
            )
            for index, group in enumerate(groups, start=1)
        ],
        status_message=NO_LN_GROUPS_MESSAGE if len(groups) == 0 else None,
    )


def _to_chapter_detail_response(row_id: int, detail: ChapterDetail) -> ChapterDetailResponse:
    return ChapterDetailResponse(
        row_id=row_id,
        series=detail.series,
        manga=detail.manga,
        ln_mapping=detail.ln_mapping,
        formats=detail.formats,
        manga_duplicate_count=detail.manga_duplicate_count,
        ln_duplicate_count=detail.ln_duplicate_count,
        duplication=list(detail.duplication),
        notes=detail.notes,
    )


def _to_ln_group_detail_response(detail: LnGroupDetail) -> LnGroupDetailResponse:
    return LnGroupDetailResponse(
        series=detail.series,
        ln_chapter=detail.ln_chapter,
        mapped_manga_chapters=list(detail.mapped_manga_chapters),
        group_size=detail.group_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリ起動時に一度だけマッピングシートを読み込む."""
    app.state.mapping_browser = await run_in_threadpool(load_mapping_browser)
    yield


app = FastAPI(
    title="Mapping Browser API",
    description="マンガ章と LN 章の対応表を閲覧するためのバックエンドAPI",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(
    _request: Request, exception: StarletteHTTPException
) -> JSONResponse:
    """HTTPExceptionを統一フォーマットへ変換する."""
    return _build_error_response(
        status_code=exception.status_code,
        code=_extract_error_code(exception.status_code, exception.detail),
        message=_extract_error_message(exception.detail),
        details=_extract_error_details(exception.detail),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(
    _request: Request, exception: RequestValidationError
) -> JSONResponse:
    """リクエストバリデーション例外を統一フォーマットへ変換する."""
    return _build_error_response(
        status_code=422,
        code="VALIDATION_ERROR",
        message="リクエストパラメータが不正です。",
        details=_build_validation_details(exception.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_exception(_request: Request, _exception: Exception) -> JSONResponse:
    """想定外例外を統一フォーマットへ変換する."""
    logger.exception("想定外の例外が発生しました。")
    return _build_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_SERVER_ERROR",
        message="想定外のエラーが発生しました。",
        details={},
    )


@app.get("/")
async def root():
    """API の疎通確認用メッセージを返す."""
    return {"message": "Mapping Browser API"}


@app.get("/health")
async def health_check(request: Request):
    """マッピングデータの読み込み状態を含むヘルスステータスを返す."""
    mapping_browser = _get_mapping_browser(request)
    if not mapping_browser.data_available:
        raise HTTPException(status_code=503, detail="Mapping data is unavailable")

    return {"status": "ok", "message": "API is running", "dataAvailable": True}


@app.get("/api/series", response_model=SeriesListResponse)
async def list_series(request: Request):
    """シリーズ一覧（行数・一意な章ラベル数つき）を返す."""
    mapping_browser = _get_mapping_browser(request)
    summaries = mapping_browser.get_series_summaries()

    status_message = None
    if not mapping_browser.data_available:
        status_message = mapping_browser.load_error
    elif len(summaries) == 0:
        status_message = NO_SERIES_MESSAGE

    return SeriesListResponse(
        series=[
            SeriesSummaryResponse(
                name=summary.name,
                row_count=summary.row_count,
                manga_label_count=summary.manga_label_count,
                ln_label_count=summary.ln_label_count,
            )
            for summary in summaries
        ],
        default_series=mapping_browser.get_default_series(),
        status_message=status_message,
    )


@app.get("/api/chapters", response_model=ChapterViewResponse)
async def get_chapter_view(request: Request, series: str, q: Optional[str] = None):
    """シリーズの章一覧（重複数つき）を返す."""
    mapping_browser = _get_mapping_browser(request)
    return _to_chapter_view_response(series, q, mapping_browser.get_chapter_view(series, q))


@app.get("/api/ln-groups", response_model=LnGroupViewResponse)
async def get_ln_group_view(request: Request, series: str, q: Optional[str] = None):
    """シリーズの LN グループ一覧を返す."""
    mapping_browser = _get_mapping_browser(request)
    return _to_ln_group_view_response(series, q, mapping_browser.get_ln_group_view(series, q))


@app.get("/api/ln-groups/detail", response_model=LnGroupDetailResponse)
async def get_ln_group_detail(
    request: Request,
    series: str,
    ln_title: str = "",
    ln_volume: str = "",
    q: Optional[str] = None,
):
    """LN 章題と LN 巻で指定したグループの詳細を返す."""
    mapping_browser = _get_mapping_browser(request)
    group = mapping_browser.find_ln_group(series, ln_title, ln_volume, q)
    if group is None:
        raise HTTPException(
            status_code=404,
            detail={
                "code": "LN_GROUP_NOT_FOUND",
                "message": "LN group not found",
                "details": {"series": series, "lnTitle": ln_title, "lnVolume": ln_volume},
            },
        )

    return _to_ln_group_detail_response(mapping_browser.get_ln_group_detail(group, series))


@app.get("/api/view")
async def get_view(
    request: Request,
    series: str,
    mode: Annotated[ViewMode, Query()] = "chapters",
    q: Optional[str] = None,
):
    """表示モードに応じて章一覧か LN グループ一覧を返す."""
    mapping_browser = _get_mapping_browser(request)
    view = mapping_browser.get_view(series, q, mode)
    if isinstance(view, ChapterView):
        return _to_chapter_view_response(series, q, view)

    return _to_ln_group_view_response(series, q, view)


@app.get("/api/rows/{row_id}/detail", response_model=ChapterDetailResponse)
async def get_chapter_detail(request: Request, row_id: int):
    """行IDで指定した章の詳細を返す."""
    mapping_browser = _get_mapping_browser(request)
    row = mapping_browser.find_row(row_id)
    if row is None:
        raise HTTPException(
            status_code=404,
            detail={
                "code": "ROW_NOT_FOUND",
                "message": "Mapping row not found",
                "details": {"rowId": row_id},
            },
        )

    return _to_chapter_detail_response(row.row_id, mapping_browser.get_chapter_detail(row))


def run() -> None:
    """開発用の API サーバーを起動する."""
    runtime_settings = load_settings()

    uvicorn.run(
        "mapping_browser.main:app",
        host=runtime_settings.api_host,
        port=runtime_settings.api_port,
        reload=runtime_settings.api_reload,
    )


if __name__ == "__main__":
    run()
