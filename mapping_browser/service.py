from typing import Literal, Optional, Union

from mapping_browser.chapter_view import ChapterView, DuplicateCounts, build_chapter_view
from mapping_browser.detail import ChapterDetail, LnGroupDetail, project_chapter, project_group
from mapping_browser.ln_groups import LnGroup, build_ln_groups, group_key
from mapping_browser.row_store import MappingRow, RowStore
from mapping_browser.series_index import SeriesSummary, summarize

ViewMode = Literal["chapters", "ln-groups"]

LOAD_FAILED_MESSAGE = "Failed to load data from Google Sheets."
NO_SERIES_MESSAGE = "No series found in this sheet."
NO_CHAPTERS_MESSAGE = "No chapters match your filters."
NO_LN_GROUPS_MESSAGE = "No data for this series."


class MappingBrowser:
    """1セッション分の行集合に対する問い合わせ窓口.

    行集合は起動時に一度だけ取り込み、以後は変更しない。各問い合わせは
    その都度ビューを組み立て直して返し、途中結果を保持しない。
    """

    def __init__(self, row_store: RowStore, load_error: Optional[str] = None):
        self._row_store = row_store
        self._load_error = load_error
        self._series_summaries = summarize(row_store)

    @classmethod
    def unavailable(cls, load_error: str = LOAD_FAILED_MESSAGE) -> "MappingBrowser":
        """取得失敗時に使う空の窓口を作る."""
        return cls(RowStore(), load_error=load_error)

    @property
    def row_store(self) -> RowStore:
        return self._row_store

    @property
    def load_error(self) -> Optional[str]:
        return self._load_error

    @property
    def data_available(self) -> bool:
        return self._load_error is None

    def get_series_summaries(self) -> list[SeriesSummary]:
        return list(self._series_summaries)

    def get_default_series(self) -> Optional[str]:
        """一覧の先頭シリーズを既定の選択とする."""
        if len(self._series_summaries) == 0:
            return None

        return self._series_summaries[0].name

    def get_chapter_view(self, series: str, search_term: Optional[str] = None) -> ChapterView:
        return build_chapter_view(self._row_store.by_series(series), search_term)

    def get_ln_group_view(self, series: str, search_term: Optional[str] = None) -> list[LnGroup]:
        return build_ln_groups(self._row_store.by_series(series), search_term)

    def get_view(
        self, series: str, search_term: Optional[str], mode: ViewMode
    ) -> Union[ChapterView, list[LnGroup]]:
        """表示モードに応じて章一覧か LN グループ一覧を返す."""
        if mode == "chapters":
            return self.get_chapter_view(series, search_term)

        return self.get_ln_group_view(series, search_term)

    def find_row(self, row_id: int) -> Optional[MappingRow]:
        return self._row_store.get(row_id)

    def find_ln_group(
        self, series: str, ln_title: str, ln_volume: str, search_term: Optional[str] = None
    ) -> Optional[LnGroup]:
        """同じ条件で組み立てた LN グループ一覧からキーが一致するものを探す."""
        target_key = group_key(ln_title, ln_volume)
        for group in self.get_ln_group_view(series, search_term):
            if group.key == target_key:
                return group

        return None

    def get_chapter_detail(self, row: MappingRow) -> ChapterDetail:
        """行の詳細を返す。重複数はその行のシリーズ全体で数える."""
        duplicate_counts = DuplicateCounts.from_rows(self._row_store.by_series(row.series))
        return project_chapter(row, duplicate_counts)

    def get_ln_group_detail(self, group: LnGroup, series: str) -> LnGroupDetail:
        return project_group(group, series)
