from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Optional

from mapping_browser.row_store import MappingRow, sequence_sort_value


def normalize_search_term(search_term: Optional[str]) -> str:
    """検索語の前後空白を除去して小文字化する."""
    return (search_term or "").strip().lower()


def matches_search_term(row: MappingRow, normalized_term: str) -> bool:
    """マンガ連番・マンガ章題・LN 章題・LN 連番のいずれかに部分一致するか判定する."""
    if normalized_term == "":
        return True

    return any(
        normalized_term in field_value.lower()
        for field_value in (row.manga_seq, row.manga_title, row.ln_title, row.ln_seq)
    )


def filter_by_search_term(
    rows: Iterable[MappingRow], search_term: Optional[str]
) -> list[MappingRow]:
    """検索語に一致する行だけを順序を保って返す."""
    normalized_term = normalize_search_term(search_term)
    return [row for row in rows if matches_search_term(row, normalized_term)]


def sort_by_manga_seq(rows: Iterable[MappingRow]) -> list[MappingRow]:
    """マンガ連番の昇順に安定ソートする."""
    return sorted(rows, key=lambda row: sequence_sort_value(row.manga_seq))


@dataclass(frozen=True)
class DuplicateCounts:
    """章ラベルごとの出現行数.

    マンガ側は空の章題も1つのラベルとして数える。LN 側の空の章題は
    「LN 対応なし」を意味するため集計に含めない。
    """

    manga_title_counts: Mapping[str, int] = field(default_factory=dict)
    ln_title_counts: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[MappingRow]) -> "DuplicateCounts":
        manga_title_counts: Counter[str] = Counter()
        ln_title_counts: Counter[str] = Counter()

        for row in rows:
            manga_title_counts[row.manga_title] += 1
            if row.ln_title:
                ln_title_counts[row.ln_title] += 1

        return cls(
            manga_title_counts=dict(manga_title_counts),
            ln_title_counts=dict(ln_title_counts),
        )

    def manga_count(self, manga_title: str) -> int:
        return self.manga_title_counts.get(manga_title, 0)

    def ln_count(self, ln_title: str) -> int:
        if not ln_title:
            return 0

        return self.ln_title_counts.get(ln_title, 0)


@dataclass(frozen=True)
class ChapterViewRow:
    """章一覧の1行（重複数つき）."""

    row: MappingRow
    manga_duplicate_count: int
    ln_duplicate_count: int

    @property
    def is_manga_duplicate(self) -> bool:
        return self.manga_duplicate_count > 1

    @property
    def is_ln_duplicate(self) -> bool:
        return bool(self.row.ln_title) and self.ln_duplicate_count > 1


@dataclass(frozen=True)
class ChapterView:
    """章一覧ビュー。rows は表示順、duplicate_counts は検索前のシリーズ全体の集計."""

    rows: list[ChapterViewRow]
    duplicate_counts: DuplicateCounts

    @property
    def is_empty(self) -> bool:
        return len(self.rows) == 0


def build_chapter_view(rows: Iterable[MappingRow], search_term: Optional[str]) -> ChapterView:
    """マンガ連番順に並べ、重複数を付けた章一覧を構築する.

    重複数は検索で絞り込む前の全行で数えるため、検索結果の行にも
    シリーズ全体での出現数が表示される。
    """
    sorted_rows = sort_by_manga_seq(rows)
    duplicate_counts = DuplicateCounts.from_rows(sorted_rows)

    return ChapterView(
        rows=[
            ChapterViewRow(
                row=row,
                manga_duplicate_count=duplicate_counts.manga_count(row.manga_title),
                ln_duplicate_count=duplicate_counts.ln_count(row.ln_title),
            )
            for row in filter_by_search_term(sorted_rows, search_term)
        ],
        duplicate_counts=duplicate_counts,
    )
