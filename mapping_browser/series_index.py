import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field

from mapping_browser.row_store import MappingRow


@dataclass(frozen=True)
class SeriesSummary:
    """シリーズ一覧向けの集計結果."""

    name: str
    row_count: int
    manga_label_count: int
    ln_label_count: int


@dataclass
class _SeriesAccumulator:
    row_count: int = 0
    manga_titles: set[str] = field(default_factory=set)
    ln_titles: set[str] = field(default_factory=set)


def series_sort_key(name: str) -> tuple[str, str]:
    """シリーズ名の表示順キー（大文字小文字・全角半角を無視し、同値は元の文字列で比較）."""
    return unicodedata.normalize("NFKC", name).casefold(), name


def summarize(rows: Iterable[MappingRow]) -> list[SeriesSummary]:
    """行集合からシリーズごとの行数と一意な章ラベル数を集計する."""
    accumulators: dict[str, _SeriesAccumulator] = {}

    for row in rows:
        accumulator = accumulators.setdefault(row.series, _SeriesAccumulator())
        accumulator.row_count += 1
        if row.manga_title:
            accumulator.manga_titles.add(row.manga_title)
        if row.ln_title:
            accumulator.ln_titles.add(row.ln_title)

    return [
        SeriesSummary(
            name=name,
            row_count=accumulator.row_count,
            manga_label_count=len(accumulator.manga_titles),
            ln_label_count=len(accumulator.ln_titles),
        )
        for name, accumulator in sorted(
            accumulators.items(), key=lambda item: series_sort_key(item[0])
        )
    ]
