import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

UNKNOWN_SERIES_NAME = "Unknown series"
MANGA_FORMAT = "manga"


@dataclass(frozen=True)
class ColumnMapping:
    """シートのヘッダー名と行フィールドの対応."""

    series: str = "Franchise (series)"
    manga_format: str = "Content format 1"
    manga_volume: str = "volume/season"
    manga_seq: str = "sequence number"
    manga_title: str = 'title (chapter, not official title, just like "chapter 2")'
    content_format2: str = "Content format 2"
    ln_volume: str = "LN volume/season"
    ln_seq: str = "LN sequence number"
    ln_title: str = 'LN title (chapter, not official title, just like "chapter 2")'
    notes: str = "Notes"


DEFAULT_COLUMNS = ColumnMapping()


@dataclass(frozen=True)
class MappingRow:
    """マンガ章と LN 章の対応1行分.

    row_id は取り込み対象行の中での位置で、元シートの並び順を表す。
    series 以外の欠損フィールドは空文字列になる。
    """

    row_id: int
    series: str
    manga_format: str = ""
    manga_volume: str = ""
    manga_seq: str = ""
    manga_title: str = ""
    content_format2: str = ""
    ln_volume: str = ""
    ln_seq: str = ""
    ln_title: str = ""
    notes: str = ""


def parse_sequence_number(raw_value: Optional[str]) -> Optional[float]:
    """連番文字列を数値へ変換し、空文字や数値でない値は None を返す."""
    if raw_value is None:
        return None

    normalized_value = raw_value.strip()
    if normalized_value == "":
        return None

    try:
        parsed = float(normalized_value)
    except ValueError:
        return None

    if not math.isfinite(parsed):
        return None

    return parsed


def sequence_sort_value(raw_value: Optional[str]) -> float:
    """行の並べ替え用に連番を数値化する（変換できない値は 0 とみなす）."""
    parsed = parse_sequence_number(raw_value)
    return parsed if parsed is not None else 0.0


def format_sequence_number(value: float) -> str:
    """表示向けに連番を整数優先で整形する."""
    if value.is_integer():
        return str(int(value))

    return str(value)


def _read_text(record: Mapping[str, Any], column_name: str) -> str:
    value = record.get(column_name)
    if value is None:
        return ""

    return str(value)


def _is_in_scope(manga_format: str, manga_seq: str) -> bool:
    return manga_format.lower() == MANGA_FORMAT and manga_seq != ""


class RowStore:
    """取り込み済みの行集合。取り込み後は変更しない."""

    def __init__(self, rows: Iterable[MappingRow] = ()):
        self._rows: tuple[MappingRow, ...] = tuple(rows)

    def __iter__(self) -> Iterator[MappingRow]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> tuple[MappingRow, ...]:
        return self._rows

    def by_series(self, name: str) -> "RowStore":
        """series が完全一致する行だけを元の順序のまま返す."""
        return RowStore(row for row in self._rows if row.series == name)

    def get(self, row_id: int) -> Optional[MappingRow]:
        """row_id で行を1件取得する。row_id は取り込み時の位置なので添字で引く."""
        if 0 <= row_id < len(self._rows) and self._rows[row_id].row_id == row_id:
            return self._rows[row_id]

        return None


def ingest(
    raw_records: Iterable[Mapping[str, Any]], columns: ColumnMapping = DEFAULT_COLUMNS
) -> RowStore:
    """シートの生レコードからマンガ形式かつ連番ありの行だけを取り込む."""
    rows: list[MappingRow] = []
    skipped_count = 0

    for record in raw_records:
        manga_format = _read_text(record, columns.manga_format)
        manga_seq = _read_text(record, columns.manga_seq)
        if not _is_in_scope(manga_format, manga_seq):
            skipped_count += 1
            continue

        rows.append(
            MappingRow(
                row_id=len(rows),
                series=_read_text(record, columns.series) or UNKNOWN_SERIES_NAME,
                manga_format=manga_format,
                manga_volume=_read_text(record, columns.manga_volume),
                manga_seq=manga_seq,
                manga_title=_read_text(record, columns.manga_title),
                content_format2=_read_text(record, columns.content_format2),
                ln_volume=_read_text(record, columns.ln_volume),
                ln_seq=_read_text(record, columns.ln_seq),
                ln_title=_read_text(record, columns.ln_title),
                notes=_read_text(record, columns.notes),
            )
        )

    logger.info(
        "マッピング行を取り込みました。keptCount=%s skippedCount=%s", len(rows), skipped_count
    )
    return RowStore(rows)
