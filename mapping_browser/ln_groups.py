from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from mapping_browser.chapter_view import filter_by_search_term
from mapping_browser.row_store import MappingRow, format_sequence_number, parse_sequence_number

# タイトルや巻にこの区切り文字列を含む場合は別グループが衝突しうる（既知の制約）
GROUP_KEY_SEPARATOR = "||"


def group_key(ln_title: str, ln_volume: str) -> str:
    """LN 章題と LN 巻からグループキーを作る."""
    return ln_title + GROUP_KEY_SEPARATOR + ln_volume


@dataclass(frozen=True)
class MangaSeqRange:
    """グループに含まれるマンガ連番の範囲（両端のみ）."""

    start: float
    end: float

    @property
    def label(self) -> str:
        if self.start == self.end:
            return format_sequence_number(self.start)

        return f"{format_sequence_number(self.start)}–{format_sequence_number(self.end)}"


@dataclass
class LnGroup:
    """同じ LN 章（章題 + 巻）に対応する行のまとまり."""

    ln_title: str
    ln_volume: str
    ln_seq: str
    member_rows: list[MappingRow] = field(default_factory=list)
    manga_seqs: list[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return group_key(self.ln_title, self.ln_volume)

    @property
    def row_count(self) -> int:
        return len(self.member_rows)

    @property
    def manga_seq_range(self) -> Optional[MangaSeqRange]:
        """連番がなければ None、1件ならその値、複数なら最小〜最大を返す."""
        if len(self.manga_seqs) == 0:
            return None

        return MangaSeqRange(start=self.manga_seqs[0], end=self.manga_seqs[-1])

    @property
    def manga_seq_range_label(self) -> Optional[str]:
        seq_range = self.manga_seq_range
        return seq_range.label if seq_range is not None else None

    def sort_value(self) -> float:
        """LN 連番（数値かつ 0 以外）を優先し、なければ最小のマンガ連番で並べる."""
        ln_seq_value = parse_sequence_number(self.ln_seq)
        if ln_seq_value is not None and ln_seq_value != 0:
            return ln_seq_value

        if len(self.manga_seqs) > 0:
            return self.manga_seqs[0]

        return 0.0


def build_ln_groups(rows: Iterable[MappingRow], search_term: Optional[str]) -> list[LnGroup]:
    """検索で絞り込んだ行を LN 章ごとにまとめ、表示順に並べて返す."""
    groups_by_key: dict[str, LnGroup] = {}

    for row in filter_by_search_term(rows, search_term):
        key = group_key(row.ln_title, row.ln_volume)
        group = groups_by_key.get(key)
        if group is None:
            group = LnGroup(ln_title=row.ln_title, ln_volume=row.ln_volume, ln_seq=row.ln_seq)
            groups_by_key[key] = group

        group.member_rows.append(row)
        manga_seq_value = parse_sequence_number(row.manga_seq)
        if manga_seq_value is not None:
            group.manga_seqs.append(manga_seq_value)

    for group in groups_by_key.values():
        group.manga_seqs.sort()

    # 並び順の値が同じグループは出現順のまま
    return sorted(groups_by_key.values(), key=lambda group: group.sort_value())
