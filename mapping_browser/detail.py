from dataclasses import dataclass

from mapping_browser.chapter_view import DuplicateCounts
from mapping_browser.ln_groups import LnGroup
from mapping_browser.row_store import MappingRow

EMPTY_NOTES = "—"
NO_LN_MAPPING_TEXT = "No LN mapping info provided for this row."
NO_LN_MAPPING_TITLE = "(no LN mapping)"
NO_DUPLICATES_TEXT = "No duplicates detected for this chapter label."


@dataclass(frozen=True)
class ChapterDetail:
    """章一覧の1行を選択したときの詳細表示内容."""

    series: str
    manga: str
    ln_mapping: str
    formats: str
    manga_duplicate_count: int
    ln_duplicate_count: int
    duplication: tuple[str, ...]
    notes: str


@dataclass(frozen=True)
class LnGroupDetail:
    """LN グループを選択したときの詳細表示内容."""

    series: str
    ln_chapter: str
    mapped_manga_chapters: tuple[str, ...]
    group_size: str


def _describe_duplication(
    manga_duplicate_count: int, ln_title: str, ln_duplicate_count: int
) -> tuple[str, ...]:
    lines: list[str] = []
    if manga_duplicate_count > 1:
        lines.append(
            f"This manga chapter label appears in {manga_duplicate_count} mapping rows."
        )
    if ln_title and ln_duplicate_count > 1:
        lines.append(f"This LN chapter label appears in {ln_duplicate_count} mapping rows.")

    if len(lines) == 0:
        return (NO_DUPLICATES_TEXT,)

    return tuple(lines)


def project_chapter(row: MappingRow, duplicate_counts: DuplicateCounts) -> ChapterDetail:
    """章の行と重複数から詳細表示用の項目を組み立てる."""
    manga_duplicate_count = duplicate_counts.manga_count(row.manga_title) or 1
    ln_duplicate_count = (duplicate_counts.ln_count(row.ln_title) or 1) if row.ln_title else 1

    if row.ln_title:
        ln_mapping = (
            f"Volume {row.ln_volume or '?'}, sequence #{row.ln_seq or '?'}, {row.ln_title}"
        )
    else:
        ln_mapping = NO_LN_MAPPING_TEXT

    return ChapterDetail(
        series=row.series,
        manga=(
            f"Volume {row.manga_volume or '?'}, sequence #{row.manga_seq or '?'}, "
            f"{row.manga_title or '(no title)'}"
        ),
        ln_mapping=ln_mapping,
        formats=f"{row.manga_format or '?'} → {row.content_format2 or '??'}",
        manga_duplicate_count=manga_duplicate_count,
        ln_duplicate_count=ln_duplicate_count,
        duplication=_describe_duplication(
            manga_duplicate_count, row.ln_title, ln_duplicate_count
        ),
        notes=row.notes or EMPTY_NOTES,
    )


def project_group(group: LnGroup, series_name: str) -> LnGroupDetail:
    """LN グループから詳細表示用の項目を組み立てる."""
    mapped_manga_chapters = tuple(
        f"Vol {row.manga_volume or '?'}, #{row.manga_seq or '?'}: {row.manga_title}"
        for row in group.member_rows
    )

    return LnGroupDetail(
        series=series_name,
        ln_chapter=(
            f"Volume {group.ln_volume or '–'}, sequence #{group.ln_seq or '–'}, "
            f"{group.ln_title or NO_LN_MAPPING_TITLE}"
        ),
        mapped_manga_chapters=mapped_manga_chapters or (EMPTY_NOTES,),
        group_size=f"{group.row_count} mapping row(s)",
    )
