from conftest import make_record

from mapping_browser.row_store import (
    DEFAULT_COLUMNS,
    UNKNOWN_SERIES_NAME,
    ColumnMapping,
    MappingRow,
    RowStore,
    format_sequence_number,
    ingest,
    parse_sequence_number,
    sequence_sort_value,
)


def test_ingest_keeps_only_manga_rows_with_sequence_number():
    """マンガ形式（大文字小文字を無視）かつ連番ありの行だけを元の順序で取り込む."""
    records = [
        make_record(manga_seq="3", manga_title="three", manga_format="MANGA"),
        make_record(manga_seq="1", manga_title="novel", manga_format="Light Novel"),
        make_record(manga_seq="", manga_title="no seq"),
        make_record(manga_seq="2", manga_title="two", manga_format="manga"),
        {"sequence number": "5"},
    ]

    store = ingest(records)

    assert [row.manga_title for row in store] == ["three", "two"]
    assert [row.row_id for row in store] == [0, 1]


def test_ingest_fills_missing_fields_with_defaults():
    """欠損フィールドは空文字列、シリーズ名は既定名で補完する."""
    store = ingest([{"Content format 1": "manga", "sequence number": "7"}])

    row = store.rows[0]
    assert row.series == UNKNOWN_SERIES_NAME
    assert row.manga_seq == "7"
    assert row.manga_title == ""
    assert row.ln_title == ""
    assert row.notes == ""


def test_ingest_reads_all_mapped_columns():
    """既定のヘッダー名から全フィールドを読み取る."""
    record = {
        DEFAULT_COLUMNS.series: "Series X",
        DEFAULT_COLUMNS.manga_format: "Manga",
        DEFAULT_COLUMNS.manga_volume: "2",
        DEFAULT_COLUMNS.manga_seq: "10",
        DEFAULT_COLUMNS.manga_title: "Chapter 10",
        DEFAULT_COLUMNS.content_format2: "Light Novel",
        DEFAULT_COLUMNS.ln_volume: "1",
        DEFAULT_COLUMNS.ln_seq: "4",
        DEFAULT_COLUMNS.ln_title: "Chapter 4",
        DEFAULT_COLUMNS.notes: "partial",
    }

    row = ingest([record]).rows[0]

    assert row == MappingRow(
        row_id=0,
        series="Series X",
        manga_format="Manga",
        manga_volume="2",
        manga_seq="10",
        manga_title="Chapter 10",
        content_format2="Light Novel",
        ln_volume="1",
        ln_seq="4",
        ln_title="Chapter 4",
        notes="partial",
    )


def test_ingest_supports_custom_column_mapping():
    """別レイアウトのシートもヘッダー対応を差し替えて取り込める."""
    columns = ColumnMapping(series="Show", manga_format="Kind", manga_seq="No.")

    store = ingest([{"Show": "B", "Kind": "manga", "No.": "1"}], columns=columns)

    assert len(store) == 1
    assert store.rows[0].series == "B"


def test_ingest_coerces_non_string_values():
    """数値や null が混ざっていても例外にせず文字列へそろえる."""
    store = ingest([{"Content format 1": "manga", "sequence number": 4, "Notes": None}])

    assert store.rows[0].manga_seq == "4"
    assert store.rows[0].notes == ""


def test_by_series_uses_exact_string_match():
    """シリーズ絞り込みは大文字小文字を区別する完全一致."""
    store = ingest(
        [
            make_record(series="Alpha", manga_seq="1"),
            make_record(series="alpha", manga_seq="2"),
            make_record(series="Alpha", manga_seq="3"),
        ]
    )

    filtered = store.by_series("Alpha")

    assert [row.manga_seq for row in filtered] == ["1", "3"]
    assert len(store.by_series("Missing")) == 0


def test_get_returns_row_by_id_and_none_when_missing():
    """row_id で行を取得でき、範囲外は None を返す."""
    store = ingest([make_record(manga_seq="1"), make_record(manga_seq="2")])

    assert store.get(1).manga_seq == "2"
    assert store.get(5) is None
    assert store.get(-1) is None
    assert store.by_series("A").get(0).manga_seq == "1"


def test_get_does_not_return_other_row_when_ids_are_shifted():
    """位置と row_id がずれた部分集合では別の行を返さず None を返す."""
    store = ingest(
        [make_record(series="A", manga_seq="1"), make_record(series="B", manga_seq="2")]
    )

    assert store.get(1).manga_seq == "2"
    assert store.by_series("B").get(0) is None
    assert store.by_series("B").get(1) is None


def test_parse_sequence_number_handles_invalid_values():
    """数値でない連番は None、前後空白や小数は許容する."""
    assert parse_sequence_number("12") == 12.0
    assert parse_sequence_number(" 3.5 ") == 3.5
    assert parse_sequence_number("") is None
    assert parse_sequence_number(None) is None
    assert parse_sequence_number("extra") is None
    assert parse_sequence_number("nan") is None
    assert parse_sequence_number("inf") is None


def test_sequence_sort_value_treats_invalid_as_zero():
    """並べ替え用の値は変換できない場合 0 になる."""
    assert sequence_sort_value("x") == 0.0
    assert sequence_sort_value("4") == 4.0


def test_format_sequence_number_prefers_integer_text():
    """整数値は小数点なしで表示する."""
    assert format_sequence_number(3.0) == "3"
    assert format_sequence_number(10.5) == "10.5"


def test_empty_row_store_is_empty():
    """空の行集合は長さ 0 で反復しても何も返さない."""
    store = RowStore()

    assert len(store) == 0
    assert list(store) == []
