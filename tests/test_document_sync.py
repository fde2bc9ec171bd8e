import pytest

from carbonls.lsp.common_structures import Position, Range
from carbonls.lsp.document_sync import (
    DocumentStore,
    TextDocument,
    TextDocumentContentChangeEvent,
)
from carbonls.lsp.exceptions import DuplicateDocument, StaleVersion, UnknownDocument

URI = "file:///tmp/main.carbon"


def _range(start_line: int, start_char: int, end_line: int, end_char: int) -> Range:
    return Range(
        start=Position(line=start_line, character=start_char),
        end=Position(line=end_line, character=end_char),
    )


def _edit(range: Range, text: str) -> TextDocumentContentChangeEvent:
    return TextDocumentContentChangeEvent(range=range, text=text)


def test_offsets_and_positions():
    document = TextDocument(URI, "fn main\r\nvar x\ny", 1)
    assert document.line_count == 3
    assert document.line_offsets == [0, 9, 15]

    assert document.offset_at(Position(line=1, character=4)) == 13
    assert document.position_at(13) == Position(line=1, character=4)

    # past the end of a line clamps to the line end, past the last line to the text end
    assert document.offset_at(Position(line=0, character=100)) == 7
    assert document.offset_at(Position(line=10, character=0)) == len(document.text)
    assert document.position_at(1000) == Position(line=2, character=1)


def test_utf16_positions():
    # U+1F600 takes two UTF-16 code units
    document = TextDocument(URI, "a\U0001F600b", 1)
    assert document.offset_at(Position(line=0, character=3)) == 2
    assert document.position_at(3) == Position(line=0, character=4)
    # the middle of a surrogate pair snaps to its start
    assert document.offset_at(Position(line=0, character=2)) == 1


def test_incremental_equals_full_sync():
    store = DocumentStore()
    store.open(URI, "var x: i32 = 1;\nfn main() {}\n", 1)

    changes = [
        _edit(_range(0, 7, 0, 10), "i64"),
        _edit(_range(1, 3, 1, 7), "run"),
        _edit(_range(2, 0, 2, 0), "// end\n"),
    ]
    document = store.apply_change(URI, changes, 2)

    assert document.text == "var x: i64 = 1;\nfn run() {}\n// end\n"
    assert document.version == 2

    full_store = DocumentStore()
    full_store.open(URI, "var x: i32 = 1;\nfn main() {}\n", 1)
    full = full_store.apply_change(
        URI, [TextDocumentContentChangeEvent(text=document.text)], 2
    )
    assert full.text == document.text


def test_edits_apply_sequentially():
    store = DocumentStore()
    store.open(URI, "abc", 1)

    # the second range refers to the text produced by the first edit
    document = store.apply_change(
        URI,
        [
            _edit(_range(0, 0, 0, 0), "xyz"),
            _edit(_range(0, 0, 0, 3), ""),
        ],
        2,
    )
    assert document.text == "abc"


def test_full_replace_then_incremental():
    store = DocumentStore()
    store.open(URI, "hello", 1)

    document = store.apply_change(
        URI,
        [
            TextDocumentContentChangeEvent(text="first\nsecond"),
            _edit(_range(1, 0, 1, 6), "third"),
        ],
        2,
    )
    assert document.text == "first\nthird"


def test_stale_version_does_not_alter_text():
    store = DocumentStore()
    store.open(URI, "hello", 3)

    for version in (3, 2):
        with pytest.raises(StaleVersion) as e:
            store.apply_change(
                URI, [TextDocumentContentChangeEvent(text="HELLO")], version
            )
        assert e.value.stored_version == 3
        assert e.value.received_version == version

    assert store.get_text(URI) == "hello"
    assert store.get(URI).version == 3


def test_snapshots_are_not_mutated():
    store = DocumentStore()
    first = store.open(URI, "hello", 1)
    second = store.apply_change(
        URI, [TextDocumentContentChangeEvent(text="world")], 2
    )

    assert first.text == "hello"
    assert first.version == 1
    assert second is store.get(URI)
    assert second is not first


def test_open_close():
    store = DocumentStore()
    store.open(URI, "a", 1)
    store.open("file:///tmp/other.carbon", "b", 1)

    with pytest.raises(DuplicateDocument):
        store.open(URI, "c", 1)
    assert store.get_text(URI) == "a"

    store.open(URI, "c", 5, replace=True)
    assert store.get_text(URI) == "c"
    assert store.all_open_uris() == ["file:///tmp/other.carbon", URI]

    store.close(URI)
    assert URI not in store
    assert len(store) == 1

    with pytest.raises(UnknownDocument):
        store.close(URI)
    with pytest.raises(UnknownDocument):
        store.get(URI)
    with pytest.raises(UnknownDocument):
        store.apply_change(URI, [TextDocumentContentChangeEvent(text="x")], 6)
