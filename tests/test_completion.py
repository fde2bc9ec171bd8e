import pytest

from carbonls.lsp.common_structures import Position, TextDocumentIdentifier
from carbonls.lsp.features.completion import (
    COMPLETION_DETAILS,
    CompletionCategory,
    CompletionItem,
    CompletionItemKind,
    CompletionParams,
    completion,
    resolve_completion_item,
)


def _params(uri: str, line: int, character: int) -> CompletionParams:
    return CompletionParams(
        text_document=TextDocumentIdentifier(uri=uri),
        position=Position(line=line, character=character),
    )


@pytest.mark.asyncio
async def test_completion_catalog():
    items = await completion(None, _params("file:///tmp/a.carbon", 0, 0))

    assert len(items) == 30
    assert items[0].label == "var"
    assert items[-1].label == "in"
    assert all(item.kind == CompletionItemKind.TEXT for item in items)
    assert {item.data for item in items} == {1, 2, 3, 4, 6}
    assert next(item for item in items if item.label == "BFloat16").data == 2
    assert next(item for item in items if item.label == "u256").data == 1


@pytest.mark.asyncio
async def test_completion_independent_of_document_and_position():
    first = await completion(None, _params("file:///tmp/a.carbon", 0, 0))
    second = await completion(None, _params("file:///tmp/b.carbon", 12, 4))
    assert first == second

    # returned items are copies, the catalog is not affected
    first[0].detail = "changed"
    third = await completion(None, _params("file:///tmp/a.carbon", 0, 0))
    assert third[0].detail is None


@pytest.mark.asyncio
async def test_resolve():
    item = CompletionItem(label="i32", kind=CompletionItemKind.TEXT, data=1)
    resolved = await resolve_completion_item(None, item)

    assert resolved.label == "i32"
    assert resolved.detail == "Carbon Signed Integer Type"
    assert resolved.documentation == COMPLETION_DETAILS[1].documentation
    assert item.detail is None

    # the label does not matter, only the category
    other = await resolve_completion_item(None, CompletionItem(label="while", data=1))
    assert other.detail == resolved.detail
    assert other.documentation == resolved.documentation


@pytest.mark.asyncio
async def test_resolve_floating_point_rounding():
    resolved = await resolve_completion_item(
        None, CompletionItem(label="f32", data=int(CompletionCategory.FLOATING_POINT_ROUNDING))
    )
    assert resolved.detail == "Carbon Floating Point Type"
    assert resolved.documentation.startswith("Contains a floating point value")


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [None, 99, 0, "1", True])
async def test_resolve_unknown_category(data):
    item = CompletionItem(label="x", data=data)
    resolved = await resolve_completion_item(None, item)
    assert resolved == item
    assert resolved.detail is None
    assert resolved.documentation is None
