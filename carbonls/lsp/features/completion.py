from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

from carbonls.core import get_logger

from ..common_structures import (
    MarkupContent,
    PartialResultParams,
    TextDocumentPositionParams,
    TextDocumentRegistrationOptions,
    WorkDoneProgressOptions,
    WorkDoneProgressParams,
)
from ..lsp_data_model import LspModel

if TYPE_CHECKING:
    from ..context import LspContext

logger = get_logger(__name__)


class CompletionItemKind(enum.IntEnum):
    TEXT = 1
    METHOD = 2
    FUNCTION = 3
    CONSTRUCTOR = 4
    FIELD = 5
    VARIABLE = 6
    CLASS = 7
    INTERFACE = 8
    MODULE = 9
    PROPERTY = 10
    UNIT = 11
    VALUE = 12
    ENUM = 13
    KEYWORD = 14
    SNIPPET = 15
    COLOR = 16
    FILE = 17
    REFERENCE = 18
    FOLDER = 19
    ENUM_MEMBER = 20
    CONSTANT = 21
    STRUCT = 22
    EVENT = 23
    OPERATOR = 24
    TYPE_PARAMETER = 25


class CompletionOptions(WorkDoneProgressOptions):
    trigger_characters: Optional[List[str]] = None
    """
    If code complete should automatically be trigger on characters not being
    valid inside an identifier (for example `.` in JavaScript) list them in
    `triggerCharacters`.
    """
    all_commit_characters: Optional[List[str]] = None
    """
    The list of all possible characters that commit a completion.
    """
    resolve_provider: Optional[bool] = None
    """
    The server provides support to resolve additional
    information for a completion item.
    """


class CompletionRegistrationOptions(TextDocumentRegistrationOptions, CompletionOptions):
    pass


class CompletionTriggerKind(enum.IntEnum):
    INVOKED = 1
    """
    Completion was triggered by typing an identifier
    """
    TRIGGER_CHARACTER = 2
    """
    Completion was triggered by a trigger character specified by
    the `triggerCharacters` properties of the
    `CompletionRegistrationOptions
    """
    TRIGGER_FOR_INCOMPLETE_COMPLETIONS = 3
    """
    Completion was re-triggered as the current completion list is incomplete.
    """


class CompletionContext(LspModel):
    trigger_kind: CompletionTriggerKind
    """
    How the completion was triggered.
    """
    trigger_character: Optional[str] = None


class CompletionParams(
    TextDocumentPositionParams, WorkDoneProgressParams, PartialResultParams
):
    context: Optional[CompletionContext] = None


class CompletionItem(LspModel):
    label: str
    """
    The label of this completion item.
    The label property is also by default the text that
    is inserted when selecting this completion.
    """
    kind: Optional[CompletionItemKind] = None
    """
    The kind of this completion item. Based of the kind
    an icon is chosen by the editor.
    """
    detail: Optional[str] = None
    """
    A human-readable string with additional information
    about this item, like type or symbol information.
    """
    documentation: Optional[Union[str, MarkupContent]] = None
    """
    A human-readable string that represents a doc-comment.
    """
    data: Optional[Any] = None
    """
    A data entry field that is preserved on a completion item between
    a completion and a completion resolve request. Holds the item category.
    """


class CompletionDetail(LspModel):
    detail: str
    documentation: str


class CompletionCategory(enum.IntEnum):
    SIGNED_INTEGER = 1
    FLOATING_POINT = 2
    VARIABLE = 3
    STRING = 4
    FLOATING_POINT_ROUNDING = 5
    FUNCTION = 6


# variables and types first, then control keywords and functions
_CATALOG: Tuple[Tuple[str, CompletionCategory], ...] = (
    ("var", CompletionCategory.VARIABLE),
    ("f16", CompletionCategory.FLOATING_POINT),
    ("f32", CompletionCategory.FLOATING_POINT),
    ("f64", CompletionCategory.FLOATING_POINT),
    ("f128", CompletionCategory.FLOATING_POINT),
    ("BFloat16", CompletionCategory.FLOATING_POINT),
    ("String", CompletionCategory.STRING),
    ("StringView", CompletionCategory.STRING),
    ("i8", CompletionCategory.SIGNED_INTEGER),
    ("i16", CompletionCategory.SIGNED_INTEGER),
    ("i32", CompletionCategory.SIGNED_INTEGER),
    ("i64", CompletionCategory.SIGNED_INTEGER),
    ("i128", CompletionCategory.SIGNED_INTEGER),
    ("i256", CompletionCategory.SIGNED_INTEGER),
    ("u8", CompletionCategory.SIGNED_INTEGER),
    ("u16", CompletionCategory.SIGNED_INTEGER),
    ("u32", CompletionCategory.SIGNED_INTEGER),
    ("u64", CompletionCategory.SIGNED_INTEGER),
    ("u128", CompletionCategory.SIGNED_INTEGER),
    ("u256", CompletionCategory.SIGNED_INTEGER),
    ("if", CompletionCategory.FUNCTION),
    ("while", CompletionCategory.FUNCTION),
    ("then", CompletionCategory.FUNCTION),
    ("else", CompletionCategory.FUNCTION),
    ("Carbon", CompletionCategory.FUNCTION),
    ("Swap", CompletionCategory.FUNCTION),
    ("Size", CompletionCategory.FUNCTION),
    ("fn", CompletionCategory.FUNCTION),
    ("Slice", CompletionCategory.FUNCTION),
    ("in", CompletionCategory.FUNCTION),
)

COMPLETION_ITEMS: Tuple[CompletionItem, ...] = tuple(
    CompletionItem(label=label, kind=CompletionItemKind.TEXT, data=int(category))
    for label, category in _CATALOG
)

# FLOATING_POINT_ROUNDING is not referenced by any catalog item
COMPLETION_DETAILS: Dict[int, CompletionDetail] = {
    CompletionCategory.SIGNED_INTEGER: CompletionDetail(
        detail="Carbon Signed Integer Type",
        documentation="Contains a integer value. You can set the number of bits by using i16, i32, i64, i128, or i256.",
    ),
    CompletionCategory.FLOATING_POINT: CompletionDetail(
        detail="Carbon Floating Point Type",
        documentation="This is a floating point",
    ),
    CompletionCategory.VARIABLE: CompletionDetail(
        detail="Carbon Var",
        documentation="A var declares a variable.",
    ),
    CompletionCategory.STRING: CompletionDetail(
        detail="Carbon String",
        documentation="A String is a byte sequence treated as containing UTF-8 encoded text. A StringView is a read only variation of a String.",
    ),
    CompletionCategory.FLOATING_POINT_ROUNDING: CompletionDetail(
        detail="Carbon Floating Point Type",
        documentation="Contains a floating point value that rounds-to-nearest. You can set the number of bits by using f16, f32, f64, and f128. BFloat16 is also supported.",
    ),
    CompletionCategory.FUNCTION: CompletionDetail(
        detail="Carbon Function",
        documentation="Function - Description to be added.",
    ),
}


async def completion(
    context: LspContext, params: CompletionParams
) -> List[CompletionItem]:
    # the catalog does not depend on the document or the cursor position
    logger.debug(
        f"Completion requested for {params.text_document.uri}:{params.position.line}:{params.position.character}"
    )
    return [item.model_copy() for item in COMPLETION_ITEMS]


async def resolve_completion_item(
    context: LspContext, item: CompletionItem
) -> CompletionItem:
    category = item.data
    # bool is an int subclass but never a valid category
    if not isinstance(category, int) or isinstance(category, bool):
        return item

    detail = COMPLETION_DETAILS.get(category)
    if detail is None:
        logger.debug(f"No completion details for category {category} ({item.label})")
        return item

    return item.model_copy(
        update={"detail": detail.detail, "documentation": detail.documentation}
    )
