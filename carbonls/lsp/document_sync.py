from __future__ import annotations

import bisect
import re
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Union

from carbonls.core import get_logger

from .common_structures import (
    DocumentUri,
    Position,
    Range,
    TextDocumentIdentifier,
    TextDocumentItem,
    VersionedTextDocumentIdentifier,
)
from .exceptions import DuplicateDocument, StaleVersion, UnknownDocument
from .lsp_data_model import LspModel

logger = get_logger(__name__)

# LSP positions count UTF-16 code units
ENCODING = "utf-16-le"

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


class TextDocumentSyncKind(IntEnum):
    NONE = 0
    """
    Documents should not be synced at all.
    """
    FULL = 1
    """
    Documents are synced by always sending the full content
    of the document.
    """
    INCREMENTAL = 2
    """
    Documents are synced by sending the full content on open.
    After that only incremental updates to the document are
    send.
    """


class SaveOptions(LspModel):
    include_text: Optional[bool] = None


class TextDocumentSyncOptions(LspModel):
    open_close: Optional[bool] = None
    """
    Open and close notifications are sent to the server. If omitted open
    close notification should not be sent.
    """
    change: Optional[TextDocumentSyncKind] = None
    will_save: Optional[bool] = None
    will_save_wait_until: Optional[bool] = None
    save: Optional[Union[bool, SaveOptions]] = None


class DidOpenTextDocumentParams(LspModel):
    text_document: TextDocumentItem


class TextDocumentContentChangeEvent(LspModel):
    range: Optional[Range] = None
    """
    The range of the document that changed. The whole document is replaced when omitted.
    """
    range_length: Optional[int] = None  # uint, deprecated
    """
    The optional length of the range that got replaced.
    """
    text: str
    """
    The new text for the provided range.
    """


class DidChangeTextDocumentParams(LspModel):
    text_document: VersionedTextDocumentIdentifier
    content_changes: List[TextDocumentContentChangeEvent]


class DidSaveTextDocumentParams(LspModel):
    text_document: TextDocumentIdentifier
    text: Optional[str] = None


class DidCloseTextDocumentParams(LspModel):
    text_document: TextDocumentIdentifier
    """
    The document that was closed.
    """


class TextDocument:
    """
    Immutable snapshot of an open document. Every change produces a new instance, so a validation
    holding a snapshot always sees the text of the version it was triggered for.
    """

    __uri: DocumentUri
    __text: str
    __version: int
    __line_offsets: Optional[List[int]]

    def __init__(self, uri: DocumentUri, text: str, version: int):
        self.__uri = uri
        self.__text = text
        self.__version = version
        self.__line_offsets = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(uri={self.__uri!r}, version={self.__version})"

    @property
    def uri(self) -> DocumentUri:
        return self.__uri

    @property
    def text(self) -> str:
        return self.__text

    @property
    def version(self) -> int:
        return self.__version

    @property
    def line_offsets(self) -> List[int]:
        if self.__line_offsets is None:
            self.__line_offsets = [0] + [
                m.end() for m in _NEWLINE_RE.finditer(self.__text)
            ]
        return self.__line_offsets

    @property
    def line_count(self) -> int:
        return len(self.line_offsets)

    def _line_content(self, line: int) -> str:
        offsets = self.line_offsets
        start = offsets[line]
        end = offsets[line + 1] if line + 1 < len(offsets) else len(self.__text)
        return self.__text[start:end].rstrip("\r\n")

    def offset_at(self, position: Position) -> int:
        """
        Convert a line/character position into an index into `text`. Positions past the end of
        a line are clamped to the line end, positions past the last line to the end of the text.
        """
        if position.line < 0:
            return 0
        if position.line >= self.line_count:
            return len(self.__text)

        line = self._line_content(position.line)
        encoded = line.encode(ENCODING)[: max(position.character, 0) * 2]
        # a position in the middle of a surrogate pair snaps to the start of the pair
        prefix = encoded.decode(ENCODING, errors="ignore")
        return self.line_offsets[position.line] + len(prefix)

    def position_at(self, offset: int) -> Position:
        offset = min(max(offset, 0), len(self.__text))
        line = bisect.bisect_right(self.line_offsets, offset) - 1
        line_start = self.line_offsets[line]
        character = len(self.__text[line_start:offset].encode(ENCODING)) // 2
        return Position(line=line, character=character)

    def range_at(self, start: int, end: int) -> Range:
        return Range(start=self.position_at(start), end=self.position_at(end))

    def apply(
        self, changes: Iterable[TextDocumentContentChangeEvent], version: int
    ) -> TextDocument:
        """
        Apply content changes one after another. Ranges of every change are relative to the text
        produced by the previous change.
        """
        document = self
        for change in changes:
            if change.range is None:
                text = change.text
            else:
                start = document.offset_at(change.range.start)
                end = document.offset_at(change.range.end)
                if end < start:
                    start, end = end, start
                text = document.text[:start] + change.text + document.text[end:]
            document = TextDocument(self.__uri, text, version)

        if document is self:
            return TextDocument(self.__uri, self.__text, version)
        return document


class DocumentStore:
    """
    Authoritative text of all documents currently open in the client.
    """

    __documents: Dict[DocumentUri, TextDocument]

    def __init__(self):
        self.__documents = {}

    def __contains__(self, uri: object) -> bool:
        return uri in self.__documents

    def __len__(self) -> int:
        return len(self.__documents)

    def open(
        self, uri: DocumentUri, text: str, version: int, *, replace: bool = False
    ) -> TextDocument:
        if uri in self.__documents and not replace:
            raise DuplicateDocument(uri)

        document = TextDocument(uri, text, version)
        # re-insert so that a reopened document moves to the end of the open order
        self.__documents.pop(uri, None)
        self.__documents[uri] = document
        return document

    def apply_change(
        self,
        uri: DocumentUri,
        changes: Iterable[TextDocumentContentChangeEvent],
        version: int,
    ) -> TextDocument:
        try:
            document = self.__documents[uri]
        except KeyError:
            raise UnknownDocument(uri) from None

        if version <= document.version:
            raise StaleVersion(uri, document.version, version)

        document = document.apply(changes, version)
        self.__documents[uri] = document
        return document

    def close(self, uri: DocumentUri) -> None:
        try:
            del self.__documents[uri]
        except KeyError:
            raise UnknownDocument(uri) from None

    def get(self, uri: DocumentUri) -> TextDocument:
        try:
            return self.__documents[uri]
        except KeyError:
            raise UnknownDocument(uri) from None

    def get_text(self, uri: DocumentUri) -> str:
        return self.get(uri).text

    def all_open_uris(self) -> List[DocumentUri]:
        return list(self.__documents.keys())
