from enum import Enum, IntEnum
from typing import Any, List, NewType, Optional, Tuple, Union

from .lsp_data_model import LspModel

DocumentUri = NewType("DocumentUri", str)
URI = NewType("URI", str)
TraceValue = NewType("Trace", str)  # NewType(Union["off","message","verbose"], str)


class Position(LspModel):
    line: int
    """
    Line position in a document (zero-based).
    """
    character: int
    """
    Character offset on a line in a document (zero-based), counted in UTF-16 code units.
    """

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return (self.line, self.character) == (other.line, other.character)
        return NotImplemented

    def __hash__(self):
        return hash((self.line, self.character))


class Range(LspModel):
    start: Position
    """
    The range's start position.
    """
    end: Position
    """
    The range's end position.
    """

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return (self.start, self.end) == (other.start, other.end)
        return NotImplemented

    def __hash__(self):
        return hash((self.start, self.end))


class Location(LspModel):
    uri: DocumentUri
    range: Range

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return (self.uri, self.range) == (other.uri, other.range)
        return NotImplemented

    def __hash__(self):
        return hash((self.uri, self.range))


class DiagnosticSeverity(IntEnum):
    ERROR = 1
    WARNING = 2
    INFORMATION = 3
    HINT = 4


class DiagnosticTag(IntEnum):
    UNNECESSARY = 1
    """
    Unused or unnecessary code
    """
    DEPRECATED = 2
    """
    Deprecated or obsolete code
    """


class DiagnosticRelatedInformation(LspModel):
    location: Location
    """
    The location of this related diagnostic information.
    """
    message: str
    """
    The message of this related diagnostic information.
    """

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return (self.location, self.message) == (other.location, other.message)
        return NotImplemented

    def __hash__(self):
        return hash((self.location, self.message))


class Diagnostic(LspModel):
    range: Range
    """
    The range at which the message applies.
    """
    severity: Optional[DiagnosticSeverity] = None
    """
    The diagnostic's severity.
    """
    code: Optional[Union[int, str]] = None
    """
    The diagnostic's code.
    """
    source: Optional[str] = None
    """
    A human-readable string describing the source of this diagnostic
    """
    message: str
    """
    The diagnostic's message.
    """
    tags: Optional[List[DiagnosticTag]] = None
    """
    Additional metadata about the diagnostic.
    """
    related_information: Optional[List[DiagnosticRelatedInformation]] = None
    """
    An array of related diagnostic information,
    e.g. when symbol-names within a scope collide all definitions can be marked via this property.
    """

    def __members(self) -> Tuple:
        return (
            self.range,
            self.severity,
            self.code,
            self.source,
            self.message,
            frozenset(self.tags) if self.tags is not None else None,
            tuple(self.related_information)
            if self.related_information is not None
            else None,
        )

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return self.__members() == other.__members()
        return NotImplemented

    def __hash__(self):
        return hash(self.__members())


class TextDocumentIdentifier(LspModel):
    uri: DocumentUri


class VersionedTextDocumentIdentifier(TextDocumentIdentifier):
    version: int


class TextDocumentItem(LspModel):
    uri: DocumentUri
    """
    The text document's URI.
    """
    language_id: str
    """
    The text document's language identifier.
    """
    version: int
    """
    The version number of this document (it will increase after each
    change, including undo/redo).
    """
    text: str
    """
    The content of the opened text document.
    """


class TextDocumentPositionParams(LspModel):
    text_document: TextDocumentIdentifier
    """
    The text document.
    """
    position: Position
    """
    The position inside the text document.
    """


class DocumentFilter(LspModel):
    language: Optional[str] = None
    """
    A language id, like `carbon`.
    """
    scheme: Optional[str] = None
    """
    A Uri [scheme](#Uri.scheme), like `file` or `untitled`.
    """
    pattern: Optional[str] = None
    """
    A glob pattern, like `*.{ts,js}`.
    """


class TextDocumentRegistrationOptions(LspModel):
    document_selector: Optional[List[DocumentFilter]] = None
    """
    A document selector to identify the scope of the registration. If set to
    null the document selector provided on the client side will be used.
    """


class MarkupKind(str, Enum):
    PLAINTEXT = "plaintext"
    MARKDOWN = "markdown"


class MarkupContent(LspModel):
    kind: MarkupKind
    """
    The type of the Markup
    """
    value: str
    """
    The content itself
    """


class WorkDoneProgressParams(LspModel):
    work_done_token: Optional[Union[int, str]] = None


class WorkDoneProgressOptions(LspModel):
    work_done_progress: Optional[bool] = None


class PartialResultParams(LspModel):
    partial_result_token: Optional[Union[int, str]] = None


class InitializedParams(LspModel):
    pass


class MessageType(IntEnum):
    ERROR = 1
    WARNING = 2
    INFO = 3
    LOG = 4


class LogMessageParams(LspModel):
    type: MessageType
    """
    The message type.
    """
    message: str
    """
    The actual message.
    """


class Registration(LspModel):
    id: str
    """
    The id used to register the request. The id can be used to deregister
    the request again.
    """
    method: str
    """
    The method / capability to register for.
    """
    register_options: Optional[Any] = None
    """
    Options necessary for the registration.
    """


class RegistrationParams(LspModel):
    registrations: List[Registration]


class SetTraceParams(LspModel):
    value: TraceValue


class ConfigurationItem(LspModel):
    scope_uri: Optional[DocumentUri] = None
    section: Optional[str] = None


class ConfigurationParams(LspModel):
    items: List[ConfigurationItem]


class DidChangeConfigurationParams(LspModel):
    settings: Any = None


class WorkspaceFolder(LspModel):
    uri: DocumentUri
    name: str


class WorkspaceFoldersChangeEvent(LspModel):
    added: List[WorkspaceFolder]
    removed: List[WorkspaceFolder]


class DidChangeWorkspaceFoldersParams(LspModel):
    event: WorkspaceFoldersChangeEvent


class FileChangeType(IntEnum):
    CREATED = 1
    CHANGED = 2
    DELETED = 3


class FileEvent(LspModel):
    uri: DocumentUri
    type: FileChangeType


class DidChangeWatchedFilesParams(LspModel):
    changes: List[FileEvent]


class InitializeParamsClientInfo(LspModel):
    name: str
    version: Optional[str] = None


class InitializeParams(LspModel):
    process_id: Optional[int] = None
    client_info: Optional[InitializeParamsClientInfo] = None
    locale: Optional[str] = None
    root_path: Optional[str] = None
    root_uri: Optional[DocumentUri] = None
    initialization_options: Optional[Any] = None
    capabilities: Any = None
    """
    Kept as the raw payload, interpreted once by `carbonls.lsp.capabilities.negotiate`.
    """
    trace: Optional[TraceValue] = None
    workspace_folders: Optional[List[WorkspaceFolder]] = None
