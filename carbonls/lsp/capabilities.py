from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from carbonls.core import get_logger

from .document_sync import TextDocumentSyncKind, TextDocumentSyncOptions
from .exceptions import MalformedCapabilityPayload
from .features.completion import CompletionOptions
from .server_capabilities import (
    InitializeResult,
    InitializeResultServerInfo,
    PositionEncodingKind,
    ServerCapabilities,
    ServerCapabilitiesWorkspace,
    WorkspaceFoldersServerCapabilities,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionCapabilities:
    """
    Client features the session relies on, fixed at `initialize` for the whole session lifetime.
    """

    configuration: bool = False
    """
    Client answers `workspace/configuration` requests, settings are resolved per document.
    """
    workspace_folders: bool = False
    """
    Client sends workspace folder change notifications.
    """
    diagnostic_related_information: bool = False
    """
    Client renders `relatedInformation` attached to diagnostics.
    """


def _capability_flag(payload: Any, *path: str) -> bool:
    value = payload
    for no, segment in enumerate(path):
        if value is None:
            return False
        if not isinstance(value, Mapping):
            raise MalformedCapabilityPayload(
                f"Expected an object at `{'.'.join(path[:no]) or 'capabilities'}`, got {type(value).__name__}"
            )
        value = value.get(segment)
    return bool(value)


def negotiate(payload: Any) -> SessionCapabilities:
    """
    Interpret the client capabilities sent with the `initialize` request.

    Missing or malformed parts of the payload are treated as unsupported features.
    """
    flags = {}
    for name, path in (
        ("configuration", ("workspace", "configuration")),
        ("workspace_folders", ("workspace", "workspaceFolders")),
        (
            "diagnostic_related_information",
            ("textDocument", "publishDiagnostics", "relatedInformation"),
        ),
    ):
        try:
            flags[name] = _capability_flag(payload, *path)
        except MalformedCapabilityPayload as e:
            logger.warning(f"Malformed client capabilities, assuming `{name}` unsupported: {e}")
            flags[name] = False

    capabilities = SessionCapabilities(**flags)
    logger.debug(f"Negotiated session capabilities: {capabilities}")
    return capabilities


def build_initialize_result(
    capabilities: SessionCapabilities,
    server_info: Optional[InitializeResultServerInfo] = None,
) -> InitializeResult:
    server_capabilities = ServerCapabilities(
        position_encoding=PositionEncodingKind.UTF16,
        text_document_sync=TextDocumentSyncOptions(
            open_close=True, change=TextDocumentSyncKind.INCREMENTAL
        ),
        completion_provider=CompletionOptions(resolve_provider=True),
    )
    if capabilities.workspace_folders:
        server_capabilities.workspace = ServerCapabilitiesWorkspace(
            workspace_folders=WorkspaceFoldersServerCapabilities(supported=True)
        )

    if server_info is None:
        return InitializeResult(capabilities=server_capabilities)
    return InitializeResult(capabilities=server_capabilities, server_info=server_info)
