from carbonls.utils import StrEnum


class RequestMethodEnum(StrEnum):
    # General
    INITIALIZE = "initialize"
    INITIALIZED = "initialized"  # Notification
    SHUTDOWN = "shutdown"
    EXIT = "exit"  # Notification
    CANCEL_REQUEST = "$/cancelRequest"  # Notification
    SET_TRACE = "$/setTrace"  # Notification
    LOG_TRACE = "$/logTrace"  # Notification

    # Window
    WINDOW_LOG_MESSAGE = "window/logMessage"  # Notification

    # Client
    CLIENT_REGISTER_CAPABILITY = "client/registerCapability"
    CLIENT_UNREGISTER_CAPABILITY = "client/unregisterCapability"

    # Workspace
    WORKSPACE_CONFIGURATION = "workspace/configuration"
    WORKSPACE_DID_CHANGE_CONFIGURATION = (
        "workspace/didChangeConfiguration"  # Notification
    )
    WORKSPACE_DID_CHANGE_WORKSPACE_FOLDERS = (
        "workspace/didChangeWorkspaceFolders"  # Notification
    )
    WORKSPACE_DID_CHANGE_WATCHED_FILES = (
        "workspace/didChangeWatchedFiles"  # Notification
    )

    # Text Synchronization
    TEXT_DOCUMENT_DID_OPEN = "textDocument/didOpen"  # Notification
    TEXT_DOCUMENT_DID_CHANGE = "textDocument/didChange"  # Notification
    TEXT_DOCUMENT_DID_SAVE = "textDocument/didSave"  # Notification
    TEXT_DOCUMENT_DID_CLOSE = "textDocument/didClose"  # Notification

    # Language Features
    COMPLETION = "textDocument/completion"
    COMPLETION_ITEM_RESOLVE = "completionItem/resolve"
    PUBLISH_DIAGNOSTICS = "textDocument/publishDiagnostics"  # Notification
