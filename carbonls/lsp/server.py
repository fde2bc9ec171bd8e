import asyncio
import json
import logging
import traceback
import uuid
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from typing import (
    Any,
    Callable,
    Coroutine,
    Dict,
    List,
    Mapping,
    NoReturn,
    Optional,
    Set,
    Tuple,
    Type,
    Union,
)

from pydantic import ValidationError

from carbonls.core import get_logger

from ..config import CarbonLsConfig
from .capabilities import build_initialize_result, negotiate
from .common_structures import (
    ConfigurationItem,
    ConfigurationParams,
    DidChangeConfigurationParams,
    DidChangeWatchedFilesParams,
    DidChangeWorkspaceFoldersParams,
    DocumentUri,
    InitializedParams,
    InitializeParams,
    LogMessageParams,
    MessageType,
    Registration,
    RegistrationParams,
    SetTraceParams,
)
from .context import LspContext
from .document_sync import (
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    DidSaveTextDocumentParams,
)
from .exceptions import DuplicateDocument, LspError, StaleVersion, UnknownDocument
from .features.completion import (
    CompletionItem,
    CompletionParams,
    completion,
    resolve_completion_item,
)
from .features.diagnostic import DiagnosticsUpdate
from .logging_handler import LspLoggingHandler
from .lsp_data_model import LspModel
from .methods import RequestMethodEnum
from .protocol_structures import (
    CancelParams,
    ErrorCodes,
    NotificationMessage,
    RequestMessage,
    ResponseError,
    ResponseMessage,
)
from .rpc_protocol import RpcProtocol, RpcProtocolError
from .server_capabilities import InitializeResult, InitializeResultServerInfo

logger = get_logger(__name__)

SERVER_NAME = "carbonls"


def _server_version() -> Optional[str]:
    try:
        return package_version(SERVER_NAME)
    except PackageNotFoundError:
        return None


class LspServer:
    __initialized: bool
    __shutdown_requested: bool
    __config: CarbonLsConfig
    __context: Optional[LspContext]
    __protocol: RpcProtocol
    __main_task: Optional[asyncio.Task]
    __request_id_counter: int
    __sent_requests: Dict[Union[int, str], asyncio.Event]
    __message_responses: Dict[Union[int, str], ResponseMessage]
    __running_tasks: Set[asyncio.Task]
    __request_tasks: Dict[Union[int, str], asyncio.Task]
    __logging_buffer: List[Tuple[str, MessageType]]
    __logging_handler: LspLoggingHandler

    __method_mapping: Dict[str, Tuple[Callable, Optional[Type[LspModel]]]]
    __notification_mapping: Dict[str, Tuple[Callable, Optional[Type[LspModel]]]]

    def __init__(
        self,
        config: CarbonLsConfig,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        self.__initialized = False
        self.__shutdown_requested = False
        self.__config = config
        self.__context = None
        self.__protocol = RpcProtocol(reader, writer)
        self.__main_task = None
        self.__request_id_counter = 0
        self.__sent_requests = {}
        self.__message_responses = {}
        self.__running_tasks = set()
        self.__request_tasks = {}
        self.__logging_buffer = []
        # forward warnings and errors of all carbonls loggers to the client
        self.__logging_handler = LspLoggingHandler(
            self.__logging_buffer, logging.WARNING
        )

        self.__method_mapping = {
            RequestMethodEnum.INITIALIZE: (self._initialize, InitializeParams),
            RequestMethodEnum.SHUTDOWN: (self._shutdown, None),
            RequestMethodEnum.COMPLETION: (self._completion, CompletionParams),
            RequestMethodEnum.COMPLETION_ITEM_RESOLVE: (
                self._completion_item_resolve,
                CompletionItem,
            ),
        }

        self.__notification_mapping = {
            RequestMethodEnum.INITIALIZED: (self._initialized, InitializedParams),
            RequestMethodEnum.EXIT: (self._exit, None),
            RequestMethodEnum.CANCEL_REQUEST: (self._cancel_request, CancelParams),
            RequestMethodEnum.SET_TRACE: (self._set_trace, SetTraceParams),
            RequestMethodEnum.TEXT_DOCUMENT_DID_OPEN: (
                self._text_document_did_open,
                DidOpenTextDocumentParams,
            ),
            RequestMethodEnum.TEXT_DOCUMENT_DID_CHANGE: (
                self._text_document_did_change,
                DidChangeTextDocumentParams,
            ),
            RequestMethodEnum.TEXT_DOCUMENT_DID_SAVE: (
                self._text_document_did_save,
                DidSaveTextDocumentParams,
            ),
            RequestMethodEnum.TEXT_DOCUMENT_DID_CLOSE: (
                self._text_document_did_close,
                DidCloseTextDocumentParams,
            ),
            RequestMethodEnum.WORKSPACE_DID_CHANGE_CONFIGURATION: (
                self._workspace_did_change_configuration,
                DidChangeConfigurationParams,
            ),
            RequestMethodEnum.WORKSPACE_DID_CHANGE_WATCHED_FILES: (
                self._workspace_did_change_watched_files,
                DidChangeWatchedFilesParams,
            ),
            RequestMethodEnum.WORKSPACE_DID_CHANGE_WORKSPACE_FOLDERS: (
                self._workspace_did_change_workspace_folders,
                DidChangeWorkspaceFoldersParams,
            ),
        }

    @property
    def context(self) -> Optional[LspContext]:
        return self.__context

    def _task_done_callback(self, task: asyncio.Task) -> None:
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:

            def _callback(t: asyncio.Task) -> None:
                if not t.cancelled() and t.exception() is not None:
                    logger.debug(f"Failed to report task error: {t.exception()}")

            logger.exception(e)
            t = asyncio.create_task(
                self.log_message(traceback.format_exc(), MessageType.ERROR)
            )
            t.add_done_callback(_callback)
        finally:
            self.__running_tasks.discard(task)

    def create_task(self, coroutine: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coroutine)
        self.__running_tasks.add(task)
        task.add_done_callback(self._task_done_callback)
        return task

    def create_request_task(
        self, coroutine: Coroutine, request_id: Union[int, str]
    ) -> asyncio.Task:
        def _callback(task: asyncio.Task) -> None:
            if self.__request_tasks.get(request_id) is task:
                del self.__request_tasks[request_id]

        task = self.create_task(coroutine)
        self.__request_tasks[request_id] = task
        task.add_done_callback(_callback)
        return task

    async def run(self) -> None:
        root_logger = logging.getLogger(SERVER_NAME)
        root_logger.addHandler(self.__logging_handler)

        self.__main_task = self.create_task(self._main_task())
        try:
            await self.__main_task
        except asyncio.CancelledError:
            pass
        finally:
            root_logger.removeHandler(self.__logging_handler)
            for task in list(self.__running_tasks):
                task.cancel()

    async def close(self) -> None:
        tasks = list(self.__running_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _main_task(self) -> None:
        messages_queue = asyncio.Queue()
        self.create_task(self._messages_loop(messages_queue))

        try:
            while True:
                try:
                    message = await self.__protocol.receive()
                except (
                    json.JSONDecodeError,
                    UnicodeDecodeError,
                    RpcProtocolError,
                    ValidationError,
                ) as e:
                    logger.error(f"Received malformed message: {e}")
                    continue

                if isinstance(message, ResponseMessage):
                    await self._handle_response(message)
                else:
                    await messages_queue.put(message)
        except ConnectionError:
            logger.info("Connection closed")

    async def _messages_loop(self, queue: asyncio.Queue) -> NoReturn:
        while True:
            message = await queue.get()
            if isinstance(message, RequestMessage):
                self.create_request_task(self._handle_message(message), message.id)
            elif isinstance(message, NotificationMessage):
                # notifications mutate the session state, keep them in receipt order
                await self._handle_notification(message)
                await self._flush_logs()
            else:
                raise Exception("Unknown message type")

    async def _flush_logs(self) -> None:
        while len(self.__logging_buffer) > 0:
            message, type = self.__logging_buffer.pop(0)
            await self.log_message(message, type)

    async def send_request(self, method: RequestMethodEnum, params: Any = None) -> Any:
        request = RequestMessage(
            jsonrpc="2.0", id=self.__request_id_counter, method=method, params=params
        )
        self.__sent_requests[request.id] = asyncio.Event()
        self.__request_id_counter += 1

        logger.debug(f"Sending request:\n{request}")
        try:
            await self.__protocol.send(request)
            await self.__sent_requests[request.id].wait()
        finally:
            self.__sent_requests.pop(request.id)
        response = self.__message_responses.pop(request.id)

        if response.error is not None:
            raise LspError(
                response.error.code, response.error.message, response.error.data
            )
        return response.result

    async def send_notification(
        self, method: str, params: Optional[Any] = None
    ) -> None:
        notification = NotificationMessage(
            jsonrpc="2.0",
            method=method,
            params=params,
        )
        logger.debug(f"Sending notification:\n{notification}")
        await self.__protocol.send(notification)

    async def log_message(self, message: str, type: MessageType) -> None:
        params = LogMessageParams(
            type=type,
            message=message,
        )
        await self.send_notification(RequestMethodEnum.WINDOW_LOG_MESSAGE, params)

    async def get_configuration(self, uri: DocumentUri, section: str) -> Any:
        """
        Request the settings `section` scoped to the document `uri` from the client.

        Returns:
            Raw settings object or `None` if the client did not return any.
        """
        params = ConfigurationParams(
            items=[ConfigurationItem(scope_uri=uri, section=section)]
        )
        result = await self.send_request(
            RequestMethodEnum.WORKSPACE_CONFIGURATION, params
        )
        if isinstance(result, list) and len(result) > 0:
            return result[0]
        return None

    async def _handle_message(self, request: RequestMessage) -> None:
        logger.info(f"Message received: {request}")

        # Init before request needed
        if request.method != RequestMethodEnum.INITIALIZE and not self.__initialized:
            response = self._serve_error(
                request.id,
                ErrorCodes.ServerNotInitialized,
                "Server has not been initialized",
            )
            await self.__protocol.send(response)
            return
        if self.__shutdown_requested:
            response = self._serve_error(
                request.id,
                ErrorCodes.InvalidRequest,
                "Server is shutting down",
            )
            await self.__protocol.send(response)
            return

        # Handling request
        try:
            response = await self._serve_response(request)
        except LspError as e:
            response = self._serve_error(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(e)
            response = self._serve_error(
                request.id, ErrorCodes.InternalError, f"{type(e).__name__}: {e}"
            )
        await self.__protocol.send(response)
        await self._flush_logs()

    async def _handle_notification(self, notification: NotificationMessage) -> None:
        logger.info(f"Notification received: {notification}")

        if not self.__initialized and notification.method != RequestMethodEnum.EXIT:
            logger.debug(
                f"Ignoring notification '{notification.method}' before initialization"
            )
            return

        try:
            n, params_type = self.__notification_mapping[notification.method]
        except KeyError:
            if not notification.method.startswith("$/"):
                logger.warning(
                    f"Incoming notification type '{notification.method}' not implemented."
                )
            return

        if params_type is None:
            await n(None)
            return

        try:
            params = params_type.model_validate(notification.params)
        except ValidationError as e:
            logger.error(f"Invalid params of notification '{notification.method}': {e}")
            return
        await n(params)

    async def _handle_response(self, response: ResponseMessage) -> None:
        logger.info(f"Response received: {response}")

        if response.id is None:
            logger.error(f"Response without id: {response}")
            return

        try:
            event = self.__sent_requests[response.id]
        except KeyError:
            logger.error(
                f"Received response with id {response.id} but no such request was sent."
            )
            return
        self.__message_responses[response.id] = response
        event.set()

    async def _serve_response(self, request: RequestMessage) -> ResponseMessage:
        try:
            m, params_type = self.__method_mapping[request.method]
        except KeyError:
            raise LspError(
                ErrorCodes.MethodNotFound,
                f"Method '{request.method}' not implemented.",
            ) from None

        if params_type is not None:
            try:
                params = params_type.model_validate(request.params)
            except ValidationError as e:
                raise LspError(ErrorCodes.InvalidParams, str(e)) from None
            response = await m(params)
        else:
            response = await m(None)

        response_message = ResponseMessage(jsonrpc="2.0", id=request.id, result=response)
        logger.info(f"Serving response: {response_message}")
        return response_message

    @staticmethod
    def _serve_error(
        request_id: Union[int, str, None],
        error_code: int,
        msg: str,
        data: Any = None,
    ) -> ResponseMessage:
        if data is None:
            response_error = ResponseError(code=error_code, message=msg)
        else:
            response_error = ResponseError(code=error_code, message=msg, data=data)
        response_message = ResponseMessage(
            jsonrpc="2.0", id=request_id, error=response_error
        )
        logger.info(f"Serving error response: {response_message}")
        return response_message

    def __require_context(self) -> LspContext:
        if self.__context is None:
            raise LspError(
                ErrorCodes.ServerNotInitialized, "Server has not been initialized"
            )
        return self.__context

    async def _initialize(self, params: InitializeParams) -> InitializeResult:
        if self.__initialized:
            raise LspError(ErrorCodes.InvalidRequest, "Server already initialized")

        if params.client_info is not None:
            logger.info(
                f"Initializing session for {params.client_info.name} {params.client_info.version or ''}"
            )

        capabilities = negotiate(params.capabilities)
        self.__context = LspContext(self, self.__config, capabilities)
        self.__initialized = True
        self.__context.run()

        return build_initialize_result(
            capabilities,
            InitializeResultServerInfo(name=SERVER_NAME, version=_server_version()),
        )

    async def _shutdown(self, params: Any) -> None:
        self.__shutdown_requested = True

    async def _exit(self, params: Any) -> None:
        if not self.__shutdown_requested:
            logger.warning("Exit notification received without a prior shutdown request")
        if self.__main_task is not None:
            self.__main_task.cancel()

    async def _cancel_request(self, params: CancelParams) -> None:
        task = self.__request_tasks.pop(params.id, None)
        # a finished task has already sent its response
        if task is None or task.done():
            return
        task.cancel()
        await self.__protocol.send(
            self._serve_error(
                params.id, ErrorCodes.RequestCancelled, "Request cancelled"
            )
        )

    async def _set_trace(self, params: SetTraceParams) -> None:
        logger.debug(f"Trace set to {params.value}")

    async def _initialized(self, params: InitializedParams) -> None:
        context = self.__require_context()
        if context.capabilities.configuration:
            self.create_task(self.__register_configuration_change())
        if context.capabilities.workspace_folders:
            logger.debug("Client supports workspace folder change notifications")

    async def __register_configuration_change(self) -> None:
        params = RegistrationParams(
            registrations=[
                Registration(
                    id=str(uuid.uuid4()),
                    method=RequestMethodEnum.WORKSPACE_DID_CHANGE_CONFIGURATION,
                )
            ]
        )
        try:
            await self.send_request(
                RequestMethodEnum.CLIENT_REGISTER_CAPABILITY, params
            )
        except LspError as e:
            logger.warning(
                f"Failed to register for configuration change notifications: {e.message}"
            )

    async def _text_document_did_open(self, params: DidOpenTextDocumentParams) -> None:
        context = self.__require_context()
        item = params.text_document
        try:
            document = context.documents.open(item.uri, item.text, item.version)
        except DuplicateDocument as e:
            logger.warning(f"{e}, replacing its content")
            document = context.documents.open(
                item.uri, item.text, item.version, replace=True
            )
        context.schedule_validation(document)

    async def _text_document_did_change(
        self, params: DidChangeTextDocumentParams
    ) -> None:
        context = self.__require_context()
        uri = params.text_document.uri
        try:
            document = context.documents.apply_change(
                uri, params.content_changes, params.text_document.version
            )
        except UnknownDocument as e:
            logger.warning(f"Ignoring change: {e}")
            await self.log_message(
                f"Received a change of {uri} which is not open, close and reopen the document to resynchronize it.",
                MessageType.INFO,
            )
            return
        except StaleVersion as e:
            logger.warning(str(e))
            return
        context.schedule_validation(document)

    async def _text_document_did_save(self, params: DidSaveTextDocumentParams) -> None:
        logger.debug(f"Document saved: {params.text_document.uri}")

    async def _text_document_did_close(
        self, params: DidCloseTextDocumentParams
    ) -> None:
        context = self.__require_context()
        uri = params.text_document.uri
        try:
            context.documents.close(uri)
        except UnknownDocument as e:
            logger.warning(f"Ignoring close: {e}")
            return
        context.settings.forget(uri)
        await context.diagnostics_queue.put(DiagnosticsUpdate(uri, []))

    async def _workspace_did_change_configuration(
        self, params: DidChangeConfigurationParams
    ) -> None:
        logger.debug(f"Received configuration change: {params}")
        context = self.__require_context()
        settings = context.settings

        if settings.scoped:
            settings.invalidate_all()
        else:
            raw_settings = None
            if isinstance(params.settings, Mapping):
                raw_settings = params.settings.get(settings.section)
            try:
                settings.set_global(settings.parse(raw_settings))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Invalid settings received, using defaults: {e}")
                settings.set_global(settings.default)

        for uri in context.documents.all_open_uris():
            context.schedule_validation(context.documents.get(uri))

    async def _workspace_did_change_watched_files(
        self, params: DidChangeWatchedFilesParams
    ) -> None:
        for change in params.changes:
            logger.info(f"Watched file {change.uri} {change.type.name.lower()}")

    async def _workspace_did_change_workspace_folders(
        self, params: DidChangeWorkspaceFoldersParams
    ) -> None:
        logger.info(
            f"Workspace folders changed: added {[f.uri for f in params.event.added]}, removed {[f.uri for f in params.event.removed]}"
        )

    async def _completion(self, params: CompletionParams) -> List[CompletionItem]:
        return await completion(self.__require_context(), params)

    async def _completion_item_resolve(self, params: CompletionItem) -> CompletionItem:
        return await resolve_completion_item(self.__require_context(), params)
