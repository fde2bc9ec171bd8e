import asyncio
import json
from typing import Union

from .protocol_structures import (
    NotificationMessage,
    RequestMessage,
    ResponseError,
    ResponseMessage,
)

ENCODING = "utf-8"


class RpcProtocolError(Exception):
    pass


class RpcProtocol:
    """
    Json rpc communication
    """

    __reader: asyncio.StreamReader
    __writer: asyncio.StreamWriter
    __lock: asyncio.Lock

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.__reader = reader
        self.__writer = writer
        self.__lock = asyncio.Lock()

    async def _read_message(self) -> dict:
        content_length = None
        error = None
        # the whole header block is consumed before reporting an error
        while True:
            raw_line = await self.__reader.readline()
            if len(raw_line) == 0:
                raise ConnectionError("Connection closed by the client")

            line = raw_line.decode(ENCODING, errors="replace")
            if line == "\r\n":
                break
            if not line.endswith("\r\n"):
                error = error or f"Invalid HTTP header: {line!r}"
                continue

            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                try:
                    content_length = int(value)
                except ValueError:
                    content_length = -1
                if content_length < 0:
                    error = error or f"Invalid Content-Length header: {line.strip()}"

        if error is not None:
            raise RpcProtocolError(error)
        if content_length is None:
            raise RpcProtocolError("Missing Content-Length header")

        try:
            content = await self.__reader.readexactly(content_length)
        except asyncio.IncompleteReadError as e:
            raise ConnectionError("Connection closed by the client") from e
        return json.loads(content)

    async def receive(
        self,
    ) -> Union[RequestMessage, NotificationMessage, ResponseMessage]:
        raw_message = await self._read_message()
        if not isinstance(raw_message, dict):
            raise RpcProtocolError(
                f"Expected a JSON object, got {type(raw_message).__name__}"
            )

        if "id" in raw_message:
            if "method" in raw_message:
                return RequestMessage.model_validate(raw_message)
            else:
                return ResponseMessage.model_validate(raw_message)
        return NotificationMessage.model_validate(raw_message)

    async def _send(self, message: str) -> None:
        encoded_message = message.encode(ENCODING)
        content_length = len(encoded_message)
        response = (
            f"Content-Length: {content_length}\r\nContent-Type: application/vscode-jsonrpc; charset={ENCODING}\r\n\r\n".encode(
                ENCODING
            )
            + encoded_message
        )
        async with self.__lock:
            self.__writer.write(response)
            await self.__writer.drain()

    async def send(
        self,
        message: Union[
            ResponseMessage, RequestMessage, ResponseError, NotificationMessage
        ],
    ) -> None:
        await self._send(message.model_dump_json(exclude_unset=True, by_alias=True))
