from typing import Any


class LspError(Exception):
    __code: int
    __message: str
    __data: Any

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.__code = code
        self.__message = message
        self.__data = data

    @property
    def code(self) -> int:
        return self.__code

    @property
    def message(self) -> str:
        return self.__message

    @property
    def data(self) -> Any:
        return self.__data


class SessionError(Exception):
    """
    Base class of recoverable errors raised by session components. These are logged and absorbed
    by the server, they never terminate the session.
    """


class DuplicateDocument(SessionError):
    def __init__(self, uri: str):
        super().__init__(f"Document {uri} is already open")
        self.uri = uri


class UnknownDocument(SessionError):
    def __init__(self, uri: str):
        super().__init__(f"Document {uri} is not open")
        self.uri = uri


class StaleVersion(SessionError):
    def __init__(self, uri: str, stored_version: int, received_version: int):
        super().__init__(
            f"Ignoring change of {uri} with version {received_version}, stored version is {stored_version}"
        )
        self.uri = uri
        self.stored_version = stored_version
        self.received_version = received_version


class ConfigurationUnavailable(SessionError):
    def __init__(self, uri: str, reason: str):
        super().__init__(f"Configuration for {uri} unavailable: {reason}")
        self.uri = uri
        self.reason = reason


class MalformedCapabilityPayload(SessionError):
    pass
