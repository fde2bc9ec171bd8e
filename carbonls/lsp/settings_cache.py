from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from carbonls.core import get_logger

from .common_structures import DocumentUri
from .exceptions import ConfigurationUnavailable, LspError
from .lsp_data_model import LspModel

logger = get_logger(__name__)


class DocumentSettings(LspModel):
    max_number_of_problems: int = 1000
    """
    Maximum number of diagnostics reported for a single document.
    """


SettingsFetcher = Callable[[DocumentUri, str], Awaitable[Any]]


@dataclass(frozen=True)
class PendingSettings:
    task: asyncio.Task


@dataclass(frozen=True)
class ResolvedSettings:
    value: DocumentSettings


@dataclass(frozen=True)
class FailedSettings:
    reason: str


SettingsEntry = Union[PendingSettings, ResolvedSettings, FailedSettings]


class SettingsCache:
    """
    Per-document settings of a session.

    Without scoped configuration support on the client side, all documents share a single global
    record. Otherwise settings are fetched lazily from the client for every document and cached,
    with at most one resolution in flight per document.
    """

    __scoped: bool
    __section: str
    __fetch: SettingsFetcher
    __global: DocumentSettings
    __default: DocumentSettings
    __timeout: Optional[float]
    __entries: Dict[DocumentUri, SettingsEntry]
    __generation: int

    def __init__(
        self,
        *,
        scoped: bool,
        section: str,
        fetch: SettingsFetcher,
        default: Optional[DocumentSettings] = None,
        timeout: Optional[float] = None,
    ):
        self.__scoped = scoped
        self.__section = section
        self.__fetch = fetch
        self.__default = default if default is not None else DocumentSettings()
        self.__global = self.__default
        self.__timeout = timeout
        self.__entries = {}
        self.__generation = 0

    @property
    def scoped(self) -> bool:
        return self.__scoped

    @property
    def section(self) -> str:
        return self.__section

    @property
    def default(self) -> DocumentSettings:
        return self.__default

    @property
    def global_settings(self) -> DocumentSettings:
        return self.__global

    @property
    def generation(self) -> int:
        """
        Incremented every time the settings of all documents are replaced or invalidated.
        """
        return self.__generation

    def entry(self, uri: DocumentUri) -> Optional[SettingsEntry]:
        return self.__entries.get(uri)

    def __len__(self) -> int:
        return len(self.__entries)

    def invalidate_all(self) -> None:
        logger.debug(f"Invalidating {len(self.__entries)} cached document settings")
        self.__entries.clear()
        self.__generation += 1

    def set_global(self, settings: DocumentSettings) -> None:
        self.__global = settings
        self.__generation += 1

    def forget(self, uri: DocumentUri) -> None:
        self.__entries.pop(uri, None)

    def parse(self, raw_settings: Any) -> DocumentSettings:
        """
        Validate a raw settings object received from the client.
        """
        if raw_settings is None:
            return self.__default
        if not isinstance(raw_settings, Mapping):
            raise ValueError(
                f"Expected an object for `{self.__section}`, got {type(raw_settings).__name__}"
            )
        return DocumentSettings.model_validate(raw_settings)

    async def get(self, uri: DocumentUri) -> DocumentSettings:
        if not self.__scoped:
            return self.__global

        entry = self.__entries.get(uri)
        if isinstance(entry, ResolvedSettings):
            return entry.value
        elif isinstance(entry, PendingSettings):
            task = entry.task
        else:
            task = self.__start_resolution(uri)

        try:
            # shield the shared resolution from cancellation or timeout of a single waiter
            return await asyncio.wait_for(asyncio.shield(task), self.__timeout)
        except asyncio.TimeoutError:
            raise ConfigurationUnavailable(
                uri, f"no response within {self.__timeout} seconds"
            ) from None

    def __start_resolution(self, uri: DocumentUri) -> asyncio.Task:
        logger.debug(f"Resolving settings for {uri}")
        task = asyncio.ensure_future(self.__resolve(uri))
        entry = PendingSettings(task)
        self.__entries[uri] = entry
        task.add_done_callback(lambda t: self.__resolution_done(uri, entry))
        return task

    async def __resolve(self, uri: DocumentUri) -> DocumentSettings:
        try:
            raw_settings = await self.__fetch(uri, self.__section)
        except LspError as e:
            raise ConfigurationUnavailable(uri, e.message) from e
        except ConnectionError as e:
            raise ConfigurationUnavailable(uri, str(e)) from e

        if raw_settings is None:
            raise ConfigurationUnavailable(uri, "client returned no settings")
        try:
            return self.parse(raw_settings)
        except (ValueError, ValidationError) as e:
            raise ConfigurationUnavailable(uri, str(e)) from e

    def __resolution_done(self, uri: DocumentUri, entry: PendingSettings) -> None:
        task = entry.task
        if task.cancelled():
            if self.__entries.get(uri) is entry:
                del self.__entries[uri]
            return

        e = task.exception()
        if self.__entries.get(uri) is not entry:
            # invalidated or forgotten while resolving, do not resurrect the entry
            return

        if e is None:
            self.__entries[uri] = ResolvedSettings(task.result())
        else:
            logger.warning(str(e))
            self.__entries[uri] = FailedSettings(
                e.reason if isinstance(e, ConfigurationUnavailable) else repr(e)
            )
