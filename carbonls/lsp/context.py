from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ..config import CarbonLsConfig
from .capabilities import SessionCapabilities
from .document_sync import DocumentStore, TextDocument
from .features.diagnostic import diagnostics_loop, validate
from .settings_cache import DocumentSettings, SettingsCache

if TYPE_CHECKING:
    from .server import LspServer


class LspContext:
    """
    State of a single client session. Every component receives the context explicitly, there is no
    state shared between sessions.
    """

    __server: LspServer
    __config: CarbonLsConfig
    __capabilities: SessionCapabilities
    __documents: DocumentStore
    __settings: SettingsCache
    __diagnostics_queue: asyncio.Queue

    def __init__(
        self,
        server: LspServer,
        config: CarbonLsConfig,
        capabilities: SessionCapabilities,
    ) -> None:
        self.__server = server
        self.__config = config
        self.__capabilities = capabilities
        self.__documents = DocumentStore()
        self.__settings = SettingsCache(
            scoped=capabilities.configuration,
            section=config.lsp.configuration_section,
            fetch=server.get_configuration,
            default=DocumentSettings(
                max_number_of_problems=config.lsp.default_settings.max_number_of_problems
            ),
            timeout=config.lsp.configuration_timeout,
        )
        self.__diagnostics_queue = asyncio.Queue()

    def run(self) -> None:
        self.__server.create_task(diagnostics_loop(self.__server, self))

    def schedule_validation(self, document: TextDocument) -> asyncio.Task:
        # the snapshot is taken now, later changes do not affect this validation
        return self.__server.create_task(validate(self, document))

    @property
    def config(self) -> CarbonLsConfig:
        return self.__config

    @property
    def capabilities(self) -> SessionCapabilities:
        return self.__capabilities

    @property
    def documents(self) -> DocumentStore:
        return self.__documents

    @property
    def settings(self) -> SettingsCache:
        return self.__settings

    @property
    def diagnostics_queue(self) -> asyncio.Queue:
        return self.__diagnostics_queue

    @property
    def server(self) -> LspServer:
        return self.__server
