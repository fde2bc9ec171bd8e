from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Optional

import rich_click as click

from carbonls.core import get_logger

from .console import console

if TYPE_CHECKING:
    from carbonls.config import CarbonLsConfig


logger = get_logger(__name__)


async def run_server(config: CarbonLsConfig, port: int) -> None:
    from carbonls.lsp.server import LspServer

    async def client_callback(
        reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        lsp_server = LspServer(config, reader, writer)
        logger.info("Client connected")
        try:
            await lsp_server.run()
        finally:
            await lsp_server.close()
            writer.close()
        logger.info("Client disconnected")

    server = await asyncio.start_server(client_callback, port=port)
    logger.info(f"Started LSP server on port {port}")

    async with server:
        await server.serve_forever()


async def run_stdio_server(config: CarbonLsConfig) -> None:
    from carbonls.lsp.server import LspServer

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)

    lsp_server = LspServer(config, reader, writer)
    logger.info("Started LSP server on stdio")
    try:
        await lsp_server.run()
    finally:
        await lsp_server.close()
        writer.close()


@click.command(name="lsp")
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to listen on. Defaults to 65432 unless --stdio is given.",
)
@click.option(
    "--stdio",
    is_flag=True,
    default=False,
    help="Communicate over standard input and output instead of a TCP socket.",
)
@click.pass_context
def run_lsp(context: click.Context, port: Optional[int], stdio: bool):
    """
    Start the LSP server.
    """
    from carbonls.config import CarbonLsConfig

    if stdio and port is not None:
        raise click.BadParameter("--port cannot be used together with --stdio")

    config = CarbonLsConfig(
        local_config_path=context.obj.get("local_config_path", None)
    )
    config.load_configs()

    if stdio:
        # stdout carries the protocol
        console.file = sys.stderr
        asyncio.run(run_stdio_server(config))
    else:
        asyncio.run(run_server(config, port if port is not None else 65432))
