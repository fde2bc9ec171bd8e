import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from carbonls.config import CarbonLsConfig
from carbonls.lsp.common_structures import MessageType
from carbonls.lsp.protocol_structures import CancelParams, ErrorCodes
from carbonls.lsp.server import LspServer

URI = "file:///tmp/main.carbon"
SECTION = "languageServerExample"


class FakeWriter:
    def __init__(self):
        self.data = bytearray()

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        pass


class Client:
    def __init__(self, config: Optional[CarbonLsConfig] = None):
        self.reader = asyncio.StreamReader()
        self.writer = FakeWriter()
        self.server = LspServer(
            config if config is not None else CarbonLsConfig(),
            self.reader,
            self.writer,  # pyright: ignore reportGeneralTypeIssues
        )
        self.task: Optional[asyncio.Task] = None
        self.next_id = 0

    def start(self) -> None:
        self.task = asyncio.create_task(self.server.run())

    async def stop(self) -> None:
        self.reader.feed_eof()
        assert self.task is not None
        await asyncio.wait_for(self.task, 5)
        await self.server.close()

    def send(self, *messages: Dict[str, Any]) -> None:
        data = b""
        for message in messages:
            body = json.dumps(message).encode("utf-8")
            data += f"Content-Length: {len(body)}\r\n\r\n".encode("utf-8") + body
        self.reader.feed_data(data)

    def request(self, method: str, params: Any = None) -> Dict[str, Any]:
        self.next_id += 1
        return {"jsonrpc": "2.0", "id": self.next_id, "method": method, "params": params}

    @staticmethod
    def notification(method: str, params: Any = None) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "method": method, "params": params}

    def messages(self) -> List[Dict[str, Any]]:
        messages = []
        data = bytes(self.writer.data)
        while len(data) > 0:
            header, _, rest = data.partition(b"\r\n\r\n")
            length = None
            for line in header.decode("utf-8").split("\r\n"):
                name, _, value = line.partition(":")
                if name.lower() == "content-length":
                    length = int(value)
            assert length is not None
            messages.append(json.loads(rest[:length]))
            data = rest[length:]
        return messages

    def response(self, id: int) -> Dict[str, Any]:
        responses = [
            m for m in self.messages() if m.get("id") == id and "method" not in m
        ]
        assert len(responses) == 1
        return responses[0]

    def notifications(self, method: str) -> List[Dict[str, Any]]:
        return [
            m["params"]
            for m in self.messages()
            if m.get("method") == method and "id" not in m
        ]

    def server_requests(self, method: str) -> List[Dict[str, Any]]:
        return [
            m for m in self.messages() if m.get("method") == method and "id" in m
        ]

    def publishes(self) -> List[Dict[str, Any]]:
        return self.notifications("textDocument/publishDiagnostics")

    async def settle(self) -> None:
        for _ in range(100):
            await asyncio.sleep(0)

    async def initialize(self, capabilities: Any = None) -> Dict[str, Any]:
        initialize = self.request(
            "initialize",
            {
                "processId": None,
                "rootUri": None,
                "clientInfo": {"name": "tests"},
                "capabilities": capabilities if capabilities is not None else {},
            },
        )
        self.send(initialize)
        await self.settle()
        self.send(self.notification("initialized", {}))
        await self.settle()
        return self.response(initialize["id"])

    def open(self, text: str, version: int = 1, uri: str = URI) -> Dict[str, Any]:
        return self.notification(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": uri,
                    "languageId": "carbon",
                    "version": version,
                    "text": text,
                }
            },
        )

    def change(self, text: str, version: int, uri: str = URI) -> Dict[str, Any]:
        return self.notification(
            "textDocument/didChange",
            {
                "textDocument": {"uri": uri, "version": version},
                "contentChanges": [{"text": text}],
            },
        )


@pytest.fixture
def config(tmp_path):
    return CarbonLsConfig(project_root_path=tmp_path)


@pytest.mark.asyncio
async def test_lifecycle(config):
    client = Client(config)
    client.start()

    completion = client.request(
        "textDocument/completion",
        {"textDocument": {"uri": URI}, "position": {"line": 0, "character": 0}},
    )
    client.send(completion)
    await client.settle()
    assert client.response(completion["id"])["error"]["code"] == ErrorCodes.ServerNotInitialized

    response = await client.initialize()
    capabilities = response["result"]["capabilities"]
    assert capabilities["textDocumentSync"] == {"openClose": True, "change": 2}
    assert capabilities["completionProvider"]["resolveProvider"] is True
    assert response["result"]["serverInfo"]["name"] == "carbonls"

    again = client.request("initialize", {"capabilities": {}})
    unknown = client.request("textDocument/hover", {})
    client.send(again, unknown, client.notification("$/progress", {}))
    await client.settle()
    assert client.response(again["id"])["error"]["code"] == ErrorCodes.InvalidRequest
    assert client.response(unknown["id"])["error"]["code"] == ErrorCodes.MethodNotFound

    shutdown = client.request("shutdown")
    client.send(shutdown)
    await client.settle()
    assert client.response(shutdown["id"]) == {
        "jsonrpc": "2.0",
        "id": shutdown["id"],
        "result": None,
    }

    after = client.request(
        "textDocument/completion",
        {"textDocument": {"uri": URI}, "position": {"line": 0, "character": 0}},
    )
    client.send(after, client.notification("exit"))
    await asyncio.wait_for(client.task, 5)
    await client.server.close()


@pytest.mark.asyncio
async def test_only_latest_version_published(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("hello"), client.change("HELLO WORLD", 2))
    await client.settle()

    publishes = client.publishes()
    assert len(publishes) == 1
    assert publishes[0]["uri"] == URI
    assert publishes[0]["version"] == 2
    assert [d["message"] for d in publishes[0]["diagnostics"]] == [
        "HELLO is all uppercase.",
        "WORLD is all uppercase.",
    ]
    assert publishes[0]["diagnostics"][0]["source"] == "ex"
    assert "relatedInformation" not in publishes[0]["diagnostics"][0]

    await client.stop()


@pytest.mark.asyncio
async def test_incremental_change(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("var x: i32;\nfn main() {}\n"))
    await client.settle()
    client.send(
        client.notification(
            "textDocument/didChange",
            {
                "textDocument": {"uri": URI, "version": 2},
                "contentChanges": [
                    {
                        "range": {
                            "start": {"line": 1, "character": 3},
                            "end": {"line": 1, "character": 7},
                        },
                        "text": "MAIN",
                    }
                ],
            },
        )
    )
    await client.settle()

    assert client.server.context.documents.get_text(URI) == "var x: i32;\nfn MAIN() {}\n"
    publishes = client.publishes()
    assert [p["version"] for p in publishes] == [1, 2]
    assert publishes[1]["diagnostics"][0]["range"] == {
        "start": {"line": 1, "character": 3},
        "end": {"line": 1, "character": 7},
    }

    await client.stop()


@pytest.mark.asyncio
async def test_stale_and_unknown_changes(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("hello", version=3))
    await client.settle()
    client.send(
        client.change("HELLO", 3),
        client.change("HELLO", 2),
        client.change("HELLO", 2, uri="file:///tmp/unknown.carbon"),
    )
    await client.settle()

    assert client.server.context.documents.get_text(URI) == "hello"
    assert len(client.publishes()) == 1

    log_messages = client.notifications("window/logMessage")
    assert any(
        "close and reopen" in m["message"] and m["type"] == MessageType.INFO
        for m in log_messages
    )
    assert any(
        "version 2" in m["message"] and m["type"] == MessageType.WARNING
        for m in log_messages
    )

    await client.stop()


@pytest.mark.asyncio
async def test_close_clears_diagnostics(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("HELLO"))
    await client.settle()
    client.send(
        client.notification("textDocument/didClose", {"textDocument": {"uri": URI}})
    )
    await client.settle()

    publishes = client.publishes()
    assert len(publishes) == 2
    assert publishes[1] == {"uri": URI, "diagnostics": []}
    assert URI not in client.server.context.documents

    await client.stop()


@pytest.mark.asyncio
async def test_global_configuration_change(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("AA BB CC"))
    await client.settle()
    client.send(
        client.notification(
            "workspace/didChangeConfiguration",
            {"settings": {SECTION: {"maxNumberOfProblems": 2}}},
        )
    )
    await client.settle()

    publishes = client.publishes()
    assert [len(p["diagnostics"]) for p in publishes] == [3, 2]
    assert publishes[1]["version"] == 1

    # missing section falls back to defaults
    client.send(
        client.notification("workspace/didChangeConfiguration", {"settings": {}})
    )
    await client.settle()
    assert len(client.publishes()[-1]["diagnostics"]) == 3

    await client.stop()


async def _answer_configuration(client: Client, answered: set, value: Any) -> int:
    count = 0
    for request in client.server_requests("workspace/configuration"):
        if request["id"] in answered:
            continue
        answered.add(request["id"])
        count += 1
        client.send({"jsonrpc": "2.0", "id": request["id"], "result": [value]})
    await client.settle()
    return count


@pytest.mark.asyncio
async def test_scoped_configuration(config):
    client = Client(config)
    client.start()
    await client.initialize(
        {
            "workspace": {"configuration": True},
            "textDocument": {"publishDiagnostics": {"relatedInformation": True}},
        }
    )

    (registration,) = client.server_requests("client/registerCapability")
    assert registration["params"]["registrations"][0]["method"] == (
        "workspace/didChangeConfiguration"
    )
    client.send({"jsonrpc": "2.0", "id": registration["id"], "result": None})

    answered = set()
    client.send(client.open("hello"), client.change("HELLO WORLD", 2))
    await client.settle()

    (request,) = client.server_requests("workspace/configuration")
    assert request["params"] == {"items": [{"scopeUri": URI, "section": SECTION}]}
    assert client.publishes() == []

    assert await _answer_configuration(client, answered, {"maxNumberOfProblems": 1}) == 1
    publishes = client.publishes()
    assert len(publishes) == 1
    assert publishes[0]["version"] == 2
    assert len(publishes[0]["diagnostics"]) == 1
    assert len(publishes[0]["diagnostics"][0]["relatedInformation"]) == 2

    # cached, no new request
    client.send(client.change("HELLO WORLD AGAIN", 3))
    await client.settle()
    assert len(client.server_requests("workspace/configuration")) == 1
    assert client.publishes()[-1]["version"] == 3

    # invalidated, exactly one new request
    client.send(client.notification("workspace/didChangeConfiguration", {"settings": None}))
    await client.settle()
    assert await _answer_configuration(client, answered, {"maxNumberOfProblems": 5}) == 1
    assert len(client.publishes()[-1]["diagnostics"]) == 3

    client.send(
        client.notification("textDocument/didClose", {"textDocument": {"uri": URI}})
    )
    await client.settle()
    assert client.server.context.settings.entry(URI) is None
    assert URI not in client.server.context.documents

    await client.stop()


@pytest.mark.asyncio
async def test_answer_for_replaced_settings_is_not_published(config):
    client = Client(config)
    client.start()
    await client.initialize({"workspace": {"configuration": True}})

    client.send(client.open("HELLO WORLD"))
    await client.settle()
    client.send(client.notification("workspace/didChangeConfiguration", {"settings": None}))
    await client.settle()

    older, newer = sorted(
        client.server_requests("workspace/configuration"), key=lambda r: r["id"]
    )
    client.send({"jsonrpc": "2.0", "id": newer["id"], "result": [{"maxNumberOfProblems": 0}]})
    await client.settle()
    client.send(
        {"jsonrpc": "2.0", "id": older["id"], "result": [{"maxNumberOfProblems": 1000}]}
    )
    await client.settle()

    publishes = client.publishes()
    assert len(publishes) == 1
    assert publishes[0]["diagnostics"] == []

    await client.stop()

@pytest.mark.asyncio
async def test_configuration_failure_uses_defaults(config):
    client = Client(config)
    client.start()
    await client.initialize({"workspace": {"configuration": True}})

    client.send(client.open("AA BB"))
    await client.settle()
    for request in client.server_requests("workspace/configuration"):
        client.send(
            {
                "jsonrpc": "2.0",
                "id": request["id"],
                "error": {"code": ErrorCodes.InternalError, "message": "unavailable"},
            }
        )
    await client.settle()

    publishes = client.publishes()
    assert len(publishes) == 1
    assert len(publishes[0]["diagnostics"]) == 2

    await client.stop()


@pytest.mark.asyncio
async def test_completion_requests(config):
    client = Client(config)
    client.start()
    await client.initialize()

    completion = client.request(
        "textDocument/completion",
        {"textDocument": {"uri": URI}, "position": {"line": 3, "character": 1}},
    )
    resolve = client.request(
        "completionItem/resolve", {"label": "String", "kind": 1, "data": 4}
    )
    client.send(completion, resolve)
    await client.settle()

    items = client.response(completion["id"])["result"]
    assert len(items) == 30
    assert items[0] == {"label": "var", "kind": 1, "data": 3}

    resolved = client.response(resolve["id"])["result"]
    assert resolved["label"] == "String"
    assert resolved["detail"] == "Carbon String"

    await client.stop()


@pytest.mark.asyncio
async def test_malformed_messages_do_not_end_session(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.reader.feed_data(b"Content-Length: 4\r\n\r\nnull")
    client.reader.feed_data(b"Content-Length: 1\r\n\r\n5")
    client.reader.feed_data(b"Content-Length: 2\r\n\r\n[]")
    client.reader.feed_data(b'Content-Length: 10\r\n\r\n{"x": "\xff"}')
    client.reader.feed_data(b"Content-Length: abc\r\n\r\n")
    client.reader.feed_data(b"Content-Length: 2\r\n\r\n{]")
    client.send(client.open("HELLO"))
    await client.settle()

    assert not client.task.done()
    publishes = client.publishes()
    assert len(publishes) == 1
    assert len(publishes[0]["diagnostics"]) == 1

    errors = [
        m
        for m in client.notifications("window/logMessage")
        if m["type"] == MessageType.ERROR and "malformed" in m["message"]
    ]
    assert len(errors) == 6

    await client.stop()


@pytest.mark.asyncio
async def test_reopen_replaces_document(config):
    client = Client(config)
    client.start()
    await client.initialize()

    client.send(client.open("hello"))
    await client.settle()
    client.send(client.open("HELLO", version=5))
    await client.settle()

    assert client.server.context.documents.get_text(URI) == "HELLO"
    assert client.server.context.documents.get(URI).version == 5
    publishes = client.publishes()
    assert [p["version"] for p in publishes] == [1, 5]
    assert [d["message"] for d in publishes[1]["diagnostics"]] == [
        "HELLO is all uppercase."
    ]
    assert any(
        "already open" in m["message"] and m["type"] == MessageType.WARNING
        for m in client.notifications("window/logMessage")
    )

    await client.stop()


@pytest.mark.asyncio
async def test_cancel_request(config, monkeypatch):
    release = asyncio.Event()

    async def slow_completion(context, params):
        await release.wait()
        return []

    monkeypatch.setattr("carbonls.lsp.server.completion", slow_completion)

    client = Client(config)
    client.start()
    await client.initialize()

    params = {"textDocument": {"uri": URI}, "position": {"line": 0, "character": 0}}
    cancelled = client.request("textDocument/completion", params)
    client.send(cancelled)
    await client.settle()
    client.send(client.notification("$/cancelRequest", {"id": cancelled["id"]}))
    await client.settle()

    assert client.response(cancelled["id"])["error"]["code"] == ErrorCodes.RequestCancelled

    finished = client.request("textDocument/completion", params)
    client.send(finished)
    await client.settle()
    release.set()
    await client.settle()
    client.send(
        client.notification("$/cancelRequest", {"id": finished["id"]}),
        client.notification("$/cancelRequest", {"id": 1000}),
    )
    await client.settle()

    assert client.response(cancelled["id"])["error"]["code"] == ErrorCodes.RequestCancelled
    assert client.response(finished["id"])["result"] == []

    async def done():
        pass

    # finished, but not yet removed from the running requests
    task = client.server.create_request_task(done(), 99)
    await asyncio.sleep(0)
    assert task.done()
    await client.server._cancel_request(CancelParams(id=99))
    assert all(m.get("id") != 99 for m in client.messages())

    await client.stop()
