import json

import pytest

from carbonls.lsp.capabilities import (
    SessionCapabilities,
    build_initialize_result,
    negotiate,
)
from carbonls.lsp.server_capabilities import InitializeResultServerInfo


def test_negotiate_full():
    capabilities = negotiate(
        {
            "workspace": {"configuration": True, "workspaceFolders": True},
            "textDocument": {"publishDiagnostics": {"relatedInformation": True}},
        }
    )
    assert capabilities == SessionCapabilities(
        configuration=True,
        workspace_folders=True,
        diagnostic_related_information=True,
    )


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {},
        {"workspace": None},
        {"workspace": {}, "textDocument": {"publishDiagnostics": {}}},
        {"workspace": {"configuration": False}},
    ],
)
def test_negotiate_missing(payload):
    assert negotiate(payload) == SessionCapabilities()


def test_negotiate_malformed():
    capabilities = negotiate(
        {
            "workspace": ["configuration"],
            "textDocument": {"publishDiagnostics": {"relatedInformation": True}},
        }
    )
    assert not capabilities.configuration
    assert not capabilities.workspace_folders
    assert capabilities.diagnostic_related_information

    assert negotiate("capabilities") == SessionCapabilities()


def test_initialize_result():
    result = build_initialize_result(
        SessionCapabilities(configuration=True),
        InitializeResultServerInfo(name="carbonls", version="0.1.0"),
    )
    data = json.loads(result.model_dump_json(exclude_unset=True, by_alias=True))

    assert data["capabilities"]["textDocumentSync"] == {"openClose": True, "change": 2}
    assert data["capabilities"]["completionProvider"] == {"resolveProvider": True}
    assert data["capabilities"]["positionEncoding"] == "utf-16"
    assert "workspace" not in data["capabilities"]
    assert data["serverInfo"] == {"name": "carbonls", "version": "0.1.0"}


def test_initialize_result_workspace_folders():
    result = build_initialize_result(SessionCapabilities(workspace_folders=True))
    data = json.loads(result.model_dump_json(exclude_unset=True, by_alias=True))

    assert data["capabilities"]["workspace"] == {"workspaceFolders": {"supported": True}}
    assert "serverInfo" not in data
