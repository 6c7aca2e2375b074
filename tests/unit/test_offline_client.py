from __future__ import annotations

from node_planner.models import CompletionRequest, OfflineLLMClient
from node_planner.planning.analyzer import Analyzer
from node_planner.planning.extractor import Extractor
from node_planner.validation import GraphValidator


def _graph_reply(task: str) -> str:
    request = CompletionRequest(user_prompt="ignored", metadata={"phase": "plan", "task": task})
    return OfflineLLMClient().complete(request).content


def test_linear_task_gets_a_tool_pipeline() -> None:
    extraction = Extractor().extract(_graph_reply("fetch the weather report and summarise it"))

    graph = Extractor.parse_graph(extraction.document)
    assert GraphValidator().validate(extraction.document.encode("utf-8")).valid
    assert [node["id"] for node in graph["nodes"]] == ["intake", "execute", "summarize"]
    assert graph["nodes"][1]["mode"] == "tool"
    assert extraction.reasoning.startswith("Offline heuristic graph")


def test_routing_task_gets_a_router() -> None:
    extraction = Extractor().extract(_graph_reply("classify emails and route them"))

    graph = Extractor.parse_graph(extraction.document)
    assert GraphValidator().validate(extraction.document.encode("utf-8")).valid
    assert any(node["type"] == "router" for node in graph["nodes"])


def test_analysis_reply_parses() -> None:
    client = OfflineLLMClient()
    analysis = Analyzer(client).analyze("summarise the quarterly report")

    assert analysis.complexity.value == "simple"
    assert not analysis.requires_routing
    assert client.usage.snapshot().successful_calls == 1
