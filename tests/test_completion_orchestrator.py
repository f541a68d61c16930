import pytest

from supplier_intel.llm import CompletionOrchestrator, ProviderNotConfigured, extract_json_object
from tests.fakes import FakeCompletionProvider


USER = [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_failed_provider_is_replaced_by_next():
    groq = FakeCompletionProvider("groq", "Groq", error=RuntimeError("timeout"))
    openai = FakeCompletionProvider("openai", "OpenAI", reply="second")
    result = await CompletionOrchestrator([groq, openai]).complete(USER)
    assert result.text == "second"
    assert result.provider == "openai"
    assert len(groq.calls) == 1


@pytest.mark.asyncio
async def test_unconfigured_providers_are_skipped():
    groq = FakeCompletionProvider("groq", "Groq", configured=False)
    ollama = FakeCompletionProvider("ollama", "Ollama", reply="local", local=True)
    result = await CompletionOrchestrator([groq, ollama]).complete(USER)
    assert result.provider == "ollama"
    assert groq.calls == []


@pytest.mark.asyncio
async def test_no_configured_provider_raises():
    orchestrator = CompletionOrchestrator([FakeCompletionProvider("groq", configured=False)])
    assert orchestrator.configured is False
    with pytest.raises(ProviderNotConfigured):
        await orchestrator.complete(USER)


@pytest.mark.asyncio
async def test_empty_and_thinking_only_replies_advance_chain():
    first = FakeCompletionProvider("first", reply="   ")
    second = FakeCompletionProvider("second", reply="<think>only thoughts</think>")
    third = FakeCompletionProvider("third", reply="real answer")
    result = await CompletionOrchestrator([first, second, third]).complete(USER)
    assert result.text == "real answer"


@pytest.mark.asyncio
async def test_parse_rejection_advances_chain():
    first = FakeCompletionProvider("first", reply="Sorry, I cannot produce JSON.")
    second = FakeCompletionProvider("second", reply='{"overall": 70}')
    result = await CompletionOrchestrator([first, second]).complete(USER, parse=extract_json_object)
    assert result.provider == "second"
    assert result.parsed == {"overall": 70}


@pytest.mark.asyncio
async def test_all_failures_return_none():
    providers = [
        FakeCompletionProvider("a", error=RuntimeError("down")),
        FakeCompletionProvider("b", reply=""),
    ]
    assert await CompletionOrchestrator(providers).complete(USER) is None


@pytest.mark.asyncio
async def test_messages_are_sanitized_before_dispatch():
    provider = FakeCompletionProvider("groq")
    await CompletionOrchestrator([provider]).complete(
        [
            {"role": "system", "content": "sys"},
            {"role": "tool", "content": "dropped"},
            {"role": "user", "content": "   "},
            {"role": "user", "content": "kept"},
        ],
        temperature=0.1,
        max_tokens=42,
    )
    call = provider.calls[0]
    assert call["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "kept"}]
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 42


@pytest.mark.asyncio
async def test_empty_messages_rejected():
    with pytest.raises(ValueError):
        await CompletionOrchestrator([FakeCompletionProvider("groq")]).complete([{"role": "user", "content": ""}])


@pytest.mark.asyncio
async def test_status_prefers_cloud_providers():
    groq = FakeCompletionProvider("groq", "Groq")
    anthropic = FakeCompletionProvider("anthropic", "Anthropic")
    ollama = FakeCompletionProvider("ollama", "Ollama", local=True, probe_result={"url": "x", "models": []})
    status = await CompletionOrchestrator([groq, anthropic, ollama]).status()
    assert status == {
        "status": "online",
        "provider": "Groq",
        "providers": ["Groq", "Anthropic"],
        "message": "AI powered by Groq, Anthropic",
    }
    assert ollama.probes == 0


@pytest.mark.asyncio
async def test_status_reports_local_server():
    groq = FakeCompletionProvider("groq", "Groq", configured=False)
    ollama = FakeCompletionProvider(
        "ollama",
        "Ollama",
        local=True,
        probe_result={"url": "http://127.0.0.1:11434", "models": ["llama3:8b"]},
    )
    status = await CompletionOrchestrator([groq, ollama]).status()
    assert status == {
        "status": "online",
        "provider": "Ollama",
        "url": "http://127.0.0.1:11434",
        "models": ["llama3:8b"],
    }


@pytest.mark.asyncio
async def test_status_offline_when_nothing_reachable():
    ollama = FakeCompletionProvider("ollama", "Ollama", local=True, probe_result=None)
    status = await CompletionOrchestrator([ollama]).status()
    assert status["status"] == "offline"
    assert "OPENAI_API_KEY" in status["message"]
