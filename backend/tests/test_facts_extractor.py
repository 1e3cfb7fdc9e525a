import json

from signals.llm.providers import LLMProvider, ProviderResult


class FakeProvider(LLMProvider):
    """Scripted provider: returns ``content`` (or ``error``) and records prompts."""

    def __init__(self, name, content="", error=None, available=True, latency_ms=12, raises=None):
        self.name = name
        self.content = content
        self.error = error
        self._available = available
        self.latency_ms = latency_ms
        self.raises = raises
        self.prompts = []

    @property
    def model_name(self):
        return f"{self.name}-model"

    def available(self):
        return self._available

    def run(self, prompt, *, system_message=None, max_tokens=2500, temperature=0.1, timeout_s=45.0):
        self.prompts.append(prompt)
        if self.raises:
            raise self.raises
        return ProviderResult(content=self.content, model=self.model_name, latency_ms=self.latency_ms, error=self.error)


def _extractor(db_session, email, providers, **config):
    from signals.config import PipelineConfig
    from signals.decisioning.input_builder import DecisionInputBuilder
    from signals.facts.extractor import EmailFactsExtractor

    base = DecisionInputBuilder(email).build_base()
    return EmailFactsExtractor(db_session, email, base, config=PipelineConfig(**config), providers=providers)


def test_first_schema_valid_response_wins_and_every_attempt_is_logged(db_session, make_application, make_email, scheduling_facts):
    from signals.models import LlmApiLog

    email = make_email(make_application(), email_type="scheduling")
    bad = FakeProvider("openai", content="Sure! Here are the facts: not json")
    good = FakeProvider("ollama", content="```json\n" + json.dumps(scheduling_facts) + "\n```")

    res = _extractor(db_session, email, [bad, good]).call()

    assert res["success"] is True
    assert res["facts"]["classification"]["kind"] == "scheduling"
    logs = db_session.query(LlmApiLog).order_by(LlmApiLog.id).all()
    assert [(log.provider, log.status) for log in logs] == [("openai", "rejected"), ("ollama", "success")]
    assert res["llm_api_log_id"] == logs[1].id

    db_session.refresh(email)
    assert email.extracted_data["email_facts_v1"] == scheduling_facts
    meta = email.extracted_data["email_facts_meta_v1"]
    assert meta["status"] == "ok"
    assert meta["provider"] == "ollama"
    assert meta["llm_api_log_id"] == logs[1].id


def test_prompt_carries_canonical_body(db_session, make_application, make_email, scheduling_facts):
    email = make_email(make_application())
    provider = FakeProvider("openai", content=json.dumps(scheduling_facts))
    _extractor(db_session, email, [provider]).call()
    assert "Jordan Lee, Engineering Manager" in provider.prompts[0]
    assert "Phone screen confirmed: Acme" in provider.prompts[0]


def test_no_available_provider_persists_failed_meta(db_session, make_application, make_email):
    email = make_email(make_application())
    res = _extractor(db_session, email, [FakeProvider("openai", available=False)]).call()

    assert res == {"success": False, "error": "no_providers_available"}
    db_session.refresh(email)
    assert email.extracted_data["email_facts_v1"] is None
    assert email.extracted_data["email_facts_meta_v1"]["status"] == "failed"


def test_schema_invalid_output_is_an_extraction_failure(db_session, make_application, make_email):
    email = make_email(make_application())
    provider = FakeProvider("openai", content=json.dumps({"classification": {"kind": "scheduling"}}))
    res = _extractor(db_session, email, [provider]).call()

    assert res["success"] is False
    db_session.refresh(email)
    assert email.extracted_data["email_facts_meta_v1"]["status"] == "failed"


def test_slow_response_counts_as_timeout(db_session, make_application, make_email, scheduling_facts):
    from signals.models import LlmApiLog

    email = make_email(make_application())
    provider = FakeProvider("openai", content=json.dumps(scheduling_facts), latency_ms=5000)
    res = _extractor(db_session, email, [provider], llm_timeout_s=1.0).call()

    assert res["success"] is False
    assert "timeout" in res["error"]
    log = db_session.query(LlmApiLog).one()
    assert log.status == "error"


def test_provider_error_falls_through_to_next(db_session, make_application, make_email, scheduling_facts):
    email = make_email(make_application())
    failing = FakeProvider("openai", error="APIConnectionError: boom")
    good = FakeProvider("ollama", content=json.dumps(scheduling_facts))
    assert _extractor(db_session, email, [failing, good]).call()["success"] is True


def test_unexpected_exception_is_recorded_not_raised(db_session, make_application, make_email):
    email = make_email(make_application())
    provider = FakeProvider("openai", raises=RuntimeError("kaboom"))
    res = _extractor(db_session, email, [provider]).call()

    assert res == {"success": False, "error": "kaboom"}
    db_session.refresh(email)
    meta = email.extracted_data["email_facts_meta_v1"]
    assert meta["status"] == "exception"
    assert meta["errors"] == [{"message": "kaboom", "class": "RuntimeError"}]


def test_parse_json_response_handles_fences_and_prose():
    from signals.llm.parsing import parse_json_response

    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_response('Here you go: {"a": {"b": 2}} thanks') == {"a": {"b": 2}}
    assert parse_json_response("[1, 2]") == {}
    assert parse_json_response("") == {}


def test_build_provider_chain_skips_unknown_names():
    from signals.llm.providers import OllamaProvider, OpenAIProvider, build_provider_chain

    chain = build_provider_chain(["openai", "mystery", "ollama"])
    assert [type(p) for p in chain] == [OpenAIProvider, OllamaProvider]
