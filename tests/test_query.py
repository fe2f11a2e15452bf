"""Tests for the Query Engine."""
import json

import pytest

from api.services.address_book import ExternalContact
from api.services.contact_store import Fact, Person
from api.services.query import QueryEngine, build_query_prompt, format_people_for_query
from api.services.relay_client import MalformedResponse, RequestFailure
from tests.helpers import FakeRelay, message_payload


def _jerry() -> Person:
    person = Person(id="p-1", name="Jerry", aliases=["Jer"], contact_identifier="c-1")
    person.facts = [Fact(person_id="p-1", category="family", content="Daughter Emma, age 8")]
    return person


class TestPrompt:

    @pytest.mark.unit
    def test_people_serialized_with_facts(self):
        data = json.loads(format_people_for_query([_jerry(), Person(name="Tom")]))
        assert data[0]["facts"] == [{"category": "family", "content": "Daughter Emma, age 8"}]
        assert data[0]["aliases"] == ["Jer"]
        assert data[0]["linked_contact"] == "c-1"
        assert "aliases" not in data[1]

    @pytest.mark.unit
    def test_prompt_forbids_fabrication(self):
        contacts = [ExternalContact(identifier="c-1", full_name="Jeremy Smith", organization="Goldman Sachs")]
        prompt = build_query_prompt("Who works at Goldman?", [_jerry()], contacts)
        assert "ONLY" in prompt
        assert "Do not make up" in prompt
        assert "Goldman Sachs" in prompt
        assert prompt.rstrip().endswith("QUESTION: Who works at Goldman?")


class TestQueryEngine:

    @pytest.mark.asyncio
    async def test_returns_answer_text(self):
        relay = FakeRelay(message_payload("  Jerry's daughter is Emma.  "))
        answer = await QueryEngine(relay).query("What's Jerry's daughter called?", [_jerry()], [])

        assert answer == "Jerry's daughter is Emma."
        assert relay.calls[0]["output_schema"] is None

    @pytest.mark.asyncio
    async def test_empty_answer_is_malformed(self):
        relay = FakeRelay(message_payload("   "))
        with pytest.raises(MalformedResponse):
            await QueryEngine(relay).query("?", [], [])

    @pytest.mark.asyncio
    async def test_missing_content_is_malformed(self):
        relay = FakeRelay({"type": "message"})
        with pytest.raises(MalformedResponse):
            await QueryEngine(relay).query("?", [], [])

    @pytest.mark.asyncio
    async def test_request_failure_propagates(self):
        relay = FakeRelay(RequestFailure(OSError("timeout")))
        with pytest.raises(RequestFailure):
            await QueryEngine(relay).query("?", [], [])
