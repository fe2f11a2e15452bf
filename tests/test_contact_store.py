"""
Tests for the Contact Store (people, facts, entries).
"""
import sqlite3

import pytest

from api.services.contact_store import (
    ContactStore,
    Fact,
    Person,
    PersonWrite,
    merge_aliases,
)

pytestmark = pytest.mark.unit


class TestMergeAliases:
    """Alias merging rules."""

    def test_appends_in_order(self):
        aliases = ["Jer"]
        added = merge_aliases(aliases, ["J", "Jerbear"])
        assert aliases == ["Jer", "J", "Jerbear"]
        assert added == ["J", "Jerbear"]

    def test_skips_duplicates_and_blanks(self):
        aliases = ["Jer"]
        added = merge_aliases(aliases, ["Jer", "  ", "", "J", "J"])
        assert aliases == ["Jer", "J"]
        assert added == ["J"]

    def test_skips_name(self):
        aliases = []
        merge_aliases(aliases, ["Jerry", "Jer"], name="Jerry")
        assert aliases == ["Jer"]

    def test_idempotent(self):
        aliases = []
        merge_aliases(aliases, ["Jer", "J"])
        merge_aliases(aliases, ["Jer", "J"])
        assert aliases == ["Jer", "J"]

    def test_person_construction_enforces_invariant(self):
        person = Person(name="Jerry", aliases=["Jerry", "Jer", "Jer"])
        assert person.aliases == ["Jer"]


class TestPeople:
    """Person CRUD."""

    def test_add_and_get(self, store):
        person = store.add_person(Person(name="Sarah Chen", aliases=["Sar"], summary="Met at a conference"))
        loaded = store.get_person(person.id)

        assert loaded.name == "Sarah Chen"
        assert loaded.aliases == ["Sar"]
        assert loaded.summary == "Met at a conference"
        assert loaded.contact_identifier is None
        assert loaded.facts == []

    def test_get_missing_returns_none(self, store):
        assert store.get_person("nope") is None

    def test_add_rejects_blank_name(self, store):
        with pytest.raises(ValueError):
            store.add_person(Person(name="  "))

    def test_update_person(self, store):
        person = store.add_person(Person(name="Jerry"))
        before = person.updated_at
        person.contact_identifier = "c-1"
        person.add_aliases(["Jer"])
        store.update_person(person)

        loaded = store.get_person(person.id)
        assert loaded.contact_identifier == "c-1"
        assert loaded.aliases == ["Jer"]
        assert loaded.updated_at >= before

    def test_update_missing_raises(self, store):
        with pytest.raises(KeyError):
            store.update_person(Person(name="Ghost"))

    def test_find_person_by_contact(self, store):
        person = store.add_person(Person(name="Jeremy", contact_identifier="c-9"))
        assert store.find_person_by_contact("c-9").id == person.id
        assert store.find_person_by_contact("c-10") is None

    def test_get_people_loads_facts(self, store):
        a = store.add_person(Person(name="A"))
        b = store.add_person(Person(name="B"))
        store.add_fact(Fact(person_id=a.id, category="work", content="Engineer"))

        people = {p.name: p for p in store.get_people()}
        assert [f.content for f in people["A"].facts] == ["Engineer"]
        assert people["B"].facts == []

        bare = store.get_people(include_facts=False)
        assert all(p.facts == [] for p in bare)


class TestCascadeDelete:
    """Removing a Person removes its Facts."""

    def test_delete_person_removes_facts(self, store):
        person = store.add_person(Person(name="Jerry"))
        fact = store.add_fact(Fact(person_id=person.id, category="work", content="Banker"))

        assert store.delete_person(person.id) is True
        assert store.get_person(person.id) is None
        assert store.get_fact(fact.id) is None
        assert store.get_facts_for_person(person.id) == []

    def test_delete_missing_person(self, store):
        assert store.delete_person("nope") is False

    def test_delete_fact(self, store):
        person = store.add_person(Person(name="Jerry"))
        fact = store.add_fact(Fact(person_id=person.id, category="work", content="Banker"))
        assert store.delete_fact(fact.id) is True
        assert store.delete_fact(fact.id) is False


class TestFacts:
    """Fact storage."""

    def test_round_trip_manual_fact(self, store):
        person = store.add_person(Person(name="Jerry"))
        fact = store.add_fact(Fact(person_id=person.id, category="work", content="VP at Goldman Sachs"))

        loaded = store.get_fact(fact.id)
        assert loaded.category == "work"
        assert loaded.content == "VP at Goldman Sachs"
        assert loaded.raw_transcript == ""

    def test_round_trip_extracted_fact(self, store):
        person = store.add_person(Person(name="Jerry"))
        fact = store.add_fact(Fact(
            person_id=person.id,
            category="work",
            content="VP at Goldman Sachs",
            raw_transcript="Jerry is a VP at Goldman Sachs",
        ))

        loaded = store.get_fact(fact.id)
        assert loaded.category == "work"
        assert loaded.content == "VP at Goldman Sachs"
        assert loaded.raw_transcript == "Jerry is a VP at Goldman Sachs"

    def test_blank_content_rejected(self, store):
        person = store.add_person(Person(name="Jerry"))
        with pytest.raises(ValueError):
            store.add_fact(Fact(person_id=person.id, category="work", content="   "))

    def test_fact_needs_existing_person(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.add_fact(Fact(person_id="missing", category="work", content="Banker"))

    def test_unknown_category_kept_as_is(self, store):
        person = store.add_person(Person(name="Jerry"))
        fact = store.add_fact(Fact(person_id=person.id, category="hobbies", content="Sails"))
        loaded = store.get_fact(fact.id)
        assert loaded.category == "hobbies"
        assert loaded.to_dict()["category_icon"] == "📄"


class TestEntries:
    """Append-only transcript log."""

    def test_add_and_list(self, store):
        first = store.add_entry("first")
        second = store.add_entry("second")

        entries = store.get_entries()
        assert {e.id for e in entries} == {first.id, second.id}
        assert store.get_entries(limit=1)[0].transcript in {"first", "second"}


class TestCommitBatch:
    """Transactional batch writes."""

    def test_writes_new_and_existing(self, store):
        existing = store.add_person(Person(name="Sarah"))
        existing.add_aliases(["Sar"])
        new = Person(name="Jerry")

        store.commit_batch([
            PersonWrite(person=existing, is_new=False, facts=[
                Fact(person_id=existing.id, category="work", content="Lawyer"),
            ]),
            PersonWrite(person=new, is_new=True, facts=[
                Fact(person_id=new.id, category="family", content="Has a daughter"),
            ]),
        ])

        sarah = store.get_person(existing.id)
        assert sarah.aliases == ["Sar"]
        assert [f.content for f in sarah.facts] == ["Lawyer"]
        jerry = store.get_person(new.id)
        assert [f.content for f in jerry.facts] == ["Has a daughter"]

    def test_failure_rolls_back_everything(self, store):
        good = Person(name="Jerry")
        with pytest.raises(ValueError):
            store.commit_batch([
                PersonWrite(person=good, is_new=True, facts=[
                    Fact(person_id=good.id, category="work", content="Banker"),
                    Fact(person_id=good.id, category="work", content=""),
                ]),
            ])

        assert store.get_person(good.id) is None
        assert store.get_people() == []


class TestPersistence:
    """Data survives a new store instance on the same file."""

    def test_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        person = ContactStore(path).add_person(Person(name="Jerry", aliases=["Jer"]))
        loaded = ContactStore(path).get_person(person.id)
        assert loaded.aliases == ["Jer"]
