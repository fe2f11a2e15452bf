"""
Contact Store for Contact Card.

SQLite-backed storage for the three durable record types:
- Person: someone the user has talked about, with aliases and an optional
  link to an address-book contact
- Fact: one atomic piece of information owned by exactly one Person
- Entry: append-only log of raw transcripts, one per recording session

Facts are removed with their Person. The cascade is done explicitly in
delete_person (facts first, then the person row, in one transaction) rather
than relying on the foreign key action alone.
"""
import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Iterator, Optional

from api.utils.datetime_utils import parse_timestamp, utc_now
from api.utils.db_paths import get_db_path
from config.fact_categories import category_icon

logger = logging.getLogger(__name__)


def merge_aliases(existing: list[str], new: Iterable[str], name: str = "") -> list[str]:
    """
    Append new aliases in order, skipping blanks, duplicates and the name itself.

    Returns:
        The aliases that were actually added
    """
    added = []
    for alias in new:
        alias = (alias or "").strip()
        if not alias or alias == name or alias in existing:
            continue
        existing.append(alias)
        added.append(alias)
    return added


@dataclass
class Fact:
    """
    A single fact about a person.

    raw_transcript holds the transcript the fact was extracted from; it is
    empty for facts entered by hand.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    person_id: str = ""
    category: str = ""
    content: str = ""
    raw_transcript: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "person_id": self.person_id,
            "category": self.category,
            "content": self.content,
            "raw_transcript": self.raw_transcript,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "category_icon": category_icon(self.category),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Fact":
        """Create Fact from SQLite row."""
        return cls(
            id=row["id"],
            person_id=row["person_id"],
            category=row["category"],
            content=row["content"],
            raw_transcript=row["raw_transcript"] or "",
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class Person:
    """A person the user knows, as stored in the roster."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    aliases: list[str] = field(default_factory=list)
    contact_identifier: Optional[str] = None
    summary: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    facts: list[Fact] = field(default_factory=list)

    def __post_init__(self):
        # Enforce alias invariants on construction
        aliases, self.aliases = self.aliases, []
        merge_aliases(self.aliases, aliases, self.name)

    def add_aliases(self, aliases: Iterable[str]) -> list[str]:
        """Merge aliases in order without duplicates. Returns the ones added."""
        return merge_aliases(self.aliases, aliases, self.name)

    def to_dict(self, include_facts: bool = True) -> dict:
        """Convert to dict for JSON serialization."""
        data = {
            "id": self.id,
            "name": self.name,
            "aliases": list(self.aliases),
            "contact_identifier": self.contact_identifier,
            "summary": self.summary,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_facts:
            data["facts"] = [f.to_dict() for f in self.facts]
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Person":
        """Create Person from SQLite row (facts are loaded separately)."""
        aliases = []
        if row["aliases"]:
            try:
                aliases = json.loads(row["aliases"])
            except json.JSONDecodeError:
                logger.warning(f"Corrupt aliases for person {row['id']}, ignoring")
        return cls(
            id=row["id"],
            name=row["name"],
            aliases=aliases,
            contact_identifier=row["contact_identifier"],
            summary=row["summary"] or "",
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass
class Entry:
    """Raw transcript of one recording session."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transcript: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transcript": self.transcript,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Entry":
        return cls(
            id=row["id"],
            transcript=row["transcript"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class PersonWrite:
    """One person's share of a batch commit."""
    person: Person
    is_new: bool
    facts: list[Fact] = field(default_factory=list)


class ContactStore:
    """
    SQLite-backed storage for people, facts and entries.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize store."""
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS people (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    aliases TEXT NOT NULL DEFAULT '[]',
                    contact_identifier TEXT,
                    summary TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS facts (
                    id TEXT PRIMARY KEY,
                    person_id TEXT NOT NULL REFERENCES people(id) ON DELETE CASCADE,
                    category TEXT NOT NULL,
                    content TEXT NOT NULL CHECK (length(trim(content)) > 0),
                    raw_transcript TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    transcript TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_facts_person
                ON facts(person_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_contact
                ON people(contact_identifier)
            """)

            conn.commit()
            logger.info(f"Initialized contact store in {self.db_path}")
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success and rolls back on any error."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Row writers (shared by single operations and batch commit)
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_person(conn: sqlite3.Connection, person: Person) -> None:
        conn.execute("""
            INSERT INTO people
            (id, name, aliases, contact_identifier, summary, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            person.id,
            person.name,
            json.dumps(person.aliases),
            person.contact_identifier,
            person.summary,
            person.created_at.isoformat(),
            person.updated_at.isoformat(),
        ))

    @staticmethod
    def _update_person(conn: sqlite3.Connection, person: Person) -> int:
        cursor = conn.execute("""
            UPDATE people
            SET name = ?, aliases = ?, contact_identifier = ?, summary = ?, updated_at = ?
            WHERE id = ?
        """, (
            person.name,
            json.dumps(person.aliases),
            person.contact_identifier,
            person.summary,
            person.updated_at.isoformat(),
            person.id,
        ))
        return cursor.rowcount

    @staticmethod
    def _insert_fact(conn: sqlite3.Connection, fact: Fact) -> None:
        if not fact.content or not fact.content.strip():
            raise ValueError("Fact content cannot be empty")
        if not fact.person_id:
            raise ValueError("Fact must belong to a person")
        conn.execute("""
            INSERT INTO facts
            (id, person_id, category, content, raw_transcript, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            fact.id,
            fact.person_id,
            fact.category,
            fact.content,
            fact.raw_transcript,
            fact.created_at.isoformat(),
        ))

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    def add_person(self, person: Person) -> Person:
        """Add a new person."""
        if not person.name or not person.name.strip():
            raise ValueError("Person name cannot be empty")
        with self._transaction() as conn:
            self._insert_person(conn, person)
        return person

    def update_person(self, person: Person) -> Person:
        """Update an existing person's fields (facts are untouched)."""
        person.updated_at = utc_now()
        with self._transaction() as conn:
            if self._update_person(conn, person) == 0:
                raise KeyError(person.id)
        return person

    def get_person(self, person_id: str, include_facts: bool = True) -> Optional[Person]:
        """Get person by ID."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM people WHERE id = ?", (person_id,)
            ).fetchone()
            if not row:
                return None
            person = Person.from_row(row)
            if include_facts:
                person.facts = self._facts_for(conn, person.id)
            return person
        finally:
            conn.close()

    def get_people(self, include_facts: bool = True) -> list[Person]:
        """Get all people, most recently updated first."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM people ORDER BY updated_at DESC, name"
            ).fetchall()
            people = [Person.from_row(row) for row in rows]
            if include_facts:
                by_id = {p.id: p for p in people}
                for fact_row in conn.execute("SELECT * FROM facts ORDER BY created_at"):
                    owner = by_id.get(fact_row["person_id"])
                    if owner is not None:
                        owner.facts.append(Fact.from_row(fact_row))
            return people
        finally:
            conn.close()

    def find_person_by_contact(self, contact_identifier: str) -> Optional[Person]:
        """Find the person linked to an address-book contact, if any."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM people WHERE contact_identifier = ? ORDER BY created_at LIMIT 1",
                (contact_identifier,)
            ).fetchone()
            return Person.from_row(row) if row else None
        finally:
            conn.close()

    def delete_person(self, person_id: str) -> bool:
        """Delete a person and all of their facts."""
        with self._transaction() as conn:
            removed = conn.execute(
                "DELETE FROM facts WHERE person_id = ?", (person_id,)
            ).rowcount
            cursor = conn.execute("DELETE FROM people WHERE id = ?", (person_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted person {person_id} and {removed} fact(s)")
        return deleted

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def _facts_for(self, conn: sqlite3.Connection, person_id: str) -> list[Fact]:
        rows = conn.execute(
            "SELECT * FROM facts WHERE person_id = ? ORDER BY created_at",
            (person_id,)
        ).fetchall()
        return [Fact.from_row(row) for row in rows]

    def add_fact(self, fact: Fact) -> Fact:
        """Add a fact to an existing person and bump the person's updated_at."""
        fact.content = (fact.content or "").strip()
        with self._transaction() as conn:
            self._insert_fact(conn, fact)
            conn.execute(
                "UPDATE people SET updated_at = ? WHERE id = ?",
                (utc_now().isoformat(), fact.person_id)
            )
        return fact

    def get_fact(self, fact_id: str) -> Optional[Fact]:
        """Get fact by ID."""
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM facts WHERE id = ?", (fact_id,)).fetchone()
            return Fact.from_row(row) if row else None
        finally:
            conn.close()

    def get_facts_for_person(self, person_id: str) -> list[Fact]:
        """Get all facts for a person, oldest first."""
        conn = self._get_connection()
        try:
            return self._facts_for(conn, person_id)
        finally:
            conn.close()

    def delete_fact(self, fact_id: str) -> bool:
        """Delete a fact by ID."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM facts WHERE id = ?", (fact_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Entries (append-only)
    # ------------------------------------------------------------------

    def add_entry(self, transcript: str) -> Entry:
        """Log the raw transcript of a recording session."""
        entry = Entry(transcript=transcript)
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO entries (id, transcript, created_at) VALUES (?, ?, ?)",
                (entry.id, entry.transcript, entry.created_at.isoformat())
            )
        return entry

    def get_entries(self, limit: int = 100) -> list[Entry]:
        """Most recent entries first."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM entries ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
            return [Entry.from_row(row) for row in rows]
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Batch commit
    # ------------------------------------------------------------------

    def commit_batch(self, writes: list[PersonWrite]) -> None:
        """
        Write a reviewed extraction in a single transaction.

        New people are inserted, existing people updated (aliases, link,
        updated_at), and every fact inserted. Any failure rolls back the
        whole batch.
        """
        with self._transaction() as conn:
            for write in writes:
                if write.is_new:
                    self._insert_person(conn, write.person)
                elif self._update_person(conn, write.person) == 0:
                    raise KeyError(write.person.id)
                for fact in write.facts:
                    self._insert_fact(conn, fact)

        logger.info(
            f"Committed batch: {sum(w.is_new for w in writes)} new, "
            f"{sum(not w.is_new for w in writes)} updated, "
            f"{sum(len(w.facts) for w in writes)} fact(s)"
        )


# Singleton instance
_contact_store: Optional[ContactStore] = None


def get_contact_store(db_path: Optional[str] = None) -> ContactStore:
    """Get or create the singleton ContactStore."""
    global _contact_store
    if _contact_store is None:
        _contact_store = ContactStore(db_path)
    return _contact_store


def reset_contact_store() -> None:
    """Reset the singleton (for testing)."""
    global _contact_store
    _contact_store = None
