"""
Address book snapshot for Contact Card.

Reads device contacts from a CSV export and exposes them as read-only
ExternalContact records. The snapshot is used as grounding context for
extraction and query calls and as the target of external-contact matches.

CSV columns (header names are case-insensitive):
    identifier, first_name, last_name, nickname, organization, job_title,
    emails, phones

Multi-valued columns (emails, phones) are separated by ';'.
"""
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalContact:
    """A read-only address-book contact."""
    identifier: str
    full_name: str
    nickname: str = ""
    organization: str = ""
    job_title: str = ""
    emails: tuple[str, ...] = field(default_factory=tuple)
    phones: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "full_name": self.full_name,
            "nickname": self.nickname,
            "organization": self.organization,
            "job_title": self.job_title,
            "emails": list(self.emails),
            "phones": list(self.phones),
        }


def _split_multi(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(";") if v.strip())


def contact_from_row(row: dict) -> Optional[ExternalContact]:
    """
    Build an ExternalContact from a CSV row.

    Returns None for rows without an identifier or without any name part.
    """
    row = {(k or "").strip().lower(): (v or "").strip() for k, v in row.items()}

    identifier = row.get("identifier", "")
    first = row.get("first_name", "")
    last = row.get("last_name", "")
    if not identifier or not (first or last):
        return None

    return ExternalContact(
        identifier=identifier,
        full_name=" ".join(p for p in (first, last) if p),
        nickname=row.get("nickname", ""),
        organization=row.get("organization", ""),
        job_title=row.get("job_title", ""),
        emails=_split_multi(row.get("emails")),
        phones=_split_multi(row.get("phones")),
    )


class AddressBookReader:
    """
    Loads and caches the address-book snapshot.

    A missing CSV file yields an empty snapshot (the user may not have
    granted contacts access), not an error.
    """

    def __init__(self, csv_path: Optional[Path] = None):
        self.csv_path = Path(csv_path or settings.contacts_csv_path)
        self._contacts: Optional[list[ExternalContact]] = None

    def _load(self) -> list[ExternalContact]:
        if not self.csv_path.exists():
            logger.info(f"No address book export at {self.csv_path}, using empty snapshot")
            return []

        contacts = []
        skipped = 0
        with open(self.csv_path, "r", encoding="utf-8", newline="") as f:
            for row in csv.DictReader(f):
                contact = contact_from_row(row)
                if contact is None:
                    skipped += 1
                    continue
                contacts.append(contact)

        logger.info(f"Loaded {len(contacts)} address book contacts ({skipped} skipped)")
        return contacts

    def snapshot(self) -> list[ExternalContact]:
        """Return a copy of the current snapshot, loading it on first use."""
        if self._contacts is None:
            self._contacts = self._load()
        return list(self._contacts)

    def refresh(self) -> list[ExternalContact]:
        """Reload the snapshot from disk."""
        self._contacts = None
        return self.snapshot()

    def get(self, identifier: str) -> Optional[ExternalContact]:
        for contact in self.snapshot():
            if contact.identifier == identifier:
                return contact
        return None


# Singleton instance
_address_book: Optional[AddressBookReader] = None


def get_address_book() -> AddressBookReader:
    """Get or create the singleton AddressBookReader."""
    global _address_book
    if _address_book is None:
        _address_book = AddressBookReader()
    return _address_book


def reset_address_book() -> None:
    """Reset the singleton (for testing)."""
    global _address_book
    _address_book = None
