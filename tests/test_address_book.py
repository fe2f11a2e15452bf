"""Tests for the address book snapshot reader."""
import pytest

from api.services.address_book import AddressBookReader, contact_from_row, get_address_book

pytestmark = pytest.mark.unit


class TestContactFromRow:

    def test_full_row(self):
        contact = contact_from_row({
            "Identifier": "c-1",
            "First_Name": "Jeremy",
            "Last_Name": "Smith",
            "Nickname": "Jerry",
            "Organization": "Goldman Sachs",
            "Job_Title": "VP",
            "Emails": "j@gs.com; jeremy@home.com",
            "Phones": "+15551234567",
        })
        assert contact.identifier == "c-1"
        assert contact.full_name == "Jeremy Smith"
        assert contact.nickname == "Jerry"
        assert contact.emails == ("j@gs.com", "jeremy@home.com")
        assert contact.phones == ("+15551234567",)

    def test_single_name_part(self):
        contact = contact_from_row({"identifier": "c-2", "first_name": "Cher"})
        assert contact.full_name == "Cher"

    def test_missing_identifier_skipped(self):
        assert contact_from_row({"first_name": "Nobody"}) is None

    def test_missing_name_skipped(self):
        assert contact_from_row({"identifier": "c-3", "organization": "Acme"}) is None


class TestAddressBookReader:

    def test_missing_file_is_empty(self, tmp_path):
        reader = AddressBookReader(tmp_path / "absent.csv")
        assert reader.snapshot() == []

    def test_loads_configured_csv(self, write_contacts_csv):
        write_contacts_csv([
            {"identifier": "c-1", "first_name": "Jeremy", "last_name": "Smith"},
            {"identifier": "", "first_name": "Skipped"},
        ])
        book = get_address_book()
        assert [c.identifier for c in book.snapshot()] == ["c-1"]
        assert book.get("c-1").full_name == "Jeremy Smith"
        assert book.get("c-2") is None

    def test_snapshot_is_a_copy(self, write_contacts_csv):
        write_contacts_csv([{"identifier": "c-1", "first_name": "Jeremy"}])
        book = get_address_book()
        book.snapshot().clear()
        assert len(book.snapshot()) == 1

    def test_refresh_rereads(self, write_contacts_csv):
        write_contacts_csv([{"identifier": "c-1", "first_name": "Jeremy"}])
        book = get_address_book()
        assert len(book.snapshot()) == 1

        write_contacts_csv([
            {"identifier": "c-1", "first_name": "Jeremy"},
            {"identifier": "c-2", "first_name": "Sarah"},
        ])
        assert len(book.snapshot()) == 1
        assert len(book.refresh()) == 2
