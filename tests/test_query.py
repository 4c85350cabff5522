"""Tests for disambiguation and the structured CRM query service."""

from unittest.mock import MagicMock

from crm_rag.config import QueryConfig
from crm_rag.errors import StoreError
from crm_rag.query.disambiguation import ClarificationRequest, DirectResult, resolve_ambiguity
from crm_rag.query.service import CRMQueryService
from crm_rag.schemas import RecordType


class TestResolveAmbiguity:
    def test_seven_matches_ask_for_clarification(self, contacts):
        result = resolve_ambiguity(contacts, requested_all=False)
        assert isinstance(result, ClarificationRequest)
        assert result.count == 7
        assert len(result.sample) == 5
        assert [r.id for r in result.sample] == ["c1", "c2", "c3", "c4", "c5"]
        assert result.needs_clarification

    def test_clarification_message_names_three_examples(self, contacts):
        result = resolve_ambiguity(contacts, requested_all=False, record_type=RecordType.CONTACTS)
        assert result.message.startswith("I found 7 contacts. Could you be more specific?")
        assert result.message.endswith("Ada Lovelace, Alan Turing, Grace Hopper")

    def test_two_matches_return_directly(self, contacts):
        for flag in (True, False):
            result = resolve_ambiguity(contacts[:2], requested_all=flag)
            assert isinstance(result, DirectResult)
            assert result.count == 2
            assert [r.name for r in result.records] == ["Ada Lovelace", "Alan Turing"]

    def test_exactly_threshold_is_direct(self, contacts):
        assert isinstance(resolve_ambiguity(contacts[:3], requested_all=False), DirectResult)

    def test_explicit_all_skips_clarification(self, contacts):
        result = resolve_ambiguity(contacts, requested_all=True)
        assert isinstance(result, DirectResult)
        assert result.count == 7
        assert len(result.records) == 7

    def test_custom_threshold_and_sample(self, contacts):
        result = resolve_ambiguity(contacts, requested_all=False, threshold=5, sample_size=2)
        assert isinstance(result, ClarificationRequest)
        assert len(result.sample) == 2


class TestCRMQueryService:
    def test_filtered_contacts(self, record_store):
        service = CRMQueryService(record_store)
        response = service.handle_database_query("show contacts at Acme with title director", "team-1")
        assert response.message == 'Found 2 contacts matching "acme director":'
        assert [r.id for r in response.records] == ["c1", "c2"]
        assert response.record_type is RecordType.CONTACTS
        assert not response.needs_clarification

    def test_broad_request_needs_clarification(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("list contacts", "team-1")
        assert response.needs_clarification
        assert response.count == 7
        assert len(response.records) == 5
        assert response.message.startswith("I found 7 contacts.")

    def test_all_returns_every_record(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("show all contacts", "team-1")
        assert response.message == "Found 7 contacts:"
        assert response.count == 7
        assert not response.needs_clarification

    def test_no_match(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("contacts at zzzz", "team-1")
        assert response.message == "No contacts found matching your filter criteria."
        assert response.records == []

    def test_empty_team(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("show contacts", "team-3")
        assert response.message == "No contacts found for the specified criteria."

    def test_teams_are_isolated(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("contacts at acme", "team-2")
        assert [r.id for r in response.records] == ["x1"]

    def test_deals(self, record_store):
        response = CRMQueryService(record_store).handle_database_query("deals in negotiation", "team-1")
        assert response.record_type is RecordType.DEALS
        assert response.message == 'Found 1 deals matching "negotiation":'
        assert response.records[0].stage == "Negotiation"
        assert response.records[0].probability == "0.6"

    def test_store_failure_becomes_error_response(self):
        store = MagicMock()
        store.get_records_by_team.side_effect = StoreError("database offline")
        response = CRMQueryService(store).handle_database_query("show contacts", "team-1")
        assert response.error
        assert "error" in response.message

    def test_from_config_threshold(self, record_store):
        service = CRMQueryService.from_config(record_store, QueryConfig(clarification_threshold=10))
        response = service.handle_database_query("list contacts", "team-1")
        assert not response.needs_clarification
        assert response.count == 7

    def test_to_dict(self, record_store):
        data = CRMQueryService(record_store).handle_database_query("list contacts", "team-1").to_dict()
        assert data["needs_clarification"] is True
        assert data["data"]["count"] == 7
        assert data["data"]["type"] == "contacts"
        assert data["data"]["display_format"] == "table"
        assert len(data["data"]["records"]) == 5

    def test_to_dict_without_records(self, record_store):
        data = CRMQueryService(record_store).handle_database_query("contacts at zzzz", "team-1").to_dict()
        assert data["data"] is None
