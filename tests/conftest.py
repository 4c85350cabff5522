"""Shared fixtures: in-memory stores, a deterministic embedder, stub OpenAI clients."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from crm_rag.chunking.schemas import DocumentChunk, ProcessedDocument
from crm_rag.schemas import Account, Activity, Contact, Deal
from crm_rag.storage.stores import InMemoryDocumentStore, InMemoryRecordStore

ALPHABET = "abcdefghijklmnopqrstuvwxyz"


class LetterEmbedder:
    """Embeds text as a 26-dim letter histogram; no network, fully deterministic."""

    model = "letter-histogram"

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.calls = []

    def embed_texts(self, texts):
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [self._vector(t) for t in texts]

    def embed_query(self, text):
        return self.embed_texts([text])[0]

    def usage_summary(self):
        return {"model": self.model, "total_api_calls": len(self.calls),
                "total_tokens_used": 0, "estimated_cost_usd": 0.0}

    @staticmethod
    def _vector(text):
        lowered = text.lower()
        return [float(lowered.count(ch)) for ch in ALPHABET]


def make_chunk(file_name, index, text, embedding, team_id="team-1", document_id=None, total=1):
    document_id = document_id or file_name
    return DocumentChunk(
        id=f"{document_id}_chunk_{index}",
        document_id=document_id,
        team_id=team_id,
        text=text,
        embedding=embedding,
        file_name=file_name,
        file_type=file_name.rsplit(".", 1)[-1],
        folder_path="",
        chunk_index=index,
        total_chunks=total,
        last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def make_document(file_name, chunks, team_id="team-1", document_id=None,
                  last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc)):
    return ProcessedDocument(
        id=document_id or file_name,
        team_id=team_id,
        file_name=file_name,
        file_type=file_name.rsplit(".", 1)[-1],
        folder_path="",
        content=" ".join(c.text for c in chunks),
        chunks=chunks,
        last_modified=last_modified,
    )


def embeddings_response(vectors, total_tokens=10):
    """Shape of openai's CreateEmbeddingResponse, as far as Embedder reads it."""
    data = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    return SimpleNamespace(data=data, usage=SimpleNamespace(total_tokens=total_tokens))


def chat_response(content, prompt_tokens=100, completion_tokens=20):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.fixture
def letter_embedder():
    return LetterEmbedder()


@pytest.fixture
def chat_client():
    client = MagicMock()
    client.chat.completions.create.return_value = chat_response("Here is your answer.")
    return client


@pytest.fixture
def document_store():
    store = InMemoryDocumentStore()
    money = [
        make_chunk("money.xlsx", 0, "Invoice total for March was 4200 dollars.", [1.0, 0.0, 0.0],
                   total=2),
        make_chunk("money.xlsx", 1, "April invoices came to 3100 dollars.", [0.9, 0.1, 0.0],
                   total=2),
    ]
    notes = [make_chunk("notes.docx", 0, "Meeting notes about the product roadmap.", [0.0, 1.0, 0.0])]
    store.replace_document(make_document("money.xlsx", money))
    store.replace_document(make_document("notes.docx", notes))
    return store


def _contacts(team_id="team-1"):
    people = [
        ("Ada", "Lovelace", "Acme", "Director of Engineering"),
        ("Alan", "Turing", "Acme", "Research Director"),
        ("Grace", "Hopper", "Navy Labs", "Rear Admiral"),
        ("Linus", "Torvalds", "Kernel Org", "Maintainer"),
        ("Barbara", "Liskov", "MIT", "Professor"),
        ("Donald", "Knuth", "Stanford", "Professor Emeritus"),
        ("Edsger", "Dijkstra", "UT Austin", "Professor"),
    ]
    return [
        Contact(
            id=f"c{i}",
            team_id=team_id,
            first_name=first,
            last_name=last,
            email=f"{first.lower()}@{company.split()[0].lower()}.example",
            company=company,
            title=title,
            lead_status="New",
        )
        for i, (first, last, company, title) in enumerate(people, start=1)
    ]


@pytest.fixture
def contacts():
    return _contacts()


@pytest.fixture
def record_store():
    records = _contacts() + [
        Account(id="a1", team_id="team-1", name="Acme", industry="Manufacturing", website="acme.example"),
        Deal(id="d1", team_id="team-1", name="Acme renewal", stage="Negotiation", value="12000",
             probability=0.6),
        Activity(id="t1", team_id="team-1", type="call", subject="Follow up with Acme", status="open"),
        Contact(id="x1", team_id="team-2", first_name="Other", last_name="Team", company="Acme"),
    ]
    return InMemoryRecordStore(records)
