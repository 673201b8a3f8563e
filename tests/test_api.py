"""
Board API with the store swapped for an in-memory fake.
Run: pytest tests/test_api.py -v
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from plumberos.config import settings
from plumberos.core.board import DEFAULT_BUCKETS, Bucket, card_from_row, normalize_buckets
from plumberos.core.mapping import parse_status, status_for_bucket_id
from plumberos.main import app, get_store
from plumberos.pipeline.store import BucketNotFound, LeadNotFound


class FakeStore:
    """Same surface as PipelineStore, kept in dicts"""

    def __init__(self, buckets=DEFAULT_BUCKETS):
        self.buckets = [b.to_dict() for b in buckets]
        self.leads = {}
        self.events = {}
        self.fail_writes = False

    async def list_buckets(self):
        return normalize_buckets(self.buckets)

    async def create_bucket(self, title, color=None):
        position = max([b["position"] or 0 for b in self.buckets] or [0]) + 1
        row = {"id": str(uuid.uuid4()), "title": title, "color": color or settings.default_bucket_color, "position": position}
        self.buckets.append(row)
        return Bucket.from_row(row)

    async def update_bucket(self, bucket_id, title=None, color=None, position=None):
        for row in self.buckets:
            if row["id"] == bucket_id:
                for key, value in (("title", title), ("color", color), ("position", position)):
                    if value is not None:
                        row[key] = value
                return Bucket.from_row(row)
        raise BucketNotFound(bucket_id)

    async def delete_bucket(self, bucket_id):
        before = len(self.buckets)
        self.buckets = [b for b in self.buckets if b["id"] != bucket_id]
        if len(self.buckets) == before:
            raise BucketNotFound(bucket_id)

    async def list_cards(self, buckets=None):
        buckets = buckets if buckets is not None else await self.list_buckets()
        return [card_from_row(row, buckets) for row in self.leads.values()]

    async def get_card(self, lead_id, buckets=None):
        if lead_id not in self.leads:
            raise LeadNotFound(lead_id)
        buckets = buckets if buckets is not None else await self.list_buckets()
        return card_from_row(self.leads[lead_id], buckets)

    async def create_lead(self, fields, bucket_id=None):
        if bucket_id:
            status = status_for_bucket_id(bucket_id, await self.list_buckets() or DEFAULT_BUCKETS)
        else:
            status = parse_status(fields.get("status") or "new")
        lead_id = str(uuid.uuid4())
        self.leads[lead_id] = {**fields, "id": lead_id, "status": status.value}
        self.events[lead_id] = [{"from_status": "none", "to_status": status.value, "trigger": "create"}]
        return self.leads[lead_id]

    async def update_card_status(self, lead_id, status, trigger="direct"):
        if self.fail_writes:
            raise OperationalError("UPDATE leads", {}, Exception("connection lost"))
        if lead_id not in self.leads:
            raise LeadNotFound(lead_id)
        new_status = parse_status(status)
        self.events[lead_id].append(
            {"from_status": self.leads[lead_id]["status"], "to_status": new_status.value, "trigger": trigger}
        )
        self.leads[lead_id]["status"] = new_status.value
        return self.leads[lead_id]

    async def lead_history(self, lead_id):
        if lead_id not in self.leads:
            raise LeadNotFound(lead_id)
        return self.events[lead_id]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def add_lead(client, **fields):
    body = {"customer_name": "Ada", "issue": "Leaky faucet", **fields}
    response = client.post("/leads", json=body)
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestBucketEndpoints:

    def test_list(self, client):
        buckets = client.get("/buckets").json()["buckets"]
        assert [b["position"] for b in buckets] == [1, 2, 3, 4, 5, 6]

    def test_create_update_delete(self, client):
        created = client.post("/buckets", json={"title": "Warranty"}).json()["bucket"]
        assert created["position"] == 7
        assert created["color"] == settings.default_bucket_color

        updated = client.put(f"/buckets/{created['id']}", json={"color": "#ef4444"}).json()["bucket"]
        assert updated["color"] == "#ef4444"
        assert updated["title"] == "Warranty"

        assert client.delete(f"/buckets/{created['id']}").json() == {"success": True}
        assert client.delete(f"/buckets/{created['id']}").status_code == 404

    def test_title_required(self, client):
        assert client.post("/buckets", json={"title": ""}).status_code == 422

    def test_update_missing(self, client):
        assert client.put("/buckets/nope", json={"title": "x"}).status_code == 404


class TestBoard:

    def test_board_places_cards(self, client):
        add_lead(client, customer_name="Ada", status="quoted")
        add_lead(client, customer_name="Bob", status="booked")
        add_lead(client, customer_name="Cy", status="lost")

        board = client.get("/board").json()
        placed = {c["customer_name"]: (c["bucket_id"], c["kind"]) for c in board["cards"]}
        assert placed == {"Ada": ("3", "lead"), "Bob": ("4", "job"), "Cy": ("6", "job")}
        assert board["total_leads"] == 1
        assert board["total_jobs"] == 2
        assert board["bucket_counts"] == {"3": 1, "4": 1, "6": 1}
        assert board["statuses"]["lost"]["label"] == "Lost"

    def test_board_search_keeps_totals(self, client):
        add_lead(client, customer_name="Ada", location="Elm St")
        add_lead(client, customer_name="Bob", location="Oak Ave")
        board = client.get("/board", params={"search": "oak"}).json()
        assert [c["customer_name"] for c in board["cards"]] == ["Bob"]
        assert board["total_leads"] == 2

    def test_empty_registry_uses_default_columns(self):
        store = FakeStore(buckets=())
        app.dependency_overrides[get_store] = lambda: store
        try:
            board = TestClient(app).get("/board").json()
        finally:
            app.dependency_overrides.clear()
        assert [b["title"] for b in board["buckets"]][0] == "New Leads"
        assert len(board["buckets"]) == 6


class TestDrop:

    def test_drop_persists_bucket_status(self, client, store):
        lead = add_lead(client, status="quoted")
        response = client.post("/board/drop", json={
            "card_id": lead["lead_id"],
            "source_bucket_id": "3",
            "destination_bucket_id": "5",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["status_to_persist"] == "in_progress"
        assert data["persisted"] is True
        assert data["card"]["kind"] == "job"
        assert data["card"]["bucket_id"] == "5"
        assert data["card"]["status"] == "quoted"
        assert store.leads[lead["lead_id"]]["status"] == "in_progress"
        assert store.events[lead["lead_id"]][-1]["trigger"] == "drop"

    def test_same_bucket_drop_writes_nothing(self, client, store):
        lead = add_lead(client)
        data = client.post("/board/drop", json={
            "card_id": lead["lead_id"],
            "source_bucket_id": "1",
            "destination_bucket_id": "1",
        }).json()
        assert data["persisted"] is False
        assert data["status_to_persist"] is None
        assert len(store.events[lead["lead_id"]]) == 1

    def test_failed_write_keeps_optimistic_card(self, client, store):
        lead = add_lead(client)
        store.fail_writes = True
        response = client.post("/board/drop", json={
            "card_id": lead["lead_id"],
            "source_bucket_id": "1",
            "destination_bucket_id": "4",
        })
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["card"]["bucket_id"] == "4"
        assert detail["card"]["kind"] == "job"
        assert detail["status_to_persist"] == "booked"
        assert store.leads[lead["lead_id"]]["status"] == "new"

    def test_unknown_card(self, client):
        response = client.post("/board/drop", json={
            "card_id": "missing",
            "source_bucket_id": "1",
            "destination_bucket_id": "2",
        })
        assert response.status_code == 404


class TestLeadEndpoints:

    def test_create_into_bucket(self, client):
        data = add_lead(client, bucket_id="4")
        assert data["card"]["status"] == "booked"
        assert data["card"]["kind"] == "job"

    def test_create_defaults_to_new(self, client):
        data = add_lead(client)
        assert data["card"]["status"] == "new"
        assert data["card"]["bucket_id"] == "1"

    def test_direct_status_change_moves_card(self, client):
        lead = add_lead(client)
        response = client.put(f"/leads/{lead['lead_id']}/status", json={"status": "completed"})
        assert response.status_code == 200
        card = response.json()["card"]
        assert (card["status"], card["bucket_id"], card["kind"]) == ("completed", "6", "job")

    def test_status_is_trimmed_and_case_insensitive(self, client, store):
        lead = add_lead(client, status=" Quoted ")
        assert lead["card"]["status"] == "quoted"

        response = client.put(f"/leads/{lead['lead_id']}/status", json={"status": "BOOKED"})
        assert response.status_code == 200
        assert response.json()["card"]["status"] == "booked"
        assert store.leads[lead["lead_id"]]["status"] == "booked"

    def test_direct_status_change_rejects_unknown(self, client):
        lead = add_lead(client)
        response = client.put(f"/leads/{lead['lead_id']}/status", json={"status": "archived"})
        assert response.status_code == 422

    def test_status_change_missing_lead(self, client):
        response = client.put("/leads/missing/status", json={"status": "new"})
        assert response.status_code == 404

    def test_history(self, client):
        lead = add_lead(client)
        client.put(f"/leads/{lead['lead_id']}/status", json={"status": "booked"})
        history = client.get(f"/leads/{lead['lead_id']}/history").json()
        assert history["event_count"] == 2
        assert history["events"][-1]["to_status"] == "booked"
        assert client.get("/leads/missing/history").status_code == 404
