"""Route tests: access decision on chapter reads, auth and error mapping."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from novelhub.core.exceptions import RentalConflictError
from novelhub.db.session import get_db
from novelhub.main import app
from novelhub.paywall import messages
from novelhub.paywall.models import (
    ChapterSnapshot,
    ContentMode,
    ModuleSnapshot,
    NovelSnapshot,
    RentalSnapshot,
)
from novelhub.services.auth.tokens import ReaderTokenService


def _bundle(chapter_mode=ContentMode.PUBLISHED, module_mode=ContentMode.PUBLISHED, balance=0):
    return {
        "chapter": ChapterSnapshot(
            id="c1", novel_id="n1", module_id="m1", title="Chương 1", order=1,
            mode=chapter_mode, chapter_balance=balance,
        ),
        "module": ModuleSnapshot(id="m1", novel_id="n1", title="Tập 1", order=1, mode=module_mode),
        "novel": NovelSnapshot(id="n1", title="Truyện"),
        "content": "Nội dung chương",
        "updated_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def client(db):
    tokens = ReaderTokenService(secret="test-secret-test-secret", ttl_seconds=3600)
    app.state.token_service = tokens
    app.state.invalidation_sink = MagicMock()
    app.state.content_cache.clear()
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        c.tokens = tokens
        yield c
    app.dependency_overrides.clear()


def _auth(client, db, user):
    db.query.return_value.filter.return_value.one_or_none.return_value = user
    return {"Authorization": f"Bearer {client.tokens.issue(user.id)}"}


class TestReadChapter:
    def test_published_anonymous(self, client):
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo:
            repo.return_value.load_reading_bundle.return_value = _bundle()
            resp = client.get("/chapters/c1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["content"] == "Nội dung chương"
        assert body["access_denied"] is False
        assert body["access_reason"] == "published"

    def test_protected_anonymous_stripped(self, client):
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo:
            repo.return_value.load_reading_bundle.return_value = _bundle(ContentMode.PROTECTED)
            resp = client.get("/chapters/c1")
        body = resp.json()
        assert resp.status_code == 200
        assert body["content"] is None
        assert body["access_denied"] is True
        assert body["access_message"] == messages.LOGIN_TO_READ_CHAPTER

    def test_paid_chapter_with_rental(self, client, db):
        user = SimpleNamespace(id="u1", username="reader", role="user")
        headers = _auth(client, db, user)
        now = datetime.now(timezone.utc)
        rental = RentalSnapshot(id="r1", user_id="u1", module_id="m1", start_time=now, end_time=now + timedelta(hours=1))
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo, \
                patch("novelhub.api.routes.chapters.RentalService") as rentals:
            repo.return_value.load_reading_bundle.return_value = _bundle(ContentMode.PAID, balance=10)
            rentals.return_value.lookup_snapshot.return_value = rental
            resp = client.get("/chapters/c1", headers=headers)
        body = resp.json()
        assert body["access_reason"] == "rental"
        assert body["content"] == "Nội dung chương"
        assert body["rental_info"]["time_remaining_seconds"] > 0
        assert body["effective_mode"] == "paid"

    def test_bad_token_is_anonymous(self, client):
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo:
            repo.return_value.load_reading_bundle.return_value = _bundle(ContentMode.PROTECTED)
            resp = client.get("/chapters/c1", headers={"Authorization": "Bearer forged"})
        assert resp.json()["access_denied"] is True

    def test_missing_chapter_404(self, client):
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo:
            repo.return_value.load_reading_bundle.return_value = None
            resp = client.get("/chapters/nope")
        assert resp.status_code == 404

    def test_snapshot_served_from_cache(self, client):
        with patch("novelhub.api.routes.chapters.ContentRepository") as repo:
            repo.return_value.load_reading_bundle.return_value = _bundle()
            client.get("/chapters/c1")
            client.get("/chapters/c1")
        assert repo.return_value.load_reading_bundle.call_count == 1


class TestMutations:
    def test_rent_requires_login(self, client):
        assert client.post("/modules/m1/rent").status_code == 401

    def test_rent_conflict_maps_to_409(self, client, db):
        headers = _auth(client, db, SimpleNamespace(id="u1", username="reader", role="user"))
        with patch("novelhub.api.routes.modules.RentalService") as svc:
            svc.return_value.rent_module.side_effect = RentalConflictError("Bạn đã thuê tập này rồi")
            resp = client.post("/modules/m1/rent", headers=headers)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Bạn đã thuê tập này rồi"

    def test_unlock_trigger_admin_only(self, client, db):
        headers = _auth(client, db, SimpleNamespace(id="u1", username="reader", role="user"))
        assert client.post("/novels/n1/unlock", headers=headers).status_code == 403

    def test_contribution_below_minimum_rejected(self, client, db):
        headers = _auth(client, db, SimpleNamespace(id="u1", username="reader", role="user", balance=100))
        resp = client.post("/novels/n1/contribute", json={"amount": 5}, headers=headers)
        assert resp.status_code == 400
