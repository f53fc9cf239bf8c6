from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, cast

import httpx
import pytest
from alembic import command
from alembic.config import Config
from sqlmodel import select

from bookmark_backend.config import settings
from bookmark_backend.db import reset_engine_cache, session_scope
from bookmark_backend.errors import PersistenceFault
from bookmark_backend.main import app  # pyright: ignore[reportMissingTypeStubs]
from bookmark_backend.models import (
    BookmarkCategory,
    BookmarkItem,
    BookmarkSubcategory,
    User,
)
from bookmark_backend.ordering.entities import EntityKind
from bookmark_backend.ordering.store import SqlOrderingStore
from bookmark_backend.schemas_common import ErrorResponse
from bookmark_backend.services import nodes_service


def _make_async_client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _alembic_upgrade_head() -> None:
    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def _create_user(*, username: str, token: str) -> int:
    async with session_scope() as session:
        user = User(username=username, api_token=token, is_active=True)
        session.add(user)
        await session.commit()
        await session.refresh(user)

        user_id = user.id
        assert user_id is not None
        return int(user_id)


async def _post(client: httpx.AsyncClient, path: str, token: str, body: dict[str, Any]) -> str:
    r = await client.post(f"/api/v1{path}", headers=_bearer(token), json=body)
    assert r.status_code == 201, r.text
    return cast(str, r.json()["id"])


def _ids(resp: httpx.Response) -> list[str]:
    body = cast(dict[str, Any], resp.json())
    return [cast(str, it["id"]) for it in cast(list[dict[str, Any]], body["items"])]


@pytest.fixture()
def _db(tmp_path: Path):  # pyright: ignore[reportUnusedFunction]
    old_db = settings.database_url
    settings.database_url = f"sqlite:///{tmp_path / 'test-bookmarks-api.db'}"
    reset_engine_cache()
    _alembic_upgrade_head()
    try:
        yield
    finally:
        settings.database_url = old_db
        reset_engine_cache()


@pytest.mark.anyio
async def test_drag_b_above_a_persists_new_sibling_order(_db: None) -> None:
    _ = await _create_user(username="u_reorder_a", token="tok-a")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-a", {"name": "C1"})
        a = await _post(client, "/categories", "tok-a", {"collection_id": c1, "name": "A", "order_index": 0})
        b = await _post(client, "/categories", "tok-a", {"collection_id": c1, "name": "B", "order_index": 1})

        r_before = await client.get(f"/api/v1/collections/{c1}/categories", headers=_bearer("tok-a"))
        assert _ids(r_before) == [a, b]

        r = await client.put(
            f"/api/v1/collections/{c1}/categories/reorder",
            headers=_bearer("tok-a"),
            json={"entries": [{"id": b, "order_index": 0}, {"id": a, "order_index": 1}]},
        )
        assert r.status_code == 200, r.text
        assert r.json() == {"success": True}
        assert r.headers.get("x-request-id")

        r_after = await client.get(f"/api/v1/collections/{c1}/categories", headers=_bearer("tok-a"))
        assert _ids(r_after) == [b, a]
        orders = [it["order_index"] for it in r_after.json()["items"]]
        assert orders == [0, 1]

        r_tree = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-a"))
        assert r_tree.status_code == 200
        assert [c["id"] for c in r_tree.json()["categories"]] == [b, a]


@pytest.mark.anyio
async def test_reorder_rejects_unauthenticated_and_malformed_batches(_db: None) -> None:
    _ = await _create_user(username="u_reorder_bad", token="tok-bad")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-bad", {"name": "C1"})
        a = await _post(client, "/categories", "tok-bad", {"collection_id": c1, "name": "A"})
        path = f"/api/v1/collections/{c1}/categories/reorder"

        r401 = await client.put(path, json={"entries": [{"id": a, "order_index": 0}]})
        assert r401.status_code == 401
        assert ErrorResponse.model_validate(r401.json()).error == "unauthorized"
        assert r401.headers.get("www-authenticate") == "Bearer"

        r_bad_token = await client.put(
            path, headers=_bearer("nope"), json={"entries": [{"id": a, "order_index": 0}]}
        )
        assert r_bad_token.status_code == 401

        r_empty = await client.put(path, headers=_bearer("tok-bad"), json={"entries": []})
        assert r_empty.status_code == 400
        assert ErrorResponse.model_validate(r_empty.json()).error == "validation_error"

        r_missing = await client.put(path, headers=_bearer("tok-bad"))
        assert r_missing.status_code == 400

        r_wrong_type = await client.put(
            path,
            headers=_bearer("tok-bad"),
            json={"entries": [{"id": a, "order_index": "first"}]},
        )
        assert r_wrong_type.status_code == 400

        r_negative = await client.put(
            path, headers=_bearer("tok-bad"), json={"entries": [{"id": a, "order_index": -1}]}
        )
        assert r_negative.status_code == 400

        r_dupe = await client.put(
            path,
            headers=_bearer("tok-bad"),
            json={"entries": [{"id": a, "order_index": 0}, {"id": a, "order_index": 1}]},
        )
        assert r_dupe.status_code == 400

        old_max = settings.reorder_max_entries
        try:
            settings.reorder_max_entries = 1
            r_too_many = await client.put(
                path,
                headers=_bearer("tok-bad"),
                json={"entries": [{"id": a, "order_index": 0}, {"id": "x", "order_index": 1}]},
            )
            assert r_too_many.status_code == 400
            assert r_too_many.json()["details"] == {"max_entries": 1}
        finally:
            settings.reorder_max_entries = old_max


@pytest.mark.anyio
async def test_reorder_forbids_other_owner_and_parent_mismatch(_db: None) -> None:
    _ = await _create_user(username="u_owner", token="tok-owner")
    _ = await _create_user(username="u_other", token="tok-other")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-owner", {"name": "C1"})
        c2 = await _post(client, "/collections", "tok-owner", {"name": "C2"})
        a = await _post(client, "/categories", "tok-owner", {"collection_id": c1, "name": "A"})
        x = await _post(client, "/categories", "tok-owner", {"collection_id": c2, "name": "X"})

        r_other = await client.put(
            f"/api/v1/collections/{c1}/categories/reorder",
            headers=_bearer("tok-other"),
            json={"entries": [{"id": a, "order_index": 3}]},
        )
        assert r_other.status_code == 403
        assert ErrorResponse.model_validate(r_other.json()).error == "forbidden"

        r_mismatch = await client.put(
            f"/api/v1/collections/{c1}/categories/reorder",
            headers=_bearer("tok-owner"),
            json={"entries": [{"id": a, "order_index": 1}, {"id": x, "order_index": 0}]},
        )
        assert r_mismatch.status_code == 403
        assert ErrorResponse.model_validate(r_mismatch.json()).error == "not_found"

        # The whole batch was rejected before any write.
        r_list = await client.get(f"/api/v1/collections/{c1}/categories", headers=_bearer("tok-owner"))
        assert [it["order_index"] for it in r_list.json()["items"]] == [0]

        r_other_root = await client.put(
            "/api/v1/collections/reorder",
            headers=_bearer("tok-other"),
            json={"entries": [{"id": c1, "order_index": 0}]},
        )
        assert r_other_root.status_code == 403


@pytest.mark.anyio
async def test_collections_root_reorder_and_listing(_db: None) -> None:
    _ = await _create_user(username="u_root", token="tok-root")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-root", {"name": "C1", "order_index": 0})
        c2 = await _post(client, "/collections", "tok-root", {"name": "C2", "order_index": 1})

        r = await client.put(
            "/api/v1/collections/reorder",
            headers=_bearer("tok-root"),
            json={"entries": [{"id": c2, "order_index": 0}, {"id": c1, "order_index": 1}]},
        )
        assert r.status_code == 200, r.text

        r_list = await client.get("/api/v1/collections", headers=_bearer("tok-root"))
        assert _ids(r_list) == [c2, c1]
        assert r_list.json()["total"] == 2


@pytest.mark.anyio
async def test_reorder_persistence_fault_rolls_back_and_reports_failed_ids(
    _db: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    _ = await _create_user(username="u_fault", token="tok-fault")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-fault", {"name": "C1"})
        s_cat = await _post(client, "/categories", "tok-fault", {"collection_id": c1, "name": "S"})
        sub = await _post(client, "/subcategories", "tok-fault", {"category_id": s_cat, "name": "Sub"})
        i1 = await _post(
            client,
            "/items",
            "tok-fault",
            {"subcategory_id": sub, "title": "one", "url": "https://one.example", "order_index": 0},
        )
        i2 = await _post(
            client,
            "/items",
            "tok-fault",
            {"subcategory_id": sub, "title": "two", "url": "https://two.example", "order_index": 1},
        )

        original = SqlOrderingStore.write_order_index

        async def _failing_write(self: SqlOrderingStore, entity_id: str, value: int) -> None:
            if entity_id == i1:
                raise PersistenceFault("disk full", details={"id": entity_id})
            await original(self, entity_id, value)

        monkeypatch.setattr(SqlOrderingStore, "write_order_index", _failing_write)

        r = await client.put(
            f"/api/v1/subcategories/{sub}/items/reorder",
            headers=_bearer("tok-fault"),
            json={"entries": [{"id": i2, "order_index": 0}, {"id": i1, "order_index": 1}]},
        )
        assert r.status_code == 500
        err = ErrorResponse.model_validate(r.json())
        assert err.error == "persistence_fault"
        assert err.details == {"success": False, "failed_ids": [i1]}

        monkeypatch.undo()
        r_list = await client.get(f"/api/v1/subcategories/{sub}/items", headers=_bearer("tok-fault"))
        assert _ids(r_list) == [i1, i2]
        assert [it["order_index"] for it in r_list.json()["items"]] == [0, 1]


@pytest.mark.anyio
async def test_tree_ties_break_on_created_at(_db: None) -> None:
    user_id = await _create_user(username="u_tie", token="tok-tie")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-tie", {"name": "C1"})

    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    async with session_scope() as session:
        # Inserted newest first; both share order_index 0.
        session.add(
            BookmarkCategory(
                id="cat-late",
                collection_id=c1,
                owner_id=user_id,
                name="late",
                order_index=0,
                created_at=t0 + timedelta(seconds=5),
                updated_at=t0,
            )
        )
        session.add(
            BookmarkCategory(
                id="cat-early",
                collection_id=c1,
                owner_id=user_id,
                name="early",
                order_index=0,
                created_at=t0,
                updated_at=t0,
            )
        )
        await session.commit()

    async with _make_async_client() as client:
        r = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-tie"))
        assert r.status_code == 200
        assert [c["id"] for c in r.json()["categories"]] == ["cat-early", "cat-late"]


@pytest.mark.anyio
async def test_tree_visibility_public_private_and_by_slug(_db: None) -> None:
    _ = await _create_user(username="alice", token="tok-alice")
    _ = await _create_user(username="bob", token="tok-bob")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-alice", {"name": "Reading", "slug": "reading"})

        r_anon = await client.get(f"/api/v1/collections/{c1}/tree")
        assert r_anon.status_code == 403
        r_bob = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-bob"))
        assert r_bob.status_code == 403
        r_owner = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-alice"))
        assert r_owner.status_code == 200

        r_patch = await client.patch(
            f"/api/v1/collections/{c1}", headers=_bearer("tok-alice"), json={"is_public": True}
        )
        assert r_patch.status_code == 200
        assert r_patch.json()["is_public"] is True
        assert r_patch.json()["order_index"] == 0

        r_public = await client.get(f"/api/v1/collections/{c1}/tree")
        assert r_public.status_code == 200

        r_slug = await client.get(
            "/api/v1/collections/by-slug", params={"username": "alice", "slug": "reading"}
        )
        assert r_slug.status_code == 200
        assert r_slug.json()["id"] == c1

        r_dupe = await client.post(
            "/api/v1/collections", headers=_bearer("tok-alice"), json={"name": "X", "slug": "reading"}
        )
        assert r_dupe.status_code == 409
        assert ErrorResponse.model_validate(r_dupe.json()).error == "conflict"

        r_missing = await client.get("/api/v1/collections/does-not-exist/tree")
        assert r_missing.status_code == 404


@pytest.mark.anyio
async def test_create_validates_fields_and_parent_ownership(_db: None) -> None:
    _ = await _create_user(username="u_create", token="tok-create")
    _ = await _create_user(username="u_intruder", token="tok-intruder")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-create", {"name": "C1"})

        r_blank = await client.post(
            "/api/v1/categories", headers=_bearer("tok-create"), json={"collection_id": c1, "name": "  "}
        )
        assert r_blank.status_code == 422
        err = ErrorResponse.model_validate(r_blank.json())
        assert err.error == "validation_error"
        assert isinstance(err.details, list)
        assert [d["loc"][-1] for d in err.details] == ["name"]
        assert all("ctx" not in d for d in err.details)

        r_blank_item = await client.post(
            "/api/v1/items",
            headers=_bearer("tok-create"),
            json={"subcategory_id": "s-any", "title": " ", "url": "\t"},
        )
        assert r_blank_item.status_code == 422
        locs = {d["loc"][-1] for d in r_blank_item.json()["details"]}
        assert locs == {"title", "url"}

        r_foreign = await client.post(
            "/api/v1/categories", headers=_bearer("tok-intruder"), json={"collection_id": c1, "name": "Mine"}
        )
        assert r_foreign.status_code == 403

        cat = await _post(client, "/categories", "tok-create", {"collection_id": c1, "name": "Cat"})
        r_cat = await client.patch(
            f"/api/v1/categories/{cat}", headers=_bearer("tok-create"), json={"name": "Renamed"}
        )
        assert r_cat.status_code == 200
        assert r_cat.json()["name"] == "Renamed"
        assert r_cat.json()["parent_id"] == c1
        assert r_cat.json()["is_temporary"] is False

        r_null = await client.patch(
            f"/api/v1/categories/{cat}", headers=_bearer("tok-create"), json={"name": None}
        )
        assert r_null.status_code == 400


@pytest.mark.anyio
async def test_delete_collection_cascades_to_descendants(_db: None) -> None:
    _ = await _create_user(username="u_cascade", token="tok-cascade")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-cascade", {"name": "C1"})
        cat = await _post(client, "/categories", "tok-cascade", {"collection_id": c1, "name": "Cat"})
        sub = await _post(client, "/subcategories", "tok-cascade", {"category_id": cat, "name": "Sub"})
        _ = await _post(
            client,
            "/items",
            "tok-cascade",
            {"subcategory_id": sub, "title": "Foo", "url": "https://foo.example"},
        )

        r_del = await client.delete(f"/api/v1/collections/{c1}", headers=_bearer("tok-cascade"))
        assert r_del.status_code == 204

        r_tree = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-cascade"))
        assert r_tree.status_code == 404

    async with session_scope() as session:
        assert (await session.exec(select(BookmarkCategory))).all() == []
        assert (await session.exec(select(BookmarkSubcategory))).all() == []
        assert (await session.exec(select(BookmarkItem))).all() == []


@pytest.mark.anyio
async def test_unknown_api_path_and_health_use_error_shape(_db: None) -> None:
    async with _make_async_client() as client:
        r_health = await client.get("/health")
        assert r_health.status_code == 200
        assert r_health.json() == {"ok": True}

        r_unknown = await client.get("/api/v1/nope")
        assert r_unknown.status_code == 404
        assert ErrorResponse.model_validate(r_unknown.json()).error == "not_found"


@pytest.mark.anyio
async def test_quick_add_creates_missing_levels_in_one_call(_db: None) -> None:
    _ = await _create_user(username="u_quick", token="tok-quick")
    _ = await _create_user(username="u_quick_other", token="tok-quick-other")

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-quick", {"name": "C1"})
        path = "/api/v1/items/quick-add"
        link = {"title": "Foo", "url": "https://foo.example"}

        r_new = await client.post(
            path,
            headers=_bearer("tok-quick"),
            json={
                **link,
                "collection_id": c1,
                "new_category_name": " Reading ",
                "new_subcategory_name": "Later",
            },
        )
        assert r_new.status_code == 201, r_new.text
        body = r_new.json()
        assert body["created_category"] is True
        assert body["created_subcategory"] is True
        assert body["item"]["parent_id"] == body["subcategory_id"]
        assert body["item"]["order_index"] == 0

        r_tree = await client.get(f"/api/v1/collections/{c1}/tree", headers=_bearer("tok-quick"))
        cats = r_tree.json()["categories"]
        assert [c["name"] for c in cats] == ["Reading"]
        assert cats[0]["id"] == body["category_id"]
        assert [s["name"] for s in cats[0]["subcategories"]] == ["Later"]
        assert [i["title"] for i in cats[0]["subcategories"][0]["items"]] == ["Foo"]

        # Existing category and subcategory: only the item is new.
        r_existing = await client.post(
            path,
            headers=_bearer("tok-quick"),
            json={
                "title": "Bar",
                "url": "https://bar.example",
                "collection_id": c1,
                "category_id": body["category_id"],
                "subcategory_id": body["subcategory_id"],
            },
        )
        assert r_existing.status_code == 201, r_existing.text
        assert r_existing.json()["created_category"] is False
        assert r_existing.json()["created_subcategory"] is False

        r_items = await client.get(
            f"/api/v1/subcategories/{body['subcategory_id']}/items", headers=_bearer("tok-quick")
        )
        assert len(_ids(r_items)) == 2

        r_foreign = await client.post(
            path,
            headers=_bearer("tok-quick-other"),
            json={**link, "collection_id": c1, "new_category_name": "X", "new_subcategory_name": "Y"},
        )
        assert r_foreign.status_code == 403

        other = await _post(client, "/collections", "tok-quick", {"name": "C2"})
        r_wrong_scope = await client.post(
            path,
            headers=_bearer("tok-quick"),
            json={
                **link,
                "collection_id": other,
                "category_id": body["category_id"],
                "new_subcategory_name": "Y",
            },
        )
        assert r_wrong_scope.status_code == 404
        assert r_wrong_scope.json()["error"] == "not_found"

        r_ambiguous = await client.post(
            path,
            headers=_bearer("tok-quick"),
            json={
                **link,
                "collection_id": c1,
                "new_category_name": "New",
                "subcategory_id": body["subcategory_id"],
            },
        )
        assert r_ambiguous.status_code == 422
        assert ErrorResponse.model_validate(r_ambiguous.json()).error == "validation_error"

    # Failed calls wrote nothing.
    async with session_scope() as session:
        cats_db = (await session.exec(select(BookmarkCategory))).all()
        subs_db = (await session.exec(select(BookmarkSubcategory))).all()
        items_db = (await session.exec(select(BookmarkItem))).all()
    assert len(cats_db) == 1
    assert len(subs_db) == 1
    assert len(items_db) == 2


@pytest.mark.anyio
async def test_quick_add_failure_after_new_levels_writes_nothing(
    _db: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    _ = await _create_user(username="u_quick_rb", token="tok-quick-rb")
    real_new_row = nodes_service.new_row

    def _failing_new_row(kind: EntityKind, **kwargs: Any) -> Any:
        if kind == EntityKind.ITEM:
            raise PersistenceFault("item insert failed")
        return real_new_row(kind, **kwargs)

    async with _make_async_client() as client:
        c1 = await _post(client, "/collections", "tok-quick-rb", {"name": "C1"})
        monkeypatch.setattr(nodes_service, "new_row", _failing_new_row)

        r = await client.post(
            "/api/v1/items/quick-add",
            headers=_bearer("tok-quick-rb"),
            json={
                "title": "Foo",
                "url": "https://foo.example",
                "collection_id": c1,
                "new_category_name": "New",
                "new_subcategory_name": "Sub",
            },
        )
        assert r.status_code == 500
        assert r.json()["error"] == "persistence_fault"

    async with session_scope() as session:
        assert (await session.exec(select(BookmarkCategory))).all() == []
        assert (await session.exec(select(BookmarkSubcategory))).all() == []
