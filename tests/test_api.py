import json

from fastapi.testclient import TestClient

from main import create_app


def test_health(client, cfg):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True, "dataRoot": str(cfg.data_dir)}


def test_day_round_trip(client):
    doc = {"slug": "2024-05-01", "title": "Lisbon", "photos": [{"id": "a", "caption": "ção"}], "stats": {}}
    assert client.put("/api/day/2024-05-01", json=doc).json() == {"ok": True}

    res = client.get("/api/day/2024-05-01")
    assert res.status_code == 200
    assert res.json() == doc
    assert client.get("/api/days").json()[0]["slug"] == "2024-05-01"


def test_day_errors(client):
    assert client.get("/api/day/2024-05-09").status_code == 404
    assert client.get("/api/day/not-a-date").status_code == 400
    assert client.put("/api/day/2024-5-1", json={}).status_code == 400
    assert client.put("/api/day/2024-05-01", json=[1, 2]).status_code == 400
    res = client.put("/api/day/2024-05-01", content=b"{oops", headers={"content-type": "application/json"})
    assert res.status_code == 400


def test_admin_token_guards_day_writes(tmp_path, publisher):
    from settings import Settings

    cfg = Settings(repo_dir=tmp_path, admin_token="s3cret", git_publish=False, immich_url="")
    with TestClient(create_app(cfg, publisher=publisher)) as c:
        assert c.put("/api/day/2024-05-01", json={}).status_code == 401
        assert c.put("/api/day/2024-05-01", json={}, headers={"x-admin-token": "s3cret"}).status_code == 200
        assert c.put("/api/day/2024-05-01", json={}, headers={"authorization": "Bearer s3cret"}).status_code == 200

        c.cookies.clear()
        cid = c.post("/api/photo/p1/comment", json={"text": "hi"}).json()["comment"]["id"]
        assert c.put(f"/api/photo/p1/comment/{cid}", json={"text": "edit"}).status_code == 200

        c.cookies.clear()
        assert c.put(f"/api/photo/p1/comment/{cid}", json={"text": "hijack"}).status_code == 403
        assert c.delete(f"/api/photo/p1/comment/{cid}").status_code == 403
        res = c.delete(f"/api/photo/p1/comment/{cid}", headers={"x-admin-token": "s3cret"})
        assert res.status_code == 204


def test_interactions_default_for_unknown_photo(client):
    for _ in range(2):
        res = client.get("/api/photo/unknown_1/interactions")
        assert res.status_code == 200
        assert res.json() == {"reactions": {}, "comments": []}


def test_react_toggle_via_http(client, publisher):
    assert client.post("/api/photo/p1/react", json={"emoji": "❤️"}).json() == {"ok": True, "count": 1, "removed": False}
    assert client.post("/api/photo/p1/react", json={"emoji": "❤️"}).json() == {"ok": True, "count": 0, "removed": True}
    assert client.get("/api/photo/p1/interactions").json()["reactions"] == {}
    assert len(publisher.calls) == 2


def test_react_validation(client):
    assert client.post("/api/photo/p1/react", json={}).status_code == 400
    assert client.post("/api/photo/p1/react", json={"emoji": ""}).status_code == 400
    assert client.post("/api/photo/p1/react", json={"emoji": "x", "action": "explode"}).status_code == 400
    assert client.post("/api/photo/bad.id/react", json={"emoji": "x"}).status_code == 400
    assert client.post("/api/album/p1/react", json={"emoji": "x"}).status_code == 400


def test_comment_lifecycle(client):
    res = client.post("/api/stack/s1/comment", json={"text": "  lovely  ", "author": "Ana"})
    assert res.status_code == 200
    comment = res.json()["comment"]
    assert comment["text"] == "lovely"
    assert comment["author"] == "Ana"
    assert comment["authorId"] == client.get("/api/user/me").json()["anonId"]

    record = client.get("/api/stack/s1/interactions").json()
    assert [c["text"] for c in record["comments"]] == ["lovely"]

    res = client.put(f"/api/stack/s1/comment/{comment['id']}", json={"text": "lovelier"})
    assert res.status_code == 200
    assert res.json()["comment"]["edited"]

    res = client.delete(f"/api/stack/s1/comment/{comment['id']}")
    assert res.status_code == 204
    assert res.content == b""
    assert client.get("/api/stack/s1/interactions").json()["comments"] == []


def test_comment_errors(client):
    assert client.post("/api/photo/p1/comment", json={"text": "   "}).status_code == 400
    assert client.post("/api/photo/p1/comment", json={}).status_code == 400
    assert client.put("/api/photo/p1/comment/123", json={"text": "x"}).status_code == 404
    assert client.put("/api/photo/p1/comment/123", json={"text": " "}).status_code == 400
    assert client.delete("/api/photo/p1/comment/123").status_code == 404


def test_comment_ids_unique(client):
    ids = {client.post("/api/photo/p1/comment", json={"text": f"n{i}"}).json()["comment"]["id"] for i in range(10)}
    assert len(ids) == 10


def test_stack_rollup(client):
    client.post("/api/stack/ST/react", json={"emoji": "❤️"})
    client.post("/api/photo/P1/react", json={"emoji": "❤️", "action": "add"})
    client.post("/api/photo/P1/react", json={"emoji": "❤️", "action": "add"})
    c1 = client.post("/api/photo/P1/comment", json={"text": "c1"}).json()["comment"]

    res = client.get("/api/stack/ST/interactions", params={"includeRollup": "true", "photos": json.dumps(["P1"])})
    assert res.status_code == 200
    body = res.json()
    assert body["stack"] == {"reactions": {"❤️": 1}, "comments": []}
    assert body["rollup"] == {
        "reactions": {"❤️": 3},
        "comments": [c1],
        "totalCommentCount": 1,
        "totalReactionCount": 3,
    }


def test_rollup_tolerates_malformed_photos(client):
    client.post("/api/photo/P1/react", json={"emoji": "👍"})

    for raw in ("not json", '{"a": 1}', '["../../etc", "P1"]'):
        res = client.get("/api/stack/ST/interactions", params={"includeRollup": "true", "photos": raw})
        assert res.status_code == 200
        expected = {"👍": 1} if "P1" in raw else {}
        assert res.json()["rollup"]["reactions"] == expected


def test_stack_without_rollup_is_plain_record(client):
    res = client.get("/api/stack/ST/interactions", params={"photos": '["P1"]'})
    assert res.json() == {"reactions": {}, "comments": []}


def test_publish_and_photo_edits(client):
    photos = [{"id": "a", "url": "/a.jpg"}, {"id": "b", "url": "/b.jpg"}]
    res = client.post("/api/publish", json={"date": "2024-05-01", "title": "T", "photos": photos})
    assert res.json() == {"ok": True, "added": 2, "total": 2}
    assert client.post("/api/publish", json={"date": "May 1", "photos": []}).status_code == 400

    res = client.patch("/api/day/2024-05-01/photo/a", json={"description": " tram 28 "})
    assert res.json() == {"ok": True}
    assert client.get("/api/day/2024-05-01").json()["photos"][0]["caption"] == "tram 28"
    assert client.patch("/api/day/2024-05-01/photo/zzz", json={"caption": "x"}).status_code == 404

    assert client.patch("/api/day/2024-05-01/stack/s1", json={"title": "Alfama"}).status_code == 200
    assert client.get("/api/day/2024-05-01").json()["stackMeta"] == {"s1": {"title": "Alfama", "caption": ""}}

    assert client.delete("/api/day/2024-05-01/photo/b").json()["ok"] is True
    assert [p["id"] for p in client.get("/api/day/2024-05-01").json()["photos"]] == ["a"]
    assert client.delete("/api/day/2024-05-01/photo/b").status_code == 404


def test_anon_cookie_is_stable(client):
    first = client.get("/api/user/me").json()["anonId"]
    assert client.get("/api/user/me").json()["anonId"] == first
    client.cookies.clear()
    assert client.get("/api/user/me").json()["anonId"] != first


def test_local_import(client, cfg):
    photo_dir = cfg.public_dir / "test-photos"
    photo_dir.mkdir(parents=True)
    (photo_dir / "one.jpg").write_bytes(b"\xff\xd8first")
    (photo_dir / "notes.txt").write_text("skip me")

    body = client.get("/api/local/day", params={"date": "2024-05-01"}).json()
    assert body["count"] == 1
    assert body["photos"][0]["taken_at"] == "2024-05-01T12:00:00.000Z"
    assert client.get("/api/local/day", params={"date": "2024-05-01"}).json()["count"] == 0
    assert client.get("/api/local/day").status_code == 400


def test_admin_config_hides_secrets(client):
    body = client.get("/api/admin/config").json()
    assert body["hasAdminToken"] is False
    assert "IMMICH_URL" in body["missingConfig"]
    assert "immichApiKeys" not in body


def test_immich_day_unconfigured(client):
    assert client.get("/api/immich/day", params={"date": "2024-05-01"}).status_code == 502


def test_put_day_with_numeric_date(client, publisher):
    assert client.put("/api/day/2024-05-01", json={"date": "2024-05-01"}).status_code == 200
    res = client.put("/api/day/2024-05-02", json={"date": 20240502})
    assert res.status_code == 200
    assert client.get("/api/day/2024-05-02").json() == {"date": 20240502}
    assert len(client.get("/api/days").json()) == 2
    assert len(publisher.calls) == 2


def test_non_ascii_anon_cookie_is_replaced(client):
    res = client.get("/api/photo/p1/interactions", headers={"cookie": b"anon=abc.\xe9"})
    assert res.status_code == 200
    assert res.json() == {"reactions": {}, "comments": []}
    assert "anon" in res.cookies


def test_anon_cookie_signature():
    import anon

    packed = anon.pack("secret", "visitor-1")
    assert anon.unpack("secret", packed) == "visitor-1"
    assert anon.unpack("other", packed) is None
    assert anon.unpack("secret", "visitor-1.é") is None
    assert anon.unpack("secret", "no-dot") is None


def test_immich_day_rejects_impossible_date(client):
    res = client.get("/api/immich/day", params={"date": "2024-02-30"})
    assert res.status_code == 400
    assert "2024-02-30" in res.json()["error"]
