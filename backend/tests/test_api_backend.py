from __future__ import annotations

import gzip

import httpx


def test_health_reports_upstream(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "upstream": "http://clinical-api.test"}


def test_structure_endpoint_groups_sections(client):
    content = "Clinical Takeaway\nRest.\nSources Used\nNICE 2024\nConclusion:\nReview in a week."

    collapsed = client.post("/responses/structure", json={"content": content}).json()
    assert [s["title"] for s in collapsed["sections"]] == ["Clinical Takeaway", "Sources Used", "Conclusion"]
    assert collapsed["layout"]["hidden"][0]["content"] == "NICE 2024"
    assert collapsed["layout"]["conclusion"]["original_title"] == "Conclusion:"
    assert [s["title"] for s in collapsed["visible"]] == ["Clinical Takeaway", "Conclusion"]
    assert collapsed["has_hidden"] is True

    expanded = client.post("/responses/structure", json={"content": content, "expanded": True}).json()
    assert [s["title"] for s in expanded["visible"]] == ["Clinical Takeaway", "Sources Used", "Conclusion"]


def test_structure_endpoint_supports_education_taxonomy(client):
    response = client.post(
        "/responses/structure",
        json={"content": "Definition\nA fast heartbeat.", "taxonomy": "education"},
    )
    assert response.status_code == 200
    assert response.json()["layout"]["others"][0]["title"] == "Definition"


def test_structure_endpoint_rejects_unknown_taxonomy(client):
    response = client.post("/responses/structure", json={"content": "x", "taxonomy": "legal"})
    assert response.status_code == 400


def test_chat_stream_relays_body_and_session_header(client, upstream, auth_headers):
    upstream.chat_chunks = [b"Clinical Takeaway\n", "Café ".encode("utf-8"), b"rest."]

    response = client.post(
        "/chat/doctor/stream",
        json={"message": "Palpitations", "session_id": None},
        headers=auth_headers("doctor-token"),
    )

    assert response.status_code == 200
    assert response.text == "Clinical Takeaway\nCafé rest."
    assert response.headers["x-session-id"] == "101"
    assert response.headers["cache-control"] == "no-cache"
    forwarded = upstream.requests_to("POST", "/chat/doctor/stream")[0]
    assert forwarded.headers["authorization"] == "Bearer doctor-token"


def test_chat_stream_uses_cookie_token(client, upstream):
    client.cookies.set("userToken", "cookie-token")
    response = client.post("/chat/patient/stream", json={"message": "Hi"})
    assert response.status_code == 200
    forwarded = upstream.requests_to("POST", "/chat/patient/stream")[0]
    assert forwarded.headers["authorization"] == "Bearer cookie-token"


def test_chat_stream_maps_upstream_errors(client, upstream):
    upstream.chat_status = 401
    assert client.post("/chat/patient/stream", json={"message": "Hi"}).status_code == 401

    upstream.chat_status = 500
    assert client.post("/chat/patient/stream", json={"message": "Hi"}).status_code == 502

    upstream.chat_status = 200
    upstream.chat_error = httpx.ConnectError("connection refused")
    assert client.post("/chat/patient/stream", json={"message": "Hi"}).status_code == 502


def test_unknown_role_is_not_found(client, upstream):
    assert client.post("/chat/nurse/stream", json={"message": "Hi"}).status_code == 404
    assert client.get("/nurse/sessions").status_code == 404
    assert upstream.requests == []


def test_session_routes_proxy_upstream(client, upstream, auth_headers):
    headers = auth_headers("patient-token")

    listed = client.get("/patient/sessions", headers=headers)
    assert listed.status_code == 200
    assert listed.json()["sessions"][0]["session_name"] == "Chest pain follow-up"

    created = client.post("/patient/sessions", json={"session_name": "Swollen ankles"}, headers=headers)
    assert created.json()["session_id"] == 500

    renamed = client.put("/patient/sessions/500", json={"session_name": "  Ankle swelling  "}, headers=headers)
    assert renamed.json() == {"ok": True, "session_id": "500", "session_name": "Ankle swelling"}
    assert upstream.sessions[0]["session_name"] == "Ankle swelling"

    assert client.put("/patient/sessions/500", json={"session_name": "   "}, headers=headers).status_code == 400

    upstream.history["500"] = [{"role": "user", "content": "Ankles swell by evening"}]
    history = client.get("/patient/sessions/500/history", params={"limit": 1000}, headers=headers)
    assert history.json() == {"messages": [{"role": "user", "content": "Ankles swell by evening"}]}
    assert upstream.requests_to("GET", "/patient/sessions/500/history")[0].url.params["limit"] == "200"

    assert client.delete("/patient/sessions/500", headers=headers).json() == {"ok": True}
    assert [s["session_id"] for s in upstream.sessions] == [7]


def test_session_route_errors_are_mapped(client, upstream):
    upstream.session_status = 401
    assert client.get("/doctor/sessions").status_code == 401

    upstream.session_status = 404
    assert client.get("/doctor/sessions").status_code == 404

    upstream.session_status = 503
    assert client.get("/doctor/sessions").status_code == 502


def test_chat_stream_relays_decoded_body_from_compressing_upstream(client, upstream):
    compressed = gzip.compress("Clinical Takeaway\nRest and fluids.".encode("utf-8"))
    upstream.chat_chunks = [compressed[:10], compressed[10:]]
    upstream.chat_headers = {"content-encoding": "gzip"}

    response = client.post("/chat/patient/stream", json={"message": "Hi"})

    assert response.status_code == 200
    assert "content-encoding" not in response.headers
    assert response.text == "Clinical Takeaway\nRest and fluids."
