"""Tests for the HTTP hook server."""

import json

import pytest
from aiohttp import test_utils

from hookwire.web_server import GENERIC_ERROR_BODY, WebServer, decode_form


def _make_server():
    return WebServer(host="127.0.0.1", port=0)


class TestRegistration:

    def test_path_must_start_with_slash(self):
        server = _make_server()
        assert server.on("hook", lambda h, d, r: None) is False
        assert server.hooks("hook") == []

    def test_handler_must_be_callable(self):
        with pytest.raises(TypeError):
            _make_server().on("/hook", "not callable")

    def test_handlers_kept_in_order(self):
        server = _make_server()
        first, second = (lambda h, d, r: None), (lambda h, d, r: None)
        assert server.on("/hook", first)
        assert server.on("/hook", second)
        assert server.on("/other", first)
        assert server.hooks("/hook") == [first, second]

    def test_ignore_hooks_toggle(self):
        server = _make_server()
        server.ignore_hooks(True)
        assert server.is_ignoring_hooks
        server.ignore_hooks(False)
        assert not server.is_ignoring_hooks


class TestDispatch:

    @pytest.mark.asyncio
    async def test_unknown_path_forbidden(self):
        response = await _make_server().dispatch("/nope", {}, {})
        assert response.status == 403

    @pytest.mark.asyncio
    async def test_handlers_run_sequentially(self):
        server = _make_server()
        seen = []

        async def first(headers, data, response):
            seen.append(("first", data["n"]))

        def second(headers, data, response):
            seen.append(("second", data["n"]))

        server.on("/hook", first)
        server.on("/hook", second)

        response = await server.dispatch("/hook", {"X-Test": "1"}, {"n": 1})

        assert response.status == 200
        assert seen == [("first", 1), ("second", 1)]

    @pytest.mark.asyncio
    async def test_handler_written_response_kept(self):
        server = _make_server()
        server.on("/options", lambda h, d, r: r.write_json({"options": []}))

        response = await server.dispatch("/options", {}, {})

        assert response.status == 200
        assert json.loads(response.body) == {"options": []}

    @pytest.mark.asyncio
    async def test_handler_error_returns_generic_500(self):
        server = _make_server()
        later = []

        def failing(headers, data, response):
            response.write_text("partial")
            raise RuntimeError("secret internals")

        server.on("/hook", failing)
        server.on("/hook", lambda h, d, r: later.append(True))

        response = await server.dispatch("/hook", {}, {})

        assert response.status == 500
        assert response.body == GENERIC_ERROR_BODY
        assert "secret" not in response.body
        assert later == []

    @pytest.mark.asyncio
    async def test_ignored_hooks_forbidden(self):
        server = _make_server()
        called = []
        server.on("/hook", lambda h, d, r: called.append(True))
        server.ignore_hooks()

        response = await server.dispatch("/hook", {}, {})

        assert response.status == 403
        assert called == []


class TestDecodeForm:

    def test_payload_field_merged(self):
        form = {"payload": json.dumps({"callback_id": "jobSelection", "user": {"id": "U1"}})}
        assert decode_form(form) == {"callback_id": "jobSelection", "user": {"id": "U1"}}

    def test_plain_fields_kept(self):
        form = {"command": "/jenkins", "text": "job -i"}
        assert decode_form(form) == form

    def test_non_string_fields_dropped(self):
        assert decode_form({"text": "x", "upload": object()}) == {"text": "x"}


class TestHttp:

    @pytest.mark.asyncio
    async def test_form_post_reaches_handler(self):
        server = _make_server()
        received = []
        server.on("/command", lambda h, d, r: received.append(d))

        async with test_utils.TestClient(test_utils.TestServer(server.make_app())) as client:
            resp = await client.post("/command", data={"text": "job -i", "user_id": "U1"})
            assert resp.status == 200

        assert received == [{"text": "job -i", "user_id": "U1"}]

    @pytest.mark.asyncio
    async def test_interactive_payload_decoded(self):
        server = _make_server()
        received = []
        server.on("/hook", lambda h, d, r: received.append(d))
        payload = json.dumps({"callback_id": "initiate"})

        async with test_utils.TestClient(test_utils.TestServer(server.make_app())) as client:
            resp = await client.post("/hook", data={"payload": payload})
            assert resp.status == 200

        assert received == [{"callback_id": "initiate"}]

    @pytest.mark.asyncio
    async def test_json_post(self):
        server = _make_server()
        server.on("/notify", lambda h, d, r: r.write_json({"got": d["name"]}))

        async with test_utils.TestClient(test_utils.TestServer(server.make_app())) as client:
            resp = await client.post("/notify", json={"name": "nightly"})
            assert resp.status == 200
            assert await resp.json() == {"got": "nightly"}

    @pytest.mark.asyncio
    async def test_get_forbidden(self):
        server = _make_server()
        server.on("/hook", lambda h, d, r: None)

        async with test_utils.TestClient(test_utils.TestServer(server.make_app())) as client:
            resp = await client.get("/hook")
            assert resp.status == 403

    @pytest.mark.asyncio
    async def test_unsupported_body_rejected(self):
        server = _make_server()
        server.on("/hook", lambda h, d, r: None)

        async with test_utils.TestClient(test_utils.TestServer(server.make_app())) as client:
            resp = await client.post("/hook", data=b"raw", headers={"Content-Type": "text/plain"})
            assert resp.status == 400

    @pytest.mark.asyncio
    async def test_unknown_path_forbidden(self):
        async with test_utils.TestClient(test_utils.TestServer(_make_server().make_app())) as client:
            resp = await client.post("/nowhere", json={})
            assert resp.status == 403

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        server = _make_server()
        await server.start()
        try:
            assert server.is_listening
        finally:
            await server.stop()
        assert not server.is_listening
