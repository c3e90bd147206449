import unittest

import fastapi
from fastapi.testclient import TestClient

from hinoto.body import StringBody
from hinoto.fastapi import Hinoto
from hinoto.http import Request, Response, error_response
from hinoto.reader import read_binary, read_structured, read_text


async def handler(request: Request) -> Response:
    if request.path.endswith("/echo"):
        return Response.text((await read_text(request.body)).unwrap())

    if request.path.endswith("/json"):
        result = await read_structured(request.body)
        if not result.ok:
            return error_response(result.error)
        return Response.json(result.value)

    if request.path.endswith("/twice"):
        await read_binary(request.body)
        return error_response((await read_binary(request.body)).error)

    if request.path.endswith("/headers"):
        return Response(
            202,
            [("X-Multi", "1"), ("X-Multi", "2"), ("Content-Type", "text/html")],
            StringBody("<p>hi</p>"),
        )

    if request.path.endswith("/binary"):
        return Response.binary(b"\x01\x02", content_type="image/x-test")

    if request.path.endswith("/empty"):
        return Response.empty()

    return Response.json(
        {
            "method": request.method,
            "path": request.path,
            "query": request.query,
            "body": type(request.body).__name__,
            "tags": request.header_values("x-tag"),
        }
    )


def sync_handler(request: Request) -> Response:
    return Response.text(f"sync {request.method}")


class TestFastAPI(unittest.TestCase):
    def setUp(self):
        app = fastapi.FastAPI()

        @app.get("/native")
        def native():
            return {"native": True}

        Hinoto(app, sync_handler, prefix="/sync")
        Hinoto(app, handler, prefix="/api/")
        self.client = TestClient(app)

    def test_request_fields(self):
        resp = self.client.get(
            "/api/info?a=1", headers=[("X-Tag", "1"), ("X-Tag", "2")]
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "method": "GET",
                "path": "/api/info",
                "query": "a=1",
                "body": "LiveBody",
                "tags": ["1", "2"],
            },
        )

    def test_echo(self):
        resp = self.client.post("/api/echo", content=b"hello")
        self.assertEqual(resp.text, "hello")
        self.assertEqual(resp.headers["content-type"], "text/plain; charset=utf-8")

    def test_json(self):
        resp = self.client.put("/api/json", json=[1, "two", None])
        self.assertEqual(resp.json(), [1, "two", None])

    def test_malformed_json(self):
        resp = self.client.post("/api/json", content=b"nope")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "invalid_argument")

    def test_body_is_read_once(self):
        resp = self.client.post("/api/twice", content=b"data")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["code"], "already_read")

    def test_response_headers(self):
        resp = self.client.get("/api/headers")
        self.assertEqual(resp.status_code, 202)
        self.assertEqual(resp.headers.get_list("x-multi"), ["1", "2"])
        self.assertEqual(resp.headers["content-type"], "text/html")
        self.assertEqual(resp.text, "<p>hi</p>")

    def test_binary_response(self):
        resp = self.client.get("/api/binary")
        self.assertEqual(resp.content, b"\x01\x02")
        self.assertEqual(resp.headers["content-type"], "image/x-test")

    def test_empty_response(self):
        resp = self.client.post("/api/empty")
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(resp.content, b"")

    def test_sync_handler(self):
        resp = self.client.patch("/sync/anything")
        self.assertEqual(resp.text, "sync PATCH")

    def test_native_routes_are_preserved(self):
        resp = self.client.get("/native")
        self.assertEqual(resp.json(), {"native": True})

    def test_missing_app(self):
        with self.assertRaises(ValueError):
            Hinoto(None, handler)  # type: ignore[arg-type]

    def test_eager_strategy_is_not_supported(self):
        with self.assertRaises(ValueError):
            Hinoto(fastapi.FastAPI(), handler, body_strategy="eager")
