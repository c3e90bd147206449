import os
import unittest
from unittest import mock

from flask import Flask

from hinoto.body import BinaryBody, StringBody
from hinoto.config import BodyStrategy
from hinoto.flask import Hinoto
from hinoto.http import Request, Response, error_response
from hinoto.reader import read_binary, read_structured, read_text


async def handler(request: Request) -> Response:
    if request.path == "/echo":
        result = await read_text(request.body)
        if not result.ok:
            return error_response(result.error)
        return Response.text(result.value)

    if request.path == "/json":
        result = await read_structured(request.body)
        if not result.ok:
            return error_response(result.error)
        return Response.json(result.value)

    if request.path == "/twice":
        await read_binary(request.body)
        return error_response((await read_binary(request.body)).error)

    if request.path == "/headers":
        return Response(
            200,
            [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")],
            StringBody("cookies"),
        )

    if request.path == "/binary":
        return Response(200, [], BinaryBody(b"\x00\xff"))

    if request.path == "/empty":
        return Response.empty()

    return Response.json(
        {
            "method": request.method,
            "path": request.path,
            "query": request.query,
            "body": type(request.body).__name__,
        }
    )


class TestFlask(unittest.TestCase):
    body_strategy = BodyStrategy.EAGER
    get_body = "EmptyBody"
    post_body = "StringBody"

    def setUp(self):
        app = Flask("test")
        self.hinoto = Hinoto(app, handler, body_strategy=self.body_strategy)
        self.client = app.test_client()

    def test_root(self):
        resp = self.client.get("/")
        self.assertEqual(resp.get_json()["path"], "/")

    def test_request_fields(self):
        resp = self.client.get("/a/b?x=1&y=2")
        self.assertEqual(
            resp.get_json(),
            {
                "method": "GET",
                "path": "/a/b",
                "query": "x=1&y=2",
                "body": self.get_body,
            },
        )

    def test_post_body(self):
        resp = self.client.post("/info", data=b"hello")
        self.assertEqual(resp.get_json()["body"], self.post_body)

    def test_echo(self):
        resp = self.client.post("/echo", data="héllo".encode())
        self.assertEqual(resp.get_data(as_text=True), "héllo")
        self.assertEqual(resp.headers["Content-Type"], "text/plain; charset=utf-8")

    def test_json(self):
        resp = self.client.post("/json", json={"a": 1})
        self.assertEqual(resp.get_json(), {"a": 1})

    def test_malformed_json(self):
        resp = self.client.post("/json", data=b"{")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["code"], "invalid_argument")

    def test_response_headers(self):
        resp = self.client.get("/headers")
        self.assertEqual(resp.headers.getlist("Set-Cookie"), ["a=1", "b=2"])

    def test_binary_response(self):
        resp = self.client.get("/binary")
        self.assertEqual(resp.data, b"\x00\xff")
        self.assertEqual(resp.headers["Content-Type"], "application/octet-stream")

    def test_empty_response(self):
        resp = self.client.delete("/empty")
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(resp.data, b"")
        self.assertNotIn("Content-Type", resp.headers)

    def test_missing_app(self):
        with self.assertRaises(ValueError):
            Hinoto(None, handler)  # type: ignore[arg-type]


class TestFlaskLazy(TestFlask):
    body_strategy = BodyStrategy.LAZY
    get_body = "LiveBody"
    post_body = "LiveBody"

    def test_body_is_read_once(self):
        resp = self.client.post("/twice", data=b"data")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["code"], "already_read")


class TestFlaskConfiguration(unittest.TestCase):
    @mock.patch.dict(os.environ, {"HINOTO_BODY_STRATEGY": "lazy"})
    def test_body_strategy_from_environment(self):
        hinoto = Hinoto(Flask("test"), handler)
        self.assertIs(hinoto.body_strategy, BodyStrategy.LAZY)

    @mock.patch.dict(os.environ, {"HINOTO_BODY_STRATEGY": ""})
    def test_default_body_strategy(self):
        hinoto = Hinoto(Flask("test"), handler)
        self.assertIs(hinoto.body_strategy, BodyStrategy.EAGER)

    def test_prefix(self):
        app = Flask("test")
        Hinoto(app, handler, prefix="/hinoto/")
        client = app.test_client()
        self.assertEqual(client.get("/hinoto/x").get_json()["path"], "/hinoto/x")
        self.assertEqual(client.get("/other").status_code, 404)

    def test_several_prefixes(self):
        async def other(request: Request) -> Response:
            return Response.text("other")

        app = Flask("test")
        Hinoto(app, handler, prefix="/one")
        Hinoto(app, other, prefix="/other")
        client = app.test_client()
        self.assertEqual(client.get("/one/x").get_json()["path"], "/one/x")
        self.assertEqual(client.get("/other/x").get_data(as_text=True), "other")
