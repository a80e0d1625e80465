"""Fake upstream origin for httpx.MockTransport.

Serves a fixed route table and can be switched offline to simulate network
failures. Routes given an ETag answer a matching If-None-Match with 304.
"""

import httpx

SHELL_HTML = b"<!doctype html><html><body><div id='root'></div></body></html>"
MANIFEST_JSON = b'{"name": "DiNutri", "short_name": "DiNutri"}'


class FakeOrigin:
    """Route table keyed by origin-relative path (with query)."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes, dict[str, str]]] = {}
        self.offline = False
        self.timeout = False
        self.etags: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        path: str,
        body: bytes = b"",
        status: int = 200,
        content_type: str = "text/plain",
    ) -> None:
        self.routes[path] = (status, body, {"content-type": content_type})

    def hits(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.raw_path.decode() == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("origin too slow", request=request)
        if self.offline:
            raise httpx.ConnectError("origin unreachable", request=request)

        path = request.url.raw_path.decode()
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, content=b"not found")
        status, body, headers = route
        etag = self.etags.get(path)
        if etag:
            if request.headers.get("if-none-match") == etag:
                return httpx.Response(304, headers={"etag": etag})
            headers = {**headers, "etag": etag}
        return httpx.Response(status, content=body, headers=headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def dinutri_origin() -> FakeOrigin:
    """Origin serving the app shell, one API route and one static asset."""
    origin = FakeOrigin()
    origin.add("/", SHELL_HTML, content_type="text/html")
    origin.add("/manifest.json", MANIFEST_JSON, content_type="application/json")
    origin.add(
        "/api/patients",
        b'[{"id": 1, "name": "Ana"}]',
        content_type="application/json",
    )
    origin.add("/assets/app.js", b"console.log('dinutri');", content_type="text/javascript")
    origin.add("/patients", b"<html>patients</html>", content_type="text/html")
    return origin
