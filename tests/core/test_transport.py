from __future__ import annotations

from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from mcp_log_stream_server.core.framing import iter_lines
from mcp_log_stream_server.core.models import Source
from mcp_log_stream_server.core.transport import (
    DiscoveryError,
    KubeApiTransport,
    TransportError,
    log_query_params,
)


def test_log_query_params_with_history() -> None:
    assert log_query_params(follow=True, tail_lines=100, limit_bytes=1024) == {
        "follow": "true",
        "tailLines": "100",
        "limitBytes": "1024",
    }


def test_log_query_params_without_history() -> None:
    params = log_query_params(follow=False, tail_lines=None, limit_bytes=1024)

    assert params == {"follow": "false", "limitBytes": "1024"}


def _app(seen: list[dict[str, Any]]) -> web.Application:
    async def logs(request: web.Request) -> web.StreamResponse:
        seen.append({"query": dict(request.query), "auth": request.headers.get("Authorization")})
        if request.match_info["pod"] == "missing":
            return web.Response(status=404, reason="Not Found")
        resp = web.StreamResponse()
        await resp.prepare(request)
        await resp.write(b"first\nsec")
        await resp.write(b"ond\nthird")
        await resp.write_eof()
        return resp

    async def pods(request: web.Request) -> web.Response:
        seen.append({"query": dict(request.query)})
        if request.match_info["ns"] == "forbidden":
            return web.Response(status=403, reason="Forbidden")
        return web.json_response(
            {
                "kind": "PodList",
                "items": [
                    {"metadata": {"name": "mc-1", "namespace": request.match_info["ns"]}},
                    {"metadata": {"name": "mc-2", "namespace": request.match_info["ns"]}},
                ],
            }
        )

    async def listing(request: web.Request) -> web.Response:
        return web.Response(text='[{"name": "a.log", "type": "file"}]', content_type="text/plain")

    app = web.Application()
    app.router.add_get("/api/v1/namespaces/{ns}/pods/{pod}/log", logs)
    app.router.add_get("/api/v1/namespaces/{ns}/pods", pods)
    app.router.add_get("/files/", listing)
    return app


@pytest.mark.asyncio
async def test_kube_transport_streams_and_lists() -> None:
    seen: list[dict[str, Any]] = []
    async with test_utils.TestServer(_app(seen)) as server, aiohttp.ClientSession() as http:
        transport = KubeApiTransport(http, api_base=str(server.make_url("/")), token="t0ken")

        chunks = transport.stream_logs(
            Source("migration-system", "v2v-helper-vm"),
            follow=True,
            tail_lines=100,
            limit_bytes=4096,
        )
        lines = [line async for line in iter_lines(chunks)]
        pods = await transport.list_pods("migration-system", "control-plane=controller-manager")
        listing = await transport.fetch_json("/files/")
        await transport.close()
        assert http.closed

    assert lines == ["first", "second", "third"]
    assert seen[0]["query"] == {"follow": "true", "tailLines": "100", "limitBytes": "4096"}
    assert seen[0]["auth"] == "Bearer t0ken"
    assert seen[1]["query"] == {"labelSelector": "control-plane=controller-manager"}
    assert [p.name for p in pods] == ["mc-1", "mc-2"]
    assert listing == [{"name": "a.log", "type": "file"}]


@pytest.mark.asyncio
async def test_kube_transport_surfaces_http_errors() -> None:
    async with test_utils.TestServer(_app([])) as server, aiohttp.ClientSession() as http:
        transport = KubeApiTransport(http, api_base=str(server.make_url("/")))

        with pytest.raises(TransportError, match="pod missing: HTTP 404"):
            async for _ in transport.stream_logs(
                Source("ns", "missing"), follow=True, tail_lines=None, limit_bytes=1
            ):
                pass

        with pytest.raises(DiscoveryError, match="HTTP 403"):
            await transport.list_pods("forbidden", "app=x")

        with pytest.raises(TransportError, match="HTTP 404"):
            await transport.fetch_text("/nothing-here")
