import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from epdl.api.client import HttpClient
from epdl.exceptions import NetworkError


async def _playlist(request):
    return web.Response(body=b"#EXTM3U\n")


async def _redirect(request):
    raise web.HTTPFound("/media/index.m3u8")


async def _echo_form(request):
    data = await request.post()
    return web.Response(text=f"{data['user']}:{request.headers['User-Agent']}")


def _app():
    app = web.Application()
    app.router.add_get("/media/index.m3u8", _playlist)
    app.router.add_get("/watch", _redirect)
    app.router.add_post("/login", _echo_form)
    return app


@pytest.mark.asyncio
async def test_redirect_reports_final_url():
    async with TestServer(_app()) as server:
        async with HttpClient(max_connections=2) as http:
            response = await http.get(str(server.make_url("/watch")))

    assert response.body == b"#EXTM3U\n"
    assert response.final_url == str(server.make_url("/media/index.m3u8"))
    assert response.status == 200


@pytest.mark.asyncio
async def test_error_status_raises_network_error():
    async with TestServer(_app()) as server:
        async with HttpClient() as http:
            with pytest.raises(NetworkError) as exc_info:
                await http.get(str(server.make_url("/missing.ts")))

    assert exc_info.value.status == 404
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_post_form_with_user_agent():
    async with TestServer(_app()) as server:
        async with HttpClient(user_agent="epdl-test") as http:
            response = await http.post(str(server.make_url("/login")), {"user": "alice"})

    assert response.body == b"alice:epdl-test"


@pytest.mark.asyncio
async def test_connection_failure_is_retryable():
    async with TestServer(_app()) as server:
        url = str(server.make_url("/media/index.m3u8"))

    async with HttpClient(timeout=2) as http:
        with pytest.raises(NetworkError) as exc_info:
            await http.get(url)

    assert exc_info.value.status is None
    assert exc_info.value.retryable
