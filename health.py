# health.py
from aiohttp import web

from timeclock.logger import log


async def index(request: web.Request) -> web.Response:
    return web.Response(text="Time clock bot is running.")


async def ping(request: web.Request) -> web.Response:
    return web.Response(text="Pong!")


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/ping", ping)
    return app


async def start_health_server(port: int) -> web.AppRunner:
    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    log.info(f"[HEALTH] listening on port {port}")
    return runner
