import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_session_registry, get_view_controller
from app.controllers.sessions import SessionRegistry
from app.controllers.view_controller import ViewController
from app.views.templates import render_error, render_page

logger = logging.getLogger(__name__)
router = APIRouter()

KEEP_ALIVE_SECONDS = 15.0


def _back_home() -> RedirectResponse:
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


def _sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


@router.get("/", response_class=HTMLResponse, summary="Application page")
def index(request: Request, registry: SessionRegistry = Depends(get_session_registry)):
    """Renders whichever view (loading, login, signup, dashboard) this session is in."""
    try:
        controller = registry.get_or_create(request.state.session_id)
    except Exception as e:
        logger.exception("Failed to initialize application")
        return HTMLResponse(render_page("error", render_error(str(e))), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTMLResponse(controller.render())


async def refresh_events(
    controller: ViewController,
    is_disconnected: Callable[[], Awaitable[bool]],
    keep_alive: float = KEEP_ALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Yields a ``refresh`` event now and after every controller change, until
    ``is_disconnected()`` reports the client gone.
    """
    queue: asyncio.Queue = asyncio.Queue()
    loop = asyncio.get_running_loop()

    # Snapshot callbacks may arrive on provider threads.
    def listener():
        loop.call_soon_threadsafe(queue.put_nowait, None)

    controller.add_listener(listener)
    try:
        # Rendering waits on the controller lock, so it runs off the event loop.
        yield _sse("refresh", await run_in_threadpool(controller.render_fragments))
        while not await is_disconnected():
            try:
                await asyncio.wait_for(queue.get(), timeout=keep_alive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            while not queue.empty():
                queue.get_nowait()
            controller.touch()
            yield _sse("refresh", await run_in_threadpool(controller.render_fragments))
    finally:
        controller.remove_listener(listener)


@router.get("/events", summary="Live view updates")
async def events(request: Request, controller: ViewController = Depends(get_view_controller)):
    """
    Server-Sent Events stream. Each ``refresh`` event carries the current view
    name and the re-rendered posts/categories fragments.
    """
    return StreamingResponse(
        refresh_events(controller, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


# --- Form actions (each redirects back to the page) ---

@router.post("/actions/login", include_in_schema=False)
def submit_login(
    email: str = Form(""),
    password: str = Form(""),
    controller: ViewController = Depends(get_view_controller),
):
    controller.submit_login(email, password)
    return _back_home()


@router.post("/actions/signup", include_in_schema=False)
def submit_signup(
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    controller: ViewController = Depends(get_view_controller),
):
    controller.submit_signup(email, password, confirm_password)
    return _back_home()


@router.post("/actions/show-signup", include_in_schema=False)
def show_signup(controller: ViewController = Depends(get_view_controller)):
    controller.show_signup()
    return _back_home()


@router.post("/actions/show-login", include_in_schema=False)
def show_login(controller: ViewController = Depends(get_view_controller)):
    controller.show_login()
    return _back_home()


@router.post("/actions/logout", include_in_schema=False)
def logout(controller: ViewController = Depends(get_view_controller)):
    controller.logout()
    return _back_home()


@router.post("/actions/posts", include_in_schema=False)
def submit_post(
    content: str = Form(""),
    controller: ViewController = Depends(get_view_controller),
):
    controller.submit_post(content)
    return _back_home()


@router.post("/actions/categories", include_in_schema=False)
def add_category(
    name: str = Form(""),
    controller: ViewController = Depends(get_view_controller),
):
    controller.add_category(name)
    return _back_home()


@router.post("/actions/select-category", include_in_schema=False)
def select_category(
    category: str = Form(""),
    controller: ViewController = Depends(get_view_controller),
):
    controller.select_category(category)
    return _back_home()
