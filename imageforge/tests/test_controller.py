"""Tests for :class:`imageforge.clientapp.controller.GenerationController`."""

from __future__ import annotations

import asyncio
import base64
import re
from pathlib import Path

import httpx
import pytest

from imageforge.clientapp import notifications
from imageforge.clientapp.controller import ControllerState, GenerationController, Phase
from imageforge.clientapp.relayclient import RelayClient
from imageforge.config import Settings
from imageforge.errors import (
    ErrorKind,
    MalformedUpstreamResponseError,
    RelayCallError,
    UpstreamStatusError,
)
from imageforge.main import app
from imageforge.service import RelayService, get_relay_service

PNG_BYTES = b"\x89PNG\r\n\x1a\nstub-image-bytes"
IMAGE = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
OTHER_IMAGE = "data:image/png;base64," + base64.b64encode(b"other").decode("ascii")


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))


class StubRelay:
    """Test double emulating :class:`RelayClient`."""

    def __init__(self, results: list | None = None) -> None:
        self.results = list(results or [IMAGE])
        self.prompts: list[str] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def _controller(relay, notifier: RecordingNotifier, tmp_path: Path | None = None) -> GenerationController:
    settings = Settings(download_dir=tmp_path or Path("."))
    return GenerationController(relay, notifier=notifier, settings=settings)


def test_initial_state_is_idle(notifier: RecordingNotifier) -> None:
    controller = _controller(StubRelay(), notifier)

    assert controller.state == ControllerState(phase=Phase.IDLE, prompt="", image=None)
    assert controller.state.busy is False
    assert controller.can_submit is False


def test_submit_success_sets_image_and_notifies(notifier: RecordingNotifier) -> None:
    relay = StubRelay()
    controller = _controller(relay, notifier)

    state = asyncio.run(controller.submit("a red fox in snow"))

    assert state.phase is Phase.SUCCESS
    assert state.image == IMAGE
    assert state.prompt == "a red fox in snow"
    assert state.busy is False
    assert relay.prompts == ["a red fox in snow"]
    assert notifier.messages == [("success", "Image generated successfully!")]


@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
def test_submit_rejects_blank_prompt_without_network_call(notifier: RecordingNotifier, prompt: str) -> None:
    relay = StubRelay()
    controller = _controller(relay, notifier)

    state = asyncio.run(controller.submit(prompt))

    assert state.phase is Phase.IDLE
    assert state.image is None
    assert relay.prompts == []
    assert notifier.messages == [("error", "Please enter a prompt")]


@pytest.mark.parametrize(
    ("error", "message"),
    [
        (RelayCallError("x", kind=ErrorKind.RATE_LIMITED, status_code=429), notifications.RATE_LIMITED),
        (RelayCallError("x", kind=ErrorKind.PAYMENT_REQUIRED, status_code=402), notifications.PAYMENT_REQUIRED),
        (RelayCallError("x", kind=ErrorKind.MALFORMED_UPSTREAM_RESPONSE), notifications.GENERATION_FAILED),
        (RelayCallError("x", kind=ErrorKind.UPSTREAM_UNAVAILABLE), notifications.GENERATION_FAILED),
        (RelayCallError("x", kind=ErrorKind.CONFIGURATION), notifications.GENERATION_FAILED),
        (RuntimeError("boom"), notifications.UNEXPECTED_ERROR),
    ],
)
def test_submit_failure_keeps_previous_image(notifier: RecordingNotifier, error, message: str) -> None:
    relay = StubRelay([IMAGE, error])
    controller = _controller(relay, notifier)

    async def run():
        await controller.submit("first")
        return await controller.submit("second")

    state = asyncio.run(run())

    assert state.phase is Phase.FAILED
    assert state.busy is False
    assert state.image == IMAGE
    assert notifier.messages[-1] == ("error", message)
    assert len(notifier.messages) == 2


def test_submit_treats_empty_image_as_failure(notifier: RecordingNotifier) -> None:
    controller = _controller(StubRelay([""]), notifier)

    state = asyncio.run(controller.submit("a castle"))

    assert state.phase is Phase.FAILED
    assert state.image is None
    assert notifier.messages == [("error", "Failed to generate image")]


def test_sequential_submits_issue_independent_calls(notifier: RecordingNotifier) -> None:
    relay = StubRelay([IMAGE, OTHER_IMAGE])
    controller = _controller(relay, notifier)

    async def run():
        first = await controller.submit("same prompt")
        second = await controller.submit("same prompt")
        return first, second

    first, second = asyncio.run(run())

    assert relay.prompts == ["same prompt", "same prompt"]
    assert first.image == IMAGE
    assert second.image == OTHER_IMAGE
    assert second.phase is Phase.SUCCESS


def test_submit_while_busy_issues_no_second_call(notifier: RecordingNotifier) -> None:
    relay = StubRelay()
    controller = _controller(relay, notifier)

    async def run():
        relay.gate = asyncio.Event()
        task = controller.start("a red fox in snow")
        await asyncio.sleep(0)

        assert controller.state.busy is True
        assert controller.can_submit is False
        assert controller.start() is task

        state = await controller.submit("another prompt")
        assert state.busy is True
        assert relay.prompts == ["a red fox in snow"]

        relay.gate.set()
        return await task

    state = asyncio.run(run())

    assert state.phase is Phase.SUCCESS
    assert relay.prompts == ["a red fox in snow"]
    assert notifier.messages == [("success", "Image generated successfully!")]


def test_cancel_returns_to_idle_without_notification(notifier: RecordingNotifier) -> None:
    relay = StubRelay()
    controller = _controller(relay, notifier)

    async def run():
        relay.gate = asyncio.Event()
        task = controller.start("a red fox in snow")
        await asyncio.sleep(0)
        assert controller.cancel() is True
        with pytest.raises(asyncio.CancelledError):
            await task
        assert controller.cancel() is False

    asyncio.run(run())

    assert controller.state.phase is Phase.IDLE
    assert controller.state.busy is False
    assert controller.state.image is None
    assert notifier.messages == []


def test_listeners_observe_every_transition(notifier: RecordingNotifier) -> None:
    controller = _controller(StubRelay(), notifier)
    phases: list[Phase] = []
    unsubscribe = controller.subscribe(lambda state: phases.append(state.phase))

    asyncio.run(controller.submit("a red fox in snow"))
    unsubscribe()
    controller.set_prompt("ignored")

    assert phases == [Phase.IDLE, Phase.SUBMITTING, Phase.SUCCESS]


def test_failing_listener_does_not_lock_controller(notifier: RecordingNotifier) -> None:
    relay = StubRelay([IMAGE, OTHER_IMAGE])
    controller = _controller(relay, notifier)

    def listener(state: ControllerState) -> None:
        if state.busy:
            raise RuntimeError("render failed")

    controller.subscribe(listener)

    async def run():
        first = await controller.submit("a red fox in snow")
        second = await controller.submit("a red fox in snow")
        return first, second

    first, second = asyncio.run(run())

    assert relay.prompts == ["a red fox in snow", "a red fox in snow"]
    assert first.phase is Phase.SUCCESS
    assert second.phase is Phase.SUCCESS
    assert second.image == OTHER_IMAGE
    assert controller.state.busy is False
    assert controller.can_submit is True
    assert notifier.messages == [("success", "Image generated successfully!")] * 2


def test_export_without_image_is_noop(notifier: RecordingNotifier, tmp_path: Path) -> None:
    controller = _controller(StubRelay(), notifier, tmp_path)

    assert controller.export() is None
    assert list(tmp_path.iterdir()) == []
    assert notifier.messages == []


def test_export_writes_png_with_timestamped_name(notifier: RecordingNotifier, tmp_path: Path) -> None:
    controller = _controller(StubRelay(), notifier, tmp_path)
    asyncio.run(controller.submit("a red fox in snow"))

    path = controller.export()

    assert path is not None
    assert path.parent == tmp_path
    assert re.fullmatch(r"generated-image-\d+\.png", path.name)
    assert path.read_bytes() == PNG_BYTES
    assert notifier.messages[-1] == ("success", "Image downloaded!")


def test_export_honours_explicit_directory(notifier: RecordingNotifier, tmp_path: Path) -> None:
    controller = _controller(StubRelay(), notifier, tmp_path)
    asyncio.run(controller.submit("a red fox in snow"))

    path = controller.export(tmp_path / "downloads")

    assert path is not None
    assert path.parent == tmp_path / "downloads"


# ----------------------------------------------------------------------
# Controller -> RelayClient -> FastAPI relay, end to end
# ----------------------------------------------------------------------
class StubImageClient:
    model_id = "stub-model"

    def __init__(self, result=IMAGE) -> None:
        self.result = result
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture
def relay_app():
    def install(image_client: StubImageClient) -> None:
        service = RelayService(Settings(ai_gateway_api_key="secret"), lambda _: image_client)
        app.dependency_overrides[get_relay_service] = lambda: service

    yield install
    app.dependency_overrides.clear()


def _run_end_to_end(notifier: RecordingNotifier, prompt: str) -> ControllerState:
    async def run():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport) as http_client:
            relay = RelayClient(
                Settings(relay_url="http://relay.test/generate-image"),
                http_client=http_client,
            )
            controller = _controller(relay, notifier)
            return await controller.submit(prompt)

    return asyncio.run(run())


@pytest.mark.parametrize(
    ("upstream_result", "phase", "message"),
    [
        (IMAGE, Phase.SUCCESS, ("success", "Image generated successfully!")),
        (UpstreamStatusError(429), Phase.FAILED, ("error", "Rate limit exceeded. Please try again later.")),
        (UpstreamStatusError(402), Phase.FAILED, ("error", "Please add credits to your workspace to continue.")),
        (MalformedUpstreamResponseError("No image was generated"), Phase.FAILED, ("error", "Failed to generate image")),
        ("https://cdn.example.com/fox.png", Phase.FAILED, ("error", "Failed to generate image")),
    ],
)
def test_end_to_end_scenarios(relay_app, notifier: RecordingNotifier, upstream_result, phase, message) -> None:
    image_client = StubImageClient(upstream_result)
    relay_app(image_client)

    state = _run_end_to_end(notifier, "a red fox in snow")

    assert state.phase is phase
    assert image_client.prompts == ["a red fox in snow"]
    assert notifier.messages == [message]
    if phase is Phase.SUCCESS:
        assert state.image == IMAGE
    else:
        assert state.image is None


def test_unreachable_relay_reports_generation_failure(notifier: RecordingNotifier) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            relay = RelayClient(
                Settings(relay_url="http://relay.test/generate-image"),
                http_client=http_client,
            )
            return await _controller(relay, notifier).submit("a red fox in snow")

    state = asyncio.run(run())

    assert state.phase is Phase.FAILED
    assert state.busy is False
    assert notifier.messages == [("error", "Failed to generate image")]
