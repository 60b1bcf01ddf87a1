"""Tests for the REST API handlers."""

import asyncio
import os
import sys

from aiohttp import test_utils

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.api.server import SatelaAPI, create_api
from satela.config_loader import SatelaConfig
from satela.event_bus import EventBus, EventType
from satela.scheduler import ManualScheduler
from satela.service import SatelaService
from satela.transcript import ManualTranscriptSource
from satela.tts.base import LogSynthesizer


def make_api(available=True):
    service = SatelaService(
        SatelaConfig(transcript_source="manual"),
        source=ManualTranscriptSource(available=available),
        synthesizer=LogSynthesizer(),
        scheduler=ManualScheduler(),
        event_bus=EventBus(),
        background=False,
    )
    return create_api(service), service


def run_with_client(api, scenario):
    async def runner():
        async with test_utils.TestClient(test_utils.TestServer(api.create_app())) as client:
            return await scenario(client)
    return asyncio.run(runner())


def test_api_server_has_required_methods():
    required = [
        "_handle_status",
        "_handle_history",
        "_handle_get_config",
        "_handle_session_start",
        "_handle_session_stop",
        "_handle_transcript",
        "_handle_ws_events",
        "_handle_index",
    ]
    for method in required:
        assert hasattr(SatelaAPI, method), f"Missing method: {method}"


def test_status_and_config():
    api, _ = make_api()

    async def scenario(client):
        status = await (await client.get("/api/status")).json()
        config = await (await client.get("/api/config")).json()
        return status, config

    status, config = run_with_client(api, scenario)
    assert status["state"] == "idle"
    assert status["session_open"] is False
    assert "uptime_seconds" in status
    assert config["wake_word"] == "сатела"
    assert config["no_speech_policy"] == "keep_active"


def test_command_round_trip_over_http():
    api, service = make_api()

    async def scenario(client):
        resp = await client.post("/api/session/start")
        assert resp.status == 200
        resp = await client.post("/api/transcript", json={"text": "Сатела"})
        assert resp.status == 202
        resp = await client.post("/api/transcript", json={"text": "который час", "final": True})
        assert resp.status == 202
        thinking = await (await client.get("/api/status")).json()

        service.engine.scheduler.advance(1.0)
        history = await (await client.get("/api/history")).json()

        resp = await client.post("/api/session/stop")
        stopped = await (await client.get("/api/status")).json()
        return thinking, history, resp.status, stopped

    thinking, history, stop_status, stopped = run_with_client(api, scenario)
    assert thinking["state"] == "thinking"
    assert history["commands"][0]["text"] == "который час"
    assert history["commands"][0]["category"] == "info"
    assert stop_status == 200
    assert stopped["state"] == "idle"
    assert stopped["session_open"] is False


def test_history_limit():
    api, service = make_api()
    service.start_session()
    service.submit_final_transcript("сатела")
    for text in ("какая погода", "спасибо"):
        service.submit_final_transcript(text)
        service.engine.scheduler.advance(3.0)

    async def scenario(client):
        limited = await (await client.get("/api/history?limit=1")).json()
        bad = await client.get("/api/history?limit=abc")
        return limited, bad.status

    limited, bad_status = run_with_client(api, scenario)
    assert [c["text"] for c in limited["commands"]] == ["спасибо"]
    assert bad_status == 400


def test_transcript_validation():
    api, _ = make_api()

    async def scenario(client):
        invalid = await client.post(
            "/api/transcript", data="not json", headers={"Content-Type": "application/json"}
        )
        missing = await client.post("/api/transcript", json={"final": True})
        not_object = await client.post("/api/transcript", json=["сатела"])
        return invalid.status, missing.status, not_object.status

    assert run_with_client(api, scenario) == (400, 400, 400)


def test_session_start_unsupported():
    api, _ = make_api(available=False)

    async def scenario(client):
        resp = await client.post("/api/session/start")
        return resp.status, await resp.json()

    status, body = run_with_client(api, scenario)
    assert status == 503
    assert "error" in body


def test_index_page():
    api, _ = make_api()

    async def scenario(client):
        resp = await client.get("/")
        return resp.status, await resp.text()

    status, text = run_with_client(api, scenario)
    assert status == 200
    assert "Satela Voice" in text


def test_websocket_events():
    api, service = make_api()

    async def scenario(client):
        api._loop = asyncio.get_running_loop()
        api._setup_event_forwarding()
        async with client.ws_connect("/api/events") as ws:
            hello = await ws.receive_json()
            await ws.send_json({"type": "status"})
            status = await ws.receive_json()
            service.event_bus.publish(EventType.DEACTIVATED, {"reason": "test"}, source="test", wait=True)
            forwarded = await asyncio.wait_for(ws.receive_json(), 2.0)
        return hello, status, forwarded

    hello, status, forwarded = run_with_client(api, scenario)
    assert hello["event"] == "CONNECTED"
    assert hello["data"]["state"] == "idle"
    assert status["event"] == "STATUS"
    assert forwarded["event"] == "DEACTIVATED"
    assert forwarded["data"] == {"reason": "test"}
    assert forwarded["source"] == "test"


def test_websocket_keeps_event_order():
    api, service = make_api()
    states = ["listening", "thinking", "speaking", "listening", "idle"] * 10

    async def scenario(client):
        api._loop = asyncio.get_running_loop()
        api._setup_event_forwarding()
        service.event_bus.start()
        try:
            async with client.ws_connect("/api/events") as ws:
                await ws.receive_json()
                for n, state in enumerate(states):
                    service.event_bus.publish(EventType.STATE_CHANGED, {"n": n, "new_state": state})
                received = []
                while len(received) < len(states):
                    message = await asyncio.wait_for(ws.receive_json(), 2.0)
                    received.append(message["data"]["n"])
            return received
        finally:
            service.event_bus.stop()

    assert run_with_client(api, scenario) == list(range(len(states)))
