import asyncio
import json
import os
import signal

import pytest

from yeelight_lan import __version__
from yeelight_lan.__main__ import arun, parse_param

from fake_bulb import FakeBulb


def test_parse_param():
    assert parse_param("50") == 50
    assert parse_param('["a", 1]') == ["a", 1]
    assert parse_param("smooth") == "smooth"
    assert parse_param('"500"') == "500"


@pytest.mark.asyncio
async def test_version(capsys):
    rc = await arun(["version"])
    assert rc == 0
    assert capsys.readouterr().out.strip() == __version__


@pytest.mark.asyncio
async def test_unknown_command_is_usage_error(capsys):
    rc = await arun(["no-such-command"])
    assert rc == 2


@pytest.mark.asyncio
async def test_command_prints_result(capsys):
    async with FakeBulb() as bulb:
        rc = await arun(["command", "--host", "127.0.0.1", "--port", str(bulb.port), "set_bright", "50", "smooth"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out) == {"id": 1, "result": ["ok"]}
    assert bulb.requests[0]["params"] == [50, "smooth"]


@pytest.mark.asyncio
async def test_host_from_environment(monkeypatch):
    async with FakeBulb() as bulb:
        monkeypatch.setenv("YEELIGHT_HOST", "127.0.0.1")
        rc = await arun(["on", "--port", str(bulb.port)])
    assert rc == 0
    assert bulb.requests[0]["method"] == "set_power"
    assert bulb.requests[0]["params"] == ["on", "smooth"]


@pytest.mark.asyncio
async def test_missing_host_is_an_error(monkeypatch, capsys):
    monkeypatch.delenv("YEELIGHT_HOST", raising=False)
    rc = await arun(["off"])
    assert rc == 1
    assert "YEELIGHT_HOST" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_appliance_error_exit_code(capsys):
    def failing(request):
        return {"id": request["id"], "error": {"code": -1, "message": "unsupported method"}}

    async with FakeBulb(failing) as bulb:
        rc = await arun(["command", "--host", "127.0.0.1", "--port", str(bulb.port), "frobnicate"])
    assert rc == 1
    assert "unsupported method" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_listen_prints_notifications(capsys):
    async with FakeBulb() as bulb:
        task = asyncio.create_task(arun(["listen", "--host", "127.0.0.1", "--port", str(bulb.port), "-n", "1"]))
        await bulb.send({"method": "props", "params": {"power": "off"}})
        rc = await asyncio.wait_for(task, 2.0)
    assert rc == 0
    assert json.loads(capsys.readouterr().out) == {"method": "props", "params": {"power": "off"}}


@pytest.mark.asyncio
async def test_listen_stops_on_sigint(capsys):
    async with FakeBulb() as bulb:
        task = asyncio.create_task(arun(["listen", "--host", "127.0.0.1", "--port", str(bulb.port)]))
        await bulb.send({"method": "props", "params": {"power": "on"}})
        # Once a notification is printed, the signal handlers are installed
        out = ""
        for _ in range(200):
            out += capsys.readouterr().out
            if out != "":
                break
            await asyncio.sleep(0.01)
        assert out != ""
        os.kill(os.getpid(), signal.SIGINT)
        rc = await asyncio.wait_for(task, 2.0)
    assert rc == 0
    assert json.loads(out) == {"method": "props", "params": {"power": "on"}}
