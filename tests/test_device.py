import asyncio

import pytest

from yeelight_lan import (
    ApplianceError,
    DialError,
    Effect,
    Flow,
    FlowAction,
    FlowTransition,
    PowerMode,
    Yeelight,
)

from fake_bulb import FakeBulb


class StatefulBulb:
    """Responds like an appliance that tracks only its power state."""

    def __init__(self, power="off"):
        self.power = power

    def __call__(self, request):
        method = request["method"]
        params = request["params"]
        if method == "get_prop":
            values = {"power": self.power, "bright": 100, "name": "my_bulb"}
            return {"id": request["id"], "result": [values.get(name, "") for name in params]}
        if method == "set_power":
            self.power = params[0]
        return {"id": request["id"], "result": ["ok"]}


def methods(bulb):
    return [r["method"] for r in bulb.requests]


def params_of(bulb, method):
    return [r["params"] for r in bulb.requests if r["method"] == method]


def test_empty_host_is_rejected():
    with pytest.raises(ValueError):
        Yeelight("")


@pytest.mark.asyncio
async def test_power_commands():
    async with FakeBulb() as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            await device.turn_on()
            await device.turn_on(mode=PowerMode.RGB)
            await device.turn_on(duration=1000)
            await device.turn_off()
            await device.toggle()
    assert params_of(bulb, "set_power") == [
        ["on", "smooth"],
        ["on", "smooth", 500, 2],
        ["on", "smooth", 1000],
        ["off", "smooth"],
    ]
    assert params_of(bulb, "toggle") == [[]]


@pytest.mark.asyncio
async def test_sudden_effect():
    async with FakeBulb() as bulb:
        async with Yeelight("127.0.0.1", bulb.port, effect=Effect.SUDDEN) as device:
            await device.turn_off()
    assert params_of(bulb, "set_power") == [["off", "sudden"]]


@pytest.mark.asyncio
async def test_get_props():
    async with FakeBulb(StatefulBulb(power="on")) as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            props = await device.get_props(["power", "bright", "name"])
    assert props == {"power": "on", "bright": "100", "name": "my_bulb"}
    assert params_of(bulb, "get_prop") == [["power", "bright", "name"]]


@pytest.mark.asyncio
async def test_set_brightness_turns_on_first():
    async with FakeBulb(StatefulBulb(power="off")) as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            await device.set_brightness(50)
            assert methods(bulb) == ["get_prop", "set_power", "set_bright"]
            await device.set_brightness(60, duration=1000)
    assert methods(bulb)[3:] == ["get_prop", "set_bright"]
    assert params_of(bulb, "set_bright") == [[50, "smooth"], [60, "smooth", 1000]]


@pytest.mark.asyncio
@pytest.mark.parametrize("brightness", [0, 101])
async def test_set_brightness_out_of_range_sends_nothing(brightness):
    async with FakeBulb() as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            with pytest.raises(ValueError):
                await device.set_brightness(brightness)
            assert device.connection is None
    assert bulb.requests == []


@pytest.mark.asyncio
async def test_color_commands():
    async with FakeBulb(StatefulBulb(power="on")) as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            await device.set_rgb(255, 0, 0)
            await device.set_hsv(120, 50)
            with pytest.raises(ValueError):
                await device.set_hsv(360, 50)
            with pytest.raises(ValueError):
                await device.set_hsv(120, 101)
            with pytest.raises(ValueError):
                await device.set_rgb(0, 0, 256)
    assert params_of(bulb, "set_rgb") == [[16711680, "smooth"]]
    assert params_of(bulb, "set_hsv") == [[120, 50, "smooth"]]
    assert "set_power" not in methods(bulb)


@pytest.mark.asyncio
async def test_flow_commands():
    flow = Flow([FlowTransition.rgb(1000, 0, 0, 255, brightness=80)], count=2, action=FlowAction.TURN_OFF)
    async with FakeBulb(StatefulBulb(power="on")) as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            await device.start_flow(flow)
            await device.stop_flow()
            await device.set_name("kitchen")
    assert params_of(bulb, "start_cf") == [[2, 2, "1000,1,255,80"]]
    assert params_of(bulb, "stop_cf") == [[]]
    assert params_of(bulb, "set_name") == [["kitchen"]]


@pytest.mark.asyncio
async def test_ensure_on_propagates_appliance_errors():
    def failing(request):
        return {"id": request["id"], "error": {"code": -5000, "message": "general error"}}

    async with FakeBulb(failing) as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            with pytest.raises(ApplianceError):
                await device.set_rgb(1, 2, 3)
    assert methods(bulb) == ["get_prop"]


@pytest.mark.asyncio
async def test_listen_then_reconnect_after_cancel():
    async with FakeBulb() as bulb:
        async with Yeelight("127.0.0.1", bulb.port) as device:
            stream, cancel_handle = await device.listen()
            first_connection = device.connection
            await bulb.send({"method": "props", "params": {"power": "on"}})
            notification = await asyncio.wait_for(stream.receive(), 2.0)
            assert notification.params == {"power": "on"}

            await cancel_handle.cancel()
            assert await stream.receive() is None

            result = await device.toggle()
            assert result.result == ["ok"]
            assert device.connection is not first_connection


@pytest.mark.asyncio
async def test_connect_failure_raises_dial_error():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    async with Yeelight("127.0.0.1", port, connect_timeout_secs=1.0) as device:
        with pytest.raises(DialError):
            await device.toggle()


@pytest.mark.asyncio
async def test_cancel_right_after_listen():
    async with FakeBulb() as bulb:
        device = Yeelight("127.0.0.1", bulb.port)
        stream, cancel_handle = await device.listen()
        connection = device.connection
        await asyncio.wait_for(cancel_handle.cancel(), 2.0)
        assert cancel_handle.cancelled
        assert connection.final_result.done()
        assert await stream.receive() is None
        await device.close()
