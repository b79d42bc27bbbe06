"""
Test doubles and small async helpers.
"""
import asyncio
import json
from typing import Any, Dict, List, Mapping, Tuple
from blaze_feed.errors import NotConnectedError, TransportConnectError
from blaze_feed.session.transport import Transport


class FakeTransport(Transport):
    """Records what the client sends; tests push signals by hand."""

    def __init__(self, fail_connect: int = 0):
        super().__init__()
        self.fail_connect = fail_connect
        self.sent: List[str] = []
        self.connect_calls: List[Tuple[str, Dict[str, str]]] = []
        self.disconnect_calls = 0
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, address: str, headers: Mapping[str, str]):
        self.connect_calls.append((address, dict(headers)))
        if self.fail_connect:
            self.fail_connect -= 1
            raise TransportConnectError("connection refused")
        self._connected = True
        await self._signal("open")

    async def send(self, frame: str):
        if not self._connected:
            raise NotConnectedError()
        self.sent.append(frame)

    async def disconnect(self):
        if not self._connected:
            raise NotConnectedError()
        self._connected = False
        self.disconnect_calls += 1

    async def feed(self, raw: Any):
        await self._signal("message", raw)

    async def drop(self, code: Any = 1006):
        self._connected = False
        await self._signal("close", code)


class GatedTransport(FakeTransport):
    """connect() blocks until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.connecting = asyncio.Event()

    async def connect(self, address: str, headers: Mapping[str, str]):
        self.connecting.set()
        await self.gate.wait()
        await super().connect(address, headers)


class Recorder:
    """Collects callback payloads per event name."""

    def __init__(self):
        self.events: Dict[str, List[Any]] = {}

    def callback(self, name: str):
        def _record(data):
            self.events.setdefault(name, []).append(data)
        return _record

    def __getitem__(self, name: str) -> List[Any]:
        return self.events.get(name, [])


def data_frame(event_id: str, payload: Any, prefix: str = "42") -> str:
    return f'{prefix}["data",{json.dumps({"id": event_id, "payload": payload})}]'


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
