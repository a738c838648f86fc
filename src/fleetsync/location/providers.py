"""Platform position capabilities.

A provider offers a continuous ``watch``/``cancel`` pair plus a one-shot
``get_current_fix``, modeled on browser geolocation. Callbacks are always
invoked on the asyncio loop, never on a library thread.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast

import aiohttp
import paho.mqtt.client as mqtt
from pydantic import ValidationError

from fleetsync._scheduler import PeriodicTask
from fleetsync.exceptions import AcquisitionFailure, LocationAcquisitionError
from fleetsync.models.fix import Fix
from fleetsync.models.gps import GpsReading

_logger = logging.getLogger(__name__)

FixCallback = Callable[[Fix], None]
ErrorCallback = Callable[[LocationAcquisitionError], None]

_watch_ids = itertools.count(1)


@dataclass(frozen=True)
class WatchHandle:
    """Token returned by :meth:`PositionProvider.watch`."""

    watch_id: int


class PositionProvider(Protocol):
    """Structural interface for position capabilities.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementations concrete.
    """

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> WatchHandle: ...

    def cancel(self, handle: WatchHandle) -> None: ...

    async def get_current_fix(self) -> Fix: ...


def parse_position_payload(payload: Any) -> Fix:
    """Parse a JSON-decoded position payload into a fix.

    Raises
    ------
    LocationAcquisitionError
        If the payload carries no usable coordinate.
    """
    if not isinstance(payload, dict):
        raise LocationAcquisitionError("Position payload is not an object")
    try:
        reading = GpsReading.model_validate(payload)
    except ValidationError as exc:
        raise LocationAcquisitionError(f"Invalid position payload: {exc.error_count()} errors") from exc
    fix = reading.to_fix()
    if fix is None:
        raise LocationAcquisitionError("Position payload has no usable coordinate")
    return fix


class UnavailablePositionProvider:
    """A platform without location capability.

    Every watch reports ``unavailable`` on the next loop iteration.
    """

    def __init__(self, message: str = "Geolocation is not supported on this platform") -> None:
        self._message = message
        self._active: set[int] = set()

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> WatchHandle:
        handle = WatchHandle(next(_watch_ids))
        self._active.add(handle.watch_id)

        def _report() -> None:
            if handle.watch_id in self._active:
                on_error(LocationAcquisitionError(self._message, reason=AcquisitionFailure.UNAVAILABLE))

        asyncio.get_running_loop().call_soon(_report)
        return handle

    def cancel(self, handle: WatchHandle) -> None:
        self._active.discard(handle.watch_id)

    async def get_current_fix(self) -> Fix:
        raise LocationAcquisitionError(self._message, reason=AcquisitionFailure.UNAVAILABLE)


class HttpPositionProvider:
    """Poll an HTTP endpoint returning the device position as JSON.

    Usage::

        async with HttpPositionProvider(url) as provider:
            fix = await provider.get_current_fix()
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        interval: float = 1.0,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._external_session = session is not None
        self._http = session
        self._interval = interval
        self._timeout = timeout
        self._watches: dict[int, PeriodicTask] = {}

    async def __aenter__(self) -> HttpPositionProvider:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        for task in self._watches.values():
            task.cancel()
        self._watches.clear()
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    async def get_current_fix(self) -> Fix:
        if self._http is None:
            self._http = aiohttp.ClientSession()

        _logger.debug("GET %s", self._url)
        try:
            async with self._http.get(self._url, timeout=aiohttp.ClientTimeout(total=self._timeout)) as resp:
                if resp.status in (401, 403):
                    raise LocationAcquisitionError(
                        f"HTTP {resp.status} from position endpoint",
                        reason=AcquisitionFailure.PERMISSION_DENIED,
                    )
                if resp.status != 200:
                    raise LocationAcquisitionError(f"HTTP {resp.status} from position endpoint")
                text = await resp.text()
        except LocationAcquisitionError:
            raise
        except TimeoutError as exc:
            raise LocationAcquisitionError("Position request timed out", reason=AcquisitionFailure.TIMEOUT) from exc
        except aiohttp.ClientError as exc:
            raise LocationAcquisitionError(f"Position request failed: {exc}") from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LocationAcquisitionError(f"Invalid JSON from position endpoint: {text[:64]}") from exc
        return parse_position_payload(payload)

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> WatchHandle:
        handle = WatchHandle(next(_watch_ids))

        async def _poll() -> None:
            try:
                fix = await self.get_current_fix()
            except LocationAcquisitionError as exc:
                if handle.watch_id in self._watches:
                    on_error(exc)
                return
            if handle.watch_id in self._watches:
                on_fix(fix)

        task = PeriodicTask(self._interval, _poll, name=f"http-position-{handle.watch_id}", immediate=True)
        self._watches[handle.watch_id] = task
        task.start()
        return handle

    def cancel(self, handle: WatchHandle) -> None:
        task = self._watches.pop(handle.watch_id, None)
        if task is not None:
            task.cancel()


@dataclass
class _MqttWatch:
    on_fix: FixCallback
    on_error: ErrorCallback


class MqttPositionProvider:
    """Threaded paho-mqtt subscriber that pushes fixes onto an asyncio loop.

    The MQTT network loop runs only while at least one watch is active.
    Payloads are JSON objects understood by :class:`GpsReading`; when
    *entity_id* is set, readings addressed to other entities are skipped.
    """

    def __init__(
        self,
        host: str,
        *,
        port: int = 1883,
        topic: str = "fleet/position",
        keepalive: int = 60,
        entity_id: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic = topic
        self._keepalive = keepalive
        self._entity_id = entity_id
        self._username = username
        self._password = password
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: Any = None
        self._watches: dict[int, _MqttWatch] = {}

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def _default_client(self) -> mqtt.Client:
        return mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )

    def _start_client(self) -> None:
        self._loop = asyncio.get_running_loop()
        client = self._client_factory()
        client.enable_logger(_logger)
        if self._username is not None:
            client.username_pw_set(self._username, self._password)

        def on_connect(c: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            if reason_code.value != 0:
                _logger.warning("MQTT connect failed: %s", reason_code)
                reason = AcquisitionFailure.UNAVAILABLE
                if reason_code.value in (134, 135):
                    reason = AcquisitionFailure.PERMISSION_DENIED
                self._post_error(LocationAcquisitionError(f"MQTT connect failed: {reason_code}", reason=reason))
                return
            _logger.debug("MQTT connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=0)

        def on_message(_c: Any, _userdata: Any, msg: Any) -> None:
            self.handle_payload(msg.payload)

        def on_disconnect(_c: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            if self._client is not None:
                _logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect_async(self._host, self._port, keepalive=self._keepalive)
            client.loop_start()
        except OSError as exc:
            _logger.debug("MQTT start failed", exc_info=True)
            self._post_error(LocationAcquisitionError(f"MQTT broker unreachable: {exc}"))
            return
        self._client = client
        _logger.debug("MQTT network loop started host=%s port=%s", self._host, self._port)

    def _stop_client(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")

    def handle_payload(self, payload: bytes) -> None:
        """Parse one message; called on the paho network thread."""
        try:
            decoded = json.loads(payload.decode("utf-8"))
            if isinstance(decoded, dict) and self._entity_id is not None:
                reading_id = GpsReading.model_validate(decoded).entity_id
                if reading_id is not None and reading_id != self._entity_id:
                    return
            fix = parse_position_payload(decoded)
        except (UnicodeDecodeError, json.JSONDecodeError, LocationAcquisitionError, ValidationError):
            _logger.debug("MQTT payload parse failure", exc_info=True)
            return
        loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(self._dispatch_fix, fix)

    def _post_error(self, error: LocationAcquisitionError) -> None:
        loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(self._dispatch_error, error)

    def _dispatch_fix(self, fix: Fix) -> None:
        for watch in list(self._watches.values()):
            watch.on_fix(fix)

    def _dispatch_error(self, error: LocationAcquisitionError) -> None:
        for watch in list(self._watches.values()):
            watch.on_error(error)

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> WatchHandle:
        handle = WatchHandle(next(_watch_ids))
        self._watches[handle.watch_id] = _MqttWatch(on_fix=on_fix, on_error=on_error)
        if self._client is None:
            self._start_client()
        return handle

    def cancel(self, handle: WatchHandle) -> None:
        if self._watches.pop(handle.watch_id, None) is None:
            return
        if not self._watches:
            self._stop_client()

    async def get_current_fix(self) -> Fix:
        future: asyncio.Future[Fix] = asyncio.get_running_loop().create_future()

        def _on_fix(fix: Fix) -> None:
            if not future.done():
                future.set_result(fix)

        def _on_error(error: LocationAcquisitionError) -> None:
            if not future.done():
                future.set_exception(error)

        handle = self.watch(_on_fix, _on_error)
        try:
            return await asyncio.wait_for(future, self._timeout)
        except TimeoutError as exc:
            raise LocationAcquisitionError("No MQTT position within timeout", reason=AcquisitionFailure.TIMEOUT) from exc
        finally:
            self.cancel(handle)
