#
# Copyright 2025 The AirmxLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""AIRMX device protocol client over MQTT.

Devices publish eagleStatus messages on ``airmx/01/0/1/1/<deviceId>`` and
listen for eagleControl messages on ``airmx/01/1/1/0/<deviceId>``. Every
message is a JSON envelope signed with the device key::

    {"cmdId": 100, "name": "eagleControl", "time": 1700000000,
     "token": "...", "data": {...}, "sig": "<md5 hex>"}
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

import aiomqtt

from .config import BrokerConfig, DeviceIdentity
from .state import STUB_COMMAND, ControlCommand, EagleMode, StatusSnapshot

logger = logging.getLogger(__name__)

STATUS_TOPIC = 'airmx/01/0/1/1/{device_id}'
CONTROL_TOPIC = 'airmx/01/1/1/0/{device_id}'

CMD_EAGLE_CONTROL = 100
CMD_EAGLE_STATUS = 210

MESSAGE_NAMES = {
    CMD_EAGLE_CONTROL: 'eagleControl',
    CMD_EAGLE_STATUS: 'eagleStatus',
}

CLIENT_TOKEN = 'airmx-local'


def compute_signature(cmd_id: int, name: str, timestamp: int, token: str, data: dict, key: str) -> str:
    payload = f"{cmd_id}{name}{timestamp}{token}{json.dumps(data, separators=(',', ':'))}{key}"
    return hashlib.md5(payload.encode('utf-8')).hexdigest()


def encode_message(cmd_id: int, data: dict, key: str, timestamp: Optional[int] = None,
                   token: str = CLIENT_TOKEN) -> bytes:
    """Build a signed message envelope."""
    name = MESSAGE_NAMES[cmd_id]
    timestamp = int(time.time()) if timestamp is None else timestamp
    message = {
        'cmdId': cmd_id,
        'name': name,
        'time': timestamp,
        'token': token,
        'data': data,
        'sig': compute_signature(cmd_id, name, timestamp, token, data, key),
    }
    return json.dumps(message, separators=(',', ':')).encode('utf-8')


def decode_message(payload: bytes, key: str) -> dict:
    """Parse and verify a message envelope.

    Raises:
        ValueError: if the payload is not a valid, correctly signed envelope
    """
    try:
        message = json.loads(payload)
    except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"unparsable payload: {e}") from e

    if not isinstance(message, dict) or not isinstance(message.get('data'), dict):
        raise ValueError("message has no data object")

    expected = compute_signature(
        message.get('cmdId'), message.get('name'), message.get('time'),
        message.get('token'), message['data'], key,
    )
    if message.get('sig') != expected:
        raise ValueError("signature mismatch")
    return message


def device_id_from_topic(topic: str) -> Optional[int]:
    try:
        return int(topic.rsplit('/', 1)[-1])
    except ValueError:
        return None


class AirmxClient:
    """Publishes control commands and delivers status updates for AIRMX Pro devices.

    `send_command` and the convenience commands never block and never raise
    on broker trouble. Commands are only queued while connected; a command
    issued during an outage is logged and dropped, as is anything still
    queued when the connection goes down, so stale commands are never
    replayed after a reconnect.
    """

    def __init__(self, broker: BrokerConfig, devices: Iterable[DeviceIdentity], reconnect_interval: float = 5.0):
        self.broker = broker
        self.devices: Dict[int, DeviceIdentity] = {d.id: d for d in devices}
        self.reconnect_interval = reconnect_interval
        self.connected = False
        self.messages_received = 0
        self.messages_sent = 0

        self._last_status: Dict[int, dict] = {}
        self._outbound: asyncio.Queue = asyncio.Queue()
        self._updates: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    # --- commands -----------------------------------------------------------

    def send_command(self, device_id: int, command: ControlCommand):
        """Queue a complete control command for a device (fire-and-forget)."""
        device = self.devices.get(device_id)
        if device is None:
            logger.warning(f"Not sending command to unconfigured device {device_id}")
            return

        if not self.connected:
            logger.warning(f"Not connected to MQTT broker, dropping command for device {device_id}")
            return

        payload = encode_message(CMD_EAGLE_CONTROL, command.to_data(), device.key)
        topic = CONTROL_TOPIC.format(device_id=device_id)
        self._outbound.put_nowait((topic, payload))
        logger.debug(f"Queued control for device {device_id}: {command.to_data()}")

    def turn_on(self, device_id: int):
        self.send_command(device_id, self._baseline(device_id).with_changes(power=1))

    def turn_off(self, device_id: int):
        self.send_command(device_id, self._baseline(device_id).with_changes(power=0))

    def enable_ai(self, device_id: int):
        self.send_command(device_id, self._baseline(device_id).with_changes(power=1, mode=EagleMode.AI))

    def set_throughput(self, device_id: int, cadr: int):
        self.send_command(
            device_id,
            self._baseline(device_id).with_changes(power=1, mode=EagleMode.MANUAL, cadr=int(cadr)),
        )

    def _baseline(self, device_id: int) -> ControlCommand:
        """Command reproducing the device's last reported state, or the stub."""
        data = self._last_status.get(device_id)
        if data is None:
            return STUB_COMMAND
        return ControlCommand.from_status_data(data)

    # --- status -------------------------------------------------------------

    async def updates(self) -> AsyncIterator[Tuple[int, StatusSnapshot]]:
        """Yield (device_id, snapshot) pairs as status messages arrive. Never ends."""
        while True:
            yield await self._updates.get()

    def handle_message(self, topic: str, payload: bytes):
        """Decode one inbound status message and publish it to `updates()`."""
        device_id = device_id_from_topic(topic)
        device = self.devices.get(device_id) if device_id is not None else None
        if device is None:
            logger.debug(f"Ignoring message on {topic}: unknown device")
            return

        try:
            message = decode_message(payload, device.key)
        except ValueError as e:
            logger.warning(f"Dropping message from device {device_id}: {e}")
            return

        if message.get('cmdId') != CMD_EAGLE_STATUS:
            logger.debug(f"Ignoring cmdId {message.get('cmdId')} from device {device_id}")
            return

        data = message['data']
        self.messages_received += 1
        self._last_status[device_id] = data
        self._updates.put_nowait((device_id, StatusSnapshot.from_status_data(data)))

    # --- connection ---------------------------------------------------------

    def _create_client(self) -> aiomqtt.Client:
        kwargs = {}
        if self.broker.tls:
            kwargs['tls_params'] = aiomqtt.TLSParameters()
        return aiomqtt.Client(
            hostname=self.broker.host,
            port=self.broker.port,
            username=self.broker.username,
            password=self.broker.password,
            **kwargs,
        )

    async def start(self):
        """Start the background connection task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.connected = False

    async def _run(self):
        while True:
            try:
                async with self._create_client() as client:
                    self.connected = True
                    logger.info(f"Connected to MQTT broker {self.broker.host}:{self.broker.port}")
                    for device_id in self.devices:
                        await client.subscribe(STATUS_TOPIC.format(device_id=device_id))
                    logger.debug(f"Subscribed to status topics for {len(self.devices)} devices")

                    publisher = asyncio.create_task(self._publish_loop(client))
                    try:
                        async for message in client.messages:
                            self.handle_message(str(message.topic), message.payload)
                    finally:
                        publisher.cancel()
                        await asyncio.gather(publisher, return_exceptions=True)
            except aiomqtt.MqttError as e:
                logger.warning(f"MQTT connection error: {e}; reconnecting in {self.reconnect_interval}s")
            except Exception:
                logger.exception(f"Unexpected error in MQTT connection; reconnecting in {self.reconnect_interval}s")
            finally:
                self.connected = False
                self._drop_pending()
            await asyncio.sleep(self.reconnect_interval)

    def _drop_pending(self):
        """Discard commands queued for a connection that no longer exists."""
        dropped = 0
        while not self._outbound.empty():
            self._outbound.get_nowait()
            dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} unsent command(s) after losing the MQTT connection")

    async def _publish_loop(self, client: aiomqtt.Client):
        while True:
            topic, payload = await self._outbound.get()
            try:
                await client.publish(topic, payload)
                self.messages_sent += 1
            except aiomqtt.MqttError as e:
                logger.warning(f"Failed to publish to {topic}: {e}")
