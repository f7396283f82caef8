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

"""AIRMX Pro accessory: maps HomeKit characteristics onto device status and commands.

Reads are pure projections of the cached StatusSnapshot. A write becomes one of
two things depending on whether the device has reported a status yet:

- status known: a direct command (on/off, AI mode, set cadr) through the
  protocol client, which fills the remaining fields from the device state;
- status unknown: a complete ControlCommand built from the stub command with
  only the written field(s) overridden.

The decision is taken again on every write. Writes never touch the cache;
the cached status only changes when the device reports back.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from .homekit_uuids import Active, CurrentAirPurifierState, FilterChangeIndication, TargetAirPurifierState
from .state import STUB_COMMAND, ControlCommand, EagleMode, StatusCache, StatusSnapshot

logger = logging.getLogger(__name__)

MANUFACTURER = 'Beijing Miaoxin technology Co., Ltd'
MODEL = 'AIRMX Pro'
FILTER_CHANGE_THRESHOLD = 80


@dataclass(frozen=True)
class DirectCommand:
    """A per-attribute protocol command, only valid once the device status is known."""

    action: str  # 'on', 'off', 'ai' or 'cadr'
    cadr: Optional[int] = None


WriteResult = Union[DirectCommand, ControlCommand]


# --- reads --------------------------------------------------------------------

def read_active(status: Optional[StatusSnapshot]) -> int:
    if status is not None and status.power == 1:
        return Active.ACTIVE
    return Active.INACTIVE


def read_current_purifier_state(status: Optional[StatusSnapshot]) -> int:
    if status is not None and status.power == 1:
        return CurrentAirPurifierState.PURIFYING_AIR
    return CurrentAirPurifierState.INACTIVE


def read_target_purifier_state(status: Optional[StatusSnapshot]) -> int:
    if status is not None and status.mode == EagleMode.AI:
        return TargetAirPurifierState.AUTO
    return TargetAirPurifierState.MANUAL


def read_rotation_speed(status: Optional[StatusSnapshot]) -> int:
    if status is None:
        return 0
    return status.cadr or 0


def read_filter_change_indication(status: Optional[StatusSnapshot]) -> int:
    if status is None:
        return FilterChangeIndication.FILTER_OK
    if status.max_filter_percent > FILTER_CHANGE_THRESHOLD:
        return FilterChangeIndication.CHANGE_FILTER
    return FilterChangeIndication.FILTER_OK


def read_filter_life_level(status: Optional[StatusSnapshot]) -> int:
    if status is None:
        return 100
    return 100 - status.max_filter_percent


def read_firmware_revision(status: Optional[StatusSnapshot]) -> str:
    if status is None or not status.version:
        return 'N/A'
    return status.version


# --- writes -------------------------------------------------------------------

def compose_active(status: Optional[StatusSnapshot], value: Any) -> WriteResult:
    is_on = int(value) == Active.ACTIVE
    if status is None:
        return STUB_COMMAND.with_changes(power=1 if is_on else 0)
    return DirectCommand('on' if is_on else 'off')


def compose_target_purifier_state(status: Optional[StatusSnapshot], value: Any) -> WriteResult:
    is_auto = int(value) == TargetAirPurifierState.AUTO
    if status is None:
        return STUB_COMMAND.with_changes(power=1, mode=EagleMode.AI if is_auto else EagleMode.MANUAL)
    if is_auto:
        return DirectCommand('ai')
    # Back to manual keeps the current fan speed
    cadr = status.cadr if status.cadr is not None else STUB_COMMAND.cadr
    return DirectCommand('cadr', cadr)


def compose_rotation_speed(status: Optional[StatusSnapshot], value: Any) -> WriteResult:
    cadr = int(round(float(value)))
    if status is None:
        return STUB_COMMAND.with_changes(power=1, mode=EagleMode.MANUAL, cadr=cadr)
    return DirectCommand('cadr', cadr)


class Capability(NamedTuple):
    service: str
    read: Callable[[Optional[StatusSnapshot]], Any]
    compose: Optional[Callable[[Optional[StatusSnapshot], Any], WriteResult]] = None


CAPABILITIES: Dict[str, Capability] = {
    'FirmwareRevision': Capability('AccessoryInformation', read_firmware_revision),
    'Active': Capability('AirPurifier', read_active, compose_active),
    'CurrentAirPurifierState': Capability('AirPurifier', read_current_purifier_state),
    'TargetAirPurifierState': Capability('AirPurifier', read_target_purifier_state, compose_target_purifier_state),
    'RotationSpeed': Capability('AirPurifier', read_rotation_speed, compose_rotation_speed),
    'FilterChangeIndication': Capability('FilterMaintenance', read_filter_change_indication),
    'FilterLifeLevel': Capability('FilterMaintenance', read_filter_life_level),
}


class AirmxProAccessory:
    """Binds one device's status cache to a host accessory's characteristics."""

    def __init__(self, device_id: int, accessory, client, cache: Optional[StatusCache] = None):
        self.device_id = device_id
        self.accessory = accessory
        self.client = client
        self.cache = cache if cache is not None else StatusCache()
        self._register_services()

    @property
    def status(self) -> Optional[StatusSnapshot]:
        return self.cache.snapshot

    def update_status(self, snapshot: StatusSnapshot):
        self.cache.replace(snapshot)

    def read(self, name: str) -> Any:
        return CAPABILITIES[name].read(self.cache.snapshot)

    def write(self, name: str, value: Any):
        capability = CAPABILITIES[name]
        if capability.compose is None:
            raise ValueError(f"{name} is read-only")

        result = capability.compose(self.cache.snapshot, value)
        logger.info(f"Device {self.device_id}: set {name}={value!r} -> {result}")
        self._dispatch(result)

    def _dispatch(self, result: WriteResult):
        if isinstance(result, ControlCommand):
            self.client.send_command(self.device_id, result)
        elif result.action == 'on':
            self.client.turn_on(self.device_id)
        elif result.action == 'off':
            self.client.turn_off(self.device_id)
        elif result.action == 'ai':
            self.client.enable_ai(self.device_id)
        elif result.action == 'cadr':
            self.client.set_throughput(self.device_id, result.cadr)
        else:
            raise ValueError(f"Unknown direct command: {result.action}")

    def _register_services(self):
        information = self.accessory.get_service('AccessoryInformation') or \
            self.accessory.add_service('AccessoryInformation')
        information.set_characteristic('Manufacturer', MANUFACTURER) \
            .set_characteristic('Model', MODEL) \
            .set_characteristic('SerialNumber', 'N/A')

        purifier = self.accessory.get_service('AirPurifier') or self.accessory.add_service('AirPurifier')
        purifier.set_characteristic('Name', MODEL)

        if self.accessory.get_service('FilterMaintenance') is None:
            self.accessory.add_service('FilterMaintenance')

        for name, capability in CAPABILITIES.items():
            char = self.accessory.get_service(capability.service).get_characteristic(name)
            char.on_get(lambda name=name: self.read(name))
            if capability.compose is not None:
                char.on_set(lambda value, name=name: self.write(name, value))
