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

"""AIRMX platform: device discovery, accessory lifecycle and status routing."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .accessory import MODEL, AirmxProAccessory
from .config import BridgeConfig, DeviceIdentity
from .host import AccessoryHost, PlatformAccessory
from .state import StatusSnapshot

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    identity: DeviceIdentity
    accessory: PlatformAccessory
    sync: AirmxProAccessory


class AccessoryRegistry:
    """Accessory uuid -> registry entry.

    Membership only changes during discovery and pruning. Accessories handed
    over from the host cache wait in `cached` until discovery claims them;
    telemetry routing only ever sees fully constructed entries.
    """

    def __init__(self):
        self.entries: Dict[str, RegistryEntry] = {}
        self.cached: Dict[str, PlatformAccessory] = {}

    def get(self, uuid: str) -> Optional[RegistryEntry]:
        return self.entries.get(uuid)

    def publish(self, uuid: str, entry: RegistryEntry):
        self.cached.pop(uuid, None)
        self.entries[uuid] = entry

    def remove(self, uuid: str):
        self.entries.pop(uuid, None)
        self.cached.pop(uuid, None)

    def known_accessories(self) -> Dict[str, PlatformAccessory]:
        accessories = dict(self.cached)
        accessories.update({uuid: entry.accessory for uuid, entry in self.entries.items()})
        return accessories

    def __len__(self):
        return len(self.entries)

    def __contains__(self, uuid):
        return uuid in self.entries


class AirmxPlatform:
    """Keeps the host's accessories in line with the configured AIRMX devices."""

    def __init__(self, config: BridgeConfig, host: AccessoryHost, client, registry: Optional[AccessoryRegistry] = None):
        self.config = config
        self.host = host
        self.client = client
        self.registry = registry if registry is not None else AccessoryRegistry()
        self.discovered_uuids: Set[str] = set()
        host.register_platform(self)

    def uuid_for(self, device_id: int) -> str:
        return self.host.generate_uuid(str(device_id))

    # --- host lifecycle -----------------------------------------------------

    def configure_accessory(self, accessory: PlatformAccessory):
        """Called by the host for each accessory restored from its cache."""
        device = accessory.context.get('device', {})
        logger.info(f"Loading accessory from cache: {device.get('id', accessory.uuid)}")
        self.registry.cached[accessory.uuid] = accessory

    def did_finish_launching(self):
        self.discover(self.config.devices)
        self.prune_obsolete()

    # --- discovery ----------------------------------------------------------

    def discover(self, devices: Iterable[DeviceIdentity]):
        """Restore or register an accessory for every configured device."""
        self.discovered_uuids = set()

        for device in devices:
            uuid = self.uuid_for(device.id)
            existing = self.registry.known_accessories().get(uuid)

            if existing is not None:
                self._restore_accessory(device, existing)
            else:
                self._register_accessory(device, uuid)

            self.discovered_uuids.add(uuid)

    def prune_obsolete(self):
        """Unregister every known accessory not seen in the last discovery pass."""
        obsolete: List[PlatformAccessory] = [
            accessory for uuid, accessory in self.registry.known_accessories().items()
            if uuid not in self.discovered_uuids
        ]
        for accessory in obsolete:
            device = accessory.context.get('device', {})
            logger.info(f"Removing obsolete accessory: {device.get('id', accessory.uuid)}")
            self.registry.remove(accessory.uuid)

        if obsolete:
            self.host.unregister_platform_accessories(obsolete)

    def _restore_accessory(self, device: DeviceIdentity, accessory: PlatformAccessory):
        logger.info(f"Restoring existing accessory from cache: {device.id}")
        if accessory.context.get('device') != device.to_dict():
            accessory.context['device'] = device.to_dict()
            self.host.update_platform_accessories([accessory])

        # A restored entry keeps the status the device already reported
        previous = self.registry.get(accessory.uuid)
        sync = AirmxProAccessory(device.id, accessory, self.client,
                                 cache=previous.sync.cache if previous else None)
        self.registry.publish(accessory.uuid, RegistryEntry(device, accessory, sync))

    def _register_accessory(self, device: DeviceIdentity, uuid: str):
        logger.info(f"Adding new accessory: {device.id}")
        accessory = PlatformAccessory(MODEL, uuid, context={'device': device.to_dict()})
        sync = AirmxProAccessory(device.id, accessory, self.client)
        self.registry.publish(uuid, RegistryEntry(device, accessory, sync))
        self.host.register_platform_accessories([accessory])

    # --- telemetry ----------------------------------------------------------

    def on_telemetry(self, device_id: int, status: StatusSnapshot) -> bool:
        """Route a status update to the device's accessory. Unknown devices are dropped."""
        logger.info(f"Receive a status update from device: {device_id}")
        entry = self.registry.get(self.uuid_for(device_id))
        if entry is None:
            logger.debug(f"No accessory registered for device {device_id}, dropping update")
            return False

        logger.debug(f"Update the current status to device: {device_id}")
        entry.sync.update_status(status)
        return True

    async def consume_telemetry(self):
        """Drain the client's update stream until cancelled."""
        async for device_id, status in self.client.updates():
            self.on_telemetry(device_id, status)
