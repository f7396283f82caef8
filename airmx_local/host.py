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

"""Accessory host: accessory persistence, lifecycle callbacks and characteristic dispatch."""

import logging
import uuid as _uuid
from typing import Any, Callable, Dict, List, Optional

from .cache import AccessoryCacheSQLite
from .homekit_uuids import CHARACTERISTIC_PROPS, CHARACTERISTIC_UUIDS, SERVICE_UUIDS

logger = logging.getLogger(__name__)

# Fixed namespace so the same device id always maps to the same accessory uuid
ACCESSORY_NAMESPACE = _uuid.UUID('8a4f5e1c-3b7d-5f02-9c6e-a1b2c3d4e5f6')


class ReadOnlyCharacteristic(Exception):
    """Raised when writing a characteristic that has no set handler and is not writable."""


class Characteristic:
    """A single HomeKit characteristic with optional get/set handlers."""

    def __init__(self, name: str, value: Any = None):
        self.name = name
        self.type = CHARACTERISTIC_UUIDS[name]
        self.props = CHARACTERISTIC_PROPS.get(name, {})
        self.value = value
        self._get_handler: Optional[Callable[[], Any]] = None
        self._set_handler: Optional[Callable[[Any], None]] = None

    def on_get(self, handler: Callable[[], Any]) -> 'Characteristic':
        self._get_handler = handler
        return self

    def on_set(self, handler: Callable[[Any], None]) -> 'Characteristic':
        self._set_handler = handler
        return self

    @property
    def writable(self) -> bool:
        return self._set_handler is not None

    @property
    def perms(self) -> List[str]:
        perms = ['pr', 'ev']
        if self.writable:
            perms.append('pw')
        return perms

    def get_value(self) -> Any:
        if self._get_handler is not None:
            return self._get_handler()
        return self.value

    def set_value(self, value: Any):
        if self._set_handler is None:
            raise ReadOnlyCharacteristic(self.name)
        self._set_handler(value)


class Service:
    """A HomeKit service grouping characteristics."""

    def __init__(self, name: str):
        self.name = name
        self.type = SERVICE_UUIDS[name]
        self.characteristics: Dict[str, Characteristic] = {}

    def get_characteristic(self, name: str) -> Characteristic:
        """Return the named characteristic, creating it on first use."""
        if name not in self.characteristics:
            self.characteristics[name] = Characteristic(name)
        return self.characteristics[name]

    def set_characteristic(self, name: str, value: Any) -> 'Service':
        self.get_characteristic(name).value = value
        return self


class PlatformAccessory:
    """An accessory owned by the host, identified by a stable uuid."""

    def __init__(self, display_name: str, uuid: str, context: Optional[Dict[str, Any]] = None):
        self.display_name = display_name
        self.uuid = uuid
        self.context: Dict[str, Any] = context if context is not None else {}
        self.services: Dict[str, Service] = {}
        self.add_service('AccessoryInformation')

    def get_service(self, name: str) -> Optional[Service]:
        return self.services.get(name)

    def add_service(self, name: str) -> Service:
        service = Service(name)
        self.services[name] = service
        return service

    def find_characteristic(self, name: str) -> Optional[Characteristic]:
        for service in self.services.values():
            if name in service.characteristics:
                return service.characteristics[name]
        return None

    def to_dict(self, aid: int = 1) -> Dict[str, Any]:
        """Serialize in the HAP accessory JSON shape, reading current values."""
        services = []
        iid = 1
        for service in self.services.values():
            service_iid = iid
            iid += 1
            characteristics = []
            for char in service.characteristics.values():
                characteristics.append({
                    'type': char.type,
                    'iid': iid,
                    'value': char.get_value(),
                    'perms': char.perms,
                    **char.props,
                })
                iid += 1
            services.append({
                'type': service.type,
                'iid': service_iid,
                'characteristics': characteristics,
            })
        return {
            'aid': aid,
            'uuid': self.uuid,
            'display_name': self.display_name,
            'services': services,
        }


class AccessoryHost:
    """Hosts platform accessories and dispatches characteristic reads and writes.

    Accessories registered by the platform are persisted in the accessory
    cache and handed back to the platform through `configure_accessory` on
    the next start, before `did_finish_launching` is signalled.
    """

    def __init__(self, cache: AccessoryCacheSQLite):
        self.cache = cache
        self.accessories: Dict[str, PlatformAccessory] = {}
        self.platform = None
        self.launched = False

    @staticmethod
    def generate_uuid(data: str) -> str:
        """Derive a stable accessory uuid from arbitrary data."""
        return str(_uuid.uuid5(ACCESSORY_NAMESPACE, data))

    def register_platform(self, platform):
        self.platform = platform

    def load_cached(self):
        """Restore cached accessories and offer each one to the platform."""
        for accessory in self.cache.load():
            self.accessories[accessory.uuid] = accessory
            if self.platform is not None:
                self.platform.configure_accessory(accessory)

    def finish_launching(self):
        """Signal the platform that cached accessories have all been restored."""
        if self.launched:
            logger.warning("finish_launching called more than once, ignoring")
            return
        self.launched = True
        if self.platform is not None:
            self.platform.did_finish_launching()

    def register_platform_accessories(self, accessories: List[PlatformAccessory]):
        for accessory in accessories:
            self.accessories[accessory.uuid] = accessory
            self.cache.save(accessory)
            logger.debug(f"Registered accessory {accessory.uuid} ({accessory.display_name})")

    def update_platform_accessories(self, accessories: List[PlatformAccessory]):
        """Persist context changes of already registered accessories."""
        for accessory in accessories:
            self.cache.save(accessory)

    def unregister_platform_accessories(self, accessories: List[PlatformAccessory]):
        for accessory in accessories:
            self.accessories.pop(accessory.uuid, None)
            self.cache.delete(accessory.uuid)
            logger.debug(f"Unregistered accessory {accessory.uuid} ({accessory.display_name})")

    def get_accessory(self, uuid: str) -> Optional[PlatformAccessory]:
        return self.accessories.get(uuid)

    def list_accessories(self) -> List[Dict[str, Any]]:
        return [accessory.to_dict(aid) for aid, accessory in enumerate(self.accessories.values(), start=1)]

    def read_characteristic(self, uuid: str, name: str) -> Any:
        """Read a characteristic through its get handler.

        Raises:
            KeyError: if the accessory or characteristic is unknown
        """
        accessory = self.accessories.get(uuid)
        if accessory is None:
            raise KeyError(f"Accessory {uuid} not found")
        char = accessory.find_characteristic(name)
        if char is None:
            raise KeyError(f"Characteristic {name} not found on accessory {uuid}")
        return char.get_value()

    def write_characteristic(self, uuid: str, name: str, value: Any) -> bool:
        """Write a characteristic through its set handler.

        Returns False when no platform entry currently serves the accessory
        (the characteristic is missing) or the characteristic is read-only.

        Raises:
            KeyError: if the accessory is unknown
        """
        accessory = self.accessories.get(uuid)
        if accessory is None:
            raise KeyError(f"Accessory {uuid} not found")
        char = accessory.find_characteristic(name)
        if char is None:
            logger.warning(f"Ignoring write of {name}={value!r} to accessory {uuid}: no handler bound")
            return False
        if not char.writable:
            logger.warning(f"Ignoring write of {name}={value!r} to accessory {uuid}: characteristic is read-only")
            return False
        char.set_value(value)
        return True
