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
"""AIRMX Local - HomeKit-style control of AIRMX Pro air purifiers over MQTT."""

from .__version__ import __version__

__author__ = "AIRMX Local Contributors"
__description__ = "HomeKit-style control of AIRMX Pro air purifiers over MQTT"

from .config import BridgeConfig, BrokerConfig, ConfigError, DeviceIdentity, load_config
from .state import STUB_COMMAND, ControlCommand, EagleMode, StatusCache, StatusSnapshot
from .cache import AccessoryCacheSQLite
from .host import AccessoryHost, PlatformAccessory
from .accessory import AirmxProAccessory, CAPABILITIES
from .platform import AccessoryRegistry, AirmxPlatform, RegistryEntry
from .protocol import AirmxClient
from . import homekit_uuids

__all__ = [
    "__version__",
    "BridgeConfig",
    "BrokerConfig",
    "ConfigError",
    "DeviceIdentity",
    "load_config",
    "STUB_COMMAND",
    "ControlCommand",
    "EagleMode",
    "StatusCache",
    "StatusSnapshot",
    "AccessoryCacheSQLite",
    "AccessoryHost",
    "PlatformAccessory",
    "AirmxProAccessory",
    "CAPABILITIES",
    "AccessoryRegistry",
    "AirmxPlatform",
    "RegistryEntry",
    "AirmxClient",
    "homekit_uuids",
]
