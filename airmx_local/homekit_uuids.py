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
"""
HomeKit UUID mappings for the services and characteristics an air purifier uses.

UUIDs are the HomeKit Accessory Protocol assigned numbers (the same values
HAP-NodeJS and Home Assistant use). Only the subset exposed by AIRMX Pro
accessories is listed here.
"""

from enum import IntEnum

HOMEKIT_SERVICES = {
    "0000003E-0000-1000-8000-0026BB765291": "AccessoryInformation",
    "000000BB-0000-1000-8000-0026BB765291": "AirPurifier",
    "000000BA-0000-1000-8000-0026BB765291": "FilterMaintenance",
}

HOMEKIT_CHARACTERISTICS = {
    # === ACCESSORY INFORMATION ===
    "00000020-0000-1000-8000-0026BB765291": "Manufacturer",
    "00000021-0000-1000-8000-0026BB765291": "Model",
    "00000023-0000-1000-8000-0026BB765291": "Name",
    "00000030-0000-1000-8000-0026BB765291": "SerialNumber",
    "00000052-0000-1000-8000-0026BB765291": "FirmwareRevision",

    # === AIR PURIFIER ===
    "000000B0-0000-1000-8000-0026BB765291": "Active",
    "000000A9-0000-1000-8000-0026BB765291": "CurrentAirPurifierState",
    "000000A8-0000-1000-8000-0026BB765291": "TargetAirPurifierState",
    "00000029-0000-1000-8000-0026BB765291": "RotationSpeed",

    # === FILTER MAINTENANCE ===
    "000000AC-0000-1000-8000-0026BB765291": "FilterChangeIndication",
    "000000AB-0000-1000-8000-0026BB765291": "FilterLifeLevel",
}

SERVICE_UUIDS = {name: uuid for uuid, name in HOMEKIT_SERVICES.items()}
CHARACTERISTIC_UUIDS = {name: uuid for uuid, name in HOMEKIT_CHARACTERISTICS.items()}

# Format and range metadata, in HAP JSON attribute names
CHARACTERISTIC_PROPS = {
    "Manufacturer": {"format": "string"},
    "Model": {"format": "string"},
    "Name": {"format": "string"},
    "SerialNumber": {"format": "string"},
    "FirmwareRevision": {"format": "string"},
    "Active": {"format": "uint8", "minValue": 0, "maxValue": 1},
    "CurrentAirPurifierState": {"format": "uint8", "minValue": 0, "maxValue": 2},
    "TargetAirPurifierState": {"format": "uint8", "minValue": 0, "maxValue": 1},
    "RotationSpeed": {"format": "float", "unit": "percentage", "minValue": 0, "maxValue": 100, "minStep": 1},
    "FilterChangeIndication": {"format": "uint8", "minValue": 0, "maxValue": 1},
    "FilterLifeLevel": {"format": "float", "minValue": 0, "maxValue": 100},
}


class Active(IntEnum):
    INACTIVE = 0
    ACTIVE = 1


class CurrentAirPurifierState(IntEnum):
    INACTIVE = 0
    IDLE = 1
    PURIFYING_AIR = 2


class TargetAirPurifierState(IntEnum):
    MANUAL = 0
    AUTO = 1


class FilterChangeIndication(IntEnum):
    FILTER_OK = 0
    CHANGE_FILTER = 1


# Human-readable value mappings
HOMEKIT_VALUES = {
    "Active": {0: "Inactive", 1: "Active"},
    "CurrentAirPurifierState": {0: "Inactive", 1: "Idle", 2: "Purifying Air"},
    "TargetAirPurifierState": {0: "Manual", 1: "Auto"},
    "FilterChangeIndication": {0: "Filter OK", 1: "Change Filter"},
}


def get_service_name(uuid: str) -> str:
    """Convert HomeKit service UUID to human-readable name."""
    return HOMEKIT_SERVICES.get(uuid.upper(), uuid)


def get_characteristic_name(uuid: str) -> str:
    """Convert HomeKit characteristic UUID to human-readable name."""
    return HOMEKIT_CHARACTERISTICS.get(uuid.upper(), uuid)


def get_characteristic_value_name(characteristic_name: str, value) -> str:
    """Convert HomeKit characteristic value to human-readable name."""
    if characteristic_name in HOMEKIT_VALUES and value in HOMEKIT_VALUES[characteristic_name]:
        return HOMEKIT_VALUES[characteristic_name][value]
    return str(value)


def enhance_accessory_data(accessories):
    """
    Enhance serialized accessories with human-readable names.

    Args:
        accessories: List of accessories in HAP JSON shape

    Returns:
        Enhanced accessories with readable service, characteristic and value names
    """
    enhanced = []

    for accessory in accessories:
        enhanced_accessory = {
            "aid": accessory.get("aid"),
            "uuid": accessory.get("uuid"),
            "display_name": accessory.get("display_name"),
            "services": []
        }

        for service in accessory.get("services", []):
            service_uuid = service.get("type", "")

            enhanced_service = {
                "type": service_uuid,
                "type_name": get_service_name(service_uuid),
                "iid": service.get("iid"),
                "characteristics": []
            }

            for char in service.get("characteristics", []):
                char_uuid = char.get("type", "")
                char_name = get_characteristic_name(char_uuid)

                enhanced_char = {
                    "type": char_uuid,
                    "type_name": char_name,
                    "iid": char.get("iid"),
                    "value": char.get("value"),
                    "perms": char.get("perms", []),
                    "format": char.get("format"),
                    "unit": char.get("unit")
                }

                if "value" in char:
                    enhanced_char["value_name"] = get_characteristic_value_name(char_name, char["value"])

                for key in ["minValue", "maxValue", "minStep"]:
                    if key in char:
                        enhanced_char[key] = char[key]

                enhanced_service["characteristics"].append(enhanced_char)

            enhanced_accessory["services"].append(enhanced_service)

        enhanced.append(enhanced_accessory)

    return enhanced
