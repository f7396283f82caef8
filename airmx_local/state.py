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

"""Device status snapshots, control commands, and the per-device status cache."""

import dataclasses
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class EagleMode(IntEnum):
    MANUAL = 0
    AI = 1


@dataclass(frozen=True)
class StatusSnapshot:
    """Last telemetry record reported by a device.

    Every field is optional: a field missing from the telemetry message is
    stored as None rather than carried over from an earlier report.
    """

    power: Optional[int] = None
    mode: Optional[int] = None
    cadr: Optional[int] = None
    g4_percent: Optional[int] = None
    carbon_percent: Optional[int] = None
    hepa_percent: Optional[int] = None
    version: Optional[str] = None

    # wire name -> attribute name
    WIRE_FIELDS = {
        'power': 'power',
        'mode': 'mode',
        'cadr': 'cadr',
        'g4Percent': 'g4_percent',
        'carbonPercent': 'carbon_percent',
        'hepaPercent': 'hepa_percent',
        'version': 'version',
    }

    @classmethod
    def from_status_data(cls, data: Dict[str, Any]) -> 'StatusSnapshot':
        """Build a snapshot from the `data` object of an eagleStatus message."""
        return cls(**{attr: data.get(wire) for wire, attr in cls.WIRE_FIELDS.items()})

    @property
    def max_filter_percent(self) -> int:
        """Highest wear percentage across the G4, carbon and HEPA filters (missing counts as 0)."""
        return max(self.g4_percent or 0, self.carbon_percent or 0, self.hepa_percent or 0)


@dataclass(frozen=True)
class ControlCommand:
    """Complete eagleControl payload. The device rejects partial commands."""

    power: int
    heat_status: int
    mode: int
    cadr: int
    denoise: int

    def with_changes(self, **fields) -> 'ControlCommand':
        return dataclasses.replace(self, **fields)

    def to_data(self) -> Dict[str, int]:
        return {
            'power': int(self.power),
            'heatStatus': int(self.heat_status),
            'mode': int(self.mode),
            'cadr': int(self.cadr),
            'denoise': int(self.denoise),
        }

    @classmethod
    def from_status_data(cls, data: Dict[str, Any]) -> 'ControlCommand':
        """Derive a command that keeps the device as reported, stub values filling gaps.

        A field that is missing, null or not an integer takes the stub value.
        """
        def field(wire: str, default: int) -> int:
            value = data.get(wire)
            if isinstance(value, bool) or not isinstance(value, int):
                return default
            return value

        return cls(
            power=field('power', STUB_COMMAND.power),
            heat_status=field('heatStatus', STUB_COMMAND.heat_status),
            mode=field('mode', STUB_COMMAND.mode),
            cadr=field('cadr', STUB_COMMAND.cadr),
            denoise=field('denoise', STUB_COMMAND.denoise),
        )


# Base for commands sent while the device status is still unknown
STUB_COMMAND = ControlCommand(power=0, heat_status=0, mode=EagleMode.MANUAL, cadr=47, denoise=0)


class StatusCache:
    """Holds the most recent StatusSnapshot for one device."""

    def __init__(self):
        self._snapshot: Optional[StatusSnapshot] = None
        self._updated_at: Optional[float] = None

    @property
    def snapshot(self) -> Optional[StatusSnapshot]:
        return self._snapshot

    @property
    def is_known(self) -> bool:
        return self._snapshot is not None

    @property
    def updated_at(self) -> Optional[float]:
        return self._updated_at

    def replace(self, snapshot: StatusSnapshot, timestamp: Optional[float] = None):
        """Overwrite the cached snapshot wholesale."""
        self._snapshot = snapshot
        self._updated_at = timestamp if timestamp is not None else time.time()
