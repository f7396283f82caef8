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
"""SQLite-backed cache of registered platform accessories."""

import logging
import sqlite3
from typing import TYPE_CHECKING, List

from aiohomekit import hkjson

from .database import ensure_schema_and_migrate

if TYPE_CHECKING:
    from .host import PlatformAccessory

logger = logging.getLogger(__name__)


class AccessoryCacheSQLite:
    """Persists registered accessories so they can be restored on the next start.

    Only the accessory identity (uuid, display name) and its context are
    stored. Services and characteristic handlers are rebuilt by the platform
    when it restores the accessory.
    """

    def __init__(self, db_path: str):
        """Initialize SQLite-backed cache.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        ensure_schema_and_migrate(self.db_path)
        logger.debug(f"Initialized accessory cache in {self.db_path}")

    def load(self) -> List['PlatformAccessory']:
        """Load all cached accessories from the database."""
        from .host import PlatformAccessory

        conn = sqlite3.connect(self.db_path)
        cursor = conn.execute("SELECT uuid, display_name, context FROM accessories ORDER BY created_at, uuid")

        accessories = []
        for uuid, display_name, context_json in cursor.fetchall():
            try:
                context = hkjson.loads(context_json)
            except Exception as e:
                logger.warning(f"Failed to load cached accessory {uuid}: {e}")
                continue
            accessories.append(PlatformAccessory(display_name, uuid, context=context))

        conn.close()
        logger.info(f"Loaded {len(accessories)} accessories from cache")
        return accessories

    def save(self, accessory: 'PlatformAccessory'):
        """Insert or update a cached accessory."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("""
            INSERT INTO accessories (uuid, display_name, context)
            VALUES (?, ?, ?)
            ON CONFLICT(uuid) DO UPDATE SET
                display_name = excluded.display_name,
                context = excluded.context,
                updated_at = CURRENT_TIMESTAMP
        """, (accessory.uuid, accessory.display_name, hkjson.dumps(accessory.context)))
        conn.commit()
        conn.close()
        logger.debug(f"Saved accessory {accessory.uuid} to cache")

    def delete(self, uuid: str):
        """Remove a cached accessory."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("DELETE FROM accessories WHERE uuid = ?", (uuid,))
        conn.commit()
        conn.close()
        logger.debug(f"Deleted accessory {uuid} from cache")
