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

"""Database schema for AIRMX Local."""

import sqlite3

SUPPORTED_SCHEMA_VERSION = 1

ACCESSORY_SCHEMA = """
CREATE TABLE IF NOT EXISTS accessories (
    uuid TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    context TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def ensure_schema_and_migrate(db_path: str):
    """Ensure the schema exists and record its version in PRAGMA user_version.

    Refuses to touch a database written by a newer release, to avoid silent
    data loss or incompatible assumptions.
    """
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute("PRAGMA user_version").fetchone()
        current_version = row[0] if row else 0
        if current_version > SUPPORTED_SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema version ({current_version}) is newer than supported ({SUPPORTED_SCHEMA_VERSION})"
            )

        conn.executescript(ACCESSORY_SCHEMA)

        if current_version < 1:
            conn.execute(f"PRAGMA user_version = {SUPPORTED_SCHEMA_VERSION}")
        conn.commit()
    finally:
        conn.close()
