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

"""FastAPI route handlers for AIRMX Local."""

import logging
import os
from typing import Any, Optional, Union

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .__version__ import __version__
from .homekit_uuids import CHARACTERISTIC_PROPS, CHARACTERISTIC_UUIDS, enhance_accessory_data

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

# API key configuration (from environment variable)
# Multiple keys can be specified, space-separated
API_KEYS_RAW = os.environ.get('AIRMX_API_KEYS', '').strip()
API_KEYS = set(key.strip() for key in API_KEYS_RAW.split() if key.strip()) if API_KEYS_RAW else set()

WRITABLE_CHARACTERISTICS = {'Active', 'TargetAirPurifierState', 'RotationSpeed'}


class CharacteristicWrite(BaseModel):
    value: Union[bool, int, float]


def get_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    """
    Validate API key from Authorization header.

    If no API keys are configured (AIRMX_API_KEYS), authentication is disabled.

    Raises:
        HTTPException 401 if authentication fails
    """
    if not API_KEYS:
        return None

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials not in API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


def create_app():
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="AIRMX Local",
        description="HomeKit-style control of AIRMX Pro air purifiers over MQTT",
        version=__version__
    )

    if API_KEYS:
        logger.info(f"API authentication enabled ({len(API_KEYS)} key(s) configured)")
    else:
        logger.info("API authentication disabled (no AIRMX_API_KEYS configured)")

    return app


def validate_value(name: str, value: Any) -> Any:
    """Check a written value against the characteristic's range."""
    props = CHARACTERISTIC_PROPS.get(name, {})
    if isinstance(value, bool):
        value = int(value)
    if props.get('format') == 'uint8' and value != int(value):
        raise HTTPException(status_code=400, detail=f"{name} expects an integer value")
    if 'minValue' in props and value < props['minValue']:
        raise HTTPException(status_code=400, detail=f"{name} must be >= {props['minValue']}")
    if 'maxValue' in props and value > props['maxValue']:
        raise HTTPException(status_code=400, detail=f"{name} must be <= {props['maxValue']}")
    return value


def register_routes(app: FastAPI, get_bridge):
    """Register all API routes.

    Args:
        app: FastAPI application instance
        get_bridge: Callable returning (host, platform, client)
    """

    def get_host():
        host, _, _ = get_bridge()
        if host is None:
            raise HTTPException(status_code=503, detail="Bridge not initialized")
        return host

    @app.get("/api", tags=["Info"])
    async def api_info(api_key: Optional[str] = Depends(get_api_key)):
        """API root with diagnostics and navigation."""
        return {
            "service": "AIRMX Local",
            "version": __version__,
            "documentation": "/docs",
            "endpoints": {
                "status": "/status",
                "accessories": "/accessories",
            }
        }

    @app.get("/status", tags=["Status"])
    async def get_status(api_key: Optional[str] = Depends(get_api_key)):
        """Get overall bridge status."""
        host, platform, client = get_bridge()
        if host is None or platform is None:
            raise HTTPException(status_code=503, detail="Bridge not initialized")

        devices = []
        for uuid, entry in platform.registry.entries.items():
            devices.append({
                "id": entry.identity.id,
                "uuid": uuid,
                "status_known": entry.sync.cache.is_known,
                "last_update": entry.sync.cache.updated_at,
            })

        return {
            "status": "connected" if client is not None and client.connected else "disconnected",
            "version": __version__,
            "broker": client.broker.url if client is not None else None,
            "launched": host.launched,
            "registered_accessories": len(host.accessories),
            "messages_received": client.messages_received if client is not None else 0,
            "messages_sent": client.messages_sent if client is not None else 0,
            "devices": devices,
        }

    @app.get("/accessories", tags=["HomeKit"])
    async def get_accessories(enhanced: bool = True, api_key: Optional[str] = Depends(get_api_key)):
        """
        Get all accessories and their characteristics.

        Args:
            enhanced: If True, include human-readable names for UUIDs (default: True)
        """
        accessories = get_host().list_accessories()
        if enhanced:
            return {"accessories": enhance_accessory_data(accessories), "enhanced": True}
        return {"accessories": accessories, "enhanced": False}

    @app.get("/accessories/{uuid}", tags=["HomeKit"])
    async def get_accessory(uuid: str, enhanced: bool = True, api_key: Optional[str] = Depends(get_api_key)):
        """Get a specific accessory by uuid."""
        for accessory in get_host().list_accessories():
            if accessory['uuid'] == uuid:
                if enhanced:
                    return {"accessory": enhance_accessory_data([accessory])[0], "enhanced": True}
                return {"accessory": accessory, "enhanced": False}

        raise HTTPException(status_code=404, detail=f"Accessory {uuid} not found")

    @app.get("/accessories/{uuid}/characteristics/{name}", tags=["HomeKit"])
    async def read_characteristic(uuid: str, name: str, api_key: Optional[str] = Depends(get_api_key)):
        """Read one characteristic value."""
        host = get_host()
        try:
            value = host.read_characteristic(uuid, name)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))
        return {"uuid": uuid, "characteristic": name, "value": value}

    @app.put("/accessories/{uuid}/characteristics/{name}", tags=["HomeKit"])
    async def write_characteristic(uuid: str, name: str, body: CharacteristicWrite,
                                   api_key: Optional[str] = Depends(get_api_key)):
        """
        Write one characteristic value.

        The command is sent to the device without waiting for confirmation;
        reads keep returning the previous state until the device reports back.
        """
        if name not in CHARACTERISTIC_UUIDS:
            raise HTTPException(status_code=404, detail=f"Unknown characteristic {name}")
        if name not in WRITABLE_CHARACTERISTICS:
            raise HTTPException(status_code=400, detail=f"{name} is read-only")

        value = validate_value(name, body.value)
        host = get_host()
        try:
            applied = host.write_characteristic(uuid, name, value)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))
        return {"uuid": uuid, "characteristic": name, "value": value, "applied": applied}
