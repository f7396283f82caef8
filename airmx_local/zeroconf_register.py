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
"""mDNS advertisement of the bridge HTTP API using AsyncZeroconf.

Registration failures are logged and reported to the caller; they never stop
the bridge.
"""

import logging
import socket
from typing import Dict, Optional, Tuple

from zeroconf import ServiceInfo
from zeroconf.asyncio import AsyncZeroconf

logger = logging.getLogger(__name__)

SERVICE_TYPE = '_airmx-local._tcp.local.'

# module-level registration handle: (async_zc, info)
_reg = None


def _get_primary_ipv4() -> Optional[str]:
    """Best-effort outbound IPv4 address of this host.

    Connecting a UDP socket sends no packets but reveals the address the
    system would route from.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        try:
            return socket.gethostbyname(socket.gethostname())
        except OSError:
            return None


async def register_service_async(name: str, port: int, props: Optional[Dict[str, str]] = None,
                                 advertise_addr: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """Register the API service. Returns (ok, error message)."""
    global _reg
    props = props or {}

    addresses = None
    addr = advertise_addr or _get_primary_ipv4()
    if addr:
        try:
            addresses = [socket.inet_pton(socket.AF_INET, addr)]
        except OSError:
            logger.warning(f"Not advertising invalid IPv4 address {addr}")

    info = ServiceInfo(
        SERVICE_TYPE,
        f"{name}.{SERVICE_TYPE}",
        addresses=addresses,
        port=port,
        properties={k: v.encode('utf-8') for k, v in props.items()},
    )

    async_zc = None
    try:
        async_zc = AsyncZeroconf()
        # Let zeroconf rename us (e.g. "airmx-local (2)") on a local name conflict
        await async_zc.async_register_service(info, allow_name_change=True)
    except Exception as e:
        logger.exception(f"mDNS registration failed for {name}")
        if async_zc is not None:
            await async_zc.async_close()
        return False, str(e)

    _reg = (async_zc, info)
    logger.info(f"Advertising {info.name} on port {port} (address={addr} props={props})")
    return True, None


async def unregister_service_async():
    """Withdraw the current registration, if any."""
    global _reg
    if not _reg:
        return
    async_zc, info = _reg
    _reg = None
    try:
        await async_zc.async_unregister_service(info)
    except Exception as e:
        logger.warning(f"mDNS unregister failed: {e}")
    finally:
        await async_zc.async_close()
