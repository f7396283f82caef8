import asyncio

from airmx_local.cache import AccessoryCacheSQLite
from airmx_local.config import BridgeConfig, BrokerConfig, DeviceIdentity
from airmx_local.host import AccessoryHost
from airmx_local.platform import AirmxPlatform
from airmx_local.state import EagleMode, StatusSnapshot


BROKER = BrokerConfig.from_url('mqtt://127.0.0.1')
DEVICE_A = DeviceIdentity(id=101, key='key-a')
DEVICE_B = DeviceIdentity(id=202, key='key-b')


class StubClient:
    """Records commands; yields a fixed list of status updates."""

    def __init__(self, updates=()):
        self.calls = []
        self._updates = list(updates)

    def send_command(self, device_id, command):
        self.calls.append(('send_command', device_id, command))

    def turn_on(self, device_id):
        self.calls.append(('turn_on', device_id))

    def turn_off(self, device_id):
        self.calls.append(('turn_off', device_id))

    def enable_ai(self, device_id):
        self.calls.append(('enable_ai', device_id))

    def set_throughput(self, device_id, cadr):
        self.calls.append(('set_throughput', device_id, cadr))

    async def updates(self):
        for update in self._updates:
            yield update


def start_bridge(db_path, devices, client=None):
    host = AccessoryHost(AccessoryCacheSQLite(str(db_path)))
    platform = AirmxPlatform(BridgeConfig(mqtt=BROKER, devices=tuple(devices)), host, client or StubClient())
    host.load_cached()
    host.finish_launching()
    return host, platform


def test_new_devices_are_registered_and_cached(tmp_path):
    db = tmp_path / 'state.db'
    host, platform = start_bridge(db, [DEVICE_A, DEVICE_B])

    uuids = {platform.uuid_for(101), platform.uuid_for(202)}
    assert set(host.accessories) == uuids
    assert set(platform.registry.entries) == uuids
    assert platform.discovered_uuids == uuids

    cached = {a.uuid: a for a in AccessoryCacheSQLite(str(db)).load()}
    assert set(cached) == uuids
    assert cached[platform.uuid_for(101)].context == {'device': {'id': 101, 'key': 'key-a'}}


def test_uuid_is_stable_per_device_id(tmp_path):
    _, platform = start_bridge(tmp_path / 'state.db', [])
    assert platform.uuid_for(101) == platform.uuid_for(101)
    assert platform.uuid_for(101) != platform.uuid_for(202)


def test_restart_restores_cached_accessories_without_duplicates(tmp_path):
    db = tmp_path / 'state.db'
    start_bridge(db, [DEVICE_A])

    host = AccessoryHost(AccessoryCacheSQLite(str(db)))
    platform = AirmxPlatform(BridgeConfig(mqtt=BROKER, devices=(DEVICE_A,)), host, StubClient())
    host.load_cached()

    uuid = platform.uuid_for(101)
    # Handed over by the host but not yet claimed by discovery
    assert uuid in platform.registry.cached
    assert uuid not in platform.registry

    host.finish_launching()

    entry = platform.registry.get(uuid)
    assert entry is not None
    assert entry.accessory is host.get_accessory(uuid)
    assert not platform.registry.cached
    assert len(host.accessories) == 1
    assert len(AccessoryCacheSQLite(str(db)).load()) == 1


def test_restore_refreshes_changed_device_key(tmp_path):
    db = tmp_path / 'state.db'
    start_bridge(db, [DEVICE_A])

    rekeyed = DeviceIdentity(id=101, key='new-key')
    _, platform = start_bridge(db, [rekeyed])

    entry = platform.registry.get(platform.uuid_for(101))
    assert entry.identity == rekeyed
    assert entry.accessory.context['device'] == {'id': 101, 'key': 'new-key'}
    cached = AccessoryCacheSQLite(str(db)).load()
    assert cached[0].context['device']['key'] == 'new-key'


def test_removed_device_is_pruned_on_next_discovery(tmp_path):
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A, DEVICE_B])
    uuid_a, uuid_b = platform.uuid_for(101), platform.uuid_for(202)
    accessory_a = host.get_accessory(uuid_a)

    platform.discover([DEVICE_A])
    platform.prune_obsolete()

    assert set(host.accessories) == {uuid_a}
    assert host.get_accessory(uuid_a) is accessory_a
    assert uuid_b not in platform.registry
    assert [a.uuid for a in host.cache.load()] == [uuid_a]


def test_cached_accessory_without_configured_device_is_pruned_at_launch(tmp_path):
    db = tmp_path / 'state.db'
    start_bridge(db, [DEVICE_A, DEVICE_B])

    host, platform = start_bridge(db, [DEVICE_B])

    assert set(host.accessories) == {platform.uuid_for(202)}
    assert set(platform.registry.entries) == {platform.uuid_for(202)}
    assert not platform.registry.cached


def test_discovery_pass_resets_seen_set(tmp_path):
    _, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A, DEVICE_B])

    platform.discover([DEVICE_B])

    assert platform.discovered_uuids == {platform.uuid_for(202)}


def test_finish_launching_runs_discovery_once(tmp_path, monkeypatch):
    host = AccessoryHost(AccessoryCacheSQLite(str(tmp_path / 'state.db')))
    platform = AirmxPlatform(BridgeConfig(mqtt=BROKER, devices=(DEVICE_A,)), host, StubClient())
    passes = []
    monkeypatch.setattr(platform, 'discover', lambda devices: passes.append(list(devices)))

    host.finish_launching()
    host.finish_launching()

    assert passes == [[DEVICE_A]]


def test_telemetry_updates_registered_accessory(tmp_path):
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A])
    uuid = platform.uuid_for(101)

    assert platform.on_telemetry(101, StatusSnapshot(power=1, mode=EagleMode.AI, cadr=33)) is True

    assert host.read_characteristic(uuid, 'Active') == 1
    assert host.read_characteristic(uuid, 'TargetAirPurifierState') == 1
    assert host.read_characteristic(uuid, 'RotationSpeed') == 33


def test_telemetry_replaces_status_wholesale(tmp_path):
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A])
    uuid = platform.uuid_for(101)

    platform.on_telemetry(101, StatusSnapshot(power=1, cadr=60, hepa_percent=90, version='2.0'))
    platform.on_telemetry(101, StatusSnapshot(power=1))

    # Fields absent from the newer report are not carried over
    assert host.read_characteristic(uuid, 'RotationSpeed') == 0
    assert host.read_characteristic(uuid, 'FilterLifeLevel') == 100
    assert host.read_characteristic(uuid, 'FirmwareRevision') == 'N/A'


def test_telemetry_for_unknown_device_is_dropped(tmp_path):
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A])

    assert platform.on_telemetry(999, StatusSnapshot(power=1)) is False

    assert len(platform.registry) == 1
    assert platform.uuid_for(999) not in host.accessories


def test_telemetry_before_discovery_is_dropped(tmp_path):
    db = tmp_path / 'state.db'
    start_bridge(db, [DEVICE_A])

    host = AccessoryHost(AccessoryCacheSQLite(str(db)))
    platform = AirmxPlatform(BridgeConfig(mqtt=BROKER, devices=(DEVICE_A,)), host, StubClient())
    host.load_cached()

    assert platform.on_telemetry(101, StatusSnapshot(power=1, cadr=20)) is False

    host.finish_launching()
    uuid = platform.uuid_for(101)
    assert platform.registry.get(uuid).sync.status is None
    assert host.read_characteristic(uuid, 'Active') == 0


def test_rediscovery_keeps_reported_status(tmp_path):
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A])
    platform.on_telemetry(101, StatusSnapshot(power=1, cadr=44))

    platform.discover([DEVICE_A])
    platform.prune_obsolete()

    assert host.read_characteristic(platform.uuid_for(101), 'RotationSpeed') == 44


def test_host_write_sends_command_without_changing_reads(tmp_path):
    client = StubClient()
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A], client)
    uuid = platform.uuid_for(101)
    platform.on_telemetry(101, StatusSnapshot(power=1, mode=EagleMode.MANUAL, cadr=20))

    assert host.write_characteristic(uuid, 'RotationSpeed', 70) is True

    assert client.calls == [('set_throughput', 101, 70)]
    assert host.read_characteristic(uuid, 'RotationSpeed') == 20


def test_write_to_unclaimed_cached_accessory_is_ignored(tmp_path):
    db = tmp_path / 'state.db'
    start_bridge(db, [DEVICE_A])

    client = StubClient()
    host = AccessoryHost(AccessoryCacheSQLite(str(db)))
    platform = AirmxPlatform(BridgeConfig(mqtt=BROKER, devices=(DEVICE_A,)), host, client)
    host.load_cached()

    assert host.write_characteristic(platform.uuid_for(101), 'Active', 1) is False
    assert client.calls == []


def test_consume_telemetry_routes_every_update(tmp_path):
    client = StubClient(updates=[
        (101, StatusSnapshot(power=1, cadr=10)),
        (999, StatusSnapshot(power=1)),
        (202, StatusSnapshot(power=0, g4_percent=85)),
    ])
    host, platform = start_bridge(tmp_path / 'state.db', [DEVICE_A, DEVICE_B], client)

    asyncio.run(platform.consume_telemetry())

    assert host.read_characteristic(platform.uuid_for(101), 'RotationSpeed') == 10
    assert host.read_characteristic(platform.uuid_for(202), 'FilterChangeIndication') == 1
    assert len(platform.registry) == 2
