"""
Tests for the cluster, node and guest aggregators and kind dispatch.
"""

import httpx
import pytest

from inventory_core.config.models import GIB
from inventory_core.domain.aggregators import AGGREGATORS, AggregationContext, aggregate
from inventory_core.domain.aggregators.cluster import aggregate_cluster, ceph_health
from inventory_core.domain.aggregators.guest import aggregate_guest
from inventory_core.domain.aggregators.node import (
    aggregate_node,
    format_load_avg,
    platform_version,
)
from inventory_core.domain.selection import Selection, SelectionKind
from inventory_core.errors import EntityNotFoundError, UnsupportedSelectionError

NODES = {
    "data": {
        "data": [
            {
                "node": "pve1",
                "status": "online",
                "cpu": 0.2,
                "mem": 8 * GIB,
                "maxmem": 16 * GIB,
                "disk": 25 * GIB,
                "maxdisk": 100 * GIB,
                "uptime": 90061,
                "maxcpu": 16,
            },
            {
                "node": "pve2",
                "status": "offline",
                "cpu": 0.4,
                "mem": 0,
                "maxmem": 16 * GIB,
                "disk": 25 * GIB,
                "maxdisk": 100 * GIB,
            },
        ]
    }
}

RESOURCES = {
    "data": [
        {
            "vmid": 100,
            "node": "pve1",
            "type": "qemu",
            "status": "running",
            "name": "web01",
            "cpu": 0.25,
            "mem": 1 * GIB,
            "maxmem": 4 * GIB,
            "disk": 8 * GIB,
            "maxdisk": 32 * GIB,
            "tags": "prod;web",
        },
        {
            "vmid": 200,
            "node": "pve1",
            "type": "lxc",
            "status": "stopped",
            "name": "cache",
            "cpu": 0.1,
            "mem": 0,
            "maxmem": 1 * GIB,
        },
        {"vmid": 300, "node": "pve2", "type": "qemu", "status": "running"},
        {"id": "storage/pve1/local", "node": "pve1", "type": "storage"},
    ]
}


def _ctx(backend):
    return AggregationContext(backend=backend)


class TestCluster:
    """Tests for cluster aggregation."""

    @pytest.mark.asyncio
    async def test_rollup(self, make_backend):
        backend = make_backend(
            {
                "nodes": NODES,
                "resources": {"data": RESOURCES["data"][:3]},
                "connection": {"data": {"name": "Lab"}},
                "ceph_status": {"data": {"health": {"status": "HEALTH_OK"}}},
            }
        )

        payload = await aggregate_cluster(_ctx(backend), "c1")

        assert payload.kind_label == "CLUSTER"
        assert payload.title == "Lab"
        assert payload.breadcrumb == ["Infrastructure", "Inventory", "Cluster", "Lab"]
        assert payload.status == "warn"
        assert [(k.label, k.value) for k in payload.kpis] == [
            ("Nodes", "1/2"),
            ("VMs", "2/3"),
        ]
        assert payload.metrics.cpu.pct == 30
        assert payload.metrics.ram.pct == 25
        assert payload.metrics.storage.pct == 25
        details = payload.details
        assert details.kind == "cluster"
        assert details.guest_count == 3
        assert details.ceph_health == "HEALTH_OK"
        assert [(n.node, n.status, n.guests) for n in details.nodes] == [
            ("pve1", "online", 2),
            ("pve2", "offline", 1),
        ]
        assert details.nodes[0].id == "c1:pve1"
        assert details.guests[0].id == "c1:pve1:qemu:100"

    @pytest.mark.asyncio
    async def test_optional_metadata_falls_back(self, make_backend):
        backend = make_backend(
            {
                "nodes": [{"node": "pve1", "status": "online"}],
                "resources": [],
                "connection": httpx.ConnectError("down"),
            }
        )

        payload = await aggregate_cluster(_ctx(backend), "c1")

        assert payload.title == "c1"
        assert payload.status == "ok"
        assert payload.details.ceph_health == "unknown"

    @pytest.mark.asyncio
    async def test_all_offline_is_critical(self, make_backend):
        backend = make_backend(
            {"nodes": [{"node": "pve1", "status": "offline"}], "resources": []}
        )
        payload = await aggregate_cluster(_ctx(backend), "c1")
        assert payload.status == "crit"

    @pytest.mark.asyncio
    async def test_required_failure_propagates(self, make_backend):
        backend = make_backend(
            {"nodes": NODES, "resources": httpx.ReadTimeout("slow")}
        )
        with pytest.raises(httpx.ReadTimeout):
            await aggregate_cluster(_ctx(backend), "c1")

    def test_ceph_health_shapes(self):
        assert ceph_health({"health": "HEALTH_WARN"}) == "HEALTH_WARN"
        assert ceph_health({"data": {"health": {"status": "HEALTH_ERR"}}}) == "HEALTH_ERR"
        assert ceph_health(None) == "unknown"
        assert ceph_health({"data": {}}) == "unknown"


class TestNode:
    """Tests for node aggregation."""

    STATUS = {
        "data": {
            "cpuinfo": {"model": "EPYC 7302", "cpus": 32, "cores": 16, "sockets": 2},
            "kversion": "Linux 6.8.4-2-pve",
            "pveversion": "pve-manager/8.1.3/b46aac3b42da5d15",
            "loadavg": ["0.50", "1.25", "2.00"],
            "wait": 0.0125,
            "swap": {"used": 1 * GIB, "total": 4 * GIB},
            "boot-info": {"mode": "efi"},
            "ksm": {"shared": 0},
        }
    }

    @pytest.mark.asyncio
    async def test_host_payload(self, make_backend):
        backend = make_backend(
            {
                "nodes": {
                    "data": [
                        dict(NODES["data"]["data"][0], cpu=0.42),
                        NODES["data"]["data"][1],
                    ]
                },
                "node_status": self.STATUS,
                "resources": RESOURCES,
                "node_updates": {"data": [{"Package": "openssl"}]},
                "node_subscription": {"data": {"status": "active"}},
                "cluster_info": {"data": {"name": "lab"}},
            }
        )

        payload = await aggregate_node(_ctx(backend), "c1:pve1")

        assert payload.kind_label == "HOST"
        assert payload.title == "pve1"
        assert payload.status == "ok"
        assert payload.metrics.cpu.pct == 42
        assert payload.metrics.ram.pct == 50
        assert payload.metrics.swap.pct == 25
        assert [(k.label, k.value) for k in payload.kpis] == [
            ("Uptime", "1 days 01:01:01"),
            ("Guests", "1/2"),
        ]
        details = payload.details
        assert details.kind == "node"
        assert details.cpu_model == "32 x EPYC 7302"
        assert details.cpu_cores == 16
        assert details.cpu_sockets == 2
        assert details.platform_version == "8.1.3"
        assert details.kernel_version == "Linux 6.8.4-2-pve"
        assert details.boot_mode == "EFI"
        assert details.load_avg == "0.50, 1.25, 2.00"
        assert details.io_delay == pytest.approx(1.25)
        assert details.updates == [{"Package": "openssl"}]
        assert details.subscription == {"status": "active"}
        assert details.cluster_name == "lab"
        assert [g.vmid for g in details.guests] == ["100", "200"]
        stopped = details.guests[1]
        assert stopped.cpu is None and stopped.ram is None
        assert details.guests[0].cpu == 25

    @pytest.mark.asyncio
    async def test_optional_failures_degrade(self, make_backend):
        backend = make_backend(
            {
                "nodes": NODES,
                "node_status": httpx.ConnectError("down"),
                "cluster_info": ValueError("bad json"),
            }
        )

        payload = await aggregate_node(_ctx(backend), "c1:pve1")

        assert payload.metrics.swap is None
        assert payload.details.guests == []
        assert payload.details.cpu_model is None
        assert payload.details.cluster_name == "Cluster"

    @pytest.mark.asyncio
    async def test_offline_node_is_critical(self, make_backend):
        backend = make_backend({"nodes": NODES})
        payload = await aggregate_node(_ctx(backend), "c1:pve2")
        assert payload.status == "crit"

    @pytest.mark.asyncio
    async def test_single_node_skips_cluster_name(self, make_backend):
        backend = make_backend({"nodes": [{"node": "pve1", "status": "online"}]})
        payload = await aggregate_node(_ctx(backend), "c1:pve1")
        assert payload.details.cluster_name is None
        assert backend.called("cluster_info") == []

    @pytest.mark.asyncio
    async def test_missing_node(self, make_backend):
        backend = make_backend({"nodes": NODES})
        with pytest.raises(EntityNotFoundError) as excinfo:
            await aggregate_node(_ctx(backend), "c1:pve9")
        assert excinfo.value.key == "pve9"

    def test_formatting_helpers(self):
        assert platform_version("pve-manager/8.1.3/abc") == "8.1.3"
        assert platform_version(None) is None
        assert format_load_avg([0.5, "n/a"]) == "0.50, n/a"
        assert format_load_avg([]) is None


class TestGuest:
    """Tests for guest aggregation."""

    CONFIG = {
        "data": {
            "name": "web01",
            "description": "frontend",
            "cores": 2,
            "sockets": 1,
            "memory": 4096,
            "scsi0": "local-lvm:vm-100-disk-0,size=32G,iothread=1",
            "net0": "virtio=BC:24:11:00:00:01,bridge=vmbr0",
            "onboot": 1,
        }
    }

    @pytest.mark.asyncio
    async def test_vm_payload(self, make_backend):
        backend = make_backend(
            {"resources": RESOURCES, "nodes": NODES, "guest_config": self.CONFIG}
        )

        payload = await aggregate_guest(_ctx(backend), "c1:pve1:qemu:100")

        assert payload.kind_label == "VM"
        assert payload.title == "web01"
        assert payload.subtitle == "QEMU • pve1 • #100"
        assert payload.status == "ok"
        assert payload.tags == ["prod", "web"]
        assert [(k.label, k.value) for k in payload.kpis] == [("State", "Running")]
        assert payload.metrics.cpu.pct == 25
        assert payload.metrics.ram.pct == 25
        assert payload.metrics.storage.pct == 25
        details = payload.details
        assert details.kind == "guest"
        assert details.is_cluster is True
        assert details.node_capacity.max_cpu == 16
        assert details.node_capacity.max_mem == 16 * GIB
        assert details.cpu_info.cores == 2
        assert details.memory_info.balloon == 4096
        assert [d.id for d in details.disks] == ["scsi0"]
        assert details.networks[0].bridge == "vmbr0"
        assert details.options.onboot is True
        assert backend.called("guest_config") == [("c1", "pve1", "qemu", "100")]

    @pytest.mark.asyncio
    async def test_missing_config_uses_resource_record(self, make_backend):
        backend = make_backend(
            {
                "resources": RESOURCES,
                "nodes": NODES,
                "guest_config": httpx.ConnectError("down"),
            }
        )

        payload = await aggregate_guest(_ctx(backend), "c1:pve1:lxc:200")

        assert payload.kind_label == "LXC"
        assert payload.title == "cache"
        assert payload.status == "unknown"
        assert payload.kpis[0].value == "Stopped"
        assert payload.details.cpu_info is None
        assert payload.details.disks == []

    @pytest.mark.asyncio
    async def test_capacity_defaults(self, make_backend):
        backend = make_backend(
            {"resources": RESOURCES, "nodes": [], "guest_config": {}}
        )
        payload = await aggregate_guest(_ctx(backend), "c1:pve2:qemu:300")
        assert payload.details.node_capacity.max_cpu == 128
        assert payload.details.node_capacity.max_mem == 128 * GIB
        assert payload.details.is_cluster is False

    @pytest.mark.asyncio
    async def test_missing_guest(self, make_backend):
        backend = make_backend({"resources": RESOURCES, "nodes": NODES})
        with pytest.raises(EntityNotFoundError):
            await aggregate_guest(_ctx(backend), "c1:pve2:qemu:100")


class TestDispatch:
    """Tests for the kind -> aggregator table."""

    def test_every_kind_is_registered(self):
        assert set(AGGREGATORS) == set(SelectionKind)

    @pytest.mark.asyncio
    async def test_root_has_no_details(self, make_backend):
        with pytest.raises(UnsupportedSelectionError):
            await aggregate(_ctx(make_backend({})), Selection.of("root", ""))

    @pytest.mark.asyncio
    async def test_dispatches_by_kind(self, make_backend):
        backend = make_backend({"nodes": NODES, "resources": RESOURCES})
        payload = await aggregate(_ctx(backend), Selection.of("cluster", "c1"))
        assert payload.kind_label == "CLUSTER"
