"""Canonical inventory payload produced by the aggregators.

These Pydantic models are the single output shape consumed by the
presentation layer. A payload is built fresh for every resolution and never
mutated afterwards; exactly one kind-specific ``details`` block is present,
discriminated by its ``kind`` field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Status = Literal["ok", "warn", "crit", "unknown"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Kpi(_Frozen):
    """Small labelled summary value (e.g., "Nodes" -> "3/4")."""

    label: str
    value: str


class Property(_Frozen):
    """Free-form label/value pair."""

    label: str
    value: str


class UtilMetric(_Frozen):
    """Utilization of one resource.

    Attributes
    ----------
    label: str
        Display label (e.g., "RAM (total)").
    pct: int
        Rounded utilization percentage.
    used: Optional[float]
        Used quantity in the resource's native unit.
    capacity: Optional[float]
        Capacity in the same unit as ``used``.
    """

    label: str
    pct: int
    used: Optional[float] = None
    capacity: Optional[float] = None


class Metrics(_Frozen):
    cpu: Optional[UtilMetric] = None
    ram: Optional[UtilMetric] = None
    storage: Optional[UtilMetric] = None
    swap: Optional[UtilMetric] = None


class SeriesPoint(_Frozen):
    """One normalized time-series sample.

    Attributes
    ----------
    t: int
        Sample time in epoch milliseconds.
    cpu_pct, ram_pct: Optional[int]
        Utilization percentages in [0, 100]; ``None`` when not reported.
    load_avg: Optional[float]
        Host load average.
    net_in_bps, net_out_bps, disk_read_bps, disk_write_bps: Optional[float]
        Transfer rates in bytes per second.
    """

    t: int
    cpu_pct: Optional[int] = None
    ram_pct: Optional[int] = None
    load_avg: Optional[float] = None
    net_in_bps: Optional[float] = None
    net_out_bps: Optional[float] = None
    disk_read_bps: Optional[float] = None
    disk_write_bps: Optional[float] = None


# ---------------- Child-entity summaries ----------------


class NodeRow(_Frozen):
    id: str
    conn_id: str
    node: str
    name: str
    status: Literal["online", "offline", "maintenance"]
    cpu: int
    ram: int
    storage: int
    guests: int = 0
    uptime: float = 0
    ip: Optional[str] = None


class GuestRow(_Frozen):
    id: str
    conn_id: str
    node: str
    vmid: str
    name: str
    type: str
    status: str
    template: bool = False
    cpu: Optional[int] = None
    ram: Optional[int] = None
    maxmem: float = 0
    disk: float = 0
    maxdisk: float = 0
    uptime: float = 0
    tags: List[str] = Field(default_factory=list)


# ---------------- Guest hardware/options ----------------


class PendingCpu(_Frozen):
    sockets: Optional[Any] = None
    cores: Optional[Any] = None
    cpu: Optional[Any] = None
    cpulimit: Optional[Any] = None


class CpuInfo(_Frozen):
    sockets: int = 1
    cores: int = 1
    type: str = "kvm64"
    cpulimit: Optional[float] = None
    cpuunits: Optional[int] = None
    numa: bool = False
    pending: Optional[PendingCpu] = None


class PendingMemory(_Frozen):
    memory: Optional[Any] = None
    balloon: Optional[Any] = None


class MemoryInfo(_Frozen):
    memory: int = 512
    balloon: Optional[int] = None
    shares: Optional[int] = None
    pending: Optional[PendingMemory] = None


class DiskInfo(_Frozen):
    id: str
    storage: str = "unknown"
    size: str = "unknown"
    format: Optional[str] = "raw"
    cache: Optional[str] = None
    iothread: bool = False


class NetworkInfo(_Frozen):
    id: str
    model: Optional[str] = None
    macaddr: Optional[str] = None
    bridge: Optional[str] = None
    tag: Optional[int] = None
    firewall: Optional[bool] = None
    rate: Optional[float] = None


class GuestOptions(_Frozen):
    onboot: Optional[bool] = None
    protection: Optional[bool] = None
    startup_order: Optional[str] = None
    ostype: Optional[str] = None
    boot_order: Optional[str] = None
    use_tablet: Optional[bool] = None
    hotplug: Optional[str] = None
    acpi: Optional[bool] = None
    kvm_enabled: Optional[bool] = None
    freeze_cpu: Optional[bool] = None
    use_local_time: Optional[str] = None
    rtc_start_date: Optional[str] = None
    smbios_uuid: Optional[str] = None
    agent_enabled: Optional[bool] = None
    spice_enhancements: Optional[str] = None
    vm_state_storage: Optional[str] = None
    amd_sev: Optional[str] = None
    scsihw: Optional[str] = None


class NodeCapacity(_Frozen):
    max_cpu: int
    max_mem: int


# ---------------- Kind-specific extension blocks ----------------


class ClusterDetails(_Frozen):
    kind: Literal["cluster"] = "cluster"
    nodes: List[NodeRow] = Field(default_factory=list)
    guests: List[GuestRow] = Field(default_factory=list)
    guest_count: int = 0
    ceph_health: str = "unknown"


class HostDetails(_Frozen):
    kind: Literal["node"] = "node"
    uptime: float = 0
    uptime_formatted: str = "00:00:00"
    cpu_model: Optional[str] = None
    cpu_cores: Optional[int] = None
    cpu_sockets: Optional[int] = None
    kernel_version: Optional[str] = None
    platform_version: Optional[str] = None
    boot_mode: Optional[str] = None
    load_avg: Optional[str] = None
    io_delay: Optional[float] = None
    ksm_sharing: Optional[float] = None
    updates: List[Dict[str, Any]] = Field(default_factory=list)
    subscription: Optional[Dict[str, Any]] = None
    maintenance: Optional[str] = None
    guests: List[GuestRow] = Field(default_factory=list)
    cluster_name: Optional[str] = None


class GuestDetails(_Frozen):
    kind: Literal["guest"] = "guest"
    guest_type: str
    guest_status: str
    name: str
    description: str = ""
    is_cluster: bool = False
    cpu_info: Optional[CpuInfo] = None
    memory_info: Optional[MemoryInfo] = None
    disks: List[DiskInfo] = Field(default_factory=list)
    networks: List[NetworkInfo] = Field(default_factory=list)
    options: Optional[GuestOptions] = None
    node_capacity: NodeCapacity


class BackupStats(_Frozen):
    total: int = 0
    vm_count: int = 0
    ct_count: int = 0


class BackupServerDetails(_Frozen):
    kind: Literal["backup-server"] = "backup-server"
    version: Optional[str] = None
    uptime: Optional[float] = None
    cpu_info: Optional[Any] = None
    memory: Optional[Any] = None
    load: Optional[Any] = None
    datastores: List[Dict[str, Any]] = Field(default_factory=list)
    stats: BackupStats = Field(default_factory=BackupStats)
    rrd_data: List[Dict[str, Any]] = Field(default_factory=list)
    series: List[SeriesPoint] = Field(default_factory=list)


class BackupStoreDetails(_Frozen):
    kind: Literal["backup-store"] = "backup-store"
    server_id: str
    server_name: str
    name: str
    path: str = ""
    comment: str = ""
    total: float = 0
    used: float = 0
    available: float = 0
    usage_percent: int = 0
    gc_status: Optional[Any] = None
    verify_status: Optional[Any] = None
    backups: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)
    pagination: Dict[str, Any] = Field(default_factory=dict)
    rrd_data: List[Dict[str, Any]] = Field(default_factory=list)
    series: List[SeriesPoint] = Field(default_factory=list)


Details = Annotated[
    Union[
        ClusterDetails,
        HostDetails,
        GuestDetails,
        BackupServerDetails,
        BackupStoreDetails,
    ],
    Field(discriminator="kind"),
]


class CanonicalPayload(_Frozen):
    """Aggregated view of one selected inventory entity.

    Attributes
    ----------
    kind_label: str
        Upper-case kind badge (e.g., "CLUSTER", "HOST", "VM", "LXC").
    title: str
        Display name of the entity.
    subtitle: Optional[str]
        Secondary line (e.g., "QEMU • pve1 • #100").
    breadcrumb: List[str]
        Navigation path down to the entity.
    status: Status
        Coarse health: ``ok``, ``warn``, ``crit`` or ``unknown``.
    tags: List[str]
        Entity tags (guests only).
    kpis: List[Kpi]
        Summary values.
    properties: List[Property]
        Free-form properties.
    metrics: Optional[Metrics]
        Utilization block.
    last_updated: datetime
        UTC construction time.
    details: Details
        The kind-specific extension block.
    """

    kind_label: str
    title: str
    subtitle: Optional[str] = None
    breadcrumb: List[str] = Field(default_factory=list)
    status: Status = "unknown"
    tags: List[str] = Field(default_factory=list)
    kpis: List[Kpi] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)
    metrics: Optional[Metrics] = None
    last_updated: datetime
    details: Details
