"""
Guest configuration parsing.

Turns a raw guest configuration mapping into CPU, memory, disk, network and
option blocks. Fields are converted one at a time: a malformed value leaves
only that field unset, and the rest of its block or device is kept.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from ..envelope import to_number
from ..models import (
    CpuInfo,
    DiskInfo,
    GuestOptions,
    MemoryInfo,
    NetworkInfo,
    PendingCpu,
    PendingMemory,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISK_KEY = re.compile(r"^(scsi|ide|sata|virtio)\d+$")
NET_KEY = re.compile(r"^net\d+$")
NET_MODELS = ("virtio", "e1000", "rtl8139", "vmxnet3")

_SIZE = re.compile(r"size=(\d+[GMT]?)", re.IGNORECASE)
_FORMAT = re.compile(r"format=(\w+)")
_CACHE = re.compile(r"cache=(\w+)")
_SMBIOS_UUID = re.compile(r"uuid=([^,]+)")

_PARSE_ERRORS = (ValueError, TypeError, AttributeError, KeyError)


@dataclass
class ParsedGuestConfig:
    """Blocks extracted from a guest configuration."""

    name: Optional[str] = None
    description: str = ""
    cpu: Optional[CpuInfo] = None
    memory: Optional[MemoryInfo] = None
    disks: List[DiskInfo] = field(default_factory=list)
    networks: List[NetworkInfo] = field(default_factory=list)
    options: Optional[GuestOptions] = None


def _enabled(value: Any) -> bool:
    return value in (1, True, "1")


def _not_disabled(value: Any) -> bool:
    return value not in (0, False, "0")


def _int(value: Any) -> Optional[int]:
    number = to_number(value)
    return int(number) if number is not None else None


def _pending(config: Mapping[str, Any]) -> Mapping[str, Any]:
    pending = config.get("pending")
    return pending if isinstance(pending, Mapping) else {}


def _safely(section: str, parse: Callable[[], T]) -> Optional[T]:
    try:
        return parse()
    except _PARSE_ERRORS as exc:
        logger.debug(
            "guest_config.field_skipped",
            extra={"section": section, "error": str(exc)},
        )
        return None


def parse_cpu(config: Mapping[str, Any]) -> CpuInfo:
    """Parse CPU topology, limits and pending (reboot-required) changes."""
    pending = _pending(config)
    pending_keys = ("sockets", "cores", "cpu", "cpulimit")
    return CpuInfo(
        sockets=_int(config.get("sockets")) or 1,
        cores=_int(config.get("cores")) or 1,
        type=str(config.get("cpu") or "kvm64"),
        cpulimit=to_number(config.get("cpulimit")),
        cpuunits=_int(config.get("cpuunits")),
        numa=_enabled(config.get("numa")),
        pending=(
            PendingCpu(**{k: pending.get(k) for k in pending_keys})
            if any(pending.get(k) is not None for k in pending_keys)
            else None
        ),
    )


def parse_memory(config: Mapping[str, Any]) -> MemoryInfo:
    """Parse memory size, balloon target and pending changes.

    The balloon target defaults to the configured memory.
    """
    pending = _pending(config)
    memory = _int(config.get("memory")) or 512
    balloon = config.get("balloon")
    return MemoryInfo(
        memory=memory,
        balloon=_int(balloon) if balloon is not None else _int(config.get("memory")),
        shares=_int(config.get("shares")),
        pending=(
            PendingMemory(memory=pending.get("memory"), balloon=pending.get("balloon"))
            if pending.get("memory") is not None or pending.get("balloon") is not None
            else None
        ),
    )


def parse_disk(key: str, descriptor: Any) -> DiskInfo:
    """
    Parse a ``storage:volume,key=value,...`` disk descriptor.

    Examples
    --------
    >>> d = parse_disk("scsi0", "local-lvm:vm-100-disk-0,size=32G,cache=writeback,iothread=1")
    >>> d.storage, d.size, d.cache, d.iothread
    ('local-lvm', '32G', 'writeback', True)
    """
    text = str(descriptor)
    storage = text.split(",")[0].split(":")[0]
    size = _SIZE.search(text)
    cache = _CACHE.search(text)
    if "format=" in text:
        fmt_match = _FORMAT.search(text)
        fmt = fmt_match.group(1) if fmt_match else None
    else:
        fmt = "raw"
    return DiskInfo(
        id=key,
        storage=storage or "unknown",
        size=size.group(1) if size else "unknown",
        format=fmt,
        cache=cache.group(1) if cache else None,
        iothread="iothread=1" in text,
    )


def parse_network(key: str, descriptor: Any) -> NetworkInfo:
    """
    Parse a ``model=mac,bridge=...,tag=...,firewall=...,rate=...`` descriptor.

    Examples
    --------
    >>> n = parse_network("net0", "virtio=BC:24:11:00:00:01,bridge=vmbr0,tag=20,firewall=1")
    >>> n.model, n.macaddr, n.bridge, n.tag, n.firewall
    ('virtio', 'BC:24:11:00:00:01', 'vmbr0', 20, True)
    """
    fields: dict = {"id": key}
    for part in str(descriptor).split(","):
        name, _, value = part.partition("=")
        if name == "bridge":
            fields["bridge"] = value
        elif name == "tag":
            fields["tag"] = _int(value)
        elif name == "firewall":
            fields["firewall"] = value == "1"
        elif name == "rate":
            fields["rate"] = to_number(value)
        elif name in NET_MODELS:
            fields["model"] = name
            fields["macaddr"] = value
    return NetworkInfo(**fields)


def agent_enabled(value: Any) -> bool:
    """
    Detect an enabled guest agent from ``[enabled=]<0|1>[,...]``.

    Examples
    --------
    >>> agent_enabled("enabled=1,fstrim_cloned_disks=1"), agent_enabled("1"), agent_enabled("0")
    (True, True, False)
    """
    if not value:
        return False
    text = str(value)
    return "enabled=1" in text or text.split(",")[0] == "1"


def parse_options(config: Mapping[str, Any]) -> GuestOptions:
    """Parse the flat options block, applying display defaults."""
    smbios = _SMBIOS_UUID.search(str(config.get("smbios1") or ""))
    return GuestOptions(
        onboot=_enabled(config.get("onboot")),
        protection=_enabled(config.get("protection")),
        startup_order=str(config.get("startup") or "order=any"),
        ostype=str(config.get("ostype") or "other"),
        boot_order=str(config.get("boot") or ""),
        use_tablet=_not_disabled(config.get("tablet")),
        hotplug=str(config.get("hotplug") or "Disk, Network, USB"),
        acpi=_not_disabled(config.get("acpi")),
        kvm_enabled=_not_disabled(config.get("kvm")),
        freeze_cpu=_enabled(config.get("freeze")),
        use_local_time="yes" if _enabled(config.get("localtime")) else "default",
        rtc_start_date=str(config.get("startdate") or "now"),
        smbios_uuid=smbios.group(1) if smbios else "Auto-generated",
        agent_enabled=agent_enabled(config.get("agent")),
        spice_enhancements=str(config.get("spice_enhancements") or "none"),
        vm_state_storage=str(config.get("vmstatestorage") or "Automatic"),
        amd_sev="enabled" if config.get("sev") else "default",
        scsihw=str(config["scsihw"]) if config.get("scsihw") else None,
    )


def parse_guest_config(config: Mapping[str, Any]) -> ParsedGuestConfig:
    """
    Parse every block of a guest configuration.

    Parameters
    ----------
    config : Mapping[str, Any]
        Unwrapped configuration record

    Returns
    -------
    ParsedGuestConfig
        Blocks that parsed successfully; failed blocks are ``None`` and
        failed devices are omitted
    """
    parsed = ParsedGuestConfig(
        name=str(config["name"]) if config.get("name") else None,
        description=str(config.get("description") or ""),
        cpu=_safely("cpu", lambda: parse_cpu(config)),
        memory=_safely("memory", lambda: parse_memory(config)),
        options=_safely("options", lambda: parse_options(config)),
    )
    for key, value in config.items():
        if DISK_KEY.match(key):
            disk = _safely(key, lambda: parse_disk(key, value))
            if disk is not None:
                parsed.disks.append(disk)
        elif NET_KEY.match(key):
            net = _safely(key, lambda: parse_network(key, value))
            if net is not None:
                parsed.networks.append(net)
    return parsed
