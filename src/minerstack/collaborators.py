"""Interfaces of the external collaborators the mining stack depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

DEFAULT_TELEMETRY_ID = "unknown_miner"


@dataclass(frozen=True)
class WalletKeys:
    view_key: str
    spend_key: str


class WalletIdentity(Protocol):
    """Owner of the wallet address and keys; key generation and storage live outside the core."""

    def get_address(self) -> str: ...

    def get_keys(self) -> WalletKeys: ...


@dataclass(frozen=True)
class StaticWalletIdentity:
    address: str
    keys: WalletKeys

    def get_address(self) -> str:
        return self.address

    def get_keys(self) -> WalletKeys:
        return self.keys


@dataclass(frozen=True)
class HardwareParameters:
    cpu: Mapping[str, Any] = field(default_factory=dict)
    gpu: Mapping[str, Any] = field(default_factory=dict)


class HardwareMonitor(Protocol):
    def read_hardware_parameters(self) -> HardwareParameters: ...


class NullHardwareMonitor:
    def read_hardware_parameters(self) -> HardwareParameters:
        return HardwareParameters()


class TelemetryIdProvider(Protocol):
    def get_unique_string(self) -> str: ...


def telemetry_id_or_default(provider: Optional[TelemetryIdProvider]) -> str:
    value = provider.get_unique_string() if provider is not None else ""
    return value or DEFAULT_TELEMETRY_ID


__all__ = [
    "DEFAULT_TELEMETRY_ID",
    "HardwareMonitor",
    "HardwareParameters",
    "NullHardwareMonitor",
    "StaticWalletIdentity",
    "TelemetryIdProvider",
    "WalletIdentity",
    "WalletKeys",
    "telemetry_id_or_default",
]
