"""Tamper-evident registry of sensor devices and their aggregate windows."""
from .ids import (
    DerivedAddress,
    EventId,
    create_address,
    derive_aggregate_address,
    derive_device_address,
    find_address,
    generate_event_id,
    is_on_curve,
    uuid7,
)
from .enums import AccountKind, ErrorCode
from .errors import LedgerError
from .models import AggregateStats, DeviceRecord, MetricSummary, WindowAggregateRecord, WindowSummary
from .signer import SignedRequest, Signer, sign_request, verify_signer
from .backend import LedgerBackend

__all__ = [
    "DerivedAddress",
    "EventId",
    "create_address",
    "derive_aggregate_address",
    "derive_device_address",
    "find_address",
    "generate_event_id",
    "is_on_curve",
    "uuid7",
    "AccountKind",
    "ErrorCode",
    "LedgerError",
    "AggregateStats",
    "DeviceRecord",
    "MetricSummary",
    "WindowAggregateRecord",
    "WindowSummary",
    "SignedRequest",
    "Signer",
    "sign_request",
    "verify_signer",
    "LedgerBackend",
]
