"""Renewal, request pipeline and termination for the process session."""

from .coordinator import (
    RenewalCoordinator,
    RenewalFailure,
    RenewalPhase,
    RenewalState,
    ScheduledRenewal,
)
from .identity import IdentityClient, IdentityGateway
from .manager import SessionManager
from .pipeline import RequestPipeline, RequestSpec, RequestTelemetryEvent
from .terminator import SessionTerminator, TerminationEvent, TerminationReason

__all__ = [
    "IdentityClient",
    "IdentityGateway",
    "RenewalCoordinator",
    "RenewalFailure",
    "RenewalPhase",
    "RenewalState",
    "RequestPipeline",
    "RequestSpec",
    "RequestTelemetryEvent",
    "ScheduledRenewal",
    "SessionManager",
    "SessionTerminator",
    "TerminationEvent",
    "TerminationReason",
]
