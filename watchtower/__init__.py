"""Process-lifecycle orchestration for long-running asyncio services.

Provides:
- Readiness gating over queued startup tasks
- Health aggregation over registered probes
- Beacons that hold shutdown while work is in flight
- An ordered, deadline-guarded shutdown sequence
- Connection draining for network listeners
"""

from watchtower.config import Settings
from watchtower.core.beacons import Beacon, BeaconRegistry
from watchtower.core.drain import (
    Connection,
    ConnectionDrainManager,
    ConnectionObserver,
    Listener,
)
from watchtower.core.errors import (
    DeadlineExceeded,
    HealthProbeFailed,
    HealthProbeTimeout,
    LogicalMisuseError,
    ResidualActivityFault,
    ShutdownTaskFailed,
    SignalWithoutLoop,
    StartupTaskFailed,
    TaskFailure,
    WatchtowerError,
)
from watchtower.core.events import EventEmitter, LifecycleEvent
from watchtower.core.health import HealthAggregator, HealthProbe
from watchtower.core.lifecycle import Watchtower, get_watchtower, reset_watchtower
from watchtower.core.readiness import GateOutcome, ReadinessGate
from watchtower.core.shutdown import ShutdownSequencer, ShutdownTask
from watchtower.core.signals import ProcessSignalSource, SignalSource
from watchtower.core.state import LifecycleState

__all__ = [
    "Beacon",
    "BeaconRegistry",
    "Connection",
    "ConnectionDrainManager",
    "ConnectionObserver",
    "DeadlineExceeded",
    "EventEmitter",
    "GateOutcome",
    "HealthAggregator",
    "HealthProbe",
    "HealthProbeFailed",
    "HealthProbeTimeout",
    "LifecycleEvent",
    "LifecycleState",
    "Listener",
    "LogicalMisuseError",
    "ProcessSignalSource",
    "ReadinessGate",
    "ResidualActivityFault",
    "Settings",
    "ShutdownSequencer",
    "ShutdownTask",
    "ShutdownTaskFailed",
    "SignalSource",
    "SignalWithoutLoop",
    "StartupTaskFailed",
    "TaskFailure",
    "Watchtower",
    "WatchtowerError",
    "get_watchtower",
    "reset_watchtower",
]
