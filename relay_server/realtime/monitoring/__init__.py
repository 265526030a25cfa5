"""Connection liveness monitoring."""

from .liveness_monitor import LivenessMonitor, SweepReport

__all__ = ["LivenessMonitor", "SweepReport"]
