from agenthub.monitoring.health_monitor import HealthMonitor

__all__ = ["HealthMonitor"]
