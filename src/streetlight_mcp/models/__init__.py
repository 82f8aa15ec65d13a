"""Data models for schedules, telemetry, and alerts."""

from .time_policy import TimePolicy, Stage
from .telemetry import BoxState, PowerSample, LeakageSample, POWER_SCALE
from .alerts import Alert, AlertKind, LeakageAlertType
