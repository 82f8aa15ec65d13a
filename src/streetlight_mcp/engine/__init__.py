"""Engine layer: command dispatch, alert evaluation, and the engine facade."""

from .alerts import AlertEvaluator, ThresholdSet
from .dispatcher import CommandDispatcher
from .service import DeviceProtocolEngine
