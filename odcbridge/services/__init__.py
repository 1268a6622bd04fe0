"""Service layer for on-device component operations."""

from .base import BridgeContext
from .dispatcher import CorrelationDispatcher, Reply, Watch
from .functions import CallResult, FunctionInvokerComponent
from .keypaths import KeyPathComponent, KeyPathRequest, ValueResult, ValuesResult
from .observer import FieldMatch, FieldObserverComponent, ObserveResult
from .registry import RegistryComponent, RegistryResult

__all__ = [
    "BridgeContext",
    "CallResult",
    "CorrelationDispatcher",
    "FieldMatch",
    "FieldObserverComponent",
    "FunctionInvokerComponent",
    "KeyPathComponent",
    "KeyPathRequest",
    "ObserveResult",
    "RegistryComponent",
    "RegistryResult",
    "Reply",
    "ValueResult",
    "ValuesResult",
    "Watch",
]
