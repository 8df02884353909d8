"""
This module defines all fibengine features using a unified registry system.
The CLI and the API server both dispatch through it.
"""

from typing import (
    Dict,
    Any,
    Callable,
    List,
    Optional,
    TypeVar,
    Generic,
)
from dataclasses import dataclass
import logging

from fibengine.config import resolve_limits
from fibengine.device import FibonacciDevice, SeekMode
from fibengine.doubling import fibonacci_fast, is_exact
from fibengine.error_msg import BusyError, FibEngineError, fail_index
from fibengine.sequence import build_table

logger = logging.getLogger("fibengine.features")

T = TypeVar("T")


class OperationResult(Generic[T]):
    """Wrapper for operation results with success/error handling"""

    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        busy: bool = False,
    ):
        self.success = success
        self.data = data
        self.error = error
        self.busy = busy

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, busy: bool = False) -> "OperationResult[T]":
        return cls(success=False, error=error, busy=busy)


@dataclass
class Feature:
    """Base class for all fibengine features"""

    name: str
    description: str
    handler: Callable
    cli_options: Optional[Dict[str, Any]] = None
    api_endpoint: Optional[Dict[str, Any]] = None


class FeatureRegistry:
    """Registry for all fibengine features"""

    _features: Dict[str, Feature] = {}

    @classmethod
    def register(cls, feature: Feature) -> Feature:
        """Register a new feature"""
        cls._features[feature.name] = feature
        return feature

    @classmethod
    def get_feature(cls, name: str) -> Optional[Feature]:
        """Get a feature by name"""
        return cls._features.get(name)

    @classmethod
    def get_all_features(cls) -> Dict[str, Feature]:
        """Get all registered features"""
        return cls._features.copy()


# ----------------- Feature Handlers -----------------


def handle_version(**kwargs) -> OperationResult[Dict[str, str]]:
    """Handle version request"""
    from fibengine.version import get_version

    return OperationResult.ok({"version": get_version()})


def handle_read(
    index: int,
    whence: str = "set",
    device: Optional[FibonacciDevice] = None,
    **kwargs,
) -> OperationResult[Dict[str, Any]]:
    """Open a session, seek, read one value and close again"""
    try:
        mode = SeekMode.parse(whence)
        if device is None:
            device = FibonacciDevice(limits=resolve_limits())
        handle = device.open()
        try:
            cursor = device.seek(handle, index, mode)
            result = device.read_value(handle)
        finally:
            device.close(handle)
        logger.debug("Read index %d (%d digits)", cursor, result.length)
        return OperationResult.ok(
            {"index": cursor, "value": result.text, "length": result.length}
        )
    except BusyError as e:
        return OperationResult.fail(str(e), busy=True)
    except (FibEngineError, ValueError) as e:
        return OperationResult.fail(str(e))


def handle_fast(index: int, **kwargs) -> OperationResult[Dict[str, Any]]:
    """Compute F(index) with the 64-bit fast-doubling engine"""
    try:
        value = fibonacci_fast(index)
    except FibEngineError as e:
        return OperationResult.fail(str(e))
    return OperationResult.ok(
        {"index": index, "value": value, "exact": is_exact(index)}
    )


def handle_sequence(
    upto: Optional[int] = None,
    device: Optional[FibonacciDevice] = None,
    **kwargs,
) -> OperationResult[List[Dict[str, Any]]]:
    """Read every index from 0 to ``upto`` under a single session"""
    try:
        if device is None:
            device = FibonacciDevice(limits=resolve_limits())
        if upto is not None and upto < 0:
            fail_index("Last index must be non-negative", upto)
        last = device.max_index if upto is None else upto
        handle = device.open()
        try:
            target = device.seek(handle, last, SeekMode.SET)
            table = build_table(
                target,
                max_index=device.max_index,
                capacity=device.limits.digit_capacity,
            )
        finally:
            device.close(handle)
        return OperationResult.ok(
            [{"index": i, "value": value.to_decimal()} for i, value in enumerate(table)]
        )
    except BusyError as e:
        return OperationResult.fail(str(e), busy=True)
    except (FibEngineError, ValueError) as e:
        return OperationResult.fail(str(e))


# Register all features
version_feature = FeatureRegistry.register(
    Feature(
        name="version",
        description="Get the fibengine version",
        handler=handle_version,
        api_endpoint={
            "path": "/version",
            "methods": ["GET"],
            "response_model": Dict[str, str],
        },
    )
)

read_feature = FeatureRegistry.register(
    Feature(
        name="read",
        description="Read the exact decimal Fibonacci value at a cursor position",
        handler=handle_read,
        cli_options={
            "index": {
                "type": int,
                "required": True,
                "help": "Seek offset",
            },
            "whence": {
                "type": str,
                "required": False,
                "default": "set",
                "help": "Seek origin: set, cur or end",
            },
        },
    )
)

fast_feature = FeatureRegistry.register(
    Feature(
        name="fast",
        description="Compute a Fibonacci value with 64-bit fast doubling",
        handler=handle_fast,
        cli_options={
            "index": {
                "type": int,
                "required": True,
                "help": "Fibonacci index",
            },
        },
        api_endpoint={
            "path": "/fast/{index}",
            "methods": ["GET"],
            "response_model": Dict[str, Any],
        },
    )
)

sequence_feature = FeatureRegistry.register(
    Feature(
        name="sequence",
        description="Read every Fibonacci value from index 0 upwards",
        handler=handle_sequence,
        cli_options={
            "upto": {
                "type": int,
                "required": False,
                "help": "Last index to read (default: the maximum index)",
            },
        },
    )
)
