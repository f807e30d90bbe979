from gateway.workers.directory import (
    ByIdentifier,
    ExecutionUnit,
    ExecutionUnitDirectory,
    FixedSingleton,
    RandomFromPool,
    UnitSelector,
)

__all__ = [
    "ByIdentifier",
    "ExecutionUnit",
    "ExecutionUnitDirectory",
    "FixedSingleton",
    "RandomFromPool",
    "UnitSelector",
]
