from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ConnectorTaskId:
    """Identifies one task of a connector.

    Attributes:
        connector: Connector name (e.g., "sink-1")
        task: Zero-based task index within the connector
    """

    connector: str
    task: int

    def __post_init__(self) -> None:
        if not self.connector:
            raise ValueError("connector name must be non-empty")
        if self.task < 0:
            raise ValueError("task index must be >= 0")

    def __str__(self) -> str:
        return f"{self.connector}-{self.task}"
