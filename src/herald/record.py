"""Directory-facing description of the local game server."""

from dataclasses import dataclass

_COUNT_FIELDS = frozenset({"port", "player_count", "player_capacity"})


@dataclass
class ServerRecord:
    """What the directory knows about this server.

    ``uuid`` is fixed once assigned.  The remaining fields may be changed
    between operations; doing so never contacts the directory by itself.
    """
    uuid: str
    name: str = "Untitled Server"
    port: int = 7777
    player_count: int = 0
    player_capacity: int = 0
    extra: str = ""

    def __setattr__(self, name, value):
        if name == "uuid" and "uuid" in self.__dict__:
            raise AttributeError("ServerRecord.uuid cannot be reassigned")
        if name in _COUNT_FIELDS and value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")
        super().__setattr__(name, value)

    def add_fields(self, key: str) -> dict[str, str]:
        """Form fields for the ``add`` endpoint."""
        return {
            "serverKey": key,
            "serverUuid": self.uuid,
            "serverName": self.name,
            "serverPort": str(self.port),
            "serverPlayers": str(self.player_count),
            "serverCapacity": str(self.player_capacity),
            "serverExtras": self.extra,
        }

    def update_fields(self, key: str) -> dict[str, str]:
        """Form fields for the ``update`` endpoint.

        The port is left out: the directory keys entries on address and
        port, so changing it means removing and registering again.
        """
        return {
            "serverKey": key,
            "serverUuid": self.uuid,
            "serverName": self.name,
            "serverPlayers": str(self.player_count),
            "serverCapacity": str(self.player_capacity),
            "serverExtras": self.extra,
        }

    def remove_fields(self, key: str) -> dict[str, str]:
        return {"serverKey": key, "serverUuid": self.uuid}
