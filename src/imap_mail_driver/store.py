"""Contract of the collaborating store that persists connection credentials."""

from typing import Protocol


class ConnectionStore(Protocol):
    """Storage of connection records, owned outside the driver.

    The driver only ever asks it to forget a connection whose credentials
    the server rejected.
    """

    async def delete_active_connection(self, user_id: str) -> None: ...
