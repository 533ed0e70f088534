from __future__ import annotations

from typing import Protocol


class DNSProvider(Protocol):
    async def get_current_target(self, domain: str) -> str: ...

    async def update_record(self, domain: str, new_address: str) -> None: ...
