from __future__ import annotations

from typing import Optional

import aiohttp

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=15)


class HttpSessionMixin:
    """Lazily created ``aiohttp.ClientSession`` shared by one client object."""

    _session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
