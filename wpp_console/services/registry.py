"""Registry of mounted console sessions, one per device."""

import asyncio
import logging

from wpp_console.core.exceptions import NotFoundError
from wpp_console.services.backend_client import BackendClient
from wpp_console.services.console import ConsoleSession
from wpp_console.services.event_journal import EventJournal

logger = logging.getLogger(__name__)


class ConsoleRegistry:
    """Manages console sessions for all mounted devices."""

    def __init__(self, backend: BackendClient | None = None, journal: EventJournal | None = None):
        self.backend = backend or BackendClient()
        self.journal = journal
        self.sessions: dict[str, ConsoleSession] = {}
        self._lock = asyncio.Lock()

    async def mount(
        self, device_id: str, session_id: str, agent_id: str, agent_name: str
    ) -> ConsoleSession:
        """Start a console session for a device, or return the running one."""
        async with self._lock:
            if device_id in self.sessions:
                return self.sessions[device_id]

            session = ConsoleSession(
                device_id,
                session_id,
                agent_id,
                agent_name,
                backend=self.backend,
                journal=self.journal,
            )
            await session.start()
            self.sessions[device_id] = session
            logger.info(f"Mounted console for device {device_id} (session {session_id})")
            return session

    async def unmount(self, device_id: str) -> None:
        """Stop and forget a device's console session."""
        async with self._lock:
            session = self.sessions.pop(device_id, None)
        if session is None:
            return
        await session.stop()
        logger.info(f"Unmounted console for device {device_id}")

    def get(self, device_id: str) -> ConsoleSession:
        session = self.sessions.get(device_id)
        if session is None:
            raise NotFoundError("Console session", device_id)
        return session

    async def close(self) -> None:
        """Stop all sessions."""
        for device_id in list(self.sessions.keys()):
            await self.unmount(device_id)
