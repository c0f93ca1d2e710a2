"""
In-memory session cache with idle-TTL eviction.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from infrastructure.monitoring.logging_service import get_logger
from services.chat_service.models import Session


class SessionCache:
    """
    Sessions keyed by id. A session idle longer than ``idle_ttl_seconds``
    is dropped by ``sweep``; the durable store keeps its history.
    """

    def __init__(self, idle_ttl_seconds: float = 3600, sweep_interval_seconds: float = 600):
        self.logger = get_logger(__name__)
        self.idle_ttl = timedelta(seconds=idle_ttl_seconds)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._sessions: Dict[str, Session] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def put(self, session: Session):
        self._sessions[session.id] = session

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def values(self) -> List[Session]:
        return list(self._sessions.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Evict idle sessions; returns how many were removed"""
        now = now or datetime.now()
        expired = [sid for sid, s in self._sessions.items() if now - s.last_activity_at > self.idle_ttl]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            self.logger.info(f"Evicted {len(expired)} idle sessions", extra={"remaining": len(self._sessions)})
        return len(expired)

    async def _sweep_forever(self):
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                self.logger.error(f"Session sweep failed: {e}")

    def start_sweeper(self) -> asyncio.Task:
        """Start the periodic sweep on the running loop; calling twice keeps one task"""
        loop = asyncio.get_running_loop()
        if self._sweeper is None or self._sweeper.done() or self._sweeper.get_loop() is not loop:
            self._sweeper = loop.create_task(self._sweep_forever())
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()
