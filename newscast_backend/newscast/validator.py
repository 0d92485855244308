import asyncio
import logging
from typing import Dict

from .models import ValidationReport
from .settings import MAX_ACTIVE_SESSIONS

logger = logging.getLogger(__name__)


class ResourceValidator:
    """Pre-flight checks run before a pipeline is admitted. Read-only."""

    def __init__(self, presenters, search, script_writer, voice, renderer_service, sessions,
                 max_active_sessions: int = MAX_ACTIVE_SESSIONS):
        self.presenters = presenters
        self.services = {
            "search": search,
            "script": script_writer,
            "audio": voice,
            "video": renderer_service,
        }
        self.sessions = sessions
        self.max_active_sessions = max_active_sessions

    async def _probe(self, name: str, service) -> bool:
        try:
            return bool(await service.test_connection())
        except Exception as e:
            logger.error(f"Health probe for {name} raised: {e}")
            return False

    async def check_connections(self) -> Dict[str, bool]:
        names = list(self.services)
        results = await asyncio.gather(*(self._probe(n, self.services[n]) for n in names))
        status = dict(zip(names, results))
        status["all_connected"] = all(results)
        return status

    async def validate(self, presenter_id: int, keyword: str) -> ValidationReport:
        report = ValidationReport()

        ok, error = self.presenters.validate(presenter_id)
        if not ok:
            report.errors.append(error)

        report.api_status = await self.check_connections()
        if not report.api_status["all_connected"]:
            down = [n for n, up in report.api_status.items() if n != "all_connected" and not up]
            report.errors.append(f"Services unavailable: {', '.join(down)}")

        active = self.sessions.active_count()
        if active >= self.max_active_sessions:
            report.concurrency_limited = True
            report.errors.append(f"Concurrent session limit reached ({active}/{self.max_active_sessions})")

        report.valid = not report.errors
        if report.valid:
            logger.info(f"Pre-flight passed for presenter {presenter_id} / '{keyword}'")
        else:
            logger.warning(f"Pre-flight failed for presenter {presenter_id} / '{keyword}': {report.errors}")
        return report
