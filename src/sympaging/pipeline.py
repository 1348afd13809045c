"""
Branch processing pipeline for sympaging.

Branches are processed one at a time. Each branch runs:

    login -> pull list -> enrichment -> aggregation -> sort -> reports

Only the enrichment step runs requests concurrently, bounded by the shared
RequestGate. A BranchError (login, pull list, record abort, report writing)
ends the branch; depending on policy it then ends the run or the run moves
on to the next branch.
"""

import logging
import time

from .aggregate import aggregate
from .config import SympagingConfig
from .enrichment import EnrichmentOrchestrator
from .errors import BranchError
from .ilsws import IlswsClient
from .models import Branch, BranchStats, RunStats, Session
from .pull_list import fetch_pull_list
from .report import ReportEmitter, reportable_rows
from .sorting import sort_rows

logger = logging.getLogger(__name__)


class Pipeline:
    """
    Runs the hold pull list workflow for configured branches.

    Counters for every branch processed so far are kept in `stats`, also
    when the run ends early.
    """

    def __init__(
        self,
        config: SympagingConfig,
        client: IlswsClient,
        emitter: ReportEmitter | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Full configuration
            client: ILSWS client; its gate is shared by all branches
            emitter: Optional ReportEmitter (for testing)
        """
        self.config = config
        self.client = client
        self.orchestrator = EnrichmentOrchestrator(
            client, on_record_error=config.policy.on_record_error
        )
        self.emitter = emitter or ReportEmitter(config.output)
        self.stats = RunStats()
        self._session: Session | None = None

    def branches(self, only: list[str] | None = None) -> list[Branch]:
        """Configured branches, optionally limited to the given keys."""
        branches = [Branch(key, name) for key, name in self.config.branches.items()]
        if only:
            wanted = set(only)
            branches = [b for b in branches if b.key in wanted]
        return branches

    async def run(self, branches: list[Branch]) -> RunStats:
        """
        Process branches sequentially.

        Raises:
            BranchError: For a failed branch when the branch policy is 'abort'
        """
        try:
            for branch in branches:
                stats = BranchStats(branch=branch.key)
                self.stats.add(stats)

                try:
                    await self.process_branch(branch, stats)
                except BranchError as e:
                    if e.branch is None:
                        e.branch = branch.key
                    stats.failed = True
                    stats.errors += 1
                    stats.error = str(e)
                    self._session = None
                    logger.exception(f"Branch {branch.key} failed")
                    if self.config.policy.on_branch_error == "abort":
                        raise

                logger.info(f"{branch.key}: {stats.elapsed_ms}ms")
        finally:
            self.log_summary()

        return self.stats

    async def process_branch(self, branch: Branch, stats: BranchStats) -> None:
        """Run the full workflow for one branch, recording counters in stats."""
        requests_before = self.client.gate.requests
        started = time.monotonic()

        try:
            session = await self._login()
            entries = await fetch_pull_list(
                self.client,
                session,
                branch,
                include_fields=self.config.ilsws.include_fields,
            )

            enrichment = await self.orchestrator.enrich(session, entries, branch_key=branch.key)
            stats.errors += enrichment.errors

            rows = reportable_rows(aggregate(enrichment.resolved))
            rows = sort_rows(rows, self.config.sort_order)
            stats.rows = len(rows)

            self.emitter.emit(branch, rows)
        finally:
            stats.requests = self.client.gate.requests - requests_before
            stats.elapsed_ms = int((time.monotonic() - started) * 1000)

    async def _login(self) -> Session:
        if self.config.policy.reuse_session and self._session is not None:
            return self._session

        session = await self.client.login(
            self.config.ilsws.username,
            self.config.ilsws.get_password(),
        )
        self._session = session
        return session

    def log_summary(self) -> None:
        logger.info(
            f"Run complete: concurrency={self.client.gate.max_concurrent_requests}, "
            f"errors={self.stats.errors}, rows={self.stats.rows}, "
            f"requests={self.stats.requests}"
        )
