"""
Hold enrichment: resolving each pull list entry into a ResolvedHold.

Each hold is resolved as a two-level dependency chain:

    hold record ──> patron, bib
    item        ──> call

The hold record and item lookups run concurrently, then each side's
dependent lookups run concurrently. All holds are resolved at once; the only
bound on concurrency is the RequestGate shared by the client.

A failed lookup drops only its own hold. The result is a HoldOutcome per
hold, so failures never escape the per-hold task.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import EnrichmentError, MissingReferenceError
from .ilsws import IlswsClient, record_fields, record_key
from .models import HoldChain, HoldListEntry, HoldOutcome, ResolvedHold, Session
from .pull_list import embedded_chain

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    """Holds that resolved, and outcomes of those that did not."""

    resolved: list[ResolvedHold] = field(default_factory=list)
    failures: list[HoldOutcome] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.failures)


def first_error(error: BaseException) -> BaseException:
    """Unwrap nested exception groups down to the first leaf exception."""
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


class EnrichmentOrchestrator:
    """
    Fans out the lookups for a branch's holds.

    Thick entries that already embed every report field skip the lookups.
    """

    def __init__(self, client: IlswsClient, on_record_error: str = "drop"):
        """
        Initialize the orchestrator.

        Args:
            client: ILSWS client (its gate bounds concurrency)
            on_record_error: "drop" to leave failed holds out, "abort" to
                raise EnrichmentError for the first failure
        """
        self.client = client
        self.on_record_error = on_record_error

    async def enrich(
        self,
        session: Session,
        entries: list[HoldListEntry],
        branch_key: str | None = None,
    ) -> EnrichmentResult:
        """Resolve every entry. Resolved holds come back in no particular order."""
        outcomes: list[HoldOutcome] = []
        pending: list[HoldListEntry] = []

        for entry in entries:
            chain = embedded_chain(entry)
            if chain is not None:
                outcomes.append(HoldOutcome(entry, resolved=ResolvedHold.from_chain(chain)))
            else:
                pending.append(entry)

        logger.debug(
            f"{len(outcomes)} hold(s) embedded in pull list, {len(pending)} to look up"
        )

        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self.resolve(session, entry)) for entry in pending]
        outcomes.extend(task.result() for task in tasks)

        result = EnrichmentResult()
        for outcome in outcomes:
            if outcome.ok:
                result.resolved.append(outcome.resolved)
            else:
                result.failures.append(outcome)

        if result.failures:
            if self.on_record_error == "abort":
                failed = result.failures[0]
                raise EnrichmentError(
                    f"hold {failed.entry.hold_key} could not be resolved: {failed.error}",
                    branch=branch_key,
                ) from failed.error
            logger.info(f"Dropped {result.errors} hold(s) that could not be resolved")

        return result

    async def resolve(self, session: Session, entry: HoldListEntry) -> HoldOutcome:
        """Resolve one hold. Never raises for lookup failures."""
        try:
            chain = await self.resolve_chain(session, entry)
        except Exception as e:
            error = first_error(e)
            logger.debug(f"Dropping hold {entry.hold_key} (item {entry.item_key}): {error!r}")
            return HoldOutcome(entry, error=error)
        return HoldOutcome(entry, resolved=ResolvedHold.from_chain(chain))

    async def resolve_chain(self, session: Session, entry: HoldListEntry) -> HoldChain:
        """Look up every record a hold depends on."""
        async with asyncio.TaskGroup() as tg:
            hold_side = tg.create_task(self._resolve_hold_record(session, entry.hold_key))
            item_side = tg.create_task(self._resolve_item(session, entry.item_key))

        hold_record, patron, bib = hold_side.result()
        item, call = item_side.result()
        return HoldChain(hold_record=hold_record, item=item, call=call, bib=bib, patron=patron)

    async def _resolve_hold_record(
        self, session: Session, hold_key: str
    ) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        hold = record_fields(await self.client.get_hold_record(session, hold_key))

        patron_key = record_key(hold.get("patron"))
        if patron_key is None:
            raise MissingReferenceError("holdRecord", hold_key, "patron")
        bib_key = record_key(hold.get("bib"))
        if bib_key is None:
            raise MissingReferenceError("holdRecord", hold_key, "bib")

        async with asyncio.TaskGroup() as tg:
            patron = tg.create_task(self.client.get_patron(session, patron_key))
            bib = tg.create_task(self.client.get_bib(session, bib_key))

        return hold, record_fields(patron.result()), record_fields(bib.result())

    async def _resolve_item(
        self, session: Session, item_key: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        item = record_fields(await self.client.get_item(session, item_key))

        call_key = record_key(item.get("call"))
        if call_key is None:
            raise MissingReferenceError("item", item_key, "call")

        call = record_fields(await self.client.get_call(session, call_key))
        return item, call
