"""
Hold item pull list retrieval.

The pull list comes back in one of two shapes depending on whether the
request asked for included fields:

    thin:  {"fields": {"holdRecord": {"key": "1"}, "item": {"key": "2:1:1"}}}
    thick: {"fields": {"holdRecord": {"key": "1", "fields": {...}},
                       "item": {"key": "2:1:1", "fields": {"call": {...}, ...}}}}

Both are normalized into HoldListEntry right after the fetch.
"""

import logging
from typing import Any

from .errors import PullListError
from .ilsws import IlswsClient, record_fields, record_key
from .models import Branch, HoldChain, HoldListEntry, Session

logger = logging.getLogger(__name__)


async def fetch_pull_list(
    client: IlswsClient,
    session: Session,
    branch: Branch,
    include_fields: bool = False,
) -> list[HoldListEntry]:
    """
    Fetch and normalize the pull list for one branch.

    Raises:
        PullListError: If the request fails or the response is malformed
    """
    try:
        data = await client.get_pull_list(session, branch.key, include_fields=include_fields)
    except Exception as e:
        raise PullListError(f"pull list request failed: {e}", branch=branch.key) from e

    raw_entries = record_fields(data).get("pullList")
    if raw_entries is None:
        raise PullListError("pull list response has no pullList field", branch=branch.key)

    entries = [normalize_entry(raw, branch.key) for raw in raw_entries]
    logger.info(f"Pull list for {branch.key}: {len(entries)} hold(s)")
    return entries


def normalize_entry(raw: dict[str, Any], branch_key: str | None = None) -> HoldListEntry:
    """Convert a raw pull list entry (thin or thick) to a HoldListEntry."""
    fields = record_fields(raw)
    hold_ref = fields.get("holdRecord")
    item_ref = fields.get("item")

    hold_key = record_key(hold_ref)
    item_key = record_key(item_ref)
    if hold_key is None or item_key is None:
        raise PullListError(
            f"pull list entry without hold or item key: {raw!r}", branch=branch_key
        )

    return HoldListEntry(
        hold_key=hold_key,
        item_key=item_key,
        hold_record=record_fields(hold_ref) or None,
        item=record_fields(item_ref) or None,
    )


def embedded_chain(entry: HoldListEntry) -> HoldChain | None:
    """
    Build a HoldChain from the fields embedded in a thick entry.

    Returns None when anything the report needs is missing, in which case
    the hold has to be resolved with lookups.
    """
    hold = entry.hold_record
    item = entry.item
    if not hold or not item:
        return None
    if "holdType" not in hold or "status" not in hold:
        return None
    if "barcode" not in item or not record_fields(item.get("currentLocation")):
        return None

    call = record_fields(item.get("call"))
    bib = record_fields(call.get("bib"))
    if "callNumber" not in call or "title" not in bib:
        return None

    return HoldChain(hold_record=hold, item=item, call=call, bib=bib)
