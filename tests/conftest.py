"""Shared pytest fixtures for sympaging tests."""

import asyncio
from dataclasses import dataclass

import httpx
import pytest

from sympaging.config import IlswsConfig, OutputConfig, SympagingConfig
from sympaging.gate import RequestGate
from sympaging.ilsws import IlswsClient

TITLE_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:output method="html" encoding="UTF-8"/>
  <xsl:template match="/paging_list">
    <html>
      <body>
        <h1>Title holds: <xsl:value-of select="@location"/> (<xsl:value-of select="@count"/>)</h1>
        <p class="timestamp"><xsl:value-of select="@timestamp"/></p>
        <ul>
          <xsl:for-each select="record">
            <li><xsl:value-of select="barcode"/>|<xsl:value-of select="title"/>|<xsl:value-of select="loc_desc"/></li>
          </xsl:for-each>
        </ul>
      </body>
    </html>
  </xsl:template>
</xsl:stylesheet>
"""

ITEM_XSL = TITLE_XSL.replace("Title holds", "Item holds")


@dataclass
class FakeHold:
    """One hold in the fake ILSWS catalog."""

    hold_key: str
    item_key: str
    title: str
    barcode: str
    hold_type: str = "COPY"
    status: str = "PLACED"
    author: str = "Author, Test"
    call_number: str = "FIC TEST"
    volume: str | None = None
    location: str = "STACKS"
    location_description: str = "Main stacks"
    patron_key: str = "p1"

    @property
    def bib_key(self) -> str:
        return f"b{self.hold_key}"

    @property
    def call_key(self) -> str:
        return f"c{self.hold_key}"


def make_holds() -> list[FakeHold]:
    return [
        FakeHold("1", "101:1:1", title="Beloved", barcode="3001", author="Morrison, Toni"),
        FakeHold("2", "102:1:1", title="Middlemarch", barcode="3002", author="Eliot, George"),
        FakeHold("3", "103:1:1", title="Dune", barcode="3003", hold_type="TITLE"),
    ]


def _ref(resource: str, key: str) -> dict:
    return {"resource": resource, "key": key}


class FakeIlsws:
    """
    In-memory ILSWS served through httpx.MockTransport.

    Paths in `fail_paths` always answer 500. `latency` adds an await before
    each response so concurrent requests overlap.
    """

    def __init__(self, holds: list[FakeHold] | None = None, latency: float = 0.0):
        self.holds = holds if holds is not None else make_holds()
        self.latency = latency
        self.fail_paths: set[str] = set()
        self.fail_login = False
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.session_tokens: list[str | None] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/symws/")
        self.calls.append(path)
        self.session_tokens.append(request.headers.get("x-sirs-sessionToken"))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            return self.respond(request, path)
        finally:
            self.in_flight -= 1

    def respond(self, request: httpx.Request, path: str) -> httpx.Response:
        if path in self.fail_paths:
            return httpx.Response(500, json={"messageList": [{"message": "boom"}]})

        if path == "rest/security/loginUser":
            if self.fail_login:
                return httpx.Response(401, json={"messageList": [{"code": "unableToLogin"}]})
            return httpx.Response(200, json={"sessionToken": "tok-123"})

        if path.startswith("circulation/holdItemPullList/key/"):
            thick = "includeFields" in request.url.params
            return httpx.Response(200, json=self.pull_list(thick))

        record = self.records().get(path)
        if record is None:
            return httpx.Response(404, json={"messageList": [{"code": "recordNotFound"}]})
        return httpx.Response(200, json=record)

    def pull_list(self, thick: bool) -> dict:
        entries = []
        for hold in self.holds:
            hold_ref = _ref("/circulation/holdRecord", hold.hold_key)
            item_ref = _ref("/catalog/item", hold.item_key)
            if thick:
                hold_ref["fields"] = {"holdType": hold.hold_type, "status": hold.status}
                item_ref["fields"] = {
                    "barcode": hold.barcode,
                    "currentLocation": {
                        **_ref("/policy/location", hold.location),
                        "fields": {"description": hold.location_description},
                    },
                    "call": {
                        **_ref("/catalog/call", hold.call_key),
                        "fields": {
                            "callNumber": hold.call_number,
                            "volumetric": hold.volume,
                            "bib": {
                                **_ref("/catalog/bib", hold.bib_key),
                                "fields": {
                                    "title": hold.title,
                                    "author": hold.author,
                                    "titleControlNumber": f"a{hold.hold_key}",
                                },
                            },
                        },
                    },
                }
            entries.append(
                {
                    "resource": "/circulation/holdItemPullList/pullList",
                    "fields": {"holdRecord": hold_ref, "item": item_ref},
                }
            )
        return {
            "resource": "/circulation/holdItemPullList",
            "key": "MAIN",
            "fields": {"pullList": entries},
        }

    def records(self) -> dict[str, dict]:
        records: dict[str, dict] = {}
        for hold in self.holds:
            records[f"circulation/holdRecord/key/{hold.hold_key}"] = {
                **_ref("/circulation/holdRecord", hold.hold_key),
                "fields": {
                    "holdType": hold.hold_type,
                    "status": hold.status,
                    "bib": _ref("/catalog/bib", hold.bib_key),
                    "item": _ref("/catalog/item", hold.item_key),
                    "patron": _ref("/user/patron", hold.patron_key),
                },
            }
            records[f"catalog/item/key/{hold.item_key}"] = {
                **_ref("/catalog/item", hold.item_key),
                "fields": {
                    "barcode": hold.barcode,
                    "call": _ref("/catalog/call", hold.call_key),
                    "currentLocation": {
                        **_ref("/policy/location", hold.location),
                        "fields": {"description": hold.location_description},
                    },
                },
            }
            records[f"catalog/bib/key/{hold.bib_key}"] = {
                **_ref("/catalog/bib", hold.bib_key),
                "fields": {
                    "title": hold.title,
                    "author": hold.author,
                    "titleControlNumber": f"a{hold.hold_key}",
                },
            }
            records[f"catalog/call/key/{hold.call_key}"] = {
                **_ref("/catalog/call", hold.call_key),
                "fields": {"callNumber": hold.call_number, "volumetric": hold.volume},
            }
            records[f"user/patron/key/{hold.patron_key}"] = {
                **_ref("/user/patron", hold.patron_key),
                "fields": {"barcode": "21234", "displayName": "Patron, Test"},
            }
        return records


@pytest.fixture
def fake_ilsws():
    return FakeIlsws()


@pytest.fixture
def ilsws_config():
    return IlswsConfig(
        hostname="ils.test",
        port=443,
        webapp="symws",
        client_id="TestClient",
        username="pager",
        password="secret",
    )


@pytest.fixture
def gate():
    return RequestGate(max_concurrent_requests=2, max_attempts=3, base_delay=0)


def make_client(config: IlswsConfig, gate: RequestGate, fake: FakeIlsws) -> IlswsClient:
    http = httpx.AsyncClient(base_url=config.base_url, transport=fake.transport())
    return IlswsClient(config, gate, http_client=http)


@pytest.fixture
async def client(ilsws_config, gate, fake_ilsws):
    ilsws = make_client(ilsws_config, gate, fake_ilsws)
    yield ilsws
    await ilsws.aclose()


@pytest.fixture
def output_config(tmp_path):
    """Output directories and stylesheets under tmp_path."""
    xsl_dir = tmp_path / "xsl"
    xsl_dir.mkdir()
    (xsl_dir / "title.xsl").write_text(TITLE_XSL)
    (xsl_dir / "item.xsl").write_text(ITEM_XSL)

    html_dir = tmp_path / "html"
    html_dir.mkdir()
    (html_dir / "no_title_list.html").write_text("<p>No title holds</p>")
    (html_dir / "no_item_list.html").write_text("<p>No item holds</p>")

    return OutputConfig(
        csv_dir=tmp_path / "csv",
        html_dir=html_dir,
        xsl_title=xsl_dir / "title.xsl",
        xsl_item=xsl_dir / "item.xsl",
        utc_offset_hours=-8,
    )


@pytest.fixture
def config(ilsws_config, output_config):
    return SympagingConfig(
        ilsws=ilsws_config,
        branches={"MAIN": "Main_Library"},
        sort_order=["title", "barcode"],
        output=output_config,
    )
