"""
Shared fixtures: an in-memory stand-in for the Mangal REST API.

FakeMangalServer implements the transport interface (``get(path, params)``)
with listing filters, paging, Content-Range totals, 404s and a call log,
so fetcher/resolver/client tests can count exactly which requests were made.
"""

import copy
import threading
import time
from collections import defaultdict

import pytest

from mangalnet import MangalClient
from mangalnet.retrieval.transport import TransportResponse
from mangalnet.retrieval.errors import retrieval_error


RESOURCES = ("dataset", "reference", "network", "interaction", "attribute", "node", "taxonomy")


def _encode(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class FakeMangalServer:
    """In-memory REST API with request logging."""

    def __init__(self):
        self.records = {resource: {} for resource in RESOURCES}
        self.calls = []
        self.failures = {}
        self.raw_singles = {}
        self.delay = 0.0
        self._lock = threading.Lock()

    # --- setup helpers ---

    def add(self, resource, record):
        self.records[resource][record["id"]] = record
        return record

    def fail_page(self, resource, page, times=1, status=503):
        """Make the next ``times`` requests for a listing page fail."""
        self.failures[(resource, page)] = [times, status]

    # --- transport interface ---

    def get(self, path, params=()):
        params = list(params)
        with self._lock:
            self.calls.append((path, params))
        if self.delay:
            time.sleep(self.delay)

        parts = path.strip("/").split("/")
        resource = parts[0]
        if len(parts) == 2:
            return self._single(resource, int(parts[1]))
        return self._listing(resource, params)

    def close(self):
        pass

    def _single(self, resource, entity_id):
        if (resource, entity_id) in self.raw_singles:
            return TransportResponse(payload=self.raw_singles[(resource, entity_id)])
        record = self.records[resource].get(entity_id)
        if record is None:
            raise retrieval_error(f"GET {resource}/{entity_id} returned HTTP 404", status=404)
        return TransportResponse(payload=copy.deepcopy(record))

    def _listing(self, resource, params):
        count = int(dict(params)["count"])
        page = int(dict(params)["page"])
        filters = defaultdict(list)
        for key, value in params:
            if key not in ("count", "page"):
                filters[key].append(value)

        with self._lock:
            failure = self.failures.get((resource, page))
            if failure and failure[0] > 0 and count != 1:
                failure[0] -= 1
                raise retrieval_error(f"GET {resource} returned HTTP {failure[1]}", status=failure[1])

        matching = [r for r in self.records[resource].values() if self._matches(r, filters)]
        start = page * count
        chunk = matching[start:start + count]
        end = start + max(len(chunk), 1) - 1
        headers = {"Content-Range": f"{resource} {start}-{end}/{len(matching)}"}
        return TransportResponse(payload=copy.deepcopy(chunk), headers=headers)

    @staticmethod
    def _matches(record, filters):
        for key, values in filters.items():
            if key == "q":
                text = " ".join(str(v) for v in record.values() if isinstance(v, str)).lower()
                if not all(v.lower() in text for v in values):
                    return False
            elif _encode(record.get(key)) not in values:
                return False
        return True

    # --- call log queries ---

    def listing_pages(self, resource):
        """Page indices requested for ``resource`` (count requests excluded)."""
        pages = []
        for path, params in self.calls:
            p = dict(params)
            if path == resource and p.get("count") != "1":
                pages.append(int(p["page"]))
        return pages

    def count_requests(self, resource):
        return sum(
            1 for path, params in self.calls
            if path == resource and dict(params).get("count") == "1"
        )

    def single_requests(self, resource, entity_id=None):
        prefix = f"{resource}/"
        return [
            path for path, _ in self.calls
            if path.startswith(prefix) and (entity_id is None or path == f"{prefix}{entity_id}")
        ]


def build_world(server):
    """
    Small but complete database:

        reference 1 <- dataset 1 <- networks 42, 43
        taxonomy 1..7, attributes 1 (presence/absence), 2 (biomass), 3 (probability)
        network 42: nodes 101..105, interactions 1001..1010 (6 predation, 4 mutualism)
        network 43: nodes 201..202, interaction 2001 (predation)
    """
    server.add("reference", {"id": 1, "doi": "10.1000/xyz", "author": "Elton", "year": "1927"})
    server.add("dataset", {"id": 1, "name": "elton_1927", "ref_id": 1, "public": True})
    server.add("network", {
        "id": 42, "name": "bear_island", "dataset_id": 1, "public": True,
        "geom": {"type": "Point", "coordinates": [19.0, 74.4]},
    })
    server.add("network", {"id": 43, "name": "spitsbergen", "dataset_id": 1, "public": True})
    for i in range(1, 8):
        server.add("taxonomy", {"id": i, "name": f"Species {i}", "rank": "species", "gbif": 1000 + i})
    server.add("attribute", {"id": 1, "name": "presence/absence", "unit": None})
    server.add("attribute", {"id": 2, "name": "biomass", "unit": "g"})
    server.add("attribute", {"id": 3, "name": "interaction probability", "unit": "probability"})

    for i, node_id in enumerate(range(101, 106), start=1):
        server.add("node", {
            "id": node_id, "original_name": f"sp{i}", "node_level": "taxon",
            "network_id": 42, "taxonomy_id": i,
        })
    server.add("node", {"id": 201, "original_name": "a", "network_id": 43, "taxonomy_id": 6})
    server.add("node", {"id": 202, "original_name": "b", "network_id": 43, "taxonomy_id": 7})

    pairs = [
        (101, 102), (101, 103), (102, 103), (102, 104), (103, 104),
        (103, 105), (104, 105), (105, 101), (104, 101), (102, 105),
    ]
    for n, (src, tgt) in enumerate(pairs):
        server.add("interaction", {
            "id": 1001 + n,
            "network_id": 42,
            "node_from": src,
            "node_to": tgt,
            "attr_id": 1,
            "value": 1,
            "type": "predation" if n < 6 else "mutualism",
            "direction": "directed",
        })
    server.add("interaction", {
        "id": 2001, "network_id": 43, "node_from": 201, "node_to": 202,
        "attr_id": 1, "value": 1, "type": "predation", "direction": "directed",
    })
    return server


@pytest.fixture
def server():
    """Empty fake server."""
    return FakeMangalServer()


@pytest.fixture
def world():
    """Fake server holding the build_world() records."""
    return build_world(FakeMangalServer())


@pytest.fixture
def client(world):
    """Client over the populated fake server."""
    c = MangalClient(transport=world, page_size=4)
    yield c
    c.close()
