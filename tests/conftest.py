import json
import threading

import pytest
import yaml

from bulk2es.errors import BulkError
from bulk2es.es_client import build_bulk_body


class FakeElasticsearch:
    """In-memory index shared by every sink of a run. Records each request."""

    def __init__(self, index_exists=False, fail_bulk_when=None):
        self.index_exists = index_exists
        self.fail_bulk_when = fail_bulk_when
        self.requests = []
        self.indexed = {}
        self.sinks = []
        self.lock = threading.Lock()

    def sink(self, config):
        sink = FakeSink(self, config)
        with self.lock:
            self.sinks.append(sink)
        return sink

    def record(self, method, path, body=None):
        with self.lock:
            self.requests.append((method, path, body))

    def calls(self, method):
        return [r for r in self.requests if r[0] == method]


class FakeSink:
    def __init__(self, server, config):
        self.server = server
        self.config = config
        self.closed = False

    async def exists_index(self):
        self.server.record("HEAD", f"/{self.config.index_name}")
        return self.server.index_exists

    async def create_index(self, schema):
        self.server.record("PUT", f"/{self.config.index_name}", schema)
        self.server.index_exists = True

    async def submit_chunk(self, chunk):
        body = build_bulk_body(chunk, self.config.id_field_name)
        if self.server.fail_bulk_when is not None and self.server.fail_bulk_when(body):
            raise BulkError("bulk indexing failed. connection refused")
        self.server.record("POST", f"/{self.config.index_name}/_bulk", body)
        lines = body.splitlines()
        with self.server.lock:
            for action, source in zip(lines[::2], lines[1::2]):
                self.server.indexed[json.loads(action)["index"]["_id"]] = json.loads(source)
        return 0

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def write_config(tmp_path):
    """Write a config + schema pair under tmp_path and return the config path."""

    def _write(**overrides):
        schema_path = tmp_path / "schema.json"
        schema_path.write_text(json.dumps({"mappings": {"properties": {"t": {"type": "keyword"}}}}))
        data = {
            "url": "http://localhost:9200",
            "buffer_size": 2,
            "index_name": "docs",
            "schema_file": "schema.json",
            "id_field_name": "id",
        }
        data.update(overrides)
        data = {k: v for k, v in data.items() if v is not None}
        config_path = tmp_path / "config.yml"
        config_path.write_text(yaml.safe_dump(data))
        return config_path

    return _write


def write_ndjson(path, docs):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(d, separators=(",", ":")) + "\n" for d in docs), encoding="utf-8")
    return path
