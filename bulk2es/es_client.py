"""Elasticsearch sink: index probe, index creation and bulk submission."""
import json
import logging
from typing import Any, Optional, Sequence, Tuple
from urllib.parse import quote, urlparse

from elastic_transport import TransportError
from elasticsearch import ApiError, AsyncElasticsearch

from bulk2es.config import Config
from bulk2es.errors import BulkError, ConfigError, DocumentError, SinkError

logger = logging.getLogger(__name__)

_COMPACT = (",", ":")
_BULK_HEADERS = {"accept": "application/json", "content-type": "application/x-ndjson"}


def new_client(config: Config) -> AsyncElasticsearch:
    """Return an AsyncElasticsearch client for cloud_id, or a single node at url."""
    if config.cloud_id:
        if config.basic_auth is None:
            raise ConfigError("cloud_id requires user and password")
        return AsyncElasticsearch(
            cloud_id=config.cloud_id,
            basic_auth=config.basic_auth,
            request_timeout=config.request_timeout,
            verify_certs=config.verify_certs,
        )

    parsed = urlparse(config.url or "")
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigError(f"url is not valid. {config.url}")

    kwargs: dict = {"request_timeout": config.request_timeout}
    if parsed.scheme == "https":
        kwargs["verify_certs"] = config.verify_certs
    if config.basic_auth is not None:
        kwargs["basic_auth"] = config.basic_auth
    return AsyncElasticsearch(hosts=[config.url], **kwargs)


def parse_document(line: str, id_field_name: str) -> Tuple[str, dict]:
    """Parse one NDJSON line and return (id, document). Raises DocumentError."""
    try:
        doc = json.loads(line)
    except ValueError as e:
        raise DocumentError(f"Line is not valid JSON. {line!r}") from e
    if not isinstance(doc, dict):
        raise DocumentError(f"Line is not a JSON object. {line!r}")
    doc_id = doc.get(id_field_name)
    if not isinstance(doc_id, str):
        raise DocumentError(f"ID not found in field {id_field_name!r}. {line!r}")
    return doc_id, doc


def build_bulk_body(chunk: Sequence[str], id_field_name: str) -> str:
    """Interleave an index action and the re-serialized source for every line."""
    parts = []
    for line in chunk:
        doc_id, doc = parse_document(line, id_field_name)
        parts.append(json.dumps({"index": {"_id": doc_id}}, separators=_COMPACT, ensure_ascii=False))
        parts.append(json.dumps(doc, separators=_COMPACT, ensure_ascii=False))
    return "".join(p + "\n" for p in parts)


def report_item_errors(body: Any) -> int:
    """Log every failed item of a bulk response. Returns how many failed."""
    if not isinstance(body, dict) or not body.get("errors"):
        return 0
    logger.warning("Bulk Request has some errors.")
    failed = 0
    for item in body.get("items") or []:
        action = item.get("index") if isinstance(item, dict) else None
        if not isinstance(action, dict) or "error" not in action:
            continue
        failed += 1
        error = action["error"]
        if isinstance(error, dict):
            err_type, reason = error.get("type"), error.get("reason")
        else:
            err_type, reason = None, error
        logger.warning(
            "bulk item error id:[%s] type:[%s] reason:[%s]",
            action.get("_id"),
            err_type,
            reason,
        )
    return failed


class SinkClient:
    """Handle onto one Elasticsearch index. Create it inside the event loop that uses it."""

    def __init__(self, config: Config, client: Optional[AsyncElasticsearch] = None) -> None:
        self.config = config
        self.client = client if client is not None else new_client(config)

    async def exists_index(self) -> bool:
        """HEAD /<index>: True on 200, False on 404, SinkError otherwise."""
        index = self.config.index_name
        try:
            resp = await self.client.indices.exists(index=index)
        except ApiError as e:
            status = e.meta.status
            logger.warning("Indices exists request has failed. Status Code is %s.", status)
            raise SinkError(f"Indices exists request failed. status={status}", status=status) from e
        except TransportError as e:
            logger.error("Indices exists request failed... %s", e)
            raise SinkError(f"Indices exists request failed. {e}") from e

        status = resp.meta.status
        if status == 200:
            return True
        if status == 404:
            return False
        logger.warning("Indices exists request has failed. Status Code is %s.", status)
        raise SinkError(f"Indices exists request failed. status={status}", status=status)

    async def create_index(self, schema: Any) -> None:
        """PUT /<index> with the schema as body."""
        index = self.config.index_name
        try:
            await self.client.indices.create(index=index, body=schema)
        except ApiError as e:
            status = e.meta.status
            logger.warning("Create index request has failed. Status Code is %s. %s", status, e.body)
            raise SinkError(f"create index failed. status={status}", status=status) from e
        except TransportError as e:
            logger.error("create index failed. %s", e)
            raise SinkError(f"create index failed. {e}") from e
        logger.info("%s index was created.", index)

    async def submit_chunk(self, chunk: Sequence[str]) -> int:
        """POST /<index>/_bulk for one chunk. Returns the number of failed items."""
        body = build_bulk_body(chunk, self.config.id_field_name)
        logger.info("Sending %d documents... ", len(chunk))
        try:
            # bulk() in the client sends PUT; the bulk endpoint is POST
            resp = await self.client.perform_request(
                "POST",
                f"/{quote(self.config.index_name, safe=',')}/_bulk",
                headers=_BULK_HEADERS,
                body=body,
            )
        except ApiError as e:
            status = e.meta.status
            logger.warning("Bulk request has failed. Status Code is %s.", status)
            raise BulkError(f"bulk indexing failed. status={status}", status=status) from e
        except TransportError as e:
            logger.warning("Bulk request has failed. %s", e)
            raise BulkError(f"bulk indexing failed. {e}") from e

        logger.info("response : %s", resp.meta.status)
        failed = report_item_errors(resp.body)
        logger.info("Finished bulk request.")
        return failed

    async def close(self) -> None:
        await self.client.close()
