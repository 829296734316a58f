"""Create the target index from the schema file unless it already exists."""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Union

from bulk2es.config import Config
from bulk2es.errors import InitError, SchemaError, SinkError
from bulk2es.es_client import SinkClient

logger = logging.getLogger(__name__)


def load_schema(path: Union[str, Path]) -> Any:
    """Load the index-creation body. The JSON is returned as-is."""
    logger.info("schema file is %s", path)
    path = Path(path)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise SchemaError(f"schema file is not found. {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise SchemaError(f"schema file cannot be read. {path}: {e}") from e
    except ValueError as e:
        raise SchemaError(f"schema file is not valid JSON. {path}: {e}") from e


async def bootstrap_index(sink: SinkClient, schema_file: Union[str, Path]) -> bool:
    """Create the index when missing. Returns True when it was created."""
    index = sink.config.index_name
    if await sink.exists_index():
        logger.info("%s index already exists. skip initialization phase.", index)
        return False
    schema = load_schema(schema_file)
    logger.info("%s index is creating...", index)
    await sink.create_index(schema)
    return True


async def _initialize(config: Config, client_factory: Callable[[Config], SinkClient]) -> bool:
    sink = client_factory(config)
    try:
        return await bootstrap_index(sink, config.schema_file)
    finally:
        await sink.close()


def initialize_index(
    config: Config,
    client_factory: Callable[[Config], SinkClient] = SinkClient,
) -> bool:
    """Run the one-time index bootstrap on its own event loop.

    Raises InitError when the probe or the creation fails, SchemaError when
    the schema file cannot be loaded.
    """
    try:
        return asyncio.run(_initialize(config, client_factory))
    except SinkError as e:
        raise InitError(f"{config.index_name} index initialization failed. {e}") from e
