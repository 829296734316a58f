"""Connection and index settings loaded from a YAML file."""
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, model_validator

from bulk2es.errors import ConfigError

logger = logging.getLogger(__name__)


class Config(BaseModel):
    """Target index and Elasticsearch connection settings."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: Optional[str] = Field(default=None, description="Elasticsearch node URL")
    cloud_id: Optional[str] = Field(default=None, description="Elastic Cloud ID, wins over url")
    user: Optional[str] = Field(default=None, description="Basic-auth user")
    password: Optional[str] = Field(default=None, description="Basic-auth password")
    index_name: str = Field(description="Target index")
    schema_file: str = Field(description="JSON body used to create the index")
    id_field_name: str = Field(description="Document field holding the _id")
    buffer_size: StrictInt = Field(gt=0, description="Documents per bulk request")
    request_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    verify_certs: bool = Field(default=True, description="Verify TLS certificates")

    @model_validator(mode="after")
    def _check_connection(self) -> "Config":
        if self.cloud_id:
            if not (self.user and self.password):
                raise ValueError("cloud_id requires both user and password")
        elif not self.url:
            raise ValueError("url is required unless cloud_id is set")
        return self

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        """(user, password) when both are set, otherwise None."""
        if self.user and self.password:
            return (self.user, self.password)
        return None


def load_config(path: Union[str, Path]) -> Config:
    """Read and validate the YAML config. Raises ConfigError on any problem."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file is not found. {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"config file cannot be read. {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"config file cannot be parsed. {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config file must be a mapping: {path}")

    try:
        config = Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e

    # Relative schema paths are relative to the config file
    schema = Path(config.schema_file)
    if not schema.is_absolute():
        config = config.model_copy(update={"schema_file": str(path.parent / schema)})

    logger.debug("url: %s", config.url)
    logger.debug("cloud_id: %s", config.cloud_id)
    logger.debug("buffer_size: %s", config.buffer_size)
    return config
