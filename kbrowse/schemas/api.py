from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ShareResponse(BaseModel):
    state: str = Field(description="Query state encoded for a location query string")
    search_path: str = Field(description="Path and query of the upstream search request")
    curl: str = Field(description="curl command reproducing the search")


class ServerConfigs(BaseModel):
    """Options the KBrowse server offers for the query form."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bootstrap_servers: Dict[str, str] = Field(default_factory=dict, alias="bootstrap-servers")
    value_deserializers: Dict[str, str] = Field(default_factory=dict, alias="value-deserializers")
    schema_registry_urls: Optional[Dict[str, str]] = Field(default=None, alias="schema-registry-urls")
    bootstrap_topics: Dict[str, List[str]] = Field(default_factory=dict, alias="bootstrap-topics")


class TopicsResponse(BaseModel):
    topics: List[str]
    selected: Optional[str] = None


class DefaultPartitionResponse(BaseModel):
    key: str
    partition: int
