from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryState(BaseModel):
    """All parameters of one search submission.

    Instances are frozen: a new submission always builds a new QueryState.
    The camelCase aliases are the keys of the shareable JSON form.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    key: str = Field(
        default="",
        examples=["user-42"],
        description="Regex applied to record keys",
    )
    val_regex: str = Field(
        default="",
        alias="valRegex",
        examples=["checkout"],
        description="Regex matched anywhere inside record values",
    )
    bootstrap_servers: str = Field(
        default="",
        alias="bootstrapServers",
        examples=["kafka-1:9092,kafka-2:9092"],
        description="Bootstrap servers of the cluster to search",
    )
    topic: str = Field(default="", examples=["orders"], description="Topic to search")
    relative_offset: Optional[int] = Field(
        default=None,
        alias="relativeOffset",
        examples=[-100],
        description="Offset from the earliest record, or from the latest when negative",
    )
    follow: bool = Field(default=False, description="Keep the search open for new records")
    default_partition: bool = Field(
        default=False,
        alias="defaultPartition",
        description="Only subscribe to the partition the key hashes to",
    )
    value_deserializer: str = Field(default="", alias="valueDeserializer")
    schema_registry_url: str = Field(default="", alias="schemaRegistryURL")
    partitions: str = Field(
        default="",
        examples=["0,3,7"],
        description="Comma separated list of partitions to follow",
    )

    @field_validator(
        "key",
        "val_regex",
        "bootstrap_servers",
        "topic",
        "value_deserializer",
        "schema_registry_url",
        "partitions",
        mode="before",
    )
    @classmethod
    def _null_text_is_empty(cls, value):
        return "" if value is None else value

    @field_validator("follow", "default_partition", mode="before")
    @classmethod
    def _null_flag_is_false(cls, value):
        return False if value is None else value

    @field_validator("relative_offset", mode="before")
    @classmethod
    def _blank_offset_is_unset(cls, value):
        # The offset comes from a free text box, so "" means "not set".
        if isinstance(value, str) and not value.strip():
            return None
        return value
