from urllib.parse import parse_qsl, urlsplit

import pytest

from kbrowse.core.errors import QueryStateDecodeError
from kbrowse.schemas.query import QueryState
from kbrowse.services.query_codec import (
    build_curl_command,
    build_path,
    build_search_params,
    decode_state,
    encode_state,
)

FULL = QueryState(
    key="^user-[0-9]+$",
    val_regex='"status":"paid"',
    bootstrap_servers="kafka-1:9092,kafka-2:9092",
    topic="orders",
    relative_offset=-250,
    follow=True,
    default_partition=True,
    value_deserializer="avro",
    schema_registry_url="http://registry:8081",
    partitions="0,3",
)


@pytest.mark.parametrize(
    "state",
    [
        QueryState(),
        QueryState(topic="orders"),
        QueryState(topic="orders", relative_offset=0, follow=True),
        QueryState(key="k", partitions="1,2", value_deserializer="string"),
        QueryState(val_regex="100% & more?", schema_registry_url="http://r/?a=b"),
        FULL,
    ],
)
def test_decode_inverts_encode(state):
    assert decode_state(encode_state(state)) == state


def test_encoded_state_uses_share_link_field_names():
    decoded = decode_state(
        '?{"key":"k","valRegex":"v","bootstrapServers":"b","topic":"t","relativeOffset":"-5",'
        '"follow":true,"defaultPartition":false,"valueDeserializer":"d",'
        '"schemaRegistryURL":"s","partitions":"1"}'
    )
    assert decoded == QueryState(
        key="k",
        val_regex="v",
        bootstrap_servers="b",
        topic="t",
        relative_offset=-5,
        follow=True,
        value_deserializer="d",
        schema_registry_url="s",
        partitions="1",
    )


def test_decode_defaults_missing_and_ignores_unknown_fields():
    decoded = decode_state('{"topic":"orders","relativeOffset":"","colour":"blue","key":null}')
    assert decoded == QueryState(topic="orders")
    assert decoded.relative_offset is None
    assert decoded.key == ""


def test_decode_empty_input_gives_defaults():
    assert decode_state("") == QueryState()
    assert decode_state("?") == QueryState()


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"relativeOffset":"soon"}'])
def test_decode_rejects_bad_input(text):
    with pytest.raises(QueryStateDecodeError):
        decode_state(text)


def test_query_state_is_frozen():
    state = QueryState(topic="orders")
    with pytest.raises(Exception):
        state.topic = "other"


def test_search_params_only_include_set_fields():
    params = build_search_params(QueryState(topic="orders", bootstrap_servers="b"), 10000)
    assert params == {"bootstrap-servers": "b", "topics": "orders", "print-offset": "10000"}


def test_search_params_wrap_value_regex_but_not_key_regex():
    params = build_search_params(FULL, 500)
    assert params["key-regex"] == "^user-[0-9]+$"
    assert params["val-regex"] == '.*"status":"paid".*'
    assert params["relative-offset"] == "-250"
    assert params["follow"] == "true"
    assert params["default-partition"] == "true"
    assert params["partitions"] == "0,3"
    assert params["value-deserializer"] == "avro"
    assert params["schema-registry-url"] == "http://registry:8081"
    assert list(params)[:3] == ["bootstrap-servers", "topics", "print-offset"]


def test_zero_offset_is_sent():
    assert build_search_params(QueryState(relative_offset=0), 1)["relative-offset"] == "0"


def test_build_path_round_trips_through_url_parsing():
    path = build_path("search", FULL, 10000)
    parts = urlsplit(path)
    assert parts.path == "/search"
    assert dict(parse_qsl(parts.query)) == build_search_params(FULL, 10000)


def test_curl_command():
    command = build_curl_command("http://localhost:4000/", QueryState(topic="orders"), 10000)
    assert command == 'curl "http://localhost:4000/search?bootstrap-servers=&topics=orders&print-offset=10000"'
