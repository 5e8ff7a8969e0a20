"""Tests for the Cosmos DB document store against a mocked container."""

from unittest.mock import MagicMock

import pytest
from azure.core import MatchConditions
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from core.data import DocumentNotFound, PreconditionFailed, QueryOptions
from use_cases.exchange.cosmos_client import CosmosDocumentStore


@pytest.fixture
def container():
    return MagicMock()


@pytest.fixture
def store(container):
    return CosmosDocumentStore(container)


def test_read_missing_returns_none(store, container):
    container.read_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")
    assert store.read("EXC-1") is None
    container.read_item.assert_called_once_with(item="EXC-1", partition_key="EXC-1")


def test_query_is_parameterized(store, container):
    container.query_items.return_value = iter([{"id": "EXC-1"}])

    docs = store.query(QueryOptions(filters={"ownerId": "USR-1"}, order_by="createdAt", order_desc=True, limit=5))

    assert docs == [{"id": "EXC-1"}]
    query, = container.query_items.call_args.args
    kwargs = container.query_items.call_args.kwargs
    assert query == "SELECT * FROM c WHERE c.ownerId = @p0 ORDER BY c.createdAt DESC OFFSET 0 LIMIT @limit"
    assert kwargs["parameters"] == [{"name": "@p0", "value": "USR-1"}, {"name": "@limit", "value": 5}]


def test_replace_uses_etag_match_condition(store, container):
    store.replace({"id": "EXC-1", "status": "approved", "_etag": '"old"', "_rid": "x"}, etag='"old"')

    kwargs = container.replace_item.call_args.kwargs
    assert kwargs["item"] == "EXC-1"
    assert kwargs["body"] == {"id": "EXC-1", "status": "approved"}
    assert kwargs["etag"] == '"old"'
    assert kwargs["match_condition"] == MatchConditions.IfNotModified


def test_replace_conflict_and_missing(store, container):
    container.replace_item.side_effect = CosmosAccessConditionFailedError(status_code=412, message="stale")
    with pytest.raises(PreconditionFailed):
        store.replace({"id": "EXC-1"}, etag='"old"')

    container.replace_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="gone")
    with pytest.raises(DocumentNotFound):
        store.replace({"id": "EXC-1"}, etag='"old"')


def test_create_duplicate(store, container):
    container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="exists")
    with pytest.raises(PreconditionFailed):
        store.create({"id": "EXC-1"})


def test_delete(store, container):
    assert store.delete("EXC-1", etag='"e1"') is True
    kwargs = container.delete_item.call_args.kwargs
    assert kwargs["match_condition"] == MatchConditions.IfNotModified

    container.delete_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="gone")
    assert store.delete("EXC-1") is False
