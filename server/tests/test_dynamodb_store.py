import asyncio
import json

import boto3
import pytest
from botocore.stub import Stubber

import rooms
from store import DynamoDBStore, StoreError

TABLE = "planning-poker-rooms"


@pytest.fixture
def dynamo():
    resource = boto3.resource(
        "dynamodb", region_name="us-east-1",
        aws_access_key_id="testing", aws_secret_access_key="testing",
    )
    with Stubber(resource.meta.client) as stubber:
        yield DynamoDBStore(resource.Table(TABLE)), stubber
        stubber.assert_no_pending_responses()


def _room_document():
    room = rooms.new_room("Sprint", False, None)
    rooms.upsert_user(room, "a", "Alice")
    rooms.set_vote(room, "a", "8")
    return room, json.dumps(room.to_document())


def test_save_writes_room_as_json(dynamo):
    store, stubber = dynamo
    room, doc = _room_document()
    stubber.add_response("put_item", {}, {
        "TableName": TABLE,
        "Item": {"pk": {"S": "sprint-ab12"}, "room": {"S": doc}},
    })
    asyncio.run(store.save("sprint-ab12", room))


def test_load_reads_room_and_missing_item(dynamo):
    store, stubber = dynamo
    room, doc = _room_document()
    stubber.add_response(
        "get_item",
        {"Item": {"pk": {"S": "sprint-ab12"}, "room": {"S": doc}}},
        {"TableName": TABLE, "Key": {"pk": {"S": "sprint-ab12"}}},
    )
    stubber.add_response(
        "get_item", {},
        {"TableName": TABLE, "Key": {"pk": {"S": "gone-0000"}}},
    )

    loaded = asyncio.run(store.load("sprint-ab12"))
    assert loaded.to_document() == room.to_document()
    assert asyncio.run(store.load("gone-0000")) is None


def test_delete_removes_item(dynamo):
    store, stubber = dynamo
    stubber.add_response(
        "delete_item", {},
        {"TableName": TABLE, "Key": {"pk": {"S": "sprint-ab12"}}},
    )
    asyncio.run(store.delete("sprint-ab12"))


def test_list_slugs_follows_pagination(dynamo):
    store, stubber = dynamo
    stubber.add_response(
        "scan",
        {"Items": [{"pk": {"S": "a-0001"}}, {"pk": {"S": "b-0002"}}],
         "LastEvaluatedKey": {"pk": {"S": "b-0002"}}},
        {"TableName": TABLE, "ProjectionExpression": "pk"},
    )
    stubber.add_response(
        "scan",
        {"Items": [{"pk": {"S": "c-0003"}}]},
        {"TableName": TABLE, "ProjectionExpression": "pk",
         "ExclusiveStartKey": {"pk": {"S": "b-0002"}}},
    )
    assert asyncio.run(store.list_slugs()) == ["a-0001", "b-0002", "c-0003"]


def test_client_errors_become_store_errors(dynamo):
    store, stubber = dynamo
    stubber.add_client_error("get_item", "ProvisionedThroughputExceededException")
    with pytest.raises(StoreError):
        asyncio.run(store.load("sprint-ab12"))


def test_corrupt_item_becomes_store_error(dynamo):
    store, stubber = dynamo
    stubber.add_response(
        "get_item",
        {"Item": {"pk": {"S": "bad-0000"}, "room": {"S": "{not json"}}},
        {"TableName": TABLE, "Key": {"pk": {"S": "bad-0000"}}},
    )
    with pytest.raises(StoreError):
        asyncio.run(store.load("bad-0000"))
