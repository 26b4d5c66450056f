import grpc
import pytest
from google.protobuf import json_format, struct_pb2

from kartqueue.server.grpc.server import create_grpc_server


def _struct(data: dict) -> struct_pb2.Struct:
    struct = struct_pb2.Struct()
    struct.update(data)
    return struct


@pytest.mark.asyncio
async def test_grpc_queue_inspection_and_event_delivery(platform, floor):
    await platform.catalog.seed(floor, users=platform.users)
    await platform.queue.enqueue("case-drill", "alice", "C1")
    await platform.queue.enqueue("case-drill", "bob", "A3")

    server = create_grpc_server(platform, port=50071)
    await server.start()
    try:
        async with grpc.aio.insecure_channel("localhost:50071") as channel:
            get_queue = channel.unary_unary(
                "/kartqueue.Dispatch/GetCaseQueue",
                request_serializer=struct_pb2.Struct.SerializeToString,
                response_deserializer=struct_pb2.Struct.FromString,
            )
            queue = json_format.MessageToDict(await get_queue(_struct({"case_id": "case-drill"})))
            assert queue["queue_count"] == 2
            assert [entry["user_id"] for entry in queue["entries"]] == ["alice", "bob"]

            deliver = channel.unary_unary(
                "/kartqueue.Dispatch/DeliverEvent",
                request_serializer=struct_pb2.Struct.SerializeToString,
                response_deserializer=struct_pb2.Struct.FromString,
            )
            event = {"kind": "case_availability_changed", "case_id": "case-drill", "is_available": True}
            first = json_format.MessageToDict(await deliver(_struct(event)))
            assert first["fulfilled"] is True
            assert first["user_id"] == "alice"
            assert first["kart_id"] == "kart-a2"

            again = json_format.MessageToDict(await deliver(_struct(event)))
            assert again == {"fulfilled": False}

            with pytest.raises(grpc.aio.AioRpcError) as excinfo:
                await get_queue(_struct({"case_id": "case-ghost"}))
            assert excinfo.value.code() == grpc.StatusCode.NOT_FOUND

            with pytest.raises(grpc.aio.AioRpcError) as excinfo:
                await deliver(_struct({"kind": "nonsense"}))
            assert excinfo.value.code() == grpc.StatusCode.INVALID_ARGUMENT
    finally:
        await server.stop(0)
