"""Async gRPC server that mirrors the queue inspection and trigger webhook."""

from __future__ import annotations

import grpc
from google.protobuf import json_format, struct_pb2
from pydantic import ValidationError

from kartqueue.enterprise.core import KartQueueError, UnknownCase
from kartqueue.server.api.schemas.catalog import CaseQueueSchema
from kartqueue.server.api.schemas.orders import FulfillmentSchema
from kartqueue.services import DispatchPlatform, TriggerEvent


def _to_struct(data: dict) -> struct_pb2.Struct:
    struct = struct_pb2.Struct()
    struct.update(data)
    return struct


class DispatchGrpcService:
    def __init__(self, platform: DispatchPlatform) -> None:
        self.platform = platform

    async def GetCaseQueue(self, request: struct_pb2.Struct, context: grpc.aio.ServicerContext) -> struct_pb2.Struct:  # noqa: N802
        case_id = json_format.MessageToDict(request).get("case_id")
        if not case_id:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details("case_id is required")
            return struct_pb2.Struct()
        try:
            await self.platform.catalog.get_case(case_id)
        except UnknownCase as exc:
            context.set_code(grpc.StatusCode.NOT_FOUND)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        schema = CaseQueueSchema.from_queue(case_id, await self.platform.queue.snapshot(case_id))
        return _to_struct(schema.model_dump(mode="json"))

    async def DeliverEvent(self, request: struct_pb2.Struct, context: grpc.aio.ServicerContext) -> struct_pb2.Struct:  # noqa: N802
        try:
            event = TriggerEvent.model_validate(json_format.MessageToDict(request))
        except ValidationError as exc:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        try:
            result = await self.platform.deliver(event)
        except KartQueueError as exc:
            context.set_code(grpc.StatusCode.ABORTED)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        if result is None:
            return _to_struct({"fulfilled": False})
        return _to_struct({"fulfilled": True, **FulfillmentSchema.from_result(result).model_dump(mode="json")})


class _DispatchHandler(grpc.GenericRpcHandler):
    def __init__(self, servicer: DispatchGrpcService) -> None:
        self.servicer = servicer
        self._method_handlers = {
            "GetCaseQueue": grpc.unary_unary_rpc_method_handler(
                servicer.GetCaseQueue,
                request_deserializer=struct_pb2.Struct.FromString,
                response_serializer=struct_pb2.Struct.SerializeToString,
            ),
            "DeliverEvent": grpc.unary_unary_rpc_method_handler(
                servicer.DeliverEvent,
                request_deserializer=struct_pb2.Struct.FromString,
                response_serializer=struct_pb2.Struct.SerializeToString,
            ),
        }

    def service(self, handler_call_details: grpc.HandlerCallDetails):
        service_name, _, method = handler_call_details.method.lstrip("/").partition("/")
        if service_name != "kartqueue.Dispatch":
            return None
        return self._method_handlers.get(method)


def create_grpc_server(platform: DispatchPlatform, port: int = 50051) -> grpc.aio.Server:
    server = grpc.aio.server()
    handler = _DispatchHandler(DispatchGrpcService(platform))
    server.add_generic_rpc_handlers((handler,))
    server.add_insecure_port(f"[::]:{port}")
    return server


async def start_grpc_server(platform: DispatchPlatform, port: int = 50051) -> grpc.aio.Server:
    server = create_grpc_server(platform, port)
    await server.start()
    return server
