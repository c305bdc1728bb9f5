"""A gRPC server interceptor that rejects calls beyond a rate limit."""

from __future__ import annotations

from typing import Any, Callable, Protocol

import grpc


class Limiter(Protocol):
    """Anything that can tell whether one more call is allowed now."""

    def allow(self) -> bool: ...


_FACTORIES = {
    (False, False): grpc.unary_unary_rpc_method_handler,
    (False, True): grpc.unary_stream_rpc_method_handler,
    (True, False): grpc.stream_unary_rpc_method_handler,
    (True, True): grpc.stream_stream_rpc_method_handler,
}


def _rejecting(handler: grpc.RpcMethodHandler, method: str) -> grpc.RpcMethodHandler:
    message = f"{method} is rejected by grpc rate limit middleware, please retry later."

    def reject(request: Any, context: grpc.ServicerContext) -> None:
        context.abort(grpc.StatusCode.RESOURCE_EXHAUSTED, message)

    factory = _FACTORIES[(bool(handler.request_streaming), bool(handler.response_streaming))]
    return factory(
        reject,
        request_deserializer=handler.request_deserializer,
        response_serializer=handler.response_serializer,
    )


class RateLimitInterceptor(grpc.ServerInterceptor):
    """Passes calls through while the limiter allows them; aborts the rest."""

    def __init__(self, limiter: Limiter) -> None:
        self.limiter = limiter

    def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], grpc.RpcMethodHandler | None],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler | None:
        handler = continuation(handler_call_details)
        if handler is None or self.limiter.allow():
            return handler
        return _rejecting(handler, handler_call_details.method)