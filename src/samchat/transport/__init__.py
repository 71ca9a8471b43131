# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Transport layer: request/response gateway and push channel."""

from .gateway import TransportGateway
from .push import PushChannel
from .requests import Err, Ok, Request, Response, decode_response, encode_request

__all__ = [
    "TransportGateway",
    "PushChannel",
    "Request",
    "Response",
    "Ok",
    "Err",
    "encode_request",
    "decode_response",
]
