"""
Tails file exchange: wire mapping of TailsRequest/TailsResponse plus a
directory-backed reader (usable as a tails server handler) and writer.

Tails files are named by their hash, so only alphanumeric names are accepted.
"""
import base64
import os
from typing import Any, Dict
from .errors import TailsError
from .types import TailsRequest, TailsResponse


def _check_name(name: str) -> str:
    if not name or not name.isalnum():
        raise TailsError(f'Invalid tails file name {name!r}. Tails files must be named by hash.')
    return name


def tails_request_to_wire(request: TailsRequest) -> Dict[str, Any]:
    return {'tailsHash': request.tails_hash}


def tails_request_from_wire(data: Dict[str, Any]) -> TailsRequest:
    return TailsRequest(tails_hash=data['tailsHash'])


def tails_response_to_wire(response: TailsResponse) -> Dict[str, Any]:
    return {
        'tailsHash': response.tails_hash,
        'tails': {name: base64.b64encode(content).decode('ascii')
                  for name, content in response.tails.items()},
    }


def tails_response_from_wire(data: Dict[str, Any]) -> TailsResponse:
    return TailsResponse(
        tails_hash=data['tailsHash'],
        tails={name: base64.b64decode(content)
               for name, content in (data.get('tails') or {}).items()},
    )


class TailsReader:
    def __init__(self, path: str):
        self.path = path

    def read(self, request: TailsRequest) -> TailsResponse:
        name = _check_name(request.tails_hash)
        file_path = os.path.join(self.path, name)
        if not os.path.isfile(file_path):
            return TailsResponse(request.tails_hash, {})
        with open(file_path, 'rb') as f:
            return TailsResponse(request.tails_hash, {name: f.read()})

    __call__ = read


class TailsWriter:
    def __init__(self, path: str):
        self.path = path

    def write(self, response: TailsResponse) -> None:
        os.makedirs(self.path, exist_ok=True)
        for name, content in response.tails.items():
            with open(os.path.join(self.path, _check_name(name)), 'wb') as f:
                f.write(content)
