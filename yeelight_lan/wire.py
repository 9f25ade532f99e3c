#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encoding and decoding of the line-delimited JSON messages exchanged with an appliance
over its TCP command connection.

Requests are written as one JSON object per line, terminated by CR-LF:

    {"id": <int>, "method": "<name>", "params": [...]}

Two kinds of messages are read back, also one per line:

    {"id": <int>, "result": [...]}                                   a command result
    {"id": <int>, "error": {"code": <int>, "message": "<str>"}}      a rejected command
    {"method": "<name>", "params": {...}}                            an unsolicited notification

The codec has no state. The only failure is DecodeError, raised by decode_message().
"""

from __future__ import annotations

import json

from .internal_types import *
from .constants import CRLF
from .exceptions import DecodeError

class ErrorInfo:
    """The error object returned by an appliance that rejects a command."""

    code: int
    message: str

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message

    @classmethod
    def from_json(cls, data: Jsonable) -> ErrorInfo:
        if not isinstance(data, dict):
            raise DecodeError(f"Error object is not a JSON object: {data!r}")
        code = data.get('code', 0)
        if not isinstance(code, int) or isinstance(code, bool):
            raise DecodeError(f"Error code is not an integer: {code!r}")
        message = data.get('message', '')
        if not isinstance(message, str):
            message = json.dumps(message)
        return cls(code, message)

    def to_json(self) -> JsonableDict:
        return dict(code=self.code, message=self.message)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ErrorInfo):
            return False
        return self.code == other.code and self.message == other.message

    def __str__(self) -> str:
        return f"ErrorInfo(code={self.code}, message={self.message!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandRequest:
    """A command sent to an appliance. The id is assigned by the connection that sends it."""

    id: int
    method: str
    params: List[Jsonable]

    def __init__(self, id: int, method: str, params: Optional[Iterable[Jsonable]]=None):
        self.id = id
        self.method = method
        self.params = [] if params is None else list(params)

    def to_json(self) -> JsonableDict:
        return dict(id=self.id, method=self.method, params=self.params)

    @property
    def raw_data(self) -> bytes:
        """The encoded request: a single line of compact JSON terminated by CR-LF."""
        return json.dumps(self.to_json(), separators=(',', ':')).encode('utf-8') + CRLF

    def __str__(self) -> str:
        return f"CommandRequest(id={self.id}, method={self.method!r}, params={self.params!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandResult:
    """The reply to a CommandRequest, correlated to it by id."""

    id: int
    result: List[Jsonable]
    error: Optional[ErrorInfo]

    def __init__(self, id: int, result: Optional[Iterable[Jsonable]]=None, error: Optional[ErrorInfo]=None):
        self.id = id
        self.result = [] if result is None else list(result)
        self.error = error

    @property
    def is_ok(self) -> bool:
        """True iff the appliance accepted the command."""
        return self.error is None

    def to_json(self) -> JsonableDict:
        data: JsonableDict = dict(id=self.id)
        if self.error is None:
            data['result'] = self.result
        else:
            data['error'] = self.error.to_json()
        return data

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CommandResult):
            return False
        return self.id == other.id and self.result == other.result and self.error == other.error

    def __str__(self) -> str:
        if self.error is None:
            return f"CommandResult(id={self.id}, result={self.result!r})"
        return f"CommandResult(id={self.id}, error={self.error})"

    def __repr__(self) -> str:
        return str(self)

class Notification:
    """An unsolicited state-change message pushed by the appliance. It carries
       no id and is never correlated to a request."""

    method: str
    params: Dict[str, str]

    def __init__(self, method: str, params: Optional[Mapping[str, str]]=None):
        self.method = method
        self.params = {} if params is None else dict(params)

    def to_json(self) -> JsonableDict:
        return dict(method=self.method, params=dict(self.params))

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Notification):
            return False
        return self.method == other.method and self.params == other.params

    def __str__(self) -> str:
        return f"Notification(method={self.method!r}, params={self.params!r})"

    def __repr__(self) -> str:
        return str(self)

IncomingMessage = Union[CommandResult, Notification]

def encode_request(id: int, method: str, params: Optional[Iterable[Jsonable]]=None) -> bytes:
    """Encodes a request as a single CR-LF terminated line."""
    return CommandRequest(id, method, params).raw_data

def _param_to_str(value: Jsonable) -> str:
    # Notification params are strings on the wire for most firmware, but some
    # firmware sends bare numbers.
    if isinstance(value, str):
        return value
    return json.dumps(value)

def decode_message(line: Union[bytes, str]) -> IncomingMessage:
    """Decodes one line received from an appliance.

    A JSON object with an "id" member is a CommandResult; an object with a "method"
    member and no "id" is a Notification. Anything else raises DecodeError.
    """
    try:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        data = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Line is not valid JSON: {line!r}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"Line is not a JSON object: {line!r}")

    if 'id' in data:
        id = data['id']
        if not isinstance(id, int) or isinstance(id, bool):
            raise DecodeError(f"Result id is not an integer: {line!r}")
        error: Optional[ErrorInfo] = None
        if data.get('error') is not None:
            error = ErrorInfo.from_json(data['error'])
        result = data.get('result')
        if result is None:
            result = []
        elif not isinstance(result, list):
            result = [result]
        return CommandResult(id, result, error)

    method = data.get('method')
    if isinstance(method, str):
        params = data.get('params')
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise DecodeError(f"Notification params is not a JSON object: {line!r}")
        return Notification(method, { str(k): _param_to_str(v) for k, v in params.items() })

    raise DecodeError(f"Line is neither a result nor a notification: {line!r}")
