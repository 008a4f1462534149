"""Shared fakes for the Gamers Cove test-suite."""
import json
from unittest.mock import MagicMock

import requests


def make_response(status: int = 200, body=None, reason: str = 'OK') -> requests.Response:
    """Build a real :class:`requests.Response` carrying *body* as JSON."""
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp.url = 'http://backend.test/api'
    if body is None:
        resp._content = b''
    elif isinstance(body, (bytes, str)):
        resp._content = body.encode() if isinstance(body, str) else body
    else:
        resp._content = json.dumps(body).encode()
    resp.headers['Content-Type'] = 'application/json'
    return resp


def make_session(*responses) -> MagicMock:
    """A fake :class:`requests.Session` whose ``request`` returns *responses* in order."""
    session = MagicMock()
    if len(responses) == 1:
        session.request.return_value = responses[0]
    else:
        session.request.side_effect = list(responses)
    return session


def sent_headers(session: MagicMock, call_index: int = -1) -> dict:
    return session.request.call_args_list[call_index].kwargs['headers']
