from starlette.requests import HTTPConnection

from dodone.common.exceptions import DoDoneError
from dodone.core.session import BoardSession


def get_session(conn: HTTPConnection) -> BoardSession:
    session = getattr(conn.app.state, "session", None)
    if session is None:
        raise DoDoneError("Board session is not running", status_code=503)
    return session
