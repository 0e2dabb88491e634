from __future__ import annotations

from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from sqlalchemy.orm import Session

from config import Settings, get_settings
from services import InternalError, UserDirectory, UserService


class HttpUserDirectory:
    """Checks user existence against a remote users service."""

    def __init__(self, base_url: str, timeout: Optional[float] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = (
            timeout if timeout is not None else get_settings().users_timeout_secs
        )

    def exists(self, user_id: int) -> bool:
        url = f"{self.base_url}/api/users/{user_id}"
        req = Request(url, headers={"Accept": "application/json"})
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return 200 <= resp.status < 300
        except HTTPError as exc:
            if exc.code == 404:
                return False
            raise InternalError(
                f"Users service returned {exc.code} for user {user_id}"
            ) from exc
        except (URLError, TimeoutError) as exc:
            raise InternalError(f"Users service unreachable at {url}") from exc


def user_directory_for(
    session: Session, settings: Optional[Settings] = None
) -> UserDirectory:
    settings = settings or get_settings()
    if settings.users_service_url:
        return HttpUserDirectory(
            settings.users_service_url, timeout=settings.users_timeout_secs
        )
    return UserService(session)
