from __future__ import annotations

import logging
import re

from .plan import PAPERLESS_PORT
from .targets import ExecutionTarget

log = logging.getLogger(__name__)

CONTAINER = "paperless-ngx"
LIVENESS_URL = f"http://localhost:{PAPERLESS_PORT}"
TOKEN_RE = re.compile(r"^[a-f0-9]{40}$")


def token_script(username: str) -> str:
    return "\n".join(
        [
            "from rest_framework.authtoken.models import Token",
            "from django.contrib.auth.models import User",
            f"t, _ = Token.objects.get_or_create(user=User.objects.get(username={username!r}))",
            "print(t.key)",
        ]
    )


def token_command(username: str) -> list[str]:
    return ["docker", "exec", CONTAINER, "python3", "manage.py", "shell", "-c", token_script(username)]


def parse_token(output: str | None) -> str | None:
    for line in (output or "").splitlines():
        candidate = line.strip()
        if TOKEN_RE.match(candidate):
            return candidate
    return None


def fetch_api_token(target: ExecutionTarget, username: str) -> str | None:
    """One get-or-create attempt; None unless the output holds a 40-hex token."""
    res = target.run(token_command(username))
    if res.returncode != 0:
        log.debug("token command failed: %s", (res.stderr or "").strip())
        return None
    return parse_token(res.stdout)


def is_live(target: ExecutionTarget, *, timeout: float = 3.0) -> bool:
    return target.http_ok(LIVENESS_URL, timeout=timeout)


def manual_token_steps(username: str) -> list[str]:
    return [
        f"Run: docker exec -it {CONTAINER} python3 manage.py shell",
        "Then: from rest_framework.authtoken.models import Token; "
        "from django.contrib.auth.models import User; "
        f"t,_=Token.objects.get_or_create(user=User.objects.get(username={username!r})); print(t.key)",
        "Put the printed token into PAPERLESS_API_TOKEN in docker-compose.yaml, then run: docker compose up -d",
    ]
