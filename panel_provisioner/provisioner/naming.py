"""Panel username and server display name helpers."""

from datetime import date
import re
import time

from panel_provisioner.contracts.dto import Client

DEFAULT_SERVER_NAME_PATTERN = "{{ product.title }} - {{ client.first_name }} {{ client.last_name }}"
USERNAME_MAX_LENGTH = 20

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


def generate_username(email: str) -> str:
    """Derive a panel username from the local part of ``email``."""
    local_part = email.split("@", 1)[0]
    username = _NON_ALPHANUMERIC.sub("", local_part)[:USERNAME_MAX_LENGTH]
    if not username:
        username = f"user{int(time.time())}"
    return username.lower()


def _text(value: object) -> str:
    return "" if value is None else str(value)


def render_server_name(
    pattern: str,
    client: Client,
    service_id: int | None,
    order_title: str | None = None,
    today: date | None = None,
) -> str:
    """Substitute ``{{ token }}`` placeholders in ``pattern``.

    ``{{ product.title }}`` is only replaced when the order has a title.
    """
    today = today or date.today()
    tokens = {
        "{{ client.id }}": _text(client.id),
        "{{ client.first_name }}": _text(client.first_name),
        "{{ client.last_name }}": _text(client.last_name),
        "{{ service.id }}": _text(service_id),
        "{{ date }}": today.isoformat(),
    }
    if order_title is not None:
        tokens["{{ product.title }}"] = order_title

    for token, value in tokens.items():
        pattern = pattern.replace(token, value)
    return pattern


def resolve_server_name(
    *,
    pattern: str | None,
    server_name: str | None,
    client: Client,
    service_id: int | None,
    order_title: str | None = None,
    today: date | None = None,
) -> str:
    """Server name for a new server.

    A missing pattern means the default pattern; an explicitly blank pattern
    falls back to ``server_name``, then to a time-based name.
    """
    if pattern is None:
        pattern = DEFAULT_SERVER_NAME_PATTERN
    if pattern.strip():
        return render_server_name(pattern, client, service_id, order_title, today)
    return server_name or f"Server-{int(time.time())}"
