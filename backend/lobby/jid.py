"""
Minimal XMPP address helpers.

Only what the gate needs: bare-address comparison for the alternate
room hint and the local part used as the lobby resource name.
Addresses look like ``local@domain/resource``; local and resource are
optional.
"""

from __future__ import annotations


def split_jid(address: str) -> tuple[str | None, str, str | None]:
    """
    Split an address into (local, domain, resource).

    Raises:
        ValueError if the domain part is empty.
    """
    address = address.strip()
    resource: str | None = None
    if "/" in address:
        address, resource = address.split("/", 1)

    local: str | None = None
    if "@" in address:
        local, address = address.split("@", 1)
        local = local or None

    if not address:
        raise ValueError("address has no domain part")

    return local, address, resource


def bare_jid(address: str) -> str:
    """Drop the resource and case-fold the domain (and local part)."""
    local, domain, _ = split_jid(address)
    domain = domain.lower()
    if local is None:
        return domain
    return f"{local.lower()}@{domain}"


def localpart(address: str) -> str | None:
    return split_jid(address)[0]


def same_bare_jid(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    try:
        return bare_jid(a) == bare_jid(b)
    except ValueError:
        return False
