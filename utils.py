from datetime import datetime, timezone

MAX_PORT = 65535


def utcnow():
    """ Naive UTC timestamp, as stored in DATETIME columns. """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def human_date(value):
    """
    Renders a timestamp as '02 Jan 2024 at 15:04' in UTC.
    Empty string for a missing value.
    """
    if not value:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%d %b %Y at %H:%M")


def split_host_port(addr):
    """
    Splits 'host:port', ':port', '[v6]:port' or a bare host.
    Returns (host, port) with port None when absent.
    Raises ValueError for a port that is not a number in 0-65535.
    """
    if addr.startswith("["):
        host, _, rest = addr[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif addr.count(":") == 1:
        host, _, port = addr.partition(":")
    else:
        host, port = addr, ""
    if not port:
        return host, None
    if not port.isdigit() or int(port) > MAX_PORT:
        raise ValueError(f"invalid port {port!r} in address {addr!r}")
    return host, int(port)
