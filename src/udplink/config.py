"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from udplink.config import load_config, RECV_BUFSIZE
    >>> cfg = load_config("udplink.toml")
    >>> cfg["remote_port"]
    11001
"""

import tomllib

# Receive buffer size in bytes.  Larger datagrams are truncated.
RECV_BUFSIZE = 1024

# How often the receive loop wakes up to check for stop(), in seconds.
POLL_INTERVAL_S = 0.2

_DEFAULTS = {
    "local_host": None,
    "local_port": 0,
    "remote_host": None,
    "remote_port": 0,
    "broadcast": False,
    "listen_host": None,
    "listen_port": 0,
    "bufsize": RECV_BUFSIZE,
}


def default_config() -> dict:
    """Return a fresh copy of the built-in defaults."""
    return dict(_DEFAULTS)


def load_config(path: str) -> dict:
    """Read a TOML config file and validate its keys.

    All tables are optional:

    - ``[local]``: ``host`` (str), ``port`` (int)
    - ``[remote]``: ``host`` (str), ``port`` (int), ``broadcast`` (bool)
    - ``[listen]``: ``host`` (str), ``port`` (int), ``bufsize`` (int)

    Returns a flat dict with keys ``local_host``, ``local_port``,
    ``remote_host``, ``remote_port``, ``broadcast``, ``listen_host``,
    ``listen_port`` and ``bufsize``; missing keys take their defaults.

    Raises:
        ValueError: If a key has the wrong type or a value is out of range.

    Example:
        >>> cfg = load_config("udplink.toml")
        >>> cfg["broadcast"]
        False
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    result = default_config()

    local = _table(raw, "local")
    remote = _table(raw, "remote")
    listen = _table(raw, "listen")

    if "host" in local:
        result["local_host"] = _require_str(local, "local.host")
    if "port" in local:
        result["local_port"] = _require_port(local, "local.port")

    if "host" in remote:
        result["remote_host"] = _require_str(remote, "remote.host")
    if "port" in remote:
        result["remote_port"] = _require_port(remote, "remote.port")
    if "broadcast" in remote:
        result["broadcast"] = _require_bool(remote, "remote.broadcast")

    if "host" in listen:
        result["listen_host"] = _require_str(listen, "listen.host")
    if "port" in listen:
        result["listen_port"] = _require_port(listen, "listen.port")
    if "bufsize" in listen:
        bufsize = _require_int(listen, "listen.bufsize")
        if bufsize <= 0:
            raise ValueError("listen.bufsize must be positive, got %d" % bufsize)
        result["bufsize"] = bufsize

    return result


def _table(raw: dict[str, object], name: str) -> dict:
    """Return table *name* from *raw*, or an empty dict if absent."""
    if name not in raw:
        return {}
    if not isinstance(raw[name], dict):
        raise ValueError("[%s] must be a table" % name)
    return raw[name]


def _leaf(key: str) -> str:
    return key.rsplit(".", 1)[-1]


def _require_str(table: dict[str, object], key: str) -> str:
    """Validate that *key* in *table* is a str."""
    value = table[_leaf(key)]
    if not isinstance(value, str):
        raise ValueError("%s must be str, got %s" % (key, type(value).__name__))
    return value


def _require_int(table: dict[str, object], key: str) -> int:
    """Validate that *key* in *table* is an int (bools rejected)."""
    value = table[_leaf(key)]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("%s must be int, got %s" % (key, type(value).__name__))
    return value


def _require_port(table: dict[str, object], key: str) -> int:
    """Validate that *key* in *table* is a port number (0-65535)."""
    value = _require_int(table, key)
    if value < 0 or value > 65535:
        raise ValueError("%s out of range: %d" % (key, value))
    return value


def _require_bool(table: dict[str, object], key: str) -> bool:
    """Validate that *key* in *table* is a bool."""
    value = table[_leaf(key)]
    if not isinstance(value, bool):
        raise ValueError("%s must be bool, got %s" % (key, type(value).__name__))
    return value
