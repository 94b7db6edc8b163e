"""Config file lookup.

Search order for the default config:

  1. ``$UDPLINK_CONFIG`` if set
  2. ``./udplink.toml``
  3. ``/etc/udplink/udplink.toml``
"""

import os

ETC_DIR = "/etc/udplink"
DEFAULT_CONFIG = "udplink.toml"
ENV_VAR = "UDPLINK_CONFIG"


def config_candidates(name: str = DEFAULT_CONFIG) -> list[str]:
    """Return the absolute paths searched for a bare config *name*."""
    return [os.path.abspath(name), os.path.join(os.path.abspath(ETC_DIR), name)]


def resolve_config(name: str = DEFAULT_CONFIG) -> str:
    """Resolve a config name to an existing absolute path.

    A *name* with a directory part is taken literally.  A bare name is
    looked up in :func:`config_candidates` order.

    Raises:
        FileNotFoundError: If no candidate exists.
    """
    if os.path.dirname(name):
        candidates = [os.path.abspath(name)]
    else:
        candidates = config_candidates(name)

    for path in candidates:
        if os.path.isfile(path):
            return path
    raise FileNotFoundError(
        "config file not found, tried: %s" % ", ".join(candidates)
    )


def find_default_config() -> str | None:
    """Return the config to use when none was named, or None.

    ``$UDPLINK_CONFIG`` must point at an existing file when set.

    Raises:
        FileNotFoundError: If ``$UDPLINK_CONFIG`` names a missing file.
    """
    override = os.environ.get(ENV_VAR)
    if override:
        path = os.path.abspath(override)
        if not os.path.isfile(path):
            raise FileNotFoundError("%s points to missing file: %s" % (ENV_VAR, path))
        return path
    try:
        return resolve_config(DEFAULT_CONFIG)
    except FileNotFoundError:
        return None
