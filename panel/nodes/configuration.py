"""Bootstrap configuration document consumed by a node's daemon."""

import json
from typing import Any

import yaml

from ..models import Node
from ..security import TokenCodec

CERTIFICATE_ROOT = "/etc/letsencrypt/live"


def get_configuration(node: Node, codec: TokenCodec, remote: str) -> dict[str, Any]:
    """Build the daemon configuration for a node.

    Args:
        node: Node with its mounts loaded
        codec: Codec used to decrypt the stored daemon token
        remote: Public URL of the panel the daemon reports back to

    Returns:
        Nested configuration mapping
    """
    host = node.fqdn.lower()
    return {
        "debug": False,
        "uuid": node.uuid,
        "token_id": node.daemon_token_id,
        "token": codec.decrypt(node.daemon_token),
        "api": {
            "host": "0.0.0.0",
            "port": node.daemon_listen,
            "ssl": {
                "enabled": not node.behind_proxy and node.scheme == "https",
                "cert": f"{CERTIFICATE_ROOT}/{host}/fullchain.pem",
                "key": f"{CERTIFICATE_ROOT}/{host}/privkey.pem",
            },
            "upload_limit": node.upload_size,
        },
        "system": {
            "data": node.daemon_base,
            "sftp": {
                "bind_port": node.daemon_sftp,
            },
        },
        "allowed_mounts": [mount.source for mount in node.mounts],
        "remote": remote,
    }


def to_yaml(configuration: dict[str, Any]) -> str:
    return yaml.safe_dump(
        configuration, sort_keys=False, default_flow_style=False, indent=2
    )


def to_json(configuration: dict[str, Any], pretty: bool = False) -> str:
    return json.dumps(configuration, indent=4 if pretty else None)
