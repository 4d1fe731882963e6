"""Message catalog for service and validation messages."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml


logger = structlog.get_logger()

MESSAGES_PATH = Path(__file__).parent.parent / "messages.yaml"


@lru_cache
def load_messages(path: Path = MESSAGES_PATH) -> dict[str, str]:
    """Load the catalog and flatten it to dotted keys.

    Args:
        path: Path to the YAML catalog.

    Returns:
        Mapping of dotted keys (``service.captcha.no-captcha``) to templates.
    """
    with path.open() as f:
        data = yaml.safe_load(f) or {}

    flat: dict[str, str] = {}

    def _walk(prefix: str, node: Any) -> None:
        if isinstance(node, dict):
            for k, v in node.items():
                _walk(f"{prefix}.{k}" if prefix else str(k), v)
        else:
            flat[prefix] = str(node)

    _walk("", data)
    return flat


def message(key: str, **params: Any) -> str:
    """Format the message registered under ``key``.

    Unknown keys return the key itself; missing placeholders are left
    unformatted.
    """
    template = load_messages().get(key)
    if template is None:
        logger.debug("message_key_missing", key=key)
        return key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
