import logging
import time
from typing import Any, Dict, List, Optional

from ..config.config import Config

logger = logging.getLogger(__name__)

DEFAULT_VERSION = {"major": 1, "minor": 0, "patch": 0}

_VOLATILE_FIELDS = ("version", "timestamp")


def bump_version(version: Optional[Dict[str, int]]) -> Dict[str, int]:
    if not version:
        return dict(DEFAULT_VERSION)
    return {
        "major": int(version.get("major", 1)),
        "minor": int(version.get("minor", 0)),
        "patch": int(version.get("patch", 0)) + 1,
    }


def _comparable(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in _VOLATILE_FIELDS}


def build_list_document(
    tokens: List[Dict[str, Any]],
    root_tokens: Optional[List[Dict[str, Any]]] = None,
    previous: Optional[Dict[str, Any]] = None,
    inactive: bool = False,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Wrap token entries in a token-list document. The version and timestamp of
    `previous` are kept when nothing else changed; otherwise the patch number
    is bumped and the timestamp refreshed.
    """
    doc: Dict[str, Any] = {
        "name": Config.INACTIVE_TOKEN_LIST_NAME if inactive else Config.TOKEN_LIST_NAME,
        "timestamp": str(int(now if now is not None else time.time())),
        "version": dict(DEFAULT_VERSION),
        "tokens": tokens,
    }
    if inactive:
        doc["tags"] = {}
    else:
        doc["rootTokens"] = root_tokens or []
    doc["keywords"] = list(Config.TOKEN_LIST_KEYWORDS)
    doc["logoURI"] = Config.TOKEN_LIST_LOGO_URI

    if not previous:
        return doc

    if _comparable(previous) == _comparable(doc):
        doc["version"] = previous.get("version") or dict(DEFAULT_VERSION)
        doc["timestamp"] = previous.get("timestamp", doc["timestamp"])
        logger.info(f"{doc['name']}: no changes, keeping version {_format(doc['version'])}")
    else:
        doc["version"] = bump_version(previous.get("version"))
        logger.info(f"{doc['name']}: content changed, bumping version to {_format(doc['version'])}")
    return doc


def _format(version: Dict[str, int]) -> str:
    return f"{version.get('major')}.{version.get('minor')}.{version.get('patch')}"
