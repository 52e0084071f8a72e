"""
Row to public-shape transforms for the cached collections.

Each function takes the raw rows returned by the store for one resource and
returns the payload served to clients. They never raise on malformed
display metadata; bad ``tags``/``images`` values decode to an empty list.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping

from shared.logging import get_logger

logger = get_logger("portfolio.cache.transforms")

Row = Mapping[str, Any]

TAG_DELIMITER = ","


def _strings(values: Iterable[Any]) -> List[str]:
    # NULL array elements are dropped rather than rendered as "None"
    return [value for value in values if isinstance(value, str)]


def split_tags(value: Any) -> List[str]:
    """Decode a delimited tag string into an ordered list."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return _strings(value)
    if isinstance(value, str):
        return value.split(TAG_DELIMITER)
    logger.debug("Unexpected tags representation", type=type(value).__name__)
    return []


def decode_images(value: Any) -> List[str]:
    """Decode an images field given either as an array or as JSON text."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return _strings(value)
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            logger.debug("Malformed images value", value=value[:100])
            return []
        if isinstance(decoded, list):
            return _strings(decoded)
    return []


def year_month(value: Any) -> str:
    """Normalize a date (or date string) to ``YYYY-MM``; null becomes ``""``."""
    if not value:
        return ""
    return str(value)[:7]


def shape_settings(rows: Iterable[Row]) -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    for row in rows:
        # later rows overwrite earlier ones
        settings[row["key"]] = row["value"]
    return settings


def shape_experience(row: Row) -> Dict[str, Any]:
    images = decode_images(row.get("images"))
    return {
        "id": row.get("id"),
        "title": row.get("title"),
        "organization": row.get("organization"),
        "period": row.get("period"),
        "description": row.get("description"),
        "type": row.get("type"),
        "image": row.get("image") or (images[0] if images else ""),
        "images": images,
        "tags": split_tags(row.get("tags")),
        "startDate": row.get("start_date"),
    }


def shape_experiences(rows: Iterable[Row]) -> List[Dict[str, Any]]:
    return [shape_experience(row) for row in rows]


def shape_certification(row: Row) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "organization": row.get("organization"),
        "issueDate": year_month(row.get("issue_date")),
        "expiryDate": year_month(row.get("expiry_date")),
        "credentialId": row.get("credential_id"),
        "credentialUrl": row.get("credential_url"),
        "image": row.get("image"),
        "skills": list(row.get("skills") or []),
    }


def shape_certifications(rows: Iterable[Row]) -> List[Dict[str, Any]]:
    return [shape_certification(row) for row in rows]


def _with_tags(row: Row) -> Dict[str, Any]:
    return {**row, "tags": list(row.get("tags") or [])}


def shape_projects(rows: Iterable[Row]) -> List[Dict[str, Any]]:
    return [_with_tags(row) for row in rows]


def shape_posts(rows: Iterable[Row]) -> List[Dict[str, Any]]:
    return [_with_tags(row) for row in rows]
