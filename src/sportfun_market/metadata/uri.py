"""ERC-1155 metadata URI handling.

Token URIs seen on Sport.fun contracts come in several shapes: inline
`data:application/json` payloads, `ipfs://` and `ar://` URIs, templates with
the ERC-1155 `{id}` placeholder, bare numeric ids, and plain HTTP(S) URLs.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any
from urllib.parse import unquote

from sportfun_market.errors import SportfunMarketError
from sportfun_market.market.models import TokenMetadata

DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"
DEFAULT_ARWEAVE_GATEWAY = "https://arweave.net/"

_ID_PLACEHOLDER = re.compile(r"\{id\}", re.IGNORECASE)
_NUMERIC = re.compile(r"^\d+$")


class MetadataResolutionError(SportfunMarketError):
    """Raised when no candidate URL yields usable metadata."""

    def __init__(self, message: str, resolved_uri: str | None = None) -> None:
        super().__init__(message)
        self.resolved_uri = resolved_uri


def format_token_id_hex(token_id: int) -> str:
    """Lowercase hex, zero-padded to 64 characters, no prefix."""
    return f"{token_id:064x}"


def expand_erc1155_uri(template: str, token_id: int) -> str:
    return _ID_PLACEHOLDER.sub(format_token_id_hex(token_id), template)


def apply_template(template: str, token_id_dec: str) -> str:
    """Substitute a decimal id into an athlete template, if it has `{id}`."""
    if "{id}" not in template:
        return template
    return _ID_PLACEHOLDER.sub(token_id_dec, template)


def is_numeric_uri(value: str) -> bool:
    return bool(_NUMERIC.match(value.strip()))


def normalize_to_http(
    uri: str,
    *,
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
    arweave_gateway: str = DEFAULT_ARWEAVE_GATEWAY,
) -> str:
    """Rewrite `ipfs://` and `ar://` URIs onto HTTP gateways."""
    if uri.startswith("ipfs://"):
        rest = uri[len("ipfs://") :].removeprefix("ipfs/")
        return f"{ipfs_gateway}{rest}"
    if uri.startswith("ar://"):
        return f"{arweave_gateway}{uri[len('ar://') :]}"
    return uri


def decode_data_uri_json(uri: str) -> Any | None:
    """Parse an inline `data:application/json[;base64],...` URI.

    Returns None for anything that is not a JSON data URI or fails to parse.
    """
    if not uri.startswith("data:"):
        return None
    header, sep, payload = uri.partition(",")
    if not sep or "application/json" not in header:
        return None
    try:
        if ";base64" in header:
            raw = base64.b64decode(payload).decode("utf-8")
        else:
            raw = unquote(payload)
        return json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def parse_erc1155_metadata(payload: Any) -> TokenMetadata | None:
    """Pick the display fields out of a metadata JSON object.

    `image_url` wins over `image`. Returns None when nothing usable is set.
    """
    if not isinstance(payload, dict):
        return None
    name = payload.get("name")
    description = payload.get("description")
    image = payload.get("image_url")
    if not isinstance(image, str):
        image = payload.get("image")
    attributes = payload.get("attributes")

    metadata = TokenMetadata(
        name=name if isinstance(name, str) else None,
        description=description if isinstance(description, str) else None,
        image=image if isinstance(image, str) else None,
        attributes=attributes,
    )
    if not (metadata.name or metadata.description or metadata.image or metadata.attributes):
        return None
    return metadata


def build_metadata_candidates(
    uri_raw: str,
    token_id: int,
    template: str,
    default_template: str,
    *,
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
    arweave_gateway: str = DEFAULT_ARWEAVE_GATEWAY,
) -> list[str]:
    """Ordered, de-duplicated URLs to try for one token.

    The on-chain URI comes first (numeric values go through the template),
    then the configured template, then the default template.
    """
    candidates: list[str] = []

    def add(url: str | None) -> None:
        if url and url not in candidates:
            candidates.append(url)

    token_id_dec = str(token_id)
    trimmed = uri_raw.strip()
    if trimmed:
        if is_numeric_uri(trimmed):
            add(apply_template(template, trimmed))
        else:
            expanded = expand_erc1155_uri(trimmed, token_id)
            if is_numeric_uri(expanded):
                add(apply_template(template, expanded))
            else:
                add(normalize_to_http(expanded, ipfs_gateway=ipfs_gateway, arweave_gateway=arweave_gateway))

    add(apply_template(template, token_id_dec))
    if default_template != template:
        add(apply_template(default_template, token_id_dec))
    return candidates
