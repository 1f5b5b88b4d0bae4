"""Manual display-name overrides for player tokens."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from sportfun_market.storage.files import read_json_file

logger = logging.getLogger(__name__)


class NameOverrides:
    """Names keyed `<contract_lower>:<token_id>` or bare `<token_id>`.

    A contract-scoped key wins over a bare token id.
    """

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = {str(k).lower(): str(v) for k, v in (names or {}).items() if v}

    def __len__(self) -> int:
        return len(self._names)

    def get(self, contract_address: str | None, token_id: str | None) -> str | None:
        if not token_id:
            return None
        if contract_address:
            direct = self._names.get(f"{contract_address.lower()}:{token_id}")
            if direct:
                return direct
        return self._names.get(token_id)

    @classmethod
    def load(cls, path: Path | None) -> NameOverrides:
        """Load overrides from a JSON object file. Missing or invalid is empty."""
        if path is None:
            return cls()
        data = read_json_file(Path(path))
        if data is None:
            return cls()
        if not isinstance(data, dict):
            logger.warning("Name overrides in %s must be a JSON object; ignoring", path)
            return cls()
        overrides = cls({k: v for k, v in data.items() if isinstance(v, str)})
        logger.info("Loaded %d name overrides from %s", len(overrides), path)
        return overrides
