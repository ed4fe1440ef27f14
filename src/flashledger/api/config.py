import os
from dataclasses import dataclass
from typing import List, Optional

from flashledger.runtime.chain_config import MODES


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # one of MODES
    cors_origins: List[str]
    max_request_bytes: int = 64_000
    size_limit_enabled: bool = True

    @property
    def is_prod(self) -> bool:
        return self.mode == "prod"


def _flag(v: Optional[str]) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_cors_origins(raw: str | None, mode: str) -> List[str]:
    """Parse FLASH_CORS_ORIGINS (comma separated).

    Empty disables CORS. A wildcard is accepted outside prod only.
    """
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    if "*" not in origins:
        return origins
    if mode == "prod":
        raise RuntimeError("FLASH_CORS_ORIGINS='*' is refused in prod; list explicit origins instead.")
    return ["*"]


def parse_max_bytes(raw: str | None, default: int = 64_000) -> int:
    try:
        n = int(str(raw).strip()) if raw is not None else default
    except ValueError:
        return default
    return n if n > 0 else default


def load_api_config() -> ApiConfig:
    mode = (os.getenv("FLASH_MODE") or "prod").strip().lower()
    if mode not in MODES:
        raise RuntimeError(f"FLASH_MODE must be one of {', '.join(MODES)}; got {mode!r}")
    return ApiConfig(
        mode=mode,
        cors_origins=parse_cors_origins(os.getenv("FLASH_CORS_ORIGINS"), mode),
        max_request_bytes=parse_max_bytes(os.getenv("FLASH_MAX_REQUEST_BYTES")),
        size_limit_enabled=not _flag(os.getenv("FLASH_SIZE_LIMIT_DISABLE")),
    )
