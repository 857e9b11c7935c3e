from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional

from .retry import RetryPolicy
from .storage import DEFAULT_QUOTA_BYTES

_BOOLEAN_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    base_dir: Path
    data_dir: Path
    storage_file: Path
    storage_quota_bytes: int
    fs_root: Optional[Path]
    export_dir: Path
    strict_writes: bool
    supabase_url: str
    supabase_anon_key: str
    http_retries: int
    http_timeout: float
    verbose: bool = False

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=self.http_timeout,
            retries=self.http_retries,
            backoff_factor=0.5 if self.http_retries else 0.0,
        )


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    base_dir = Path.cwd().resolve()
    data_dir = _to_path(env.get("POWCOST_DATA_DIR")) or (Path.home() / ".powcost").resolve()
    storage_file = _to_path(env.get("POWCOST_STORAGE_FILE"))
    quota = _to_int(env.get("POWCOST_STORAGE_QUOTA")) or DEFAULT_QUOTA_BYTES
    fs_root = _to_path(env.get("POWCOST_FS_ROOT"))
    export_dir = _to_path(env.get("POWCOST_EXPORT_DIR")) or base_dir
    strict_writes = _flag(env.get("POWCOST_STRICT_WRITES"))
    supabase_url = (env.get("SUPABASE_URL") or "").strip()
    supabase_anon_key = (env.get("SUPABASE_ANON_KEY") or "").strip()
    http_retries = _to_int(env.get("POWCOST_HTTP_RETRIES")) or 0
    http_timeout = _to_float(env.get("POWCOST_HTTP_TIMEOUT")) or 30.0
    verbose = False

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "data_dir", None):
        data_dir = _to_path(cli_ns.data_dir) or data_dir
    if getattr(cli_ns, "fs_root", None):
        fs_root = _to_path(cli_ns.fs_root)
    if getattr(cli_ns, "export_dir", None):
        export_dir = _to_path(cli_ns.export_dir) or export_dir
    if getattr(cli_ns, "strict_writes", False):
        strict_writes = True
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    return Config(
        base_dir=base_dir,
        data_dir=data_dir,
        storage_file=storage_file or (data_dir / "storage.json"),
        storage_quota_bytes=max(0, quota),
        fs_root=fs_root,
        export_dir=export_dir,
        strict_writes=strict_writes,
        supabase_url=supabase_url,
        supabase_anon_key=supabase_anon_key,
        http_retries=max(0, http_retries),
        http_timeout=http_timeout,
        verbose=verbose,
    )


__all__ = ["Config", "load_config"]
