import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

DEFAULT_SHEET_API_BASE_URL = "https://opensheet.elk.sh"
DEFAULT_SHEET_ID = "1PwWhUZr7WDYCKRusbGpM5hPUinxM9mtSG6uVECSaiuI"
DEFAULT_SHEET_TAB_NAME = "Mappings"
DEFAULT_SHEET_TIMEOUT_SECONDS = 10.0
DEFAULT_ALLOWED_ORIGINS = ["http://localhost:3000"]
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8000
DEFAULT_API_RELOAD = True


@dataclass(frozen=True)
class Settings:
    """環境変数と既定値から解決したアプリ設定."""

    sheet_api_base_url: str
    sheet_id: str
    sheet_tab_name: str
    sheet_timeout_seconds: float
    allowed_origins: list[str]
    api_host: str
    api_port: int
    api_reload: bool


def _read_text_env(env_value: Optional[str], default_value: str) -> str:
    """文字列の環境変数を解釈し、空白のみは既定値へ戻す."""
    if env_value is None or env_value.strip() == "":
        return default_value

    return env_value.strip()


def _read_bool_env(env_value: Optional[str], default_value: bool) -> bool:
    """真偽値の環境変数文字列を解釈する."""
    if env_value is None:
        return default_value

    return env_value.strip().lower() in {"1", "true", "yes", "on"}


def _read_int_env(env_value: Optional[str], default_value: int) -> int:
    """整数の環境変数文字列を解釈し、不正値は既定値へ戻す."""
    if env_value is None:
        return default_value

    try:
        return int(env_value)
    except ValueError:
        return default_value


def _read_positive_float_env(env_value: Optional[str], default_value: float) -> float:
    """正の小数の環境変数文字列を解釈し、不正値は既定値へ戻す."""
    if env_value is None:
        return default_value

    try:
        parsed = float(env_value)
    except ValueError:
        return default_value

    if parsed <= 0:
        return default_value

    return parsed


def _resolve_allowed_origins(env_value: Optional[str]) -> list[str]:
    """ALLOWED_ORIGINS をカンマ区切りで解決する."""
    if env_value is None:
        return list(DEFAULT_ALLOWED_ORIGINS)

    origins = [origin.strip() for origin in env_value.split(",") if origin.strip()]
    if len(origins) == 0:
        return list(DEFAULT_ALLOWED_ORIGINS)

    return origins


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """環境変数を優先して設定を読み込み、未設定値は既定値で補完する."""
    source = env if env is not None else os.environ

    return Settings(
        sheet_api_base_url=_read_text_env(
            source.get("SHEET_API_BASE_URL"), DEFAULT_SHEET_API_BASE_URL
        ).rstrip("/"),
        sheet_id=_read_text_env(source.get("SHEET_ID"), DEFAULT_SHEET_ID),
        sheet_tab_name=_read_text_env(source.get("SHEET_TAB_NAME"), DEFAULT_SHEET_TAB_NAME),
        sheet_timeout_seconds=_read_positive_float_env(
            source.get("SHEET_TIMEOUT_SECONDS"), DEFAULT_SHEET_TIMEOUT_SECONDS
        ),
        allowed_origins=_resolve_allowed_origins(source.get("ALLOWED_ORIGINS")),
        api_host=source.get("API_HOST", DEFAULT_API_HOST),
        api_port=_read_int_env(source.get("API_PORT"), DEFAULT_API_PORT),
        api_reload=_read_bool_env(source.get("API_RELOAD"), DEFAULT_API_RELOAD),
    )
