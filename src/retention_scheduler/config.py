from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode

from .ladder import DEFAULT_INTERVALS


DEFAULT_DB_PATH = ".data/retention.sqlite3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - database_path: 復習アイテムを保存する SQLite ファイル
    - interval_ladder: 復習間隔（日）の昇順リスト
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )
    database_path: str = Field(
        default=DEFAULT_DB_PATH,
        validation_alias=AliasChoices("RETENTION_DB_PATH", "DATABASE_PATH"),
        description="Path to the item store SQLite database / アイテムストア用SQLite DBパス",
    )

    # --- 出題・採点の制御 ---
    due_limit_default: int = Field(
        default=20,
        ge=1,
        description="Default number of due items per session / 1セッションの既定出題数",
    )
    due_limit_max: int = Field(
        default=100,
        ge=1,
        description="Upper bound accepted for the due-list limit / 出題数の上限",
    )
    review_max_attempts: int = Field(
        default=3,
        ge=1,
        description=(
            "Attempts for the optimistic review write before giving up / "
            "楽観的ロック競合時の最大試行回数"
        ),
    )
    interval_ladder: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_INTERVALS,
        description="Review intervals in days, ascending / 復習間隔（日）の昇順リスト",
    )

    # --- Operations/Observability ---
    log_level: str = Field(default="INFO", description="Root log level / ログレベル")
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN (enable if set)")

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("interval_ladder", mode="before")
    @classmethod
    def _parse_ladder(cls, value: object) -> object:
        """`"1, 3, 7"` のようなカンマ区切り文字列を整数タプルへ変換する。"""

        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            try:
                return tuple(int(part) for part in parts)
            except ValueError as exc:
                raise ValueError("INTERVAL_LADDER must be a comma-separated list of integers") from exc
        return value

    @field_validator("interval_ladder")
    @classmethod
    def _check_ladder(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            raise ValueError("INTERVAL_LADDER must not be empty")
        if any(days <= 0 for days in value):
            raise ValueError("INTERVAL_LADDER entries must be positive")
        if any(a >= b for a, b in zip(value, value[1:])):
            raise ValueError("INTERVAL_LADDER must be strictly ascending")
        return value


settings = Settings()
