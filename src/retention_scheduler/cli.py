"""復習スケジューラのコマンドラインツール（シード投入・出題一覧・集計・サーバ起動）。"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from .config import settings
from .errors import SchedulerError
from .logging import configure_logging
from .models.api import MemoryItemResponse, RetentionStatsResponse


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retention-scheduler", description=__doc__)
    parser.add_argument(
        "--db-path",
        default=None,
        help=f"アイテムストアの SQLite パス（既定: {settings.database_path}）",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="教科・章のテンプレートアイテムを追加作成する（追記のみ）")
    seed.add_argument("--owner", required=True)
    seed.add_argument("--subject", required=True)
    seed.add_argument("--chapter", required=True)

    due = sub.add_parser("due", help="出題対象のアイテムを表示する")
    due.add_argument("--owner", required=True)
    due.add_argument("--limit", type=int, default=settings.due_limit_default)

    stats = sub.add_parser("stats", help="保持率の集計を表示する")
    stats.add_argument("--owner", required=True)

    serve = sub.add_parser("serve", help="HTTP API を起動する")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _dump(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config = settings
    if args.db_path:
        config = settings.model_copy(update={"database_path": args.db_path})

    if args.command == "serve":
        import uvicorn

        from .main import create_app

        uvicorn.run(create_app(config=config), host=args.host, port=args.port)
        return 0

    configure_logging(config)
    from .service import SchedulerService

    service = SchedulerService.from_settings(config)
    try:
        if args.command == "seed":
            items = service.generate_seed_items(args.owner, args.subject, args.chapter)
            _dump(
                {
                    "mode": "append",
                    "items": [MemoryItemResponse.from_item(it).model_dump(mode="json") for it in items],
                }
            )
        elif args.command == "due":
            items = service.get_due_items(args.owner, limit=args.limit)
            _dump([MemoryItemResponse.from_item(it).model_dump(mode="json") for it in items])
        elif args.command == "stats":
            stats = service.get_retention_stats(args.owner)
            _dump(RetentionStatsResponse.from_stats(stats).model_dump(mode="json"))
    except SchedulerError as exc:
        print(f"error: {type(exc).__name__}: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
