"""
Command line entry point.

Usage:
    python -m qrmenu serve [--host HOST] [--port PORT] [--reload]
    python -m qrmenu migration-sql [--table TABLE]
"""

import argparse

from qrmenu.core.config import get_settings
from qrmenu.migrations import upgrade_sql


def serve(args: argparse.Namespace) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "qrmenu.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
    )


def migration_sql(args: argparse.Namespace) -> None:
    print(upgrade_sql(args.table or get_settings().supabase_table))


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="qrmenu", description="QR Menu Ordering API")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address (default: API_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (default: API_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve_parser.set_defaults(func=serve)

    sql_parser = subparsers.add_parser("migration-sql", help="Print the schema upgrade SQL")
    sql_parser.add_argument("--table", help="Orders table name (default: SUPABASE_TABLE)")
    sql_parser.set_defaults(func=migration_sql)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
