# run.py
import argparse
import asyncio

import uvicorn


async def _reconcile() -> dict:
    from src.itorero.utils.database import AsyncSessionLocal
    from src.itorero.utils.hierarchy import reconcile_admin_roles

    async with AsyncSessionLocal() as db:
        return await reconcile_admin_roles(db)


def main():
    parser = argparse.ArgumentParser(description="itorero-admin backend")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the API server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    sub.add_parser("reconcile", help="re-derive admin roles from the hierarchy")

    args = parser.parse_args()
    if args.command == "serve":
        uvicorn.run("src.itorero.app:app", host=args.host, port=args.port, reload=args.reload)
    elif args.command == "reconcile":
        counts = asyncio.run(_reconcile())
        for key, value in counts.items():
            print(f"{key}: {value}")


if __name__ == "__main__":
    main()
