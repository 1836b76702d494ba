from __future__ import annotations

import argparse
import sys
from collections import Counter
from collections.abc import Iterator

from lineage_store.settings import settings


def _configure_logging() -> None:
    import logging

    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _read_feed(path: str) -> Iterator[str]:
    """One JSON event per line; blank lines are ignored. `-` reads stdin."""
    fh = sys.stdin if path == "-" else open(path, encoding="utf-8")
    try:
        for line in fh:
            if line.strip():
                yield line
    finally:
        if fh is not sys.stdin:
            fh.close()


def _load(args: argparse.Namespace):
    from lineage_store.service import LineageGraphService

    svc = LineageGraphService(settings=settings)
    results = svc.ingestor.ingest_many(_read_feed(args.feed))
    if getattr(args, "promote", False):
        svc.promote_buffer()
    return svc, results


def cmd_version() -> int:
    from lineage_store import __version__

    print(__version__)
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    _configure_logging()
    from lineage_store.errors import LineageStoreError

    svc, results = _load(args)
    counts = Counter(r.status.value for r in results)
    main = svc.registry.view("MAIN")
    print(
        f"events={len(results)} merged={counts['merged']} skipped={counts['skipped']} "
        f"dead_lettered={counts['dead_lettered']} vertices={main.vertex_count} edges={main.edge_count}"
    )
    try:
        if args.snapshot:
            svc.snapshot("MAIN")
        if args.dump:
            svc.dump_graph(args.dump)
    except LineageStoreError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0 if not counts["dead_lettered"] else 2


def cmd_lineage(args: argparse.Namespace) -> int:
    _configure_logging()
    from lineage_store.errors import LineageStoreError

    svc, _results = _load(args)
    try:
        print(svc.lineage(args.graph, args.scope, args.view, args.guid))
    except LineageStoreError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    _configure_logging()
    from lineage_store.errors import LineageStoreError

    svc, _results = _load(args)
    try:
        text = svc.export_graph(args.graph, path=args.out)
    except LineageStoreError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    if not args.out:
        print(text)
    return 0


def cmd_serve(_args: argparse.Namespace) -> int:
    from lineage_store.service.server import main as serve

    serve()
    return 0


def build_parser() -> argparse.ArgumentParser:
    from lineage_store.graph.models import GraphName, Scope, View

    p = argparse.ArgumentParser(prog="lineage-store")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=lambda _a: cmd_version())

    ingest = sub.add_parser("ingest", help="Ingest a JSONL feed of lineage events")
    ingest.add_argument("feed", help="JSONL file with one event per line, or - for stdin")
    ingest.add_argument("--promote", action="store_true", help="Promote BUFFER into MAIN after ingesting")
    ingest.add_argument("--snapshot", action="store_true", help="Append a HISTORY snapshot of MAIN")
    ingest.add_argument("--dump", default=None, choices=[g.value for g in GraphName], help="Dump a graph as GraphML")
    ingest.set_defaults(func=cmd_ingest)

    lin = sub.add_parser("lineage", help="Ingest a feed, then run a lineage query")
    lin.add_argument("feed")
    lin.add_argument("guid")
    lin.add_argument("--graph", default=GraphName.MAIN.value)
    lin.add_argument("--scope", default=Scope.ULTIMATE_SOURCE.value, choices=[s.value for s in Scope])
    lin.add_argument("--view", default=View.COLUMN_VIEW.value, choices=[v.value for v in View])
    lin.add_argument("--promote", action="store_true")
    lin.set_defaults(func=cmd_lineage)

    exp = sub.add_parser("export", help="Ingest a feed, then export a graph as GraphSON")
    exp.add_argument("feed")
    exp.add_argument("--graph", default=GraphName.MAIN.value)
    exp.add_argument("--out", default=None, help="Write to this file instead of stdout")
    exp.add_argument("--promote", action="store_true")
    exp.set_defaults(func=cmd_export)

    sub.add_parser("serve", help="Run the HTTP API").set_defaults(func=cmd_serve)

    return p


def app(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
