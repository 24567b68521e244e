"""
pginspect command line
======================

    pginspect list
    pginspect run index_usage
    pginspect run relation_stats -p relation=orders --format json
    pginspect run table_sizes --chart graphs/tables.png --label table_name --value total_bytes
    pginspect category vacuum
    pginspect locks --strict

Exit codes: 0 success, 1 connection failure, 2 permission failure,
3 query/object-not-found failure, 4 malformed lock snapshot.
"""
import argparse
import sys

from pydantic import ValidationError

from pginspect import errors
from pginspect.catalog import load_catalog
from pginspect.charts import plot_result
from pginspect.config import get_settings
from pginspect.inspector import Inspector
from pginspect.logging_setup import setup_logging
from pginspect.render import (
    render_catalog,
    render_json,
    render_results_json,
    render_table,
    render_wait_graph,
    render_wait_graph_json,
    section,
)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='pginspect',
        description="Read-only PostgreSQL internals inspector.",
    )
    parser.add_argument('--host')
    parser.add_argument('--port', type=int)
    parser.add_argument('--dbname')
    parser.add_argument('--user')
    parser.add_argument('--log-level')

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('list', help="list catalog queries")

    run = sub.add_parser('run', help="run one catalog query")
    run.add_argument('name')
    run.add_argument('-p', '--param', action='append', default=[], metavar='KEY=VALUE')
    run.add_argument('--format', choices=('table', 'json'), default='table')
    run.add_argument('--chart', metavar='PNG', help="save a bar chart of the result")
    run.add_argument('--label', help="chart label column")
    run.add_argument('--value', help="chart value column")

    category = sub.add_parser('category', help="run every query of one category")
    category.add_argument('name')
    category.add_argument('--format', choices=('table', 'json'), default='table')

    locks = sub.add_parser('locks', help="lock wait-for graph and deadlock candidates")
    locks.add_argument('--strict', action='store_true',
                       help="only count holders whose mode conflicts with the request")
    locks.add_argument('--format', choices=('table', 'json'), default='table')

    return parser


def parse_params(pairs):
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep or not key:
            raise errors.QueryError(f"parameter must be KEY=VALUE, got {pair!r}")
        params[key.strip()] = value
    return params


def _settings_from_args(args):
    settings = get_settings()
    overrides = {
        'HOST': args.host,
        'PORT': args.port,
        'DATABASE': args.dbname,
        'USER': args.user,
        'LOG_LEVEL': args.log_level,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def _cmd_run(inspector, args, out):
    result = inspector.run(args.name, **parse_params(args.param))
    if args.format == 'json':
        print(render_json(result), file=out)
    else:
        print(render_table(result, inspector.spec(args.name).description), file=out)
    if args.chart:
        if not (args.label and args.value):
            raise errors.QueryError("--chart needs --label and --value", query_name=args.name)
        plot_result(result, args.label, args.value, args.chart)


def _cmd_category(inspector, args, out):
    results = inspector.run_category(args.name)
    if args.format == 'json':
        print(render_results_json(results), file=out)
        return
    for result in results:
        print(section(result.name), file=out)
        print(render_table(result, inspector.spec(result.name).description), file=out)


def _cmd_locks(inspector, args, out):
    graph = inspector.wait_graph(strict=args.strict)
    if args.format == 'json':
        print(render_wait_graph_json(graph), file=out)
    else:
        print(render_wait_graph(graph), file=out)


COMMANDS = {
    'run': _cmd_run,
    'category': _cmd_category,
    'locks': _cmd_locks,
}


def main(argv=None, out=None, err=None) -> int:
    out = out if out is not None else sys.stdout
    err = err if err is not None else sys.stderr
    args = build_parser().parse_args(argv)

    try:
        settings = _settings_from_args(args)
    except ValidationError as exc:
        problems = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
        error = errors.ConnectionError(f"invalid connection settings: {problems}")
        print(f"error: {error}", file=err)
        return error.exit_code
    setup_logging(settings.LOG_LEVEL)
    catalog = load_catalog()

    if args.command == 'list':
        print(render_catalog(catalog), file=out)
        return errors.EXIT_OK

    try:
        with Inspector(settings, catalog) as inspector:
            COMMANDS[args.command](inspector, args, out)
    except errors.InspectorError as exc:
        print(f"error: {exc}", file=err)
        return exc.exit_code
    return errors.EXIT_OK


if __name__ == '__main__':
    raise SystemExit(main())
