"""Text and JSON rendering of query results and wait graphs."""
import datetime
import decimal
import json

from tabulate import tabulate

TABLE_FORMAT = 'psql'


def section(title, width=60):
    return f"\n{'=' * width}\n {title}\n{'=' * width}"


def render_table(result, description=""):
    lines = []
    if description:
        lines.append(f">> {description}")
    if result.rows:
        lines.append(tabulate(result.rows, headers=list(result.columns), tablefmt=TABLE_FORMAT))
        lines.append(f"({len(result.rows)} rows, {result.elapsed_ms:.2f}ms)")
    else:
        lines.append("(no rows)")
    return "\n".join(lines)


def _json_default(value):
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    return str(value)


def result_payload(result):
    return {
        'name': result.name,
        'columns': list(result.columns),
        'rows': [list(row) for row in result.rows],
        'elapsed_ms': round(result.elapsed_ms, 3),
    }


def render_json(result):
    return json.dumps(result_payload(result), default=_json_default, sort_keys=True)


def render_results_json(results):
    return json.dumps([result_payload(r) for r in results], default=_json_default, sort_keys=True)


def render_catalog(catalog):
    rows = [
        (spec.name, spec.category, ", ".join(spec.params), spec.extension or "", spec.description)
        for spec in catalog
    ]
    return tabulate(rows, headers=['query', 'category', 'params', 'extension', 'description'],
                    tablefmt=TABLE_FORMAT)


def wait_graph_payload(graph):
    return {
        'edges': [
            {
                'waiting_pid': edge.waiting_pid,
                'blocking_pid': edge.blocking_pid,
                'locktype': edge.object[0] if edge.object else None,
                'mode': edge.mode,
            }
            for edge in graph.edges
        ],
        'head_blockers': graph.head_blockers(),
        'cycles': graph.find_cycles(),
        'deadlock_sets': graph.deadlock_sets(),
    }


def render_wait_graph(graph):
    if graph.is_empty():
        return "(no lock waits)"

    payload = wait_graph_payload(graph)
    rows = [(e['waiting_pid'], e['blocking_pid'], e['locktype'], e['mode']) for e in payload['edges']]
    lines = [
        tabulate(rows, headers=['waiting_pid', 'blocking_pid', 'locktype', 'requested_mode'],
                 tablefmt=TABLE_FORMAT),
        f"({len(rows)} edges)",
    ]
    if payload['head_blockers']:
        lines.append("head blockers: " + ", ".join(str(pid) for pid in payload['head_blockers']))
    if payload['cycles']:
        lines.append("deadlock candidates:")
        for cycle in payload['cycles']:
            lines.append("  " + " -> ".join(str(pid) for pid in cycle + cycle[:1]))
    else:
        lines.append("no deadlock candidates")
    for group in payload['deadlock_sets']:
        lines.append("mutually waiting: " + ", ".join(str(pid) for pid in group))
    return "\n".join(lines)


def render_wait_graph_json(graph):
    return json.dumps(wait_graph_payload(graph), default=_json_default, sort_keys=True)
