"""
Charts
======

Saves a horizontal bar chart of one numeric column of a query result,
e.g. index size per index or buffers per relation.
"""
import logging
import os

import matplotlib
matplotlib.use('Agg')  # no GUI, files only
import matplotlib.pyplot as plt
import numpy as np

from pginspect import errors

logger = logging.getLogger(__name__)

plt.rcParams['font.family'] = 'DejaVu Sans'
plt.rcParams['axes.unicode_minus'] = False


def save_graph(fig, path):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    logger.info("chart saved to %s", path)
    return path


def plot_result(result, label_column, value_column, path, title=None):
    labels = [str(v)[:30] for v in result.column(label_column)]
    try:
        values = [float(v or 0) for v in result.column(value_column)]
    except (TypeError, ValueError) as exc:
        raise errors.QueryError(f"column {value_column!r} is not numeric",
                                query_name=result.name) from exc

    fig, ax = plt.subplots(figsize=(12, max(4, 0.4 * len(labels) + 2)))
    if labels:
        colors = plt.cm.Blues(np.linspace(0.4, 0.8, len(labels)))
        bars = ax.barh(labels, values, color=colors, edgecolor='black')
        for bar, value in zip(bars, values):
            ax.text(bar.get_width(), bar.get_y() + bar.get_height() / 2,
                    f' {value:g}', va='center', fontsize=9)
        ax.invert_yaxis()
    ax.set_xlabel(value_column, fontsize=12)
    ax.set_ylabel(label_column, fontsize=12)
    ax.set_title(title or result.name, fontsize=14, fontweight='bold')
    plt.tight_layout()
    return save_graph(fig, path)
