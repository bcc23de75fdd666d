#!/usr/bin/env python3
"""
Disneyland Reviews — Aggregation Script

Turns annotated reviews into chart-ready tables:
- sentiment breakdown: counts + row percentages of Positive/Neutral/Negative
  per (Branch, Year, Visitor_Type) or any other grouping
- topic frequency: counts + percentages of topics per branch (outliers excluded)
- top themes: the largest topics of a topic summary table (outliers excluded)

Every combination of group values is reported; empty groups get 0. Branch,
Visitor_Type and sentiment always list their full set of values.

Usage:
  python disney_reviews_aggregate.py \
    --in data/processed/disney_reviews_sentiment.csv \
    --outdir reports \
    [--by Branch Visitor_Type] [--topic-summary summary.csv --top 10] [--format csv|json]
"""

import argparse
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from disney_reviews_settings import BRANCH_COUNTRY, SENTIMENT_LABELS, VISITOR_TYPES, setup_logging

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = ["Branch", "Year", "Visitor_Type"]
OUTLIER_TOPIC = -1


# Columns whose values come from a fixed set; empty members still get a row
GROUP_DOMAINS = {
    "Branch": list(BRANCH_COUNTRY),
    "Visitor_Type": VISITOR_TYPES,
    "sentiment": SENTIMENT_LABELS,
}


def _levels(df: pd.DataFrame, col: str) -> list:
    observed = df[col].dropna().unique().tolist()
    domain = GROUP_DOMAINS.get(col)
    if domain is None:
        return sorted(observed)
    return list(domain) + sorted(v for v in observed if v not in domain)


def _full_index(df: pd.DataFrame, by: list[str]) -> pd.Index:
    levels = [_levels(df, c) for c in by]
    if len(by) == 1:
        return pd.Index(levels[0], name=by[0])
    return pd.MultiIndex.from_product(levels, names=by)


def _row_percentages(counts: pd.DataFrame, decimals: int) -> pd.DataFrame:
    total = counts.sum(axis=1)
    pct = counts.div(total.replace(0, np.nan), axis=0).mul(100).fillna(0.0)
    return pct.round(decimals)


def sentiment_breakdown(df: pd.DataFrame, by: list[str] | None = None, decimals: int = 2) -> pd.DataFrame:
    by = list(by or DEFAULT_GROUPS)
    missing = [c for c in by + ["sentiment"] if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot aggregate, missing columns: {missing}")

    index = _full_index(df, by)
    labelled = df[df["sentiment"].isin(SENTIMENT_LABELS)]
    if labelled.empty:
        counts = pd.DataFrame(0, index=index, columns=SENTIMENT_LABELS)
    else:
        counts = (
            labelled.groupby(by + ["sentiment"])
            .size()
            .unstack("sentiment", fill_value=0)
            .reindex(index=index, columns=SENTIMENT_LABELS, fill_value=0)
        )
    counts = counts.astype(int)

    pct = _row_percentages(counts, decimals).add_suffix("_pct")
    table = pd.concat([counts, counts.sum(axis=1).rename("Total"), pct], axis=1)
    table.columns.name = None
    return table.reset_index()


def topic_frequency(df: pd.DataFrame, by: str = "Branch", decimals: int = 2) -> pd.DataFrame:
    missing = [c for c in [by, "topic"] if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot aggregate, missing columns: {missing}")

    assigned = df[df["topic"] != OUTLIER_TOPIC]
    columns = [by, "topic", "topic_name", "count", "pct"]
    if assigned.empty:
        return pd.DataFrame(columns=columns)

    counts = (
        assigned.groupby([by, "topic"])
        .size()
        .unstack("topic", fill_value=0)
        .reindex(index=_full_index(df, [by]), fill_value=0)
    )
    pct = _row_percentages(counts, decimals)

    table = pd.concat(
        [counts.stack().rename("count"), pct.stack().rename("pct")],
        axis=1,
    ).reset_index()
    if "topic_name" in assigned.columns:
        names = assigned.drop_duplicates("topic").set_index("topic")["topic_name"]
        table["topic_name"] = table["topic"].map(names)
    else:
        table["topic_name"] = table["topic"].map(lambda t: f"topic_{t}")
    table = table.sort_values([by, "count"], ascending=[True, False], kind="stable")
    return table[columns].reset_index(drop=True)


def top_themes(summary: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    themes = summary[summary["Topic"] != OUTLIER_TOPIC]
    return themes.sort_values("Count", ascending=False, kind="stable").head(n).reset_index(drop=True)


def export_table(df: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".json":
        df.to_json(path, orient="records", indent=2, force_ascii=False)
    else:
        df.to_csv(path, index=False, encoding="utf-8-sig")
    logger.info("Wrote %d rows to %s", len(df), path)
    return path


def run_aggregate(
    in_csv: Path,
    outdir: Path,
    by: list[str],
    fmt: str,
    topic_summary_csv: Path | None,
    top_n: int,
) -> None:
    df = pd.read_csv(in_csv)
    if "Year" in df.columns:
        # NA years turn the column into floats on read
        df["Year"] = df["Year"].astype("Int64")
    written = []

    breakdown = sentiment_breakdown(df, by)
    written.append(export_table(breakdown, outdir / f"sentiment_breakdown.{fmt}"))

    # Percentages per (Branch, Visitor_Type) regardless of --by
    if {"Branch", "Visitor_Type"}.issubset(df.columns) and by != ["Branch", "Visitor_Type"]:
        visitors = sentiment_breakdown(df, ["Branch", "Visitor_Type"])
        written.append(export_table(visitors, outdir / f"sentiment_by_visitor_type.{fmt}"))

    if "topic" in df.columns:
        written.append(export_table(topic_frequency(df), outdir / f"topic_frequency.{fmt}"))

    if topic_summary_csv:
        summary = pd.read_csv(topic_summary_csv)
        written.append(export_table(top_themes(summary, top_n), outdir / f"top_themes.{fmt}"))

    print("=== Disneyland Reviews Aggregate ===")
    print(f"Input rows:      {len(df):,}")
    print(f"Labelled rows:   {int(df['sentiment'].isin(SENTIMENT_LABELS).sum()):,}")
    for path in written:
        print(f"Wrote:           {path}")


def parse_args():
    ap = argparse.ArgumentParser(description="Aggregate annotated reviews into sentiment/topic tables.")
    ap.add_argument("--in", dest="in_csv", required=True, help="Path to annotated CSV (sentiment and/or topics)")
    ap.add_argument("--outdir", required=True, help="Directory to write the tables")
    ap.add_argument("--by", nargs="+", default=DEFAULT_GROUPS,
                    help=f"Grouping columns for the sentiment breakdown (default: {' '.join(DEFAULT_GROUPS)})")
    ap.add_argument("--format", dest="fmt", default="csv", choices=["csv", "json"])
    ap.add_argument("--topic-summary", type=str, default=None,
                    help="Topic summary CSV from disney_reviews_topics.py (for the top themes table)")
    ap.add_argument("--top", type=int, default=10, help="Number of top themes to report")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap.parse_args()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    run_aggregate(
        in_csv=Path(args.in_csv),
        outdir=Path(args.outdir),
        by=args.by,
        fmt=args.fmt,
        topic_summary_csv=Path(args.topic_summary) if args.topic_summary else None,
        top_n=args.top,
    )
