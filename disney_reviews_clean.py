#!/usr/bin/env python
"""
Disneyland Reviews — Text Cleaning & Dedup Script (NO modeling)

What it does:
1) Validate required columns: Review_ID, Rating, Year_Month, Reviewer_Location, Review_Text, Branch
2) Derive Year from Year_Month ("2019-4" -> 2019, "missing" -> NA) when the column is absent
3) Coerce Rating to numeric and clip to [1..5]
4) Drop empty review texts (null or whitespace only)
5) Clean text -> text_clean (lowercase, remove URLs/HTML/punctuation/digits,
   compress whitespace, remove NLTK + custom stopwords)
6) Drop reviews whose text_clean is longer than the length cutoff (default 1734 chars)
7) Optionally drop reviews with fewer than --min-words words
8) De-duplicate on text_clean (keep first)
9) Tag Visitor_Type (Local/Tourist) and detected language
10) Write single cleaned CSV

Usage:
  python disney_reviews_clean.py --in DisneylandReviews.csv --out disney_reviews_cleaned.csv [--min-words 10]
"""

import argparse
import logging
import re
from pathlib import Path

import langid
import nltk
import pandas as pd

from disney_reviews_settings import (
    CUSTOM_STOPWORDS,
    LENGTH_CUTOFF,
    MIN_WORDS,
    REQUIRED_COLUMNS,
    setup_logging,
)
from disney_reviews_visitors import tag_visitor_type

logger = logging.getLogger(__name__)

URL_RE = re.compile(r"(http[s]?://\S+|www\.\S+)")
HTML_TAG_RE = re.compile(r"<[^>]+>")
HTML_ENTITY_RE = re.compile(r"&(#\d+|[a-z]+);")
NON_ALPHA_RE = re.compile(r"[^a-z\s]")
SPACES_RE = re.compile(r"\s+")


def load_stopwords(extra: list[str] | None = None) -> set[str]:
    # Silent no-op if the corpus is already downloaded
    try:
        nltk.data.find("corpora/stopwords")
    except LookupError:
        nltk.download("stopwords", quiet=True)
    from nltk.corpus import stopwords

    words = set(stopwords.words("english"))
    words.update(CUSTOM_STOPWORDS if extra is None else extra)
    return words


def clean_text(t, stopwords: set[str] | frozenset[str] = frozenset()) -> str:
    t = ("" if t is None or (isinstance(t, float) and pd.isna(t)) else str(t)).lower()
    t = URL_RE.sub(" ", t)
    t = HTML_TAG_RE.sub(" ", t)
    t = HTML_ENTITY_RE.sub(" ", t)
    t = NON_ALPHA_RE.sub(" ", t)
    t = SPACES_RE.sub(" ", t).strip()
    if stopwords:
        t = " ".join(w for w in t.split(" ") if w and w not in stopwords)
    return t


def detect_language(text) -> str:
    if not isinstance(text, str) or not text.strip():
        return "unknown"
    lang, _ = langid.classify(text)
    return lang


def year_from_year_month(ym: pd.Series) -> pd.Series:
    return pd.to_numeric(ym.astype(str).str.split("-").str[0], errors="coerce").astype("Int64")


def load_reviews(in_csv: Path) -> pd.DataFrame:
    # The public dataset ships latin-1 encoded
    try:
        df = pd.read_csv(in_csv)
    except UnicodeDecodeError:
        df = pd.read_csv(in_csv, encoding="latin-1")
    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Input file is missing required columns: {missing}")

    if "Year" not in df.columns:
        df["Year"] = year_from_year_month(df["Year_Month"])
    df["Rating"] = pd.to_numeric(df["Rating"], errors="coerce").clip(lower=1, upper=5)
    return df


def clean_reviews(
    df: pd.DataFrame,
    stopwords: set[str] | frozenset[str] = frozenset(),
    length_cutoff: int = LENGTH_CUTOFF,
    min_words: int = MIN_WORDS,
) -> tuple[pd.DataFrame, dict[str, int]]:
    """
    Returns a cleaned copy of `df` and the number of rows dropped at each step.
    The input frame is left untouched.
    """
    stats = {"input": len(df)}

    text = df["Review_Text"]
    keep = text.notna() & (text.astype(str).str.strip().str.len() > 0)
    out = df[keep].copy()
    stats["dropped_empty"] = int((~keep).sum())

    out["text_clean"] = out["Review_Text"].apply(lambda t: clean_text(t, stopwords))
    before = len(out)
    out = out[out["text_clean"].str.len() > 0].copy()
    stats["dropped_empty_after_clean"] = before - len(out)

    out["text_length"] = out["text_clean"].str.len()
    out["word_count"] = out["text_clean"].str.split().str.len()

    before = len(out)
    out = out[out["text_length"] <= length_cutoff].copy()
    stats["dropped_too_long"] = before - len(out)

    before = len(out)
    if min_words > 0:
        out = out[out["word_count"] >= min_words].copy()
    stats["dropped_too_short"] = before - len(out)

    before = len(out)
    out = out.drop_duplicates(subset=["text_clean"], keep="first").copy()
    stats["duplicates_removed"] = before - len(out)

    stats["output"] = len(out)
    logger.info("Cleaned %d -> %d reviews", stats["input"], stats["output"])
    return out, stats


def run_clean(in_csv: Path, out_csv: Path, min_words: int, length_cutoff: int, skip_language: bool) -> None:
    df_raw = load_reviews(in_csv)

    df, stats = clean_reviews(
        df_raw,
        stopwords=load_stopwords(),
        length_cutoff=length_cutoff,
        min_words=min_words,
    )
    df = tag_visitor_type(df)
    if not skip_language:
        df["language"] = df["Review_Text"].apply(detect_language)

    # Reorder key columns
    front = [
        "Review_ID",
        "Branch",
        "Year",
        "Year_Month",
        "Rating",
        "Reviewer_Location",
        "Visitor_Type",
        "language",
        "text_clean",
        "text_length",
        "word_count",
    ]
    front_existing = [c for c in front if c in df.columns]
    others = [c for c in df.columns if c not in front_existing]
    df_out = df[front_existing + others]

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    df_out.to_csv(out_csv, index=False, encoding="utf-8-sig")

    print("=== Disneyland Reviews Clean ===")
    print(f"Input rows:               {stats['input']:,}")
    print(f"Dropped empty texts:      {stats['dropped_empty']:,}")
    print(f"Dropped empty after clean:{stats['dropped_empty_after_clean']:,}")
    print(f"Dropped > {length_cutoff} chars:   {stats['dropped_too_long']:,}")
    print(f"Dropped < {min_words} words:      {stats['dropped_too_short']:,}")
    print(f"Duplicates removed:       {stats['duplicates_removed']:,}")
    print(f"Output rows:              {len(df_out):,}")
    print(f"Wrote:                    {out_csv}")


def parse_args():
    ap = argparse.ArgumentParser(description="Clean and de-duplicate Disneyland reviews (no modeling).")
    ap.add_argument("--in", dest="in_csv", required=True, help="Path to raw DisneylandReviews.csv")
    ap.add_argument("--out", dest="out_csv", required=True, help="Path to write cleaned CSV")
    ap.add_argument("--min-words", type=int, default=MIN_WORDS,
                    help=f"Drop reviews with fewer words after cleaning (default: {MIN_WORDS}, 0 = keep all)")
    ap.add_argument("--length-cutoff", type=int, default=LENGTH_CUTOFF,
                    help=f"Max characters of cleaned text (default: {LENGTH_CUTOFF})")
    ap.add_argument("--skip-language", action="store_true", help="Do not run language detection")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap.parse_args()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    run_clean(
        in_csv=Path(args.in_csv),
        out_csv=Path(args.out_csv),
        min_words=args.min_words,
        length_cutoff=args.length_cutoff,
        skip_language=args.skip_language,
    )
