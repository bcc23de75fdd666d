#!/usr/bin/env python3
"""
Disneyland Reviews — Sentiment Script

Takes CLEANED CSV from disney_reviews_clean.py and adds, for a seeded random sample:
- sentiment_raw   (label returned by the classifier, e.g. "4 stars")
- sentiment_score (classifier confidence, or VADER compound in [-1,1])
- sentiment       (Positive / Neutral / Negative; empty when classification failed)

Label policies:
- stars        five-star output collapsed: <=2 Negative, 3 Neutral, >=4 Positive (default)
- passthrough  three-way labels with case normalised (positive/NEU/LABEL_0 ...)

Usage:
  python disney_reviews_sentiment.py \
    --in data/processed/disney_reviews_cleaned.csv \
    --out data/processed/disney_reviews_sentiment.csv \
    [--sample-size 1000] [--seed 42] [--backend transformers|vader] [--policy stars]

Dependencies:
  pip install pandas transformers torch nltk
"""

import argparse
import logging
import math
import numbers
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict

import nltk
import pandas as pd
import torch
from nltk.sentiment import SentimentIntensityAnalyzer
from transformers import pipeline, set_seed

from disney_reviews_settings import (
    CLASSIFY_TIMEOUT_S,
    MAX_RETRIES,
    RETRY_BACKOFF_S,
    SAMPLE_SIZE,
    SEED,
    SENTIMENT_MODEL,
    SENTIMENT_POLICY,
    TRUNCATE_CHARS,
    setup_logging,
)

logger = logging.getLogger(__name__)

Classifier = Callable[[str], Dict[str, Any]]


class ClassificationError(RuntimeError):
    pass


# ---------- Label policies ----------

STARS_RE = re.compile(r"^\s*([1-5])\s*(stars?)?\s*$")


def stars_to_label(raw) -> str:
    if isinstance(raw, bool):
        raise ValueError(f"Not a star rating: {raw!r}")
    if isinstance(raw, numbers.Integral):
        stars = int(raw)
    elif isinstance(raw, numbers.Real):
        if math.isnan(raw) or not float(raw).is_integer():
            raise ValueError(f"Not a star rating: {raw!r}")
        stars = int(raw)
    else:
        m = STARS_RE.match(str(raw).lower())
        if not m:
            raise ValueError(f"Not a star rating: {raw!r}")
        stars = int(m.group(1))
    if stars < 1 or stars > 5:
        raise ValueError(f"Star rating out of range: {raw!r}")
    if stars >= 4:
        return "Positive"
    if stars == 3:
        return "Neutral"
    return "Negative"  # 1 or 2


PASSTHROUGH_ALIASES = {
    "positive": "Positive", "pos": "Positive", "label_2": "Positive",
    "neutral": "Neutral", "neu": "Neutral", "label_1": "Neutral",
    "negative": "Negative", "neg": "Negative", "label_0": "Negative",
}


def passthrough_label(raw) -> str:
    key = str(raw).strip().lower()
    if key not in PASSTHROUGH_ALIASES:
        raise ValueError(f"Unknown sentiment label: {raw!r}")
    return PASSTHROUGH_ALIASES[key]


LABEL_POLICIES: Dict[str, Callable[[Any], str]] = {
    "stars": stars_to_label,
    "passthrough": passthrough_label,
}


def get_policy(name: str) -> Callable[[Any], str]:
    if name not in LABEL_POLICIES:
        raise ValueError(f"Unknown label policy {name!r}; expected one of {sorted(LABEL_POLICIES)}")
    return LABEL_POLICIES[name]


# ---------- Classifiers ----------

class TransformersClassifier:
    """Hugging Face text-classification pipeline, one review per call."""

    def __init__(self, model_name: str = SENTIMENT_MODEL):
        device = 0 if torch.cuda.is_available() else -1
        self.model_name = model_name
        self._pipe = pipeline("sentiment-analysis", model=model_name, tokenizer=model_name, device=device)
        logger.info("Loaded sentiment model %s (device=%s)", model_name, device)

    def __call__(self, text: str) -> Dict[str, Any]:
        return self._pipe(text, truncation=True)[0]


class VaderClassifier:
    """Offline fallback: VADER compound score bucketed into three labels."""

    def __init__(self, threshold: float = 0.05):
        # Ensure VADER lexicon exists (silent no-op if already downloaded)
        try:
            nltk.data.find("sentiment/vader_lexicon.zip")
        except LookupError:
            nltk.download("vader_lexicon", quiet=True)
        self.threshold = threshold
        self._sia = SentimentIntensityAnalyzer()

    def __call__(self, text: str) -> Dict[str, Any]:
        compound = self._sia.polarity_scores(text)["compound"]
        if compound >= self.threshold:
            label = "positive"
        elif compound <= -self.threshold:
            label = "negative"
        else:
            label = "neutral"
        return {"label": label, "score": compound}


# ---------- Sampling & invocation ----------

def draw_sample(df: pd.DataFrame, n: int | None, seed: int = SEED) -> pd.DataFrame:
    if n is None:
        return df.copy()
    if n < 0:
        raise ValueError(f"Sample size must be non-negative, got {n}")
    if n > len(df):
        raise ValueError(f"Sample size {n} exceeds available rows ({len(df)})")
    return df.sample(n=n, random_state=seed).copy()


def truncate(text, budget: int = TRUNCATE_CHARS) -> str:
    return ("" if text is None else str(text))[:budget]


class ClassifierTimeout(ClassificationError):
    pass


class TimeoutGuard:
    """
    Runs classifier calls one at a time on a daemon thread, giving up on a
    call after `timeout` seconds.

    A thread cannot be killed, so a timed-out call keeps running in the
    background. Until it returns, no new call is started on the same
    classifier: the next review first waits up to `timeout` for it, and once
    that wait has failed, later reviews fail immediately until it finishes.
    Daemon threads never hold up interpreter exit.
    """

    def __init__(self, timeout: float | None = CLASSIFY_TIMEOUT_S):
        self.timeout = timeout
        self._pending: threading.Thread | None = None
        self._stuck = False

    def _wait_for_pending(self) -> None:
        if self._pending is None:
            return
        self._pending.join(0 if self._stuck else self.timeout)
        if self._pending.is_alive():
            self._stuck = True
            raise ClassifierTimeout("Classifier still busy with a timed-out review")
        self._pending = None
        self._stuck = False

    def call(self, classifier: Classifier, text: str) -> Dict[str, Any]:
        if not self.timeout:
            return classifier(text)
        self._wait_for_pending()

        outcome: Dict[str, Any] = {}

        def target():
            try:
                outcome["result"] = classifier(text)
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=target, name="sentiment-classifier", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            self._pending = worker
            raise ClassifierTimeout(f"Classifier call exceeded {self.timeout}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["result"]


def classify_one(
    classifier: Classifier,
    text: str,
    timeout: float | None = CLASSIFY_TIMEOUT_S,
    retries: int = MAX_RETRIES,
    backoff: float = RETRY_BACKOFF_S,
    guard: TimeoutGuard | None = None,
) -> Dict[str, Any]:
    """
    Call `classifier` with bounded retry and backoff. Timeouts are not
    retried: the timed-out call is still running.
    """
    guard = guard or TimeoutGuard(timeout)
    last_error: Exception | None = None
    for attempt in range(1, retries + 2):
        try:
            return guard.call(classifier, text)
        except ClassifierTimeout:
            raise
        except Exception as e:
            last_error = e
            logger.warning("Classifier error (attempt %d/%d): %r", attempt, retries + 1, e)
        if attempt <= retries:
            delay = min(30, backoff * attempt ** 2)
            if delay > 0:
                logger.info("Retry %d/%d in %.1fs", attempt, retries, delay)
                time.sleep(delay)
    raise ClassificationError(f"Classifier failed after {retries + 1} attempts") from last_error


def annotate_sentiment(
    df: pd.DataFrame,
    classifier: Classifier,
    policy: str = SENTIMENT_POLICY,
    truncate_chars: int = TRUNCATE_CHARS,
    text_col: str = "Review_Text",
    timeout: float | None = CLASSIFY_TIMEOUT_S,
    retries: int = MAX_RETRIES,
    backoff: float = RETRY_BACKOFF_S,
) -> tuple[pd.DataFrame, int]:
    """
    Classify every row of `df` and return an annotated copy plus the number of
    rows that could not be labelled. Failed rows keep `sentiment` empty.
    """
    to_label = get_policy(policy)
    guard = TimeoutGuard(timeout)
    out = df.copy()

    labels, raws, scores = [], [], []
    failures = 0
    for review_id, text in zip(out["Review_ID"], out[text_col]):
        try:
            result = classify_one(classifier, truncate(text, truncate_chars), timeout, retries, backoff, guard)
            raw = result["label"]
            label = to_label(raw)
            score = float(result.get("score", float("nan")))
        except (ClassificationError, KeyError, TypeError, ValueError) as e:
            failures += 1
            logger.warning("Review %s left without sentiment: %s", review_id, e)
            labels.append(None)
            raws.append(None)
            scores.append(float("nan"))
            continue
        labels.append(label)
        raws.append(raw)
        scores.append(score)

    out["sentiment_raw"] = raws
    out["sentiment_score"] = scores
    out["sentiment"] = labels
    logger.info("Labelled %d/%d reviews (%d failures)", len(out) - failures, len(out), failures)
    return out, failures


def build_classifier(backend: str, model_name: str) -> Classifier:
    if backend == "transformers":
        return TransformersClassifier(model_name)
    if backend == "vader":
        return VaderClassifier()
    raise ValueError(f"Unknown classifier backend {backend!r}")


def run_sentiment(
    in_csv: Path,
    out_csv: Path,
    sample_size: int | None,
    seed: int,
    backend: str,
    model_name: str,
    policy: str,
    truncate_chars: int,
    timeout: float | None,
    retries: int,
) -> None:
    get_policy(policy)
    if backend == "vader" and policy != "passthrough":
        raise ValueError("The vader backend emits three-way labels; use --policy passthrough")

    df = pd.read_csv(in_csv)
    if "Year" in df.columns:
        # NA years turn the column into floats on read
        df["Year"] = df["Year"].astype("Int64")
    missing = [c for c in ["Review_ID", "Review_Text"] if c not in df.columns]
    if missing:
        raise ValueError(f"Input file is missing required columns: {missing}")

    # Fail before loading any model weights
    sample = draw_sample(df, sample_size, seed)

    set_seed(seed)
    classifier = build_classifier(backend, model_name)
    annotated, failures = annotate_sentiment(
        sample,
        classifier,
        policy=policy,
        truncate_chars=truncate_chars,
        timeout=timeout,
        retries=retries,
    )

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    annotated.to_csv(out_csv, index=False, encoding="utf-8-sig")

    print("=== Disneyland Reviews Sentiment ===")
    print(f"Input rows:      {len(df):,}")
    print(f"Sampled rows:    {len(sample):,} (seed={seed})")
    print(f"Failed items:    {failures:,}")
    print(f"Label counts:    {annotated['sentiment'].value_counts().to_dict()}")
    print(f"Wrote:           {out_csv}")


def parse_args():
    ap = argparse.ArgumentParser(description="Add sentiment labels to a seeded sample of CLEANED reviews.")
    ap.add_argument("--in", dest="in_csv", required=True, help="Path to cleaned CSV from disney_reviews_clean.py")
    ap.add_argument("--out", dest="out_csv", required=True, help="Path to write annotated CSV")
    ap.add_argument("--sample-size", type=int, default=SAMPLE_SIZE,
                    help=f"Reviews to classify (default: {SAMPLE_SIZE}, 0 = all)")
    ap.add_argument("--seed", type=int, default=SEED, help="Random seed for sampling and model runtime")
    ap.add_argument("--backend", default="transformers", choices=["transformers", "vader"])
    ap.add_argument("--model", default=SENTIMENT_MODEL, help="Hugging Face model id for the transformers backend")
    ap.add_argument("--policy", default=SENTIMENT_POLICY, choices=sorted(LABEL_POLICIES))
    ap.add_argument("--truncate", type=int, default=TRUNCATE_CHARS, help="Character budget per review")
    ap.add_argument("--timeout", type=float, default=CLASSIFY_TIMEOUT_S, help="Per-review timeout in seconds (0 = none)")
    ap.add_argument("--retries", type=int, default=MAX_RETRIES, help="Extra attempts per review after a failure")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap.parse_args()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    run_sentiment(
        in_csv=Path(args.in_csv),
        out_csv=Path(args.out_csv),
        sample_size=args.sample_size or None,
        seed=args.seed,
        backend=args.backend,
        model_name=args.model,
        policy=args.policy,
        truncate_chars=args.truncate,
        timeout=args.timeout or None,
        retries=args.retries,
    )
