"""
Unit tests for sentiment annotation.

Classifiers are plain fakes so no model weights are loaded.
"""

import threading
from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from disney_reviews_sentiment import (
    ClassificationError,
    ClassifierTimeout,
    TimeoutGuard,
    VaderClassifier,
    annotate_sentiment,
    classify_one,
    draw_sample,
    get_policy,
    passthrough_label,
    run_sentiment,
    stars_to_label,
    truncate,
)

NO_WAIT = {"timeout": None, "retries": 0, "backoff": 0}


def reviews(texts):
    return pd.DataFrame({
        "Review_ID": list(range(1, len(texts) + 1)),
        "Branch": ["Disneyland_Paris"] * len(texts),
        "Review_Text": texts,
        "text_clean": [t.lower() for t in texts],
    })


def star_classifier(text):
    """Fake five-star model keyed on a few words."""
    text = text.lower()
    if "awful" in text:
        return {"label": "1 star", "score": 0.9}
    if "ok" in text:
        return {"label": "3 stars", "score": 0.6}
    return {"label": "5 stars", "score": 0.8}


@pytest.mark.parametrize("raw,expected", [
    ("1 star", "Negative"),
    ("2 stars", "Negative"),
    ("3 stars", "Neutral"),
    ("4 stars", "Positive"),
    ("5 Stars", "Positive"),
    (3, "Neutral"),
    (4.0, "Positive"),
    (np.int64(2), "Negative"),
    (np.float32(5.0), "Positive"),
    ("4", "Positive"),
    (" 1 ", "Negative"),
])
def test_stars_policy(raw, expected):
    assert stars_to_label(raw) == expected


@pytest.mark.parametrize("raw", ["6 stars", "great", 2.5, 0, "", None, True, "4.5", float("nan")])
def test_stars_policy_rejects_unknown(raw):
    with pytest.raises(ValueError):
        stars_to_label(raw)


@pytest.mark.parametrize("raw,expected", [
    ("POSITIVE", "Positive"),
    ("neu", "Neutral"),
    ("Negative", "Negative"),
    ("LABEL_0", "Negative"),
    ("label_2", "Positive"),
])
def test_passthrough_policy(raw, expected):
    assert passthrough_label(raw) == expected


def test_passthrough_policy_rejects_stars():
    with pytest.raises(ValueError):
        passthrough_label("4 stars")


def test_unknown_policy():
    with pytest.raises(ValueError, match="Unknown label policy"):
        get_policy("sevenfold")


def test_draw_sample_is_reproducible():
    df = reviews([f"review {i}" for i in range(50)])

    a = draw_sample(df, 10, seed=7)
    b = draw_sample(df, 10, seed=7)

    assert a["Review_ID"].tolist() == b["Review_ID"].tolist()
    assert len(a) == 10


def test_draw_sample_larger_than_table_fails():
    with pytest.raises(ValueError, match="exceeds available rows"):
        draw_sample(reviews(["a", "b"]), 3)


def test_draw_sample_none_keeps_all():
    df = reviews(["a", "b"])
    assert len(draw_sample(df, None)) == 2


def test_truncate():
    assert truncate("x" * 1000) == "x" * 450
    assert truncate("short", 450) == "short"
    assert truncate(None) == ""


def test_annotate_maps_labels():
    df = reviews(["Magical day", "Awful queues", "It was ok"])

    out, failures = annotate_sentiment(df, star_classifier, policy="stars", **NO_WAIT)

    assert failures == 0
    assert out["sentiment"].tolist() == ["Positive", "Negative", "Neutral"]
    assert out["sentiment_raw"].tolist() == ["5 stars", "1 star", "3 stars"]


def test_annotate_failures_are_captured_per_item():
    def flaky(text):
        if "boom" in text:
            raise RuntimeError("CUDA out of memory")
        return star_classifier(text)

    df = reviews(["Magical day", "boom", "Awful queues"])

    out, failures = annotate_sentiment(df, flaky, **NO_WAIT)

    assert failures == 1
    assert out["sentiment"].iloc[0] == "Positive"
    assert out["sentiment"].iloc[1] is None
    assert out["sentiment"].iloc[2] == "Negative"


def test_annotate_unmappable_label_left_unset():
    df = reviews(["Magical day"])

    out, failures = annotate_sentiment(df, lambda t: {"label": "joy"}, policy="stars", **NO_WAIT)

    assert failures == 1
    assert out["sentiment"].isna().all()


def test_annotate_labels_are_always_canonical():
    df = reviews(["Magical day", "Awful queues", "It was ok", "boom"])

    out, _ = annotate_sentiment(df, star_classifier, **NO_WAIT)

    assert set(out["sentiment"].dropna()) <= {"Positive", "Neutral", "Negative"}


def test_annotate_truncates_before_classifying():
    seen = []

    def recording(text):
        seen.append(text)
        return {"label": "4 stars", "score": 1.0}

    annotate_sentiment(reviews(["y" * 2000]), recording, truncate_chars=450, **NO_WAIT)

    assert seen == ["y" * 450]


def test_annotate_does_not_mutate_input():
    df = reviews(["Magical day"])
    before = df.copy()
    annotate_sentiment(df, star_classifier, **NO_WAIT)
    pd.testing.assert_frame_equal(df, before)


def test_classify_one_retries_transient_errors():
    calls = []

    def once_broken(text):
        calls.append(text)
        if len(calls) == 1:
            raise ConnectionError("hub unavailable")
        return {"label": "5 stars"}

    result = classify_one(once_broken, "hello", timeout=None, retries=2, backoff=0)

    assert result["label"] == "5 stars"
    assert len(calls) == 2


def test_classify_one_gives_up_after_bounded_retries():
    calls = []

    def always_broken(text):
        calls.append(text)
        raise RuntimeError("nope")

    with pytest.raises(ClassificationError):
        classify_one(always_broken, "hello", timeout=None, retries=2, backoff=0)
    assert len(calls) == 3


def test_slow_item_times_out_without_aborting_batch():
    release = threading.Event()

    def slow_on_hang(text):
        if "hang" in text:
            release.wait(5)
        return star_classifier(text)

    df = reviews(["hang forever", "Magical day"])
    timer = threading.Timer(0.3, release.set)
    timer.start()
    try:
        out, failures = annotate_sentiment(df, slow_on_hang, timeout=0.2, retries=0, backoff=0)
    finally:
        timer.cancel()
        release.set()

    assert failures == 1
    assert out["sentiment"].iloc[0] is None
    assert out["sentiment"].iloc[1] == "Positive"


def test_timed_out_call_is_not_retried_or_overlapped():
    """While a timed-out call is still running, no second call reaches the model."""
    lock = threading.Lock()
    release = threading.Event()
    calls = []
    active = {"now": 0, "peak": 0}

    def tracking(text):
        with lock:
            calls.append(text)
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
        try:
            if "hang" in text:
                release.wait(5)
            return star_classifier(text)
        finally:
            with lock:
                active["now"] -= 1

    df = reviews(["hang", "Magical day", "Awful queues"])
    try:
        out, failures = annotate_sentiment(df, tracking, timeout=0.1, retries=2, backoff=0)
    finally:
        release.set()

    assert calls == ["hang"]
    assert active["peak"] == 1
    assert failures == 3
    assert out["sentiment"].isna().all()


def test_timed_out_worker_does_not_block_exit():
    release = threading.Event()
    guard = TimeoutGuard(0.05)

    with pytest.raises(ClassifierTimeout):
        guard.call(lambda text: release.wait(5), "hang")
    try:
        assert guard._pending.daemon
    finally:
        release.set()


def test_errors_inside_guarded_call_are_retried():
    calls = []

    def once_broken(text):
        calls.append(text)
        if len(calls) == 1:
            raise ConnectionError("hub unavailable")
        return {"label": "2 stars"}

    result = classify_one(once_broken, "hello", timeout=1.0, retries=1, backoff=0)

    assert result["label"] == "2 stars"
    assert len(calls) == 2


def test_vader_classifier_buckets_compound_score():
    with patch("disney_reviews_sentiment.nltk"), \
            patch("disney_reviews_sentiment.SentimentIntensityAnalyzer") as sia_cls:
        sia = MagicMock()
        sia.polarity_scores.side_effect = [{"compound": 0.7}, {"compound": -0.4}, {"compound": 0.01}]
        sia_cls.return_value = sia

        clf = VaderClassifier()
        labels = [clf(t)["label"] for t in ["great", "terrible", "fine"]]

    assert labels == ["positive", "negative", "neutral"]
    assert [passthrough_label(lbl) for lbl in labels] == ["Positive", "Negative", "Neutral"]


def write_cleaned(tmp_path, n=5):
    path = tmp_path / "cleaned.csv"
    reviews([f"Magical day number {i}" for i in range(n)]).to_csv(path, index=False)
    return path


def sentiment_kwargs(**overrides):
    kwargs = dict(
        sample_size=3,
        seed=42,
        backend="transformers",
        model_name="fake/model",
        policy="stars",
        truncate_chars=450,
        timeout=None,
        retries=0,
    )
    kwargs.update(overrides)
    return kwargs


def test_run_sentiment_fails_before_loading_model(tmp_path):
    in_csv = write_cleaned(tmp_path, n=2)

    with patch("disney_reviews_sentiment.build_classifier") as build:
        with pytest.raises(ValueError, match="exceeds available rows"):
            run_sentiment(in_csv, tmp_path / "out.csv", **sentiment_kwargs(sample_size=5))
        build.assert_not_called()


def test_run_sentiment_rejects_vader_with_stars(tmp_path):
    in_csv = write_cleaned(tmp_path)
    with pytest.raises(ValueError, match="passthrough"):
        run_sentiment(in_csv, tmp_path / "out.csv", **sentiment_kwargs(backend="vader"))


def test_run_sentiment_writes_annotated_sample(tmp_path):
    in_csv = write_cleaned(tmp_path)
    out_csv = tmp_path / "annotated.csv"

    with patch("disney_reviews_sentiment.build_classifier", return_value=star_classifier):
        run_sentiment(in_csv, out_csv, **sentiment_kwargs())

    df = pd.read_csv(out_csv)
    assert len(df) == 3
    assert set(df["sentiment"]) == {"Positive"}


def test_run_sentiment_keeps_integer_years(tmp_path):
    in_csv = tmp_path / "cleaned.csv"
    reviews(["Magical day", "Lovely rides"]).assign(Year=[2019, None]).to_csv(in_csv, index=False)
    out_csv = tmp_path / "annotated.csv"

    with patch("disney_reviews_sentiment.build_classifier", return_value=star_classifier):
        run_sentiment(in_csv, out_csv, **sentiment_kwargs(sample_size=None))

    text = out_csv.read_text(encoding="utf-8-sig")
    assert "2019" in text
    assert "2019.0" not in text
