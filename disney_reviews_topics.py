#!/usr/bin/env python3
"""
Disneyland Reviews — Topic Discovery Script

Takes the annotated CSV from disney_reviews_sentiment.py, selects a subset
(e.g. Negative reviews of one branch), and adds:
- topic       (BERTopic cluster id per review, -1 = outliers)
- topic_name  (top terms of the cluster)

Writes the annotated subset and a topic summary table ({Topic, Count, Name}).

Usage:
  python disney_reviews_topics.py \
    --in data/processed/disney_reviews_sentiment.csv \
    --out data/processed/disney_topics_paris_negative.csv \
    --summary-out data/processed/disney_topics_paris_negative_summary.csv \
    --branch Disneyland_Paris --sentiment Negative \
    [--sample-size 500] [--nr-topics 10] [--save-topic-model topic_model]

Dependencies:
  pip install pandas numpy bertopic sentence-transformers hdbscan umap-learn
"""

import argparse
import logging
from pathlib import Path
from typing import Protocol, Sequence

import numpy as np
import pandas as pd
from bertopic import BERTopic
from hdbscan import HDBSCAN
from sentence_transformers import SentenceTransformer
from transformers import set_seed

# UMAP for dimensionality reduction (seed here, not in BERTopic ctor)
from umap import UMAP

from disney_reviews_settings import (
    EMBEDDING_MODEL,
    MIN_TOPIC_SIZE,
    SEED,
    SENTIMENT_LABELS,
    TOPIC_SAMPLE_SIZE,
    setup_logging,
)
from disney_reviews_sentiment import draw_sample

logger = logging.getLogger(__name__)

OUTLIER_TOPIC = -1
SUMMARY_COLUMNS = ["Topic", "Count", "Name"]


class TopicClusterer(Protocol):
    def cluster(
        self,
        documents: Sequence[str],
        seed: int,
        target_topic_count: int | None = None,
    ) -> tuple[list[int], pd.DataFrame]:
        ...


def build_topic_labels(topic_model: BERTopic, topn: int = 4) -> dict[int, str]:
    labels = {}
    info = topic_model.get_topic_info()
    for _, row in info.iterrows():
        tid = int(row["Topic"])
        if tid == OUTLIER_TOPIC:
            labels[tid] = "outliers"
            continue
        words = topic_model.get_topic(tid) or []
        phrase = " ".join([w for w, _ in words[:topn]]) if words else f"topic_{tid}"
        labels[tid] = phrase
    return labels


class BERTopicClusterer:
    """
    Sentence embeddings -> UMAP -> HDBSCAN, wrapped by BERTopic.

    The same seed drives UMAP initialisation and the torch/numpy runtime used
    while embedding, so a rerun on the same documents yields the same topics.
    """

    def __init__(self, embedding_model_name: str = EMBEDDING_MODEL, min_topic_size: int = MIN_TOPIC_SIZE):
        self.embedding_model_name = embedding_model_name
        self.min_topic_size = min_topic_size
        self._embedder = None
        self.topic_model: BERTopic | None = None

    def _get_embedder(self) -> SentenceTransformer:
        if self._embedder is None:
            self._embedder = SentenceTransformer(self.embedding_model_name)
        return self._embedder

    def cluster(
        self,
        documents: Sequence[str],
        seed: int,
        target_topic_count: int | None = None,
    ) -> tuple[list[int], pd.DataFrame]:
        set_seed(seed)

        umap_model = UMAP(n_neighbors=15, n_components=5, min_dist=0.0, metric="cosine", random_state=seed)
        hdbscan_model = HDBSCAN(
            min_cluster_size=self.min_topic_size,
            metric="euclidean",
            cluster_selection_method="eom",
            prediction_data=True,
        )
        self.topic_model = BERTopic(
            embedding_model=self._get_embedder(),
            umap_model=umap_model,
            hdbscan_model=hdbscan_model,
            nr_topics=target_topic_count,
            verbose=False,
            calculate_probabilities=False,
            low_memory=True,
        )

        topics, _ = self.topic_model.fit_transform(list(documents))

        id2label = build_topic_labels(self.topic_model, topn=4)
        info = self.topic_model.get_topic_info()
        summary = pd.DataFrame({
            "Topic": info["Topic"].astype(int),
            "Count": info["Count"].astype(int),
            "Name": info["Topic"].astype(int).map(id2label),
        })
        return [int(t) for t in topics], summary

    def save(self, path: str) -> None:
        if self.topic_model is None:
            raise RuntimeError("No fitted topic model to save")
        self.topic_model.save(path)


def select_subset(
    df: pd.DataFrame,
    branch: str | None = None,
    sentiment: str | None = None,
    sample_size: int | None = None,
    seed: int = SEED,
) -> pd.DataFrame:
    subset = df
    if branch is not None:
        subset = subset[subset["Branch"] == branch]
    if sentiment is not None:
        subset = subset[subset["sentiment"] == sentiment]
    return draw_sample(subset, sample_size, seed)


def discover_topics(
    df: pd.DataFrame,
    clusterer: TopicClusterer,
    seed: int = SEED,
    target_topic_count: int | None = None,
    text_col: str = "text_clean",
) -> tuple[pd.DataFrame, pd.DataFrame]:
    if df.empty:
        raise ValueError("No reviews to cluster")

    docs = df[text_col].fillna("").astype(str).tolist()
    topics, summary = clusterer.cluster(docs, seed=seed, target_topic_count=target_topic_count)
    if len(topics) != len(docs):
        raise ValueError(f"Clusterer returned {len(topics)} assignments for {len(docs)} documents")

    names = dict(zip(summary["Topic"].astype(int), summary["Name"]))
    out = df.copy()
    out["topic"] = np.asarray(topics, dtype=int)
    out["topic_name"] = out["topic"].map(names).fillna("outliers")
    logger.info(
        "Assigned %d documents to %d topics (%d outliers)",
        len(out),
        int((summary["Topic"] != OUTLIER_TOPIC).sum()),
        int((out["topic"] == OUTLIER_TOPIC).sum()),
    )
    return out, summary[SUMMARY_COLUMNS].copy()


def run_topics(
    in_csv: Path,
    out_csv: Path,
    summary_csv: Path,
    branch: str | None,
    sentiment: str | None,
    sample_size: int | None,
    seed: int,
    nr_topics: int | None,
    embedding_model_name: str,
    save_topic_model: str | None,
) -> None:
    df = pd.read_csv(in_csv)
    required = ["Review_ID", "Branch", "text_clean"] + (["sentiment"] if sentiment else [])
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Input file is missing required columns: {missing}")

    subset = select_subset(df, branch=branch, sentiment=sentiment, sample_size=sample_size, seed=seed)
    clusterer = BERTopicClusterer(embedding_model_name)
    annotated, summary = discover_topics(subset, clusterer, seed=seed, target_topic_count=nr_topics)

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    annotated.to_csv(out_csv, index=False, encoding="utf-8-sig")
    summary_csv.parent.mkdir(parents=True, exist_ok=True)
    summary.to_csv(summary_csv, index=False, encoding="utf-8-sig")

    if save_topic_model:
        clusterer.save(str(Path(save_topic_model)))

    print("=== Disneyland Reviews Topics ===")
    print(f"Input rows:      {len(df):,}")
    print(f"Subset rows:     {len(subset):,} (branch={branch}, sentiment={sentiment})")
    print(f"Topics found:    {int((summary['Topic'] != OUTLIER_TOPIC).sum()):,}")
    print(f"Wrote:           {out_csv}")
    print(f"Summary:         {summary_csv}")
    if save_topic_model:
        print(f"Saved topic model to: {save_topic_model}")


def parse_args():
    ap = argparse.ArgumentParser(description="Cluster a subset of annotated reviews into BERTopic topics.")
    ap.add_argument("--in", dest="in_csv", required=True, help="Path to annotated CSV from disney_reviews_sentiment.py")
    ap.add_argument("--out", dest="out_csv", required=True, help="Path to write the subset with topic columns")
    ap.add_argument("--summary-out", dest="summary_csv", required=True, help="Path to write the topic summary table")
    ap.add_argument("--branch", default=None, help="Only cluster reviews of this branch (e.g. Disneyland_Paris)")
    ap.add_argument("--sentiment", default=None, choices=SENTIMENT_LABELS,
                    help="Only cluster reviews with this sentiment label")
    ap.add_argument("--sample-size", type=int, default=TOPIC_SAMPLE_SIZE,
                    help=f"Reviews to cluster (default: {TOPIC_SAMPLE_SIZE}, 0 = whole subset)")
    ap.add_argument("--seed", type=int, default=SEED, help="Random seed for sampling, embeddings and UMAP")
    ap.add_argument("--nr-topics", type=int, default=None, help="Reduce to this many topics")
    ap.add_argument("--embedding-model", default=EMBEDDING_MODEL,
                    help="SentenceTransformer model (e.g., paraphrase-multilingual-MiniLM-L12-v2, all-MiniLM-L6-v2)")
    ap.add_argument("--save-topic-model", type=str, default=None, help="Optional path prefix to save the BERTopic model")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap.parse_args()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    run_topics(
        in_csv=Path(args.in_csv),
        out_csv=Path(args.out_csv),
        summary_csv=Path(args.summary_csv),
        branch=args.branch,
        sentiment=args.sentiment,
        sample_size=args.sample_size or None,
        seed=args.seed,
        nr_topics=args.nr_topics,
        embedding_model_name=args.embedding_model,
        save_topic_model=args.save_topic_model,
    )
