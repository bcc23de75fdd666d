"""
Shared tunables for the Disneyland review scripts.

Values can be overridden from the environment (dotenv supported), e.g.
  SENTIMENT_MODEL=cardiffnlp/twitter-xlm-roberta-base-sentiment SENTIMENT_POLICY=passthrough
"""

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ---------- Dataset ----------
REQUIRED_COLUMNS = ["Review_ID", "Rating", "Year_Month", "Reviewer_Location", "Review_Text", "Branch"]

# Home country of each park, compared verbatim against Reviewer_Location
BRANCH_COUNTRY = {
    "Disneyland_HongKong": "Hong Kong",
    "Disneyland_California": "United States",
    "Disneyland_Paris": "France",
}

VISITOR_TYPES = ["Local", "Tourist"]
SENTIMENT_LABELS = ["Positive", "Neutral", "Negative"]

# ---------- Cleaning ----------
# Upper fence of the review length boxplot; longer reviews are treated as spam
LENGTH_CUTOFF = int(os.getenv("LENGTH_CUTOFF", "1734"))
# 0 keeps short reviews
MIN_WORDS = int(os.getenv("MIN_WORDS", "0"))

CUSTOM_STOPWORDS = [
    "disney", "disneyland", "park", "parks",
    "also", "would", "could", "get", "got", "us", "one",
]

# ---------- Sentiment ----------
SENTIMENT_MODEL = os.getenv("SENTIMENT_MODEL", "nlptown/bert-base-multilingual-uncased-sentiment")
SENTIMENT_POLICY = os.getenv("SENTIMENT_POLICY", "stars")  # stars | passthrough
TRUNCATE_CHARS = int(os.getenv("TRUNCATE_CHARS", "450"))
SAMPLE_SIZE = int(os.getenv("SAMPLE_SIZE", "1000"))
SEED = int(os.getenv("SEED", "42"))

CLASSIFY_TIMEOUT_S = float(os.getenv("CLASSIFY_TIMEOUT_S", "60"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "2"))
RETRY_BACKOFF_S = 1.5

# ---------- Topics ----------
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "paraphrase-multilingual-MiniLM-L12-v2")
TOPIC_SAMPLE_SIZE = int(os.getenv("TOPIC_SAMPLE_SIZE", "0"))  # 0 = whole subset
MIN_TOPIC_SIZE = 10

# ---------- Logging ----------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
