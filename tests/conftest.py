import pandas as pd
import pytest


@pytest.fixture
def raw_reviews():
    """A small raw frame in the shape of DisneylandReviews.csv."""
    return pd.DataFrame({
        "Review_ID": [101, 102, 103, 104],
        "Rating": [5, 2, 4, 3],
        "Year_Month": ["2019-4", "2018-12", "missing", "2019-1"],
        "Reviewer_Location": ["France", "Germany", "Hong Kong", None],
        "Review_Text": [
            "Magical day, the parade was amazing!",
            "Queues were 90 minutes long. Awful.",
            "Good rides but the food is expensive",
            "It was ok I guess",
        ],
        "Branch": ["Disneyland_Paris", "Disneyland_Paris", "Disneyland_HongKong", "Disneyland_California"],
    })
