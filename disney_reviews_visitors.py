"""
Local vs Tourist tagging.

A reviewer is "Local" only when Reviewer_Location is exactly the home country
of the park they reviewed. Everything else, including a missing location or
an unknown branch, is "Tourist".
"""

import pandas as pd

from disney_reviews_settings import BRANCH_COUNTRY


def visitor_type(location, branch, mapping: dict[str, str] = BRANCH_COUNTRY) -> str:
    country = mapping.get(branch)
    if country is None or not isinstance(location, str):
        return "Tourist"
    return "Local" if location == country else "Tourist"


def tag_visitor_type(df: pd.DataFrame, mapping: dict[str, str] = BRANCH_COUNTRY) -> pd.DataFrame:
    out = df.copy()
    out["Visitor_Type"] = [
        visitor_type(loc, branch, mapping)
        for loc, branch in zip(out["Reviewer_Location"], out["Branch"])
    ]
    return out
