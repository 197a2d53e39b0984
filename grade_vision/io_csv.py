import json
import math
from typing import List
from urllib.parse import quote, unquote

import pandas as pd

from grade_vision.aggregate import aggregate
from grade_vision.ladder import is_reachable, tier_by_name
from grade_vision.models import AggregateResult, Subject

# ------------------------
# Subject input (form / CSV side)
# ------------------------

def make_subject(name, internal_marks, credit_weight) -> Subject:
    name = "" if name is None else str(name).strip()
    if not name:
        raise ValueError("Subject name is required.")

    try:
        cie = float(internal_marks)
    except (TypeError, ValueError):
        raise ValueError("CIE marks must be a number.") from None
    if not math.isfinite(cie):
        raise ValueError("CIE marks must be a number.")
    if cie < 0:
        raise ValueError("CIE marks must be at least 0.")
    if cie > 50:
        raise ValueError("CIE marks cannot exceed 50.")

    try:
        credits = float(credit_weight)
    except (TypeError, ValueError):
        raise ValueError("Credits must be a number.") from None
    if not math.isfinite(credits):
        raise ValueError("Credits must be a number.")
    if credits < 0.5:
        raise ValueError("Credits must be at least 0.5.")
    if credits > 10:
        raise ValueError("Credits cannot exceed 10.")

    return Subject(name=name, internal_marks=cie, credit_weight=credits)


def _normalise_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    renames = {"credit": "credits", "internal": "cie", "name": "subject"}
    for old, new in renames.items():
        if old in df.columns and new not in df.columns:
            df = df.rename(columns={old: new})
    return df


def read_csv_upload(uploaded_file) -> pd.DataFrame:
    df = pd.read_csv(uploaded_file)
    return _normalise_cols(df)


def validate_subjects_csv(df: pd.DataFrame) -> pd.DataFrame:
    required = {"subject", "cie", "credits"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns: {sorted(missing)}. Expected: Subject, CIE, Credits.")
    out = df[["subject", "cie", "credits"]].copy()
    out = out.rename(columns={"subject": "Subject", "cie": "CIE", "credits": "Credits"})
    return out


def parse_subjects(df: pd.DataFrame) -> List[Subject]:
    subjects = []
    for i, row in df.iterrows():
        name = row.get("Subject")
        cie = row.get("CIE")
        credits = row.get("Credits")
        if pd.isna(name) or pd.isna(cie) or pd.isna(credits):
            continue
        try:
            subjects.append(make_subject(name, cie, credits))
        except ValueError as e:
            raise ValueError(f"Row {i + 1}: {e}") from e
    return subjects


# ------------------------
# Results (display / transfer side)
# ------------------------

def results_to_frame(result: AggregateResult) -> pd.DataFrame:
    rows = []
    for r in result.per_subject:
        rows.append({
            "Subject": r.subject_name,
            "CIE": r.internal_marks,
            "Credits": r.credit_weight,
            "Est. Grade": r.committed_tier,
            "SEE Marks Req.": r.required_exam_marks if is_reachable(r.required_exam_marks) else "N/A",
            "Grade Point": r.grade_point,
            "At Risk": r.at_risk,
        })
    columns = ["Subject", "CIE", "Credits", "Est. Grade", "SEE Marks Req.", "Grade Point", "At Risk"]
    return pd.DataFrame(rows, columns=columns)


def encode_result(result: AggregateResult) -> str:
    """URL-safe JSON of a whole result, for passing it between pages."""
    payload = json.dumps(result.to_dict(), allow_nan=False, separators=(",", ":"))
    return quote(payload, safe="")


def decode_result(encoded: str) -> AggregateResult:
    try:
        data = json.loads(unquote(encoded))
    except json.JSONDecodeError as e:
        raise ValueError(f"Could not read results data: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Results data must be a JSON object.")
    results = AggregateResult.from_dict(data).per_subject
    for r in results:
        try:
            tier = tier_by_name(r.committed_tier)
        except KeyError as e:
            raise ValueError(f"{r.subject_name}: unknown grade {r.committed_tier!r}") from e
        if tier.grade_point != r.grade_point:
            raise ValueError(
                f"{r.subject_name}: grade {tier.name} is worth {tier.grade_point}, not {r.grade_point}"
            )
    # the stored average is not trusted; derive it again
    return aggregate(results)
