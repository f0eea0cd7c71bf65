"""
Pump Advisor: Batch Evaluation Harness

Runs benchmark rows straight through the policy (no conversation) and
writes top-3 submissions as JSONL or CSV.

Usage:
    python evaluation.py evaluation_dataset.csv --out submissions.jsonl
"""
from __future__ import annotations
import argparse
import csv
import json
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator

from conversation_policy import get_next_action
from intent_extractor import extract_intent
from models import Application, ConversationState, WaterSource
from pump_catalog import PumpCatalog, get_catalog
import unit_patterns as up

logger = logging.getLogger(__name__)

TOP_K = 3


class EvalRow(BaseModel):
    id: str
    domain: str = ""
    user_query: str = ""
    original_units: str = ""
    flow_m3h: float = 0.0
    head_m: float = 0.0
    application: str = ""
    expected_model: str = ""
    expected_pdf: str = ""

    @field_validator("flow_m3h", "head_m", mode="before")
    @classmethod
    def blank_as_zero(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        try:
            return float(v)
        except (TypeError, ValueError):
            return 0.0


class Submission(BaseModel):
    id: str
    top_k: list[str] = Field(default_factory=list)
    prediction: str = ""


# ============================================================
# Row Mapping
# ============================================================

HEATING_TAGS = ('HVAC', 'HotWater', 'Heating')
COOLING_TAGS = ('Coolant',)
WELL_TAGS = ('Borehole', 'Domestic', 'Irrigation', 'Boosting')

_MOTOR_KW_RE = re.compile(r'(\d+(?:\.\d+)?)\s*kW', re.IGNORECASE)
_MOTOR_HP_RE = re.compile(r'(\d+(?:\.\d+)?)\s*hp', re.IGNORECASE)


def map_application_to_engine(app: str) -> Application:
    """Benchmark application names -> engine applications."""
    if any(tag in app for tag in HEATING_TAGS):
        return Application.HEATING
    if any(tag in app for tag in COOLING_TAGS):
        return Application.COOLING
    # Process, Booster, MotorDrive, Borehole, Irrigation, Domestic
    return Application.WATER_SUPPLY


def extract_motor_kw_from_units(original_units: str) -> Optional[float]:
    """'0.55 kW motor power' -> 0.55; '10 hp motor power' -> 7.457."""
    m = _MOTOR_KW_RE.search(original_units or '')
    if m:
        return float(m.group(1))
    m = _MOTOR_HP_RE.search(original_units or '')
    if m:
        return up.convert(float(m.group(1)), up.HP_TO_KW)
    return None


def row_to_state(row: EvalRow) -> ConversationState:
    fields: dict = {
        'application': map_application_to_engine(row.application),
        'eval_domain': (up.detect_eval_domain(row.user_query)
                        or up.detect_eval_domain(row.application)),
    }
    if any(tag in row.application for tag in WELL_TAGS):
        fields['water_source'] = WaterSource.WELL

    if row.flow_m3h > 0:
        fields['flow_m3h'] = row.flow_m3h
    if row.head_m > 0:
        fields['head_m'] = row.head_m
    if row.flow_m3h == 0 and row.head_m == 0:
        motor_kw = extract_motor_kw_from_units(row.original_units)
        if motor_kw:
            fields['motor_kw'] = motor_kw

    # Fall back to the pattern extractor on the raw query
    if 'flow_m3h' not in fields and 'motor_kw' not in fields:
        extracted = extract_intent([{'role': 'user', 'content': row.user_query}])
        for name in ('flow_m3h', 'head_m', 'motor_kw'):
            value = getattr(extracted, name)
            if value is not None and name not in fields:
                fields[name] = value

    return ConversationState(**fields)


def evaluate_row(row: EvalRow, catalog: PumpCatalog,
                 region: Optional[str] = None) -> Submission:
    state = row_to_state(row)
    result = get_next_action(state, catalog=catalog, region=region)
    top_k = [p.model for p in result.pumps[:TOP_K]]
    if not top_k:
        logger.info(f"Row {row.id}: no recommendation ({result.action.value})")
    return Submission(id=row.id, top_k=top_k, prediction=top_k[0] if top_k else '')


def run_evaluation(rows: Iterable[EvalRow], catalog: Optional[PumpCatalog] = None,
                   region: Optional[str] = None) -> list[Submission]:
    catalog = catalog if catalog is not None else get_catalog()
    submissions = [evaluate_row(row, catalog, region) for row in rows]
    hits = sum(1 for s in submissions if s.prediction)
    logger.info(f"Evaluated {len(submissions)} rows, {hits} with a prediction")
    return submissions


# ============================================================
# I/O
# ============================================================

def load_eval_rows(csv_path: str | Path) -> list[EvalRow]:
    with open(csv_path, newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        rows = [
            EvalRow(**{k.strip(): (v or '').strip() for k, v in raw.items() if k})
            for raw in reader
        ]
    logger.info(f"Loaded {len(rows)} evaluation rows from {csv_path}")
    return rows


def write_jsonl(submissions: Iterable[Submission], path: str | Path) -> None:
    with open(path, 'w', encoding='utf-8') as f:
        for s in submissions:
            f.write(s.model_dump_json() + '\n')


def write_csv(submissions: Iterable[Submission], path: str | Path) -> None:
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(['id', 'prediction', 'top_k'])
        for s in submissions:
            writer.writerow([s.id, s.prediction, json.dumps(s.top_k)])


def main():
    parser = argparse.ArgumentParser(description="Run the pump benchmark through the policy")
    parser.add_argument("csv_path", help="Evaluation dataset CSV")
    parser.add_argument("--out", default="submissions.jsonl",
                        help="Output path; .csv writes CSV, anything else JSONL")
    parser.add_argument("--region", default=None, help="Tariff region override")
    args = parser.parse_args()

    submissions = run_evaluation(load_eval_rows(args.csv_path), region=args.region)
    if args.out.endswith('.csv'):
        write_csv(submissions, args.out)
    else:
        write_jsonl(submissions, args.out)
    logger.info(f"Wrote {len(submissions)} submissions to {args.out}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
