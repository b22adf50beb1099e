"""Inclusion criteria and their evaluation against a cohort DataFrame.

Criteria are typed predicates bound to column names. They are validated
against the dataset schema before any counting happens, so a typo in a
column name fails immediately instead of silently excluding everyone.

Missing values are domain data, not faults: a record whose referenced
field is missing never satisfies the predicate.

Example:
    >>> crit = Criterion("ECOG score available", FieldPresent("ecog"))
    >>> validate_criteria([crit], df.columns)
    >>> n_pass, n_fail = count_criterion(df, crit)
"""
from __future__ import annotations
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd


COMPARISON_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class SchemaError(ValueError):
    """A criterion or stage references columns the dataset does not define."""


class Predicate(ABC):
    """Base class for vectorised row predicates."""

    fields: Tuple[str, ...] = ()

    @abstractmethod
    def mask(self, df: pd.DataFrame) -> pd.Series:
        """Boolean Series aligned with ``df.index``."""

    def _present(self, df: pd.DataFrame) -> pd.Series:
        present = pd.Series(True, index=df.index)
        for name in self.fields:
            present &= df[name].notna()
        return present


@dataclass(frozen=True)
class FieldPresent(Predicate):
    """True where ``field`` holds a non-missing value."""

    field: str

    @property
    def fields(self) -> Tuple[str, ...]:
        return (self.field,)

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return df[self.field].notna()

    def __str__(self) -> str:
        return f"{self.field} is present"


@dataclass(frozen=True)
class Comparison(Predicate):
    """Compare ``field`` against a constant, e.g. ``weight_loss >= 0``."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in COMPARISON_OPS:
            raise ValueError(
                f"Unsupported comparison operator '{self.op}'. "
                f"Supported: {sorted(COMPARISON_OPS)}"
            )

    @property
    def fields(self) -> Tuple[str, ...]:
        return (self.field,)

    def mask(self, df: pd.DataFrame) -> pd.Series:
        present = self._present(df)
        out = pd.Series(False, index=df.index)
        if present.any():
            compared = COMPARISON_OPS[self.op](df.loc[present, self.field], self.value)
            out.loc[present] = compared.astype(bool)
        return out

    def __str__(self) -> str:
        return f"{self.field} {self.op} {self.value!r}"


@dataclass(frozen=True)
class Custom(Predicate):
    """Arbitrary vectorised predicate over declared columns.

    ``func`` receives the rows where every declared field is present and
    must return a boolean Series with the same index, or an array of the
    same length. A Series with any other index raises ValueError.
    """

    columns: Tuple[str, ...]
    func: Callable[[pd.DataFrame], pd.Series] = field(compare=False)
    name: str = "custom"

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.columns)

    def mask(self, df: pd.DataFrame) -> pd.Series:
        present = self._present(df)
        out = pd.Series(False, index=df.index)
        if present.any():
            rows = df.loc[present]
            result = self.func(rows)
            if isinstance(result, pd.Series):
                if not result.index.equals(rows.index):
                    raise ValueError(
                        f"Custom predicate '{self.name}' returned a Series not aligned "
                        f"with its input rows"
                    )
            else:
                result = pd.Series(result, index=rows.index)
            out.loc[present] = result.fillna(False).astype(bool)
        return out

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.columns)})"


class AllOf(Predicate):
    """Conjunction of predicates."""

    def __init__(self, *predicates: Predicate):
        self.predicates = tuple(predicates)

    @property
    def fields(self) -> Tuple[str, ...]:
        seen: List[str] = []
        for pred in self.predicates:
            for name in pred.fields:
                if name not in seen:
                    seen.append(name)
        return tuple(seen)

    def mask(self, df: pd.DataFrame) -> pd.Series:
        out = pd.Series(True, index=df.index)
        for pred in self.predicates:
            out &= pred.mask(df)
        return out

    def __str__(self) -> str:
        return " AND ".join(str(p) for p in self.predicates)


@dataclass(frozen=True)
class Criterion:
    """One ordered step of the attrition sequence.

    Attributes:
        description: Human-readable inclusion label, e.g. "ECOG score available"
        predicate: Row predicate deciding inclusion
        complement: Label for the excluded group. Pass-through for rendering;
            derived from the description when omitted.
    """
    description: str
    predicate: Predicate
    complement: Optional[str] = None

    @property
    def complement_label(self) -> str:
        if self.complement:
            return self.complement
        return f"Excluded: not {self.description[:1].lower()}{self.description[1:]}"

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.predicate.fields


def validate_criteria(criteria: Iterable[Criterion], columns: Iterable[str]) -> None:
    """Check that every field referenced by the criteria exists in the schema.

    Args:
        criteria: Ordered criteria to check
        columns: Column names of the dataset

    Raises:
        SchemaError: On the first criterion referencing unknown columns
    """
    known = set(columns)
    for idx, crit in enumerate(criteria, start=1):
        unknown = [name for name in crit.fields if name not in known]
        if unknown:
            raise SchemaError(
                f"Criterion {idx} ('{crit.description}') references columns not in "
                f"the dataset: {unknown}"
            )


def evaluate(df: pd.DataFrame, predicate: Predicate) -> pd.Series:
    """Evaluate a predicate on every record.

    Args:
        df: Dataset to evaluate
        predicate: Predicate to apply

    Returns:
        Boolean Series aligned with ``df.index``; missing values evaluate to False

    Raises:
        SchemaError: If the predicate references columns absent from ``df``
    """
    missing = [name for name in predicate.fields if name not in df.columns]
    if missing:
        raise SchemaError(f"Predicate '{predicate}' references unknown columns: {missing}")
    return predicate.mask(df).astype(bool)


def count_subjects(df: pd.DataFrame, id_col: Optional[str] = None) -> int:
    """Number of records, or of distinct subject ids when ``id_col`` is given."""
    if id_col is None:
        return int(len(df))
    if id_col not in df.columns:
        raise SchemaError(f"Subject id column '{id_col}' not found in dataset")
    return int(df[id_col].nunique(dropna=True))


def count_criterion(
    df: pd.DataFrame,
    criterion: Criterion,
    id_col: Optional[str] = None,
) -> Tuple[int, int]:
    """Count subjects passing and failing one criterion.

    Returns:
        Tuple ``(n_pass, n_fail)``
    """
    passed = evaluate(df, criterion.predicate)
    n_pass = count_subjects(df.loc[passed], id_col)
    n_total = count_subjects(df, id_col)
    return n_pass, n_total - n_pass


def criterion_from_dict(entry: Dict[str, Any]) -> Criterion:
    """Build a criterion from its config form.

    Example:
        >>> criterion_from_dict({
        ...     "description": "Weight loss recorded as non-negative",
        ...     "field": "weight_loss", "op": ">=", "value": 0,
        ... })
    """
    try:
        description = entry["description"]
        column = entry["field"]
    except KeyError as exc:
        raise ValueError(f"Criterion config missing key {exc}: {entry}") from exc

    op = entry.get("op", "present")
    if op == "present":
        predicate: Predicate = FieldPresent(column)
    else:
        if "value" not in entry:
            raise ValueError(f"Criterion '{description}' with op '{op}' needs a value")
        predicate = Comparison(column, op, entry["value"])

    return Criterion(description, predicate, entry.get("complement"))


def criterion_to_dict(criterion: Criterion) -> Dict[str, Any]:
    """Inverse of :func:`criterion_from_dict` for the config-expressible predicates."""
    pred = criterion.predicate
    out: Dict[str, Any] = {"description": criterion.description}
    if isinstance(pred, FieldPresent):
        out.update(field=pred.field, op="present")
    elif isinstance(pred, Comparison):
        out.update(field=pred.field, op=pred.op, value=pred.value)
    else:
        raise ValueError(f"Predicate '{pred}' cannot be expressed in config form")
    if criterion.complement:
        out["complement"] = criterion.complement
    return out
