"""Aggregations over a tenant's results.

Nothing here is cached: every public coroutine reads students, tests and
results fresh (concurrently, they are independent reads) and joins them in
memory. The pure functions take already-loaded records so they can be used
on any snapshot.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from errors import ReferentialGap
from models import ResultRecord, StudentRecord, TestRecord, UnresolvedStudent, UnresolvedTest
from store import TenantStore
from validation import round_score

logger = logging.getLogger(__name__)

StudentRef = Union[StudentRecord, UnresolvedStudent]
TestRef = Union[TestRecord, UnresolvedTest]


class EnrichedResult(BaseModel):
    result: ResultRecord
    student: StudentRef
    test: TestRef

    @property
    def resolved(self) -> bool:
        return not isinstance(self.student, UnresolvedStudent) and not isinstance(self.test, UnresolvedTest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.result.model_dump(),
            "student": self.student.model_dump(),
            "test": self.test.model_dump(),
            "resolved": self.resolved,
        }


class Snapshot(BaseModel):
    students: List[StudentRecord]
    tests: List[TestRecord]
    results: List[ResultRecord]


def average(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round_score(sum(values) / len(values))


def _lookup(mapping: Dict[str, Any], key: str, kind: str) -> Any:
    if key not in mapping:
        raise ReferentialGap(kind, key)
    return mapping[key]


def enrich_results(
    results: Sequence[ResultRecord],
    students: Sequence[StudentRecord],
    tests: Sequence[TestRecord],
) -> List[EnrichedResult]:
    """Attach each result's student and test; dangling keys get placeholders."""
    student_map = {student.id: student for student in students}
    test_map = {test.id: test for test in tests}
    enriched = []
    for result in results:
        try:
            student: StudentRef = _lookup(student_map, result.student_id, "student")
        except ReferentialGap as gap:
            logger.warning("%s", gap)
            student = UnresolvedStudent(id=result.student_id)
        try:
            test: TestRef = _lookup(test_map, result.test_id, "test")
        except ReferentialGap as gap:
            logger.warning("%s", gap)
            test = UnresolvedTest(id=result.test_id)
        enriched.append(EnrichedResult(result=result, student=student, test=test))
    return enriched


def _by_test_date(items: Sequence[EnrichedResult]) -> List[EnrichedResult]:
    return sorted(items, key=lambda item: item.result.test_date)


def _domain_averages(results: Sequence[ResultRecord]) -> Dict[str, float]:
    totals: Dict[str, List[float]] = {}
    for result in results:
        for domain, score in (result.domain_scores or {}).items():
            totals.setdefault(domain, []).append(float(score))
    return {domain: average(scores) for domain, scores in totals.items()}


def class_averages(enriched: Sequence[EnrichedResult]) -> List[Dict[str, Any]]:
    """Per-test count, mean overall score and mean per domain, oldest test first.

    A result without a given domain does not count towards that domain's mean.
    """
    groups: Dict[str, List[EnrichedResult]] = {}
    for item in enriched:
        groups.setdefault(item.result.test_id, []).append(item)

    summaries = []
    for test_id, items in groups.items():
        test = items[0].test
        summaries.append({
            "test_id": test_id,
            "test_name": test.name,
            "test_date": test.date,
            "count": len(items),
            "average": average([item.result.overall_score for item in items]) or 0.0,
            "domain_averages": _domain_averages([item.result for item in items]),
        })
    return sorted(summaries, key=lambda summary: summary["test_date"])


def domain_weakness(results: Sequence[ResultRecord]) -> List[Dict[str, Any]]:
    """Domain means across every result, weakest first.

    Equal means keep the order in which the domains were first seen.
    """
    averages = _domain_averages(results)
    ranked = [{"domain": domain, "average": avg} for domain, avg in averages.items()]
    return sorted(ranked, key=lambda entry: entry["average"])


def _growth(first: float, latest: float) -> Tuple[float, float]:
    growth = round_score(latest - first)
    # A first score of zero has no meaningful percentage; report 0.
    pct_change = round_score(growth / first * 100) if first > 0 else 0.0
    return growth, pct_change


def growth_metrics(enriched: Sequence[EnrichedResult]) -> List[Dict[str, Any]]:
    """First-to-latest change per student, largest improvement first.

    Students with fewer than two results are left out.
    """
    by_student: Dict[str, List[EnrichedResult]] = {}
    for item in enriched:
        by_student.setdefault(item.result.student_id, []).append(item)

    metrics = []
    for student_id, items in by_student.items():
        if len(items) < 2:
            continue
        ordered = _by_test_date(items)
        first, latest = ordered[0].result, ordered[-1].result
        growth, pct_change = _growth(first.overall_score, latest.overall_score)
        metrics.append({
            "student_id": student_id,
            "student": items[0].student.model_dump(),
            "test_count": len(items),
            "first_score": first.overall_score,
            "latest_score": latest.overall_score,
            "growth": growth,
            "pct_change": pct_change,
        })
    return sorted(metrics, key=lambda metric: metric["growth"], reverse=True)


def dashboard_summary(snapshot: Snapshot, top: int = 5) -> Dict[str, Any]:
    enriched = enrich_results(snapshot.results, snapshot.students, snapshot.tests)
    per_test = class_averages(enriched)
    weakness = domain_weakness(snapshot.results)
    return {
        "total_students": len(snapshot.students),
        "total_tests": len(snapshot.tests),
        "total_results": len(snapshot.results),
        "overall_average": average([r.overall_score for r in snapshot.results]) or 0.0,
        "latest_test": per_test[-1] if per_test else None,
        "class_averages": per_test,
        "top_growth": growth_metrics(enriched)[:top],
        "weakest_domain": weakness[0] if weakness else None,
    }


def student_profile(
    student: StudentRecord,
    snapshot: Snapshot,
) -> Dict[str, Any]:
    own = [r for r in snapshot.results if r.student_id == student.id]
    ordered = _by_test_date(enrich_results(own, [student], snapshot.tests))

    history = []
    previous: Optional[float] = None
    for item in ordered:
        score = item.result.overall_score
        history.append({
            **item.to_dict(),
            "delta": round_score(score - previous) if previous is not None else None,
        })
        previous = score

    growth = None
    if len(ordered) >= 2:
        growth, _ = _growth(ordered[0].result.overall_score, ordered[-1].result.overall_score)

    return {
        "student": student.model_dump(),
        "test_count": len(ordered),
        "results": history,
        "growth": growth,
        "student_average": average([item.result.overall_score for item in ordered]),
        "class_average": average([r.overall_score for r in snapshot.results]) or 0.0,
        "latest_domains": dict(ordered[-1].result.domain_scores) if ordered else {},
    }


def compare_with_class(student: StudentRecord, snapshot: Snapshot) -> Dict[str, Any]:
    """The student's score on each test next to that test's class average."""
    scores_by_test: Dict[str, List[float]] = {}
    for result in snapshot.results:
        scores_by_test.setdefault(result.test_id, []).append(result.overall_score)

    own = [r for r in snapshot.results if r.student_id == student.id]
    rows = []
    for item in _by_test_date(enrich_results(own, [student], snapshot.tests)):
        class_avg = average(scores_by_test.get(item.result.test_id, []))
        rows.append({
            "test_id": item.result.test_id,
            "test_name": item.test.name,
            "test_date": item.result.test_date,
            "student_score": item.result.overall_score,
            "class_average": class_avg,
            "difference": round_score(item.result.overall_score - class_avg) if class_avg is not None else None,
        })
    return {"student": student.model_dump(), "tests": rows}


def compare_students(
    student_a: StudentRecord,
    student_b: StudentRecord,
    snapshot: Snapshot,
) -> Dict[str, Any]:
    """Scores on the tests both students took, plus their latest domain scores."""
    results_a = _by_test_date(enrich_results(
        [r for r in snapshot.results if r.student_id == student_a.id], [student_a], snapshot.tests
    ))
    results_b = _by_test_date(enrich_results(
        [r for r in snapshot.results if r.student_id == student_b.id], [student_b], snapshot.tests
    ))
    b_by_test = {item.result.test_id: item for item in results_b}

    common = []
    for item in results_a:
        other = b_by_test.get(item.result.test_id)
        if other is None:
            continue
        common.append({
            "test_id": item.result.test_id,
            "test_name": item.test.name,
            "test_date": item.result.test_date,
            "score_a": item.result.overall_score,
            "score_b": other.result.overall_score,
        })

    latest_a = results_a[-1].result.domain_scores if results_a else {}
    latest_b = results_b[-1].result.domain_scores if results_b else {}
    domains = list(dict.fromkeys([*latest_a.keys(), *latest_b.keys()]))
    return {
        "student_a": student_a.model_dump(),
        "student_b": student_b.model_dump(),
        "common_tests": common,
        "domains": [
            {"domain": d, "score_a": latest_a.get(d, 0), "score_b": latest_b.get(d, 0)}
            for d in domains
        ],
    }


def domain_trend(student: StudentRecord, snapshot: Snapshot) -> Dict[str, Any]:
    own = [r for r in snapshot.results if r.student_id == student.id]
    ordered = _by_test_date(enrich_results(own, [student], snapshot.tests))
    domains: List[str] = []
    for item in ordered:
        for domain in item.result.domain_scores:
            if domain not in domains:
                domains.append(domain)
    return {
        "student": student.model_dump(),
        "labels": [item.test.name for item in ordered],
        "dates": [item.result.test_date for item in ordered],
        "series": {
            domain: [item.result.domain_scores.get(domain) for item in ordered]
            for domain in domains
        },
    }


async def load_snapshot(store: TenantStore) -> Snapshot:
    students, tests, results = await asyncio.gather(
        store.list_students(),
        store.list_tests(),
        store.list_results(),
    )
    return Snapshot(students=students, tests=tests, results=results)


async def get_enriched_results(store: TenantStore) -> List[EnrichedResult]:
    snapshot = await load_snapshot(store)
    return enrich_results(snapshot.results, snapshot.students, snapshot.tests)


async def get_class_averages(store: TenantStore) -> List[Dict[str, Any]]:
    return class_averages(await get_enriched_results(store))


async def get_growth_metrics(store: TenantStore) -> List[Dict[str, Any]]:
    return growth_metrics(await get_enriched_results(store))


async def get_domain_weakness(store: TenantStore) -> List[Dict[str, Any]]:
    return domain_weakness(await store.list_results())


async def get_dashboard_summary(store: TenantStore) -> Dict[str, Any]:
    return dashboard_summary(await load_snapshot(store))


async def _require_student(store: TenantStore, student_id: str) -> StudentRecord:
    student = await store.get_student(student_id)
    if student is None:
        raise ReferentialGap("student", student_id)
    return student


async def get_student_profile(store: TenantStore, student_id: str) -> Dict[str, Any]:
    student, snapshot = await asyncio.gather(_require_student(store, student_id), load_snapshot(store))
    return student_profile(student, snapshot)


async def get_student_vs_class(store: TenantStore, student_id: str) -> Dict[str, Any]:
    student, snapshot = await asyncio.gather(_require_student(store, student_id), load_snapshot(store))
    return compare_with_class(student, snapshot)


async def get_student_comparison(store: TenantStore, student_a: str, student_b: str) -> Dict[str, Any]:
    first, second, snapshot = await asyncio.gather(
        _require_student(store, student_a),
        _require_student(store, student_b),
        load_snapshot(store),
    )
    return compare_students(first, second, snapshot)


async def get_domain_trend(store: TenantStore, student_id: str) -> Dict[str, Any]:
    student, snapshot = await asyncio.gather(_require_student(store, student_id), load_snapshot(store))
    return domain_trend(student, snapshot)
