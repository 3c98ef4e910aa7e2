import pytest

import models
from analytics import (
    Snapshot,
    class_averages,
    compare_students,
    compare_with_class,
    dashboard_summary,
    domain_trend,
    domain_weakness,
    enrich_results,
    get_class_averages,
    get_dashboard_summary,
    get_growth_metrics,
    get_student_profile,
    growth_metrics,
    student_profile,
)
from errors import ReferentialGap
from ingest import import_text
from models import ResultRecord, StudentRecord, UnresolvedStudent, UnresolvedTest

T = "tenant-a"


def student(sid, name):
    return StudentRecord(id=sid, tenant_id=T, external_id=sid.upper(), name=name)


def exam(tid, name, date):
    return models.TestRecord(id=tid, tenant_id=T, name=name, date=date)


def result(sid, tid, date, score, domains=None):
    return ResultRecord(
        tenant_id=T, student_id=sid, test_id=tid, test_date=date,
        overall_score=score, domain_scores=domains or {},
    )


STUDENTS = [student("s1", "Ann"), student("s2", "Ben"), student("s3", "Cy")]
TESTS = [exam("t2", "Spring", "2024-06-01"), exam("t1", "Fall", "2024-01-01")]


def snapshot(results):
    return Snapshot(students=STUDENTS, tests=TESTS, results=results)


def test_per_test_average_and_domain_average_ignore_missing_domains():
    results = [
        result("s1", "t1", "2024-01-01", 80, {"A": 90}),
        result("s2", "t1", "2024-01-01", 90, {"A": 70}),
        result("s3", "t1", "2024-01-01", 70),
    ]
    [summary] = class_averages(enrich_results(results, STUDENTS, TESTS))
    assert summary["count"] == 3
    assert summary["average"] == 80.0
    assert summary["domain_averages"] == {"A": 80.0}
    assert summary["test_name"] == "Fall"


def test_per_test_summaries_are_ordered_by_date():
    results = [
        result("s1", "t2", "2024-06-01", 90),
        result("s1", "t1", "2024-01-01", 70),
    ]
    summaries = class_averages(enrich_results(results, STUDENTS, TESTS))
    assert [s["test_date"] for s in summaries] == ["2024-01-01", "2024-06-01"]


def test_domain_weakness_is_ascending():
    results = [
        result("s1", "t1", "2024-01-01", 80, {"Geometry": 88.5, "Algebra": 70}),
        result("s2", "t1", "2024-01-01", 80, {"Algebra": 74}),
    ]
    ranking = domain_weakness(results)
    assert [entry["domain"] for entry in ranking] == ["Algebra", "Geometry"]
    assert ranking[0]["average"] == 72.0
    assert ranking[1]["average"] == 88.5


def test_domain_weakness_ties_keep_first_seen_order():
    results = [result("s1", "t1", "2024-01-01", 80, {"Logic": 60, "Algebra": 60, "Calculus": 50})]
    assert [e["domain"] for e in domain_weakness(results)] == ["Calculus", "Logic", "Algebra"]


def test_growth_uses_date_order_and_skips_single_results():
    results = [
        result("s1", "t2", "2024-06-01", 90),
        result("s1", "t1", "2024-01-01", 70),
        result("s2", "t1", "2024-01-01", 60),
    ]
    metrics = growth_metrics(enrich_results(results, STUDENTS, TESTS))
    assert len(metrics) == 1
    ann = metrics[0]
    assert ann["student"]["name"] == "Ann"
    assert ann["first_score"] == 70
    assert ann["latest_score"] == 90
    assert ann["growth"] == 20.0
    assert ann["pct_change"] == 28.6
    assert ann["test_count"] == 2


def test_growth_from_zero_reports_zero_percent_and_sorts_descending():
    results = [
        result("s1", "t1", "2024-01-01", 0),
        result("s1", "t2", "2024-06-01", 50),
        result("s2", "t1", "2024-01-01", 80),
        result("s2", "t2", "2024-06-01", 60),
        result("s3", "t1", "2024-01-01", 50),
        result("s3", "t2", "2024-06-01", 100),
    ]
    metrics = growth_metrics(enrich_results(results, STUDENTS, TESTS))
    assert [m["student_id"] for m in metrics] == ["s1", "s3", "s2"]
    assert metrics[0]["pct_change"] == 0
    assert metrics[2]["growth"] == -20.0
    assert metrics[2]["pct_change"] == -25.0


def test_dangling_references_become_placeholders():
    [item] = enrich_results([result("gone", "missing", "2024-01-01", 50)], STUDENTS, TESTS)
    assert isinstance(item.student, UnresolvedStudent)
    assert isinstance(item.test, UnresolvedTest)
    assert item.student.name == "Unknown"
    assert item.student.external_id == "?"
    assert item.test.date == ""
    assert item.resolved is False
    assert item.to_dict()["resolved"] is False


def test_dashboard_summary():
    results = [
        result("s1", "t1", "2024-01-01", 70, {"Algebra": 60}),
        result("s1", "t2", "2024-06-01", 90, {"Algebra": 80, "Geometry": 95}),
        result("s2", "t1", "2024-01-01", 80),
    ]
    summary = dashboard_summary(snapshot(results))
    assert summary["total_students"] == 3
    assert summary["total_tests"] == 2
    assert summary["total_results"] == 3
    assert summary["overall_average"] == 80.0
    assert summary["latest_test"]["test_name"] == "Spring"
    assert summary["weakest_domain"] == {"domain": "Algebra", "average": 70.0}
    assert [g["student_id"] for g in summary["top_growth"]] == ["s1"]


def test_dashboard_summary_with_no_data():
    summary = dashboard_summary(Snapshot(students=[], tests=[], results=[]))
    assert summary["overall_average"] == 0.0
    assert summary["latest_test"] is None
    assert summary["weakest_domain"] is None


def test_student_profile():
    results = [
        result("s1", "t2", "2024-06-01", 85.5, {"Algebra": 80}),
        result("s1", "t1", "2024-01-01", 70, {"Algebra": 60}),
        result("s2", "t1", "2024-01-01", 90),
    ]
    profile = student_profile(STUDENTS[0], snapshot(results))
    assert profile["test_count"] == 2
    assert [r["test"]["name"] for r in profile["results"]] == ["Fall", "Spring"]
    assert [r["delta"] for r in profile["results"]] == [None, 15.5]
    assert profile["growth"] == 15.5
    assert profile["student_average"] == 77.8
    assert profile["class_average"] == 81.8
    assert profile["latest_domains"] == {"Algebra": 80.0}


def test_student_profile_without_results():
    profile = student_profile(STUDENTS[2], snapshot([]))
    assert profile["growth"] is None
    assert profile["student_average"] is None
    assert profile["latest_domains"] == {}


def test_compare_with_class():
    results = [
        result("s1", "t1", "2024-01-01", 70),
        result("s2", "t1", "2024-01-01", 90),
        result("s1", "t2", "2024-06-01", 60),
    ]
    comparison = compare_with_class(STUDENTS[0], snapshot(results))
    rows = comparison["tests"]
    assert [r["test_name"] for r in rows] == ["Fall", "Spring"]
    assert rows[0]["class_average"] == 80.0
    assert rows[0]["difference"] == -10.0
    assert rows[1]["difference"] == 0.0


def test_compare_students_uses_common_tests_and_latest_domains():
    results = [
        result("s1", "t1", "2024-01-01", 70, {"Algebra": 50}),
        result("s1", "t2", "2024-06-01", 80, {"Algebra": 75, "Logic": 60}),
        result("s2", "t1", "2024-01-01", 85, {"Geometry": 90}),
    ]
    comparison = compare_students(STUDENTS[0], STUDENTS[1], snapshot(results))
    assert comparison["common_tests"] == [{
        "test_id": "t1", "test_name": "Fall", "test_date": "2024-01-01",
        "score_a": 70, "score_b": 85,
    }]
    assert comparison["domains"] == [
        {"domain": "Algebra", "score_a": 75, "score_b": 0},
        {"domain": "Logic", "score_a": 60, "score_b": 0},
        {"domain": "Geometry", "score_a": 0, "score_b": 90},
    ]


def test_domain_trend():
    results = [
        result("s1", "t2", "2024-06-01", 80, {"Algebra": 75, "Logic": 60}),
        result("s1", "t1", "2024-01-01", 70, {"Algebra": 50}),
    ]
    trend = domain_trend(STUDENTS[0], snapshot(results))
    assert trend["labels"] == ["Fall", "Spring"]
    assert trend["series"] == {"Algebra": [50, 75], "Logic": [None, 60]}


CSV = """student_id,student_name,test_name,test_date,overall_score,algebra
S1,Ann,Fall,2024-01-01,70,60
S1,Ann,Spring,2024-06-01,90,80
S2,Ben,Fall,2024-01-01,90,100
"""


def test_engine_reads_fresh_from_the_store(store, run):
    run(import_text(store, CSV))
    averages = run(get_class_averages(store))
    assert [(a["test_name"], a["average"]) for a in averages] == [("Fall", 80.0), ("Spring", 90.0)]
    assert averages[0]["domain_averages"] == {"Algebra": 80.0}

    growth = run(get_growth_metrics(store))
    assert growth[0]["student"]["external_id"] == "S1"
    assert growth[0]["pct_change"] == 28.6

    run(import_text(store, "student_id,student_name,test_name,test_date,overall_score\n"
                           "S2,Ben,Spring,2024-06-01,95\n"))
    assert len(run(get_growth_metrics(store))) == 2
    assert run(get_dashboard_summary(store))["total_results"] == 4


def test_profile_of_unknown_student_is_a_referential_gap(store, run):
    with pytest.raises(ReferentialGap):
        run(get_student_profile(store, "nope"))
